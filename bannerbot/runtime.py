"""Wiring of the bot, the scheduler and their shutdown order."""

from __future__ import annotations

import asyncio
import signal
import sys

import httpx
from loguru import logger

from bannerbot import __version__
from bannerbot.banner.committer import BannerCommitter
from bannerbot.config import AppConfig
from bannerbot.discovery.media import MediaDiscovery
from bannerbot.errors import CriticalError, StoreError
from bannerbot.platform.discord_client import BannerBotClient, DiscordPlatform
from bannerbot.scheduler.orchestrator import BannerRunOrchestrator
from bannerbot.scheduler.service import BannerService, ReloadReport
from bannerbot.store import ScheduleStore, create_store

USER_AGENT = f"bannerbot/{__version__}"
HTTP_TIMEOUT_SECONDS = 30.0


def configure_logging(level: str) -> int:
    """Send logs of at least ``level`` to stderr; returns the sink id."""

    logger.remove()
    return logger.add(sys.stderr, level=level.upper())


def build_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        headers={"User-Agent": USER_AGENT},
        timeout=httpx.Timeout(HTTP_TIMEOUT_SECONDS),
        follow_redirects=True,
    )


class ServiceEvents:
    """Reacts to gateway events by starting, reloading or trimming schedules."""

    def __init__(self, service: BannerService, platform: DiscordPlatform) -> None:
        self.service = service
        self.platform = platform

    async def on_first_ready(self) -> None:
        report = await self.service.start()
        await self._report_failures(report)

    async def on_reconnected(self) -> None:
        if not self.service.started:
            return
        logger.info("Reloading schedules after reconnect")
        report = await self.service.reload()
        await self._report_failures(report)

    async def on_tenant_removed(self, tenant_id: int) -> None:
        if not self.service.started:
            return
        await self._dequeue(tenant_id, "server removed")

    async def on_channel_deleted(self, tenant_id: int, channel_id: int) -> None:
        if not self.service.started:
            return
        entry = await self.service.get_schedule(tenant_id)
        if entry is not None and entry.schedule.source_id == channel_id:
            await self._dequeue(tenant_id, "image channel deleted")

    async def _dequeue(self, tenant_id: int, reason: str) -> None:
        logger.info("Stopping schedule for {}: {}", tenant_id, reason)
        try:
            await self.service.dequeue(tenant_id)
        except StoreError as exc:
            await self._critical(CriticalError(f"Failed to remove schedule for {tenant_id}: {exc}"))

    async def _report_failures(self, report: ReloadReport) -> None:
        if not report.failed:
            return
        lines = [f"{tenant_id}: {reason}" for tenant_id, reason in report.failed.items()]
        await self._critical(CriticalError("Failed to load schedules:\n" + "\n".join(lines)))

    async def _critical(self, error: CriticalError) -> None:
        logger.critical("{}", error)
        try:
            await self.platform.alert_operators(str(error))
        except Exception:
            logger.exception("Failed to alert operators")


class BotRuntime:
    """Builds every component from configuration and tears them down in order.

    Shutdown closes the gateway first, then stops the scheduler (which waits
    for in-flight runs), then the HTTP client and finally the store.
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        client: BannerBotClient | None = None,
        store: ScheduleStore | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.client = client or BannerBotClient()
        self.store = store or create_store(config.database)
        self.http = http or build_http_client()
        self.platform = DiscordPlatform(self.client, operator_ids=config.bot.operator_ids)

        scheduler_config = config.scheduler
        committer = BannerCommitter(
            self.platform,
            self.http,
            max_image_bytes=scheduler_config.max_image_bytes,
            chunk_size=scheduler_config.download_chunk_size,
            dev_mode=config.bot.dev_mode,
        )
        orchestrator = BannerRunOrchestrator(
            self.store,
            MediaDiscovery(self.platform),
            committer,
            self.platform,
            max_retries=scheduler_config.max_retries,
            retry_delay_seconds=scheduler_config.retry_delay_seconds,
            attempt_timeout_seconds=scheduler_config.attempt_timeout_seconds,
            max_lookback=scheduler_config.max_lookback,
            notify_after_exhausted_runs=scheduler_config.notify_after_exhausted_runs,
        )
        self.service = BannerService(config, self.store, orchestrator)
        self.client.events = ServiceEvents(self.service, self.platform)
        self._bot_task: asyncio.Task[None] | None = None
        self._closed = False

    async def start_bot(self) -> asyncio.Task[None]:
        token = self.config.bot.resolved_token()
        self._bot_task = asyncio.create_task(self.client.start(token), name="discord-gateway")
        self._bot_task.add_done_callback(_log_bot_exit)
        return self._bot_task

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.info("Shutting down...")
        await self.client.close()
        await self.service.shutdown()
        await self.http.aclose()
        await self.store.close()
        logger.info("Shutdown complete")

    async def run_until_signalled(self) -> None:
        """Run the bot without the admin API until SIGINT/SIGTERM or gateway exit."""

        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop.set)

        bot_task = await self.start_bot()
        stop_task = asyncio.create_task(stop.wait())
        try:
            await asyncio.wait({bot_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_task.cancel()
            await self.shutdown()


def _log_bot_exit(task: asyncio.Task[None]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.opt(exception=exc).error("Discord client stopped with an error")


__all__ = ["BotRuntime", "ServiceEvents", "USER_AGENT", "build_http_client", "configure_logging"]
