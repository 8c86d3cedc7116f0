"""Lifecycle of the banner scheduler: start, enqueue, dequeue, reload, shutdown."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from loguru import logger

from bannerbot.clock import Clock
from bannerbot.config import AppConfig
from bannerbot.errors import StoreError
from bannerbot.models import PersistedScheduleRecord, Schedule
from bannerbot.scheduler.metrics import RunMetricsRegistry
from bannerbot.scheduler.orchestrator import BannerRunOrchestrator
from bannerbot.scheduler.repeater import Repeater, RepeaterHandle, ScheduledEntry
from bannerbot.store.base import ScheduleStore


@dataclass(slots=True)
class ReloadReport:
    loaded: list[int] = field(default_factory=list)
    failed: dict[int, str] = field(default_factory=dict)


class BannerService:
    """Owns the repeater and keeps it consistent with the store.

    The service is inert after construction; :meth:`start` arms every stored
    schedule and may only be called once.
    """

    def __init__(
        self,
        config: AppConfig,
        store: ScheduleStore,
        orchestrator: BannerRunOrchestrator,
        *,
        clock: Clock | None = None,
        log_sink: bool = True,
    ) -> None:
        self.config = config
        self.store = store
        self.orchestrator = orchestrator
        self.clock = clock or orchestrator.clock
        self.repeater = Repeater(orchestrator, clock=self.clock)
        self._handle: RepeaterHandle | None = None
        self._file_sink_id: int | None = None
        if log_sink:
            self._setup_logging_sink(config.scheduler.log_dir)

    @property
    def metrics(self) -> RunMetricsRegistry:
        return self.orchestrator.metrics

    @property
    def started(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> RepeaterHandle:
        if self._handle is None:
            raise RuntimeError("Banner service has not been started")
        return self._handle

    def _setup_logging_sink(self, log_dir: Path) -> None:
        """Persist run logs to a rotating JSON file."""

        try:
            log_dir.mkdir(parents=True, exist_ok=True)
            self._file_sink_id = logger.add(
                log_dir / "scheduler.log",
                rotation="5 MB",
                retention=5,
                enqueue=True,
                serialize=True,
                level="INFO",
            )
        except OSError as exc:  # pragma: no cover - filesystem issues are environment-specific
            logger.warning("Failed to initialise scheduler file log sink: {}", exc)
            self._file_sink_id = None

    async def start(self) -> ReloadReport:
        if self._handle is not None:
            raise RuntimeError("Banner service has already been started")
        self._handle = self.repeater.start()
        self.orchestrator.bind(self._handle)
        return await self.load_schedules()

    async def enqueue(self, schedule: Schedule) -> None:
        """Persist ``schedule`` and arm it, replacing any previous one."""

        handle = self.handle
        async with self.orchestrator.locks(schedule.tenant_id):
            await self.store.put(schedule.to_record(self.clock.now()))
            await handle.insert(schedule)
        logger.info(
            "Scheduled banner rotation for {} from {} every {}s",
            schedule.tenant_id,
            schedule.source_id,
            schedule.interval_seconds,
        )

    async def dequeue(self, tenant_id: int) -> bool:
        """Stop the tenant's schedule; returns whether one was stored.

        A run of the tenant that is still in flight finishes, but its result
        is neither stored nor armed again.
        """

        handle = self.handle
        async with self.orchestrator.locks(tenant_id):
            existed = await self.store.is_active(tenant_id)
            await handle.remove(tenant_id)
            await self.store.delete(tenant_id)
        self.metrics.forget(tenant_id)
        if existed:
            logger.info("Stopped banner rotation for {}", tenant_id)
        return existed

    async def load_schedules(self) -> ReloadReport:
        """Arm every stored schedule, collecting records that fail to load."""

        handle = self.handle
        report = ReloadReport()
        tenant_ids = await self.store.list_active_tenant_ids()
        records: list[PersistedScheduleRecord] = []
        for tenant_id in tenant_ids:
            try:
                record = await self.store.get(tenant_id)
            except StoreError as exc:
                report.failed[tenant_id] = str(exc)
                continue
            if record is None:
                report.failed[tenant_id] = "listed as active but has no record"
                continue
            records.append(record)

        for record in records:
            await handle.insert(record.to_schedule())
            report.loaded.append(record.tenant_id)

        logger.info("Loaded {} schedules ({} failed)", len(report.loaded), len(report.failed))
        for tenant_id, reason in report.failed.items():
            logger.error("Could not load schedule for {}: {}", tenant_id, reason)
        return report

    async def reload(self) -> ReloadReport:
        """Drop every armed timer and arm the stored schedules again."""

        await self.handle.clear()
        return await self.load_schedules()

    async def list_schedules(self) -> list[ScheduledEntry]:
        return await self.handle.snapshot()

    async def get_schedule(self, tenant_id: int) -> ScheduledEntry | None:
        for entry in await self.handle.snapshot():
            if entry.schedule.tenant_id == tenant_id:
                return entry
        return None

    async def shutdown(self) -> None:
        if self._handle is None:
            logger.info("Banner service is not running.")
        else:
            logger.info("Shutting down banner scheduler...")
            await self._handle.stop()
            logger.info("Banner scheduler has been shut down.")
        if self._file_sink_id is not None:
            logger.remove(self._file_sink_id)
            self._file_sink_id = None

    def get_metrics_snapshot(self) -> dict[int, dict[str, Any]]:
        return self.metrics.snapshot()

    def export_metrics(self) -> str:
        return self.metrics.export_prometheus()


__all__ = ["BannerService", "ReloadReport"]
