"""Command line interface for bannerbot."""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import typer
import uvicorn
from loguru import logger

from .config import AppConfig, load_config
from .config.inspector import check_config, explain_config
from .errors import StoreError
from .migration import LegacyKeyMigrator
from .models import PersistedScheduleRecord
from .platform.discord_client import BannerBotClient, DiscordPlatform
from .runtime import BotRuntime, configure_logging
from .store import RedisScheduleStore, ScheduleStore, create_store
from .web import create_app


@dataclass(slots=True)
class CLIState:
    """Holds shared state between Typer commands."""

    config_path: Path
    _config: AppConfig | None = None

    def ensure_config(self) -> AppConfig:
        if self._config is None:
            logger.info("Loading configuration from {}", self.config_path)
            self._config = load_config(AppConfig, self.config_path)
        return self._config


app = typer.Typer(help="Scheduled Discord banner rotation")
config_app = typer.Typer(help="Validate and document configuration files")
app.add_typer(config_app, name="config")
schedules_app = typer.Typer(help="Inspect and edit stored schedules")
app.add_typer(schedules_app, name="schedules")
migrate_app = typer.Typer(help="Storage migration helpers")
app.add_typer(migrate_app, name="migrate")


def _default_config_path() -> Path:
    repo_root = Path(__file__).resolve().parents[1]
    return repo_root / "config" / "example.toml"


def _normalize_format(value: str) -> str:
    return value.lower()


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):  # pragma: no cover - defensive guard
        raise RuntimeError("CLI context is not initialised")
    return state


def _exit(code: int) -> None:
    raise typer.Exit(code)


def _record_payload(record: PersistedScheduleRecord) -> dict[str, Any]:
    return asdict(record)


async def _load_records(store: ScheduleStore) -> tuple[list[PersistedScheduleRecord], dict[int, str]]:
    records: list[PersistedScheduleRecord] = []
    failed: dict[int, str] = {}
    try:
        for tenant_id in await store.list_active_tenant_ids():
            try:
                record = await store.get(tenant_id)
            except StoreError as exc:
                failed[tenant_id] = str(exc)
                continue
            if record is not None:
                records.append(record)
    finally:
        await store.close()
    return records, failed


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    config: Path = typer.Option(
        _default_config_path(),
        help="Path to the TOML configuration file",
    ),
) -> None:
    """Initialise CLI state."""

    ctx.obj = CLIState(config_path=config.resolve())
    if ctx.invoked_subcommand is None:
        logger.warning("No command provided. Try 'status' or 'serve --dry-run'.")
        _exit(0)


@app.command(help="Show configuration and stored schedule status")
def status(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    config = state.ensure_config()
    _report_system_status(config)

    try:
        records, failed = asyncio.run(_load_records(create_store(config.database)))
    except StoreError as exc:
        logger.error("Schedule store unavailable: {}", exc)
        _exit(1)
        return

    logger.info("\n=== Stored Schedules ===")
    logger.info("Active: {}, unreadable: {}", len(records), len(failed))
    for tenant_id, reason in failed.items():
        logger.warning("  - {}: {}", tenant_id, reason)


@app.command(help="Run the bot, the scheduler and the admin API")
def serve(
    ctx: typer.Context,
    dry_run: bool = typer.Option(
        False,
        help="Validate configuration and stored schedules without connecting to Discord",
    ),
) -> None:
    state = _get_state(ctx)
    config = state.ensure_config()

    if dry_run:
        try:
            records, failed = asyncio.run(_load_records(create_store(config.database)))
        except StoreError as exc:
            logger.error("[Dry Run] Schedule store unavailable: {}", exc)
            _exit(1)
            return
        logger.info("[Dry Run] {} schedules would be armed", len(records))
        for tenant_id, reason in failed.items():
            logger.warning("[Dry Run] Schedule for {} cannot be loaded: {}", tenant_id, reason)
        logger.info("[Dry Run] Bot will not be started.")
        if failed:
            _exit(1)
        return

    configure_logging(config.logging_level)
    runtime = BotRuntime(config)

    if config.web is None or not config.web.enabled:
        asyncio.run(runtime.run_until_signalled())
        return

    app_instance = create_app(runtime.service, config)

    @app_instance.on_event("startup")
    async def startup_event() -> None:
        logger.info("Application startup...")
        await runtime.start_bot()

    @app_instance.on_event("shutdown")
    async def shutdown_event() -> None:
        logger.info("Application shutdown...")
        await runtime.shutdown()

    uvicorn.run(app_instance, host=config.web.host, port=config.web.port, log_level=config.logging_level.lower())


@schedules_app.command("list", help="List stored schedules")
def schedules_list(
    ctx: typer.Context,
    format: str = typer.Option(  # noqa: A002 - match CLI option name
        "text",
        "--format",
        case_sensitive=False,
        help="Output format",
        callback=_normalize_format,
    ),
) -> None:
    config = _get_state(ctx).ensure_config()
    records, failed = asyncio.run(_load_records(create_store(config.database)))

    if format == "json":
        payload = {
            "schedules": [_record_payload(record) for record in records],
            "failed": {str(tenant_id): reason for tenant_id, reason in failed.items()},
        }
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return

    logger.info("Stored schedules ({}):", len(records))
    for record in records:
        logger.info(
            "  - {}: channel={}, interval={}s, last_run={}, lookback={}",
            record.tenant_id,
            record.source_id,
            record.interval_seconds,
            record.last_run_epoch_seconds,
            record.lookback_limit or "max",
        )
    for tenant_id, reason in failed.items():
        logger.warning("  - {}: unreadable ({})", tenant_id, reason)


@schedules_app.command("show", help="Show one stored schedule")
def schedules_show(ctx: typer.Context, tenant_id: int = typer.Argument(..., help="Server id")) -> None:
    config = _get_state(ctx).ensure_config()

    async def _get() -> PersistedScheduleRecord | None:
        store = create_store(config.database)
        try:
            return await store.get(tenant_id)
        finally:
            await store.close()

    try:
        record = asyncio.run(_get())
    except StoreError as exc:
        logger.error("Could not read schedule for {}: {}", tenant_id, exc)
        _exit(1)
        return
    if record is None:
        logger.error("No schedule stored for {}", tenant_id)
        _exit(1)
        return
    print(json.dumps(_record_payload(record), indent=2))


@schedules_app.command("remove", help="Delete a stored schedule")
def schedules_remove(ctx: typer.Context, tenant_id: int = typer.Argument(..., help="Server id")) -> None:
    config = _get_state(ctx).ensure_config()

    async def _remove() -> bool:
        store = create_store(config.database)
        try:
            existed = await store.is_active(tenant_id)
            await store.delete(tenant_id)
            return existed
        finally:
            await store.close()

    if not asyncio.run(_remove()):
        logger.warning("No schedule stored for {}", tenant_id)
        _exit(1)
        return
    logger.info("Removed schedule for {}; a running bot drops it on its next reload", tenant_id)


@migrate_app.command("legacy", help="Move pre-0.4 schedule keys into the current layout")
def migrate_legacy(
    ctx: typer.Context,
    dry_run: bool = typer.Option(False, help="Report what would be migrated without writing"),
) -> None:
    config = _get_state(ctx).ensure_config()
    store = create_store(config.database)
    if not isinstance(store, RedisScheduleStore):
        logger.error("Legacy migration requires the redis backend")
        _exit(1)
        return

    async def _migrate() -> None:
        try:
            report = await LegacyKeyMigrator(store, dry_run=dry_run).run()
        finally:
            await store.close()
        for tenant_id, reason in report.skipped.items():
            logger.warning("Skipped {}: {}", tenant_id, reason)

    try:
        asyncio.run(_migrate())
    except StoreError as exc:
        logger.error("Legacy migration failed: {}", exc)
        _exit(1)


@app.command("notify-owners", help="Send a DM to the owners of every server with an active schedule")
def notify_owners(ctx: typer.Context, message: str = typer.Argument(..., help="Text appended to the DM")) -> None:
    config = _get_state(ctx).ensure_config()

    async def _notify() -> int:
        store = create_store(config.database)
        client = BannerBotClient()
        try:
            tenant_ids = await store.list_active_tenant_ids()
            logger.info("Known servers: {}", tenant_ids)
            await client.login(config.bot.resolved_token())
            return await DiscordPlatform(client).broadcast_to_owners(tenant_ids, message)
        finally:
            await client.close()
            await store.close()

    reached = asyncio.run(_notify())
    logger.info("Notified {} server owners", reached)


@config_app.command(help="Validate the configuration file")
def check(
    ctx: typer.Context,
    format: str = typer.Option(  # noqa: A002 - match CLI option name
        "text",
        "--format",
        case_sensitive=False,
        help="Output format for validation results",
        callback=_normalize_format,
    ),
) -> None:
    state = _get_state(ctx)
    result, exit_code, _ = check_config(state.config_path)

    if format == "json":
        print(json.dumps(result, indent=2, ensure_ascii=False, default=str))
        _exit(exit_code)

    if result["status"] == "ok":
        logger.info("Configuration OK: {}", result["config_path"])
        for warning in result["warnings"]:
            logger.warning(warning)
    else:
        error: dict[str, Any] = result["error"]
        logger.error(
            "Configuration error ({}) for {}: {}",
            error["type"],
            result["config_path"],
            error["message"],
        )
        for detail in error.get("details", []):
            logger.error("  - {}: {} ({})", detail["loc"] or "<root>", detail["message"], detail["type"])

    _exit(exit_code)


@config_app.command(help="Describe available configuration fields")
def explain(
    format: str = typer.Option(  # noqa: A002 - match CLI option name
        "text",
        "--format",
        case_sensitive=False,
        help="Output format for configuration schema",
        callback=_normalize_format,
    ),
) -> None:
    fields = explain_config()

    if format == "json":
        print(json.dumps({"fields": fields}, indent=2, ensure_ascii=False, default=str))
        return

    logger.info("Configuration schema ({} fields):", len(fields))
    for field in fields:
        default_value = field["default"]
        if isinstance(default_value, (dict, list)):
            default_repr = json.dumps(default_value, ensure_ascii=False, default=str)
        else:
            default_repr = str(default_value)
        logger.info(
            "  - {name}: type={type}, required={required}, default={default}, description={description}",
            name=field["name"],
            type=field["type"],
            required="yes" if field["required"] else "no",
            default=default_repr,
            description=field["description"] or "(no description)",
        )


def _report_system_status(config: AppConfig) -> None:
    """Print the effective configuration."""
    logger.info("=== General Configuration ===")
    logger.info("Logging level: {}", config.logging_level)
    logger.info("Dev mode: {}", config.bot.dev_mode)
    logger.info("Operators: {}", len(config.bot.operator_ids))

    logger.info("\n=== Storage ===")
    logger.info("Backend: {} (prefix={})", config.database.backend, config.database.prefix)

    scheduler = config.scheduler
    logger.info("\n=== Scheduler ===")
    logger.info(
        "Interval: {}-{} minutes (default {})",
        scheduler.min_interval_minutes,
        scheduler.max_interval_minutes,
        scheduler.default_interval_minutes,
    )
    logger.info(
        "Retries: {} (delay {}s, attempt timeout {}s)",
        scheduler.max_retries,
        scheduler.retry_delay_seconds,
        scheduler.attempt_timeout_seconds,
    )
    logger.info("Max image size: {} bytes, max lookback: {} messages", scheduler.max_image_bytes, scheduler.max_lookback)

    logger.info("\n=== Admin API ===")
    if config.web and config.web.enabled:
        auth = "enabled" if config.web.auth and config.web.auth.enabled else "disabled"
        logger.info("Listening on {}:{} (auth {})", config.web.host, config.web.port, auth)
    else:
        logger.info("Disabled")


def main(argv: list[str] | None = None) -> int:
    """Entry point compatible with setuptools console scripts."""

    try:
        result = app(args=argv, standalone_mode=False)
    except typer.Exit as exc:  # pragma: no cover - Typer translates exit codes
        return exc.exit_code
    if isinstance(result, int):
        return result
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
