"""Move schedules stored by pre-0.4 releases into the current key layout.

Old releases kept each schedule under ``{prefix}:{guild_id}`` with the fields
``guild_id``, ``channel_id`` (or ``album``), ``interval``, ``last_run`` and
optionally ``start_at`` / ``message_limit``, and tracked guilds in
``{prefix}:known_guilds``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger
from redis import RedisError
from redis.asyncio import Redis

from bannerbot.errors import StoreError
from bannerbot.models import PersistedScheduleRecord
from bannerbot.store.redis_store import RedisScheduleStore

LEGACY_FIELD_NAMES: dict[str, str] = {
    "guild_id": "tenant_id",
    "channel_id": "source_id",
    "interval": "interval_seconds",
    "start_at": "start_at_epoch_seconds",
    "last_run": "last_run_epoch_seconds",
    "message_limit": "lookback_limit",
}


@dataclass(slots=True)
class MigrationReport:
    migrated: list[int] = field(default_factory=list)
    skipped: dict[int, str] = field(default_factory=dict)
    dry_run: bool = False


def convert_legacy_fields(raw: dict[str, str]) -> dict[str, str]:
    """Rename legacy hash fields and fill the ones old releases did not store."""

    if "album" in raw and "channel_id" not in raw:
        raise ValueError(f"album sources are no longer supported: {raw['album']}")

    converted = {LEGACY_FIELD_NAMES.get(key, key): value for key, value in raw.items() if key != "album"}
    converted.setdefault("start_at_epoch_seconds", converted.get("last_run_epoch_seconds", "0"))
    converted.setdefault("lookback_limit", "0")
    return converted


class LegacyKeyMigrator:
    """Rewrites legacy keys through a :class:`RedisScheduleStore`."""

    def __init__(self, store: RedisScheduleStore, *, dry_run: bool = False) -> None:
        self.store = store
        self.dry_run = dry_run

    @property
    def client(self) -> Redis:
        return self.store.client

    async def run(self) -> MigrationReport:
        """Migrate every indexed legacy schedule.

        Migrated tenants leave ``{prefix}:known_guilds``; skipped ones stay in
        it so a later run can pick them up again.
        """

        try:
            return await self._run()
        except RedisError as exc:
            raise StoreError(f"Legacy migration failed: {exc}") from exc

    async def _run(self) -> MigrationReport:
        report = MigrationReport(dry_run=self.dry_run)
        known_key = self.store.key("known_guilds")
        members = await self.client.smembers(known_key)
        tenant_ids = sorted(int(member) for member in members)
        logger.info("Found {} legacy schedules under {}", len(tenant_ids), known_key)

        for index, tenant_id in enumerate(tenant_ids):
            legacy_key = self.store.key(tenant_id)
            raw = await self.client.hgetall(legacy_key)
            if not raw:
                report.skipped[tenant_id] = "no legacy record"
                continue
            try:
                record = PersistedScheduleRecord.from_mapping(convert_legacy_fields(_decode(raw)))
            except (ValueError, StoreError) as exc:
                report.skipped[tenant_id] = str(exc)
                logger.warning("Skipping legacy schedule #{} ({}): {}", index, tenant_id, exc)
                continue

            if self.dry_run:
                logger.info("[Dry Run] Would migrate #{} ({})", index, tenant_id)
                report.migrated.append(tenant_id)
                continue

            await self.store.put(record)
            await self.client.delete(legacy_key)
            report.migrated.append(tenant_id)
            logger.info("Migrated #{} ({})", index, tenant_id)

        if not self.dry_run:
            if report.migrated:
                await self.client.srem(known_key, *(str(tenant_id) for tenant_id in report.migrated))
            for tenant_id in report.migrated:
                if await self.store.get(tenant_id) is None:
                    raise StoreError(f"Migrated schedule for {tenant_id} cannot be read back")

        logger.info("Migrated {} schedules, skipped {}", len(report.migrated), len(report.skipped))
        return report


def _decode(raw: dict[str | bytes, str | bytes]) -> dict[str, str]:
    return {
        (key.decode() if isinstance(key, bytes) else key): (value.decode() if isinstance(value, bytes) else value)
        for key, value in raw.items()
    }


__all__ = ["LEGACY_FIELD_NAMES", "LegacyKeyMigrator", "MigrationReport", "convert_legacy_fields"]
