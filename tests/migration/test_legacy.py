from __future__ import annotations

import pytest

from bannerbot.errors import StoreError
from bannerbot.migration import LegacyKeyMigrator, convert_legacy_fields
from bannerbot.store import RedisScheduleStore
from tests.fakes import FakeRedis


def _legacy(redis: FakeRedis, tenant_id: int, **fields: str) -> None:
    redis.sets.setdefault("dbb:known_guilds", set()).add(str(tenant_id))
    redis.hashes[f"dbb:{tenant_id}"] = {"guild_id": str(tenant_id), **fields}


def test_convert_renames_and_fills_defaults() -> None:
    converted = convert_legacy_fields(
        {"guild_id": "1", "channel_id": "10", "interval": "900", "last_run": "500"}
    )

    assert converted == {
        "tenant_id": "1",
        "source_id": "10",
        "interval_seconds": "900",
        "last_run_epoch_seconds": "500",
        "start_at_epoch_seconds": "500",
        "lookback_limit": "0",
    }


def test_convert_keeps_explicit_start_and_limit() -> None:
    converted = convert_legacy_fields(
        {
            "guild_id": "1",
            "channel_id": "10",
            "interval": "900",
            "last_run": "500",
            "start_at": "700",
            "message_limit": "40",
        }
    )

    assert converted["start_at_epoch_seconds"] == "700"
    assert converted["lookback_limit"] == "40"


def test_album_sources_are_rejected() -> None:
    with pytest.raises(ValueError, match="album"):
        convert_legacy_fields({"guild_id": "1", "album": "https://imgur.com/a/x", "interval": "900"})


@pytest.mark.asyncio
async def test_migration_moves_records() -> None:
    redis = FakeRedis()
    _legacy(redis, 1, channel_id="10", interval="900", last_run="500")
    _legacy(redis, 2, album="https://imgur.com/a/x", interval="900", last_run="500")
    store = RedisScheduleStore(redis)  # type: ignore[arg-type]

    report = await LegacyKeyMigrator(store).run()

    assert report.migrated == [1]
    assert list(report.skipped) == [2]
    assert redis.sets["dbb:known_guilds"] == {"2"}
    assert "dbb:1" not in redis.hashes
    assert "dbb:2" in redis.hashes
    record = await store.get(1)
    assert record is not None
    assert record.source_id == 10
    assert record.last_run_epoch_seconds == 500


@pytest.mark.asyncio
async def test_dry_run_writes_nothing() -> None:
    redis = FakeRedis()
    _legacy(redis, 1, channel_id="10", interval="900", last_run="500")
    store = RedisScheduleStore(redis)  # type: ignore[arg-type]

    report = await LegacyKeyMigrator(store, dry_run=True).run()

    assert report.dry_run
    assert report.migrated == [1]
    assert "dbb:1" in redis.hashes
    assert await store.list_active_tenant_ids() == []


@pytest.mark.asyncio
async def test_backend_failure_surfaces() -> None:
    redis = FakeRedis()
    _legacy(redis, 1, channel_id="10", interval="900", last_run="500")
    store = RedisScheduleStore(redis)  # type: ignore[arg-type]
    real_put = store.put

    async def _flaky_put(record):
        redis.down = True
        await real_put(record)

    store.put = _flaky_put  # type: ignore[method-assign]

    with pytest.raises(StoreError):
        await LegacyKeyMigrator(store).run()


@pytest.mark.asyncio
async def test_skipped_schedules_can_be_migrated_later() -> None:
    redis = FakeRedis()
    _legacy(redis, 1, channel_id="10", interval="900", last_run="500")
    _legacy(redis, 2, album="https://imgur.com/a/x", interval="900", last_run="500")
    store = RedisScheduleStore(redis)  # type: ignore[arg-type]
    await LegacyKeyMigrator(store).run()

    # the owner of 2 picked a channel in the meantime
    redis.hashes["dbb:2"] = {"guild_id": "2", "channel_id": "20", "interval": "900", "last_run": "500"}
    report = await LegacyKeyMigrator(store).run()

    assert report.migrated == [2]
    assert report.skipped == {}
    assert redis.sets["dbb:known_guilds"] == set()
    assert await store.list_active_tenant_ids() == [1, 2]


@pytest.mark.asyncio
async def test_unreachable_backend_raises_store_error() -> None:
    redis = FakeRedis()
    _legacy(redis, 1, channel_id="10", interval="900", last_run="500")
    redis.down = True
    store = RedisScheduleStore(redis)  # type: ignore[arg-type]

    with pytest.raises(StoreError, match="Legacy migration failed"):
        await LegacyKeyMigrator(store).run()
