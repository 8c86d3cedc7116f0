from __future__ import annotations

import pytest

from bannerbot.config import DatabaseConfig
from bannerbot.store import InMemoryScheduleStore, RedisScheduleStore, create_store
from tests.fakes import make_schedule


@pytest.mark.asyncio
async def test_put_get_delete() -> None:
    store = InMemoryScheduleStore()
    record = make_schedule(7).to_record(now=100)

    await store.put(record)
    assert await store.get(7) == record
    assert await store.is_active(7)
    assert await store.list_active_tenant_ids() == [7]

    await store.delete(7)
    assert await store.get(7) is None
    assert not await store.is_active(7)
    assert await store.list_active_tenant_ids() == []


@pytest.mark.asyncio
async def test_put_replaces_existing_record() -> None:
    store = InMemoryScheduleStore()
    await store.put(make_schedule(7).to_record(now=100))
    await store.put(make_schedule(7, interval_seconds=3600).to_record(now=200))

    record = await store.get(7)
    assert record is not None
    assert record.interval_seconds == 3600
    assert await store.list_active_tenant_ids() == [7]


@pytest.mark.asyncio
async def test_delete_unknown_tenant_is_noop() -> None:
    store = InMemoryScheduleStore()
    await store.delete(99)
    assert await store.list_active_tenant_ids() == []


def test_create_store_selects_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    assert isinstance(create_store(DatabaseConfig(backend="memory")), InMemoryScheduleStore)

    monkeypatch.setenv("BANNERBOT_REDIS_URL", "redis://cache.internal:6380/2")
    store = create_store(DatabaseConfig(backend="redis", url="env:BANNERBOT_REDIS_URL", prefix="test"))
    assert isinstance(store, RedisScheduleStore)
    assert store.active_set_key == "test:active_schedules"


def test_create_store_rejects_empty_redis_url() -> None:
    config = DatabaseConfig.model_construct(backend="redis", url="", prefix="dbb")

    with pytest.raises(ValueError, match="connection url"):
        create_store(config)
