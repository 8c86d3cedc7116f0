from __future__ import annotations

from typing import Any

import httpx
import pytest

from bannerbot.config import AppConfig
from bannerbot.runtime import USER_AGENT, BotRuntime, ServiceEvents, build_http_client
from bannerbot.store import InMemoryScheduleStore, RedisScheduleStore
from tests.fakes import FakeRedis, make_schedule

FAR_FUTURE = 4_000_000_000


class FakeGatewayClient:
    def __init__(self, order: list[str]) -> None:
        self.events: Any = None
        self._order = order

    async def close(self) -> None:
        self._order.append("client")


class FakeAlerts:
    def __init__(self) -> None:
        self.alerts: list[str] = []

    async def alert_operators(self, message: str) -> None:
        self.alerts.append(message)


class OrderedStore(InMemoryScheduleStore):
    def __init__(self, order: list[str]) -> None:
        super().__init__()
        self._order = order

    async def close(self) -> None:
        self._order.append("store")


class OrderedHttp(httpx.AsyncClient):
    def __init__(self, order: list[str]) -> None:
        super().__init__()
        self._order = order

    async def aclose(self) -> None:
        self._order.append("http")
        await super().aclose()


def _runtime(app_config: AppConfig, order: list[str] | None = None, store: Any = None) -> BotRuntime:
    order = order if order is not None else []
    return BotRuntime(
        app_config,
        client=FakeGatewayClient(order),  # type: ignore[arg-type]
        store=store or OrderedStore(order),
        http=OrderedHttp(order),
    )


def test_http_client_identifies_itself() -> None:
    client = build_http_client()
    assert client.headers["User-Agent"] == USER_AGENT


@pytest.mark.asyncio
async def test_runtime_wires_events_and_shuts_down_in_order(app_config: AppConfig) -> None:
    order: list[str] = []
    runtime = _runtime(app_config, order)

    assert isinstance(runtime.client.events, ServiceEvents)
    await runtime.client.events.on_first_ready()
    assert runtime.service.started

    await runtime.shutdown()
    await runtime.shutdown()

    assert order == ["client", "http", "store"]
    assert not runtime.service.handle.running


@pytest.mark.asyncio
async def test_first_ready_reports_unloadable_schedules(app_config: AppConfig) -> None:
    redis = FakeRedis()
    redis.sets["dbb:active_schedules"] = {"5"}
    runtime = _runtime(app_config, store=RedisScheduleStore(redis))  # type: ignore[arg-type]
    alerts = FakeAlerts()
    events = ServiceEvents(runtime.service, alerts)  # type: ignore[arg-type]

    await events.on_first_ready()

    assert len(alerts.alerts) == 1
    assert "Failed to load schedules" in alerts.alerts[0]
    assert "5:" in alerts.alerts[0]
    await runtime.shutdown()


@pytest.mark.asyncio
async def test_events_before_start_are_ignored(app_config: AppConfig) -> None:
    runtime = _runtime(app_config)
    events = ServiceEvents(runtime.service, FakeAlerts())  # type: ignore[arg-type]

    await events.on_reconnected()
    await events.on_tenant_removed(1)
    await events.on_channel_deleted(1, 10)

    assert not runtime.service.started
    await runtime.shutdown()


@pytest.mark.asyncio
async def test_channel_delete_stops_matching_schedule(app_config: AppConfig) -> None:
    runtime = _runtime(app_config)
    events = ServiceEvents(runtime.service, FakeAlerts())  # type: ignore[arg-type]
    await events.on_first_ready()
    await runtime.service.enqueue(make_schedule(1, source_id=10, start_at=FAR_FUTURE))
    await runtime.service.enqueue(make_schedule(2, source_id=20, start_at=FAR_FUTURE))

    await events.on_channel_deleted(1, 99)
    await events.on_channel_deleted(2, 20)

    tenants = [entry.schedule.tenant_id for entry in await runtime.service.list_schedules()]
    assert tenants == [1]
    assert not await runtime.store.is_active(2)
    await runtime.shutdown()


@pytest.mark.asyncio
async def test_tenant_removal_and_reconnect(app_config: AppConfig) -> None:
    runtime = _runtime(app_config)
    events = ServiceEvents(runtime.service, FakeAlerts())  # type: ignore[arg-type]
    await events.on_first_ready()
    await runtime.service.enqueue(make_schedule(1, start_at=FAR_FUTURE))
    await runtime.service.enqueue(make_schedule(2, start_at=FAR_FUTURE))

    await events.on_tenant_removed(1)
    await events.on_reconnected()

    tenants = [entry.schedule.tenant_id for entry in await runtime.service.list_schedules()]
    assert tenants == [2]
    await runtime.shutdown()
