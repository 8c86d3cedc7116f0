"""Redis-backed schedule store.

Layout::

    {prefix}:active_schedule:{tenant_id}   hash with the record fields
    {prefix}:active_schedules              set of active tenant ids
"""

from __future__ import annotations

from typing import Any

from loguru import logger
from redis import RedisError
from redis.asyncio import Redis

from bannerbot.errors import StoreError
from bannerbot.models import PersistedScheduleRecord
from bannerbot.store.base import ScheduleStore


class RedisScheduleStore(ScheduleStore):
    def __init__(self, client: Redis, *, prefix: str = "dbb") -> None:
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, *, prefix: str = "dbb") -> "RedisScheduleStore":
        client = Redis.from_url(url, decode_responses=True)
        return cls(client, prefix=prefix)

    def key(self, *parts: Any) -> str:
        return ":".join([self.prefix, *(str(part) for part in parts)])

    @property
    def active_set_key(self) -> str:
        return self.key("active_schedules")

    def record_key(self, tenant_id: int) -> str:
        return self.key("active_schedule", tenant_id)

    async def put(self, record: PersistedScheduleRecord) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.hset(self.record_key(record.tenant_id), mapping=record.to_mapping())
                pipe.sadd(self.active_set_key, str(record.tenant_id))
                await pipe.execute()
        except RedisError as exc:
            raise StoreError(f"Failed to store schedule for {record.tenant_id}: {exc}") from exc
        logger.debug("Stored schedule for tenant {}", record.tenant_id)

    async def get(self, tenant_id: int) -> PersistedScheduleRecord | None:
        try:
            if not await self.client.sismember(self.active_set_key, str(tenant_id)):
                return None
            raw = await self.client.hgetall(self.record_key(tenant_id))
        except RedisError as exc:
            raise StoreError(f"Failed to read schedule for {tenant_id}: {exc}") from exc
        if not raw:
            raise StoreError(f"Tenant {tenant_id} is active but has no stored schedule")
        return PersistedScheduleRecord.from_mapping(_decode(raw))

    async def delete(self, tenant_id: int) -> None:
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.delete(self.record_key(tenant_id))
                pipe.srem(self.active_set_key, str(tenant_id))
                await pipe.execute()
        except RedisError as exc:
            raise StoreError(f"Failed to delete schedule for {tenant_id}: {exc}") from exc
        logger.debug("Deleted schedule for tenant {}", tenant_id)

    async def list_active_tenant_ids(self) -> list[int]:
        try:
            members = await self.client.smembers(self.active_set_key)
        except RedisError as exc:
            raise StoreError(f"Failed to list active schedules: {exc}") from exc
        return sorted(int(_as_str(member)) for member in members)

    async def is_active(self, tenant_id: int) -> bool:
        try:
            return bool(await self.client.sismember(self.active_set_key, str(tenant_id)))
        except RedisError as exc:
            raise StoreError(f"Failed to check schedule for {tenant_id}: {exc}") from exc

    async def close(self) -> None:
        await self.client.aclose()


def _as_str(value: str | bytes) -> str:
    return value.decode() if isinstance(value, bytes) else value


def _decode(raw: dict[Any, Any]) -> dict[str, str]:
    return {_as_str(key): _as_str(value) for key, value in raw.items()}


__all__ = ["RedisScheduleStore"]
