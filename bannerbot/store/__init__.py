"""Persistent schedule storage."""

from __future__ import annotations

from bannerbot.config.database import DatabaseConfig
from bannerbot.config.utils import resolve_env_reference

from .base import ScheduleStore
from .memory import InMemoryScheduleStore
from .redis_store import RedisScheduleStore


def create_store(config: DatabaseConfig) -> ScheduleStore:
    """Instantiate the configured store backend."""

    if config.backend == "memory":
        return InMemoryScheduleStore()
    url = resolve_env_reference(config.url)
    if not url:
        raise ValueError("The redis backend needs a connection url")
    return RedisScheduleStore.from_url(url, prefix=config.prefix)


__all__ = [
    "ScheduleStore",
    "InMemoryScheduleStore",
    "RedisScheduleStore",
    "create_store",
]
