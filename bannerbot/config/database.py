"""Schedule store configuration."""

from __future__ import annotations

from typing import Literal

from pydantic import Field

from bannerbot.config.base import BaseConfig


class DatabaseConfig(BaseConfig):
    """Where active schedules are persisted."""

    backend: Literal["redis", "memory"] = Field(
        "redis", description="Storage backend: 'redis' for production, 'memory' for local runs",
    )
    url: str = Field(
        "redis://localhost:6379/0",
        description="Redis connection URL (supports 'env:VAR' references)",
        min_length=1,
    )
    prefix: str = Field("dbb", description="Key prefix for every stored key", min_length=1)


__all__ = ["DatabaseConfig"]
