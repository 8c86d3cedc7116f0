"""Configuration namespace for bannerbot."""

from __future__ import annotations

from .app import AppConfig
from .base import BaseConfig, load_config
from .bot import BotConfig
from .database import DatabaseConfig
from .scheduler import SchedulerConfig
from .utils import resolve_env_reference
from .web import WebAuthConfig, WebConfig

__all__ = [
    "BaseConfig",
    "AppConfig",
    "load_config",
    "BotConfig",
    "DatabaseConfig",
    "SchedulerConfig",
    "WebAuthConfig",
    "WebConfig",
    "resolve_env_reference",
]
