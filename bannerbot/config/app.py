"""Application-level configuration model."""

from __future__ import annotations

from pydantic import Field

from bannerbot.config.base import BaseConfig
from bannerbot.config.bot import BotConfig
from bannerbot.config.database import DatabaseConfig
from bannerbot.config.scheduler import SchedulerConfig
from bannerbot.config.web import WebConfig


class AppConfig(BaseConfig):
    """Top-level runtime configuration for the bot."""

    logging_level: str = Field("INFO", description="Log level: DEBUG, INFO, WARNING, ERROR")
    bot: BotConfig = Field(default_factory=BotConfig, description="Discord client settings")
    database: DatabaseConfig = Field(default_factory=DatabaseConfig, description="Schedule store settings")
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig, description="Banner run settings")
    web: WebConfig | None = Field(None, description="Admin API settings")


__all__ = ["AppConfig"]
