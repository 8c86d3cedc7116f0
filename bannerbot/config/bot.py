"""Discord connection settings."""

from __future__ import annotations

from pydantic import Field

from bannerbot.config.base import BaseConfig
from bannerbot.config.utils import resolve_env_reference


class BotConfig(BaseConfig):
    """Credentials and behaviour switches for the Discord client."""

    token: str = Field(
        "env:DISCORD_TOKEN",
        description="Bot token, or an 'env:VAR' reference to read it from the environment",
        min_length=1,
    )
    operator_ids: list[int] = Field(
        default_factory=list,
        description="Discord user ids that receive critical error reports",
    )
    dev_mode: bool = Field(
        False,
        description="Set the server icon instead of the banner and skip the banner feature check",
    )

    def resolved_token(self) -> str:
        token = resolve_env_reference(self.token)
        if not token:
            raise ValueError("Bot token is empty")
        return token


__all__ = ["BotConfig"]
