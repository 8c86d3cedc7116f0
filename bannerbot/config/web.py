"""Admin API configuration models."""

from __future__ import annotations

from pydantic import Field, field_validator, model_validator

from bannerbot.config.base import BaseConfig


class WebAuthConfig(BaseConfig):
    """Settings for protecting the admin API."""

    enabled: bool = Field(False, description="Whether header token authentication is enforced.")
    header_name: str = Field(
        "X-Admin-Token",
        description="Header to read the authentication token from.",
        min_length=1,
    )
    token: str | None = Field(
        default=None, description="Shared secret token required when enabled.",
        min_length=1,
    )

    @field_validator("token")
    @classmethod
    def _strip_token(cls, token: str | None) -> str | None:
        if token is None:
            return None
        stripped = token.strip()
        return stripped if stripped else None

    @model_validator(mode="after")
    def _ensure_token_when_enabled(self) -> "WebAuthConfig":
        if self.enabled and not self.token:
            msg = "Authentication token must be provided when web auth is enabled."
            raise ValueError(msg)
        return self


class WebConfig(BaseConfig):
    """Where the admin API listens."""

    enabled: bool = Field(True, description="Whether to serve the admin API alongside the bot.")
    host: str = Field("127.0.0.1", description="Host to bind the API server to.", min_length=1)
    port: int = Field(8000, ge=1, le=65535, description="Port to bind the API server to.")
    auth: WebAuthConfig | None = Field(
        default=None,
        description="Authentication settings for the admin API.",
    )


__all__ = ["WebAuthConfig", "WebConfig"]
