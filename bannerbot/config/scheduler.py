"""Scheduler and run pipeline configuration."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, model_validator

from bannerbot.config.base import BaseConfig


class SchedulerConfig(BaseConfig):
    """Interval bounds, retry budget and download limits for banner runs."""

    min_interval_minutes: int = Field(15, ge=1, description="Shortest allowed interval between banner changes")
    default_interval_minutes: int = Field(30, ge=1, description="Interval used when a request omits one")
    max_interval_minutes: int = Field(2880, ge=1, description="Longest allowed interval between banner changes")
    max_retries: int = Field(3, ge=0, description="Retries allowed per fired run")
    retry_delay_seconds: float = Field(3.0, ge=0, description="Pause between two attempts of the same run")
    attempt_timeout_seconds: float = Field(60.0, gt=0, description="Hard time limit for one attempt")
    max_image_bytes: int = Field(10 * 1024 * 1024, gt=0, description="Largest image that will be downloaded")
    max_lookback: int = Field(100, ge=1, description="Most messages scanned when looking for media")
    download_chunk_size: int = Field(64 * 1024, gt=0, description="Chunk size used while streaming downloads")
    notify_after_exhausted_runs: int = Field(
        3, ge=1, description="Consecutive runs without a banner change before the server owner is told",
    )
    log_dir: Path = Field(Path("logs"), description="Directory for the rotating run log")

    @model_validator(mode="after")
    def _check_interval_bounds(self) -> "SchedulerConfig":
        if not self.min_interval_minutes <= self.default_interval_minutes <= self.max_interval_minutes:
            msg = "Intervals must satisfy min_interval_minutes <= default_interval_minutes <= max_interval_minutes."
            raise ValueError(msg)
        return self

    @property
    def min_interval_seconds(self) -> int:
        return self.min_interval_minutes * 60

    @property
    def default_interval_seconds(self) -> int:
        return self.default_interval_minutes * 60

    @property
    def max_interval_seconds(self) -> int:
        return self.max_interval_minutes * 60


__all__ = ["SchedulerConfig"]
