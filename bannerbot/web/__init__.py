"""Admin HTTP API."""

from .app import ScheduleRequest, create_app

__all__ = ["ScheduleRequest", "create_app"]
