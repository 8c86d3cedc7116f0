"""Scheduling of banner runs."""

from .metrics import RunMetricsRegistry, TenantRunMetrics
from .orchestrator import BannerRunOrchestrator
from .repeater import Repeater, RepeaterHandle, ScheduledEntry
from .service import BannerService, ReloadReport
from .timing import initial_delay, next_fire_after_run

__all__ = [
    "BannerRunOrchestrator",
    "BannerService",
    "ReloadReport",
    "Repeater",
    "RepeaterHandle",
    "RunMetricsRegistry",
    "ScheduledEntry",
    "TenantRunMetrics",
    "initial_delay",
    "next_fire_after_run",
]
