"""Per-tenant run statistics with Prometheus text export."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from threading import Lock
from typing import Any


@dataclass(slots=True)
class TenantRunMetrics:
    """Execution statistics for one tenant's banner runs."""

    tenant_id: int
    total_runs: int = 0
    success_count: int = 0
    retry_count: int = 0
    abort_count: int = 0
    exhausted_count: int = 0
    last_status: str | None = None
    last_error: str | None = None
    last_start_time: float | None = None
    last_end_time: float | None = None
    last_duration_seconds: float | None = None
    next_run_time: float | None = None


_COUNTERS: tuple[tuple[str, str, str], ...] = (
    ("bannerbot_runs_total", "total_runs", "Fired banner runs that finished."),
    ("bannerbot_run_success_total", "success_count", "Runs that changed the banner."),
    ("bannerbot_run_retries_total", "retry_count", "Attempts retried within a run."),
    ("bannerbot_run_aborts_total", "abort_count", "Runs that removed their schedule."),
    ("bannerbot_run_exhausted_total", "exhausted_count", "Runs that used up their retry budget."),
)

_GAUGES: tuple[tuple[str, str, str], ...] = (
    ("bannerbot_run_last_duration_seconds", "last_duration_seconds", "Duration of the last run in seconds."),
    ("bannerbot_run_last_end_timestamp_seconds", "last_end_time", "End of the last run (epoch seconds)."),
    ("bannerbot_run_next_timestamp_seconds", "next_run_time", "Next scheduled fire (epoch seconds)."),
)


class RunMetricsRegistry:
    """Thread-safe collector shared by the orchestrator and the admin API."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._metrics: dict[int, TenantRunMetrics] = {}

    def _ensure(self, tenant_id: int) -> TenantRunMetrics:
        metrics = self._metrics.get(tenant_id)
        if metrics is None:
            metrics = TenantRunMetrics(tenant_id=tenant_id)
            self._metrics[tenant_id] = metrics
        return metrics

    def record_start(self, tenant_id: int, start_time: float) -> None:
        with self._lock:
            metrics = self._ensure(tenant_id)
            metrics.last_start_time = start_time
            metrics.last_status = "running"
            metrics.last_error = None

    def record_retry(self, tenant_id: int, error: str) -> None:
        with self._lock:
            metrics = self._ensure(tenant_id)
            metrics.retry_count += 1
            metrics.last_error = error

    def record_finish(
        self,
        tenant_id: int,
        status: str,
        end_time: float,
        duration_seconds: float,
        error: str | None = None,
    ) -> None:
        """Close a run with ``status`` one of success, exhausted, aborted, skipped or superseded."""

        with self._lock:
            metrics = self._ensure(tenant_id)
            metrics.total_runs += 1
            if status == "success":
                metrics.success_count += 1
            elif status == "aborted":
                metrics.abort_count += 1
            elif status == "exhausted":
                metrics.exhausted_count += 1
            metrics.last_status = status
            metrics.last_error = error
            metrics.last_end_time = end_time
            metrics.last_duration_seconds = duration_seconds

    def set_next_run(self, tenant_id: int, next_run: float | None) -> None:
        with self._lock:
            self._ensure(tenant_id).next_run_time = next_run

    def forget(self, tenant_id: int) -> None:
        with self._lock:
            self._metrics.pop(tenant_id, None)

    def snapshot(self) -> dict[int, dict[str, Any]]:
        with self._lock:
            return {tenant_id: asdict(metrics) for tenant_id, metrics in self._metrics.items()}

    def export_prometheus(self) -> str:
        with self._lock:
            values = [asdict(metrics) for metrics in self._metrics.values()]

        lines: list[str] = []
        for name, attribute, help_text in _COUNTERS:
            lines.append(f"# HELP {name} {help_text}")
            lines.append(f"# TYPE {name} counter")
            for metrics in values:
                lines.append(f'{name}{{tenant_id="{metrics["tenant_id"]}"}} {metrics[attribute]}')

        for name, attribute, help_text in _GAUGES:
            lines.append(f"# HELP {name} {help_text}")
            lines.append(f"# TYPE {name} gauge")
            for metrics in values:
                if metrics[attribute] is None:
                    continue
                lines.append(f'{name}{{tenant_id="{metrics["tenant_id"]}"}} {metrics[attribute]}')

        return "\n".join(lines) + "\n"


__all__ = ["RunMetricsRegistry", "TenantRunMetrics"]
