"""FastAPI application factory for the admin API."""

from __future__ import annotations

import secrets
from typing import Any, Callable

from fastapi import Depends, FastAPI, Header, HTTPException, status
from fastapi.responses import PlainTextResponse
from loguru import logger
from pydantic import BaseModel, Field

from bannerbot import __version__
from bannerbot.config.app import AppConfig
from bannerbot.config.web import WebAuthConfig
from bannerbot.errors import StoreError
from bannerbot.models import Schedule
from bannerbot.scheduler.repeater import ScheduledEntry
from bannerbot.scheduler.service import BannerService


class ScheduleRequest(BaseModel):
    """Admin request to start or replace a server's banner rotation."""

    tenant_id: int = Field(..., gt=0, description="Server id")
    source_id: int = Field(..., gt=0, description="Channel to take images from")
    interval_minutes: int | None = Field(None, description="Minutes between banner changes")
    start_at: int | None = Field(None, description="Epoch second of the first change; defaults to now")
    lookback_limit: int = Field(0, ge=0, description="Messages to scan; 0 uses the configured maximum")


def create_app(service: BannerService, config: AppConfig | None = None) -> FastAPI:
    """Create the admin API bound to ``service``."""
    config = config or service.config
    web_config = config.web
    auth_config = web_config.auth if web_config and web_config.auth else None
    auth_dependency = _build_auth_dependency(auth_config)
    limits = config.scheduler

    app = FastAPI(
        title="bannerbot admin API",
        description="Inspect and manage scheduled banner rotations.",
        version=__version__,
    )

    def _require_running() -> None:
        if not service.started:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Scheduler is not running yet.",
            )

    @app.get("/health", summary="Health Check", tags=["Monitoring"])
    async def health_check() -> dict[str, str]:
        return {"status": "ok" if service.started else "starting"}

    @app.get("/schedules", summary="List Active Schedules", tags=["Schedules"])
    async def list_schedules(_: None = Depends(auth_dependency)) -> list[dict[str, Any]]:
        _require_running()
        return [_serialize_entry(entry) for entry in await service.list_schedules()]

    @app.get("/schedules/{tenant_id}", summary="Show One Schedule", tags=["Schedules"])
    async def get_schedule(tenant_id: int, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        _require_running()
        entry = await service.get_schedule(tenant_id)
        if entry is None:
            raise HTTPException(status_code=404, detail=f"No schedule for '{tenant_id}'.")
        return _serialize_entry(entry)

    @app.post(
        "/schedules",
        summary="Start or Replace a Schedule",
        tags=["Schedules"],
        status_code=status.HTTP_201_CREATED,
    )
    async def create_schedule(request: ScheduleRequest, _: None = Depends(auth_dependency)) -> dict[str, Any]:
        """Validate the bounds, persist the schedule and arm it."""
        _require_running()
        interval_minutes = request.interval_minutes or limits.default_interval_minutes
        if not limits.min_interval_minutes <= interval_minutes <= limits.max_interval_minutes:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=(
                    f"Interval must be between {limits.min_interval_minutes} and "
                    f"{limits.max_interval_minutes} minutes."
                ),
            )
        if request.lookback_limit > limits.max_lookback:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=f"Lookback limit must be at most {limits.max_lookback} messages.",
            )

        schedule = Schedule(
            tenant_id=request.tenant_id,
            source_id=request.source_id,
            interval_seconds=interval_minutes * 60,
            start_at=request.start_at if request.start_at is not None else service.clock.now(),
            lookback_limit=request.lookback_limit,
        )
        logger.info("Admin request to schedule {}", request.tenant_id)
        try:
            await service.enqueue(schedule)
        except StoreError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        return {"status": "scheduled", "schedule": _serialize_schedule(schedule)}

    @app.delete("/schedules/{tenant_id}", summary="Stop a Schedule", tags=["Schedules"])
    async def delete_schedule(tenant_id: int, _: None = Depends(auth_dependency)) -> dict[str, str]:
        _require_running()
        logger.info("Admin request to stop {}", tenant_id)
        try:
            existed = await service.dequeue(tenant_id)
        except StoreError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        if not existed:
            raise HTTPException(status_code=404, detail=f"No schedule for '{tenant_id}'.")
        return {"status": "removed"}

    @app.post("/schedules/reload", summary="Reload Schedules From Storage", tags=["Schedules"])
    async def reload_schedules(_: None = Depends(auth_dependency)) -> dict[str, Any]:
        _require_running()
        try:
            report = await service.reload()
        except StoreError as exc:
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
        return {"loaded": report.loaded, "failed": {str(k): v for k, v in report.failed.items()}}

    @app.get("/metrics", summary="Prometheus Metrics", tags=["Monitoring"], response_class=PlainTextResponse)
    async def metrics(_: None = Depends(auth_dependency)) -> PlainTextResponse:
        return PlainTextResponse(service.export_metrics(), media_type="text/plain; version=0.0.4")

    return app


def _serialize_schedule(schedule: Schedule) -> dict[str, Any]:
    return {
        "tenant_id": schedule.tenant_id,
        "source_id": schedule.source_id,
        "interval_seconds": schedule.interval_seconds,
        "start_at": schedule.start_at,
        "last_run": schedule.last_run,
        "lookback_limit": schedule.lookback_limit,
    }


def _serialize_entry(entry: ScheduledEntry) -> dict[str, Any]:
    payload = _serialize_schedule(entry.schedule)
    payload["next_fire_at"] = entry.next_fire_at
    payload["running"] = entry.running
    return payload


def _build_auth_dependency(auth_config: WebAuthConfig | None) -> Callable[..., Any]:
    """Return a dependency that validates the configured auth token."""

    if not auth_config or not auth_config.enabled:
        async def _no_auth() -> None:
            return None

        return _no_auth

    expected_token = auth_config.token or ""

    async def _verify_token(
        provided_token: str | None = Header(default=None, alias=auth_config.header_name),
    ) -> None:
        if provided_token is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing authentication token.",
            )
        if not secrets.compare_digest(provided_token, expected_token):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid authentication token.",
            )

    return _verify_token


__all__ = ["ScheduleRequest", "create_app"]
