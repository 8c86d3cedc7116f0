"""Runs one fired schedule through discovery, selection and commit.

Each fired timer gets a fresh :class:`AttemptState`. Failures are mapped to a
:class:`ScheduleAction` through the failure table:

* ``CONTINUE``         persist (on success) and re-arm for ``now + interval``
* ``RETRY_SAME_IMAGE`` pin the candidate and try it again
* ``RETRY_NEW_IMAGE``  avoid the candidate and pick another one
* ``ABORT``            drop the schedule everywhere and tell the owner

A run whose retry budget is used up keeps its schedule: nothing about
``last_run`` changes and the timer is armed on the usual cadence.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, replace
from time import perf_counter
from typing import Awaitable, Callable
from uuid import uuid4

from loguru import logger

from bannerbot.banner.committer import BannerCommitter
from bannerbot.clock import Clock, SystemClock
from bannerbot.discovery.media import MediaDiscovery
from bannerbot.errors import (
    AttemptTimeout,
    CriticalError,
    FailureKind,
    NoCandidateAvailable,
    RunFailure,
    ScheduleAction,
    StoreError,
)
from bannerbot.models import AttemptState, Candidate, CommitResult, RunReport, Schedule
from bannerbot.platform.base import Notifier
from bannerbot.scheduler.metrics import RunMetricsRegistry
from bannerbot.scheduler.repeater import RepeaterHandle
from bannerbot.scheduler.timing import next_fire_after_run
from bannerbot.store.base import ScheduleStore

Sleep = Callable[[float], Awaitable[None]]

ABORT_REASONS: dict[FailureKind, str] = {
    FailureKind.MISSING_FEATURE: (
        "Your server no longer has the banner feature (it needs boost level 2). "
        "The banner schedule has been stopped."
    ),
    FailureKind.REMOTE_PERMISSION: (
        "I am missing permissions to read the image channel or to manage the server. "
        "The banner schedule has been stopped."
    ),
    FailureKind.REMOTE_NOT_FOUND: (
        "The image channel could not be found anymore. The banner schedule has been stopped."
    ),
}


@dataclass(slots=True)
class _AttemptScope:
    candidate: Candidate | None = None


class TenantLocks:
    """One :class:`asyncio.Lock` per tenant.

    Held around every "is this schedule still live" check together with the
    store write that depends on it, so run results and enqueue/dequeue
    commands for the same tenant never interleave.
    """

    def __init__(self) -> None:
        self._locks: dict[int, asyncio.Lock] = {}

    def __call__(self, tenant_id: int) -> asyncio.Lock:
        return self._locks.setdefault(tenant_id, asyncio.Lock())


class BannerRunOrchestrator:
    """Executes fired schedules; one instance serves every tenant."""

    def __init__(
        self,
        store: ScheduleStore,
        discovery: MediaDiscovery,
        committer: BannerCommitter,
        notifier: Notifier,
        *,
        max_retries: int = 3,
        retry_delay_seconds: float = 3.0,
        attempt_timeout_seconds: float = 60.0,
        max_lookback: int = 100,
        notify_after_exhausted_runs: int = 3,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        sleep: Sleep = asyncio.sleep,
        metrics: RunMetricsRegistry | None = None,
    ) -> None:
        self.store = store
        self.discovery = discovery
        self.committer = committer
        self.notifier = notifier
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.attempt_timeout_seconds = attempt_timeout_seconds
        self.max_lookback = max_lookback
        self.notify_after_exhausted_runs = notify_after_exhausted_runs
        self.clock = clock or SystemClock()
        self.rng = rng or random.Random()
        self.sleep = sleep
        self.metrics = metrics or RunMetricsRegistry()
        self.locks = TenantLocks()
        self._handle: RepeaterHandle | None = None
        self._exhausted_streaks: dict[int, int] = {}

    def bind(self, handle: RepeaterHandle) -> None:
        self._handle = handle

    @property
    def handle(self) -> RepeaterHandle:
        if self._handle is None:
            raise RuntimeError("Orchestrator is not bound to a running repeater")
        return self._handle

    async def __call__(self, schedule: Schedule) -> Schedule | None:
        report = await self.execute(schedule)
        return report.next_schedule

    async def execute(self, schedule: Schedule) -> RunReport:
        """Process one fired timer and report what happened."""

        tenant_id = schedule.tenant_id
        report = RunReport(tenant_id=tenant_id, run_id=uuid4().hex)
        bound_logger = logger.bind(tenant_id=tenant_id, run_id=report.run_id)
        state = AttemptState(retries_remaining=self.max_retries)

        started_at = self.clock.now()
        timer_start = perf_counter()
        self.metrics.record_start(tenant_id, started_at)
        bound_logger.info("Banner run started for source {}", schedule.source_id)

        while True:
            scope = _AttemptScope()
            try:
                report.committed = await asyncio.wait_for(
                    self._attempt(schedule, state, scope), timeout=self.attempt_timeout_seconds
                )
            except asyncio.TimeoutError:
                failure: RunFailure = AttemptTimeout(
                    f"Attempt exceeded {self.attempt_timeout_seconds}s", candidate=scope.candidate
                )
            except RunFailure as exc:
                failure = exc
            else:
                report.final_action = ScheduleAction.CONTINUE
                report.actions.append(ScheduleAction.CONTINUE)
                break

            action = failure.action
            report.actions.append(action)
            report.last_failure = failure
            bound_logger.warning(
                "Attempt failed ({}): {} -> {}", failure.kind.value, failure, action.value
            )

            if action is ScheduleAction.CONTINUE or action is ScheduleAction.ABORT:
                report.final_action = action
                break
            if state.retries_remaining == 0:
                report.final_action = ScheduleAction.CONTINUE
                report.exhausted = True
                break

            state.retries_remaining -= 1
            if action is ScheduleAction.RETRY_SAME_IMAGE:
                state.pinned_candidate = failure.candidate
            else:
                if failure.candidate is not None:
                    state.avoid_list.add(failure.candidate.media_url)
                state.pinned_candidate = None
            self.metrics.record_retry(tenant_id, str(failure))
            await self.sleep(self.retry_delay_seconds)

        report.retries_remaining = state.retries_remaining
        report.avoid_list = set(state.avoid_list)

        if report.final_action is ScheduleAction.ABORT:
            status = "aborted" if await self._abort(schedule, report) else "superseded"
        else:
            report.next_schedule = await self._conclude(schedule, report)
            status = "success" if report.succeeded else ("exhausted" if report.exhausted else "skipped")

        self.metrics.record_finish(
            tenant_id,
            status,
            end_time=self.clock.now(),
            duration_seconds=perf_counter() - timer_start,
            error=str(report.last_failure) if report.last_failure and not report.succeeded else None,
        )
        if report.next_schedule is not None:
            self.metrics.set_next_run(tenant_id, report.next_schedule.start_at)
        bound_logger.info(
            "Banner run finished: {} after {} attempts", status, len(report.actions)
        )
        return report

    async def _attempt(self, schedule: Schedule, state: AttemptState, scope: _AttemptScope) -> CommitResult:
        candidate = state.pinned_candidate
        if candidate is None:
            limit = min(schedule.lookback_limit or self.max_lookback, self.max_lookback)
            candidates = [
                found
                async for found in self.discovery.discover(schedule.source_id, limit)
                if found.media_url not in state.avoid_list
            ]
            if not candidates:
                raise NoCandidateAvailable(
                    f"No usable media in the last {limit} messages of {schedule.source_id}"
                )
            candidate = self.rng.choice(candidates)
        scope.candidate = candidate
        return await self.committer.commit(schedule.tenant_id, candidate)

    async def _conclude(self, schedule: Schedule, report: RunReport) -> Schedule | None:
        """Persist and pick the next fire for runs that keep their schedule."""

        tenant_id = schedule.tenant_id
        async with self.locks(tenant_id):
            if not await self.handle.contains(tenant_id, schedule):
                logger.info("Schedule for {} changed during the run; leaving it alone", tenant_id)
                return None

            now = self.clock.now()
            if report.succeeded:
                self._exhausted_streaks.pop(tenant_id, None)
                updated = schedule.with_last_run(now)
            else:
                updated = schedule
            next_schedule = replace(updated, start_at=next_fire_after_run(updated, now))

            try:
                await self.store.put(next_schedule.to_record(now))
            except StoreError as exc:
                logger.error("Could not persist schedule for {}: {}", tenant_id, exc)

        if report.exhausted:
            await self._count_exhausted(tenant_id, report)
        return next_schedule

    async def _count_exhausted(self, tenant_id: int, report: RunReport) -> None:
        streak = self._exhausted_streaks.get(tenant_id, 0) + 1
        self._exhausted_streaks[tenant_id] = streak
        if streak != self.notify_after_exhausted_runs:
            return
        message = (
            f"The banner could not be changed during the last {streak} scheduled runs. "
            f"Last error: {report.last_failure}"
        )
        try:
            await self.notifier.notify_owner(tenant_id, message)
        except Exception as exc:
            await self._report_critical(CriticalError(f"Failed to notify owner of {tenant_id}: {exc}"))

    async def _abort(self, schedule: Schedule, report: RunReport) -> bool:
        """Drop the fired schedule; returns ``False`` when it was already replaced or removed."""

        tenant_id = schedule.tenant_id
        async with self.locks(tenant_id):
            if not await self.handle.contains(tenant_id, schedule):
                logger.info(
                    "Schedule for {} changed during the run; not aborting it ({})",
                    tenant_id,
                    report.last_failure,
                )
                return False
            await self.handle.remove(tenant_id)
            self._exhausted_streaks.pop(tenant_id, None)

            try:
                await self.store.delete(tenant_id)
            except StoreError as exc:
                await self._report_critical(
                    CriticalError(f"Aborted schedule for {tenant_id} could not be deleted: {exc}")
                )

        failure = report.last_failure
        reason = ABORT_REASONS.get(failure.kind, str(failure)) if failure else "The banner schedule was stopped."
        try:
            await self.notifier.notify_owner(tenant_id, reason)
        except Exception as exc:
            await self._report_critical(CriticalError(f"Failed to notify owner of {tenant_id}: {exc}"))
        logger.warning("Schedule for {} aborted: {}", tenant_id, failure)
        return True

    async def _report_critical(self, error: CriticalError) -> None:
        logger.critical("{}", error)
        try:
            await self.notifier.alert_operators(str(error))
        except Exception:
            logger.exception("Failed to alert operators")


__all__ = ["ABORT_REASONS", "BannerRunOrchestrator", "TenantLocks"]
