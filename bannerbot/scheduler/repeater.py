"""Per-tenant one-shot timers owned by a single control loop.

The :class:`Repeater` keeps at most one armed timer per tenant. All mutations
travel as messages through an :class:`asyncio.Queue` and are applied by one
task, so no other coroutine ever touches the timer table. Timers are
APScheduler ``date`` jobs on the running event loop; when one fires it posts a
message back into the queue and the loop starts the run callback as its own
task. The callback returns the schedule to arm next, or ``None``.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from bannerbot.clock import Clock, SystemClock
from bannerbot.models import Schedule
from bannerbot.scheduler.timing import initial_delay

RunCallback = Callable[[Schedule], Awaitable["Schedule | None"]]


@dataclass(slots=True, frozen=True)
class ScheduledEntry:
    """Read-only view of one armed tenant."""

    schedule: Schedule
    next_fire_at: int
    running: bool


@dataclass(slots=True)
class _Entry:
    schedule: Schedule
    generation: int
    next_fire_at: int
    fire_pending: bool = False


@dataclass(slots=True)
class _Insert:
    schedule: Schedule


@dataclass(slots=True)
class _Remove:
    tenant_id: int


@dataclass(slots=True)
class _Clear:
    pass


@dataclass(slots=True)
class _Fired:
    tenant_id: int
    generation: int


@dataclass(slots=True)
class _RunFinished:
    tenant_id: int
    generation: int
    next_schedule: Schedule | None


@dataclass(slots=True)
class _Contains:
    tenant_id: int
    schedule: Schedule | None
    reply: asyncio.Future[bool]


@dataclass(slots=True)
class _Snapshot:
    reply: asyncio.Future[list[ScheduledEntry]]


@dataclass(slots=True)
class _Stop:
    reply: asyncio.Future[None]


_Message = _Insert | _Remove | _Clear | _Fired | _RunFinished | _Contains | _Snapshot | _Stop


class RepeaterHandle:
    """Shareable front-end to a running :class:`Repeater`."""

    def __init__(self, queue: asyncio.Queue[_Message], done: asyncio.Task[None]) -> None:
        self._queue = queue
        self._done = done

    @property
    def running(self) -> bool:
        return not self._done.done()

    async def insert(self, schedule: Schedule) -> None:
        """Arm ``schedule``, replacing any timer the tenant already has."""

        self._queue.put_nowait(_Insert(schedule))

    async def remove(self, tenant_id: int) -> None:
        self._queue.put_nowait(_Remove(tenant_id))

    async def clear(self) -> None:
        self._queue.put_nowait(_Clear())

    async def contains(self, tenant_id: int, schedule: Schedule | None = None) -> bool:
        """Whether the tenant is armed, and with ``schedule`` when one is given."""

        reply: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Contains(tenant_id, schedule, reply))
        return await reply

    async def snapshot(self) -> list[ScheduledEntry]:
        reply: asyncio.Future[list[ScheduledEntry]] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Snapshot(reply))
        return await reply

    async def stop(self) -> None:
        """Stop firing, wait for in-flight runs and end the control loop."""

        if self._done.done():
            return
        reply: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_Stop(reply))
        await reply
        await self._done


class Repeater:
    """Owns the timer table; inert until :meth:`start` is called once."""

    def __init__(self, callback: RunCallback, *, clock: Clock | None = None) -> None:
        self.callback = callback
        self.clock = clock or SystemClock()
        self._entries: dict[int, _Entry] = {}
        self._in_flight: dict[int, asyncio.Task[None]] = {}
        self._generation = 0
        self._queue: asyncio.Queue[_Message] | None = None
        self._scheduler: AsyncIOScheduler | None = None
        self._handle: RepeaterHandle | None = None
        self._stop_replies: list[asyncio.Future[None]] = []

    def start(self) -> RepeaterHandle:
        if self._handle is not None:
            raise RuntimeError("Repeater has already been started")

        self._queue = asyncio.Queue()
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.start()
        task = asyncio.create_task(self._control_loop(), name="repeater-control-loop")
        self._handle = RepeaterHandle(self._queue, task)
        logger.info("Repeater started")
        return self._handle

    @property
    def stopping(self) -> bool:
        return bool(self._stop_replies)

    async def _control_loop(self) -> None:
        assert self._queue is not None
        while True:
            message = await self._queue.get()
            try:
                self._dispatch(message)
            except Exception as exc:
                logger.exception("Repeater failed to handle {}", type(message).__name__)
                if isinstance(message, (_Contains, _Snapshot)) and not message.reply.done():
                    message.reply.set_exception(exc)
            if self.stopping and not self._in_flight:
                break

        self._drain()
        for reply in self._stop_replies:
            if not reply.done():
                reply.set_result(None)
        logger.info("Repeater stopped")

    def _drain(self) -> None:
        assert self._queue is not None
        while not self._queue.empty():
            message = self._queue.get_nowait()
            if isinstance(message, _Contains):
                message.reply.set_result(False)
            elif isinstance(message, _Snapshot):
                message.reply.set_result([])
            elif isinstance(message, _Stop):
                self._stop_replies.append(message.reply)

    def _dispatch(self, message: _Message) -> None:
        if isinstance(message, _Insert):
            self._insert(message.schedule)
        elif isinstance(message, _Remove):
            self._remove(message.tenant_id)
        elif isinstance(message, _Clear):
            for tenant_id in list(self._entries):
                self._remove(tenant_id)
        elif isinstance(message, _Fired):
            self._fired(message.tenant_id, message.generation)
        elif isinstance(message, _RunFinished):
            self._run_finished(message)
        elif isinstance(message, _Contains):
            entry = self._entries.get(message.tenant_id)
            found = entry is not None and (message.schedule is None or entry.schedule == message.schedule)
            message.reply.set_result(found)
        elif isinstance(message, _Snapshot):
            message.reply.set_result(
                [
                    ScheduledEntry(entry.schedule, entry.next_fire_at, tenant_id in self._in_flight)
                    for tenant_id, entry in sorted(self._entries.items())
                ]
            )
        elif isinstance(message, _Stop):
            self._begin_stop(message.reply)

    def _insert(self, schedule: Schedule) -> None:
        if self.stopping:
            logger.warning("Ignoring schedule for {} while stopping", schedule.tenant_id)
            return
        assert self._scheduler is not None

        self._cancel_timer(schedule.tenant_id)
        now = self.clock.now()
        delay = initial_delay(schedule, now)
        self._generation += 1
        entry = _Entry(schedule=schedule, generation=self._generation, next_fire_at=now + delay)
        self._entries[schedule.tenant_id] = entry

        self._scheduler.add_job(
            self._post_fired,
            trigger="date",
            run_date=datetime.now(UTC) + timedelta(seconds=delay),
            args=(schedule.tenant_id, entry.generation),
            id=str(schedule.tenant_id),
            replace_existing=True,
            misfire_grace_time=None,
            coalesce=True,
        )
        logger.debug("Armed {} to fire in {}s", schedule.tenant_id, delay)

    def _remove(self, tenant_id: int) -> None:
        if self._entries.pop(tenant_id, None) is not None:
            self._cancel_timer(tenant_id)
            logger.debug("Removed schedule for {}", tenant_id)

    def _cancel_timer(self, tenant_id: int) -> None:
        if self._scheduler is None or not self._scheduler.running:
            return
        try:
            self._scheduler.remove_job(str(tenant_id))
        except JobLookupError:
            pass

    async def _post_fired(self, tenant_id: int, generation: int) -> None:
        assert self._queue is not None
        self._queue.put_nowait(_Fired(tenant_id, generation))

    def _fired(self, tenant_id: int, generation: int) -> None:
        entry = self._entries.get(tenant_id)
        if entry is None or entry.generation != generation or self.stopping:
            return
        if tenant_id in self._in_flight:
            # runs of one tenant never overlap
            entry.fire_pending = True
            logger.debug("Deferring fire for {} until the current run ends", tenant_id)
            return
        self._spawn(entry)

    def _spawn(self, entry: _Entry) -> None:
        tenant_id = entry.schedule.tenant_id
        entry.fire_pending = False
        self._in_flight[tenant_id] = asyncio.create_task(
            self._run(entry.schedule, entry.generation), name=f"banner-run-{tenant_id}"
        )

    async def _run(self, schedule: Schedule, generation: int) -> None:
        assert self._queue is not None
        next_schedule: Schedule | None
        try:
            next_schedule = await self.callback(schedule)
        except Exception:
            logger.exception("Run for {} failed unexpectedly; keeping the schedule", schedule.tenant_id)
            next_schedule = replace(schedule, start_at=self.clock.now() + schedule.interval_seconds)
        self._queue.put_nowait(_RunFinished(schedule.tenant_id, generation, next_schedule))

    def _run_finished(self, message: _RunFinished) -> None:
        self._in_flight.pop(message.tenant_id, None)
        if self.stopping:
            return

        entry = self._entries.get(message.tenant_id)
        if entry is None:
            return
        if entry.generation == message.generation:
            if message.next_schedule is None:
                self._remove(message.tenant_id)
            else:
                self._insert(message.next_schedule)
        elif entry.fire_pending:
            self._spawn(entry)

    def _begin_stop(self, reply: asyncio.Future[None]) -> None:
        first = not self.stopping
        self._stop_replies.append(reply)
        if not first:
            return
        logger.info("Stopping repeater; waiting for {} in-flight runs", len(self._in_flight))
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)


__all__ = ["Repeater", "RepeaterHandle", "ScheduledEntry"]
