"""Fire-time arithmetic for schedules."""

from __future__ import annotations

from bannerbot.models import Schedule


def initial_delay(schedule: Schedule, now: int) -> int:
    """Seconds until ``schedule`` should first fire when armed at ``now``.

    A future (or current) ``start_at`` wins. Otherwise a schedule that has
    run before keeps its cadence: with ``d = (now - last_run) mod interval``
    the delay is ``interval - d``. A schedule that never ran fires at once.
    """

    if schedule.start_at >= now:
        return schedule.start_at - now
    if schedule.last_run is not None:
        elapsed = max(0, now - schedule.last_run)
        return schedule.interval_seconds - (elapsed % schedule.interval_seconds)
    return 0


def next_fire_after_run(schedule: Schedule, now: int) -> int:
    """Epoch second of the next fire once a run finished at ``now``."""

    if schedule.last_run is None:
        return now + schedule.interval_seconds
    elapsed = max(0, now - schedule.last_run)
    return now + schedule.interval_seconds - (elapsed % schedule.interval_seconds)


__all__ = ["initial_delay", "next_fire_after_run"]
