"""Wall-clock access, injectable for tests."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        """Current time in whole epoch seconds."""


class SystemClock:
    def now(self) -> int:
        return int(time.time())


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, start: int = 0) -> None:
        self._now = start

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> None:
        self._now += seconds

    def set(self, value: int) -> None:
        self._now = value


__all__ = ["Clock", "FrozenClock", "SystemClock"]
