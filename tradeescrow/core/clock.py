"""
Clock capability.

The ledger never schedules anything. Timeouts are evaluated lazily against
whatever Clock the ledger was given, in Unix seconds.
"""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Source of the current time in Unix seconds."""

    @abstractmethod
    def now(self) -> int:
        ...


class SystemClock(Clock):
    """Wall-clock time."""

    def now(self) -> int:
        return int(time.time())


class ManualClock(Clock):
    """A clock that only moves when told to. Used by tests and simulations."""

    def __init__(self, start: int = 1_700_000_000):
        self._now = int(start)

    def now(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError(f"cannot move clock backwards by {seconds}s")
        self._now += int(seconds)
        return self._now

    def set(self, ts: int) -> None:
        if ts < self._now:
            raise ValueError(f"cannot move clock backwards to {ts}")
        self._now = int(ts)
