"""
Millisecond clocks.

All timers in the core (segmenter silence deadline, ducking fades and resume,
translation routing delay) are explicit state machines that take `now_ms` from a
clock instead of scheduling wall-clock callbacks. Production uses MonotonicClock;
tests drive time by hand with ManualClock.
"""
from __future__ import annotations

import time


class MonotonicClock:
    """Milliseconds from time.monotonic()."""

    def now_ms(self) -> float:
        return time.monotonic() * 1000.0


class ManualClock:
    """Clock advanced explicitly. Starts at `start_ms`."""

    def __init__(self, start_ms: float = 0.0) -> None:
        self._now = float(start_ms)

    def now_ms(self) -> float:
        return self._now

    def advance(self, ms: float) -> float:
        """Move time forward by `ms` and return the new time."""
        if ms < 0:
            raise ValueError("ManualClock cannot go backwards")
        self._now += ms
        return self._now

    def set(self, now_ms: float) -> None:
        if now_ms < self._now:
            raise ValueError("ManualClock cannot go backwards")
        self._now = float(now_ms)
