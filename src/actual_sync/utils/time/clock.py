"""
Clock abstraction used for rate-window arithmetic.

Threshold and rate-limit windows are measured on a monotonic clock so that
wall-clock adjustments cannot widen or collapse a window. Components accept
any object implementing :class:`Clock`, which keeps them deterministic in
tests.
"""

import time
from typing import Protocol


class Clock(Protocol):
    """Source of monotonic timestamps, in seconds."""

    def now(self) -> float: ...


class SystemClock:
    """Clock backed by :func:`time.monotonic`."""

    def now(self) -> float:
        return time.monotonic()


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: float = 0.0) -> None:
        self._now: float = start

    def now(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        """Move the clock forward by ``seconds``."""
        if seconds < 0:
            raise ValueError("Cannot move a clock backwards")
        self._now += seconds
