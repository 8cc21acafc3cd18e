"""
Failure threshold tracking for alerting.

Keeps, per server, the number of consecutive failed runs and a rolling window
of recent outcomes, and decides whether either alert threshold is crossed.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field

from ..utils.time import Clock, SystemClock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutcomeRecord:
    """One recorded sync outcome inside the rolling window."""

    timestamp: float
    success: bool
    soft: bool = False


@dataclass
class ThresholdState:
    """Per-server threshold state."""

    consecutive_failures: int = 0
    recent_outcomes: deque[OutcomeRecord] = field(default_factory=deque)


@dataclass(frozen=True)
class ThresholdStatus:
    """Result of evaluating a server against the alert thresholds."""

    consecutive_exceeded: bool = False
    consecutive_count: int = 0
    rate_exceeded: bool = False
    failure_rate: float = 0.0

    @property
    def should_notify(self) -> bool:
        return self.consecutive_exceeded or self.rate_exceeded

    def to_dict(self) -> dict[str, bool | int | float]:
        """Convert status to dictionary for logging."""
        return {
            "consecutive_exceeded": self.consecutive_exceeded,
            "consecutive_count": self.consecutive_count,
            "rate_exceeded": self.rate_exceeded,
            "failure_rate": self.failure_rate,
            "should_notify": self.should_notify,
        }


class ThresholdTracker:
    """Tracks consecutive failures and rolling failure rate per server."""

    def __init__(
        self,
        consecutive_failure_threshold: int = 3,
        failure_rate_threshold: float = 0.5,
        rate_period_seconds: float = 3600.0,
        clock: Clock | None = None,
    ) -> None:
        """
        Initialize the tracker.

        Args:
            consecutive_failure_threshold: Consecutive failures that trigger an alert
            failure_rate_threshold: Failure rate (0-1) in the window that triggers an alert
            rate_period_seconds: Length of the rolling window
            clock: Monotonic clock
        """
        if consecutive_failure_threshold < 1:
            raise ValueError("consecutive_failure_threshold must be at least 1")
        if not 0.0 <= failure_rate_threshold <= 1.0:
            raise ValueError("failure_rate_threshold must be between 0 and 1")
        if rate_period_seconds <= 0:
            raise ValueError("rate_period_seconds must be positive")

        self.consecutive_failure_threshold: int = consecutive_failure_threshold
        self.failure_rate_threshold: float = failure_rate_threshold
        self.rate_period_seconds: float = rate_period_seconds
        self._clock: Clock = clock or SystemClock()
        self._states: dict[str, ThresholdState] = {}
        self._lock: threading.Lock = threading.Lock()

    def record(self, server: str, success: bool) -> None:
        """
        Record a full success or failure for a server.

        A failure increments the consecutive-failure count, a success resets it.
        """
        self._record(server, OutcomeRecord(self._clock.now(), success))

    def record_soft_failure(self, server: str) -> None:
        """
        Record a partial run.

        Soft failures enter the rolling window but are not counted as failures,
        and leave the consecutive-failure count untouched.
        """
        self._record(server, OutcomeRecord(self._clock.now(), False, soft=True))

    def _record(self, server: str, record: OutcomeRecord) -> None:
        with self._lock:
            state = self._states.setdefault(server, ThresholdState())
            state.recent_outcomes.append(record)
            self._prune(state, record.timestamp)

            if not record.soft:
                if record.success:
                    state.consecutive_failures = 0
                else:
                    state.consecutive_failures += 1

            logger.debug(
                f"Recorded sync result for {server}: success={record.success}, "
                + f"soft={record.soft}, consecutive_failures={state.consecutive_failures}, "
                + f"window={len(state.recent_outcomes)}"
            )

    def evaluate(self, server: str) -> ThresholdStatus:
        """
        Evaluate a server against both thresholds.

        A server that was never recorded evaluates to all zero/false.
        """
        with self._lock:
            state = self._states.get(server)
            if state is None:
                return ThresholdStatus()

            consecutive = state.consecutive_failures
            total = len(state.recent_outcomes)
            failures = sum(
                1 for r in state.recent_outcomes if not r.success and not r.soft
            )

        failure_rate = failures / total if total else 0.0
        return ThresholdStatus(
            consecutive_exceeded=consecutive >= self.consecutive_failure_threshold,
            consecutive_count=consecutive,
            rate_exceeded=total > 0 and failure_rate >= self.failure_rate_threshold,
            failure_rate=failure_rate,
        )

    def get_state(self, server: str) -> ThresholdState | None:
        """Get a copy of a server's state for inspection."""
        with self._lock:
            state = self._states.get(server)
            if state is None:
                return None
            return ThresholdState(
                consecutive_failures=state.consecutive_failures,
                recent_outcomes=deque(state.recent_outcomes),
            )

    def reset(self, server: str | None = None) -> None:
        """Forget the state of one server, or of every server."""
        with self._lock:
            if server is None:
                self._states.clear()
            else:
                _ = self._states.pop(server, None)

    def _prune(self, state: ThresholdState, now: float) -> None:
        cutoff = now - self.rate_period_seconds
        while state.recent_outcomes and state.recent_outcomes[0].timestamp <= cutoff:
            _ = state.recent_outcomes.popleft()
