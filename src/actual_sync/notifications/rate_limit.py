"""
Per-server rate limiting of failure alerts.

The gate caps alert volume independently of the failure thresholds: a minimum
interval between two alerts and a maximum number of alerts in the trailing
hour. Each server has its own history, so one server's alert storm never
silences another server.
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field

from ..utils.time import Clock, SystemClock

logger = logging.getLogger(__name__)

HOUR_SECONDS = 3600.0
# Sent timestamps are kept longer than the hourly window for inspection
HISTORY_RETENTION_SECONDS = 2 * HOUR_SECONDS


@dataclass
class GateState:
    """Alert history of one server."""

    last_sent_at: float | None = None
    sent_timestamps: deque[float] = field(default_factory=deque)


class NotificationGate:
    """Minimum-interval and max-per-hour limiter, keyed by server name."""

    def __init__(
        self,
        min_interval_seconds: float = 15 * 60,
        max_per_hour: int = 4,
        clock: Clock | None = None,
    ) -> None:
        if min_interval_seconds < 0:
            raise ValueError("min_interval_seconds must be non-negative")
        if max_per_hour < 1:
            raise ValueError("max_per_hour must be at least 1")

        self.min_interval_seconds: float = min_interval_seconds
        self.max_per_hour: int = max_per_hour
        self._clock: Clock = clock or SystemClock()
        self._states: dict[str, GateState] = {}
        self._lock: threading.Lock = threading.Lock()

    def allow(self, server: str) -> bool:
        """
        Check whether an alert may be sent for a server right now.

        Args:
            server: Server name

        Returns:
            False while the minimum interval since the last alert has not
            elapsed, or when the trailing hour already holds ``max_per_hour``
            alerts; True otherwise
        """
        now = self._clock.now()
        with self._lock:
            state = self._states.get(server)
            if state is None:
                return True

            if (
                state.last_sent_at is not None
                and now - state.last_sent_at < self.min_interval_seconds
            ):
                logger.debug(
                    f"Alert for {server} suppressed: last alert "
                    + f"{now - state.last_sent_at:.0f}s ago "
                    + f"(minimum interval {self.min_interval_seconds:.0f}s)"
                )
                return False

            sent_last_hour = self._count_last_hour(state, now)
            if sent_last_hour >= self.max_per_hour:
                logger.debug(
                    f"Alert for {server} suppressed: {sent_last_hour} alerts "
                    + f"in the last hour (maximum {self.max_per_hour})"
                )
                return False

        return True

    def mark_sent(self, server: str) -> None:
        """Record that an alert was just sent for a server."""
        now = self._clock.now()
        with self._lock:
            state = self._states.setdefault(server, GateState())
            state.last_sent_at = now
            state.sent_timestamps.append(now)
            while (
                state.sent_timestamps
                and now - state.sent_timestamps[0] > HISTORY_RETENTION_SECONDS
            ):
                _ = state.sent_timestamps.popleft()

    def sent_in_last_hour(self, server: str) -> int:
        """Number of alerts sent for a server in the trailing hour."""
        now = self._clock.now()
        with self._lock:
            state = self._states.get(server)
            return self._count_last_hour(state, now) if state else 0

    def sent_timestamps(self, server: str) -> list[float]:
        """Alert timestamps currently retained for a server."""
        with self._lock:
            state = self._states.get(server)
            return list(state.sent_timestamps) if state else []

    def reset(self, server: str | None = None) -> None:
        """Forget the alert history of one server, or of every server."""
        with self._lock:
            if server is None:
                self._states.clear()
            else:
                _ = self._states.pop(server, None)

    @staticmethod
    def _count_last_hour(state: GateState, now: float) -> int:
        return sum(1 for t in state.sent_timestamps if now - t < HOUR_SECONDS)
