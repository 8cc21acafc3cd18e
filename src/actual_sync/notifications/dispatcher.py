"""
Notification dispatch for sync outcomes.

Every outcome is recorded against the threshold tracker. Success and partial
outcomes are always delivered. Failure outcomes are delivered only once a
threshold is crossed and the rate gate allows it. Delivery fans out
concurrently to every channel that accepts the message (the Telegram channel
can be muted from the chat); a channel failure is reported in the result and
never raised to the caller.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from .channels import NotificationChannel
from .formatter import FormattedMessage, MessageFormatter, Severity
from .rate_limit import NotificationGate
from .threshold import ThresholdStatus, ThresholdTracker
from ..sync.types import SyncOutcome, SyncStatus

logger = logging.getLogger(__name__)

THRESHOLDS_NOT_EXCEEDED = "thresholds_not_exceeded"
RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
NO_CHANNELS_CONFIGURED = "no_channels_configured"
MUTED_BY_CHANNEL_PREFERENCES = "muted_by_channel_preferences"


@dataclass(frozen=True)
class ChannelResult:
    """Delivery result for one channel."""

    channel: str
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class DispatchResult:
    """Result of dispatching one outcome or announcement."""

    sent: bool
    reason: str | None = None
    status: SyncStatus | None = None
    thresholds: ThresholdStatus | None = None
    channel_results: tuple[ChannelResult, ...] = field(default_factory=tuple)

    @property
    def delivered_count(self) -> int:
        return sum(1 for r in self.channel_results if r.success)

    @property
    def failed_channels(self) -> list[str]:
        return [r.channel for r in self.channel_results if not r.success]

    def to_dict(self) -> dict[str, object]:
        """Convert the result to a dictionary for logging and events."""
        return {
            "sent": self.sent,
            "reason": self.reason,
            "status": self.status.value if self.status else None,
            "thresholds": self.thresholds.to_dict() if self.thresholds else None,
            "channels": [
                {"channel": r.channel, "success": r.success, "error": r.error}
                for r in self.channel_results
            ],
        }


class NotificationDispatcher:
    """Decides whether an outcome is notified and fans it out to the channels."""

    def __init__(
        self,
        tracker: ThresholdTracker,
        gate: NotificationGate,
        channels: list[NotificationChannel],
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            tracker: Per-server failure threshold tracker
            gate: Per-server alert rate gate
            channels: Channels every notification is sent to
        """
        self.tracker: ThresholdTracker = tracker
        self.gate: NotificationGate = gate
        self.channels: list[NotificationChannel] = list(channels)
        self._locks: dict[str, asyncio.Lock] = {}

    def _lock_for(self, server: str) -> asyncio.Lock:
        lock = self._locks.get(server)
        if lock is None:
            lock = self._locks[server] = asyncio.Lock()
        return lock

    async def dispatch(
        self, outcome: SyncOutcome, bypass_thresholds: bool = False
    ) -> DispatchResult:
        """
        Record an outcome and notify the channels when warranted.

        Args:
            outcome: Finalized sync outcome
            bypass_thresholds: Deliver unconditionally without touching the
                tracker or the rate gate (used for test notifications)

        Returns:
            DispatchResult; ``reason`` explains why nothing was sent
        """
        server = outcome.server_name

        if bypass_thresholds:
            message = MessageFormatter.format_sync_notification(outcome)
            return await self._deliver(message, outcome.status)

        # record -> evaluate -> allow -> mark_sent is atomic per server
        async with self._lock_for(server):
            if outcome.status is SyncStatus.SUCCESS:
                self.tracker.record(server, True)
            elif outcome.status is SyncStatus.PARTIAL:
                self.tracker.record_soft_failure(server)
            else:
                self.tracker.record(server, False)

            thresholds = self.tracker.evaluate(server)

            if outcome.status is not SyncStatus.FAILURE:
                message = MessageFormatter.format_sync_notification(outcome)
                return await self._deliver(message, outcome.status, thresholds)

            if not thresholds.should_notify:
                logger.debug(
                    f"Thresholds not exceeded for {server}, skipping notification "
                    + f"(consecutive={thresholds.consecutive_count}, "
                    + f"rate={thresholds.failure_rate:.2f})"
                )
                return DispatchResult(
                    sent=False,
                    reason=THRESHOLDS_NOT_EXCEEDED,
                    status=outcome.status,
                    thresholds=thresholds,
                )

            if not self.gate.allow(server):
                logger.warning(f"Rate limit exceeded for {server}, skipping notification")
                return DispatchResult(
                    sent=False,
                    reason=RATE_LIMIT_EXCEEDED,
                    status=outcome.status,
                    thresholds=thresholds,
                )

            message = MessageFormatter.format_sync_notification(outcome, thresholds)
            result = await self._deliver(message, outcome.status, thresholds)
            if result.sent:
                self.gate.mark_sent(server)
            return result

    async def send_announcement(
        self, title: str, text: str, severity: Severity = Severity.INFO
    ) -> DispatchResult:
        """Send a free-form message (e.g. the startup notice) to every channel."""
        message = MessageFormatter.format_announcement(title, text, severity)
        return await self._deliver(message, None)

    async def send_test_notification(self) -> DispatchResult:
        """Send a test message to every channel, bypassing thresholds and rate limits."""
        return await self.send_announcement(
            "🧪 Test Notification",
            "This is a test notification from Actual Budget Sync. "
            + "If you can read this, the channel is configured correctly.",
        )

    async def _deliver(
        self,
        message: FormattedMessage,
        status: SyncStatus | None,
        thresholds: ThresholdStatus | None = None,
    ) -> DispatchResult:
        if not self.channels:
            logger.debug(f"No notification channels configured, dropping '{message.title}'")
            return DispatchResult(
                sent=False,
                reason=NO_CHANNELS_CONFIGURED,
                status=status,
                thresholds=thresholds,
            )

        targets = [channel for channel in self.channels if channel.accepts(message)]
        if not targets:
            logger.debug(f"Every channel muted '{message.title}', nothing to send")
            return DispatchResult(
                sent=False,
                reason=MUTED_BY_CHANNEL_PREFERENCES,
                status=status,
                thresholds=thresholds,
            )

        results = await asyncio.gather(*(self._send_to(channel, message) for channel in targets))

        delivered = sum(1 for r in results if r.success)
        logger.info(
            f"Notification '{message.title}' delivered to {delivered}/{len(results)} channel(s)"
        )
        return DispatchResult(
            sent=True,
            status=status,
            thresholds=thresholds,
            channel_results=tuple(results),
        )

    async def _send_to(
        self, channel: NotificationChannel, message: FormattedMessage
    ) -> ChannelResult:
        try:
            await channel.send(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Failed to deliver notification via {channel.name}: {e}")
            return ChannelResult(channel=channel.name, success=False, error=str(e))
        return ChannelResult(channel=channel.name, success=True)

    def get_stats(self) -> dict[str, dict[str, object]]:
        """
        Per-server notification statistics.

        Returns:
            Mapping of server name to consecutive failures, rolling window
            counts, alerts sent in the last hour and remaining hourly budget
        """
        servers = set(self._locks)
        stats: dict[str, dict[str, object]] = {}
        for server in sorted(servers):
            state = self.tracker.get_state(server)
            sent_last_hour = self.gate.sent_in_last_hour(server)
            window = list(state.recent_outcomes) if state else []
            stats[server] = {
                "consecutive_failures": state.consecutive_failures if state else 0,
                "recent_total": len(window),
                "recent_failures": sum(1 for r in window if not r.success and not r.soft),
                "recent_partial": sum(1 for r in window if r.soft),
                "notifications_last_hour": sent_last_hour,
                "rate_limit_remaining": max(0, self.gate.max_per_hour - sent_last_hour),
            }
        return stats
