"""
Tests for notification dispatch decisions.

Channels are RecordingChannel instances and time comes from a ManualClock,
so threshold and rate-limit windows are fully deterministic.
"""

from __future__ import annotations

import asyncio
from typing import override

import pytest

from src.actual_sync.notifications import (
    MUTED_BY_CHANNEL_PREFERENCES,
    NO_CHANNELS_CONFIGURED,
    RATE_LIMIT_EXCEEDED,
    THRESHOLDS_NOT_EXCEEDED,
    NotificationDispatcher,
    NotificationGate,
    Severity,
    ThresholdTracker,
)
from src.actual_sync.notifications.formatter import FormattedMessage
from src.actual_sync.sync.types import AccountFailure, SyncOutcome, SyncStatus
from src.actual_sync.utils.time import ManualClock
from tests.utils.test_helpers import RecordingChannel, create_outcome


class DecliningChannel(RecordingChannel):
    """Channel whose preferences reject every message."""

    @override
    def accepts(self, message: FormattedMessage) -> bool:
        return False


def make_dispatcher(
    clock: ManualClock,
    channels: list[RecordingChannel] | None = None,
    consecutive_failures: int = 3,
    failure_rate: float = 0.5,
) -> NotificationDispatcher:
    return NotificationDispatcher(
        tracker=ThresholdTracker(
            consecutive_failure_threshold=consecutive_failures,
            failure_rate_threshold=failure_rate,
            clock=clock,
        ),
        gate=NotificationGate(min_interval_seconds=900, max_per_hour=4, clock=clock),
        channels=list(channels) if channels is not None else [RecordingChannel()],
    )


def failure_outcome(server: str = "Main") -> SyncOutcome:
    return create_outcome(
        server,
        SyncStatus.FAILURE,
        error_message="network-failure",
        error_code="ECONNRESET",
        failed_step="budget_download",
    )


class TestNonFailureOutcomes:
    """Test cases for outcomes that are always delivered."""

    @pytest.mark.asyncio
    async def test_success_is_always_sent(self, manual_clock: ManualClock) -> None:
        channel = RecordingChannel()
        dispatcher = make_dispatcher(manual_clock, [channel])

        result = await dispatcher.dispatch(create_outcome(succeeded=("Checking",)))

        assert result.sent is True
        assert result.reason is None
        assert result.status is SyncStatus.SUCCESS
        assert len(channel.messages) == 1
        assert channel.messages[0].title == "✅ Sync Successful"
        assert channel.messages[0].severity is Severity.SUCCESS

    @pytest.mark.asyncio
    async def test_partial_is_always_sent(self, manual_clock: ManualClock) -> None:
        channel = RecordingChannel()
        dispatcher = make_dispatcher(manual_clock, [channel])
        outcome = create_outcome(
            status=SyncStatus.PARTIAL,
            succeeded=("Checking",),
            failed=(AccountFailure("Savings", "expired", "a2"),),
        )

        first = await dispatcher.dispatch(outcome)
        second = await dispatcher.dispatch(outcome)

        assert first.sent and second.sent
        assert len(channel.messages) == 2
        assert channel.messages[0].severity is Severity.WARNING

    @pytest.mark.asyncio
    async def test_success_resets_consecutive_failures(self, manual_clock: ManualClock) -> None:
        dispatcher = make_dispatcher(manual_clock)

        _ = await dispatcher.dispatch(failure_outcome())
        _ = await dispatcher.dispatch(failure_outcome())
        result = await dispatcher.dispatch(create_outcome())

        assert result.thresholds is not None
        assert result.thresholds.consecutive_count == 0

    @pytest.mark.asyncio
    async def test_success_is_not_rate_limited(self, manual_clock: ManualClock) -> None:
        """Test that success notifications never consume the alert budget."""
        channel = RecordingChannel()
        dispatcher = make_dispatcher(manual_clock, [channel])

        for _ in range(6):
            result = await dispatcher.dispatch(create_outcome())
            assert result.sent is True

        assert dispatcher.gate.sent_in_last_hour("Main") == 0


class TestFailureOutcomes:
    """Test cases for threshold- and rate-gated failure alerts."""

    @pytest.mark.asyncio
    async def test_failure_below_thresholds_is_suppressed(
        self, manual_clock: ManualClock
    ) -> None:
        """Test one failure after three successes (rate 25%, one in a row)."""
        channel = RecordingChannel()
        dispatcher = make_dispatcher(manual_clock, [channel])
        for _ in range(3):
            _ = await dispatcher.dispatch(create_outcome())
        channel.messages.clear()

        result = await dispatcher.dispatch(failure_outcome())

        assert result.sent is False
        assert result.reason == THRESHOLDS_NOT_EXCEEDED
        assert result.thresholds is not None
        assert result.thresholds.failure_rate == pytest.approx(0.25)
        assert channel.messages == []

    @pytest.mark.asyncio
    async def test_failure_over_threshold_is_sent(self, manual_clock: ManualClock) -> None:
        channel = RecordingChannel()
        dispatcher = make_dispatcher(manual_clock, [channel], consecutive_failures=1)

        result = await dispatcher.dispatch(failure_outcome())

        assert result.sent is True
        assert channel.messages[0].title == "❌ Sync Failed"
        assert "Alert" in channel.messages[0].fields
        assert dispatcher.gate.sent_in_last_hour("Main") == 1

    @pytest.mark.asyncio
    async def test_rate_limit_blocks_repeat_alerts(self, manual_clock: ManualClock) -> None:
        """Test that a second alert inside the minimum interval is suppressed."""
        channel = RecordingChannel()
        dispatcher = make_dispatcher(manual_clock, [channel], consecutive_failures=1)

        first = await dispatcher.dispatch(failure_outcome())
        manual_clock.advance(60)
        second = await dispatcher.dispatch(failure_outcome())
        manual_clock.advance(900)
        third = await dispatcher.dispatch(failure_outcome())

        assert first.sent is True
        assert second.sent is False
        assert second.reason == RATE_LIMIT_EXCEEDED
        assert third.sent is True
        assert len(channel.messages) == 2

    @pytest.mark.asyncio
    async def test_rate_limit_is_per_server(self, manual_clock: ManualClock) -> None:
        dispatcher = make_dispatcher(manual_clock, consecutive_failures=1)

        main = await dispatcher.dispatch(failure_outcome("Main"))
        family = await dispatcher.dispatch(failure_outcome("Family"))

        assert main.sent is True
        assert family.sent is True

    @pytest.mark.asyncio
    async def test_concurrent_failures_send_one_alert(self, manual_clock: ManualClock) -> None:
        """Test that concurrent dispatches for a server cannot both pass the gate."""
        channel = RecordingChannel()
        dispatcher = make_dispatcher(manual_clock, [channel], consecutive_failures=1)

        results = await asyncio.gather(
            dispatcher.dispatch(failure_outcome()),
            dispatcher.dispatch(failure_outcome()),
        )

        assert sorted(r.sent for r in results) == [False, True]
        assert len(channel.messages) == 1

    @pytest.mark.asyncio
    async def test_bypass_skips_thresholds_and_state(self, manual_clock: ManualClock) -> None:
        channel = RecordingChannel()
        dispatcher = make_dispatcher(manual_clock, [channel])

        result = await dispatcher.dispatch(failure_outcome(), bypass_thresholds=True)

        assert result.sent is True
        assert len(channel.messages) == 1
        assert dispatcher.tracker.get_state("Main") is None
        assert dispatcher.gate.sent_in_last_hour("Main") == 0


class TestDelivery:
    """Test cases for channel fan-out."""

    @pytest.mark.asyncio
    async def test_channel_failure_is_isolated(self, manual_clock: ManualClock) -> None:
        """Test that a failing channel does not prevent delivery to the others."""
        good = RecordingChannel("good")
        bad = RecordingChannel("bad", fail=True)
        dispatcher = make_dispatcher(manual_clock, [bad, good])

        result = await dispatcher.dispatch(create_outcome())

        assert result.sent is True
        assert result.delivered_count == 1
        assert result.failed_channels == ["bad"]
        assert len(good.messages) == 1
        failed = [r for r in result.channel_results if not r.success][0]
        assert failed.error == "bad: delivery refused"

    @pytest.mark.asyncio
    async def test_no_channels_configured(self, manual_clock: ManualClock) -> None:
        dispatcher = make_dispatcher(manual_clock, channels=[], consecutive_failures=1)

        result = await dispatcher.dispatch(failure_outcome())

        assert result.sent is False
        assert result.reason == NO_CHANNELS_CONFIGURED
        assert dispatcher.gate.sent_in_last_hour("Main") == 0

    @pytest.mark.asyncio
    async def test_send_test_notification(self, manual_clock: ManualClock) -> None:
        channel = RecordingChannel()
        dispatcher = make_dispatcher(manual_clock, [channel])

        result = await dispatcher.send_test_notification()

        assert result.sent is True
        assert result.status is None
        assert channel.messages[0].title == "🧪 Test Notification"
        assert channel.messages[0].severity is Severity.INFO

    @pytest.mark.asyncio
    async def test_send_announcement(self, manual_clock: ManualClock) -> None:
        channel = RecordingChannel()
        dispatcher = make_dispatcher(manual_clock, [channel])

        _ = await dispatcher.send_announcement("🚀 Service Started", "Servers: Main")

        assert channel.messages[0].text == "🚀 Service Started\n\nServers: Main"

    @pytest.mark.asyncio
    async def test_result_to_dict(self, manual_clock: ManualClock) -> None:
        dispatcher = make_dispatcher(manual_clock, [RecordingChannel("log")])

        result = await dispatcher.dispatch(create_outcome())
        data = result.to_dict()

        assert data["sent"] is True
        assert data["status"] == "success"
        assert data["channels"] == [{"channel": "log", "success": True, "error": None}]


    @pytest.mark.asyncio
    async def test_channel_that_declines_is_skipped(self, manual_clock: ManualClock) -> None:
        muted = DecliningChannel("muted")
        listening = RecordingChannel("listening")
        dispatcher = make_dispatcher(manual_clock, [muted, listening])

        result = await dispatcher.dispatch(create_outcome())

        assert result.sent is True
        assert [r.channel for r in result.channel_results] == ["listening"]
        assert muted.messages == []
        assert len(listening.messages) == 1

    @pytest.mark.asyncio
    async def test_every_channel_declines(self, manual_clock: ManualClock) -> None:
        """Test that a muted alert is reported unsent and does not use the hourly budget."""
        dispatcher = make_dispatcher(
            manual_clock, [DecliningChannel("muted")], consecutive_failures=1
        )

        result = await dispatcher.dispatch(failure_outcome())

        assert result.sent is False
        assert result.reason == MUTED_BY_CHANNEL_PREFERENCES
        assert dispatcher.gate.sent_in_last_hour("Main") == 0


class TestStats:
    @pytest.mark.asyncio
    async def test_get_stats(self, manual_clock: ManualClock) -> None:
        dispatcher = make_dispatcher(manual_clock, consecutive_failures=1)

        _ = await dispatcher.dispatch(create_outcome(status=SyncStatus.PARTIAL))
        _ = await dispatcher.dispatch(failure_outcome())

        stats = dispatcher.get_stats()

        assert list(stats) == ["Main"]
        assert stats["Main"] == {
            "consecutive_failures": 1,
            "recent_total": 2,
            "recent_failures": 1,
            "recent_partial": 1,
            "notifications_last_hour": 1,
            "rate_limit_remaining": 3,
        }
