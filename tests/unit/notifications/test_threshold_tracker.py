"""Tests for consecutive-failure and failure-rate threshold tracking."""

from __future__ import annotations

import pytest

from src.actual_sync.notifications.threshold import ThresholdStatus, ThresholdTracker
from src.actual_sync.utils.time import ManualClock


class TestConsecutiveThreshold:
    """Test cases for the consecutive-failure threshold."""

    def test_exceeded_at_threshold_and_reset_by_success(self, manual_clock: ManualClock) -> None:
        """Test that three failures cross the threshold and one success clears it."""
        tracker = ThresholdTracker(consecutive_failure_threshold=3, clock=manual_clock)

        tracker.record("Main", False)
        tracker.record("Main", False)
        status = tracker.evaluate("Main")
        assert status.consecutive_count == 2
        assert status.consecutive_exceeded is False

        tracker.record("Main", False)
        status = tracker.evaluate("Main")
        assert status.consecutive_count == 3
        assert status.consecutive_exceeded is True
        assert status.should_notify is True

        tracker.record("Main", True)
        status = tracker.evaluate("Main")
        assert status.consecutive_count == 0
        assert status.consecutive_exceeded is False

    def test_servers_are_independent(self, manual_clock: ManualClock) -> None:
        tracker = ThresholdTracker(consecutive_failure_threshold=2, clock=manual_clock)

        tracker.record("Main", False)
        tracker.record("Main", False)
        tracker.record("Family", True)

        assert tracker.evaluate("Main").consecutive_exceeded is True
        assert tracker.evaluate("Family").consecutive_count == 0


class TestFailureRate:
    """Test cases for the rolling failure-rate threshold."""

    def test_three_of_five_failures(self, manual_clock: ManualClock) -> None:
        """Test a 60% failure rate against a 50% threshold."""
        tracker = ThresholdTracker(
            consecutive_failure_threshold=10, failure_rate_threshold=0.5, clock=manual_clock
        )

        for success in (False, True, False, True, False):
            tracker.record("Main", success)
            manual_clock.advance(60)

        status = tracker.evaluate("Main")

        assert status.failure_rate == pytest.approx(0.6)
        assert status.rate_exceeded is True
        assert status.consecutive_count == 1
        assert status.consecutive_exceeded is False
        assert status.should_notify is True

    def test_rate_below_threshold(self, manual_clock: ManualClock) -> None:
        tracker = ThresholdTracker(
            consecutive_failure_threshold=10, failure_rate_threshold=0.5, clock=manual_clock
        )

        for success in (False, True, True):
            tracker.record("Main", success)

        status = tracker.evaluate("Main")

        assert status.failure_rate == pytest.approx(1 / 3)
        assert status.rate_exceeded is False
        assert status.should_notify is False

    def test_old_outcomes_leave_the_window(self, manual_clock: ManualClock) -> None:
        """Test that an outcome exactly one period old is pruned."""
        tracker = ThresholdTracker(
            consecutive_failure_threshold=10,
            failure_rate_threshold=0.5,
            rate_period_seconds=3600,
            clock=manual_clock,
        )

        tracker.record("Main", False)
        manual_clock.advance(3600)
        tracker.record("Main", True)

        state = tracker.get_state("Main")
        assert state is not None
        assert len(state.recent_outcomes) == 1
        assert tracker.evaluate("Main").failure_rate == 0.0

    def test_outcomes_inside_the_window_are_kept(self, manual_clock: ManualClock) -> None:
        tracker = ThresholdTracker(rate_period_seconds=3600, clock=manual_clock)

        tracker.record("Main", False)
        manual_clock.advance(3599)
        tracker.record("Main", True)

        state = tracker.get_state("Main")
        assert state is not None
        assert len(state.recent_outcomes) == 2


class TestSoftFailures:
    """Test cases for partial runs."""

    def test_soft_failure_does_not_touch_consecutive_count(
        self, manual_clock: ManualClock
    ) -> None:
        tracker = ThresholdTracker(consecutive_failure_threshold=3, clock=manual_clock)

        tracker.record("Main", False)
        tracker.record("Main", False)
        tracker.record_soft_failure("Main")

        status = tracker.evaluate("Main")
        assert status.consecutive_count == 2
        assert status.consecutive_exceeded is False

    def test_soft_failure_dilutes_failure_rate(self, manual_clock: ManualClock) -> None:
        """Test that partial runs count in the window but not as failures."""
        tracker = ThresholdTracker(
            consecutive_failure_threshold=10, failure_rate_threshold=0.5, clock=manual_clock
        )

        tracker.record("Main", False)
        tracker.record_soft_failure("Main")
        tracker.record_soft_failure("Main")

        status = tracker.evaluate("Main")
        assert status.failure_rate == pytest.approx(1 / 3)
        assert status.rate_exceeded is False


class TestTrackerState:
    """Test cases for inspection and reset."""

    def test_unknown_server_evaluates_to_defaults(self) -> None:
        tracker = ThresholdTracker()

        assert tracker.evaluate("Nobody") == ThresholdStatus()
        assert tracker.get_state("Nobody") is None

    def test_get_state_returns_copy(self, manual_clock: ManualClock) -> None:
        tracker = ThresholdTracker(clock=manual_clock)
        tracker.record("Main", False)

        state = tracker.get_state("Main")
        assert state is not None
        state.consecutive_failures = 99
        state.recent_outcomes.clear()

        assert tracker.evaluate("Main").consecutive_count == 1

    def test_reset_one_server(self, manual_clock: ManualClock) -> None:
        tracker = ThresholdTracker(clock=manual_clock)
        tracker.record("Main", False)
        tracker.record("Family", False)

        tracker.reset("Main")

        assert tracker.get_state("Main") is None
        assert tracker.get_state("Family") is not None

    def test_reset_all(self, manual_clock: ManualClock) -> None:
        tracker = ThresholdTracker(clock=manual_clock)
        tracker.record("Main", False)
        tracker.record("Family", False)

        tracker.reset()

        assert tracker.get_state("Main") is None
        assert tracker.get_state("Family") is None

    def test_status_to_dict(self) -> None:
        status = ThresholdStatus(consecutive_exceeded=True, consecutive_count=3)

        assert status.to_dict() == {
            "consecutive_exceeded": True,
            "consecutive_count": 3,
            "rate_exceeded": False,
            "failure_rate": 0.0,
            "should_notify": True,
        }

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"consecutive_failure_threshold": 0},
            {"failure_rate_threshold": 1.5},
            {"failure_rate_threshold": -0.1},
            {"rate_period_seconds": 0},
        ],
    )
    def test_invalid_arguments(self, kwargs: dict[str, float]) -> None:
        with pytest.raises(ValueError):
            _ = ThresholdTracker(**kwargs)  # pyright: ignore[reportArgumentType]
