"""Alert thresholds, rate limiting, formatting and delivery of notifications."""

from .dispatcher import (
    MUTED_BY_CHANNEL_PREFERENCES,
    NO_CHANNELS_CONFIGURED,
    RATE_LIMIT_EXCEEDED,
    THRESHOLDS_NOT_EXCEEDED,
    ChannelResult,
    DispatchResult,
    NotificationDispatcher,
)
from .formatter import FormattedMessage, MessageFormatter, Severity
from .preferences import NotificationPreferences
from .rate_limit import NotificationGate
from .threshold import ThresholdStatus, ThresholdTracker

__all__ = [
    "MUTED_BY_CHANNEL_PREFERENCES",
    "NO_CHANNELS_CONFIGURED",
    "RATE_LIMIT_EXCEEDED",
    "THRESHOLDS_NOT_EXCEEDED",
    "ChannelResult",
    "DispatchResult",
    "FormattedMessage",
    "MessageFormatter",
    "NotificationDispatcher",
    "NotificationGate",
    "NotificationPreferences",
    "Severity",
    "ThresholdStatus",
    "ThresholdTracker",
]
