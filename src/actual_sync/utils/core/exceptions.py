"""
Basic exception classes for Actual Sync.

This module contains fundamental exception classes that are used throughout
the codebase without creating import cycles.
"""

from __future__ import annotations

from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for classification and handling."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for appropriate handling strategies."""

    NETWORK = "network"
    REMOTE = "remote"
    CONFIGURATION = "configuration"
    NOTIFICATION = "notification"
    UNKNOWN = "unknown"


class ActualSyncError(Exception):
    """Base exception class for Actual Sync specific errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        recoverable: bool = True,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.category: ErrorCategory = category
        self.severity: ErrorSeverity = severity
        self.recoverable: bool = recoverable


class ConfigurationError(ActualSyncError):
    """Configuration-related errors."""

    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.HIGH,
            recoverable=False,
        )


class BudgetClientError(ActualSyncError):
    """
    Error raised by a budgeting client call.

    ``code`` and ``remote_category`` carry the classification fields reported
    by the remote budgeting server (for example ``code="NORDIGEN_ERROR"`` with
    ``remote_category="RATE_LIMIT_EXCEEDED"``, or ``code="ECONNRESET"``).
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        remote_category: str | None = None,
    ) -> None:
        super().__init__(message, category=ErrorCategory.REMOTE)
        self.code: str | None = code
        self.remote_category: str | None = remote_category


class NotificationError(ActualSyncError):
    """Errors raised while building or delivering notifications."""

    def __init__(self, message: str, recoverable: bool = True) -> None:
        super().__init__(
            message,
            category=ErrorCategory.NOTIFICATION,
            severity=ErrorSeverity.LOW,
            recoverable=recoverable,
        )


class ChannelDeliveryError(NotificationError):
    """A single notification channel failed to deliver a message."""

    def __init__(self, channel: str, message: str) -> None:
        super().__init__(f"{channel}: {message}")
        self.channel: str = channel
