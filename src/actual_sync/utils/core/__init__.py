"""Core utilities: exceptions, logging context and version information."""

from .exceptions import (
    ActualSyncError,
    BudgetClientError,
    ChannelDeliveryError,
    ConfigurationError,
    ErrorCategory,
    ErrorSeverity,
    NotificationError,
)
from .log_context import ServerLogAdapter, get_server_logger
from .version import get_version

__all__ = [
    "ActualSyncError",
    "BudgetClientError",
    "ChannelDeliveryError",
    "ConfigurationError",
    "ErrorCategory",
    "ErrorSeverity",
    "NotificationError",
    "ServerLogAdapter",
    "get_server_logger",
    "get_version",
]
