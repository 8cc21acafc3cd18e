"""
Unified time management utilities for Actual Sync.

This package provides consistent timezone, clock and cron utilities
across the entire application.
"""

from .clock import Clock, ManualClock, SystemClock
from .timezone import (
    get_system_timezone,
    get_system_now,
    ensure_timezone_aware,
    resolve_timezone,
)
from .scheduling import (
    calculate_next_run,
    cron_to_human,
    is_valid_cron,
)

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "get_system_timezone",
    "get_system_now",
    "ensure_timezone_aware",
    "resolve_timezone",
    "calculate_next_run",
    "cron_to_human",
    "is_valid_cron",
]
