"""
Unified timezone handling utilities for Actual Sync.

This module provides consistent timezone handling across the entire application.
"""

from datetime import datetime
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def get_system_timezone() -> ZoneInfo:
    """
    Get the system's local timezone.

    Returns:
        ZoneInfo object representing the local timezone
    """
    try:
        # Try "localtime" first (works on Linux/WSL)
        return ZoneInfo("localtime")
    except ZoneInfoNotFoundError:
        local_tz = datetime.now().astimezone().tzinfo
        if hasattr(local_tz, "key"):
            key = getattr(local_tz, "key")  # pyright: ignore[reportAny]
            if isinstance(key, str):
                return ZoneInfo(key)
        return ZoneInfo("UTC")


def resolve_timezone(name: str | None) -> ZoneInfo:
    """
    Resolve a configured IANA timezone name.

    Args:
        name: Timezone name such as "Europe/Madrid", or None for the system zone

    Returns:
        The matching ZoneInfo

    Raises:
        ValueError: If the timezone name is unknown
    """
    if not name:
        return get_system_timezone()
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def get_system_now(tz: ZoneInfo | None = None) -> datetime:
    """
    Get the current timezone-aware datetime.

    Args:
        tz: Timezone to use; defaults to the system timezone

    Returns:
        Current datetime (timezone-aware)
    """
    return datetime.now(tz or get_system_timezone())


def ensure_timezone_aware(dt: datetime, tz: ZoneInfo | None = None) -> datetime:
    """
    Ensure a datetime object is timezone-aware.

    Naive datetimes are assumed to be in ``tz`` (or the system timezone).
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz or get_system_timezone())
    return dt
