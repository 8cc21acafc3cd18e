"""
Cron scheduling utilities for Actual Sync.

This module wraps croniter for next-run calculations and renders simple
cron expressions in a human-readable form for startup messages.
"""

from datetime import datetime
from zoneinfo import ZoneInfo

from croniter import croniter

from .timezone import ensure_timezone_aware, get_system_now

_DAY_NAMES = {
    "0": "Sunday",
    "1": "Monday",
    "2": "Tuesday",
    "3": "Wednesday",
    "4": "Thursday",
    "5": "Friday",
    "6": "Saturday",
    "7": "Sunday",
}


def is_valid_cron(expression: str) -> bool:
    """
    Check whether a five-field cron expression is valid.

    Examples:
        >>> is_valid_cron("0 3 * * *")
        True
        >>> is_valid_cron("0 3 * *")
        False
    """
    if len(expression.split()) != 5:
        return False
    return bool(croniter.is_valid(expression))


def calculate_next_run(
    expression: str, current_time: datetime | None = None, tz: ZoneInfo | None = None
) -> datetime:
    """
    Calculate the next firing time of a cron expression.

    Args:
        expression: Five-field cron expression
        current_time: Reference time (defaults to now)
        tz: Timezone the expression is evaluated in

    Returns:
        Next firing time, strictly after ``current_time`` (timezone-aware)
    """
    if current_time is None:
        current_time = get_system_now(tz)
    else:
        current_time = ensure_timezone_aware(current_time, tz)
        if tz is not None:
            current_time = current_time.astimezone(tz)

    next_run: datetime = croniter(expression, current_time).get_next(datetime)
    return ensure_timezone_aware(next_run, tz)


def cron_to_human(expression: str) -> str:
    """
    Convert a simple cron expression to a human-readable description.

    Expressions that don't fit the minute/hour/day-of-week pattern are
    returned unchanged.

    Examples:
        >>> cron_to_human("0 5 * * *")
        'Daily at 05:00'
        >>> cron_to_human("30 6 * * 1-5")
        '30 6 * * 1-5'
        >>> cron_to_human("0 5 * * 1,2,3,4,5")
        'Weekdays at 05:00'
    """
    parts = expression.split()
    if len(parts) != 5:
        return expression

    minute, hour, day_of_month, month, day_of_week = parts
    if not (minute.isdigit() and hour.isdigit()):
        return expression
    if day_of_month != "*" or month != "*":
        return expression

    time_str = f"{hour.zfill(2)}:{minute.zfill(2)}"
    if day_of_week == "*":
        return f"Daily at {time_str}"

    day_keys = [d.strip() for d in day_of_week.split(",")]
    if any(key not in _DAY_NAMES for key in day_keys):
        return expression

    days = list(dict.fromkeys(_DAY_NAMES[key] for key in day_keys))
    if len(days) == 7:
        return f"Daily at {time_str}"
    if len(days) == 5 and "Saturday" not in days and "Sunday" not in days:
        return f"Weekdays at {time_str}"
    if len(days) == 1:
        return f"Every {days[0]} at {time_str}"
    return f"{', '.join(days)} at {time_str}"
