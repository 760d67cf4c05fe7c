"""
Time semantics utilities for plan scheduling.

This module provides centralized time handling so that every component
computes execution windows the same way. All timestamps are UTC and
timezone-aware; naive datetimes coming from storage or callers are
interpreted as UTC.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from dateutil.relativedelta import relativedelta

from ..errors import ConfigurationError

# Interval value -> calendar step. MONTHLY is a calendar month, clamped to
# the last day of the target month (Jan 31 -> Feb 28/29).
INTERVAL_STEPS: dict[str, relativedelta] = {
    "DAILY": relativedelta(days=1),
    "WEEKLY": relativedelta(weeks=1),
    "MONTHLY": relativedelta(months=1),
}


def utc_now() -> datetime:
    """Current wall-clock time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(ts: datetime) -> datetime:
    """
    Normalize a datetime to timezone-aware UTC.

    Args:
        ts: Naive (assumed UTC) or aware datetime

    Returns:
        Equivalent aware datetime in UTC
    """
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def next_fire_time(interval: Union[str, Enum], last_fire_time: datetime) -> datetime:
    """
    Compute the next execution time for a plan.

    Args:
        interval: DAILY, WEEKLY or MONTHLY (enum member or its value)
        last_fire_time: Time of the last successful execution

    Returns:
        last_fire_time advanced by one interval step

    Raises:
        ConfigurationError: If the interval is not recognized
    """
    key = getattr(interval, "value", interval)
    step = INTERVAL_STEPS.get(key) if isinstance(key, str) else None
    if step is None:
        raise ConfigurationError(
            f"Invalid interval: {interval}",
            field="interval",
            value=key,
        )
    return ensure_utc(last_fire_time) + step


def is_due(next_execution_time: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """Check whether an execution window has opened."""
    if next_execution_time is None:
        return False
    if now is None:
        now = utc_now()
    return ensure_utc(next_execution_time) <= ensure_utc(now)


def format_timestamp(ts: Optional[datetime]) -> Optional[str]:
    """
    Format a timestamp as fixed-width UTC ISO8601.

    Always carries microseconds so that stored values order correctly
    under plain string comparison.
    """
    if ts is None:
        return None
    return ensure_utc(ts).isoformat(timespec="microseconds")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO8601 timestamp produced by format_timestamp."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))
