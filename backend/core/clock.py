# backend/core/clock.py

"""
Time helpers shared by the scheduling and notification modules.

Instants are stored as naive UTC datetimes; conversion to a user's local
time only happens when comparing against quiet hours.
"""

from datetime import datetime, timezone
from typing import Callable
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current instant as a naive UTC datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def local_time_hhmm(instant: datetime, tz_name: str) -> str:
    """Wall clock time (HH:MM) of a UTC instant in the given timezone."""
    aware = instant.replace(tzinfo=timezone.utc) if instant.tzinfo is None else instant
    try:
        zone = ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"Unknown timezone {tz_name!r}, falling back to UTC")
        zone = ZoneInfo("UTC")
    return aware.astimezone(zone).strftime("%H:%M")
