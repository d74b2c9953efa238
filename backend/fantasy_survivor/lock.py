"""
Weekly lock clock: Wednesday 8:00 PM America/New_York.

All civil-to-absolute conversions go through zoneinfo so the UTC offset is
resolved for the target date. Values returned are timezone-aware UTC.
"""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

# Loaded at import: a missing tz database fails at process start, not per call.
LOCK_ZONE = ZoneInfo("America/New_York")
LOCK_WEEKDAY = 2  # datetime.weekday(): Monday=0, Wednesday=2
LOCK_TIME = time(20, 0, 0)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are stored UTC (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _lock_instant(civil_day) -> datetime:
    return datetime.combine(civil_day, LOCK_TIME, tzinfo=LOCK_ZONE).astimezone(timezone.utc)


def lock_time_for_week(air_date: datetime) -> datetime:
    """
    Wednesday 8pm ET on or before the air date's civil date.

    An episode airing Thursday locked the evening before; one airing on a
    Wednesday locks at 8pm that same day.
    """
    local = as_utc(air_date).astimezone(LOCK_ZONE)
    days_back = (local.weekday() - LOCK_WEEKDAY) % 7
    return _lock_instant(local.date() - timedelta(days=days_back))


def next_lock_time(from_: datetime | None = None) -> datetime:
    """
    Next Wednesday 8pm ET strictly after `from_`.

    On a Wednesday at or after 20:00:00 this week's lock has already been
    reached, so the result is the following Wednesday.
    """
    local = as_utc(from_ or utcnow()).astimezone(LOCK_ZONE)
    days_ahead = (LOCK_WEEKDAY - local.weekday()) % 7
    if days_ahead == 0 and local.time() >= LOCK_TIME:
        days_ahead = 7
    return _lock_instant(local.date() + timedelta(days=days_ahead))


def is_locked(lock_at: datetime, now: datetime | None = None) -> bool:
    return as_utc(now or utcnow()) >= as_utc(lock_at)
