# coachcal/core/timeutil.py
from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from coachcal.core.errors import ValidationError

UTC = ZoneInfo("UTC")

HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

# Day numbering used in stored working hours: 0=Sun .. 6=Sat
DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def get_zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(f"Unknown time zone '{name}'.")


def hhmm_to_minutes(value: str) -> int:
    """'09:30' -> 570"""
    m = HHMM_RE.match(value or "")
    if not m:
        raise ValidationError(f"Invalid time '{value}'. Please use HH:MM format.")
    return int(m.group(1)) * 60 + int(m.group(2))


def day_of_week(day: date) -> int:
    """Sunday-based weekday (Python's weekday() is Monday-based)."""
    return (day.weekday() + 1) % 7


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid date. Please use YYYY-MM-DD.")


def local_minutes_to_utc(day: date, minutes: int, tz: ZoneInfo) -> datetime:
    """Wall-clock minute offset on ``day`` in ``tz`` -> aware UTC instant."""
    hours, mins = divmod(minutes, 60)
    local = datetime(day.year, day.month, day.day, hours, mins, tzinfo=tz)
    return local.astimezone(UTC)


def local_day_bounds(day: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """[start, end) of a local calendar day as UTC instants."""
    start = datetime.combine(day, time(0, 0), tzinfo=tz).astimezone(UTC)
    end = datetime.combine(day + timedelta(days=1), time(0, 0), tzinfo=tz).astimezone(UTC)
    return start, end


def local_date_of(instant: datetime, tz: ZoneInfo) -> date:
    return ensure_utc(instant).astimezone(tz).date()


def ensure_utc(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_to_utc(value: str | datetime, tz: ZoneInfo = UTC) -> datetime:
    """
    Accept ISO8601 with offset, or a naive value interpreted in ``tz``.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except (AttributeError, ValueError):
            raise ValidationError(
                "Invalid date/time. Please provide an ISO 8601 timestamp (e.g., 2025-09-10T10:00:00Z)."
            )
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt.astimezone(UTC)


def iter_days(start: date, end: date):
    cur = start
    while cur <= end:
        yield cur
        cur += timedelta(days=1)
