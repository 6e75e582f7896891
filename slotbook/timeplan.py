"""Time helpers shared by the generator, validation and storage layers."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import pandas as pd


def parse_time_string(value: str | time) -> time:
    """Parse "HH:MM" (or pass through a time)."""
    if isinstance(value, time):
        return value
    hour, minute = [int(x) for x in str(value).strip().split(":")[:2]]
    return time(hour, minute)


def minutes_of_day(value: str | time) -> int:
    t = parse_time_string(value)
    return t.hour * 60 + t.minute


def format_minutes(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_of_week(day: date) -> int:
    """Weekday index with 0=Sunday .. 6=Saturday."""
    return (day.weekday() + 1) % 7


def to_utc(value: datetime) -> datetime:
    """Aware UTC datetime. Naive values are taken to already be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_naive_utc(value: datetime) -> datetime:
    """Naive UTC datetime, the form bookings are stored in."""
    return to_utc(value).replace(tzinfo=None)


def local_to_utc(day: date, minutes: int, tz: str) -> datetime:
    """Convert a local wall-clock time on a date to an aware UTC instant."""
    naive = datetime.combine(day, time(0, 0)) + timedelta(minutes=minutes)
    if tz in ("UTC", "utc"):
        return naive.replace(tzinfo=timezone.utc)
    stamp = pd.Timestamp(naive).tz_localize(tz, ambiguous=True, nonexistent="shift_forward")
    return to_utc(stamp.tz_convert("UTC").to_pydatetime())


def utc_to_local_date(value: datetime, tz: str) -> date:
    """Calendar date of a UTC instant in the given timezone."""
    return pd.Timestamp(to_utc(value)).tz_convert(tz).date()


def parse_instant(value: str | datetime) -> datetime:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if isinstance(value, datetime):
        return to_utc(value)
    stamp = pd.Timestamp(value)
    if stamp.tzinfo is None:
        stamp = stamp.tz_localize("UTC")
    return to_utc(stamp.tz_convert("UTC").to_pydatetime())


def local_day_bounds(day: date, tz: str) -> tuple[datetime, datetime]:
    """UTC instants of local midnight on a date and on the next date."""
    return local_to_utc(day, 0, tz), local_to_utc(day + timedelta(days=1), 0, tz)
