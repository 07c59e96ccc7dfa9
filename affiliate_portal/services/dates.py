"""Date helpers shared by the stats aggregator, the event store queries and the leaderboard.

All bucketing is done on UTC calendar days. Naive datetimes (SQLite hands them
back without tzinfo) are taken to already be UTC.
"""
from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Union

DateLike = Union[date, datetime, str]


def to_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp, accepting a trailing Z."""
    return to_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


def utc_day(value: DateLike) -> date:
    """Calendar day (UTC) of a timestamp, date or ISO string."""
    if isinstance(value, str):
        value = parse_timestamp(value) if "T" in value or " " in value else date.fromisoformat(value)
    if isinstance(value, datetime):
        return to_utc(value).date()
    return value


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def day_key(day: date) -> str:
    return day.isoformat()


def day_range(start: DateLike, days: int) -> list[date]:
    """`days` consecutive calendar days starting at `start` (inclusive)."""
    if days < 1:
        raise ValueError(f"window must cover at least one day, got {days}")
    first = utc_day(start)
    return [first + timedelta(days=i) for i in range(days)]


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def window_start_for(end_day: date, days: int) -> date:
    """First day of a `days`-long window that ends on (and includes) `end_day`."""
    if days < 1:
        raise ValueError(f"window must cover at least one day, got {days}")
    return end_day - timedelta(days=days - 1)


def window_bounds(start_day: date, days: int) -> tuple[datetime, datetime]:
    """Half-open [start, end) datetime range covering `days` whole UTC days."""
    if days < 1:
        raise ValueError(f"window must cover at least one day, got {days}")
    start = start_of_day(start_day)
    return start, start + timedelta(days=days)


def start_of_month(day: date) -> date:
    return day.replace(day=1)
