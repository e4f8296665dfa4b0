"""Shared timestamp normalization and calendar week helpers."""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    """Render a timestamp as a fixed-width UTC ISO string.

    Every stored timestamp goes through here so that string comparison in
    SQL (``clock_out_time > clock_in_time``) matches chronological order.
    """
    return _as_utc(value).isoformat(timespec="microseconds")


def parse_iso(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return _as_utc(value)
    token = str(value).strip()
    if not token:
        return None
    try:
        return _as_utc(datetime.fromisoformat(token.replace("Z", "+00:00")))
    except ValueError:
        return None


def elapsed_seconds(start: datetime, end: datetime) -> int:
    """Whole seconds between two instants, floored."""
    delta = _as_utc(end) - _as_utc(start)
    return int(delta.total_seconds() // 1)


def week_start(value: datetime | date) -> date:
    """Monday of the calendar week containing ``value`` (UTC for datetimes)."""
    day = _as_utc(value).date() if isinstance(value, datetime) else value
    return day - timedelta(days=day.weekday())


def previous_week_start(now: datetime | date) -> date:
    return week_start(now) - timedelta(weeks=1)


def parse_week(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` token and snap it to the start of its week."""
    return week_start(date.fromisoformat(value.strip()))
