from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def store_tz() -> ZoneInfo:
    return ZoneInfo(current_app.config.get("STORE_TIMEZONE") or "UTC")


def store_today() -> date:
    """Calendar date at the store right now."""
    return datetime.now(store_tz()).date()


def to_store_date(dt: datetime) -> date:
    """Calendar date at the store for a UTC-naive datetime."""
    return dt.replace(tzinfo=timezone.utc).astimezone(store_tz()).date()


def store_day_bounds(day: date) -> tuple[datetime, datetime]:
    """
    UTC-naive [start, end) range covering one store-local calendar day.

    Queries filter created_at >= start AND created_at < end.
    """
    tz = store_tz()
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return (
        start.astimezone(timezone.utc).replace(tzinfo=None),
        end.astimezone(timezone.utc).replace(tzinfo=None),
    )


def parse_date(value: Optional[str]) -> Optional[date]:
    """
    Parse a YYYY-MM-DD string.

    - None / "" -> None
    - anything else that is not an ISO date raises ValueError
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    return date.fromisoformat(s)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")
