from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DD" is interpreted as midnight UTC
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


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


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """[start, end) of a calendar day as UTC-naive datetimes."""
    start = datetime(day.year, day.month, day.day)
    return start, start + timedelta(days=1)


def period_start(period: str, now: Optional[datetime] = None) -> datetime:
    """
    Start of a reporting period containing `now`.

    - today: midnight of the current day
    - week: midnight of the Monday of the current week
    - month: midnight of the first day of the current month
    """
    now = now or utcnow()
    today_start, _ = day_bounds(now.date())
    if period == "today":
        return today_start
    if period == "week":
        return today_start - timedelta(days=now.weekday())
    if period == "month":
        return today_start.replace(day=1)
    raise ValueError(f"unknown period: {period}")
