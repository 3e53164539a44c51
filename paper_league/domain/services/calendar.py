"""ISO week arithmetic.

Week ids have the form "YYYY-Www".  The previous/next week is found by
calendar subtraction from the week's Monday, never by walking the stored
Week collection, so ids resolve correctly across year boundaries
(2026-W01 -> 2025-W52, 2021-W01 -> 2020-W53).
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone

_WEEK_ID_RE = re.compile(r"^(\d{4})-W(\d{2})$")


def iso_week_id(value: date | datetime) -> str:
    """Return the ISO week id containing value (datetimes are read in UTC)."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        value = value.date()
    year, week, _ = value.isocalendar()
    return f"{year}-W{week:02d}"


def parse_week_id(week_id: str) -> tuple[int, int]:
    """Split "2025-W30" into (2025, 30).

    Raises ValueError for malformed ids.
    """
    match = _WEEK_ID_RE.match(week_id or "")
    if match is None:
        raise ValueError(f"Malformed ISO week id: {week_id!r}")
    return int(match.group(1)), int(match.group(2))


def week_monday(week_id: str) -> date:
    year, week = parse_week_id(week_id)
    return date.fromisocalendar(year, week, 1)


def prev_week_id(week_id: str) -> str:
    return iso_week_id(week_monday(week_id) - timedelta(days=7))


def next_week_id(week_id: str) -> str:
    return iso_week_id(week_monday(week_id) + timedelta(days=7))


def week_bounds(week_id: str, end_weekday: int = 4, end_hour: int = 21) -> tuple[datetime, datetime]:
    """Market period of a week: Monday 00:00 UTC to end_weekday end_hour:00 UTC.

    end_weekday counts from Monday = 0, so the default is Friday 21:00 UTC.
    """
    monday = week_monday(week_id)
    start = datetime.combine(monday, time(0, 0), tzinfo=timezone.utc)
    end = datetime.combine(monday + timedelta(days=end_weekday), time(end_hour, 0), tzinfo=timezone.utc)
    return start, end
