"""
Visible time range for each zoom level.
"""
from __future__ import annotations

from datetime import datetime, time, timedelta
from enum import Enum
from typing import Optional


class ZoomLevel(Enum):
    """Zoom levels of the time axis."""
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"


def start_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.min)


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time(23, 59, 59, 999000))


def _quarter_bounds(now: datetime) -> tuple[datetime, datetime]:
    first_month = (now.month - 1) // 3 * 3 + 1
    start = datetime(now.year, first_month, 1)
    if first_month == 10:
        next_quarter = datetime(now.year + 1, 1, 1)
    else:
        next_quarter = datetime(now.year, first_month + 3, 1)
    return start, next_quarter - timedelta(days=1)


def visible_range(zoom: ZoomLevel, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
    """
    Time window shown for a zoom level, centred on now.

    Both ends are normalized to whole days (00:00 to 23:59:59.999).
    """
    now = now or datetime.now()

    if zoom is ZoomLevel.HOUR:
        start, end = now - timedelta(hours=6), now + timedelta(hours=6)
    elif zoom is ZoomLevel.DAY:
        start, end = now - timedelta(days=3), now + timedelta(days=3)
    elif zoom is ZoomLevel.WEEK:
        # 21 days: 10 before, 10 after
        start, end = now - timedelta(days=10), now + timedelta(days=10)
    elif zoom is ZoomLevel.MONTH:
        # 28 days
        start, end = now - timedelta(days=14), now + timedelta(days=13)
    elif zoom is ZoomLevel.QUARTER:
        start, end = _quarter_bounds(now)
    elif zoom is ZoomLevel.YEAR:
        start, end = datetime(now.year, 1, 1), datetime(now.year, 12, 31)
    else:
        raise ValueError(f"Unknown zoom level: {zoom!r}")

    return start_of_day(start), end_of_day(end)


def parse_zoom(value: str, default: ZoomLevel = ZoomLevel.DAY) -> ZoomLevel:
    try:
        return ZoomLevel(str(value).lower())
    except ValueError:
        return default
