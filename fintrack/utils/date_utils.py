"""Date manipulation utilities"""

from datetime import date, datetime, timezone
from typing import List


def to_naive_utc(value: datetime) -> datetime:
    """Aware datetimes are converted to UTC and stripped; naive ones are assumed UTC already"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def truncate_to_minute(value: datetime) -> datetime:
    """Drop seconds/microseconds after normalizing to naive UTC"""
    return to_naive_utc(value).replace(second=0, microsecond=0)


def month_key(value: date) -> str:
    """Calendar month label, e.g. "2025-01" """
    return f"{value.year}-{value.month:02d}"


def generate_month_range(start: date, end: date) -> List[str]:
    """Generate chronological month labels from start to end (inclusive)"""
    months = []
    year, month = start.year, start.month
    while (year, month) <= (end.year, end.month):
        months.append(f"{year}-{month:02d}")
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return months


def days_inclusive(start: date, end: date) -> int:
    """Number of calendar days covered by [start, end], at least one"""
    return max((end - start).days + 1, 1)
