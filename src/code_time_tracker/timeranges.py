"""Period boundaries and interval clipping/splitting.

Weeks follow ISO 8601 (Monday start) regardless of locale. All ranges are
closed-open ``[start, end)`` and every split yields pieces whose durations sum
exactly to the input interval.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime, time, timedelta
from typing import Callable, Iterator, Optional

from .models import TimeOfDay, TimePeriod

ONE_DAY = timedelta(days=1)
ONE_HOUR = timedelta(hours=1)


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def day_range(reference: date) -> tuple[datetime, datetime]:
    start = datetime.combine(reference, time.min)
    return start, start + ONE_DAY


def week_range(reference: date) -> tuple[datetime, datetime]:
    monday = reference - timedelta(days=reference.weekday())
    start = datetime.combine(monday, time.min)
    return start, start + timedelta(weeks=1)


def month_range(reference: date) -> tuple[datetime, datetime]:
    start = datetime(reference.year, reference.month, 1)
    if reference.month == 12:
        end = datetime(reference.year + 1, 1, 1)
    else:
        end = datetime(reference.year, reference.month + 1, 1)
    return start, end


def year_range(reference: date) -> tuple[datetime, datetime]:
    return datetime(reference.year, 1, 1), datetime(reference.year + 1, 1, 1)


_PERIOD_RANGES: dict[TimePeriod, Callable[[date], tuple[datetime, datetime]]] = {
    TimePeriod.TODAY: day_range,
    TimePeriod.THIS_WEEK: week_range,
    TimePeriod.THIS_MONTH: month_range,
    TimePeriod.THIS_YEAR: year_range,
}


def period_range(period: TimePeriod, reference: date) -> tuple[datetime, datetime]:
    return _PERIOD_RANGES[period](reference)


def period_start(period: TimePeriod, now: datetime) -> datetime:
    return period_range(period, now.date())[0]


def clip(
    start: datetime,
    end: datetime,
    range_start: datetime,
    range_end: datetime,
) -> Optional[tuple[datetime, datetime]]:
    """Return the overlap of ``[start, end)`` with the range, if non-empty."""
    effective_start = max(start, range_start)
    effective_end = min(end, range_end)
    if effective_start >= effective_end:
        return None
    return effective_start, effective_end


def overlap_duration(
    start: datetime,
    end: datetime,
    range_start: datetime,
    range_end: datetime,
) -> timedelta:
    clipped = clip(start, end, range_start, range_end)
    if clipped is None:
        return timedelta(0)
    return clipped[1] - clipped[0]


def _split(
    start: datetime, end: datetime, next_boundary: Callable[[datetime], datetime]
) -> Iterator[tuple[datetime, datetime]]:
    cursor = start
    while cursor < end:
        boundary = min(next_boundary(cursor), end)
        yield cursor, boundary
        cursor = boundary


def _next_midnight(value: datetime) -> datetime:
    return start_of_day(value) + ONE_DAY


def _next_hour(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0) + ONE_HOUR


def _next_time_of_day(value: datetime) -> datetime:
    bucket_start = TimeOfDay.for_hour(value.hour).start_hour
    return start_of_day(value) + timedelta(hours=bucket_start + 6)


def split_by_day(start: datetime, end: datetime) -> Iterator[tuple[date, timedelta]]:
    for piece_start, piece_end in _split(start, end, _next_midnight):
        yield piece_start.date(), piece_end - piece_start


def split_by_hour(
    start: datetime, end: datetime
) -> Iterator[tuple[date, int, timedelta]]:
    """Yield ``(day, hour, duration)`` for every hour the interval touches."""
    for piece_start, piece_end in _split(start, end, _next_hour):
        yield piece_start.date(), piece_start.hour, piece_end - piece_start


def split_by_time_of_day(
    start: datetime, end: datetime
) -> Iterator[tuple[TimeOfDay, timedelta]]:
    for piece_start, piece_end in _split(start, end, _next_time_of_day):
        yield TimeOfDay.for_hour(piece_start.hour), piece_end - piece_start


def calendar_days(start: datetime, end: datetime) -> list[date]:
    """Every calendar day touched by ``[start, end)``."""
    if end <= start:
        return []
    first = start.date()
    last = (end - timedelta(microseconds=1)).date()
    return [first + timedelta(days=offset) for offset in range((last - first).days + 1)]


def weekday_occurrences(start: datetime, end: datetime) -> Counter[int]:
    """Count how often each ISO weekday (1=Monday) occurs in the range."""
    return Counter(day.isoweekday() for day in calendar_days(start, end))
