"""Overlap-aware statistics over stored coding sessions.

Every range query counts only the part of a session inside ``[start, end)``;
bucketed queries additionally split that overlap at day, hour or time-of-day
boundaries. Storage errors are logged and turn into empty results so callers
can always render something. Passing only one of ``start``/``end`` is a caller
error and raises ``ValueError``.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Any, Callable, Iterable, Iterator, Optional, TypeVar

from .db import (
    fetch_all_sessions,
    fetch_overlapping_sessions,
    fetch_time_bounds,
    fetch_total_seconds,
    parse_timestamp,
)
from .models import (
    CodingStreaks,
    DailyHourUsage,
    DailySummary,
    HourlyUsage,
    LanguageUsage,
    ProjectUsage,
    SessionSpan,
    TimeOfDay,
    TimeOfDayUsage,
)
from .timeranges import (
    ONE_DAY,
    calendar_days,
    clip,
    day_range,
    split_by_day,
    split_by_hour,
    split_by_time_of_day,
    weekday_occurrences,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

Range = Optional[tuple[datetime, datetime]]


def _empty_on_storage_error(default: Callable[[], Any]) -> Callable[[T], T]:
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except sqlite3.Error:
                logger.exception("%s failed; returning an empty result.", func.__name__)
                return default()

        return wrapper

    return decorator


def _check_range(start: Optional[datetime], end: Optional[datetime]) -> Range:
    if (start is None) != (end is None):
        raise ValueError("start and end must be given together")
    if start is None or end is None:
        return None
    if end < start:
        raise ValueError(f"end {end} precedes start {start}")
    return start, end


def _to_spans(rows: Iterable[sqlite3.Row]) -> list[SessionSpan]:
    return [
        SessionSpan(
            start_time=parse_timestamp(row["start_time"]),
            end_time=parse_timestamp(row["end_time"]),
            project_name=row["project_name"],
            language=row["language"],
        )
        for row in rows
    ]


def _clipped(
    conn: sqlite3.Connection,
    time_range: Range,
    project_name: Optional[str] = None,
) -> Iterator[tuple[SessionSpan, datetime, datetime]]:
    """Yield each session with its non-empty overlap with the range."""
    if time_range is None:
        spans = _to_spans(fetch_all_sessions(conn))
        if project_name is not None:
            spans = [span for span in spans if span.project_name == project_name]
        for span in spans:
            if span.end_time > span.start_time:
                yield span, span.start_time, span.end_time
        return

    range_start, range_end = time_range
    rows = fetch_overlapping_sessions(conn, range_start, range_end, project_name)
    for span in _to_spans(rows):
        overlap = clip(span.start_time, span.end_time, range_start, range_end)
        if overlap is not None:
            yield span, overlap[0], overlap[1]


@_empty_on_storage_error(lambda: timedelta(0))
def total_coding_time(
    conn: sqlite3.Connection, project_name: Optional[str] = None
) -> timedelta:
    """Total duration of all live sessions, summed inside SQLite."""
    return timedelta(seconds=fetch_total_seconds(conn, project_name))


@_empty_on_storage_error(lambda: timedelta(0))
def coding_time_for_period(
    conn: sqlite3.Connection,
    start: datetime,
    end: datetime,
    project_name: Optional[str] = None,
) -> timedelta:
    time_range = _check_range(start, end)
    total = timedelta(0)
    for _, overlap_start, overlap_end in _clipped(conn, time_range, project_name):
        total += overlap_end - overlap_start
    return total


@_empty_on_storage_error(list)
def daily_coding_time_for_heatmap(
    conn: sqlite3.Connection, start: datetime, end: datetime
) -> list[DailySummary]:
    """Per-day totals for days with any coding time, oldest first."""
    time_range = _check_range(start, end)
    totals: defaultdict[date, timedelta] = defaultdict(timedelta)
    for _, overlap_start, overlap_end in _clipped(conn, time_range):
        for day, duration in split_by_day(overlap_start, overlap_end):
            totals[day] += duration
    return [DailySummary(day, total) for day, total in sorted(totals.items())]


def recent_activity(
    conn: sqlite3.Connection, days: int = 30, today: Optional[date] = None
) -> list[DailySummary]:
    """The last ``days`` days including today, with idle days filled as zero."""
    if days < 1:
        raise ValueError("days must be positive")
    today = today or date.today()
    first_day = today - timedelta(days=days - 1)
    start = day_range(first_day)[0]
    end = day_range(today)[1]
    by_day = {
        summary.date: summary.total_duration
        for summary in daily_coding_time_for_heatmap(conn, start, end)
    }
    return [
        DailySummary(day, by_day.get(day, timedelta(0)))
        for day in (first_day + timedelta(days=offset) for offset in range(days))
    ]


def compute_streaks(days: Iterable[date], today: date) -> CodingStreaks:
    """Longest run of consecutive days, and the run ending today or yesterday."""
    ordered = sorted(set(days), reverse=True)
    if not ordered:
        return CodingStreaks()

    max_streak = run = 1
    for newer, older in zip(ordered, ordered[1:]):
        run = run + 1 if newer - older == ONE_DAY else 1
        max_streak = max(max_streak, run)

    current = 0
    if 0 <= (today - ordered[0]).days <= 1:
        current = 1
        for newer, older in zip(ordered, ordered[1:]):
            if newer - older != ONE_DAY:
                break
            current += 1
    return CodingStreaks(current_streak=current, max_streak=max_streak)


@_empty_on_storage_error(CodingStreaks)
def coding_streaks(
    conn: sqlite3.Connection,
    start: datetime,
    end: datetime,
    today: Optional[date] = None,
) -> CodingStreaks:
    time_range = _check_range(start, end)
    active_days: set[date] = set()
    for _, overlap_start, overlap_end in _clipped(conn, time_range):
        active_days.update(day for day, _ in split_by_day(overlap_start, overlap_end))
    return compute_streaks(active_days, today or date.today())


@_empty_on_storage_error(list)
def daily_hour_distribution(
    conn: sqlite3.Connection,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[DailyHourUsage]:
    """Average time per (ISO weekday, hour) over each weekday's occurrences.

    Without bounds the range runs from the first session start to the last
    session end.
    """
    time_range = _check_range(start, end)
    if time_range is None:
        time_range = fetch_time_bounds(conn)
        if time_range is None:
            return []

    totals: defaultdict[tuple[int, int], timedelta] = defaultdict(timedelta)
    for _, overlap_start, overlap_end in _clipped(conn, time_range):
        for day, hour, duration in split_by_hour(overlap_start, overlap_end):
            totals[(day.isoweekday(), hour)] += duration

    occurrences = weekday_occurrences(*time_range)
    return [
        DailyHourUsage(weekday, hour, total / max(1, occurrences[weekday]))
        for (weekday, hour), total in sorted(totals.items())
    ]


@_empty_on_storage_error(list)
def overall_hourly_distribution(
    conn: sqlite3.Connection,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[HourlyUsage]:
    """Average time per hour of day.

    With an explicit range the divisor is the number of calendar days spanned;
    without one it is the number of distinct days that have coding time.
    """
    time_range = _check_range(start, end)
    totals: defaultdict[int, timedelta] = defaultdict(timedelta)
    active_days: set[date] = set()
    for _, overlap_start, overlap_end in _clipped(conn, time_range):
        for day, hour, duration in split_by_hour(overlap_start, overlap_end):
            totals[hour] += duration
            active_days.add(day)

    if time_range is None:
        divisor = len(active_days)
    else:
        divisor = len(calendar_days(*time_range))
    divisor = max(1, divisor)
    return [HourlyUsage(hour, total / divisor) for hour, total in sorted(totals.items())]


def _ranked(totals: dict[str, timedelta]) -> list[tuple[str, timedelta]]:
    return sorted(totals.items(), key=lambda item: (-item[1], item[0]))


@_empty_on_storage_error(list)
def language_distribution(
    conn: sqlite3.Connection,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[LanguageUsage]:
    time_range = _check_range(start, end)
    totals: defaultdict[str, timedelta] = defaultdict(timedelta)
    for span, overlap_start, overlap_end in _clipped(conn, time_range):
        totals[span.language] += overlap_end - overlap_start
    return [LanguageUsage(language, total) for language, total in _ranked(totals)]


@_empty_on_storage_error(list)
def project_distribution(
    conn: sqlite3.Connection,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[ProjectUsage]:
    time_range = _check_range(start, end)
    totals: defaultdict[str, timedelta] = defaultdict(timedelta)
    for span, overlap_start, overlap_end in _clipped(conn, time_range):
        totals[span.project_name] += overlap_end - overlap_start
    return [ProjectUsage(project, total) for project, total in _ranked(totals)]


@_empty_on_storage_error(list)
def time_of_day_distribution(
    conn: sqlite3.Connection,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> list[TimeOfDayUsage]:
    time_range = _check_range(start, end)
    totals: defaultdict[TimeOfDay, timedelta] = defaultdict(timedelta)
    for _, overlap_start, overlap_end in _clipped(conn, time_range):
        for bucket, duration in split_by_time_of_day(overlap_start, overlap_end):
            totals[bucket] += duration
    return [
        TimeOfDayUsage(bucket, totals[bucket]) for bucket in TimeOfDay if bucket in totals
    ]
