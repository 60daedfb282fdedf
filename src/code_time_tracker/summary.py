"""Headline statistics with a strategy chosen by dataset size.

Small databases are loaded once as ``(start, end)`` pairs and every figure is
computed in a single pass. Large databases instead run one clipped SUM per
period inside SQLite, plus a total and a first-record-date query.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import date, timedelta
from typing import Optional, Protocol

from .db import (
    fetch_clipped_seconds,
    fetch_first_record_date,
    fetch_record_count,
    fetch_session_times,
    fetch_total_seconds,
)
from .models import SummaryData, TimePeriod
from .timeranges import overlap_duration, period_range

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 20_000


class SummaryStrategy(Protocol):
    name: str

    def compute(self, conn: sqlite3.Connection, today: date) -> SummaryData:
        ...


def daily_average(total: timedelta, first_day: Optional[date], today: date) -> timedelta:
    if first_day is None:
        return timedelta(0)
    days = max(1, (today - first_day).days)
    return timedelta(seconds=int(total.total_seconds()) // days)


class InMemorySummaryStrategy:
    name = "in-memory"

    def compute(self, conn: sqlite3.Connection, today: date) -> SummaryData:
        session_times = fetch_session_times(conn)
        if not session_times:
            return SummaryData()

        ranges = {period: period_range(period, today) for period in TimePeriod}
        totals = {period: timedelta(0) for period in TimePeriod}
        total = timedelta(0)
        first_day: Optional[date] = None

        for start, end in session_times:
            total += end - start
            if first_day is None or start.date() < first_day:
                first_day = start.date()
            for period, (range_start, range_end) in ranges.items():
                totals[period] += overlap_duration(start, end, range_start, range_end)

        return SummaryData(
            today=totals[TimePeriod.TODAY],
            daily_average=daily_average(total, first_day, today),
            this_week=totals[TimePeriod.THIS_WEEK],
            this_month=totals[TimePeriod.THIS_MONTH],
            this_year=totals[TimePeriod.THIS_YEAR],
            total=total,
        )


class PushdownSummaryStrategy:
    name = "pushdown"

    def compute(self, conn: sqlite3.Connection, today: date) -> SummaryData:
        totals = {
            period: timedelta(seconds=fetch_clipped_seconds(conn, *period_range(period, today)))
            for period in TimePeriod
        }
        total = timedelta(seconds=fetch_total_seconds(conn))
        first_day = fetch_first_record_date(conn)
        return SummaryData(
            today=totals[TimePeriod.TODAY],
            daily_average=daily_average(total, first_day, today),
            this_week=totals[TimePeriod.THIS_WEEK],
            this_month=totals[TimePeriod.THIS_MONTH],
            this_year=totals[TimePeriod.THIS_YEAR],
            total=total,
        )


def select_strategy(record_count: int, threshold: int = DEFAULT_THRESHOLD) -> SummaryStrategy:
    if record_count < threshold:
        return InMemorySummaryStrategy()
    return PushdownSummaryStrategy()


def compute_summary(
    conn: sqlite3.Connection,
    today: Optional[date] = None,
    threshold: int = DEFAULT_THRESHOLD,
) -> SummaryData:
    """Compute the headline figures; any failure yields an all-zero summary."""
    today = today or date.today()
    try:
        record_count = fetch_record_count(conn)
        strategy = select_strategy(record_count, threshold)
        logger.info("Using %s summary strategy (records: %d).", strategy.name, record_count)
        return strategy.compute(conn, today)
    except Exception:
        logger.exception("Summary computation failed.")
        return SummaryData()
