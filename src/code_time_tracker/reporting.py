"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Optional, Union

from . import aggregation
from .db import database_connection
from .summary import compute_summary
from .timeranges import day_range


class SummaryPrinter:
    """Render human-readable summaries in the console."""

    def __init__(self, db_path: Path, *, threshold: int = 20_000) -> None:
        self.db_path = Path(db_path)
        self.threshold = threshold

    def print_summary(self, today: Optional[date] = None) -> None:
        today = today or date.today()
        with database_connection(self.db_path) as conn:
            data = compute_summary(conn, today=today, threshold=self.threshold)
        if data.total <= timedelta(0):
            print("No coding time recorded yet.")
            return

        print(f"Coding summary as of {today.strftime('%Y-%m-%d')}")
        print("-" * 40)
        print(f"Today:         {format_duration(data.today)}")
        print(f"This week:     {format_duration(data.this_week)}")
        print(f"This month:    {format_duration(data.this_month)}")
        print(f"This year:     {format_duration(data.this_year)}")
        print(f"Total:         {format_duration(data.total)}")
        print(f"Daily average: {format_duration(data.daily_average)}")

    def print_streaks(self, days: int = 365, today: Optional[date] = None) -> None:
        today = today or date.today()
        start = day_range(today - timedelta(days=days))[0]
        end = day_range(today)[1]
        with database_connection(self.db_path) as conn:
            streaks = aggregation.coding_streaks(conn, start, end, today=today)
        print(f"Current streak: {_plural_days(streaks.current_streak)}")
        print(f"Longest streak: {_plural_days(streaks.max_streak)}")

    def print_breakdown(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 5,
    ) -> None:
        with database_connection(self.db_path) as conn:
            projects = aggregation.project_distribution(conn, start, end)
            languages = aggregation.language_distribution(conn, start, end)
            buckets = aggregation.time_of_day_distribution(conn, start, end)
        if not projects:
            print("No coding time recorded for the selected range.")
            return

        print("Top projects:")
        for item in projects[:limit]:
            print(f"  {item.project_name[:30]:<30} {format_duration(item.total_duration)}")

        print()
        print("Top languages:")
        for item in languages[:limit]:
            print(f"  {item.language[:30]:<30} {format_duration(item.total_duration)}")

        if buckets:
            print()
            print("Time of day:")
            for item in buckets:
                print(f"  {item.time_of_day.value:<30} {format_duration(item.total_duration)}")


def _plural_days(count: int) -> str:
    return f"{count} day" if count == 1 else f"{count} days"


def format_duration(value: Union[timedelta, float]) -> str:
    seconds = value.total_seconds() if isinstance(value, timedelta) else value
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
