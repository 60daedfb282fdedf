"""Domain models for tracked coding time."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional


class TimePeriod(str, Enum):
    """Rolling periods used for live counters and summaries."""

    TODAY = "today"
    THIS_WEEK = "this_week"
    THIS_MONTH = "this_month"
    THIS_YEAR = "this_year"


class TimeOfDay(str, Enum):
    """Fixed six-hour buckets of the day."""

    NIGHT = "Night"
    MORNING = "Morning"
    DAYTIME = "Daytime"
    EVENING = "Evening"

    @property
    def start_hour(self) -> int:
        return _TIME_OF_DAY_START[self]

    @classmethod
    def for_hour(cls, hour: int) -> "TimeOfDay":
        return list(cls)[hour // 6]


_TIME_OF_DAY_START = {
    TimeOfDay.NIGHT: 0,
    TimeOfDay.MORNING: 6,
    TimeOfDay.DAYTIME: 12,
    TimeOfDay.EVENING: 18,
}


def _new_uuid() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class CodingSession:
    """A contiguous block of coding in one project and language."""

    project_name: str
    language: str
    platform: str
    ide_name: str
    start_time: datetime
    end_time: datetime
    user_id: str = ""
    session_uuid: str = field(default_factory=_new_uuid)
    last_modified: datetime = field(default_factory=datetime.now)
    is_deleted: bool = False
    is_synced: bool = False
    synced_at: Optional[datetime] = None
    sync_version: int = 0

    def __post_init__(self) -> None:
        if self.end_time < self.start_time:
            raise ValueError(
                f"end_time {self.end_time} precedes start_time {self.start_time}"
            )

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


@dataclass(frozen=True, slots=True)
class SessionSpan:
    """The subset of a stored session the aggregation engine works with."""

    start_time: datetime
    end_time: datetime
    project_name: str = ""
    language: str = ""


def _whole_seconds(value: timedelta) -> int:
    return int(value.total_seconds())


@dataclass(frozen=True, slots=True)
class DailySummary:
    date: date
    total_duration: timedelta

    @property
    def seconds(self) -> int:
        return _whole_seconds(self.total_duration)


@dataclass(frozen=True, slots=True)
class DailyHourUsage:
    """Average time per occurrence of an ISO weekday (1=Monday) at an hour."""

    day_of_week: int
    hour_of_day: int
    total_duration: timedelta

    @property
    def seconds(self) -> int:
        return _whole_seconds(self.total_duration)


@dataclass(frozen=True, slots=True)
class HourlyUsage:
    hour_of_day: int
    total_duration: timedelta

    @property
    def seconds(self) -> int:
        return _whole_seconds(self.total_duration)


@dataclass(frozen=True, slots=True)
class LanguageUsage:
    language: str
    total_duration: timedelta

    @property
    def seconds(self) -> int:
        return _whole_seconds(self.total_duration)


@dataclass(frozen=True, slots=True)
class ProjectUsage:
    project_name: str
    total_duration: timedelta

    @property
    def seconds(self) -> int:
        return _whole_seconds(self.total_duration)


@dataclass(frozen=True, slots=True)
class TimeOfDayUsage:
    time_of_day: TimeOfDay
    total_duration: timedelta

    @property
    def seconds(self) -> int:
        return _whole_seconds(self.total_duration)


@dataclass(frozen=True, slots=True)
class CodingStreaks:
    current_streak: int = 0
    max_streak: int = 0


@dataclass(frozen=True, slots=True)
class SummaryData:
    """Headline totals shown on the dashboard."""

    today: timedelta = timedelta(0)
    daily_average: timedelta = timedelta(0)
    this_week: timedelta = timedelta(0)
    this_month: timedelta = timedelta(0)
    this_year: timedelta = timedelta(0)
    total: timedelta = timedelta(0)

    def as_seconds(self) -> dict[str, int]:
        return {
            "today": _whole_seconds(self.today),
            "daily_average": _whole_seconds(self.daily_average),
            "this_week": _whole_seconds(self.this_week),
            "this_month": _whole_seconds(self.this_month),
            "this_year": _whole_seconds(self.this_year),
            "total": _whole_seconds(self.total),
        }
