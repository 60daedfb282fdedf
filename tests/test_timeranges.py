from datetime import date, datetime, timedelta

import pytest

from code_time_tracker.models import TimeOfDay, TimePeriod
from code_time_tracker.timeranges import (
    calendar_days,
    clip,
    month_range,
    overlap_duration,
    period_range,
    period_start,
    split_by_day,
    split_by_hour,
    split_by_time_of_day,
    week_range,
    weekday_occurrences,
    year_range,
)


class TestPeriodRanges:
    def test_week_starts_on_monday(self):
        # 2024-05-16 is a Thursday.
        start, end = week_range(date(2024, 5, 16))
        assert start == datetime(2024, 5, 13)
        assert end == datetime(2024, 5, 20)

    def test_sunday_belongs_to_previous_monday(self):
        start, _ = week_range(date(2024, 5, 19))
        assert start == datetime(2024, 5, 13)

    def test_december_month_rolls_into_next_year(self):
        assert month_range(date(2023, 12, 31)) == (datetime(2023, 12, 1), datetime(2024, 1, 1))

    def test_year_range(self):
        assert year_range(date(2024, 7, 1)) == (datetime(2024, 1, 1), datetime(2025, 1, 1))

    def test_period_start_for_today(self):
        now = datetime(2024, 3, 5, 17, 42, 10)
        assert period_start(TimePeriod.TODAY, now) == datetime(2024, 3, 5)
        assert period_range(TimePeriod.TODAY, now.date())[1] == datetime(2024, 3, 6)


class TestClip:
    def test_session_straddling_range_start(self):
        clipped = clip(
            datetime(2024, 1, 1, 23, 30),
            datetime(2024, 1, 2, 0, 30),
            datetime(2024, 1, 2),
            datetime(2024, 1, 3),
        )
        assert clipped == (datetime(2024, 1, 2), datetime(2024, 1, 2, 0, 30))

    def test_session_touching_range_end_does_not_count(self):
        assert (
            clip(
                datetime(2024, 1, 3),
                datetime(2024, 1, 3, 1),
                datetime(2024, 1, 2),
                datetime(2024, 1, 3),
            )
            is None
        )

    def test_overlap_duration_of_disjoint_ranges_is_zero(self):
        assert overlap_duration(
            datetime(2024, 1, 1, 8),
            datetime(2024, 1, 1, 9),
            datetime(2024, 1, 1, 10),
            datetime(2024, 1, 1, 11),
        ) == timedelta(0)


class TestSplits:
    def test_split_by_day_at_midnight(self):
        pieces = list(split_by_day(datetime(2024, 1, 1, 23, 30), datetime(2024, 1, 2, 0, 30)))
        assert pieces == [
            (date(2024, 1, 1), timedelta(minutes=30)),
            (date(2024, 1, 2), timedelta(minutes=30)),
        ]

    def test_split_by_hour_conserves_duration(self):
        start = datetime(2024, 2, 28, 22, 17, 5)
        end = datetime(2024, 3, 1, 3, 4, 59)
        pieces = list(split_by_hour(start, end))
        assert sum((duration for _, _, duration in pieces), timedelta(0)) == end - start
        assert pieces[0] == (date(2024, 2, 28), 22, timedelta(minutes=42, seconds=55))
        assert pieces[-1] == (date(2024, 3, 1), 3, timedelta(minutes=4, seconds=59))

    def test_split_by_time_of_day_buckets(self):
        pieces = list(split_by_time_of_day(datetime(2024, 1, 1, 5), datetime(2024, 1, 1, 13)))
        assert pieces == [
            (TimeOfDay.NIGHT, timedelta(hours=1)),
            (TimeOfDay.MORNING, timedelta(hours=6)),
            (TimeOfDay.DAYTIME, timedelta(hours=1)),
        ]

    def test_empty_interval_yields_nothing(self):
        moment = datetime(2024, 1, 1, 12)
        assert list(split_by_day(moment, moment)) == []

    @pytest.mark.parametrize("hour, bucket", [(0, "Night"), (6, "Morning"), (12, "Daytime"), (23, "Evening")])
    def test_time_of_day_for_hour(self, hour, bucket):
        assert TimeOfDay.for_hour(hour).value == bucket


class TestCalendarDays:
    def test_range_ending_at_midnight_excludes_that_day(self):
        assert calendar_days(datetime(2024, 1, 1), datetime(2024, 1, 3)) == [
            date(2024, 1, 1),
            date(2024, 1, 2),
        ]

    def test_weekday_occurrences(self):
        # January 2024 starts on a Monday: five Mondays through Wednesdays.
        counts = weekday_occurrences(datetime(2024, 1, 1), datetime(2024, 2, 1))
        assert counts[1] == 5
        assert counts[3] == 5
        assert counts[4] == 4
        assert sum(counts.values()) == 31
