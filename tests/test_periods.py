from datetime import datetime

from code_time_tracker.models import TimePeriod
from code_time_tracker.periods import PeriodManager, PeriodWatcher


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class TestPeriodManager:
    def test_initial_boundaries(self):
        clock = FakeClock(datetime(2024, 5, 15, 13, 0))
        manager = PeriodManager(clock)
        assert manager.period_start(TimePeriod.TODAY) == datetime(2024, 5, 15)
        assert manager.period_start(TimePeriod.THIS_WEEK) == datetime(2024, 5, 13)
        assert manager.period_start(TimePeriod.THIS_MONTH) == datetime(2024, 5, 1)
        assert manager.period_start(TimePeriod.THIS_YEAR) == datetime(2024, 1, 1)

    def test_change_detected_until_reset(self):
        clock = FakeClock(datetime(2024, 5, 15, 23, 59))
        manager = PeriodManager(clock)
        clock.now = datetime(2024, 5, 16, 0, 0)
        assert manager.is_period_changed(TimePeriod.TODAY)
        assert not manager.is_period_changed(TimePeriod.THIS_WEEK)
        manager.reset_period(TimePeriod.TODAY)
        assert not manager.is_period_changed(TimePeriod.TODAY)


class TestPeriodWatcher:
    def test_new_year_resets_every_period(self):
        clock = FakeClock(datetime(2023, 12, 31, 23, 59, 30))
        resets = []
        watcher = PeriodWatcher(PeriodManager(clock), resets.append, clock=clock)
        assert watcher.tick() == []

        clock.now = datetime(2024, 1, 1, 0, 0, 5)
        assert watcher.tick() == list(TimePeriod)
        assert resets == list(TimePeriod)

    def test_work_only_once_per_minute(self):
        clock = FakeClock(datetime(2024, 5, 15, 23, 59, 10))
        resets = []
        watcher = PeriodWatcher(PeriodManager(clock), resets.append, clock=clock)
        watcher.tick()
        # Same minute: the boundary is not even inspected.
        clock.now = datetime(2024, 5, 15, 23, 59, 50)
        assert watcher.tick() == []

        clock.now = datetime(2024, 5, 16, 0, 0, 1)
        assert watcher.tick() == [TimePeriod.TODAY]
        assert watcher.tick() == []
