"""Wire the tracker, writer and period watcher into one service."""

from __future__ import annotations

import functools
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Callable, Iterator, Optional

from .config import TrackerSettings
from .db import database_connection, open_database
from .events import EventBus, TrackerEvent
from .host import current_platform, detect_host_application
from .models import SummaryData, TimePeriod
from .periods import PeriodManager, PeriodWatcher
from .summary import compute_summary
from .tracker import SessionTracker
from .user import resolve_user_id
from .writer import ConnectionFactory, SessionWriter

logger = logging.getLogger(__name__)


def seed_values(summary: SummaryData) -> dict[TimePeriod, timedelta]:
    return {
        TimePeriod.TODAY: summary.today,
        TimePeriod.THIS_WEEK: summary.this_week,
        TimePeriod.THIS_MONTH: summary.this_month,
        TimePeriod.THIS_YEAR: summary.this_year,
    }


class TrackerService:
    """Owns the lifecycle of every long-lived component.

    ``connect`` is the seam tests use to point the writer at their own
    database; it defaults to opening ``db_path``.
    """

    def __init__(
        self,
        db_path: Path,
        settings: TrackerSettings,
        *,
        user_id_path: Optional[Path] = None,
        connect: Optional[ConnectionFactory] = None,
        ide_name: Optional[str] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.db_path = Path(db_path)
        self.settings = settings
        self.bus = EventBus()
        self._user_id_path = Path(user_id_path or self.db_path.with_name("user_id"))
        self._connect = connect or functools.partial(
            open_database, self.db_path, check_same_thread=False
        )
        self._ide_name = ide_name
        self._clock = clock
        self._lock = threading.Lock()
        self.writer: Optional[SessionWriter] = None
        self.tracker: Optional[SessionTracker] = None
        self.periods: Optional[PeriodManager] = None
        self._watcher: Optional[PeriodWatcher] = None

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """A short-lived read connection."""
        with database_connection(self.db_path) as conn:
            yield conn

    def is_running(self) -> bool:
        with self._lock:
            return self.tracker is not None

    def start(self) -> SessionTracker:
        with self._lock:
            if self.tracker is not None:
                return self.tracker

            conn = self._connect()
            try:
                user_id = resolve_user_id(conn, self._user_id_path)
                summary = compute_summary(
                    conn, today=self._clock().date(), threshold=self.settings.summary_threshold
                )
            finally:
                conn.close()

            writer = SessionWriter(self._connect)
            writer.start()
            tracker = SessionTracker(
                writer,
                self.settings,
                bus=self.bus,
                user_id=user_id,
                platform=current_platform(),
                ide_name=self._ide_name or detect_host_application(),
                clock=self._clock,
            )
            tracker.counters.seed(seed_values(summary))

            periods = PeriodManager(clock=self._clock)
            watcher = PeriodWatcher(
                periods,
                functools.partial(self._on_period_reset, tracker),
                interval=self.settings.period_check_interval,
                clock=self._clock,
            )
            tracker.start()
            watcher.start()

            self.writer = writer
            self.tracker = tracker
            self.periods = periods
            self._watcher = watcher
            logger.info("Tracker service started; database at %s", self.db_path)
            return tracker

    def shutdown(self) -> bool:
        """Flush live sessions and wait (bounded) for the writer to drain."""
        with self._lock:
            tracker, watcher = self.tracker, self._watcher
            self.tracker = None
            self._watcher = None
            self.writer = None
            self.periods = None
        if tracker is None:
            return True
        if watcher is not None:
            watcher.stop()
        drained = tracker.stop_tracking()
        logger.info("Tracker service stopped.")
        return drained

    def today(self) -> date:
        return self._clock().date()

    def _on_period_reset(self, tracker: SessionTracker, period: TimePeriod) -> None:
        tracker.counters.reset(period)
        self.bus.publish(TrackerEvent.PERIOD_RESET, period)
