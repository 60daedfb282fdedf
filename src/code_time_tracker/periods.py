"""Period boundary tracking for live counter resets."""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Optional

from .models import TimePeriod
from .timeranges import period_start

logger = logging.getLogger(__name__)


class PeriodManager:
    """Remembers where the current day/week/month/year began.

    Nothing here is persisted; boundaries are recomputed from the clock and
    compared with the stored ones.
    """

    def __init__(self, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        now = clock()
        self._starts: dict[TimePeriod, datetime] = {
            period: period_start(period, now) for period in TimePeriod
        }
        logger.info("Period boundaries initialized: %s", self._starts)

    def period_start(self, period: TimePeriod) -> datetime:
        with self._lock:
            return self._starts[period]

    def is_period_changed(self, period: TimePeriod) -> bool:
        current = period_start(period, self._clock())
        with self._lock:
            saved = self._starts.get(period)
        changed = saved != current
        if changed:
            logger.info("Period %s changed: %s -> %s", period.value, saved, current)
        return changed

    def reset_period(self, period: TimePeriod) -> None:
        new_start = period_start(period, self._clock())
        with self._lock:
            self._starts[period] = new_start
        logger.info("Period %s reset to %s", period.value, new_start)


class PeriodWatcher:
    """Polls the clock and resets periods whose boundary has moved.

    Polling runs every ``interval`` but work happens only when the wall-clock
    minute changes.
    """

    def __init__(
        self,
        manager: PeriodManager,
        on_reset: Callable[[TimePeriod], None],
        *,
        interval: timedelta = timedelta(seconds=1),
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._manager = manager
        self._on_reset = on_reset
        self._interval = interval
        self._clock = clock
        self._last_minute: Optional[datetime] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def tick(self) -> list[TimePeriod]:
        minute = self._clock().replace(second=0, microsecond=0)
        if minute == self._last_minute:
            return []
        self._last_minute = minute

        reset: list[TimePeriod] = []
        for period in TimePeriod:
            if self._manager.is_period_changed(period):
                self._manager.reset_period(period)
                self._on_reset(period)
                reset.append(period)
        return reset

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name="period-watcher", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread:
            thread.join(timeout=self._interval.total_seconds() + 1)

    def _run_loop(self) -> None:
        interval = self._interval.total_seconds()
        while not self._stop_event.wait(interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Period check failed.")
