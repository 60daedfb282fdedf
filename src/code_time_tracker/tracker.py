"""Session tracking state machine.

Live sessions are kept per project path and language. A project holds one
language at a time; touching a file of another language closes the whole
project entry first. Sessions leave memory on idle timeout, language switch,
project close, forced flush or shutdown, and are handed to the single writer
after the map has been drained under the lock.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
from concurrent.futures import Future
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from .activity import ActivityTarget, is_countable_activity
from .config import TrackerSettings
from .events import EventBus, TrackerEvent
from .models import CodingSession, TimePeriod
from .writer import SessionWriter, WriterClosedError

logger = logging.getLogger(__name__)


class LiveCounters:
    """Best-effort running totals for the UI, reset on period rollover."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[TimePeriod, timedelta] = {
            period: timedelta(0) for period in TimePeriod
        }

    def add(self, delta: timedelta) -> None:
        with self._lock:
            for period in self._values:
                self._values[period] += delta

    def reset(self, period: TimePeriod) -> None:
        with self._lock:
            self._values[period] = timedelta(0)

    def seed(self, values: dict[TimePeriod, timedelta]) -> None:
        with self._lock:
            self._values.update(values)

    def snapshot(self) -> dict[TimePeriod, timedelta]:
        with self._lock:
            return dict(self._values)


class SessionTracker:
    """Turns activity ticks into coding sessions."""

    def __init__(
        self,
        writer: SessionWriter,
        settings: TrackerSettings,
        *,
        bus: Optional[EventBus] = None,
        user_id: str = "",
        platform: str = "",
        ide_name: str = "",
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.settings = settings
        self.counters = LiveCounters()
        self._writer = writer
        self._bus = bus or EventBus()
        self._user_id = user_id
        self._platform = platform
        self._ide_name = ide_name
        self._clock = clock
        self._lock = threading.Lock()
        self._sessions: dict[str, dict[str, CodingSession]] = {}
        self._last_activity: Optional[datetime] = None
        self._user_active = False
        self._closed = False
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def user_active(self) -> bool:
        with self._lock:
            return self._user_active

    @property
    def last_activity(self) -> Optional[datetime]:
        with self._lock:
            return self._last_activity

    def active_sessions(self) -> list[CodingSession]:
        """Copies of the live sessions; the index itself never leaves the tracker."""
        with self._lock:
            return [
                dataclasses.replace(session)
                for languages in self._sessions.values()
                for session in languages.values()
            ]

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_idle_checker, name="idle-checker", daemon=True
        )
        self._thread.start()
        logger.info(
            "Idle checker started (threshold %ss).",
            self.settings.idle_threshold.total_seconds(),
        )

    def on_activity(self, target: ActivityTarget, now: Optional[datetime] = None) -> bool:
        """Record one activity tick; returns False when the event does not count.

        Ticks arriving after :meth:`stop_tracking` never count.
        """
        if not is_countable_activity(target):
            return False
        now = self._now(now)
        project_key = target.project_key
        language = target.resolved_language

        with self._lock:
            if self._closed:
                logger.debug("Tracker stopped; ignoring activity in %s.", project_key)
                return False
            previous = self._last_activity
            if previous is None or now > previous:
                self._last_activity = now
            started = not self._user_active
            self._user_active = True

            drained: list[CodingSession] = []
            project_sessions = self._sessions.get(project_key)
            if project_sessions and language not in project_sessions:
                logger.info(
                    "Language switch in %s from %s to %s.",
                    project_key,
                    ", ".join(project_sessions),
                    language,
                )
                drained = self._drain_locked([project_key], now)
                project_sessions = None
            if project_sessions is None:
                project_sessions = self._sessions.setdefault(project_key, {})

            session = project_sessions.get(language)
            if session is None:
                logger.info(
                    "Starting new coding session for %s in %s.",
                    language,
                    target.resolved_project_name,
                )
                project_sessions[language] = CodingSession(
                    project_name=target.resolved_project_name,
                    language=language,
                    platform=self._platform,
                    ide_name=self._ide_name,
                    start_time=now,
                    end_time=now,
                    user_id=self._user_id,
                    last_modified=now,
                )
            elif now > session.end_time:
                session.end_time = now

            if previous is not None:
                delta = now - previous
                if timedelta(0) < delta < self.settings.idle_threshold:
                    self.counters.add(delta)

        self._persist(drained)
        if started:
            self._bus.publish(TrackerEvent.ACTIVITY_STARTED)
        return True

    def check_idle_status(self, now: Optional[datetime] = None) -> bool:
        """Close every live session once the user has been idle long enough."""
        now = self._now(now)
        with self._lock:
            last = self._last_activity
            if last is None or now - last < self.settings.idle_threshold:
                return False
            if not self._sessions and not self._user_active:
                return False
            logger.info(
                "Idle for %ss; pausing tracking.", int((now - last).total_seconds())
            )
            drained = self._drain_locked(list(self._sessions), now)
            was_active = self._user_active
            self._user_active = False

        self._persist(drained)
        if was_active:
            self._bus.publish(TrackerEvent.ACTIVITY_STOPPED)
        return True

    def force_persist_sessions(self, now: Optional[datetime] = None) -> Optional[Future]:
        """Flush everything without touching the idle state."""
        now = self._now(now)
        with self._lock:
            drained = self._drain_locked(list(self._sessions), now)
        return self._persist(drained)

    def stop_project_tracking(
        self, project_key: str, now: Optional[datetime] = None
    ) -> Optional[Future]:
        now = self._now(now)
        with self._lock:
            drained = self._drain_locked([project_key], now)
            stopped = not self._sessions and self._user_active
            if stopped:
                self._user_active = False
        future = self._persist(drained)
        if stopped:
            self._bus.publish(TrackerEvent.ACTIVITY_STOPPED)
        return future

    def stop_tracking(self, now: Optional[datetime] = None) -> bool:
        """Flush everything, stop the ticker and drain the writer (bounded)."""
        logger.info("Stopping all tracking sessions.")
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread:
            thread.join(timeout=self.settings.idle_check_interval.total_seconds() + 1)

        now = self._now(now)
        with self._lock:
            self._closed = True
            drained = self._drain_locked(list(self._sessions), now)
            was_active = self._user_active
            self._user_active = False
        self._persist(drained)
        if was_active:
            self._bus.publish(TrackerEvent.ACTIVITY_STOPPED)
        return self._writer.shutdown(timeout=self.settings.shutdown_timeout.total_seconds())

    def _now(self, now: Optional[datetime]) -> datetime:
        return (now or self._clock()).replace(microsecond=0)

    def _drain_locked(self, project_keys: Iterable[str], now: datetime) -> list[CodingSession]:
        """Remove the given projects and close their sessions. Caller holds the lock."""
        drained: list[CodingSession] = []
        for key in project_keys:
            languages = self._sessions.pop(key, None)
            if not languages:
                continue
            for session in languages.values():
                # Time after the last tick counts only up to the idle threshold.
                closing = min(now, session.end_time + self.settings.idle_threshold)
                session.end_time = max(session.end_time, closing)
                session.last_modified = now
                drained.append(session)
        return drained

    def _persist(self, sessions: list[CodingSession]) -> Optional[Future]:
        if not sessions:
            return None
        logger.info(
            "Persisting sessions: %s",
            ", ".join(f"{s.project_name}/{s.language}" for s in sessions),
        )
        try:
            future = self._writer.save_sessions(sessions)
        except WriterClosedError:
            logger.error("Writer closed; dropped %d session(s).", len(sessions))
            return None
        future.add_done_callback(_log_write_outcome)
        return future

    def _run_idle_checker(self) -> None:
        interval = self.settings.idle_check_interval.total_seconds()
        while not self._stop_event.wait(interval):
            try:
                self.check_idle_status()
            except Exception:
                logger.exception("Idle check failed.")


def _log_write_outcome(future: Future) -> None:
    if future.cancelled():
        logger.warning("Session write was abandoned before it ran.")
    elif future.exception() is None:
        logger.debug("Saved %s session(s).", future.result())
