"""Fire-and-forget notifications for presentation layers."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Listener = Callable[..., None]


class TrackerEvent(str, Enum):
    ACTIVITY_STARTED = "activity_started"
    ACTIVITY_STOPPED = "activity_stopped"
    PERIOD_RESET = "period_reset"


class EventBus:
    """Synchronous pub/sub; a failing listener never affects the publisher."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listeners: defaultdict[TrackerEvent, list[Listener]] = defaultdict(list)

    def subscribe(self, event: TrackerEvent, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners[event].append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners[event]:
                    self._listeners[event].remove(listener)

        return unsubscribe

    def publish(self, event: TrackerEvent, *args: Any) -> None:
        with self._lock:
            listeners = list(self._listeners[event])
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                logger.exception("Listener for %s failed.", event.value)
