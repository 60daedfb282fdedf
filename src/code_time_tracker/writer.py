"""Single-writer queue that serializes every durable write."""

from __future__ import annotations

import logging
import queue
import sqlite3
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional, Sequence

from .db import import_new_sessions, insert_sessions
from .models import CodingSession

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[], sqlite3.Connection]

_STOP = object()


class WriterClosedError(RuntimeError):
    """Raised when a write is submitted after shutdown began."""


class SessionWriter:
    """Runs write jobs one at a time on a background thread.

    The worker owns its own connection, so batches never interleave and a
    failing batch is rolled back as a whole. Reads do not go through here.
    """

    def __init__(self, connect: ConnectionFactory, *, name: str = "session-writer") -> None:
        self._connect = connect
        self._name = name
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._closed = False

    def start(self) -> None:
        with self._lock:
            if self._closed:
                raise WriterClosedError("writer has been shut down")
            self._ensure_thread_locked()

    def _ensure_thread_locked(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def submit(self, job: Callable[..., Any], *args: Any) -> Future:
        """Queue ``job(conn, *args)`` for the worker connection."""
        future: Future = Future()
        with self._lock:
            if self._closed:
                raise WriterClosedError("writer has been shut down")
            self._queue.put((job, args, future))
            self._ensure_thread_locked()
        return future

    def save_sessions(self, sessions: Sequence[CodingSession]) -> Future:
        if not sessions:
            future: Future = Future()
            future.set_result(0)
            return future
        return self.submit(insert_sessions, list(sessions))

    def import_sessions(self, sessions: Sequence[CodingSession]) -> Future:
        return self.submit(import_new_sessions, list(sessions))

    def shutdown(self, timeout: float = 5.0) -> bool:
        """Stop accepting work and wait up to ``timeout`` for the queue to drain.

        Returns False when jobs had to be abandoned.
        """
        with self._lock:
            if self._closed:
                return True
            self._closed = True
            thread = self._thread
            self._queue.put(_STOP)
        if thread is None:
            abandoned = self._cancel_pending()
            return abandoned == 0

        thread.join(timeout=timeout)
        abandoned = self._cancel_pending()
        if thread.is_alive() or abandoned:
            logger.warning(
                "Writer did not drain within %.1fs; abandoned %d pending job(s).",
                timeout,
                abandoned,
            )
            return False
        logger.info("Session writer stopped.")
        return True

    def _cancel_pending(self) -> int:
        abandoned = 0
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                # A worker still busy with its current job must find the sentinel.
                self._queue.put(_STOP)
                return abandoned
            if item is _STOP:
                continue
            _, _, future = item
            if future.cancel():
                abandoned += 1

    def _fail_pending(self) -> None:
        while True:
            try:
                item = self._queue.get_nowait()
            except queue.Empty:
                return
            if item is _STOP:
                continue
            _, _, future = item
            if future.set_running_or_notify_cancel():
                future.set_exception(WriterClosedError("writer connection unavailable"))

    def _run(self) -> None:
        try:
            conn = self._connect()
        except Exception:
            logger.exception("Session writer could not open its connection.")
            self._fail_pending()
            return
        try:
            while True:
                item = self._queue.get()
                if item is _STOP:
                    return
                job, args, future = item
                if not future.set_running_or_notify_cancel():
                    continue
                try:
                    result = job(conn, *args)
                except Exception as exc:
                    logger.exception("Write job %s failed.", getattr(job, "__name__", job))
                    future.set_exception(exc)
                else:
                    future.set_result(result)
        finally:
            conn.close()
