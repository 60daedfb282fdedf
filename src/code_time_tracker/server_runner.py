"""Run the tracker service under uvicorn.

The tracker, its writer and the period watcher start and stop inside the app
lifespan, so the API docs page is only opened once uvicorn reports that the
lifespan finished starting up.
"""

from __future__ import annotations

import logging
import threading
import time
import webbrowser
from pathlib import Path
from typing import Optional

import uvicorn

from .config import TrackerSettings
from .paths import get_db_path
from .webapp import create_app

logger = logging.getLogger(__name__)

STARTUP_WAIT_SECONDS = 30.0


def build_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    log_level: str = "info",
) -> uvicorn.Server:
    app = create_app(
        db_path=db_path or get_db_path(),
        settings=settings or TrackerSettings(),
    )
    return uvicorn.Server(uvicorn.Config(app, host=host, port=port, log_level=log_level))


def run_server(
    *,
    host: str = "127.0.0.1",
    port: int = 8765,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    open_browser: bool = False,
    log_level: str = "info",
) -> None:
    """Serve the API until interrupted; shutdown flushes live sessions."""
    server = build_server(
        host=host, port=port, db_path=db_path, settings=settings, log_level=log_level
    )
    if open_browser:
        threading.Thread(
            target=open_docs_when_started,
            args=(server, f"http://{host}:{port}/docs"),
            name="docs-opener",
            daemon=True,
        ).start()
    server.run()


def open_docs_when_started(
    server: uvicorn.Server,
    url: str,
    *,
    poll_seconds: float = 0.1,
    timeout: float = STARTUP_WAIT_SECONDS,
) -> bool:
    deadline = time.monotonic() + timeout
    while not server.started:
        if server.should_exit or time.monotonic() >= deadline:
            logger.warning("Tracker API did not come up; not opening %s.", url)
            return False
        time.sleep(poll_seconds)
    try:
        return bool(webbrowser.open(url))
    except webbrowser.Error:
        logger.exception("Failed to launch browser for %s", url)
        return False
