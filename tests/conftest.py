from __future__ import annotations

import functools
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Iterator, Optional

import pytest

from code_time_tracker.config import TrackerSettings
from code_time_tracker.db import database_connection, insert_sessions, open_database
from code_time_tracker.models import CodingSession
from code_time_tracker.writer import SessionWriter


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "coding_data.db"


@pytest.fixture
def conn(db_path: Path):
    with database_connection(db_path) as connection:
        yield connection


@pytest.fixture
def make_session() -> Callable[..., CodingSession]:
    def factory(
        start: datetime,
        end: Optional[datetime] = None,
        *,
        minutes: Optional[float] = None,
        project: str = "demo",
        language: str = "Python",
        **extra,
    ) -> CodingSession:
        if end is None:
            end = start + timedelta(minutes=minutes or 0)
        return CodingSession(
            project_name=project,
            language=language,
            platform="Linux",
            ide_name="test-ide",
            start_time=start,
            end_time=end,
            user_id=extra.pop("user_id", "user-1"),
            **extra,
        )

    return factory


@pytest.fixture
def add_session(conn, make_session) -> Callable[..., CodingSession]:
    def add(*args, **kwargs) -> CodingSession:
        session = make_session(*args, **kwargs)
        insert_sessions(conn, [session])
        return session

    return add


@pytest.fixture
def writer(db_path: Path) -> Iterator[SessionWriter]:
    session_writer = SessionWriter(
        functools.partial(open_database, db_path, check_same_thread=False)
    )
    session_writer.start()
    yield session_writer
    session_writer.shutdown()


@pytest.fixture
def settings() -> TrackerSettings:
    return TrackerSettings()


@pytest.fixture
def source_file(tmp_path: Path) -> Callable[[str], Path]:
    """Create a writable file inside a project directory."""

    def create(name: str, project: str = "demo") -> Path:
        path = tmp_path / project / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("print('hello')\n", encoding="utf-8")
        return path

    return create
