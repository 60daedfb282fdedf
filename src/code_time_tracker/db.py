"""SQLite database layer for coding sessions."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .models import CodingSession

logger = logging.getLogger(__name__)


DATETIME_FMT = "%Y-%m-%dT%H:%M:%S"

_SESSION_COLUMNS = (
    "session_uuid",
    "user_id",
    "project_name",
    "language",
    "platform",
    "ide_name",
    "start_time",
    "end_time",
    "last_modified",
    "is_deleted",
    "is_synced",
    "synced_at",
    "sync_version",
)

# Columns added after the first released schema, with their DDL.
_LATE_COLUMNS = {
    "ide_name": "TEXT NOT NULL DEFAULT ''",
    "is_synced": "INTEGER NOT NULL DEFAULT 0",
    "synced_at": "TEXT",
    "sync_version": "INTEGER NOT NULL DEFAULT 0",
}


def format_timestamp(value: datetime) -> str:
    return value.strftime(DATETIME_FMT)


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)


def open_database(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode = WAL;")
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside BEGIN/COMMIT, rolling back on any error."""
    conn.execute("BEGIN")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS coding_sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            session_uuid TEXT NOT NULL UNIQUE,
            user_id TEXT NOT NULL,
            project_name TEXT NOT NULL,
            language TEXT NOT NULL,
            platform TEXT NOT NULL,
            ide_name TEXT NOT NULL DEFAULT '',
            start_time TEXT NOT NULL,
            end_time TEXT NOT NULL,
            last_modified TEXT NOT NULL,
            is_deleted INTEGER NOT NULL DEFAULT 0,
            is_synced INTEGER NOT NULL DEFAULT 0,
            synced_at TEXT,
            sync_version INTEGER NOT NULL DEFAULT 0
        );
        """
    )
    _add_missing_columns(conn)
    conn.executescript(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS idx_session_uuid
            ON coding_sessions(session_uuid);

        CREATE INDEX IF NOT EXISTS idx_sessions_deleted_range
            ON coding_sessions(is_deleted, start_time, end_time);

        CREATE INDEX IF NOT EXISTS idx_sessions_deleted_start
            ON coding_sessions(is_deleted, start_time);
        """
    )


def _add_missing_columns(conn: sqlite3.Connection) -> None:
    existing = {row["name"] for row in conn.execute("PRAGMA table_info(coding_sessions)")}
    for column, ddl in _LATE_COLUMNS.items():
        if column not in existing:
            conn.execute(f"ALTER TABLE coding_sessions ADD COLUMN {column} {ddl}")
            logger.info("Added column %s to coding_sessions.", column)


def _session_row(session: CodingSession) -> tuple[object, ...]:
    return (
        session.session_uuid,
        session.user_id,
        session.project_name,
        session.language,
        session.platform,
        session.ide_name,
        format_timestamp(session.start_time),
        format_timestamp(session.end_time),
        format_timestamp(session.last_modified),
        1 if session.is_deleted else 0,
        1 if session.is_synced else 0,
        format_timestamp(session.synced_at) if session.synced_at else None,
        session.sync_version,
    )


def _insert_rows(conn: sqlite3.Connection, sessions: Iterable[CodingSession]) -> int:
    rows = [_session_row(session) for session in sessions]
    if not rows:
        return 0
    placeholders = ", ".join("?" for _ in _SESSION_COLUMNS)
    conn.executemany(
        f"INSERT INTO coding_sessions ({', '.join(_SESSION_COLUMNS)}) "
        f"VALUES ({placeholders})",
        rows,
    )
    return len(rows)


def insert_sessions(conn: sqlite3.Connection, sessions: Iterable[CodingSession]) -> int:
    """Insert a batch of sessions atomically; returns the number written."""
    with transaction(conn):
        return _insert_rows(conn, sessions)


def import_new_sessions(
    conn: sqlite3.Connection, sessions: Iterable[CodingSession]
) -> tuple[int, int]:
    """Insert only sessions whose UUID is not stored yet.

    Returns ``(imported, skipped)``. Duplicates inside the batch itself count
    as skipped.
    """
    with transaction(conn):
        seen = fetch_session_uuids(conn)
        fresh: list[CodingSession] = []
        skipped = 0
        for session in sessions:
            if session.session_uuid in seen:
                skipped += 1
                continue
            seen.add(session.session_uuid)
            fresh.append(session)
        imported = _insert_rows(conn, fresh)
    return imported, skipped


def row_to_session(row: sqlite3.Row) -> CodingSession:
    return CodingSession(
        session_uuid=row["session_uuid"],
        user_id=row["user_id"],
        project_name=row["project_name"],
        language=row["language"],
        platform=row["platform"],
        ide_name=row["ide_name"],
        start_time=parse_timestamp(row["start_time"]),
        end_time=parse_timestamp(row["end_time"]),
        last_modified=parse_timestamp(row["last_modified"]),
        is_deleted=bool(row["is_deleted"]),
        is_synced=bool(row["is_synced"]),
        synced_at=parse_timestamp(row["synced_at"]) if row["synced_at"] else None,
        sync_version=row["sync_version"],
    )


def fetch_overlapping_sessions(
    conn: sqlite3.Connection,
    start: datetime,
    end: datetime,
    project_name: Optional[str] = None,
) -> list[sqlite3.Row]:
    """Fetch sessions that intersect ``[start, end)``, unclipped."""
    sql = """
        SELECT *
        FROM coding_sessions
        WHERE is_deleted = 0 AND end_time > ? AND start_time < ?
    """
    params: list[object] = [format_timestamp(start), format_timestamp(end)]
    if project_name is not None:
        sql += " AND project_name = ?"
        params.append(project_name)
    sql += " ORDER BY start_time"
    return list(conn.execute(sql, params))


def fetch_all_sessions(conn: sqlite3.Connection) -> list[sqlite3.Row]:
    return list(
        conn.execute(
            "SELECT * FROM coding_sessions WHERE is_deleted = 0 ORDER BY start_time"
        )
    )


def fetch_session_times(conn: sqlite3.Connection) -> list[tuple[datetime, datetime]]:
    """Load only the start/end pairs of every live session."""
    return [
        (parse_timestamp(row["start_time"]), parse_timestamp(row["end_time"]))
        for row in conn.execute(
            "SELECT start_time, end_time FROM coding_sessions WHERE is_deleted = 0"
        )
    ]


def fetch_time_bounds(
    conn: sqlite3.Connection,
) -> Optional[tuple[datetime, datetime]]:
    row = conn.execute(
        """
        SELECT MIN(start_time) AS first_start, MAX(end_time) AS last_end
        FROM coding_sessions
        WHERE is_deleted = 0
        """
    ).fetchone()
    if row is None or row["first_start"] is None:
        return None
    return parse_timestamp(row["first_start"]), parse_timestamp(row["last_end"])


def fetch_record_count(conn: sqlite3.Connection) -> int:
    row = conn.execute(
        "SELECT COUNT(*) FROM coding_sessions WHERE is_deleted = 0"
    ).fetchone()
    return int(row[0])


def fetch_total_seconds(
    conn: sqlite3.Connection, project_name: Optional[str] = None
) -> int:
    sql = """
        SELECT SUM(strftime('%s', end_time) - strftime('%s', start_time))
        FROM coding_sessions
        WHERE is_deleted = 0
    """
    params: list[object] = []
    if project_name is not None:
        sql += " AND project_name = ?"
        params.append(project_name)
    row = conn.execute(sql, params).fetchone()
    return int(row[0] or 0)


def fetch_clipped_seconds(
    conn: sqlite3.Connection,
    start: datetime,
    end: datetime,
    project_name: Optional[str] = None,
) -> int:
    """Sum the overlap of every session with ``[start, end)`` inside SQLite."""
    sql = """
        SELECT SUM(
            MIN(CAST(strftime('%s', end_time) AS INTEGER), CAST(strftime('%s', ?) AS INTEGER))
            - MAX(CAST(strftime('%s', start_time) AS INTEGER), CAST(strftime('%s', ?) AS INTEGER))
        )
        FROM coding_sessions
        WHERE is_deleted = 0 AND end_time > ? AND start_time < ?
    """
    start_iso = format_timestamp(start)
    end_iso = format_timestamp(end)
    params: list[object] = [end_iso, start_iso, start_iso, end_iso]
    if project_name is not None:
        sql += " AND project_name = ?"
        params.append(project_name)
    row = conn.execute(sql, params).fetchone()
    return int(row[0] or 0)


def fetch_first_record_date(conn: sqlite3.Connection) -> Optional[date]:
    row = conn.execute(
        "SELECT MIN(start_time) FROM coding_sessions WHERE is_deleted = 0"
    ).fetchone()
    if row is None or row[0] is None:
        return None
    return parse_timestamp(row[0]).date()


def fetch_session_uuids(conn: sqlite3.Connection) -> set[str]:
    return {row[0] for row in conn.execute("SELECT session_uuid FROM coding_sessions")}


def fetch_any_user_id(conn: sqlite3.Connection) -> Optional[str]:
    """Return the user id of any stored session; all rows share one owner."""
    row = conn.execute("SELECT user_id FROM coding_sessions LIMIT 1").fetchone()
    return row[0] if row else None
