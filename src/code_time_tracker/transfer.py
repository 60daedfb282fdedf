"""Export sessions to, and import them from, the portable JSON format."""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator
from pydantic.alias_generators import to_camel

from .db import fetch_all_sessions, fetch_overlapping_sessions, format_timestamp, row_to_session
from .models import CodingSession
from .writer import SessionWriter

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"


class ExportSession(BaseModel):
    session_uuid: str
    user_id: str
    project_name: str
    language: str
    platform: str
    ide_name: str = ""
    start_time: datetime
    end_time: datetime
    last_modified: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    @field_validator("start_time", "end_time", "last_modified")
    @classmethod
    def _local_whole_seconds(cls, value: datetime) -> datetime:
        if value.tzinfo is not None:
            value = value.astimezone().replace(tzinfo=None)
        return value.replace(microsecond=0)

    @model_validator(mode="after")
    def _end_after_start(self) -> "ExportSession":
        if self.end_time < self.start_time:
            raise ValueError(f"session {self.session_uuid} ends before it starts")
        return self

    @classmethod
    def from_session(cls, session: CodingSession) -> "ExportSession":
        return cls(
            session_uuid=session.session_uuid,
            user_id=session.user_id,
            project_name=session.project_name,
            language=session.language,
            platform=session.platform,
            ide_name=session.ide_name,
            start_time=session.start_time,
            end_time=session.end_time,
            last_modified=session.last_modified,
        )

    def to_session(self) -> CodingSession:
        return CodingSession(
            session_uuid=self.session_uuid,
            user_id=self.user_id,
            project_name=self.project_name,
            language=self.language,
            platform=self.platform,
            ide_name=self.ide_name,
            start_time=self.start_time,
            end_time=self.end_time,
            last_modified=self.last_modified,
        )


class ExportData(BaseModel):
    export_version: str = EXPORT_VERSION
    export_time: str
    total_sessions: int
    sessions: list[ExportSession]

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


@dataclass(slots=True)
class ImportResult:
    success: bool
    total_in_file: int = 0
    imported: int = 0
    skipped: int = 0
    failed: int = 0
    error_message: Optional[str] = None


class ImportFormatError(ValueError):
    """The import document cannot be interpreted."""


def build_export(
    conn: sqlite3.Connection,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> ExportData:
    """Collect live sessions, optionally only those overlapping ``[start, end)``."""
    if (start is None) != (end is None):
        raise ValueError("start and end must be given together")
    if start is not None and end is not None:
        rows = fetch_overlapping_sessions(conn, start, end)
    else:
        rows = fetch_all_sessions(conn)
    sessions = [ExportSession.from_session(row_to_session(row)) for row in rows]
    return ExportData(
        export_time=format_timestamp(now or datetime.now()),
        total_sessions=len(sessions),
        sessions=sessions,
    )


def export_to_file(
    conn: sqlite3.Connection,
    target: Path,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Optional[int]:
    """Write an export file; returns the session count, or None on failure."""
    target = Path(target)
    try:
        data = build_export(conn, start, end)
        target.write_text(data.to_json(), encoding="utf-8")
    except (OSError, sqlite3.Error):
        logger.exception("Failed to export sessions to %s.", target)
        return None
    logger.info("Exported %d sessions to %s.", data.total_sessions, target)
    return data.total_sessions


def parse_export(text: str) -> ExportData:
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ImportFormatError(f"Invalid JSON: {exc.msg}") from exc
    if not isinstance(payload, dict):
        raise ImportFormatError("Export document must be a JSON object")

    version = payload.get("exportVersion")
    if version != EXPORT_VERSION:
        raise ImportFormatError(f"Unsupported export version: {version}")

    try:
        return ExportData.model_validate(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise ImportFormatError(f"Invalid export data at {location}: {first['msg']}") from exc


def import_from_json(
    text: str, writer: SessionWriter, timeout: Optional[float] = None
) -> ImportResult:
    """Import sessions whose UUID is not stored yet, through the single writer."""
    try:
        data = parse_export(text)
    except ImportFormatError as exc:
        logger.warning("Rejected import: %s", exc)
        return ImportResult(success=False, error_message=str(exc))

    sessions = [item.to_session() for item in data.sessions]
    try:
        imported, skipped = writer.import_sessions(sessions).result(timeout=timeout)
    except Exception as exc:
        logger.exception("Import write failed.")
        return ImportResult(
            success=False,
            total_in_file=data.total_sessions,
            failed=len(sessions),
            error_message=str(exc) or type(exc).__name__,
        )

    logger.info(
        "Import completed: %d imported, %d skipped of %d.",
        imported,
        skipped,
        data.total_sessions,
    )
    return ImportResult(
        success=True,
        total_in_file=data.total_sessions,
        imported=imported,
        skipped=skipped,
    )


def import_from_file(
    source: Path, writer: SessionWriter, timeout: Optional[float] = None
) -> ImportResult:
    try:
        text = Path(source).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.warning("Could not read import file %s: %s", source, exc)
        return ImportResult(success=False, error_message=f"Cannot read {source}: {exc}")
    return import_from_json(text, writer, timeout)
