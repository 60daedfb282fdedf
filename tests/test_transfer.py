import functools
import json
from datetime import datetime

import pytest

from code_time_tracker.db import database_connection, fetch_record_count, open_database
from code_time_tracker.transfer import (
    ImportFormatError,
    build_export,
    export_to_file,
    import_from_file,
    import_from_json,
    parse_export,
)
from code_time_tracker.writer import SessionWriter


def document(*sessions, version="1.0"):
    return json.dumps(
        {
            "exportVersion": version,
            "exportTime": "2024-05-15T12:00:00",
            "totalSessions": len(sessions),
            "sessions": list(sessions),
        }
    )


def session_payload(uuid="s-1", start="2024-05-15T09:00:00", end="2024-05-15T09:30:00"):
    return {
        "sessionUuid": uuid,
        "userId": "user-1",
        "projectName": "demo",
        "language": "Python",
        "platform": "Linux",
        "ideName": "test-ide",
        "startTime": start,
        "endTime": end,
        "lastModified": end,
    }


class TestExport:
    def test_camel_case_document(self, conn, add_session):
        stored = add_session(datetime(2024, 5, 15, 9), minutes=30)
        payload = json.loads(build_export(conn, now=datetime(2024, 5, 15, 12)).to_json())
        assert payload["exportVersion"] == "1.0"
        assert payload["exportTime"] == "2024-05-15T12:00:00"
        assert payload["totalSessions"] == 1
        (item,) = payload["sessions"]
        assert item["sessionUuid"] == stored.session_uuid
        assert item["startTime"] == "2024-05-15T09:00:00"
        assert item["ideName"] == "test-ide"

    def test_range_filter(self, conn, add_session):
        add_session(datetime(2024, 5, 1, 9), minutes=30)
        add_session(datetime(2024, 5, 15, 9), minutes=30)
        data = build_export(conn, datetime(2024, 5, 15), datetime(2024, 5, 16))
        assert data.total_sessions == 1

    def test_export_to_file(self, conn, add_session, tmp_path):
        add_session(datetime(2024, 5, 15, 9), minutes=30)
        target = tmp_path / "export.json"
        assert export_to_file(conn, target) == 1
        assert json.loads(target.read_text(encoding="utf-8"))["totalSessions"] == 1

    def test_export_to_unwritable_location(self, conn, tmp_path):
        assert export_to_file(conn, tmp_path / "missing" / "export.json") is None


class TestParse:
    def test_invalid_json(self):
        with pytest.raises(ImportFormatError, match="Invalid JSON"):
            parse_export("{not json")

    def test_unsupported_version(self):
        with pytest.raises(ImportFormatError, match="Unsupported export version: 2.0"):
            parse_export(document(version="2.0"))

    def test_missing_field(self):
        broken = session_payload()
        del broken["projectName"]
        with pytest.raises(ImportFormatError, match="Invalid export data"):
            parse_export(document(broken))

    def test_end_before_start(self):
        with pytest.raises(ImportFormatError):
            parse_export(document(session_payload(start="2024-05-15T10:00:00")))


class TestImport:
    def test_round_trip_through_export(self, conn, add_session, tmp_path):
        add_session(datetime(2024, 5, 15, 9), minutes=30)
        text = build_export(conn).to_json()

        other_db = tmp_path / "other.db"
        other_writer = SessionWriter(functools.partial(open_database, other_db, check_same_thread=False))
        try:
            result = import_from_json(text, other_writer, timeout=5)
        finally:
            other_writer.shutdown()
        assert (result.success, result.imported, result.skipped) == (True, 1, 0)

    def test_known_and_repeated_uuids_are_skipped(self, writer, db_path):
        first = import_from_json(document(session_payload("a"), session_payload("b")), writer, timeout=5)
        assert (first.imported, first.skipped) == (2, 0)

        second = import_from_json(
            document(session_payload("a"), session_payload("c"), session_payload("c")),
            writer,
            timeout=5,
        )
        assert second.success
        assert (second.total_in_file, second.imported, second.skipped) == (3, 1, 2)
        with database_connection(db_path) as conn:
            assert fetch_record_count(conn) == 3

    def test_bad_version_reports_failure(self, writer):
        result = import_from_json(document(session_payload(), version="0.9"), writer)
        assert result.success is False
        assert "Unsupported export version" in result.error_message

    def test_unreadable_file(self, writer, tmp_path):
        result = import_from_file(tmp_path / "nope.json", writer)
        assert result.success is False
        assert result.error_message

    def test_import_from_file(self, writer, tmp_path):
        source = tmp_path / "export.json"
        source.write_text(document(session_payload()), encoding="utf-8")
        result = import_from_file(source, writer, timeout=5)
        assert (result.success, result.imported) == (True, 1)
