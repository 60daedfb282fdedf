import json
from datetime import date, datetime, timedelta

import pytest
from typer.testing import CliRunner

from code_time_tracker.cli import app
from code_time_tracker.db import database_connection, fetch_record_count
from code_time_tracker.reporting import format_duration

runner = CliRunner()


@pytest.fixture
def seeded(add_session):
    today = datetime.combine(date.today(), datetime.min.time())
    add_session(today + timedelta(hours=9), minutes=90, project="alpha", language="Python")
    add_session(today - timedelta(days=1) + timedelta(hours=20), minutes=30, project="beta", language="Go")


class TestFormatDuration:
    @pytest.mark.parametrize(
        "value, expected",
        [(0, "00:00:00"), (59.6, "00:01:00"), (3725, "01:02:05"), (timedelta(hours=30), "30:00:00")],
    )
    def test_format(self, value, expected):
        assert format_duration(value) == expected


class TestReportCommands:
    def test_summary(self, db_path, seeded):
        result = runner.invoke(app, ["summary", "--db", str(db_path)])
        assert result.exit_code == 0, result.output
        assert "Today:         01:30:00" in result.output
        assert "Total:         02:00:00" in result.output

    def test_summary_on_empty_database(self, db_path):
        result = runner.invoke(app, ["summary", "--db", str(db_path)])
        assert result.exit_code == 0
        assert "No coding time recorded yet." in result.output

    def test_streaks(self, db_path, seeded):
        result = runner.invoke(app, ["streaks", "--db", str(db_path)])
        assert result.exit_code == 0, result.output
        assert "Current streak: 2 days" in result.output
        assert "Longest streak: 2 days" in result.output

    def test_breakdown(self, db_path, seeded):
        result = runner.invoke(app, ["breakdown", "--db", str(db_path)])
        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        header = lines.index("Top projects:")
        assert lines[header + 1].split() == ["alpha", "01:30:00"]
        assert "Evening" in result.output

    def test_breakdown_requires_both_bounds(self, db_path):
        result = runner.invoke(app, ["breakdown", "--db", str(db_path), "--from", "2024-01-01"])
        assert result.exit_code != 0


class TestTransferCommands:
    def test_export_and_reimport(self, db_path, seeded, tmp_path):
        target = tmp_path / "export.json"
        result = runner.invoke(app, ["export", str(target), "--db", str(db_path)])
        assert result.exit_code == 0, result.output
        assert json.loads(target.read_text(encoding="utf-8"))["totalSessions"] == 2

        other_db = tmp_path / "other.db"
        result = runner.invoke(app, ["import", str(target), "--db", str(other_db)])
        assert result.exit_code == 0, result.output
        assert "Imported 2 of 2 sessions (0 already present)." in result.output
        with database_connection(other_db) as conn:
            assert fetch_record_count(conn) == 2

        result = runner.invoke(app, ["import", str(target), "--db", str(other_db)])
        assert "Imported 0 of 2 sessions (2 already present)." in result.output

    def test_import_of_bad_file_fails(self, db_path, tmp_path):
        source = tmp_path / "bad.json"
        source.write_text('{"exportVersion": "9"}', encoding="utf-8")
        result = runner.invoke(app, ["import", str(source), "--db", str(db_path)])
        assert result.exit_code == 1
