"""Command-line interface for the code time tracker."""

from __future__ import annotations

import functools
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import typer

from .config import TrackerSettings
from .paths import get_db_path

app = typer.Typer(help="Local-first coding time tracker.")


@app.callback(no_args_is_help=True)
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logs.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _parse_day(value: str, option: str) -> datetime:
    try:
        return datetime.strptime(value, "%Y-%m-%d")
    except ValueError as exc:
        raise typer.BadParameter("expected YYYY-MM-DD", param_hint=option) from exc


def _date_range(
    start: Optional[str], end: Optional[str]
) -> tuple[Optional[datetime], Optional[datetime]]:
    """Inclusive day options to a half-open range; both or neither."""
    if not start and not end:
        return None, None
    if not start or not end:
        raise typer.BadParameter("--from and --to must be given together")
    range_start = _parse_day(start, "--from")
    range_end = _parse_day(end, "--to") + timedelta(days=1)
    if range_end <= range_start:
        raise typer.BadParameter("--to must be on or after --from")
    return range_start, range_end


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind the API."),
    port: int = typer.Option(
        8765, "--port", min=1, max=65535, help="TCP port for the API."
    ),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the sessions SQLite database."
    ),
    idle_seconds: float = typer.Option(
        60.0,
        "--idle-threshold",
        min=1.0,
        help="Seconds without activity before live sessions are closed.",
    ),
    check_seconds: Optional[float] = typer.Option(
        None,
        "--idle-check-interval",
        min=0.5,
        help="How often the idle checker runs (defaults to 5 seconds).",
    ),
    summary_threshold: int = typer.Option(
        20_000,
        "--summary-threshold",
        min=1,
        help="Record count at which summaries are computed inside SQLite.",
    ),
    open_browser: bool = typer.Option(
        False,
        "--open-browser/--no-open-browser",
        help="Open the API docs in your default browser.",
    ),
) -> None:
    """Run the tracker with its HTTP API until interrupted."""
    from .server_runner import run_server

    settings = TrackerSettings.from_intervals(
        idle_seconds=idle_seconds,
        check_seconds=check_seconds,
        summary_threshold=summary_threshold,
    )
    run_server(
        host=host,
        port=port,
        db_path=db_path or get_db_path(),
        settings=settings,
        open_browser=open_browser,
    )


@app.command()
def summary(
    date: Optional[str] = typer.Option(
        None,
        "--date",
        help="Reference date (YYYY-MM-DD). Defaults to today.",
    ),
    db_path: Optional[Path] = typer.Option(
        None,
        "--db",
        path_type=Path,
        help="Location of the sessions SQLite database.",
    ),
) -> None:
    """Print today, week, month, year and overall totals."""
    from .reporting import SummaryPrinter

    today = _parse_day(date, "--date").date() if date else None
    SummaryPrinter(db_path=db_path or get_db_path()).print_summary(today)


@app.command()
def streaks(
    days: int = typer.Option(365, "--days", min=1, help="How far back to look."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the sessions SQLite database."
    ),
) -> None:
    """Print the current and longest runs of consecutive coding days."""
    from .reporting import SummaryPrinter

    SummaryPrinter(db_path=db_path or get_db_path()).print_streaks(days)


@app.command()
def breakdown(
    start: Optional[str] = typer.Option(None, "--from", help="First day (YYYY-MM-DD)."),
    end: Optional[str] = typer.Option(None, "--to", help="Last day (YYYY-MM-DD), inclusive."),
    limit: int = typer.Option(5, "--limit", min=1, help="Rows per table."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the sessions SQLite database."
    ),
) -> None:
    """Print time per project, language and time of day."""
    from .reporting import SummaryPrinter

    range_start, range_end = _date_range(start, end)
    SummaryPrinter(db_path=db_path or get_db_path()).print_breakdown(
        range_start, range_end, limit=limit
    )


@app.command("export")
def export_sessions(
    output: Path = typer.Argument(..., path_type=Path, help="Target JSON file."),
    start: Optional[str] = typer.Option(None, "--from", help="First day (YYYY-MM-DD)."),
    end: Optional[str] = typer.Option(None, "--to", help="Last day (YYYY-MM-DD), inclusive."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the sessions SQLite database."
    ),
) -> None:
    """Write stored sessions to a JSON export file."""
    from .db import database_connection
    from .transfer import export_to_file

    range_start, range_end = _date_range(start, end)
    with database_connection(db_path or get_db_path()) as conn:
        count = export_to_file(conn, output, range_start, range_end)
    if count is None:
        typer.echo(f"Export to {output} failed.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Exported {count} sessions to {output}.")


@app.command("import")
def import_sessions(
    source: Path = typer.Argument(..., path_type=Path, help="JSON export file to read."),
    db_path: Optional[Path] = typer.Option(
        None, "--db", path_type=Path, help="Location of the sessions SQLite database."
    ),
) -> None:
    """Import sessions from a JSON export, skipping ones already stored."""
    from .db import open_database
    from .transfer import import_from_file
    from .writer import SessionWriter

    writer = SessionWriter(
        functools.partial(open_database, db_path or get_db_path(), check_same_thread=False)
    )
    try:
        result = import_from_file(source, writer)
    finally:
        writer.shutdown()
    if not result.success:
        typer.echo(f"Import failed: {result.error_message}", err=True)
        raise typer.Exit(code=1)
    typer.echo(
        f"Imported {result.imported} of {result.total_in_file} sessions "
        f"({result.skipped} already present)."
    )
