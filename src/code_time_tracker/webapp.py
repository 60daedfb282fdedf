"""FastAPI application that exposes the tracker and its statistics over HTTP."""

from __future__ import annotations

import logging
from concurrent.futures import Future
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict

from . import aggregation
from .activity import ActivityTarget
from .config import TrackerSettings
from .db import database_connection, format_timestamp
from .models import TimePeriod
from .paths import get_db_path, get_user_id_path
from .service import TrackerService
from .summary import compute_summary
from .timeranges import day_range, period_range, year_range
from .tracker import SessionTracker
from .transfer import build_export, import_from_json

logger = logging.getLogger(__name__)

WRITE_WAIT_SECONDS = 30.0


class ActivityPayload(BaseModel):
    file_path: str
    project_path: str
    project_name: Optional[str] = None
    language: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ProjectClosePayload(BaseModel):
    project_path: str

    model_config = ConfigDict(extra="forbid")


def create_app(
    *,
    db_path: Optional[Path] = None,
    settings: Optional[TrackerSettings] = None,
    service: Optional[TrackerService] = None,
) -> FastAPI:
    """Instantiate the FastAPI application."""
    if service is None:
        resolved_db_path = Path(db_path or get_db_path())
        service = TrackerService(
            resolved_db_path,
            settings or TrackerSettings(),
            user_id_path=None if db_path else get_user_id_path(),
        )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
        service.start()
        try:
            yield
        finally:
            service.shutdown()

    app = FastAPI(title="Code Time Tracker", version="0.3.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.db_path = service.db_path
    app.state.service = service

    @app.get("/api/status")
    def status(request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        tracker = svc.tracker
        payload: Dict[str, Any] = {
            "tracker_running": tracker is not None,
            "database_path": str(request.app.state.db_path),
            "idle_seconds": svc.settings.idle_threshold.total_seconds(),
            "user_active": False,
            "last_activity": None,
            "active_sessions": [],
            "counters": {},
        }
        if tracker is None:
            return payload
        last_activity = tracker.last_activity
        payload.update(
            user_active=tracker.user_active,
            last_activity=format_timestamp(last_activity) if last_activity else None,
            active_sessions=[
                {
                    "project_name": session.project_name,
                    "language": session.language,
                    "start_time": format_timestamp(session.start_time),
                    "end_time": format_timestamp(session.end_time),
                }
                for session in tracker.active_sessions()
            ],
            counters={
                period.value: int(value.total_seconds())
                for period, value in tracker.counters.snapshot().items()
            },
        )
        return payload

    @app.post("/api/activity")
    def record_activity(payload: ActivityPayload, request: Request) -> Dict[str, Any]:
        tracker = _require_tracker(request)
        target = ActivityTarget(
            file_path=payload.file_path,
            project_path=payload.project_path,
            project_name=payload.project_name,
            language=payload.language,
        )
        counted = tracker.on_activity(target)
        return {"counted": counted, "language": target.resolved_language}

    @app.post("/api/projects/close")
    def close_project(payload: ProjectClosePayload, request: Request) -> Dict[str, Any]:
        tracker = _require_tracker(request)
        future = tracker.stop_project_tracking(payload.project_path)
        return {"saved": _wait_for_write(future)}

    @app.post("/api/sessions/flush")
    def flush_sessions(request: Request) -> Dict[str, Any]:
        tracker = _require_tracker(request)
        future = tracker.force_persist_sessions()
        return {"saved": _wait_for_write(future)}

    @app.get("/api/summary")
    def summary(request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        with database_connection(request.app.state.db_path) as conn:
            data = compute_summary(
                conn, today=svc.today(), threshold=svc.settings.summary_threshold
            )
        return {"summary_seconds": data.as_seconds()}

    @app.get("/api/total")
    def total(
        request: Request,
        project: Optional[str] = Query(default=None, description="Project name filter."),
    ) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            duration = aggregation.total_coding_time(conn, project)
        return {"project_name": project, "seconds": int(duration.total_seconds())}

    @app.get("/api/periods/{period}")
    def period_total(
        period: TimePeriod,
        request: Request,
        project: Optional[str] = Query(default=None, description="Project name filter."),
    ) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        start, end = period_range(period, svc.today())
        with database_connection(request.app.state.db_path) as conn:
            duration = aggregation.coding_time_for_period(conn, start, end, project)
        return {
            "period": period.value,
            "start": format_timestamp(start),
            "end": format_timestamp(end),
            "seconds": int(duration.total_seconds()),
        }

    @app.get("/api/heatmap")
    def heatmap(
        request: Request,
        start: Optional[str] = Query(default=None, description="YYYY-MM-DD (inclusive)."),
        end: Optional[str] = Query(default=None, description="YYYY-MM-DD (inclusive)."),
    ) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        range_start, range_end = _parse_range(start, end) or year_range(svc.today())
        with database_connection(request.app.state.db_path) as conn:
            days = aggregation.daily_coding_time_for_heatmap(conn, range_start, range_end)
        return {
            "start": range_start.strftime("%Y-%m-%d"),
            "end": (range_end - timedelta(days=1)).strftime("%Y-%m-%d"),
            "days": [
                {"date": item.date.isoformat(), "seconds": item.seconds} for item in days
            ],
        }

    @app.get("/api/recent-activity")
    def recent(
        request: Request,
        days: int = Query(default=30, ge=1, le=366),
    ) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        with database_connection(request.app.state.db_path) as conn:
            series = aggregation.recent_activity(conn, days=days, today=svc.today())
        return {
            "days": [
                {"date": item.date.isoformat(), "seconds": item.seconds} for item in series
            ]
        }

    @app.get("/api/streaks")
    def streaks(
        request: Request,
        start: Optional[str] = Query(default=None, description="YYYY-MM-DD (inclusive)."),
        end: Optional[str] = Query(default=None, description="YYYY-MM-DD (inclusive)."),
    ) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        today = svc.today()
        range_start, range_end = _parse_range(start, end) or (
            day_range(today - timedelta(days=365))[0],
            day_range(today)[1],
        )
        with database_connection(request.app.state.db_path) as conn:
            result = aggregation.coding_streaks(conn, range_start, range_end, today=today)
        return {"current_streak": result.current_streak, "max_streak": result.max_streak}

    @app.get("/api/distribution/daily-hour")
    def daily_hour(
        request: Request,
        start: Optional[str] = Query(default=None),
        end: Optional[str] = Query(default=None),
    ) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            rows = aggregation.daily_hour_distribution(conn, *_optional_range(start, end))
        return {
            "entries": [
                {
                    "day_of_week": item.day_of_week,
                    "hour_of_day": item.hour_of_day,
                    "seconds": item.seconds,
                }
                for item in rows
            ]
        }

    @app.get("/api/distribution/hourly")
    def hourly(
        request: Request,
        start: Optional[str] = Query(default=None),
        end: Optional[str] = Query(default=None),
    ) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            rows = aggregation.overall_hourly_distribution(conn, *_optional_range(start, end))
        return {
            "entries": [
                {"hour_of_day": item.hour_of_day, "seconds": item.seconds} for item in rows
            ]
        }

    @app.get("/api/distribution/languages")
    def languages(
        request: Request,
        start: Optional[str] = Query(default=None),
        end: Optional[str] = Query(default=None),
    ) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            rows = aggregation.language_distribution(conn, *_optional_range(start, end))
        return {
            "entries": [{"language": item.language, "seconds": item.seconds} for item in rows]
        }

    @app.get("/api/distribution/projects")
    def projects(
        request: Request,
        start: Optional[str] = Query(default=None),
        end: Optional[str] = Query(default=None),
    ) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            rows = aggregation.project_distribution(conn, *_optional_range(start, end))
        return {
            "entries": [
                {"project_name": item.project_name, "seconds": item.seconds} for item in rows
            ]
        }

    @app.get("/api/distribution/time-of-day")
    def time_of_day(
        request: Request,
        start: Optional[str] = Query(default=None),
        end: Optional[str] = Query(default=None),
    ) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            rows = aggregation.time_of_day_distribution(conn, *_optional_range(start, end))
        return {
            "entries": [
                {"time_of_day": item.time_of_day.value, "seconds": item.seconds}
                for item in rows
            ]
        }

    @app.get("/api/export")
    def export(
        request: Request,
        start: Optional[str] = Query(default=None),
        end: Optional[str] = Query(default=None),
    ) -> Dict[str, Any]:
        with database_connection(request.app.state.db_path) as conn:
            data = build_export(conn, *_optional_range(start, end))
        return data.model_dump(by_alias=True, mode="json")

    @app.post("/api/import")
    async def import_sessions(request: Request) -> Dict[str, Any]:
        svc: TrackerService = request.app.state.service
        if svc.writer is None:
            raise HTTPException(status_code=503, detail="Tracker is not running")
        body = await request.body()
        # The import waits on the writer; keep that wait off the event loop.
        result = await run_in_threadpool(
            import_from_json,
            body.decode("utf-8", errors="replace"),
            svc.writer,
            timeout=WRITE_WAIT_SECONDS,
        )
        payload = {
            "success": result.success,
            "total_in_file": result.total_in_file,
            "imported": result.imported,
            "skipped": result.skipped,
            "failed": result.failed,
            "error_message": result.error_message,
        }
        if not result.success and result.total_in_file == 0:
            raise HTTPException(status_code=400, detail=payload)
        return payload

    return app


def _require_tracker(request: Request) -> SessionTracker:
    tracker = request.app.state.service.tracker
    if tracker is None:
        raise HTTPException(status_code=503, detail="Tracker is not running")
    return tracker


def _wait_for_write(future: Optional[Future]) -> int:
    if future is None:
        return 0
    try:
        return int(future.result(timeout=WRITE_WAIT_SECONDS))
    except Exception as exc:
        logger.exception("Session write failed.")
        raise HTTPException(status_code=500, detail="Failed to persist sessions.") from exc


def _parse_range(
    start: Optional[str], end: Optional[str]
) -> Optional[tuple[datetime, datetime]]:
    """Turn inclusive ``YYYY-MM-DD`` bounds into a half-open datetime range."""
    if not start and not end:
        return None
    if not start or not end:
        raise HTTPException(status_code=400, detail="start and end must be given together")
    start_day = _parse_date(start)
    end_day = _parse_date(end)
    if end_day < start_day:
        raise HTTPException(status_code=400, detail="end date must be on or after start date")
    return day_range(start_day)[0], day_range(end_day)[1]


def _optional_range(
    start: Optional[str], end: Optional[str]
) -> tuple[Optional[datetime], Optional[datetime]]:
    parsed = _parse_range(start, end)
    if parsed is None:
        return None, None
    return parsed


def _parse_date(value: str) -> date:
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail="Invalid date format") from exc
