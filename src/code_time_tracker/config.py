"""Configuration models and helpers for the code time tracker."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for session tracking and aggregation."""

    idle_threshold: timedelta = timedelta(seconds=60)
    idle_check_interval: timedelta = timedelta(seconds=5)
    period_check_interval: timedelta = timedelta(seconds=1)
    shutdown_timeout: timedelta = timedelta(seconds=5)
    summary_threshold: int = 20_000

    @classmethod
    def from_intervals(
        cls,
        idle_seconds: float,
        check_seconds: float | None = None,
        shutdown_seconds: float | None = None,
        summary_threshold: int | None = None,
    ) -> "TrackerSettings":
        check = check_seconds if check_seconds is not None else min(5.0, idle_seconds)
        shutdown = shutdown_seconds if shutdown_seconds is not None else 5.0
        return cls(
            idle_threshold=timedelta(seconds=idle_seconds),
            idle_check_interval=timedelta(seconds=check),
            shutdown_timeout=timedelta(seconds=shutdown),
            summary_threshold=(
                summary_threshold if summary_threshold is not None else 20_000
            ),
        )
