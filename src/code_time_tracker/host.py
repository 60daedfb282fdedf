"""Describe the machine and host application sessions are recorded on."""

from __future__ import annotations

import logging
import platform

import psutil

logger = logging.getLogger(__name__)


def current_platform() -> str:
    system = platform.system() or "Unknown"
    release = platform.release()
    return f"{system} {release}".strip()


def detect_host_application() -> str:
    """Name of the process that launched the tracker, e.g. the editor."""
    try:
        parent = psutil.Process().parent()
        if parent is None:
            return "unknown"
        return parent.name() or "unknown"
    except (psutil.Error, ProcessLookupError):
        logger.debug("Could not inspect parent process.", exc_info=True)
        return "unknown"
