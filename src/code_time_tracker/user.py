"""Stable identifier for this user/installation."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from pathlib import Path

from .db import fetch_any_user_id

logger = logging.getLogger(__name__)


def resolve_user_id(conn: sqlite3.Connection, id_path: Path) -> str:
    """Return the installation's user id, creating one on first run.

    An id already present in the shared database wins over the local file so
    several editors writing to one database agree on a single owner.
    """
    id_path = Path(id_path)
    db_user_id = fetch_any_user_id(conn)
    if db_user_id:
        _store(id_path, db_user_id)
        return db_user_id

    if id_path.exists():
        local_user_id = id_path.read_text(encoding="utf-8").strip()
        if local_user_id:
            return local_user_id

    new_user_id = str(uuid.uuid4())
    _store(id_path, new_user_id)
    logger.info("Generated new user id %s.", new_user_id)
    return new_user_id


def _store(id_path: Path, user_id: str) -> None:
    try:
        id_path.parent.mkdir(parents=True, exist_ok=True)
        id_path.write_text(user_id, encoding="utf-8")
    except OSError:
        logger.exception("Could not store user id at %s.", id_path)
