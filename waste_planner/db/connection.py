"""
SQLite connection management.

``open_connection()`` returns a configured connection; ``get_connection()``
wraps it in a transaction-scoped context manager:

  - foreign keys ON (forecast items, plan documents and distance rows
    cascade when a project is deleted),
  - WAL journal mode so strategy reads do not block item writes,
  - busy timeout for lock contention between concurrent CLI/API callers,
  - ``sqlite3.Row`` factory,
  - commit on clean exit, rollback on exception.

Usage::

    from waste_planner.db.connection import get_connection

    with get_connection("data/db/waste_planner.db") as conn:
        PlanningService(conn, config).get_strategy("p-1")
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from waste_planner.db.schema import apply_schema

logger = logging.getLogger(__name__)


def open_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> sqlite3.Connection:
    """Open and configure a SQLite connection (caller closes it).

    Parent directories of ``db_path`` are created. ``":memory:"`` is
    passed through untouched.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)};")
    if wal_mode and db_path != ":memory:":
        conn.execute("PRAGMA journal_mode = WAL;")
    return conn


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
    ensure_schema: bool = False,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    Args:
        db_path: Database file path, or ``":memory:"``.
        wal_mode: Enable WAL journal mode.
        busy_timeout_ms: Lock wait before ``OperationalError``.
        ensure_schema: Apply the (idempotent) schema before yielding.

    Yields:
        An open ``sqlite3.Connection``; committed on success, rolled back
        and re-raised on error, always closed.
    """
    conn = open_connection(db_path, wal_mode=wal_mode, busy_timeout_ms=busy_timeout_ms)
    try:
        if ensure_schema:
            apply_schema(conn)
        yield conn
        conn.commit()
    except Exception:
        logger.debug("Rolling back transaction on %s", db_path)
        conn.rollback()
        raise
    finally:
        conn.close()
