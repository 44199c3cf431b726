"""
Base repository with shared SQLite helpers.

Repositories receive a ``sqlite3.Connection`` owned by the caller (usually
``get_connection()``), contain all SQL explicitly (no ORM), and return
pydantic models rather than raw rows. JSON-valued columns go through
``dump_json`` / ``load_json`` so every table serializes the same way.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any, Optional

logger = logging.getLogger(__name__)

Params = tuple[Any, ...] | dict[str, Any]


def dump_json(value: Any) -> str:
    """Serialize to compact, key-sorted JSON text for storage."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def load_json(text: Optional[str], default: Any = None) -> Any:
    """Parse stored JSON text, returning ``default`` for NULL/empty."""
    if text is None or text == "":
        return default
    return json.loads(text)


class BaseRepository:
    """Shared execution helpers for all repository classes.

    Attributes:
        conn: The active ``sqlite3.Connection``.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def execute(self, sql: str, params: Params = ()) -> sqlite3.Cursor:
        logger.debug("SQL: %s | params: %s", sql.strip(), params)
        return self.conn.execute(sql, params)

    def executemany(self, sql: str, params_list: list[Params]) -> sqlite3.Cursor:
        logger.debug("SQL (many): %s | count: %d", sql.strip(), len(params_list))
        return self.conn.executemany(sql, params_list)

    def fetchone(self, sql: str, params: Params = ()) -> Optional[sqlite3.Row]:
        return self.execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: Params = ()) -> list[sqlite3.Row]:
        return self.execute(sql, params).fetchall()

    def last_insert_rowid(self) -> int:
        row = self.fetchone("SELECT last_insert_rowid() AS rowid;")
        assert row is not None
        return int(row["rowid"])
