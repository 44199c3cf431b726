"""
Timestamp helpers.

Plan document rows are ordered by ``created_at`` text, so every timestamp we
write must sort lexically in chronological order. ``to_db_timestamp`` always
emits fixed-width UTC ISO strings with microseconds.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

DB_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


def to_db_timestamp(dt: Optional[datetime] = None) -> str:
    """Format ``dt`` (default: now) as a sortable UTC timestamp string."""
    if dt is None:
        dt = utcnow()
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(DB_TIMESTAMP_FORMAT)


def from_db_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse a timestamp written by ``to_db_timestamp`` or SQLite ``strftime``.

    Accepts both the microsecond format and SQLite's second-resolution
    ``%Y-%m-%dT%H:%M:%SZ`` default. Returns ``None`` for ``None``/empty.
    """
    if not value:
        return None
    for fmt in (DB_TIMESTAMP_FORMAT, "%Y-%m-%dT%H:%M:%SZ"):
        try:
            return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return datetime.fromisoformat(value)
