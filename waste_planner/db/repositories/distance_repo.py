"""
Repository for the project → facility distance cache.

Rows are keyed by (project_id, facility_id) and written only through
``upsert_many``, so two callers computing the same missing facility at the
same time converge on one row instead of raising or duplicating.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from waste_planner.db.repositories.base import BaseRepository
from waste_planner.models.distance import DistanceCacheEntry
from waste_planner.utils.time_utils import from_db_timestamp, to_db_timestamp

logger = logging.getLogger(__name__)


class DistanceCacheRepository(BaseRepository):
    """Read/write access to ``project_facility_distances``."""

    def list_for_project(self, project_id: str) -> list[DistanceCacheEntry]:
        rows = self.fetchall(
            """
            SELECT * FROM project_facility_distances
            WHERE project_id = ?
            ORDER BY facility_id;
            """,
            (project_id,),
        )
        return [_row_to_entry(r) for r in rows]

    def get(self, project_id: str, facility_id: str) -> Optional[DistanceCacheEntry]:
        row = self.fetchone(
            """
            SELECT * FROM project_facility_distances
            WHERE project_id = ? AND facility_id = ?;
            """,
            (project_id, facility_id),
        )
        return _row_to_entry(row) if row else None

    def upsert_many(self, entries: list[DistanceCacheEntry]) -> int:
        """Insert or refresh cache rows.

        Returns:
            Number of entries written.
        """
        if not entries:
            return 0
        now = to_db_timestamp()
        self.executemany(
            """
            INSERT INTO project_facility_distances (
                project_id, facility_id, distance_m, duration_s, provider, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(project_id, facility_id) DO UPDATE SET
                distance_m = excluded.distance_m,
                duration_s = excluded.duration_s,
                provider   = excluded.provider,
                updated_at = excluded.updated_at;
            """,
            [
                (e.project_id, e.facility_id, e.distance_m, e.duration_s, e.provider, now)
                for e in entries
            ],
        )
        logger.debug("Upserted %d distance row(s)", len(entries))
        return len(entries)

    def count_for_project(self, project_id: str) -> int:
        row = self.fetchone(
            "SELECT COUNT(*) AS n FROM project_facility_distances WHERE project_id = ?;",
            (project_id,),
        )
        return int(row["n"]) if row else 0


def _row_to_entry(row: sqlite3.Row) -> DistanceCacheEntry:
    return DistanceCacheEntry(
        project_id=row["project_id"],
        facility_id=row["facility_id"],
        distance_m=row["distance_m"],
        duration_s=row["duration_s"],
        provider=row["provider"],
        updated_at=from_db_timestamp(row["updated_at"]),
    )
