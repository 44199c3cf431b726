"""
Repository for projects.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from waste_planner.db.repositories.base import BaseRepository, dump_json, load_json
from waste_planner.models.catalog import Project
from waste_planner.utils.time_utils import from_db_timestamp

logger = logging.getLogger(__name__)


class ProjectRepository(BaseRepository):
    """Read/write access to the ``projects`` table."""

    def upsert(self, project: Project) -> None:
        """Insert or update a project by ``project_id``.

        Stored site coordinates survive an update that carries none, unless
        the site address changed.
        """
        self.execute(
            """
            INSERT INTO projects (
                project_id, name, site_address, site_lat, site_lng,
                region, primary_partner_id, selected_streams
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(project_id) DO UPDATE SET
                name               = excluded.name,
                site_address       = excluded.site_address,
                site_lat           = CASE
                    WHEN excluded.site_lat IS NULL
                         AND excluded.site_address IS projects.site_address
                    THEN projects.site_lat ELSE excluded.site_lat END,
                site_lng           = CASE
                    WHEN excluded.site_lng IS NULL
                         AND excluded.site_address IS projects.site_address
                    THEN projects.site_lng ELSE excluded.site_lng END,
                region             = excluded.region,
                primary_partner_id = excluded.primary_partner_id,
                selected_streams   = excluded.selected_streams;
            """,
            (
                project.project_id,
                project.name,
                project.site_address,
                project.site_lat,
                project.site_lng,
                project.region,
                project.primary_partner_id,
                dump_json(project.selected_streams),
            ),
        )

    def get(self, project_id: str) -> Optional[Project]:
        row = self.fetchone("SELECT * FROM projects WHERE project_id = ?;", (project_id,))
        return _row_to_project(row) if row else None

    def list_all(self) -> list[Project]:
        rows = self.fetchall("SELECT * FROM projects ORDER BY project_id;")
        return [_row_to_project(r) for r in rows]

    def set_site_coordinates(self, project_id: str, lat: float, lng: float) -> None:
        """Persist geocoded site coordinates."""
        self.execute(
            "UPDATE projects SET site_lat = ?, site_lng = ? WHERE project_id = ?;",
            (lat, lng, project_id),
        )
        logger.info("Stored site coordinates for project %s", project_id)

    def delete(self, project_id: str) -> bool:
        """Delete a project; items, plan documents and distances cascade."""
        cur = self.execute("DELETE FROM projects WHERE project_id = ?;", (project_id,))
        return cur.rowcount > 0


def _row_to_project(row: sqlite3.Row) -> Project:
    return Project(
        project_id=row["project_id"],
        name=row["name"],
        site_address=row["site_address"],
        site_lat=row["site_lat"],
        site_lng=row["site_lng"],
        region=row["region"],
        primary_partner_id=row["primary_partner_id"],
        selected_streams=load_json(row["selected_streams"], []),
        created_at=from_db_timestamp(row["created_at"]),
    )
