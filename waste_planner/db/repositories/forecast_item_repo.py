"""
Repository for forecast items.

Raw fields are written by ``insert`` / ``update``; the cached
``computed_waste_qty`` / ``computed_waste_kg`` columns are written only by
``update_computed`` during aggregation.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from waste_planner.db.repositories.base import BaseRepository
from waste_planner.models.forecast_item import ForecastItem
from waste_planner.utils.time_utils import from_db_timestamp, to_db_timestamp

logger = logging.getLogger(__name__)


class ForecastItemRepository(BaseRepository):
    """Read/write access to the ``forecast_items`` table."""

    def insert(self, item: ForecastItem) -> None:
        now = to_db_timestamp()
        self.execute(
            """
            INSERT INTO forecast_items (
                item_id, project_id, item_name, quantity, unit, excess_percent,
                kg_per_m, density_kg_m3, waste_stream_key, material_type,
                computed_waste_qty, computed_waste_kg, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
            """,
            (
                item.item_id,
                item.project_id,
                item.item_name,
                item.quantity,
                item.unit.value,
                item.excess_percent,
                item.kg_per_m,
                item.density_kg_m3,
                item.waste_stream_key,
                item.material_type,
                item.computed_waste_qty,
                item.computed_waste_kg,
                now,
                now,
            ),
        )

    def update(self, item: ForecastItem) -> bool:
        """Overwrite an item's raw fields. Returns ``False`` if it does not exist."""
        cur = self.execute(
            """
            UPDATE forecast_items SET
                item_name        = ?,
                quantity         = ?,
                unit             = ?,
                excess_percent   = ?,
                kg_per_m         = ?,
                density_kg_m3    = ?,
                waste_stream_key = ?,
                material_type    = ?,
                updated_at       = ?
            WHERE item_id = ? AND project_id = ?;
            """,
            (
                item.item_name,
                item.quantity,
                item.unit.value,
                item.excess_percent,
                item.kg_per_m,
                item.density_kg_m3,
                item.waste_stream_key,
                item.material_type,
                to_db_timestamp(),
                item.item_id,
                item.project_id,
            ),
        )
        return cur.rowcount > 0

    def delete(self, item_id: str) -> bool:
        cur = self.execute("DELETE FROM forecast_items WHERE item_id = ?;", (item_id,))
        return cur.rowcount > 0

    def get(self, item_id: str) -> Optional[ForecastItem]:
        row = self.fetchone("SELECT * FROM forecast_items WHERE item_id = ?;", (item_id,))
        return _row_to_item(row) if row else None

    def list_for_project(self, project_id: str) -> list[ForecastItem]:
        """All items of a project in stable (created_at, item_id) order."""
        rows = self.fetchall(
            """
            SELECT * FROM forecast_items
            WHERE project_id = ?
            ORDER BY created_at, item_id;
            """,
            (project_id,),
        )
        return [_row_to_item(r) for r in rows]

    def update_computed(self, items: list[ForecastItem]) -> int:
        """Persist the cached computed fields of ``items``.

        Only the two cache columns are touched, so a concurrent raw edit is
        never overwritten by a sync.
        """
        if not items:
            return 0
        self.executemany(
            """
            UPDATE forecast_items
            SET computed_waste_qty = ?, computed_waste_kg = ?
            WHERE item_id = ?;
            """,
            [(i.computed_waste_qty, i.computed_waste_kg, i.item_id) for i in items],
        )
        return len(items)

    def assign_stream_to_unallocated(self, project_id: str, stream_key: str) -> int:
        """Set ``waste_stream_key`` on every unallocated item of a project.

        Returns:
            Number of items reassigned.
        """
        cur = self.execute(
            """
            UPDATE forecast_items
            SET waste_stream_key = ?, updated_at = ?
            WHERE project_id = ?
              AND (waste_stream_key IS NULL OR TRIM(waste_stream_key) = '');
            """,
            (stream_key, to_db_timestamp(), project_id),
        )
        return cur.rowcount


def _row_to_item(row: sqlite3.Row) -> ForecastItem:
    return ForecastItem(
        item_id=row["item_id"],
        project_id=row["project_id"],
        item_name=row["item_name"],
        quantity=row["quantity"],
        unit=row["unit"],
        excess_percent=row["excess_percent"],
        kg_per_m=row["kg_per_m"],
        density_kg_m3=row["density_kg_m3"],
        waste_stream_key=row["waste_stream_key"],
        material_type=row["material_type"],
        computed_waste_qty=row["computed_waste_qty"],
        computed_waste_kg=row["computed_waste_kg"],
        created_at=from_db_timestamp(row["created_at"]),
        updated_at=from_db_timestamp(row["updated_at"]),
    )
