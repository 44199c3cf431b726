"""
Repository for administrator-managed conversion factors.

At most one active factor may exist per (stream, from_unit, to_unit). The
repository checks before inserting and the partial unique index
``uq_conversion_factors_active`` backs that up for concurrent writers;
either path surfaces as ``ValidationError``. Deactivating keeps the row.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from waste_planner.db.repositories.base import BaseRepository
from waste_planner.errors import ValidationError
from waste_planner.models.catalog import ConversionFactor

logger = logging.getLogger(__name__)


class ConversionFactorRepository(BaseRepository):
    """Read/write access to the ``conversion_factors`` table."""

    def insert(self, factor: ConversionFactor) -> int:
        """Insert a factor and return its ``factor_id``.

        Raises:
            ValidationError: If ``factor`` is active and an active factor for
                the same (stream, from_unit, to_unit) already exists.
        """
        if factor.is_active:
            existing = self.get_active(factor.stream_name, factor.from_unit, factor.to_unit)
            if existing is not None:
                raise ValidationError(
                    "An active conversion factor already exists for "
                    f"({factor.stream_name!r}, {factor.from_unit}, {factor.to_unit}) "
                    f"[factor_id={existing.factor_id}]; deactivate it first."
                )
        try:
            self.execute(
                """
                INSERT INTO conversion_factors (
                    stream_name, from_unit, to_unit, factor, is_active, notes
                ) VALUES (?, ?, ?, ?, ?, ?);
                """,
                (
                    factor.stream_name,
                    factor.from_unit,
                    factor.to_unit,
                    factor.factor,
                    int(factor.is_active),
                    factor.notes,
                ),
            )
        except sqlite3.IntegrityError as exc:
            raise ValidationError(
                f"Duplicate active conversion factor for {factor.stream_name!r}: {exc}"
            ) from exc
        return self.last_insert_rowid()

    def deactivate(self, factor_id: int) -> bool:
        cur = self.execute(
            "UPDATE conversion_factors SET is_active = 0 WHERE factor_id = ?;",
            (factor_id,),
        )
        return cur.rowcount > 0

    def get_active(
        self, stream_name: str, from_unit: str, to_unit: str = "kg"
    ) -> Optional[ConversionFactor]:
        row = self.fetchone(
            """
            SELECT * FROM conversion_factors
            WHERE stream_name = ? AND from_unit = ? AND to_unit = ? AND is_active = 1;
            """,
            (stream_name.strip(), from_unit, to_unit),
        )
        return _row_to_factor(row) if row else None

    def list_active(self) -> list[ConversionFactor]:
        rows = self.fetchall(
            """
            SELECT * FROM conversion_factors
            WHERE is_active = 1
            ORDER BY stream_name, from_unit, to_unit;
            """
        )
        return [_row_to_factor(r) for r in rows]

    def list_for_stream(self, stream_name: str) -> list[ConversionFactor]:
        """All factors for a stream, active and historical, newest first."""
        rows = self.fetchall(
            "SELECT * FROM conversion_factors WHERE stream_name = ? ORDER BY factor_id DESC;",
            (stream_name.strip(),),
        )
        return [_row_to_factor(r) for r in rows]


def _row_to_factor(row: sqlite3.Row) -> ConversionFactor:
    return ConversionFactor(
        factor_id=row["factor_id"],
        stream_name=row["stream_name"],
        from_unit=row["from_unit"],
        to_unit=row["to_unit"],
        factor=row["factor"],
        is_active=bool(row["is_active"]),
        notes=row["notes"],
    )
