"""
Repository for plan documents.

Plan documents are stored as versioned rows. The row with the greatest
``created_at`` (ties broken by ``doc_id``) is the latest and authoritative
one; older rows are history and are never modified.

Write paths:

  - ``save()``            — read-modify-write target. Updates the latest
                            row in place (bumping ``revision``) or inserts
                            the first row.
  - ``append_version()``  — inserts a new row, leaving the previous latest
                            row as an untouched snapshot.

``save(expected_revision=...)`` is an opt-in optimistic check. Without it,
concurrent writers resolve last-writer-wins at whole-document granularity.
"""

from __future__ import annotations

import logging
import sqlite3
from datetime import timedelta
from typing import Optional

from waste_planner.db.repositories.base import BaseRepository, dump_json, load_json
from waste_planner.errors import StaleRevisionError
from waste_planner.models.plan import PlanDocument, PlanDocumentRecord
from waste_planner.utils.time_utils import from_db_timestamp, to_db_timestamp

logger = logging.getLogger(__name__)

_LATEST_SQL = """
    SELECT * FROM plan_documents
    WHERE project_id = ?
    ORDER BY created_at DESC, doc_id DESC
    LIMIT 1;
"""


class PlanDocumentRepository(BaseRepository):
    """Read/write access to the ``plan_documents`` table."""

    def get_latest(self, project_id: str) -> Optional[PlanDocumentRecord]:
        row = self.fetchone(_LATEST_SQL, (project_id,))
        return _row_to_record(row) if row else None

    def list_history(self, project_id: str) -> list[PlanDocumentRecord]:
        """All rows for a project, newest first."""
        rows = self.fetchall(
            """
            SELECT * FROM plan_documents
            WHERE project_id = ?
            ORDER BY created_at DESC, doc_id DESC;
            """,
            (project_id,),
        )
        return [_row_to_record(r) for r in rows]

    def save(
        self,
        project_id: str,
        document: PlanDocument,
        expected_revision: Optional[int] = None,
    ) -> PlanDocumentRecord:
        """Persist ``document`` as the project's current plan.

        Args:
            project_id: Owning project.
            document: Full document to store (never merged with the old one).
            expected_revision: When given, the latest row must be at this
                revision (``0`` means "no row yet").

        Returns:
            The stored record.

        Raises:
            StaleRevisionError: ``expected_revision`` does not match.
        """
        latest = self.get_latest(project_id)
        current_revision = latest.revision if latest else 0
        if expected_revision is not None and expected_revision != current_revision:
            raise StaleRevisionError(project_id, expected_revision, current_revision)

        if latest is None:
            return self.append_version(project_id, document)

        now = to_db_timestamp()
        self.execute(
            """
            UPDATE plan_documents
            SET document = ?, revision = revision + 1, updated_at = ?
            WHERE doc_id = ?;
            """,
            (dump_json(document.to_json_dict()), now, latest.doc_id),
        )
        logger.debug(
            "Updated plan document %d for project %s (revision %d)",
            latest.doc_id, project_id, latest.revision + 1,
        )
        stored = self.get_latest(project_id)
        assert stored is not None
        return stored

    def append_version(self, project_id: str, document: PlanDocument) -> PlanDocumentRecord:
        """Insert a new latest row, carrying the revision counter forward."""
        latest = self.get_latest(project_id)
        revision = (latest.revision + 1) if latest else 1
        now = to_db_timestamp()
        if latest and latest.created_at and now <= to_db_timestamp(latest.created_at):
            # Keep created_at strictly increasing even on coarse clocks.
            now = _bump(to_db_timestamp(latest.created_at))
        self.execute(
            """
            INSERT INTO plan_documents (project_id, document, revision, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?);
            """,
            (project_id, dump_json(document.to_json_dict()), revision, now, now),
        )
        doc_id = self.last_insert_rowid()
        logger.info("Inserted plan document %d for project %s", doc_id, project_id)
        stored = self.get_latest(project_id)
        assert stored is not None
        return stored


def _bump(timestamp: str) -> str:
    parsed = from_db_timestamp(timestamp)
    assert parsed is not None
    return to_db_timestamp(parsed + timedelta(microseconds=1))


def _row_to_record(row: sqlite3.Row) -> PlanDocumentRecord:
    return PlanDocumentRecord(
        doc_id=int(row["doc_id"]),
        project_id=row["project_id"],
        document=PlanDocument.model_validate(load_json(row["document"], {})),
        revision=int(row["revision"]),
        created_at=from_db_timestamp(row["created_at"]),
        updated_at=from_db_timestamp(row["updated_at"]),
    )
