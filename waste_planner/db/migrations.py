"""
Sequential schema migrations.

Not a migration framework: a ``schema_versions`` table records which
migration ids ran, and ``run_migrations()`` applies the rest in
``MIGRATIONS`` insertion order. The baseline schema, including the plan
document ``revision`` column and the active conversion factor unique index,
comes from ``apply_schema()``; migrations only carry changes made after a
database was first created.

Adding a migration: write ``migration_NNNN_description(conn)`` and register
it in ``MIGRATIONS`` under ``"NNNN_description"``.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable

logger = logging.getLogger(__name__)

MigrationFn = Callable[[sqlite3.Connection], None]


def _ensure_version_table(conn: sqlite3.Connection) -> None:
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schema_versions (
            version_id  TEXT    NOT NULL PRIMARY KEY,
            applied_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now')),
            description TEXT
        );
    """)
    conn.commit()


def _get_applied_versions(conn: sqlite3.Connection) -> set[str]:
    rows = conn.execute("SELECT version_id FROM schema_versions;").fetchall()
    return {row[0] for row in rows}


# ── Migration functions ────────────────────────────────────────────────────────

def migration_0001_baseline(conn: sqlite3.Connection) -> None:
    """Baseline marker; the initial tables come from ``apply_schema()``."""


MIGRATIONS: dict[str, tuple[MigrationFn, str]] = {
    "0001_baseline": (
        migration_0001_baseline,
        "Baseline: schema_versions table created",
    ),
}


def run_migrations(conn: sqlite3.Connection) -> int:
    """Apply all pending migrations.

    Args:
        conn: An open connection with the baseline schema applied.

    Returns:
        Number of migrations applied in this call.
    """
    _ensure_version_table(conn)
    applied = _get_applied_versions(conn)

    count = 0
    for version_id, (fn, description) in MIGRATIONS.items():
        if version_id in applied:
            logger.debug("Migration %s already applied; skipping.", version_id)
            continue

        logger.info("Applying migration %s: %s", version_id, description)
        try:
            fn(conn)
            conn.execute(
                "INSERT INTO schema_versions(version_id, description) VALUES (?, ?);",
                (version_id, description),
            )
            conn.commit()
            count += 1
        except Exception as exc:
            conn.rollback()
            logger.error("Migration %s FAILED: %s", version_id, exc)
            raise

    if count:
        logger.info("Applied %d migration(s).", count)
    else:
        logger.debug("No pending migrations.")

    return count
