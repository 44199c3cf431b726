"""
SQLite schema DDL — all CREATE TABLE and CREATE INDEX statements.

All statements use ``IF NOT EXISTS`` so ``apply_schema()`` is **idempotent**:
safe to call on an already-initialized database (e.g. after restart or in tests).

Table creation order respects foreign key dependencies:
  1. partners                   (no FKs)
  2. facilities                 (→ partners)
  3. waste_streams              (no FKs)
  4. conversion_factors         (→ waste_streams by name, not enforced)
  5. projects                   (→ partners)
  6. forecast_items             (→ projects, cascade delete)
  7. plan_documents             (→ projects, cascade delete)
  8. project_facility_distances (→ projects, cascade delete)

JSON columns (``accepted_streams``, ``regions``, ``selected_streams``,
``document``) hold UTF-8 JSON text; repositories (de)serialize them.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

# ── DDL statements ─────────────────────────────────────────────────────────────

_DDL_PARTNERS = """
CREATE TABLE IF NOT EXISTS partners (
    partner_id      TEXT    PRIMARY KEY,
    name            TEXT    NOT NULL,
    regions         TEXT    NOT NULL DEFAULT '[]',
    created_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_FACILITIES = """
CREATE TABLE IF NOT EXISTS facilities (
    facility_id      TEXT    PRIMARY KEY,
    partner_id       TEXT    REFERENCES partners(partner_id),
    name             TEXT    NOT NULL,
    region           TEXT,
    address          TEXT,
    lat              REAL,
    lng              REAL,
    accepted_streams TEXT    NOT NULL DEFAULT '[]',
    cost_per_tonne           REAL,
    carbon_kg_co2e_per_tonne REAL,
    diversion_rating         REAL,
    created_at       TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE INDEX IF NOT EXISTS idx_facilities_partner_region
    ON facilities (partner_id, region);
"""

_DDL_WASTE_STREAMS = """
CREATE TABLE IF NOT EXISTS waste_streams (
    stream_name           TEXT    PRIMARY KEY,
    default_density_kg_m3 REAL    CHECK (default_density_kg_m3 IS NULL OR default_density_kg_m3 > 0),
    default_kg_per_m      REAL    CHECK (default_kg_per_m IS NULL OR default_kg_per_m > 0),
    default_unit          TEXT,
    is_active             INTEGER NOT NULL DEFAULT 1,
    updated_at            TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_CONVERSION_FACTORS = """
CREATE TABLE IF NOT EXISTS conversion_factors (
    factor_id   INTEGER PRIMARY KEY AUTOINCREMENT,
    stream_name TEXT    NOT NULL,
    from_unit   TEXT    NOT NULL,
    to_unit     TEXT    NOT NULL DEFAULT 'kg',
    factor      REAL    NOT NULL CHECK (factor > 0),
    is_active   INTEGER NOT NULL DEFAULT 1,
    notes       TEXT,
    created_at  TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_conversion_factors_active
    ON conversion_factors (stream_name, from_unit, to_unit)
    WHERE is_active = 1;
"""

_DDL_PROJECTS = """
CREATE TABLE IF NOT EXISTS projects (
    project_id         TEXT    PRIMARY KEY,
    name               TEXT    NOT NULL,
    site_address       TEXT,
    site_lat           REAL,
    site_lng           REAL,
    region             TEXT,
    primary_partner_id TEXT    REFERENCES partners(partner_id),
    selected_streams   TEXT    NOT NULL DEFAULT '[]',
    created_at         TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%SZ', 'now'))
);
"""

_DDL_FORECAST_ITEMS = """
CREATE TABLE IF NOT EXISTS forecast_items (
    item_id            TEXT    PRIMARY KEY,
    project_id         TEXT    NOT NULL REFERENCES projects(project_id) ON DELETE CASCADE,
    item_name          TEXT    NOT NULL DEFAULT '',
    quantity           REAL    NOT NULL CHECK (quantity >= 0),
    unit               TEXT    NOT NULL,
    excess_percent     REAL    NOT NULL DEFAULT 0
                               CHECK (excess_percent >= 0 AND excess_percent <= 100),
    kg_per_m           REAL,
    density_kg_m3      REAL,
    waste_stream_key   TEXT,
    material_type      TEXT,
    computed_waste_qty REAL,
    computed_waste_kg  REAL,
    created_at         TEXT    NOT NULL,
    updated_at         TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_forecast_items_project
    ON forecast_items (project_id, waste_stream_key);
"""

_DDL_PLAN_DOCUMENTS = """
CREATE TABLE IF NOT EXISTS plan_documents (
    doc_id      INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id  TEXT    NOT NULL REFERENCES projects(project_id) ON DELETE CASCADE,
    document    TEXT    NOT NULL,
    revision    INTEGER NOT NULL DEFAULT 1,
    created_at  TEXT    NOT NULL,
    updated_at  TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_plan_documents_latest
    ON plan_documents (project_id, created_at DESC, doc_id DESC);
"""

_DDL_PROJECT_FACILITY_DISTANCES = """
CREATE TABLE IF NOT EXISTS project_facility_distances (
    project_id  TEXT    NOT NULL REFERENCES projects(project_id) ON DELETE CASCADE,
    facility_id TEXT    NOT NULL,
    distance_m  REAL    NOT NULL CHECK (distance_m >= 0),
    duration_s  REAL    NOT NULL CHECK (duration_s >= 0),
    provider    TEXT    NOT NULL DEFAULT 'google',
    updated_at  TEXT    NOT NULL,
    PRIMARY KEY (project_id, facility_id)
);
"""

# ── Ordered list of all DDL blocks ────────────────────────────────────────────

_ALL_DDL: list[str] = [
    _DDL_PARTNERS,
    _DDL_FACILITIES,
    _DDL_WASTE_STREAMS,
    _DDL_CONVERSION_FACTORS,
    _DDL_PROJECTS,
    _DDL_FORECAST_ITEMS,
    _DDL_PLAN_DOCUMENTS,
    _DDL_PROJECT_FACILITY_DISTANCES,
]

ALL_TABLE_NAMES = [
    "partners",
    "facilities",
    "waste_streams",
    "conversion_factors",
    "projects",
    "forecast_items",
    "plan_documents",
    "project_facility_distances",
]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Apply all DDL statements to ``conn``.

    Idempotent — each statement uses ``IF NOT EXISTS`` guards.

    Args:
        conn: An open ``sqlite3.Connection`` (FK enforcement should be ON).
    """
    logger.debug("Applying schema to database...")

    for ddl in _ALL_DDL:
        for statement in _split_ddl(ddl):
            conn.execute(statement)

    conn.commit()
    logger.info("Schema applied: %d tables, indexes created/verified.", len(ALL_TABLE_NAMES))


def _split_ddl(ddl: str) -> list[str]:
    """Split a multi-statement DDL block on semicolons."""
    return [s.strip() for s in ddl.split(";") if s.strip()]


def get_existing_tables(conn: sqlite3.Connection) -> list[str]:
    """Return the sorted list of table names present in the database."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]


def get_existing_indexes(conn: sqlite3.Connection) -> list[str]:
    """Return the sorted list of index names present in the database."""
    rows = conn.execute(
        "SELECT name FROM sqlite_master WHERE type='index' ORDER BY name;"
    ).fetchall()
    return [row["name"] for row in rows]
