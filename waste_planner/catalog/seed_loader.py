"""
Catalog seed loader: JSON + built-in stream defaults → SQLite.

Responsibilities
----------------
1. Upsert every entry of ``STREAM_DEFAULTS`` into ``waste_streams``.
2. Load ``config/seed/facilities.json`` (or any file with the same shape)
   and upsert its partners, then its facilities.

Seed file shape
---------------
    {
      "partners":   [{"partner_id": ..., "name": ..., "regions": [...]}],
      "facilities": [{"facility_id": ..., "partner_id": ..., "name": ...,
                      "region": ..., "address": ..., "lat": ..., "lng": ...,
                      "accepted_streams": [...]}]
    }

Validation rules
----------------
- Duplicate partner or facility ids are rejected.
- A facility's ``partner_id`` must reference a partner in the same file.
- ``lat`` / ``lng`` are optional; a facility without them is loaded but can
  never be routed.

Re-running the loader is safe: every write is an upsert.

Usage
-----
    from waste_planner.catalog.seed_loader import seed_catalog

    streams, partners, facilities = seed_catalog(conn, Path("config/seed/facilities.json"))
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError as PydanticValidationError

from waste_planner.db.repositories.catalog_repo import (
    FacilityRepository,
    PartnerRepository,
    WasteStreamRepository,
)
from waste_planner.errors import ValidationError
from waste_planner.models.catalog import Facility, Partner, WasteStreamEntry
from waste_planner.taxonomy.stream_catalog import STREAM_DEFAULTS

log = logging.getLogger(__name__)


# ── Validation ────────────────────────────────────────────────────────────────

def _check_unique(records: list[dict[str, Any]], key: str, label: str) -> set[str]:
    seen: set[str] = set()
    for i, rec in enumerate(records):
        value = rec.get(key)
        if not value:
            raise ValidationError(f"{label} at index {i} is missing '{key}'.")
        if value in seen:
            raise ValidationError(f"Duplicate {label.lower()} id '{value}' at index {i}.")
        seen.add(value)
    return seen


def parse_seed_payload(payload: dict[str, Any]) -> tuple[list[Partner], list[Facility]]:
    """Validate a decoded seed file into models.

    Raises:
        ValidationError: Duplicate ids, dangling partner references, or a
            record pydantic rejects.
    """
    partner_records = payload.get("partners", [])
    facility_records = payload.get("facilities", [])

    partner_ids = _check_unique(partner_records, "partner_id", "Partner")
    _check_unique(facility_records, "facility_id", "Facility")

    for rec in facility_records:
        ref = rec.get("partner_id")
        if ref and ref not in partner_ids:
            raise ValidationError(
                f"Facility '{rec['facility_id']}' references unknown partner '{ref}'."
            )

    try:
        partners = [Partner.model_validate(r) for r in partner_records]
        facilities = [Facility.model_validate(r) for r in facility_records]
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc
    return partners, facilities


# ── DB upserts ────────────────────────────────────────────────────────────────

def upsert_stream_defaults(conn: sqlite3.Connection) -> int:
    """Write the built-in stream defaults to ``waste_streams``. Returns count."""
    repo = WasteStreamRepository(conn)
    for name, default in STREAM_DEFAULTS.items():
        repo.upsert(
            WasteStreamEntry(
                stream_name=name,
                default_density_kg_m3=default.density_kg_m3,
                default_kg_per_m=default.kg_per_m,
                default_unit=default.default_unit,
            )
        )
    log.info("Upserted %d waste stream defaults.", len(STREAM_DEFAULTS))
    return len(STREAM_DEFAULTS)


def upsert_partners_and_facilities(
    conn: sqlite3.Connection,
    partners: list[Partner],
    facilities: list[Facility],
) -> tuple[int, int]:
    partner_repo = PartnerRepository(conn)
    facility_repo = FacilityRepository(conn)
    for partner in partners:
        partner_repo.upsert(partner)
    for facility in facilities:
        if not facility.has_coordinates:
            log.warning(
                "Facility '%s' has no coordinates; it will not be routed.",
                facility.facility_id,
            )
        facility_repo.upsert(facility)
    log.info("Upserted %d partners and %d facilities.", len(partners), len(facilities))
    return len(partners), len(facilities)


# ── Top-level entry point ─────────────────────────────────────────────────────

def seed_catalog(
    conn: sqlite3.Connection,
    seed_path: Optional[Path] = None,
) -> tuple[int, int, int]:
    """Seed stream defaults and, when ``seed_path`` exists, partners/facilities.

    Args:
        conn:      Open SQLite connection with the schema applied.
        seed_path: Facilities JSON file, or ``None`` for stream defaults only.

    Returns:
        Tuple of (streams_upserted, partners_upserted, facilities_upserted).
    """
    streams = upsert_stream_defaults(conn)
    if seed_path is None:
        return streams, 0, 0
    if not seed_path.exists():
        log.warning("Catalog seed file %s not found; skipping facilities.", seed_path)
        return streams, 0, 0

    log.info("Loading catalog seed from %s", seed_path)
    try:
        payload = json.loads(seed_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValidationError(f"Catalog seed {seed_path} is not valid JSON: {exc}") from exc
    partners, facilities = parse_seed_payload(payload)
    n_partners, n_facilities = upsert_partners_and_facilities(conn, partners, facilities)
    return streams, n_partners, n_facilities
