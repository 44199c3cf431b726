"""
Tests for waste_planner/catalog/seed_loader.py.

Covers:
  - Validation: duplicate ids, dangling partner references, bad records.
  - Upsert idempotency: running twice produces the same row counts.
  - The shipped config/seed/facilities.json loads cleanly.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from waste_planner.catalog.seed_loader import parse_seed_payload, seed_catalog
from waste_planner.db.repositories.catalog_repo import FacilityRepository, WasteStreamRepository
from waste_planner.errors import ValidationError
from waste_planner.taxonomy.stream_catalog import STREAM_DEFAULTS

SHIPPED_SEED = Path(__file__).resolve().parents[2] / "config" / "seed" / "facilities.json"


def _payload(**overrides) -> dict:
    payload = {
        "partners": [{"partner_id": "enviro", "name": "Enviro"}],
        "facilities": [
            {"facility_id": "f-1", "partner_id": "enviro", "name": "Yard",
             "lat": -36.9, "lng": 174.8, "accepted_streams": ["Metals"]},
        ],
    }
    payload.update(overrides)
    return payload


class TestParseSeedPayload:
    def test_valid(self):
        partners, facilities = parse_seed_payload(_payload())
        assert partners[0].partner_id == "enviro"
        assert facilities[0].accepts("Metals")

    def test_duplicate_facility_id(self):
        dup = _payload()["facilities"] * 2
        with pytest.raises(ValidationError, match="Duplicate"):
            parse_seed_payload(_payload(facilities=dup))

    def test_unknown_partner(self):
        bad = [{"facility_id": "f-1", "partner_id": "ghost", "name": "Yard"}]
        with pytest.raises(ValidationError, match="unknown partner"):
            parse_seed_payload(_payload(facilities=bad))

    def test_missing_id(self):
        with pytest.raises(ValidationError, match="missing"):
            parse_seed_payload(_payload(partners=[{"name": "Nameless"}], facilities=[]))

    def test_bad_record_type(self):
        bad = [{"facility_id": "f-1", "name": "Yard", "lat": "north"}]
        with pytest.raises(ValidationError):
            parse_seed_payload(_payload(facilities=bad))


class TestSeedCatalog:
    def test_idempotent(self, in_memory_db, tmp_path):
        path = tmp_path / "seed.json"
        path.write_text(json.dumps(_payload()), encoding="utf-8")
        first = seed_catalog(in_memory_db, path)
        second = seed_catalog(in_memory_db, path)
        assert first == second == (len(STREAM_DEFAULTS), 1, 1)
        assert WasteStreamRepository(in_memory_db).count() == len(STREAM_DEFAULTS)
        assert len(FacilityRepository(in_memory_db).list_all()) == 1

    def test_missing_file_seeds_streams_only(self, in_memory_db, tmp_path):
        assert seed_catalog(in_memory_db, tmp_path / "nope.json") == (len(STREAM_DEFAULTS), 0, 0)

    def test_invalid_json(self, in_memory_db, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValidationError, match="not valid JSON"):
            seed_catalog(in_memory_db, path)

    def test_shipped_seed_file(self, in_memory_db):
        streams, partners, facilities = seed_catalog(in_memory_db, SHIPPED_SEED)
        assert partners == 3
        assert facilities == 7
        hazmat = FacilityRepository(in_memory_db).get("akl-haz-1")
        assert not hazmat.has_coordinates
