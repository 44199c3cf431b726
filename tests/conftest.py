"""
Shared pytest fixtures for the waste planner test suite.

Provides:
  - ``in_memory_db``: A fresh in-memory SQLite connection with the full
    schema applied. Created anew for each test that requests it.
  - ``FakeMapsClient``: A recording stand-in for the Google client.
  - Sample project / facility / item factories and a seeded catalog.
"""

from __future__ import annotations

import sqlite3
from typing import Generator, Optional

import pytest

from waste_planner.config import AppConfig
from waste_planner.db.repositories.catalog_repo import FacilityRepository, PartnerRepository
from waste_planner.db.repositories.project_repo import ProjectRepository
from waste_planner.db.schema import apply_schema
from waste_planner.errors import UpstreamUnavailable
from waste_planner.maps.google_client import Destination, DistanceElement, GeoPoint
from waste_planner.models.catalog import Facility, Partner, Project
from waste_planner.models.forecast_item import ForecastItem


# ── Database fixture ──────────────────────────────────────────────────────────

@pytest.fixture
def in_memory_db() -> Generator[sqlite3.Connection, None, None]:
    """Yield a fresh in-memory SQLite connection with the full schema applied.

    Foreign key enforcement is ON. Connection is closed after the test.
    """
    conn = sqlite3.connect(":memory:")
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    apply_schema(conn)
    yield conn
    conn.close()


# ── Fake routing ──────────────────────────────────────────────────────────────

class FakeMapsClient:
    """Records calls; distances are ``distances_m[facility_id]`` (default 10 km).

    Args:
        site: Point returned by ``geocode_address``.
        distances_m: Per-facility distance overrides in metres.
        fail_batches: Zero-based indices of distance-matrix calls that raise
            ``UpstreamUnavailable``.
    """

    provider = "fake"

    def __init__(
        self,
        site: Optional[GeoPoint] = GeoPoint(-36.85, 174.76),
        distances_m: Optional[dict[str, float]] = None,
        fail_batches: tuple[int, ...] = (),
    ) -> None:
        self.site = site
        self.distances_m = distances_m or {}
        self.fail_batches = set(fail_batches)
        self.geocode_calls: list[str] = []
        self.matrix_calls: list[list[str]] = []

    def geocode_address(self, address: str) -> Optional[GeoPoint]:
        self.geocode_calls.append(address)
        return self.site

    def get_distance_matrix(
        self, origin: GeoPoint, destinations: list[Destination]
    ) -> list[DistanceElement]:
        call_index = len(self.matrix_calls)
        self.matrix_calls.append([d.facility_id for d in destinations])
        if call_index in self.fail_batches:
            raise UpstreamUnavailable("simulated routing outage")
        return [
            DistanceElement(
                facility_id=d.facility_id,
                distance_m=self.distances_m.get(d.facility_id, 10_000.0),
                duration_s=600.0,
            )
            for d in destinations
        ]


@pytest.fixture
def fake_maps() -> FakeMapsClient:
    return FakeMapsClient()


# ── Sample domain object factories ────────────────────────────────────────────

def make_project(**overrides) -> Project:
    data = {
        "project_id": "p-1",
        "name": "Queen St fit-out",
        "site_address": "1 Queen Street, Auckland",
        "site_lat": -36.8485,
        "site_lng": 174.7633,
        "region": "auckland",
    }
    data.update(overrides)
    return Project(**data)


def make_facility(facility_id: str, name: str, **overrides) -> Facility:
    data = {
        "facility_id": facility_id,
        "name": name,
        "region": "auckland",
        "lat": -36.9,
        "lng": 174.8,
        "accepted_streams": ["Mixed C&D", "Metals", "Timber (untreated)"],
    }
    data.update(overrides)
    return Facility(**data)


def make_item(item_id: str = "i-1", **overrides) -> ForecastItem:
    data = {
        "item_id": item_id,
        "project_id": "p-1",
        "item_name": "Framing offcuts",
        "quantity": 10.0,
        "unit": "kg",
        "excess_percent": 0.0,
    }
    data.update(overrides)
    return ForecastItem(**data)


@pytest.fixture
def sample_project(in_memory_db) -> Project:
    """Project ``p-1`` with site coordinates, stored in the DB."""
    project = make_project()
    ProjectRepository(in_memory_db).upsert(project)
    return project


@pytest.fixture
def seeded_catalog(in_memory_db) -> list[Facility]:
    """Two partners and three routable facilities."""
    partners = PartnerRepository(in_memory_db)
    partners.upsert(Partner(partner_id="enviro", name="Enviro", regions=["auckland"]))
    partners.upsert(Partner(partner_id="wasteco", name="WasteCo", regions=["auckland"]))

    facilities = [
        make_facility("f-alpha", "Alpha Recycling", partner_id="enviro"),
        make_facility("f-beta", "Beta Transfer", partner_id="wasteco"),
        make_facility(
            "f-metal", "Metal Yard", partner_id="enviro", accepted_streams=["Metals"]
        ),
    ]
    repo = FacilityRepository(in_memory_db)
    for f in facilities:
        repo.upsert(f)
    return facilities


@pytest.fixture
def app_config() -> AppConfig:
    """Default config; no API key is needed because tests inject a client."""
    return AppConfig()
