"""
Tests for the project → facility distance cache.

What we test
------------
- A warm cache makes no provider calls; a cold one computes each facility once.
- Requests are batched (at most ``batch_size`` destinations per call).
- A failing batch leaves its facilities missing while other batches persist.
- Facilities without coordinates are skipped and reported.
- The site is geocoded once and the coordinates persisted.
- Keys are normalized (trimmed, lower-case).
"""

from __future__ import annotations

import pytest

from conftest import FakeMapsClient, make_facility, make_project
from waste_planner.db.repositories.catalog_repo import FacilityRepository
from waste_planner.db.repositories.distance_repo import DistanceCacheRepository
from waste_planner.db.repositories.project_repo import ProjectRepository
from waste_planner.distances.cache import DistanceCache
from waste_planner.errors import NotFoundError


def _add_facilities(conn, count: int) -> list[str]:
    repo = FacilityRepository(conn)
    ids = [f"f-{n:02d}" for n in range(count)]
    for fid in ids:
        repo.upsert(make_facility(fid, f"Facility {fid}"))
    return ids


class TestCaching:
    def test_cold_cache_computes_all(self, in_memory_db, sample_project, seeded_catalog, fake_maps):
        result = DistanceCache(in_memory_db, fake_maps).get_distances("p-1")
        assert result.computed_count == 3
        assert result.distances_loaded
        assert result.missing_facility_ids == []
        assert DistanceCacheRepository(in_memory_db).count_for_project("p-1") == 3

    def test_warm_cache_makes_no_calls(self, in_memory_db, sample_project, seeded_catalog, fake_maps):
        cache = DistanceCache(in_memory_db, fake_maps)
        cache.get_distances("p-1")
        result = cache.get_distances("p-1")
        assert len(fake_maps.matrix_calls) == 1
        assert result.computed_count == 0
        assert result.distance_km("f-alpha") == 10.0

    def test_only_new_facility_computed(self, in_memory_db, sample_project, seeded_catalog, fake_maps):
        cache = DistanceCache(in_memory_db, fake_maps)
        cache.get_distances("p-1")
        FacilityRepository(in_memory_db).upsert(make_facility("f-new", "New Yard"))
        cache.get_distances("p-1")
        assert fake_maps.matrix_calls[-1] == ["f-new"]

    def test_without_client_serves_cache_only(self, in_memory_db, sample_project, seeded_catalog):
        result = DistanceCache(in_memory_db, None).get_distances("p-1")
        assert result.distance_map == {}
        assert not result.distances_loaded
        assert result.missing_facility_ids == ["f-alpha", "f-beta", "f-metal"]

    def test_recompute_refreshes_cached_rows(self, in_memory_db, sample_project, seeded_catalog):
        DistanceCache(in_memory_db, FakeMapsClient()).get_distances("p-1")
        updated = FakeMapsClient(distances_m={"f-beta": 4_000})
        result = DistanceCache(in_memory_db, updated).recompute("p-1", ["f-beta"])
        assert updated.matrix_calls == [["f-beta"]]
        assert result.distance_km("f-beta") == 4.0
        assert result.distance_km("f-alpha") == 10.0

    def test_unknown_project(self, in_memory_db, fake_maps):
        with pytest.raises(NotFoundError):
            DistanceCache(in_memory_db, fake_maps).get_distances("nope")


class TestBatching:
    def test_thirty_facilities_two_calls(self, in_memory_db, sample_project, fake_maps):
        _add_facilities(in_memory_db, 30)
        result = DistanceCache(in_memory_db, fake_maps, batch_size=25).get_distances("p-1")
        assert [len(call) for call in fake_maps.matrix_calls] == [25, 5]
        assert result.computed_count == 30

    def test_partial_batch_failure(self, in_memory_db, sample_project):
        ids = _add_facilities(in_memory_db, 30)
        maps = FakeMapsClient(fail_batches=(1,))
        result = DistanceCache(in_memory_db, maps, batch_size=25).get_distances("p-1")

        assert result.computed_count == 25
        assert not result.distances_loaded
        assert result.missing_facility_ids == sorted(ids[25:])
        assert result.get(ids[29]) is None

    def test_retry_fetches_only_missing(self, in_memory_db, sample_project):
        ids = _add_facilities(in_memory_db, 30)
        DistanceCache(in_memory_db, FakeMapsClient(fail_batches=(1,))).get_distances("p-1")

        retry = FakeMapsClient()
        result = DistanceCache(in_memory_db, retry).get_distances("p-1")
        assert retry.matrix_calls == [ids[25:]]
        assert result.distances_loaded

    def test_invalid_batch_size(self, in_memory_db):
        with pytest.raises(ValueError):
            DistanceCache(in_memory_db, None, batch_size=0)


class TestCoordinates:
    def test_facility_without_coords_skipped(self, in_memory_db, sample_project, seeded_catalog, fake_maps):
        FacilityRepository(in_memory_db).upsert(
            make_facility("f-nocoords", "Hazmat Depot", lat=None, lng=None)
        )
        result = DistanceCache(in_memory_db, fake_maps).get_distances("p-1")
        assert result.skipped_facility_ids == ["f-nocoords"]
        assert "f-nocoords" in result.missing_facility_ids
        assert all("f-nocoords" not in call for call in fake_maps.matrix_calls)
        assert result.distances_loaded

    def test_site_geocoded_once(self, in_memory_db, seeded_catalog, fake_maps):
        ProjectRepository(in_memory_db).upsert(make_project(site_lat=None, site_lng=None))
        cache = DistanceCache(in_memory_db, fake_maps)
        first = cache.get_distances("p-1")
        cache.recompute("p-1")

        assert fake_maps.geocode_calls == ["1 Queen Street, Auckland"]
        assert first.project_geocoded
        stored = ProjectRepository(in_memory_db).get("p-1")
        assert (stored.site_lat, stored.site_lng) == (-36.85, 174.76)

    def test_ungeocodable_site(self, in_memory_db, seeded_catalog):
        ProjectRepository(in_memory_db).upsert(make_project(site_lat=None, site_lng=None))
        maps = FakeMapsClient(site=None)
        result = DistanceCache(in_memory_db, maps).get_distances("p-1")
        assert not result.project_geocoded
        assert not result.distances_loaded
        assert maps.matrix_calls == []


def test_keys_are_normalized(in_memory_db, sample_project, fake_maps):
    FacilityRepository(in_memory_db).upsert(make_facility("AKL-Metal-1", "Metal Yard"))
    result = DistanceCache(in_memory_db, fake_maps).get_distances("p-1")
    assert "akl-metal-1" in result.distance_map
    assert result.get("  akl-METAL-1 ").facility_id == "AKL-Metal-1"
