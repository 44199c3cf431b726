"""
Distance cache: project site → facility drive distances.

``get_distances(project_id)``:

  1. Resolve the site coordinates. If the project has none, geocode its
     address once and persist the result. A geocoded project is never
     geocoded again.
  2. Split facilities into routable (valid lat/lng) and unroutable. The
     unroutable ones are reported in ``missing_facility_ids``.
  3. Read cached rows and work out which routable facilities lack one.
  4. Call the distance matrix for that difference only, in batches of
     ``batch_size``, and upsert each returned element.
  5. Merge cached and new rows into one map keyed by the normalized
     facility id (``strip().lower()``).

A failing batch is logged and its facilities stay in
``missing_facility_ids``. The other batches still succeed, and no distance
is ever made up. The next call retries only what is still missing.
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Iterable, Optional

from waste_planner.db.repositories.catalog_repo import FacilityRepository
from waste_planner.db.repositories.distance_repo import DistanceCacheRepository
from waste_planner.db.repositories.project_repo import ProjectRepository
from waste_planner.errors import NotFoundError, UpstreamUnavailable
from waste_planner.maps.google_client import Destination, GeoPoint, MapsClient
from waste_planner.models.catalog import Facility, Project
from waste_planner.models.distance import DistanceCacheEntry, normalize_facility_key

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 25


@dataclass
class DistanceResult:
    """Outcome of a distance cache read / recompute.

    Attributes:
        project_id: Project the distances belong to.
        distance_map: Normalized facility id → cache entry.
        facilities_with_coords: Routable facilities.
        distances_loaded: ``True`` when every routable facility has a distance.
        missing_facility_ids: Facilities with no distance (unroutable, or
            still missing after this call), sorted.
        skipped_facility_ids: The unroutable subset (no coordinates), sorted.
        project_geocoded: Whether the project site has coordinates.
        computed_count: Entries written by this call.
    """

    project_id: str
    distance_map: dict[str, DistanceCacheEntry] = field(default_factory=dict)
    facilities_with_coords: list[Facility] = field(default_factory=list)
    distances_loaded: bool = False
    missing_facility_ids: list[str] = field(default_factory=list)
    skipped_facility_ids: list[str] = field(default_factory=list)
    project_geocoded: bool = False
    computed_count: int = 0

    def get(self, facility_id: Optional[str]) -> Optional[DistanceCacheEntry]:
        if not facility_id:
            return None
        return self.distance_map.get(normalize_facility_key(facility_id))

    def distance_km(self, facility_id: Optional[str]) -> Optional[float]:
        entry = self.get(facility_id)
        return entry.distance_km if entry else None


class DistanceCache:
    """Serve and lazily fill the project → facility distance cache.

    Args:
        conn: Open connection (caller owns the transaction).
        maps_client: Geocoding / distance matrix capability. ``None`` means
            only cached data is served and anything missing stays missing.
        batch_size: Destinations per distance matrix request.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        maps_client: Optional[MapsClient] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}.")
        self.conn = conn
        self.maps_client = maps_client
        self.batch_size = batch_size
        self.projects = ProjectRepository(conn)
        self.facilities = FacilityRepository(conn)
        self.cache = DistanceCacheRepository(conn)

    # ── Public API ─────────────────────────────────────────────────────────────

    def get_distances(self, project_id: str) -> DistanceResult:
        """Return cached distances, computing only the facilities lacking one."""
        return self._run(project_id, force_ids=None)

    def recompute(
        self, project_id: str, facility_ids: Optional[Iterable[str]] = None
    ) -> DistanceResult:
        """Recompute distances even where cached.

        Args:
            project_id: Project to recompute.
            facility_ids: Restrict to these facilities; all routable ones
                when ``None``.
        """
        if facility_ids is None:
            force = {normalize_facility_key(f.facility_id) for f in self.facilities.list_all()}
        else:
            force = {normalize_facility_key(f) for f in facility_ids}
        return self._run(project_id, force_ids=force)

    # ── Internal ───────────────────────────────────────────────────────────────

    def _run(self, project_id: str, force_ids: Optional[set[str]]) -> DistanceResult:
        project = self.projects.get(project_id)
        if project is None:
            raise NotFoundError("project", project_id)

        all_facilities = self.facilities.list_all()
        routable = [f for f in all_facilities if f.has_coordinates]
        skipped = sorted(f.facility_id for f in all_facilities if not f.has_coordinates)

        result = DistanceResult(
            project_id=project_id,
            facilities_with_coords=routable,
            skipped_facility_ids=skipped,
        )

        cached = {normalize_facility_key(e.facility_id): e for e in self.cache.list_for_project(project_id)}
        result.distance_map.update(cached)

        origin = self._ensure_site(project)
        result.project_geocoded = origin is not None

        to_compute = [
            f
            for f in routable
            if normalize_facility_key(f.facility_id) not in cached
            or (force_ids is not None and normalize_facility_key(f.facility_id) in force_ids)
        ]

        if to_compute and origin is not None:
            fresh = self._compute(project_id, origin, to_compute)
            result.computed_count = self.cache.upsert_many(fresh)
            for entry in fresh:
                result.distance_map[normalize_facility_key(entry.facility_id)] = entry
        elif to_compute:
            logger.warning(
                "Project %s has no site coordinates; %d facility distance(s) unavailable",
                project_id, len(to_compute),
                extra={"project_id": project_id},
            )

        still_missing = [
            f.facility_id
            for f in routable
            if normalize_facility_key(f.facility_id) not in result.distance_map
        ]
        result.missing_facility_ids = sorted(set(still_missing) | set(skipped))
        result.distances_loaded = result.project_geocoded and not still_missing

        logger.info(
            "Distances for project %s: %d cached, %d computed, %d missing",
            project_id, len(cached), result.computed_count, len(result.missing_facility_ids),
        )
        return result

    def _ensure_site(self, project: Project) -> Optional[GeoPoint]:
        if project.has_coordinates:
            assert project.site_lat is not None and project.site_lng is not None
            return GeoPoint(project.site_lat, project.site_lng)
        if not project.site_address or self.maps_client is None:
            return None
        try:
            point = self.maps_client.geocode_address(project.site_address)
        except UpstreamUnavailable as exc:
            logger.warning(
                "Geocoding failed for project %s: %s", project.project_id, exc,
                extra={"project_id": project.project_id},
            )
            return None
        if point is None:
            return None
        self.projects.set_site_coordinates(project.project_id, point.lat, point.lng)
        return point

    def _compute(
        self, project_id: str, origin: GeoPoint, facilities: list[Facility]
    ) -> list[DistanceCacheEntry]:
        if self.maps_client is None:
            return []
        entries: list[DistanceCacheEntry] = []
        for start in range(0, len(facilities), self.batch_size):
            batch = facilities[start:start + self.batch_size]
            destinations = [
                Destination(f.facility_id, f.lat, f.lng)  # type: ignore[arg-type]
                for f in batch
            ]
            try:
                elements = self.maps_client.get_distance_matrix(origin, destinations)
            except UpstreamUnavailable as exc:
                logger.warning(
                    "Distance matrix batch failed for project %s (%d facilities): %s",
                    project_id, len(batch), exc,
                    extra={"project_id": project_id,
                           "facility_ids": [f.facility_id for f in batch]},
                )
                continue
            wanted = {normalize_facility_key(f.facility_id): f.facility_id for f in batch}
            for element in elements:
                facility_id = wanted.get(normalize_facility_key(element.facility_id))
                if facility_id is None:
                    continue
                entries.append(
                    DistanceCacheEntry(
                        project_id=project_id,
                        facility_id=facility_id,
                        distance_m=element.distance_m,
                        duration_s=element.duration_s,
                        provider=getattr(self.maps_client, "provider", "google"),
                    )
                )
        return entries
