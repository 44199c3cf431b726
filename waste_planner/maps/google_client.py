"""
Google Maps client — geocoding and distance matrix over httpx.

APIs:
  Geocoding:       https://maps.googleapis.com/maps/api/geocode/json
  Distance Matrix: https://maps.googleapis.com/maps/api/distancematrix/json

Credential setup (.env, gitignored)::

  GOOGLE_MAPS_API_KEY=your_server_key

Contract used by the distance cache (any object with these two methods
works, which is how tests substitute a fake)::

  geocode_address(text)                    -> GeoPoint | None
  get_distance_matrix(origin, destinations) -> list[DistanceElement]

``get_distance_matrix`` issues ONE request; batching to at most
``MAX_DESTINATIONS`` is the caller's job. Destinations whose element status
is not ``OK`` are simply absent from the result. Transport errors and
non-OK top-level statuses raise ``UpstreamUnavailable``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import ClassVar, Optional, Protocol

import httpx

from waste_planner.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)


# ── Value types ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float

    def as_param(self) -> str:
        return f"{self.lat},{self.lng}"


@dataclass(frozen=True)
class Destination:
    """A routable facility."""

    facility_id: str
    lat: float
    lng: float


@dataclass(frozen=True)
class DistanceElement:
    """One origin → destination result."""

    facility_id: str
    distance_m: float
    duration_s: float


class MapsClient(Protocol):
    """Geocoding + distance matrix capability."""

    provider: str

    def geocode_address(self, address: str) -> Optional[GeoPoint]: ...

    def get_distance_matrix(
        self, origin: GeoPoint, destinations: list[Destination]
    ) -> list[DistanceElement]: ...


# ── Client ─────────────────────────────────────────────────────────────────────

class GoogleMapsClient:
    """Google Geocoding / Distance Matrix client.

    Usage::

        client = GoogleMapsClient(api_key=os.environ["GOOGLE_MAPS_API_KEY"])
        site = client.geocode_address("1 Queen Street, Auckland")
        elements = client.get_distance_matrix(site, destinations)

    Args:
        api_key: Server-side Google Maps API key.
        timeout_s: Per-request timeout.
        mode: Travel mode (``driving`` for truck routing estimates).
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    GEOCODE_URL: ClassVar[str] = "https://maps.googleapis.com/maps/api/geocode/json"
    DISTANCE_MATRIX_URL: ClassVar[str] = (
        "https://maps.googleapis.com/maps/api/distancematrix/json"
    )
    MAX_DESTINATIONS: ClassVar[int] = 25

    provider = "google"

    def __init__(
        self,
        api_key: str,
        timeout_s: float = 15.0,
        mode: str = "driving",
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        if not api_key:
            raise ValueError("A Google Maps API key is required.")
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.mode = mode
        self._transport = transport

    @classmethod
    def from_config(cls, maps_config) -> "GoogleMapsClient":
        """Build a client from ``MapsConfig``; the key comes from the environment.

        Raises:
            UpstreamUnavailable: If the API key environment variable is unset.
        """
        api_key = maps_config.api_key
        if not api_key:
            raise UpstreamUnavailable(
                f"{maps_config.api_key_env} is not set; cannot geocode or route."
            )
        return cls(api_key=api_key, timeout_s=maps_config.timeout_s, mode=maps_config.mode)

    # ── Public API ─────────────────────────────────────────────────────────────

    def geocode_address(self, address: str) -> Optional[GeoPoint]:
        """Geocode free-text ``address``; ``None`` when Google finds nothing."""
        if not address or not address.strip():
            return None
        data = self._get_json(self.GEOCODE_URL, {"address": address.strip()})
        status = data.get("status")
        if status == "ZERO_RESULTS":
            logger.info("Geocoding found no results for address %r", address)
            return None
        if status != "OK":
            raise UpstreamUnavailable(
                f"Geocoding failed with status {status}: {data.get('error_message', '')}".strip()
            )
        results = data.get("results") or []
        if not results:
            return None
        location = results[0].get("geometry", {}).get("location", {})
        try:
            return GeoPoint(lat=float(location["lat"]), lng=float(location["lng"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise UpstreamUnavailable(f"Malformed geocoding response: {exc}") from exc

    def get_distance_matrix(
        self, origin: GeoPoint, destinations: list[Destination]
    ) -> list[DistanceElement]:
        """Drive distance/duration from ``origin`` to each destination.

        Raises:
            ValueError: More than ``MAX_DESTINATIONS`` destinations.
            UpstreamUnavailable: Transport error or non-OK response status.
        """
        if not destinations:
            return []
        if len(destinations) > self.MAX_DESTINATIONS:
            raise ValueError(
                f"At most {self.MAX_DESTINATIONS} destinations per request, "
                f"got {len(destinations)}."
            )
        data = self._get_json(
            self.DISTANCE_MATRIX_URL,
            {
                "origins": origin.as_param(),
                "destinations": "|".join(f"{d.lat},{d.lng}" for d in destinations),
                "mode": self.mode,
            },
        )
        if data.get("status") != "OK":
            raise UpstreamUnavailable(
                f"Distance matrix failed with status {data.get('status')}: "
                f"{data.get('error_message', '')}".strip()
            )
        rows = data.get("rows") or []
        elements = rows[0].get("elements", []) if rows else []
        return _parse_elements(destinations, elements)

    # ── Internal ───────────────────────────────────────────────────────────────

    def _get_json(self, url: str, params: dict[str, str]) -> dict:
        try:
            with httpx.Client(timeout=self.timeout_s, transport=self._transport) as client:
                resp = client.get(url, params={**params, "key": self.api_key})
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as exc:
            # str(exc) can embed the request URL, which carries the key.
            raise UpstreamUnavailable(
                f"Maps request failed: {type(exc).__name__}"
            ) from exc
        except ValueError as exc:
            raise UpstreamUnavailable(f"Maps response was not JSON: {exc}") from exc


def _parse_elements(
    destinations: list[Destination], elements: list[dict]
) -> list[DistanceElement]:
    results: list[DistanceElement] = []
    for dest, element in zip(destinations, elements):
        if element.get("status") != "OK":
            logger.debug(
                "No route to facility %s (status %s)", dest.facility_id, element.get("status")
            )
            continue
        try:
            results.append(
                DistanceElement(
                    facility_id=dest.facility_id,
                    distance_m=float(element["distance"]["value"]),
                    duration_s=float(element["duration"]["value"]),
                )
            )
        except (KeyError, TypeError, ValueError):
            logger.warning("Malformed distance element for facility %s", dest.facility_id)
    return results
