"""
Catalog models: projects, partners, facilities, stream defaults and
conversion factors.

Facilities and partners are owned by the admin CRUD layer; the engine only
reads them. ``ConversionFactor`` rows are administrator-managed overrides
of the stream defaults: at most one *active* row may exist per
(stream, from_unit, to_unit).
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator

from waste_planner.taxonomy.waste_taxonomy import QuantityUnit

VALID_FACTOR_FROM_UNITS = frozenset({"m3", "m"})
VALID_FACTOR_TO_UNITS = frozenset({"kg"})


class Project(BaseModel):
    """A construction project with a site location.

    ``site_lat`` / ``site_lng`` stay ``None`` until the address has been
    geocoded once; the distance cache persists them on first use.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str
    name: str
    site_address: Optional[str] = None
    site_lat: Optional[float] = None
    site_lng: Optional[float] = None
    region: Optional[str] = None
    primary_partner_id: Optional[str] = None
    selected_streams: list[str] = []
    created_at: Optional[datetime] = None

    @field_validator("project_id")
    @classmethod
    def validate_project_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("project_id must be a non-empty string.")
        return v

    @property
    def has_coordinates(self) -> bool:
        return _valid_coords(self.site_lat, self.site_lng)


class Partner(BaseModel):
    """A waste contractor operating one or more facilities."""

    model_config = ConfigDict(frozen=True)

    partner_id: str
    name: str
    regions: list[str] = []


class Facility(BaseModel):
    """A disposal / recycling site.

    Attributes:
        facility_id: Catalog id (e.g. ``"akl-cd-1"``).
        partner_id: Operating partner, if any.
        name: Display name; also the nearest-facility tie-breaker.
        region: Region slug used for partner filtering.
        address: Street address.
        lat / lng: Coordinates; facilities without them cannot be routed.
        accepted_streams: Stream labels the site takes.
        cost_per_tonne: Gate fee (NZD/t), if known. Negative means a rebate.
        carbon_kg_co2e_per_tonne: Emission factor of the site, if known.
        diversion_rating: 0..100 share of intake kept out of landfill.
    """

    model_config = ConfigDict(frozen=True)

    facility_id: str
    partner_id: Optional[str] = None
    name: str
    region: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    accepted_streams: list[str] = []
    cost_per_tonne: Optional[float] = None
    carbon_kg_co2e_per_tonne: Optional[float] = None
    diversion_rating: Optional[float] = None

    @field_validator("carbon_kg_co2e_per_tonne")
    @classmethod
    def validate_carbon(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and (not math.isfinite(v) or v < 0):
            raise ValueError(f"carbon_kg_co2e_per_tonne must be >= 0, got {v}.")
        return v

    @field_validator("diversion_rating")
    @classmethod
    def validate_diversion_rating(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and not 0 <= v <= 100:
            raise ValueError(f"diversion_rating must be within 0..100, got {v}.")
        return v

    @property
    def has_coordinates(self) -> bool:
        return _valid_coords(self.lat, self.lng)

    def accepts(self, stream_name: str) -> bool:
        wanted = stream_name.strip().lower()
        return any(s.strip().lower() == wanted for s in self.accepted_streams)


class WasteStreamEntry(BaseModel):
    """A row of the ``waste_streams`` catalog table."""

    model_config = ConfigDict(frozen=True)

    stream_name: str
    default_density_kg_m3: Optional[float] = None
    default_kg_per_m: Optional[float] = None
    default_unit: Optional[QuantityUnit] = None
    is_active: bool = True


class ConversionFactor(BaseModel):
    """Administrator-managed conversion factor for one stream.

    ``from_unit="m3"`` carries a density (kg/m³), ``from_unit="m"`` a linear
    factor (kg/m). ``to_unit`` is always ``"kg"``.
    """

    model_config = ConfigDict(frozen=True)

    factor_id: Optional[int] = None
    stream_name: str
    from_unit: str
    to_unit: str = "kg"
    factor: float
    is_active: bool = True
    notes: Optional[str] = None

    @field_validator("stream_name")
    @classmethod
    def validate_stream_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("stream_name must be non-empty.")
        return v

    @field_validator("from_unit")
    @classmethod
    def validate_from_unit(cls, v: str) -> str:
        v = QuantityUnit.parse(v).value
        if v not in VALID_FACTOR_FROM_UNITS:
            raise ValueError(
                f"from_unit must be one of {sorted(VALID_FACTOR_FROM_UNITS)}, got '{v}'."
            )
        return v

    @field_validator("to_unit")
    @classmethod
    def validate_to_unit(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in VALID_FACTOR_TO_UNITS:
            raise ValueError(f"to_unit must be 'kg', got '{v}'.")
        return v

    @field_validator("factor")
    @classmethod
    def validate_factor(cls, v: float) -> float:
        if not math.isfinite(v) or v <= 0:
            raise ValueError(f"factor must be a positive finite number, got {v}.")
        return v


def _valid_coords(lat: Optional[float], lng: Optional[float]) -> bool:
    if lat is None or lng is None:
        return False
    if not (math.isfinite(lat) and math.isfinite(lng)):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0
