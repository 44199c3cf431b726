"""
Distance cache entry model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, field_validator


def normalize_facility_key(facility_id: str) -> str:
    """Canonical facility id used for cache map keys (trimmed, lower-case)."""
    return str(facility_id).strip().lower()


class DistanceCacheEntry(BaseModel):
    """Cached drive distance/duration from a project site to one facility.

    Keyed by (``project_id``, ``facility_id``); recompute upserts.
    """

    model_config = ConfigDict(frozen=True)

    project_id: str
    facility_id: str
    distance_m: float
    duration_s: float
    provider: str = "google"
    updated_at: Optional[datetime] = None

    @field_validator("distance_m", "duration_s")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Distance/duration must be >= 0, got {v}.")
        return v

    @property
    def distance_km(self) -> float:
        return round(self.distance_m / 1000.0, 2)

    @property
    def duration_min(self) -> float:
        return round(self.duration_s / 60.0, 1)
