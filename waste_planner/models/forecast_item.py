"""
Forecast item model.

A ``ForecastItem`` is one estimated waste-producing work item on a project
("90mm framing offcuts", "GIB sheets"). Its raw fields are user-authored;
``computed_waste_qty`` and ``computed_waste_kg`` are caches that the
aggregator re-derives on every sync and are never trusted as input.

Boundary validation lives here: negative or non-finite quantities and
excess percentages outside 0–100 are rejected when the model is built, so
the normalizer never has to clamp.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from waste_planner.taxonomy.waste_taxonomy import QuantityUnit


def _require_finite(name: str, v: float) -> float:
    if not math.isfinite(v):
        raise ValueError(f"{name} must be a finite number, got {v}.")
    return v


class ForecastItem(BaseModel):
    """One forecast line item.

    Attributes:
        item_id: Opaque unique identifier.
        project_id: Owning project.
        item_name: Free-text description.
        quantity: Raw quantity in ``unit`` (≥ 0).
        unit: Measurement unit; common aliases (``t``, ``m³``) are accepted.
        excess_percent: Ordering/wastage margin, 0–100.
        kg_per_m: Item-level linear factor override (kg per metre).
        density_kg_m3: Item-level density override.
        waste_stream_key: Stream label; ``None`` means unallocated.
        material_type: Optional material family used to suggest a stream.
        computed_waste_qty: Cached ``quantity * (1 + excess/100)``.
        computed_waste_kg: Cached mass; ``None`` when indeterminate.
    """

    model_config = ConfigDict(frozen=True)

    item_id: str
    project_id: str
    item_name: str = ""
    quantity: float
    unit: QuantityUnit
    excess_percent: float = 0.0
    kg_per_m: Optional[float] = None
    density_kg_m3: Optional[float] = None
    waste_stream_key: Optional[str] = None
    material_type: Optional[str] = None
    computed_waste_qty: Optional[float] = None
    computed_waste_kg: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("item_id", "project_id")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        v = str(v).strip()
        if not v:
            raise ValueError("Identifier must be a non-empty string.")
        return v

    @field_validator("unit", mode="before")
    @classmethod
    def parse_unit(cls, v: Any) -> QuantityUnit:
        if isinstance(v, QuantityUnit):
            return v
        return QuantityUnit.parse(v)

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: float) -> float:
        _require_finite("quantity", v)
        if v < 0:
            raise ValueError(f"quantity must be >= 0, got {v}.")
        return v

    @field_validator("excess_percent")
    @classmethod
    def validate_excess(cls, v: float) -> float:
        _require_finite("excess_percent", v)
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"excess_percent must be in [0, 100], got {v}.")
        return v

    @field_validator("kg_per_m", "density_kg_m3")
    @classmethod
    def validate_factor_override(cls, v: Optional[float]) -> Optional[float]:
        if v is None:
            return v
        _require_finite("conversion override", v)
        if v <= 0:
            raise ValueError(f"Conversion overrides must be > 0 when set, got {v}.")
        return v

    @field_validator("waste_stream_key", "material_type")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def is_allocated(self) -> bool:
        return self.waste_stream_key is not None
