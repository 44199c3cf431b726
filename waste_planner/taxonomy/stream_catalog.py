"""
Built-in waste stream catalog: densities, default units and default outcomes.

These are NZ construction-waste defaults used to seed the ``waste_streams``
table (``waste-planner seed-catalog``) and as the last step of conversion
resolution. Keys must match the stream labels users pick, exactly.

Densities are loose bulk densities in kg/m³ as they arrive in a skip, not
solid-material densities (e.g. "Metals" is 63 kg/m³ of mixed offcuts).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from waste_planner.taxonomy.waste_taxonomy import IntendedOutcome, QuantityUnit

MIXED_CD_KEY = "Mixed C&D"


@dataclass(frozen=True)
class StreamDefault:
    """Catalog defaults for one stream."""

    density_kg_m3: Optional[float]
    default_unit: QuantityUnit
    kg_per_m: Optional[float] = None


STREAM_DEFAULTS: dict[str, StreamDefault] = {
    "Mixed C&D":                            StreamDefault(1200, QuantityUnit.M3),
    "Timber (untreated)":                   StreamDefault(178, QuantityUnit.M3),
    "Timber (treated)":                     StreamDefault(178, QuantityUnit.M3),
    "Plasterboard / GIB":                   StreamDefault(238, QuantityUnit.M3),
    "Metals":                               StreamDefault(63, QuantityUnit.M3),
    "Concrete / masonry":                   StreamDefault(1048, QuantityUnit.M3),
    "Cardboard":                            StreamDefault(38, QuantityUnit.M3),
    "Soft plastics (wrap/strapping)":       StreamDefault(72, QuantityUnit.M3),
    "Hard plastics":                        StreamDefault(72, QuantityUnit.M3),
    "Glass":                                StreamDefault(411, QuantityUnit.M3),
    "E-waste (cables/lighting/appliances)": StreamDefault(300, QuantityUnit.M3),
    "Paints/adhesives/chemicals":           StreamDefault(1000, QuantityUnit.L),
    "Ceiling tiles":                        StreamDefault(150, QuantityUnit.M2),
    "Carpet / carpet tiles":                StreamDefault(200, QuantityUnit.M2),
    "Insulation":                           StreamDefault(100, QuantityUnit.M3),
    "Soil / spoil (cleanfill if verified)": StreamDefault(1500, QuantityUnit.M3),
    "Asphalt / roading material":           StreamDefault(1500, QuantityUnit.M3),
    "Concrete (reinforced)":                StreamDefault(1048, QuantityUnit.M3),
    "Concrete (unreinforced)":              StreamDefault(900, QuantityUnit.M3),
    "Masonry / bricks":                     StreamDefault(1500, QuantityUnit.M3),
    "Roofing materials":                    StreamDefault(120, QuantityUnit.M2),
    "Green waste / vegetation":             StreamDefault(225, QuantityUnit.M3),
    "Hazardous waste (general)":            StreamDefault(225, QuantityUnit.M3),
    "Contaminated soil":                    StreamDefault(1500, QuantityUnit.M3),
    "Cleanfill soil":                       StreamDefault(1500, QuantityUnit.M3),
    "Packaging (mixed)":                    StreamDefault(38, QuantityUnit.M3),
    # Pipe runs are usually taken off drawings in metres.
    "PVC pipes / services":                 StreamDefault(140, QuantityUnit.M, kg_per_m=1.5),
    "HDPE pipes / services":                StreamDefault(100, QuantityUnit.M, kg_per_m=1.2),
}

# material_type → preferred stream keys, first match in the project wins.
MATERIAL_TYPE_TO_STREAM_KEYS: dict[str, list[str]] = {
    "Mixed C&D": [MIXED_CD_KEY],
    "Timber": ["Timber (untreated)", "Timber (treated)"],
    "Concrete / masonry": [
        "Concrete / masonry", "Concrete (reinforced)",
        "Concrete (unreinforced)", "Masonry / bricks",
    ],
    "Metals": ["Metals"],
    "Plasterboard / GIB": ["Plasterboard / GIB"],
    "Cardboard": ["Cardboard"],
    "Plastics": [
        "Soft plastics (wrap/strapping)", "Hard plastics", "Packaging (mixed)",
        "PVC pipes / services", "HDPE pipes / services",
    ],
    "Glass": ["Glass"],
    "Green waste": ["Green waste / vegetation"],
    "Soil / spoil": [
        "Soil / spoil (cleanfill if verified)", "Cleanfill soil", "Contaminated soil",
    ],
    "Hazardous": ["Hazardous waste (general)", "Paints/adhesives/chemicals"],
    "Other": [MIXED_CD_KEY],
}

_HAZARD_MARKERS = ("hazardous", "contaminated", "paint", "chemical", "asbestos")


def get_stream_default(stream_name: Optional[str]) -> Optional[StreamDefault]:
    """Look up the built-in defaults for ``stream_name`` (trimmed), or ``None``."""
    if not stream_name:
        return None
    return STREAM_DEFAULTS.get(stream_name.strip())


def default_intended_outcomes(
    stream_name: str, fallback: str = IntendedOutcome.RECYCLE.value
) -> list[str]:
    """Suggested intended outcomes for a newly created stream plan.

    Streams matching no rule get ``[fallback]``.
    """
    lower = stream_name.strip().lower()
    if "metal" in lower or "cardboard" in lower:
        return [IntendedOutcome.RECYCLE.value]
    if "timber" in lower and "untreated" in lower:
        return [IntendedOutcome.REUSE.value, IntendedOutcome.RECYCLE.value]
    if "timber" in lower and "treated" in lower:
        return [IntendedOutcome.RECOVER.value]
    if any(k in lower for k in ("concrete", "masonry", "brick", "asphalt", "roading")):
        return [IntendedOutcome.RECYCLE.value, IntendedOutcome.RECOVER.value]
    if "soil" in lower or "cleanfill" in lower:
        return [IntendedOutcome.CLEANFILL.value]
    if "soft plastic" in lower:
        return [IntendedOutcome.RECYCLE.value]
    if "mixed c&d" in lower:
        return [IntendedOutcome.RECOVER.value, IntendedOutcome.LANDFILL.value]
    return [fallback]


def is_hazardous_stream(stream_name: str) -> bool:
    lower = stream_name.lower()
    return any(marker in lower for marker in _HAZARD_MARKERS)


def suggest_stream_for_material(
    material_type: Optional[str],
    project_streams: Optional[list[str]] = None,
) -> Optional[str]:
    """Suggest a stream key for a forecast item's material type.

    With ``project_streams`` given, returns the first candidate already
    selected in the project (or ``None``). Without it, returns the first
    candidate overall, falling back to the material type itself.
    """
    if not material_type or not material_type.strip():
        return None
    key = material_type.strip()
    candidates = MATERIAL_TYPE_TO_STREAM_KEYS.get(key, [])
    if project_streams is None:
        return candidates[0] if candidates else key
    selected = {s.strip() for s in project_streams}
    if key in selected:
        return key
    for candidate in candidates:
        if candidate in selected:
            return candidate
    return None
