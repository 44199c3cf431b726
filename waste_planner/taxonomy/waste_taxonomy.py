"""
Enumerations for forecast units, stream handling, destinations and outcomes.

Dimensions:
  - ``QuantityUnit``     — how a forecast item's raw quantity is measured.
  - ``HandlingMode``     — whether a stream is kept separate onsite.
  - ``DestinationMode``  — catalog facility vs free-text custom destination.
  - ``IntendedOutcome``  — the waste hierarchy term a user selects per stream.
  - ``OutcomeLabel``     — the reporting bucket an outcome list collapses to.
  - ``Significance``     — stream size class by tonnes.

Usage example::

    from waste_planner.taxonomy.waste_taxonomy import QuantityUnit

    unit = QuantityUnit.parse("m³")   # QuantityUnit.M3

This module has NO imports from any other ``waste_planner`` package.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Iterable, Optional


class QuantityUnit(StrEnum):
    """Unit of a forecast item's raw quantity."""

    TONNE = "tonne"
    """Metric tonne; mass-equivalent, × 1000 to kg."""

    KG = "kg"
    """Kilograms; already mass."""

    M = "m"
    """Linear metres; needs a kg/m factor."""

    M3 = "m3"
    """Cubic metres; needs a density (kg/m³)."""

    L = "L"
    """Litres; converted to m³ (÷ 1000) then needs a density."""

    M2 = "m2"
    """Square metres; never converted to mass."""

    COUNT = "count"
    """Discrete units (sheets, pallets, fixtures); never converted to mass."""

    @classmethod
    def parse(cls, raw: str) -> "QuantityUnit":
        """Resolve a user-entered unit string, accepting common aliases.

        Raises:
            ValueError: If ``raw`` matches no unit or alias.
        """
        key = str(raw).strip()
        if key in _UNIT_ALIASES:
            return _UNIT_ALIASES[key]
        lowered = key.lower()
        if lowered in _UNIT_ALIASES:
            return _UNIT_ALIASES[lowered]
        raise ValueError(
            f"Unknown unit '{raw}'. Must be one of {[u.value for u in cls]}."
        )

    @property
    def is_mass(self) -> bool:
        return self in (QuantityUnit.TONNE, QuantityUnit.KG)

    @property
    def needs_factor(self) -> bool:
        """True for units that convert to mass only through a density/kg-per-m."""
        return self in (QuantityUnit.M, QuantityUnit.M3, QuantityUnit.L)


_UNIT_ALIASES: dict[str, QuantityUnit] = {
    "tonne": QuantityUnit.TONNE,
    "tonnes": QuantityUnit.TONNE,
    "t": QuantityUnit.TONNE,
    "kg": QuantityUnit.KG,
    "m": QuantityUnit.M,
    "lm": QuantityUnit.M,
    "m3": QuantityUnit.M3,
    "m³": QuantityUnit.M3,
    "L": QuantityUnit.L,
    "l": QuantityUnit.L,
    "litre": QuantityUnit.L,
    "litres": QuantityUnit.L,
    "m2": QuantityUnit.M2,
    "m²": QuantityUnit.M2,
    "count": QuantityUnit.COUNT,
    "each": QuantityUnit.COUNT,
    "ea": QuantityUnit.COUNT,
    "no": QuantityUnit.COUNT,
}


class HandlingMode(StrEnum):
    """Onsite handling of a stream."""

    MIXED = "mixed"
    """Goes into the shared mixed skip."""

    SEPARATED = "separated"
    """Has its own bin / skip onsite."""


class DestinationMode(StrEnum):
    """Where a stream's destination comes from."""

    FACILITY = "facility"
    """A facility from the catalog (facility_id / partner_id)."""

    CUSTOM = "custom"
    """A free-text name and address entered by the user."""


class IntendedOutcome(StrEnum):
    """Waste hierarchy outcome selectable per stream."""

    REDUCE = "Reduce"
    REUSE = "Reuse"
    RECYCLE = "Recycle"
    RECOVER = "Recover"
    CLEANFILL = "Cleanfill"
    LANDFILL = "Landfill"


class OutcomeLabel(StrEnum):
    """Reporting bucket used for diversion percentages."""

    REUSE = "reuse"
    RECYCLE = "recycle"
    LANDFILL = "landfill"
    UNKNOWN = "unknown"

    @property
    def is_diverted(self) -> bool:
        return self in (OutcomeLabel.REUSE, OutcomeLabel.RECYCLE)


class Significance(StrEnum):
    """Stream size class by total tonnes."""

    MAJOR = "major"
    MEDIUM = "medium"
    MINOR = "minor"


# ── Helpers ───────────────────────────────────────────────────────────────────

_OUTCOME_VALUES: frozenset[str] = frozenset(o.value for o in IntendedOutcome)


def recognized_outcomes(outcomes: Optional[Iterable[str]]) -> list[str]:
    """Return the recognized outcome values from ``outcomes``, trimmed, order kept, deduped."""
    seen: list[str] = []
    for raw in outcomes or ():
        value = str(raw).strip()
        if value in _OUTCOME_VALUES and value not in seen:
            seen.append(value)
    return seen


def outcome_label(outcomes: Optional[Iterable[str]]) -> OutcomeLabel:
    """Collapse an intended-outcome list into its reporting bucket.

    Only the first entry counts: Landfill → landfill, Reuse → reuse,
    Recycle / Recover / Cleanfill / Reduce → recycle, anything else → unknown.
    """
    values = [str(o).strip() for o in (outcomes or ())]
    first = values[0] if values else ""
    if first == IntendedOutcome.LANDFILL:
        return OutcomeLabel.LANDFILL
    if first == IntendedOutcome.REUSE:
        return OutcomeLabel.REUSE
    if first in (
        IntendedOutcome.RECYCLE,
        IntendedOutcome.RECOVER,
        IntendedOutcome.CLEANFILL,
        IntendedOutcome.REDUCE,
    ):
        return OutcomeLabel.RECYCLE
    return OutcomeLabel.UNKNOWN


def classify_significance(
    total_tonnes: float,
    major_tonnes: float = 1.0,
    medium_tonnes: float = 0.2,
) -> Significance:
    """Classify a stream by tonnes: major ≥ 1 t, medium ≥ 0.2 t, else minor."""
    if total_tonnes >= major_tonnes:
        return Significance.MAJOR
    if total_tonnes >= medium_tonnes:
        return Significance.MEDIUM
    return Significance.MINOR
