"""
Quantity normalizer: raw quantity + unit + excess % → waste quantity and kg.

Both functions are pure and keep full float precision; rounding happens
only when values are presented. They do not validate: negative or
non-finite input is rejected earlier, when the ``ForecastItem`` is built.

    >>> round(compute_waste_kg(10, 10, "tonne"), 6)
    11000.0
    >>> compute_waste_kg(10, 10, "m2") is None
    True
"""

from __future__ import annotations

from typing import Optional

from waste_planner.forecast.conversion import ResolvedFactors
from waste_planner.models.forecast_item import ForecastItem
from waste_planner.taxonomy.waste_taxonomy import QuantityUnit

LITRES_PER_M3 = 1000.0
KG_PER_TONNE = 1000.0


def compute_waste_qty(quantity: float, excess_percent: float) -> float:
    """Quantity including the ordering/wastage margin."""
    return quantity * (1 + excess_percent / 100)


def compute_waste_kg(
    quantity: float,
    excess_percent: float,
    unit: QuantityUnit | str,
    kg_per_m: Optional[float] = None,
    density_kg_m3: Optional[float] = None,
) -> Optional[float]:
    """Mass in kg of ``quantity`` (plus excess) measured in ``unit``.

    Returns ``None`` when the mass is indeterminate: a length or volume
    without its factor, or a non-mass unit (m², count).
    """
    unit = unit if isinstance(unit, QuantityUnit) else QuantityUnit.parse(unit)
    waste_qty = compute_waste_qty(quantity, excess_percent)

    if unit == QuantityUnit.TONNE:
        return waste_qty * KG_PER_TONNE
    if unit == QuantityUnit.KG:
        return waste_qty
    if unit == QuantityUnit.M:
        return waste_qty * kg_per_m if kg_per_m is not None else None
    if unit == QuantityUnit.M3:
        return waste_qty * density_kg_m3 if density_kg_m3 is not None else None
    if unit == QuantityUnit.L:
        if density_kg_m3 is None:
            return None
        return (waste_qty / LITRES_PER_M3) * density_kg_m3
    return None


def normalize_item(item: ForecastItem, factors: ResolvedFactors) -> ForecastItem:
    """Return a copy of ``item`` with both computed fields re-derived."""
    return item.model_copy(
        update={
            "computed_waste_qty": compute_waste_qty(item.quantity, item.excess_percent),
            "computed_waste_kg": compute_waste_kg(
                item.quantity,
                item.excess_percent,
                item.unit,
                kg_per_m=factors.kg_per_m,
                density_kg_m3=factors.density_kg_m3,
            ),
        }
    )
