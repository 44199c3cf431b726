"""
Cost and carbon heuristics for recommendation impact estimates.

Per-tonne savings (NZD, indicative)
-----------------------------------
    landfill gate fee      80 .. 180   (average 130)
    recycling / recovery  -50 ..  80   (negative = metals rebate)

    saving per tonne moved from landfill to recycling:
        low  = max(0, landfill_avg - recycle_max)   ->  50
        high = landfill_avg - recycle_min           -> 180

Per-tonne carbon (tCO2e, indicative)
------------------------------------
    landfill emission factor        0.3
    recycling displacement    0.1 .. 0.6

    saving per tonne diverted:
        low  = 0.3 * 0.5 + 0.1   -> 0.25
        high = 0.3 * 1.2 + 0.6   -> 0.96

All figures are deliberately coarse. They turn tonnes into a range a site
manager can sanity-check, not a quote.
"""

from __future__ import annotations

from waste_planner.models.recommendation import ImpactEstimate

LANDFILL_COST_PER_TONNE_MIN = 80.0
LANDFILL_COST_PER_TONNE_MAX = 180.0

RECYCLING_COST_PER_TONNE_MIN = -50.0
RECYCLING_COST_PER_TONNE_MAX = 80.0

LANDFILL_EMISSION_FACTOR_TCO2E_PER_T = 0.3
RECYCLING_DISPLACEMENT_TCO2E_PER_T_MIN = 0.1
RECYCLING_DISPLACEMENT_TCO2E_PER_T_MAX = 0.6

NOTE_APPROXIMATE_RANGES = (
    "Cost and carbon ranges are indicative using standard assumptions; actual "
    "savings depend on facility, region and material."
)


def cost_saving_per_tonne_from_landfill() -> tuple[float, float]:
    """NZD saved per tonne moved from landfill to recycling, as ``(low, high)``."""
    landfill_avg = (LANDFILL_COST_PER_TONNE_MIN + LANDFILL_COST_PER_TONNE_MAX) / 2
    low = max(0.0, landfill_avg - RECYCLING_COST_PER_TONNE_MAX)
    high = landfill_avg - RECYCLING_COST_PER_TONNE_MIN
    return float(round(low)), float(round(high))


def carbon_saving_per_tonne_tco2e() -> tuple[float, float]:
    """tCO2e saved per tonne diverted from landfill, as ``(low, high)``."""
    low = LANDFILL_EMISSION_FACTOR_TCO2E_PER_T * 0.5 + RECYCLING_DISPLACEMENT_TCO2E_PER_T_MIN
    high = LANDFILL_EMISSION_FACTOR_TCO2E_PER_T * 1.2 + RECYCLING_DISPLACEMENT_TCO2E_PER_T_MAX
    return round(low, 2), round(high, 2)


def estimate_diversion_impact(tonnes_diverted: float, total_tonnes: float) -> ImpactEstimate:
    """Impact of moving ``tonnes_diverted`` out of landfill.

    Args:
        tonnes_diverted: Mass that would reach a diverting outcome.
        total_tonnes:    Project total, for the diversion % delta.
    """
    tonnes = max(0.0, tonnes_diverted)
    cost_low, cost_high = cost_saving_per_tonne_from_landfill()
    carbon_low, carbon_high = carbon_saving_per_tonne_tco2e()
    return ImpactEstimate(
        tonnes_diverted=tonnes,
        diversion_delta_percent=(tonnes / total_tonnes * 100.0) if total_tonnes > 0 else 0.0,
        cost_savings_nzd_range=(float(round(tonnes * cost_low)), float(round(tonnes * cost_high))),
        carbon_savings_tco2e_range=(
            round(tonnes * carbon_low, 2),
            round(tonnes * carbon_high, 2),
        ),
        notes=[NOTE_APPROXIMATE_RANGES],
    )


def note_only(note: str) -> ImpactEstimate:
    return ImpactEstimate(notes=[note])
