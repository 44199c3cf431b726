"""
Strategy builder: per-stream presentation rows and the strategy summary.

Usage flow
----------
1. build_stream_rows(project, document, aggregation, facilities, distances)
   -> list[StreamPlanRow]   (one per plan entry, in document order)

2. summarize(rows, aggregation)
   -> StrategySummary       (tonnes, diversion %, landfill %)

3. build_strategy(...)
   -> WasteStrategy          (rows + summary + recommendations)

Everything here is pure: the service loads the inputs and this module only
combines them.

Nearest facility ordering
-------------------------
Facilities with an unknown distance are ranked last, never dropped. Known
distances sort ascending on the raw metres, and only equal distances fall
back to the facility name, then the id. Kilometres are rounded for display
only.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from waste_planner.config import PlanningConfig
from waste_planner.distances.cache import DistanceResult
from waste_planner.forecast.aggregator import AggregationResult
from waste_planner.models.catalog import Facility, Project
from waste_planner.models.plan import PlanDocument, WasteStreamPlan
from waste_planner.models.recommendation import Recommendation
from waste_planner.taxonomy.stream_catalog import is_hazardous_stream
from waste_planner.taxonomy.waste_taxonomy import (
    DestinationMode,
    HandlingMode,
    OutcomeLabel,
    Significance,
    classify_significance,
    outcome_label,
)


@dataclass(frozen=True)
class FacilityCandidate:
    """A facility with its (possibly unknown) distance from the site.

    ``distance_m`` is the ranking key; ``distance_km`` is its rounded display
    form.
    """

    facility: Facility
    distance_km: Optional[float]
    distance_m: Optional[float] = None
    duration_min: Optional[float] = None


@dataclass
class StreamPlanRow:
    """Presentation row for one stream plan.

    Attributes:
        stream_name:              Plan category.
        total_kg / total_tonnes:  Manual plus forecast mass for the stream.
        forecast_tonnes:          Forecast mass allocated to the stream.
        manual_tonnes:            Tonnes entered on the plan itself.
        significance:             major / medium / minor.
        outcome_label:            Reporting bucket of the intended outcomes.
        intended_outcomes:        As stored on the plan.
        handling_mode:            Current handling.
        recommended_handling:     What the sizing rules suggest.
        destination_mode:         facility / custom.
        has_destination:          Whether a destination is set.
        facility_id / partner_id: Assigned catalog destination.
        destination_name:         Facility name or custom destination name.
        distance_km / duration_min: To the assigned facility; ``None`` if unknown.
        effective_partner_id:     Stream partner, else project primary partner.
        recommended_facility_id / _name / _partner_id / _distance_km:
                                  Nearest accepting facility, only computed
                                  when no destination is set.
    """

    stream_name: str
    total_kg: float
    total_tonnes: float
    significance: Significance
    outcome_label: OutcomeLabel
    intended_outcomes: list[str]
    handling_mode: HandlingMode
    recommended_handling: HandlingMode
    destination_mode: DestinationMode
    has_destination: bool
    facility_id: Optional[str] = None
    partner_id: Optional[str] = None
    destination_name: Optional[str] = None
    distance_km: Optional[float] = None
    duration_min: Optional[float] = None
    effective_partner_id: Optional[str] = None
    recommended_facility_id: Optional[str] = None
    recommended_facility_name: Optional[str] = None
    recommended_partner_id: Optional[str] = None
    recommended_distance_km: Optional[float] = None
    forecast_tonnes: float = 0.0
    manual_tonnes: float = 0.0


@dataclass
class StrategySummary:
    total_tonnes: float
    diverted_tonnes: float
    landfill_tonnes: float
    unknown_tonnes: float
    diversion_percent: float
    landfill_percent: float
    streams_count: int
    facilities_utilised_count: int


@dataclass
class WasteStrategy:
    """Everything a presentation layer needs for one project."""

    project_id: str
    summary: StrategySummary
    stream_rows: list[StreamPlanRow]
    recommendations: list[Recommendation]
    aggregation: AggregationResult
    distances_loaded: bool = False
    missing_facility_ids: list[str] = field(default_factory=list)
    revision: Optional[int] = None

    def get_recommendation(self, rec_id: str) -> Optional[Recommendation]:
        for rec in self.recommendations:
            if rec.rec_id == rec_id:
                return rec
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "revision": self.revision,
            "summary": asdict(self.summary),
            "stream_rows": [
                {k: (v.value if hasattr(v, "value") else v) for k, v in asdict(row).items()}
                for row in self.stream_rows
            ],
            "recommendations": [r.model_dump(mode="json") for r in self.recommendations],
            "aggregation": self.aggregation.to_dict(),
            "distances_loaded": self.distances_loaded,
            "missing_facility_ids": list(self.missing_facility_ids),
        }


# ── Facility ranking ──────────────────────────────────────────────────────────

def rank_facilities(
    facilities: list[Facility],
    distances: Optional[DistanceResult],
) -> list[FacilityCandidate]:
    """Order facilities nearest first (unknown distance last, then by name)."""
    candidates = []
    for f in facilities:
        entry = distances.get(f.facility_id) if distances else None
        candidates.append(
            FacilityCandidate(
                facility=f,
                distance_km=entry.distance_km if entry else None,
                distance_m=entry.distance_m if entry else None,
                duration_min=entry.duration_min if entry else None,
            )
        )
    return sorted(
        candidates,
        key=lambda c: (
            c.distance_m is None,
            c.distance_m if c.distance_m is not None else 0.0,
            c.facility.name,
            c.facility.facility_id,
        ),
    )


def recommend_facility(
    stream_name: str,
    facilities: list[Facility],
    distances: Optional[DistanceResult],
    partner_id: Optional[str] = None,
) -> Optional[FacilityCandidate]:
    """Nearest facility accepting ``stream_name``.

    With ``partner_id`` set, only that partner's facilities are considered,
    unless the partner has none accepting the stream.
    """
    accepting = [f for f in facilities if f.accepts(stream_name)]
    if partner_id:
        own = [f for f in accepting if f.partner_id == partner_id]
        if own:
            accepting = own
    ranked = rank_facilities(accepting, distances)
    return ranked[0] if ranked else None


# ── Rows and summary ──────────────────────────────────────────────────────────

def recommend_handling(
    stream_name: str,
    significance: Significance,
    label: OutcomeLabel,
    mixed_stream_key: str,
) -> HandlingMode:
    if stream_name == mixed_stream_key:
        return HandlingMode.MIXED
    hazardous = is_hazardous_stream(stream_name)
    if significance == Significance.MINOR:
        return HandlingMode.SEPARATED if hazardous else HandlingMode.MIXED
    if label.is_diverted:
        return HandlingMode.SEPARATED
    return HandlingMode.MIXED


def _build_row(
    plan: WasteStreamPlan,
    project: Project,
    aggregation: AggregationResult,
    facilities_by_id: dict[str, Facility],
    facilities: list[Facility],
    distances: Optional[DistanceResult],
    planning: PlanningConfig,
) -> StreamPlanRow:
    forecast_kg = aggregation.stream_kg(plan.category)
    manual_tonnes = plan.manual_qty_tonnes or 0.0
    forecast_tonnes = forecast_kg / 1000.0
    total_kg = forecast_kg + manual_tonnes * 1000.0
    total_tonnes = forecast_tonnes + manual_tonnes
    significance = classify_significance(
        total_tonnes, planning.major_tonnes, planning.medium_tonnes
    )
    label = outcome_label(plan.intended_outcomes)
    effective_partner = plan.partner_id or project.primary_partner_id

    row = StreamPlanRow(
        stream_name=plan.category,
        total_kg=total_kg,
        total_tonnes=total_tonnes,
        significance=significance,
        outcome_label=label,
        intended_outcomes=list(plan.intended_outcomes),
        handling_mode=plan.handling_mode,
        recommended_handling=recommend_handling(
            plan.category, significance, label, planning.mixed_stream_key
        ),
        destination_mode=plan.destination_mode,
        has_destination=plan.has_destination,
        partner_id=plan.partner_id,
        effective_partner_id=effective_partner,
        forecast_tonnes=forecast_tonnes,
        manual_tonnes=manual_tonnes,
    )

    if plan.destination_mode == DestinationMode.CUSTOM:
        row.destination_name = plan.custom_destination_name or plan.custom_destination_address
    elif plan.facility_id:
        row.facility_id = plan.facility_id
        facility = facilities_by_id.get(plan.facility_id)
        row.destination_name = facility.name if facility else None
        entry = distances.get(plan.facility_id) if distances else None
        if entry is not None:
            row.distance_km = entry.distance_km
            row.duration_min = entry.duration_min

    if not row.has_destination:
        best = recommend_facility(plan.category, facilities, distances, effective_partner)
        if best is not None:
            row.recommended_facility_id = best.facility.facility_id
            row.recommended_facility_name = best.facility.name
            row.recommended_partner_id = best.facility.partner_id
            row.recommended_distance_km = best.distance_km
    return row


def build_stream_rows(
    project: Project,
    document: PlanDocument,
    aggregation: AggregationResult,
    facilities: list[Facility],
    distances: Optional[DistanceResult],
    planning: PlanningConfig,
) -> list[StreamPlanRow]:
    """One row per plan entry, in document order."""
    by_id = {f.facility_id: f for f in facilities}
    return [
        _build_row(plan, project, aggregation, by_id, facilities, distances, planning)
        for plan in document.waste_stream_plans
    ]


def project_total_tonnes(rows: list[StreamPlanRow], aggregation: AggregationResult) -> float:
    """All allocated forecast mass plus the manual tonnes entered on plans."""
    return aggregation.total_kg / 1000.0 + sum(r.manual_tonnes for r in rows)


def summarize(rows: list[StreamPlanRow], aggregation: AggregationResult) -> StrategySummary:
    """Diversion summary.

    The total is all allocated forecast mass plus manual plan tonnes, so
    mass in a stream with no plan entry counts toward ``unknown_tonnes``.
    """
    total = project_total_tonnes(rows, aggregation)
    diverted = sum(r.total_tonnes for r in rows if r.outcome_label.is_diverted)
    landfill = sum(r.total_tonnes for r in rows if r.outcome_label == OutcomeLabel.LANDFILL)
    unknown = max(total - diverted - landfill, 0.0)
    utilised = {r.facility_id for r in rows if r.facility_id and r.total_tonnes > 0}
    return StrategySummary(
        total_tonnes=total,
        diverted_tonnes=diverted,
        landfill_tonnes=landfill,
        unknown_tonnes=unknown,
        diversion_percent=(diverted / total * 100.0) if total > 0 else 0.0,
        landfill_percent=(landfill / total * 100.0) if total > 0 else 0.0,
        streams_count=len(rows),
        facilities_utilised_count=len(utilised),
    )


def build_strategy(
    project: Project,
    document: PlanDocument,
    aggregation: AggregationResult,
    facilities: list[Facility],
    distances: Optional[DistanceResult],
    planning: PlanningConfig,
    revision: Optional[int] = None,
) -> WasteStrategy:
    from waste_planner.strategy.recommender import build_recommendations

    rows = build_stream_rows(project, document, aggregation, facilities, distances, planning)
    recommendations = build_recommendations(project, document, rows, aggregation, planning)
    return WasteStrategy(
        project_id=project.project_id,
        summary=summarize(rows, aggregation),
        stream_rows=rows,
        recommendations=recommendations,
        aggregation=aggregation,
        distances_loaded=distances.distances_loaded if distances else False,
        missing_facility_ids=list(distances.missing_facility_ids) if distances else [],
        revision=revision,
    )
