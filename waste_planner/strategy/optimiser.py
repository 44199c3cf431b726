"""
Facility optimiser: score every facility that accepts a stream and pick the
best one, with ranked alternatives and a human-readable reason.

Score formula (weighted mean, range 0-1)
----------------------------------------
    score = (
        distance_norm    * w_distance    # drive distance, lower is better
        + cost_norm      * w_cost        # gate fee per tonne, lower is better
        + carbon_norm    * w_carbon      # kgCO2e per tonne, lower is better
        + diversion_norm * w_diversion   # diversion rating, higher is better
    ) / sum(weights of the dimensions in use)

Normalisation (per stream, over its eligible facilities)
--------------------------------------------------------
    lower is better  : (max - v) / (max - min)
    higher is better : (v - min) / (max - min)
    max == min       : 1.0 for every facility with a value
    missing value    : contributes nothing (the weight still counts)

A dimension is in use when its weight is positive and at least one eligible
facility has data for it. When no dimension is in use but distances exist,
the optimiser ranks on distance alone.

Ordering
--------
Score descending, then raw distance ascending (unknown last), then facility
name, then id.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional

from waste_planner.config import OptimiserConfig
from waste_planner.distances.cache import DistanceResult
from waste_planner.models.catalog import Facility
from waste_planner.models.plan import PlanDocument
from waste_planner.models.recommendation import SetFacilityAction, SetFacilityPayload
from waste_planner.strategy.actions import apply_action
from waste_planner.strategy.builder import FacilityCandidate, StreamPlanRow, rank_facilities

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreWeights:
    """Relative weights of the four scoring dimensions."""

    distance:  float = 1.0
    cost:      float = 0.0
    carbon:    float = 0.0
    diversion: float = 0.0

    @classmethod
    def from_config(cls, config: OptimiserConfig) -> "ScoreWeights":
        return cls(
            distance=config.distance_weight,
            cost=config.cost_weight,
            carbon=config.carbon_weight,
            diversion=config.diversion_weight,
        )


@dataclass(frozen=True)
class ScoredFacility:
    """One eligible facility with its score.

    Attributes:
        candidate:  Facility plus distance, as ranked by ``rank_facilities``.
        score:      Weighted mean of the normalised dimensions, 0-1.
        dimensions: Names of the dimensions that fed the score.
    """

    candidate:  FacilityCandidate
    score:      float
    dimensions: tuple[str, ...] = ()

    @property
    def facility(self) -> Facility:
        return self.candidate.facility


@dataclass
class FacilityOption:
    facility_id:            str
    facility_name:          str
    partner_id:             Optional[str]
    score:                  float
    distance_km:            Optional[float] = None
    duration_min:           Optional[float] = None
    estimated_cost:         Optional[float] = None
    estimated_carbon_tco2e: Optional[float] = None


@dataclass
class OptimiserReason:
    primary:           str
    breakdown:         list[str] = field(default_factory=list)
    eligible_count:    int = 0
    rank_by_distance:  Optional[int] = None


@dataclass
class OptimiserResult:
    """Best facility for one stream.

    ``recommended`` is ``None`` when no catalog facility accepts the stream.
    """

    stream_name:          str
    planned_tonnes:       float
    recommended:          Optional[FacilityOption]
    alternatives:         list[FacilityOption]
    reason:               OptimiserReason
    eligible_facility_ids: list[str] = field(default_factory=list)
    assigned_facility_id: Optional[str] = None

    @property
    def is_current(self) -> bool:
        """The recommended facility is the one already assigned."""
        return (
            self.recommended is not None
            and self.assigned_facility_id == self.recommended.facility_id
        )


@dataclass
class OptimiserReport:
    project_id:          str
    weights:             ScoreWeights
    facilities_total:    int
    facilities_geocoded: int
    distances_cached:    int
    last_updated_at:     Optional[datetime]
    results:             list[OptimiserResult]

    def get(self, stream_name: str) -> Optional[OptimiserResult]:
        for result in self.results:
            if result.stream_name == stream_name:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "weights": asdict(self.weights),
            "facilities_total": self.facilities_total,
            "facilities_geocoded": self.facilities_geocoded,
            "distances_cached": self.distances_cached,
            "last_updated_at": self.last_updated_at.isoformat() if self.last_updated_at else None,
            "results": [
                {**asdict(r), "is_current": r.is_current} for r in self.results
            ],
        }


@dataclass(frozen=True)
class AssignmentOutcome:
    """Result of ``apply_assignments``."""

    document: PlanDocument
    applied:  list[str]
    skipped:  list[str]


# ── Scoring ───────────────────────────────────────────────────────────────────

def _normalise(values: list[Optional[float]], higher_is_better: bool) -> list[Optional[float]]:
    known = [v for v in values if v is not None]
    if not known:
        return [None] * len(values)
    lo, hi = min(known), max(known)
    span = hi - lo
    normalised: list[Optional[float]] = []
    for v in values:
        if v is None:
            normalised.append(None)
        elif span == 0:
            normalised.append(1.0)
        elif higher_is_better:
            normalised.append((v - lo) / span)
        else:
            normalised.append((hi - v) / span)
    return normalised


def score_candidates(
    candidates: list[FacilityCandidate],
    weights: ScoreWeights,
) -> list[ScoredFacility]:
    """Score and order eligible facilities, best first.

    Args:
        candidates: Facilities that accept the stream, with distances.
        weights:    Relative dimension weights.

    Returns:
        One ``ScoredFacility`` per candidate, in optimiser order.
    """
    raw = {
        "distance":  ([c.distance_m for c in candidates], False, weights.distance),
        "cost":      ([c.facility.cost_per_tonne for c in candidates], False, weights.cost),
        "carbon":    (
            [c.facility.carbon_kg_co2e_per_tonne for c in candidates], False, weights.carbon
        ),
        "diversion": (
            [c.facility.diversion_rating for c in candidates], True, weights.diversion
        ),
    }
    in_use = {
        name: (_normalise(values, higher), weight)
        for name, (values, higher, weight) in raw.items()
        if weight > 0 and any(v is not None for v in values)
    }
    if not in_use and any(c.distance_m is not None for c in candidates):
        in_use = {"distance": (_normalise(raw["distance"][0], False), 1.0)}

    total_weight = sum(weight for _, weight in in_use.values())
    scored = []
    for i, candidate in enumerate(candidates):
        weighted = sum(
            norm[i] * weight for norm, weight in in_use.values() if norm[i] is not None
        )
        scored.append(
            ScoredFacility(
                candidate=candidate,
                score=round(weighted / total_weight, 4) if total_weight else 0.0,
                dimensions=tuple(in_use),
            )
        )
    return sorted(
        scored,
        key=lambda s: (
            -s.score,
            s.candidate.distance_m is None,
            s.candidate.distance_m if s.candidate.distance_m is not None else 0.0,
            s.facility.name,
            s.facility.facility_id,
        ),
    )


def _option(scored: ScoredFacility, tonnes: float) -> FacilityOption:
    facility = scored.facility
    return FacilityOption(
        facility_id=facility.facility_id,
        facility_name=facility.name,
        partner_id=facility.partner_id,
        score=scored.score,
        distance_km=scored.candidate.distance_km,
        duration_min=scored.candidate.duration_min,
        estimated_cost=(
            round(facility.cost_per_tonne * tonnes, 2)
            if facility.cost_per_tonne is not None
            else None
        ),
        estimated_carbon_tco2e=(
            round(facility.carbon_kg_co2e_per_tonne * tonnes / 1000.0, 3)
            if facility.carbon_kg_co2e_per_tonne is not None
            else None
        ),
    )


def _reason(
    best: Optional[FacilityOption],
    candidates: list[FacilityCandidate],
) -> OptimiserReason:
    eligible = len(candidates)
    if best is None:
        return OptimiserReason(primary="No eligible facilities found")

    routed = [c for c in candidates if c.distance_m is not None]
    routed.sort(key=lambda c: (c.distance_m, c.facility.name, c.facility.facility_id))
    rank = next(
        (i for i, c in enumerate(routed, start=1) if c.facility.facility_id == best.facility_id),
        None,
    )

    if eligible == 1:
        primary = "Only eligible facility"
    elif best.distance_km is None:
        primary = "Eligible facility selected (distance unavailable)"
    elif rank == 1:
        primary = "Closest eligible facility"
    else:
        primary = f"Ranked #{rank} of {len(routed)} by distance"

    breakdown = [f"Eligible facilities: {eligible}"]
    if best.distance_km is not None:
        breakdown.append(f"Distance: {best.distance_km:.1f} km")
    if best.duration_min is not None:
        breakdown.append(f"Drive: ~{best.duration_min:.0f} min")
    if routed and len(routed) < eligible:
        breakdown.append("Some facilities missing distance; ranked with available data.")
    if best.estimated_cost is not None:
        breakdown.append(f"Est. cost: ${best.estimated_cost:,.0f}")
    if best.estimated_carbon_tco2e is not None:
        breakdown.append(f"Est. carbon: {best.estimated_carbon_tco2e:.2f} tCO2e")

    return OptimiserReason(
        primary=primary,
        breakdown=breakdown,
        eligible_count=eligible,
        rank_by_distance=rank,
    )


# ── Entry points ──────────────────────────────────────────────────────────────

def optimise_stream(
    row: StreamPlanRow,
    facilities: list[Facility],
    distances: Optional[DistanceResult],
    weights: ScoreWeights,
    max_alternatives: int = 3,
) -> OptimiserResult:
    """Best facility, alternatives and reason for one stream row."""
    eligible = [f for f in facilities if f.accepts(row.stream_name)]
    candidates = rank_facilities(eligible, distances)
    scored = score_candidates(candidates, weights)
    options = [_option(s, row.total_tonnes) for s in scored]
    best = options[0] if options else None
    return OptimiserResult(
        stream_name=row.stream_name,
        planned_tonnes=row.total_tonnes,
        recommended=best,
        alternatives=options[1 : 1 + max_alternatives],
        reason=_reason(best, candidates),
        eligible_facility_ids=[c.facility.facility_id for c in candidates],
        assigned_facility_id=row.facility_id,
    )


def build_optimiser_report(
    project_id: str,
    rows: list[StreamPlanRow],
    facilities: list[Facility],
    distances: Optional[DistanceResult],
    weights: ScoreWeights = ScoreWeights(),
    max_alternatives: int = 3,
) -> OptimiserReport:
    """Optimise every stream that carries tonnes.

    Args:
        project_id:       Owning project.
        rows:             Stream rows from ``build_stream_rows``.
        facilities:       Full facility catalog.
        distances:        Cached site-to-facility distances, if any.
        weights:          Scoring weights.
        max_alternatives: Runner-up facilities kept per stream.
    """
    entries = list(distances.distance_map.values()) if distances else []
    stamps = [e.updated_at for e in entries if e.updated_at is not None]
    results = [
        optimise_stream(row, facilities, distances, weights, max_alternatives)
        for row in rows
        if row.total_tonnes > 0
    ]
    logger.debug(
        "Optimised %d stream(s) for project %s over %d facilities",
        len(results), project_id, len(facilities),
    )
    return OptimiserReport(
        project_id=project_id,
        weights=weights,
        facilities_total=len(facilities),
        facilities_geocoded=sum(1 for f in facilities if f.has_coordinates),
        distances_cached=len(entries),
        last_updated_at=max(stamps) if stamps else None,
        results=results,
    )


def apply_assignments(
    document: PlanDocument,
    assignments: dict[str, str],
    facilities_by_id: dict[str, Facility],
) -> AssignmentOutcome:
    """Point each named stream at its chosen facility.

    Every facility id must already be validated against ``facilities_by_id``.
    Streams without a plan entry are skipped.
    """
    applied: list[str] = []
    skipped: list[str] = []
    for stream_name, facility_id in assignments.items():
        facility = facilities_by_id[facility_id]
        outcome = apply_action(
            document,
            SetFacilityAction(
                payload=SetFacilityPayload(
                    stream_name=stream_name,
                    facility_id=facility.facility_id,
                    partner_id=facility.partner_id,
                )
            ),
        )
        if outcome.ignored:
            skipped.append(stream_name)
            continue
        document = outcome.document
        applied.append(stream_name)
    return AssignmentOutcome(document=document, applied=applied, skipped=skipped)
