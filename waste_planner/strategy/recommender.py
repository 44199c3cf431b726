"""
Recommendation rules: scan the stream rows and the aggregation, emit
``Recommendation`` objects with machine-applicable actions.

Rules (rank = priority, 1 is most urgent)
-----------------------------------------
1. Unallocated forecast items        -> allocate_to_mixed
2. Stream without a destination      -> set_facility (nearest accepting facility)
3. Outcome label is unknown         -> set_outcome (stream defaults)
4. Selected/forecast stream not planned -> create_stream
5. Major diverted stream still mixed -> mark_stream_separate
6. Items still needing a conversion factor -> advisory, no action

Within a rank, recommendations are ordered by stream name. Ids are slugs of
``<action>-<stream>`` so the same state always yields the same ids, which
is what lets a caller apply a recommendation by id after a re-read.

Recommendations that move tonnes out of landfill carry an indicative
``ImpactEstimate`` (see ``strategy.impact``); the rest carry a note only.
"""

from __future__ import annotations

import re
from typing import Optional

from waste_planner.config import PlanningConfig
from waste_planner.forecast.aggregator import AggregationResult
from waste_planner.models.catalog import Project
from waste_planner.models.plan import PlanDocument
from waste_planner.models.recommendation import (
    AllocateToMixedAction,
    AllocateToMixedPayload,
    CreateStreamAction,
    MarkStreamSeparateAction,
    Recommendation,
    SetFacilityAction,
    SetFacilityPayload,
    SetOutcomeAction,
    SetOutcomePayload,
    StreamPayload,
)
from waste_planner.strategy.builder import StreamPlanRow, project_total_tonnes
from waste_planner.strategy.impact import estimate_diversion_impact, note_only
from waste_planner.taxonomy.stream_catalog import default_intended_outcomes
from waste_planner.taxonomy.waste_taxonomy import (
    HandlingMode,
    OutcomeLabel,
    Significance,
)

_SLUG_RE = re.compile(r"[^a-z0-9]+")

_NOTE_ALLOCATE = "Including these improves the accuracy of tonnes and diversion %."
_NOTE_FACILITY = (
    "Needed for compliant reporting; choose a facility that accepts this stream."
)
_NOTE_OUTCOME = "Accurate outcomes drive diversion % and facility reporting."
_NOTE_CONVERSIONS = (
    "Add a density (kg/m3) or thickness (m) so these items can be converted to tonnes."
)


def slugify(*parts: str) -> str:
    """``slugify("set-facility", "Plasterboard / GIB")`` -> ``"set-facility-plasterboard-gib"``."""
    text = "-".join(p for p in parts if p)
    return _SLUG_RE.sub("-", text.lower()).strip("-")


# ── Rules ─────────────────────────────────────────────────────────────────────

def _allocate_rule(
    aggregation: AggregationResult, planning: PlanningConfig
) -> list[Recommendation]:
    count = aggregation.unallocated_count
    if count == 0:
        return []
    noun = "item" if count == 1 else "items"
    return [
        Recommendation(
            rec_id=slugify("allocate-to-mixed"),
            priority=1,
            category="stream_setup",
            title=f"Allocate {count} unassigned forecast {noun}",
            description=(
                f"{count} forecast {noun} have no waste stream. Allocate them to "
                f"'{planning.mixed_stream_key}' so their mass is counted."
            ),
            stream_name=planning.mixed_stream_key,
            apply_action=AllocateToMixedAction(payload=AllocateToMixedPayload()),
            estimated_impact=note_only(_NOTE_ALLOCATE),
        )
    ]


def _facility_rule(rows: list[StreamPlanRow]) -> list[Recommendation]:
    recs: list[Recommendation] = []
    for row in rows:
        if row.has_destination:
            continue
        action: Optional[SetFacilityAction] = None
        if row.recommended_facility_id:
            distance = (
                f" ({row.recommended_distance_km:.1f} km)"
                if row.recommended_distance_km is not None
                else ""
            )
            description = (
                f"Nearest facility accepting {row.stream_name}: "
                f"{row.recommended_facility_name}{distance}."
            )
            action = SetFacilityAction(
                payload=SetFacilityPayload(
                    stream_name=row.stream_name,
                    facility_id=row.recommended_facility_id,
                    partner_id=row.recommended_partner_id,
                )
            )
        else:
            description = (
                f"No catalog facility accepts {row.stream_name}. "
                "Set a custom destination."
            )
        recs.append(
            Recommendation(
                rec_id=slugify("set-facility", row.stream_name),
                priority=2,
                category="facility_optimisation",
                title=f"Assign a destination for {row.stream_name}",
                description=description,
                stream_name=row.stream_name,
                apply_action=action,
                estimated_impact=note_only(_NOTE_FACILITY),
            )
        )
    return recs


def _outcome_rule(rows: list[StreamPlanRow], planning: PlanningConfig) -> list[Recommendation]:
    recs: list[Recommendation] = []
    for row in rows:
        if row.outcome_label != OutcomeLabel.UNKNOWN:
            continue
        outcomes = default_intended_outcomes(row.stream_name, fallback=planning.default_outcome)
        recs.append(
            Recommendation(
                rec_id=slugify("set-outcome", row.stream_name),
                priority=3,
                category="outcome",
                title=f"Set an intended outcome for {row.stream_name}",
                description=f"Suggested outcome: {', '.join(outcomes)}.",
                stream_name=row.stream_name,
                apply_action=SetOutcomeAction(
                    payload=SetOutcomePayload(
                        stream_name=row.stream_name, intended_outcomes=outcomes
                    )
                ),
                estimated_impact=note_only(_NOTE_OUTCOME),
            )
        )
    return recs


def _create_stream_rule(
    project: Project, document: PlanDocument, aggregation: AggregationResult
) -> list[Recommendation]:
    planned = set(document.stream_names())
    wanted = {s.strip() for s in project.selected_streams if s.strip()}
    wanted |= set(aggregation.stream_totals)
    recs: list[Recommendation] = []
    for stream in sorted(wanted - planned):
        kg = aggregation.stream_kg(stream)
        recs.append(
            Recommendation(
                rec_id=slugify("create-stream", stream),
                priority=4,
                category="stream_setup",
                title=f"Add a plan for {stream}",
                description=(
                    f"{stream} has {kg / 1000.0:.2f} t forecast but no plan entry."
                    if kg
                    else f"{stream} is selected for the project but has no plan entry."
                ),
                stream_name=stream,
                apply_action=CreateStreamAction(payload=StreamPayload(stream_name=stream)),
            )
        )
    return recs


def _separation_rule(
    rows: list[StreamPlanRow], planning: PlanningConfig, total_tonnes: float
) -> list[Recommendation]:
    recs: list[Recommendation] = []
    for row in rows:
        if (
            row.stream_name == planning.mixed_stream_key
            or row.significance != Significance.MAJOR
            or not row.outcome_label.is_diverted
            or row.recommended_handling != HandlingMode.SEPARATED
            or row.handling_mode == HandlingMode.SEPARATED
        ):
            continue
        recs.append(
            Recommendation(
                rec_id=slugify("mark-stream-separate", row.stream_name),
                priority=5,
                category="source_separation",
                title=f"Separate {row.stream_name} on site",
                description=(
                    f"{row.total_tonnes:.2f} t of {row.stream_name} is planned as mixed. "
                    "A dedicated bin keeps it out of landfill."
                ),
                stream_name=row.stream_name,
                apply_action=MarkStreamSeparateAction(
                    payload=StreamPayload(stream_name=row.stream_name)
                ),
                estimated_impact=estimate_diversion_impact(row.total_tonnes, total_tonnes),
            )
        )
    return recs


def _data_quality_rule(aggregation: AggregationResult) -> list[Recommendation]:
    count = aggregation.conversion_required_count
    if count == 0:
        return []
    return [
        Recommendation(
            rec_id=slugify("data-quality-conversion"),
            priority=6,
            category="data_quality",
            title=f"{count} forecast item(s) need a conversion factor",
            description=(
                "These items are measured by length or volume and no density or "
                "kg-per-metre factor is available, so their mass is excluded."
            ),
            estimated_impact=note_only(_NOTE_CONVERSIONS),
        )
    ]


# ── Entry point ───────────────────────────────────────────────────────────────

def build_recommendations(
    project: Project,
    document: PlanDocument,
    rows: list[StreamPlanRow],
    aggregation: AggregationResult,
    planning: PlanningConfig,
) -> list[Recommendation]:
    """All recommendations for the current state, sorted by (priority, stream)."""
    recs = (
        _allocate_rule(aggregation, planning)
        + _facility_rule(rows)
        + _outcome_rule(rows, planning)
        + _create_stream_rule(project, document, aggregation)
        + _separation_rule(rows, planning, project_total_tonnes(rows, aggregation))
        + _data_quality_rule(aggregation)
    )
    return sorted(recs, key=lambda r: (r.priority, r.stream_name or "", r.rec_id))
