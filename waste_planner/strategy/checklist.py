"""
Planning checklist: how close a project is to an exportable waste plan.

Items (weight toward readiness_score)
-------------------------------------
    forecast_allocated    15   every forecast item has a stream
    conversions_resolved  15   no item is waiting on a conversion factor
    streams_configured    10   at least one stream, and the mixed stream exists
    handling_mode_set     10   every stream with tonnes has a handling mode
    outcomes_set          10   every stream with tonnes has a known outcome label
    facilities_selected   15   every stream with tonnes has a destination
    strategy_generated    10   the strategy has at least one stream row
    export_ready          15   all of the above are complete

readiness_score is the sum of the weights of complete items, clamped to
0..100. next_best_action is the action of the first item that is not
complete.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any, Optional

from waste_planner.models.catalog import Project
from waste_planner.models.plan import PlanDocument
from waste_planner.strategy.builder import WasteStrategy
from waste_planner.taxonomy.waste_taxonomy import OutcomeLabel

CHECKLIST_WEIGHTS: dict[str, int] = {
    "forecast_allocated":   15,
    "conversions_resolved": 15,
    "streams_configured":   10,
    "handling_mode_set":    10,
    "outcomes_set":         10,
    "facilities_selected":  15,
    "strategy_generated":   10,
    "export_ready":         15,
}


class ChecklistStatus(StrEnum):
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"
    BLOCKED = "blocked"


@dataclass(frozen=True)
class ChecklistAction:
    """What to do next: a label plus the CLI command that does it."""

    label:   str
    command: str


@dataclass
class ChecklistItem:
    key:    str
    label:  str
    status: ChecklistStatus
    detail: str
    count:  Optional[int] = None
    action: Optional[ChecklistAction] = None

    @property
    def is_complete(self) -> bool:
        return self.status == ChecklistStatus.COMPLETE


@dataclass
class PlanningChecklist:
    project_id:       str
    readiness_score:  int
    items:            list[ChecklistItem] = field(default_factory=list)
    next_best_action: Optional[ChecklistAction] = None

    def get(self, key: str) -> Optional[ChecklistItem]:
        for item in self.items:
            if item.key == key:
                return item
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "readiness_score": self.readiness_score,
            "items": [
                {**asdict(item), "status": item.status.value} for item in self.items
            ],
            "next_best_action": asdict(self.next_best_action) if self.next_best_action else None,
        }


def _status(complete: bool) -> ChecklistStatus:
    return ChecklistStatus.COMPLETE if complete else ChecklistStatus.INCOMPLETE


def build_checklist(
    project: Project,
    document: PlanDocument,
    strategy: WasteStrategy,
    mixed_stream_key: str,
) -> PlanningChecklist:
    """Derive the checklist from an already built strategy.

    Args:
        project:          The project (for selected streams and its id).
        document:         Latest plan document.
        strategy:         Output of ``build_strategy`` for the same state.
        mixed_stream_key: Catch-all stream that must be present.
    """
    pid = project.project_id
    aggregation = strategy.aggregation
    active = [r for r in strategy.stream_rows if r.total_tonnes > 0]
    items: list[ChecklistItem] = []

    total = len(aggregation.items)
    unallocated = aggregation.unallocated_count
    if unallocated == 0:
        status, detail = ChecklistStatus.COMPLETE, "All items assigned to a stream"
    elif total - unallocated == 0:
        status, detail = ChecklistStatus.BLOCKED, "No items allocated to any stream"
    else:
        status, detail = ChecklistStatus.INCOMPLETE, f"{unallocated} item(s) unallocated"
    items.append(
        ChecklistItem(
            key="forecast_allocated",
            label="Forecast items allocated",
            status=status,
            detail=detail,
            count=unallocated or None,
            action=None if unallocated == 0 else ChecklistAction(
                "Allocate unassigned items",
                f"waste-planner apply --project {pid} --recommendation allocate-to-mixed",
            ),
        )
    )

    pending = aggregation.conversion_required_count
    items.append(
        ChecklistItem(
            key="conversions_resolved",
            label="Unit conversions resolved",
            status=_status(pending == 0),
            detail=(
                "All items have a valid weight conversion"
                if pending == 0
                else f"{pending} item(s) need a conversion factor"
            ),
            count=pending or None,
            action=None if pending == 0 else ChecklistAction(
                "Review the items that need a conversion factor",
                f"waste-planner strategy --project {pid}",
            ),
        )
    )

    selected = {s.strip() for s in project.selected_streams}
    has_mixed = mixed_stream_key in selected or document.get_plan(mixed_stream_key) is not None
    configured = bool(selected or document.waste_stream_plans) and has_mixed
    items.append(
        ChecklistItem(
            key="streams_configured",
            label="Waste streams configured",
            status=_status(configured),
            detail=(
                f"Streams set up including {mixed_stream_key}"
                if configured
                else f"Add at least one stream and make sure {mixed_stream_key} exists"
            ),
            action=None if configured else ChecklistAction(
                "Seed the default streams", f"waste-planner seed-plans --project {pid}"
            ),
        )
    )

    handling_set = all(r.handling_mode is not None for r in active)
    items.append(
        ChecklistItem(
            key="handling_mode_set",
            label="Handling mode set (mixed/separated)",
            status=_status(handling_set),
            detail=(
                "All active streams have handling set"
                if handling_set
                else "Set handling for streams with tonnes"
            ),
        )
    )

    missing_outcome = [r.stream_name for r in active if r.outcome_label == OutcomeLabel.UNKNOWN]
    items.append(
        ChecklistItem(
            key="outcomes_set",
            label="Intended outcomes set",
            status=_status(not missing_outcome),
            detail=(
                "All active streams have outcomes"
                if not missing_outcome
                else "Set intended outcome for: " + ", ".join(missing_outcome)
            ),
            count=len(missing_outcome) or None,
            action=None if not missing_outcome else ChecklistAction(
                "Apply the outcome recommendations", f"waste-planner strategy --project {pid}"
            ),
        )
    )

    missing_destination = [r.stream_name for r in active if not r.has_destination]
    items.append(
        ChecklistItem(
            key="facilities_selected",
            label="Facilities selected for streams",
            status=_status(not missing_destination),
            detail=(
                "All active streams have a destination"
                if not missing_destination
                else "Choose a facility for: " + ", ".join(missing_destination)
            ),
            count=len(missing_destination) or None,
            action=None if not missing_destination else ChecklistAction(
                "Run the facility optimiser", f"waste-planner optimise --project {pid} --apply"
            ),
        )
    )

    generated = bool(strategy.stream_rows)
    items.append(
        ChecklistItem(
            key="strategy_generated",
            label="Strategy generated",
            status=_status(generated),
            detail="Waste strategy computed" if generated else "No stream plans yet",
            action=None if generated else ChecklistAction(
                "Seed stream plans", f"waste-planner seed-plans --project {pid}"
            ),
        )
    )

    ready = all(i.is_complete for i in items)
    items.append(
        ChecklistItem(
            key="export_ready",
            label="Export ready",
            status=_status(ready),
            detail="Ready to export" if ready else "Complete the items above first",
            action=ChecklistAction(
                "Export the waste plan", f"waste-planner export --project {pid}"
            ) if ready else None,
        )
    )

    score = sum(CHECKLIST_WEIGHTS.get(i.key, 0) for i in items if i.is_complete)
    next_item = next((i for i in items if not i.is_complete and i.action), None)
    return PlanningChecklist(
        project_id=pid,
        readiness_score=max(0, min(100, score)),
        items=items,
        next_best_action=next_item.action if next_item else None,
    )
