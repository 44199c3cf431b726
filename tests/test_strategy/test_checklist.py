"""
Tests for the planning checklist: item statuses, readiness score and the
next best action.
"""

from __future__ import annotations

from conftest import make_facility, make_item, make_project
from waste_planner.config import PlanningConfig
from waste_planner.forecast.aggregator import aggregate_items
from waste_planner.forecast.conversion import ConversionResolver
from waste_planner.models.plan import PlanDocument, WasteStreamPlan
from waste_planner.strategy.builder import build_strategy
from waste_planner.strategy.checklist import (
    CHECKLIST_WEIGHTS,
    ChecklistStatus,
    build_checklist,
)

MIXED = "Mixed C&D"


def _checklist(items, document, project=None):
    project = project or make_project()
    aggregation = aggregate_items("p-1", items, ConversionResolver())
    strategy = build_strategy(
        project, document, aggregation, [make_facility("f-alpha", "Alpha")], None,
        PlanningConfig(),
    )
    return build_checklist(project, document, strategy, MIXED)


def _statuses(checklist):
    return {item.key: item.status for item in checklist.items}


def _mixed_item(item_id="i-1", **overrides):
    data = {"waste_stream_key": MIXED, "unit": "tonne", "quantity": 1}
    data.update(overrides)
    return make_item(item_id, **data)


def test_weights_sum_to_100():
    assert sum(CHECKLIST_WEIGHTS.values()) == 100


class TestChecklist:
    def test_ready_project_scores_100(self):
        doc = PlanDocument(
            waste_stream_plans=[
                WasteStreamPlan(category=MIXED, intended_outcomes=["Landfill"], facility_id="f-alpha")
            ]
        )
        checklist = _checklist([_mixed_item()], doc)
        assert set(_statuses(checklist).values()) == {ChecklistStatus.COMPLETE}
        assert checklist.readiness_score == 100
        assert checklist.next_best_action is None
        assert "export" in checklist.get("export_ready").action.command

    def test_empty_project(self):
        checklist = _checklist([], PlanDocument())
        statuses = _statuses(checklist)
        assert statuses["forecast_allocated"] == ChecklistStatus.COMPLETE
        assert statuses["streams_configured"] == ChecklistStatus.INCOMPLETE
        assert statuses["strategy_generated"] == ChecklistStatus.INCOMPLETE
        assert statuses["export_ready"] == ChecklistStatus.INCOMPLETE
        assert checklist.readiness_score == 65
        assert checklist.next_best_action.command == "waste-planner seed-plans --project p-1"

    def test_all_items_unallocated_is_blocked(self):
        checklist = _checklist([make_item(), make_item("i-2")], PlanDocument())
        item = checklist.get("forecast_allocated")
        assert item.status == ChecklistStatus.BLOCKED
        assert item.count == 2
        assert "allocate-to-mixed" in checklist.next_best_action.command

    def test_some_items_unallocated(self):
        doc = PlanDocument(waste_stream_plans=[WasteStreamPlan(category=MIXED)])
        checklist = _checklist([_mixed_item(), make_item("i-2")], doc)
        item = checklist.get("forecast_allocated")
        assert item.status == ChecklistStatus.INCOMPLETE
        assert item.detail == "1 item(s) unallocated"

    def test_conversion_pending(self):
        doc = PlanDocument(waste_stream_plans=[WasteStreamPlan(category=MIXED)])
        items = [_mixed_item(), make_item("i-2", waste_stream_key="Mystery", unit="m3", quantity=1)]
        checklist = _checklist(items, doc)
        assert checklist.get("conversions_resolved").count == 1

    def test_mixed_stream_required(self):
        doc = PlanDocument(
            waste_stream_plans=[
                WasteStreamPlan(category="Metals", intended_outcomes=["Recycle"], facility_id="f-alpha")
            ]
        )
        checklist = _checklist([], doc)
        assert checklist.get("streams_configured").status == ChecklistStatus.INCOMPLETE
        project = make_project(selected_streams=[MIXED])
        assert _checklist([], doc, project).get("streams_configured").is_complete

    def test_unknown_outcome_and_missing_destination(self):
        doc = PlanDocument(
            waste_stream_plans=[
                WasteStreamPlan(category=MIXED, intended_outcomes=["Compost", "Recycle"]),
            ]
        )
        checklist = _checklist([_mixed_item()], doc)
        outcomes = checklist.get("outcomes_set")
        facilities = checklist.get("facilities_selected")
        assert outcomes.status == ChecklistStatus.INCOMPLETE
        assert outcomes.count == 1
        assert facilities.status == ChecklistStatus.INCOMPLETE
        assert "optimise" in facilities.action.command
        assert checklist.readiness_score == 15 + 15 + 10 + 10 + 10
        assert checklist.next_best_action == outcomes.action

    def test_streams_without_tonnes_do_not_block(self):
        doc = PlanDocument(waste_stream_plans=[WasteStreamPlan(category=MIXED)])
        checklist = _checklist([], doc)
        assert checklist.get("outcomes_set").is_complete
        assert checklist.get("facilities_selected").is_complete

    def test_to_dict(self):
        data = _checklist([], PlanDocument()).to_dict()
        assert data["items"][0]["status"] == "complete"
        assert data["next_best_action"]["label"] == "Seed the default streams"
