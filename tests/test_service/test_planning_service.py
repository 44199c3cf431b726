"""
End-to-end tests for ``PlanningService`` against in-memory SQLite.

What we test
------------
- Item create / update / delete each re-sync the aggregate.
- The unallocated-item scenario: allocate_to_mixed moves the items and the
  next strategy read shows no unallocated items.
- apply_recommendation by id, by raw action, and its error paths.
- Default plan seeding and stale-revision rejection.
- The facility optimiser report, its apply path and the readiness checklist.
"""

from __future__ import annotations

import pytest

from conftest import FakeMapsClient, make_project
from waste_planner.db.repositories.project_repo import ProjectRepository
from waste_planner.errors import NotFoundError, StaleRevisionError, ValidationError
from waste_planner.service import PlanningService


@pytest.fixture
def service(in_memory_db, app_config, fake_maps, sample_project, seeded_catalog):
    return PlanningService(in_memory_db, app_config, maps_client=fake_maps)


class TestItems:
    def test_create_syncs_aggregate(self, service):
        item, result = service.create_item(
            "p-1", {"item_id": "i-1", "quantity": 2, "unit": "t", "waste_stream_key": "Metals"}
        )
        assert item.computed_waste_kg == pytest.approx(2000.0)
        assert result.stream_totals == {"Metals": pytest.approx(2000.0)}

    def test_create_generates_id(self, service):
        item, _ = service.create_item("p-1", {"quantity": 1, "unit": "kg"})
        assert len(item.item_id) == 32

    def test_create_duplicate_id_rejected(self, service):
        service.create_item("p-1", {"item_id": "i-1", "quantity": 1, "unit": "kg"})
        with pytest.raises(ValidationError):
            service.create_item("p-1", {"item_id": "i-1", "quantity": 1, "unit": "kg"})

    def test_invalid_item_writes_nothing(self, service):
        with pytest.raises(ValidationError):
            service.create_item("p-1", {"item_id": "i-1", "quantity": -1, "unit": "kg"})
        assert service.items.get("i-1") is None

    def test_unknown_unit_rejected(self, service):
        with pytest.raises(ValidationError):
            service.create_item("p-1", {"quantity": 1, "unit": "furlongs"})

    def test_material_type_suggests_stream(self, service):
        item, _ = service.create_item(
            "p-1", {"quantity": 1, "unit": "kg", "material_type": "Timber"}
        )
        assert item.waste_stream_key == "Timber (untreated)"

    def test_update_resyncs(self, service):
        service.create_item(
            "p-1", {"item_id": "i-1", "quantity": 1, "unit": "kg", "waste_stream_key": "Metals"}
        )
        item, result = service.update_item("i-1", {"quantity": 3, "computed_waste_kg": 99})
        assert item.computed_waste_kg == pytest.approx(3.0)
        assert result.stream_totals["Metals"] == pytest.approx(3.0)

    def test_delete_resyncs(self, service):
        service.create_item(
            "p-1", {"item_id": "i-1", "quantity": 1, "unit": "kg", "waste_stream_key": "Metals"}
        )
        result = service.delete_item("i-1")
        assert result.stream_totals == {}

    def test_missing_item(self, service):
        with pytest.raises(NotFoundError):
            service.update_item("ghost", {"quantity": 1})
        with pytest.raises(NotFoundError):
            service.delete_item("ghost")

    def test_unknown_project(self, service):
        with pytest.raises(NotFoundError):
            service.create_item("nope", {"quantity": 1, "unit": "kg"})


class TestAllocateToMixedScenario:
    def test_unallocated_item_moved_to_mixed(self, service):
        service.create_item("p-1", {"item_id": "i-1", "quantity": 5, "unit": "kg"})
        strategy = service.get_strategy("p-1")
        assert strategy.aggregation.unallocated_count == 1
        assert strategy.get_recommendation("allocate-to-mixed") is not None

        result = service.apply_recommendation("p-1", recommendation_id="allocate-to-mixed")

        assert result.items_reassigned == 1
        assert result.changed
        assert service.items.get("i-1").waste_stream_key == "Mixed C&D"
        assert result.strategy.aggregation.unallocated_count == 0
        assert result.strategy.aggregation.stream_totals == {"Mixed C&D": pytest.approx(5.0)}
        assert "Mixed C&D" in service.get_plan_document("p-1").stream_names()
        assert result.strategy.get_recommendation("allocate-to-mixed") is None


class TestApplyRecommendation:
    def test_apply_by_id(self, service):
        service.save_plan_document("p-1", {"waste_stream_plans": [{"category": "Metals"}]})
        result = service.apply_recommendation("p-1", recommendation_id="set-facility-metals")
        plan = service.get_plan_document("p-1").get_plan("Metals")
        assert plan.facility_id == "f-alpha"
        assert result.record.revision == 2
        assert result.strategy.get_recommendation("set-facility-metals") is None

    def test_apply_raw_action(self, service):
        service.save_plan_document("p-1", {"waste_stream_plans": [{"category": "Metals"}]})
        service.apply_recommendation(
            "p-1",
            action={"type": "mark_stream_separate", "payload": {"stream_name": "Metals"}},
        )
        assert service.get_plan_document("p-1").get_plan("Metals").handling_mode == "separated"

    def test_unchanged_apply_does_not_bump_revision(self, service):
        service.save_plan_document("p-1", {"waste_stream_plans": [{"category": "Metals"}]})
        result = service.apply_recommendation(
            "p-1", action={"type": "create_stream", "payload": {"stream_name": "Metals"}}
        )
        assert not result.changed
        assert result.record.revision == 1

    def test_action_on_missing_stream_ignored(self, service):
        result = service.apply_recommendation(
            "p-1",
            action={"type": "set_facility", "payload": {"stream_name": "Glass", "facility_id": "f"}},
        )
        assert result.outcome.ignored
        assert result.record is None

    def test_unknown_recommendation(self, service):
        with pytest.raises(NotFoundError):
            service.apply_recommendation("p-1", recommendation_id="set-facility-unobtainium")

    def test_advisory_recommendation_rejected(self, service):
        service.save_plan_document("p-1", {"waste_stream_plans": [{"category": "Glass"}]})
        with pytest.raises(ValidationError, match="advisory"):
            service.apply_recommendation("p-1", recommendation_id="set-facility-glass")

    def test_malformed_action(self, service):
        with pytest.raises(ValidationError):
            service.apply_recommendation("p-1", action={"type": "explode", "payload": {}})

    @pytest.mark.parametrize("kwargs", [{}, {"recommendation_id": "x", "action": {"type": "create_stream"}}])
    def test_exactly_one_target_required(self, service, kwargs):
        with pytest.raises(ValidationError):
            service.apply_recommendation("p-1", **kwargs)

    def test_stale_revision(self, service):
        service.save_plan_document("p-1", {"waste_stream_plans": [{"category": "Metals"}]})
        service.save_plan_document("p-1", {"waste_stream_plans": [{"category": "Metals"}]})
        with pytest.raises(StaleRevisionError):
            service.apply_recommendation(
                "p-1",
                action={"type": "mark_stream_separate", "payload": {"stream_name": "Metals"}},
                expected_revision=1,
            )


class TestPlanDocuments:
    def test_seed_default_plans(self, service, in_memory_db):
        ProjectRepository(in_memory_db).upsert(make_project(selected_streams=["Glass"]))
        record = service.seed_default_plans("p-1")
        assert record.document.stream_names() == [
            "Glass", "Mixed C&D", "Timber (untreated)", "Metals",
        ]

    def test_seed_is_idempotent(self, service):
        first = service.seed_default_plans("p-1")
        second = service.seed_default_plans("p-1")
        assert second.revision == first.revision

    def test_seed_keeps_existing_entries(self, service):
        service.save_plan_document(
            "p-1",
            {"waste_stream_plans": [{"category": "Metals", "facility_id": "f-metal"}]},
        )
        record = service.seed_default_plans("p-1")
        assert record.document.get_plan("Metals").facility_id == "f-metal"
        assert len(record.document.waste_stream_plans) == 4

    def test_invalid_document_rejected(self, service):
        with pytest.raises(ValidationError):
            service.save_plan_document(
                "p-1", {"waste_stream_plans": [{"category": "A"}, {"category": "A"}]}
            )

    def test_get_document_defaults_to_empty(self, service):
        assert service.get_plan_document("p-1").waste_stream_plans == []


class TestProjectsAndFactors:
    def test_create_project_unknown_partner(self, service):
        with pytest.raises(NotFoundError):
            service.create_project({"project_id": "p-2", "name": "X", "primary_partner_id": "zzz"})

    def test_create_project(self, service):
        project = service.create_project(
            {"project_id": "p-2", "name": "Depot", "primary_partner_id": "enviro"}
        )
        stored = service.projects.get("p-2")
        assert stored.name == project.name
        assert stored.primary_partner_id == "enviro"

    def test_conversion_factor_changes_totals(self, service):
        service.create_item(
            "p-1", {"item_id": "i-1", "quantity": 1, "unit": "m3", "waste_stream_key": "Metals"}
        )
        service.add_conversion_factor({"stream_name": "Metals", "from_unit": "m3", "factor": 80})
        assert service.recompute_aggregation("p-1").stream_totals["Metals"] == pytest.approx(80.0)
        with pytest.raises(ValidationError):
            service.add_conversion_factor({"stream_name": "Metals", "from_unit": "m3", "factor": 90})


class TestDistances:
    def test_strategy_uses_cached_distances(self, service, fake_maps):
        service.save_plan_document("p-1", {"waste_stream_plans": [{"category": "Metals"}]})
        first = service.get_strategy("p-1")
        second = service.get_strategy("p-1")
        assert first.distances_loaded and second.distances_loaded
        assert len(fake_maps.matrix_calls) == 1

    def test_recompute_distances(self, service, fake_maps):
        service.get_distances("p-1")
        result = service.recompute_distances("p-1", ["f-beta"])
        assert result.computed_count == 1
        assert fake_maps.matrix_calls[-1] == ["f-beta"]

    def test_no_client_without_api_key(self, in_memory_db, app_config, sample_project, monkeypatch):
        monkeypatch.delenv("GOOGLE_MAPS_API_KEY", raising=False)
        service = PlanningService(in_memory_db, app_config)
        assert service.maps_client is None
        assert service.get_distances("p-1").distance_map == {}


class TestOptimiser:
    @pytest.fixture
    def service(self, in_memory_db, app_config, sample_project, seeded_catalog):
        maps = FakeMapsClient(distances_m={"f-alpha": 7000, "f-beta": 4000, "f-metal": 1500})
        svc = PlanningService(in_memory_db, app_config, maps_client=maps)
        svc.save_plan_document(
            "p-1",
            {"waste_stream_plans": [
                {"category": "Metals", "intended_outcomes": ["Recycle"]},
                {"category": "Mixed C&D", "intended_outcomes": ["Landfill"]},
            ]},
        )
        svc.create_item("p-1", {"quantity": 2, "unit": "t", "waste_stream_key": "Metals"})
        return svc

    def test_report_covers_streams_with_tonnes(self, service):
        report = service.run_optimiser("p-1")
        assert [r.stream_name for r in report.results] == ["Metals"]
        metals = report.get("Metals")
        assert metals.recommended.facility_id == "f-metal"
        assert [a.facility_id for a in metals.alternatives] == ["f-beta", "f-alpha"]
        assert report.facilities_total == 3
        assert report.distances_cached == 3

    def test_apply_recommended_picks(self, service):
        result = service.apply_optimiser("p-1")
        plan = service.get_plan_document("p-1").get_plan("Metals")
        assert result.applied == ["Metals"]
        assert result.record.revision == 2
        assert plan.facility_id == "f-metal"
        assert plan.partner_id == "enviro"
        assert service.run_optimiser("p-1").get("Metals").is_current

    def test_second_apply_is_noop(self, service):
        service.apply_optimiser("p-1")
        result = service.apply_optimiser("p-1")
        assert result.applied == []
        assert not result.changed
        assert result.record.revision == 2

    def test_explicit_assignment(self, service):
        result = service.apply_optimiser(
            "p-1", {"Mixed C&D": "f-beta", "Timber (untreated)": "f-alpha"}
        )
        assert result.applied == ["Mixed C&D"]
        assert result.skipped == ["Timber (untreated)"]
        assert service.get_plan_document("p-1").get_plan("Mixed C&D").facility_id == "f-beta"

    def test_facility_must_accept_stream(self, service):
        with pytest.raises(ValidationError):
            service.apply_optimiser("p-1", {"Mixed C&D": "f-metal"})
        assert service.get_plan_document("p-1").get_plan("Mixed C&D").facility_id is None

    def test_unknown_facility(self, service):
        with pytest.raises(NotFoundError):
            service.apply_optimiser("p-1", {"Metals": "f-nowhere"})

    def test_stale_revision(self, service):
        with pytest.raises(StaleRevisionError):
            service.apply_optimiser("p-1", {"Metals": "f-alpha"}, expected_revision=0)


class TestChecklist:
    def test_optimiser_completes_facility_selection(self, service):
        service.save_plan_document(
            "p-1",
            {"waste_stream_plans": [{"category": "Mixed C&D", "intended_outcomes": ["Landfill"]}]},
        )
        service.create_item("p-1", {"quantity": 1, "unit": "t", "waste_stream_key": "Mixed C&D"})
        before = service.get_checklist("p-1")
        assert not before.get("facilities_selected").is_complete

        service.apply_optimiser("p-1")
        after = service.get_checklist("p-1")
        assert after.get("facilities_selected").is_complete
        assert after.readiness_score == 100

    def test_unknown_project(self, service):
        with pytest.raises(NotFoundError):
            service.get_checklist("missing")
