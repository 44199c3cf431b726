"""
Tests for plan document persistence.

What we test
------------
- First save inserts revision 1; later saves update the latest row in place.
- ``append_version`` keeps the previous row as untouched history.
- The latest row wins by creation time.
- ``expected_revision`` rejects stale writes; without it the last writer wins
  and the stored document is always one of the written documents, whole.
"""

from __future__ import annotations

import pytest

from waste_planner.db.repositories.plan_repo import PlanDocumentRepository
from waste_planner.errors import StaleRevisionError
from waste_planner.models.plan import PlanDocument, WasteStreamPlan


def _doc(*streams: str, notes: str | None = None) -> PlanDocument:
    return PlanDocument(
        waste_stream_plans=[WasteStreamPlan(category=s) for s in streams],
        notes=notes,
    )


class TestSave:
    def test_first_save_inserts(self, in_memory_db, sample_project):
        repo = PlanDocumentRepository(in_memory_db)
        record = repo.save("p-1", _doc("Metals"))
        assert record.revision == 1
        assert record.document.stream_names() == ["Metals"]

    def test_second_save_updates_in_place(self, in_memory_db, sample_project):
        repo = PlanDocumentRepository(in_memory_db)
        first = repo.save("p-1", _doc("Metals"))
        second = repo.save("p-1", _doc("Metals", "Cardboard"))
        assert second.doc_id == first.doc_id
        assert second.revision == 2
        assert len(repo.list_history("p-1")) == 1

    def test_get_latest_none_when_empty(self, in_memory_db, sample_project):
        assert PlanDocumentRepository(in_memory_db).get_latest("p-1") is None

    def test_extra_sections_round_trip(self, in_memory_db, sample_project):
        repo = PlanDocumentRepository(in_memory_db)
        doc = PlanDocument.model_validate(
            {"waste_stream_plans": [], "training": {"induction": True}}
        )
        repo.save("p-1", doc)
        stored = repo.get_latest("p-1").document
        assert stored.model_dump()["training"] == {"induction": True}


class TestAppendVersion:
    def test_latest_is_newest_row(self, in_memory_db, sample_project):
        repo = PlanDocumentRepository(in_memory_db)
        repo.append_version("p-1", _doc("Metals"))
        repo.append_version("p-1", _doc("Glass"))
        latest = repo.get_latest("p-1")
        assert latest.document.stream_names() == ["Glass"]
        assert latest.revision == 2

    def test_history_is_untouched(self, in_memory_db, sample_project):
        repo = PlanDocumentRepository(in_memory_db)
        repo.append_version("p-1", _doc("Metals"))
        repo.append_version("p-1", _doc("Glass"))
        repo.save("p-1", _doc("Glass", "Cardboard"))

        history = repo.list_history("p-1")
        assert len(history) == 2
        assert history[1].document.stream_names() == ["Metals"]
        assert history[1].revision == 1


class TestConcurrency:
    def test_expected_revision_match_saves(self, in_memory_db, sample_project):
        repo = PlanDocumentRepository(in_memory_db)
        repo.save("p-1", _doc("Metals"), expected_revision=0)
        record = repo.save("p-1", _doc("Glass"), expected_revision=1)
        assert record.revision == 2

    def test_stale_revision_rejected(self, in_memory_db, sample_project):
        repo = PlanDocumentRepository(in_memory_db)
        repo.save("p-1", _doc("Metals"))
        repo.save("p-1", _doc("Glass"))
        with pytest.raises(StaleRevisionError) as excinfo:
            repo.save("p-1", _doc("Cardboard"), expected_revision=1)
        assert excinfo.value.actual == 2
        assert repo.get_latest("p-1").document.stream_names() == ["Glass"]

    def test_last_writer_wins_without_token(self, in_memory_db, sample_project):
        """Two tabs read revision 1 and both save: the second document wins whole."""
        repo = PlanDocumentRepository(in_memory_db)
        repo.save("p-1", _doc("Metals"))

        tab_a = repo.get_latest("p-1").document.with_plan(WasteStreamPlan(category="Glass"))
        tab_b = repo.get_latest("p-1").document.with_plan(WasteStreamPlan(category="Cardboard"))
        repo.save("p-1", tab_a)
        repo.save("p-1", tab_b)

        latest = repo.get_latest("p-1")
        assert latest.document == tab_b
        assert latest.revision == 3
