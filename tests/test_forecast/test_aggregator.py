"""
Tests for the forecast aggregator.

What we test
------------
- Per-stream totals only count items with a determinable mass.
- Unallocated / conversion-required / non-mass items are counted, not summed.
- recompute is a full recompute: running it twice gives identical results.
- Only items whose cached fields changed are written back.
"""

from __future__ import annotations

import pytest

from conftest import make_item
from waste_planner.db.repositories.forecast_item_repo import ForecastItemRepository
from waste_planner.forecast.aggregator import ForecastAggregator, aggregate_items
from waste_planner.forecast.conversion import ConversionResolver


@pytest.fixture
def items():
    return [
        make_item("i-1", waste_stream_key="Metals", unit="m3", quantity=10),
        make_item("i-2", waste_stream_key="Metals", unit="kg", quantity=100),
        make_item("i-3", waste_stream_key="Mixed C&D", unit="tonne", quantity=2, excess_percent=10),
        make_item("i-4", unit="kg", quantity=5),
        make_item("i-5", waste_stream_key="Unlisted", unit="m3", quantity=1),
        make_item("i-6", waste_stream_key="Ceiling tiles", unit="m2", quantity=40),
    ]


class TestAggregateItems:
    def test_stream_totals(self, items):
        result = aggregate_items("p-1", items, ConversionResolver())
        assert result.stream_totals == {
            "Metals": pytest.approx(730.0),
            "Mixed C&D": pytest.approx(2200.0),
        }
        assert list(result.stream_totals) == ["Metals", "Mixed C&D"]

    def test_counts(self, items):
        result = aggregate_items("p-1", items, ConversionResolver())
        assert result.unallocated_count == 1
        assert result.conversion_required_count == 1
        assert result.non_mass_count == 1
        assert result.included_count == 3

    def test_total_kg_and_lookup(self, items):
        result = aggregate_items("p-1", items, ConversionResolver())
        assert result.total_kg == pytest.approx(2930.0)
        assert result.stream_kg(" Metals ") == pytest.approx(730.0)
        assert result.stream_kg("Glass") == 0.0

    def test_empty_project(self):
        result = aggregate_items("p-1", [], ConversionResolver())
        assert result.stream_totals == {}
        assert result.total_kg == 0

    def test_to_dict(self, items):
        data = aggregate_items("p-1", items, ConversionResolver()).to_dict()
        assert data["unallocated_count"] == 1
        assert "items" not in data


class TestForecastAggregator:
    def _store(self, conn, items):
        repo = ForecastItemRepository(conn)
        for item in items:
            repo.insert(item)
        return repo

    def test_recompute_persists_cache(self, in_memory_db, sample_project, items):
        repo = self._store(in_memory_db, items)
        ForecastAggregator(in_memory_db).recompute("p-1")
        assert repo.get("i-1").computed_waste_kg == pytest.approx(630.0)
        assert repo.get("i-5").computed_waste_kg is None
        assert repo.get("i-5").computed_waste_qty == pytest.approx(1.0)

    def test_recompute_is_idempotent(self, in_memory_db, sample_project, items):
        self._store(in_memory_db, items)
        aggregator = ForecastAggregator(in_memory_db)
        first = aggregator.recompute("p-1")
        second = aggregator.recompute("p-1")
        assert first.to_dict() == second.to_dict()

    def test_only_changed_rows_written(self, in_memory_db, sample_project, items, monkeypatch):
        repo = self._store(in_memory_db, items)
        aggregator = ForecastAggregator(in_memory_db)
        aggregator.recompute("p-1")

        written: list[list[str]] = []
        original = ForecastItemRepository.update_computed

        def spy(self, batch):
            written.append([i.item_id for i in batch])
            return original(self, batch)

        monkeypatch.setattr(ForecastItemRepository, "update_computed", spy)
        repo.update(make_item("i-2", waste_stream_key="Metals", unit="kg", quantity=150))
        aggregator.recompute("p-1")
        assert written == [["i-2"]]

    def test_factor_edit_picked_up_by_next_recompute(self, in_memory_db, sample_project):
        from waste_planner.db.repositories.conversion_repo import ConversionFactorRepository
        from waste_planner.models.catalog import ConversionFactor

        self._store(in_memory_db, [make_item(waste_stream_key="Metals", unit="m3", quantity=1)])
        aggregator = ForecastAggregator(in_memory_db)
        assert aggregator.recompute("p-1").stream_totals["Metals"] == pytest.approx(63.0)

        ConversionFactorRepository(in_memory_db).insert(
            ConversionFactor(stream_name="Metals", from_unit="m3", factor=100)
        )
        assert aggregator.recompute("p-1").stream_totals["Metals"] == pytest.approx(100.0)
