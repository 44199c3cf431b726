"""
Tests for conversion factor resolution.

Precedence, highest first: item override, active conversion factor row,
waste_streams catalog row, built-in stream default.
"""

from __future__ import annotations

from conftest import make_item
from waste_planner.db.repositories.catalog_repo import WasteStreamRepository
from waste_planner.db.repositories.conversion_repo import ConversionFactorRepository
from waste_planner.forecast.conversion import (
    NO_FACTORS,
    SOURCE_BUILTIN,
    SOURCE_CATALOG,
    SOURCE_FACTOR,
    SOURCE_ITEM,
    ConversionResolver,
)
from waste_planner.models.catalog import ConversionFactor, WasteStreamEntry


def _resolver(conn, builtin: bool = True) -> ConversionResolver:
    return ConversionResolver(
        factor_repo=ConversionFactorRepository(conn),
        stream_repo=WasteStreamRepository(conn),
        use_builtin_defaults=builtin,
    )


class TestPrecedence:
    def test_builtin_default_used_last(self, in_memory_db):
        resolved = _resolver(in_memory_db).resolve("Metals")
        assert resolved.density_kg_m3 == 63
        assert resolved.density_source == SOURCE_BUILTIN

    def test_catalog_row_beats_builtin(self, in_memory_db):
        WasteStreamRepository(in_memory_db).upsert(
            WasteStreamEntry(stream_name="Metals", default_density_kg_m3=80)
        )
        resolved = _resolver(in_memory_db).resolve("Metals")
        assert (resolved.density_kg_m3, resolved.density_source) == (80, SOURCE_CATALOG)

    def test_active_factor_beats_catalog(self, in_memory_db):
        WasteStreamRepository(in_memory_db).upsert(
            WasteStreamEntry(stream_name="Metals", default_density_kg_m3=80)
        )
        ConversionFactorRepository(in_memory_db).insert(
            ConversionFactor(stream_name="Metals", from_unit="m3", factor=95)
        )
        resolved = _resolver(in_memory_db).resolve("Metals")
        assert (resolved.density_kg_m3, resolved.density_source) == (95, SOURCE_FACTOR)

    def test_inactive_factor_ignored(self, in_memory_db):
        ConversionFactorRepository(in_memory_db).insert(
            ConversionFactor(stream_name="Metals", from_unit="m3", factor=95, is_active=False)
        )
        assert _resolver(in_memory_db).resolve("Metals").density_kg_m3 == 63

    def test_item_override_beats_everything(self, in_memory_db):
        ConversionFactorRepository(in_memory_db).insert(
            ConversionFactor(stream_name="Metals", from_unit="m3", factor=95)
        )
        item = make_item(waste_stream_key="Metals", unit="m3", density_kg_m3=7850)
        resolved = _resolver(in_memory_db).factors_for_item(item)
        assert (resolved.density_kg_m3, resolved.density_source) == (7850, SOURCE_ITEM)

    def test_linear_and_volume_resolved_independently(self, in_memory_db):
        ConversionFactorRepository(in_memory_db).insert(
            ConversionFactor(stream_name="PVC pipes / services", from_unit="m", factor=2.0)
        )
        resolved = _resolver(in_memory_db).resolve("PVC pipes / services")
        assert (resolved.kg_per_m, resolved.kg_per_m_source) == (2.0, SOURCE_FACTOR)
        assert (resolved.density_kg_m3, resolved.density_source) == (140, SOURCE_BUILTIN)


class TestMissingFactors:
    def test_unknown_stream(self, in_memory_db):
        assert _resolver(in_memory_db).resolve("Unobtainium") == NO_FACTORS

    def test_unallocated_item(self, in_memory_db):
        assert _resolver(in_memory_db).factors_for_item(make_item()) == NO_FACTORS

    def test_builtins_can_be_disabled(self, in_memory_db):
        assert _resolver(in_memory_db, builtin=False).resolve("Metals").density_kg_m3 is None

    def test_no_repositories(self):
        assert ConversionResolver().resolve("Glass").density_kg_m3 == 411


def test_lookups_are_memoized(in_memory_db):
    resolver = _resolver(in_memory_db)
    first = resolver.resolve("Metals")
    ConversionFactorRepository(in_memory_db).insert(
        ConversionFactor(stream_name="Metals", from_unit="m3", factor=95)
    )
    assert resolver.resolve(" Metals ") is first
