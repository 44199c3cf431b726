"""
Forecast aggregator / sync.

Every sync is a full recompute: each item's computed fields are re-derived
from its raw fields and the per-stream totals are summed from scratch.
Nothing is accumulated incrementally, so item create, update, delete and an
explicit recompute all converge on the same result for the same items, and
re-running after a crash is always safe.

The result is never written into the plan document. The document keeps
only human-authored structure; totals are derived on each read.

Usage::

    aggregator = ForecastAggregator(conn)
    result = aggregator.recompute("p-1")
    result.stream_totals          # {"Metals": 630.0, "Mixed C&D": 5500.0}
    result.unallocated_count      # 2
"""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Optional

from waste_planner.db.repositories.catalog_repo import WasteStreamRepository
from waste_planner.db.repositories.conversion_repo import ConversionFactorRepository
from waste_planner.db.repositories.forecast_item_repo import ForecastItemRepository
from waste_planner.forecast.conversion import ConversionResolver
from waste_planner.forecast.normalizer import normalize_item
from waste_planner.models.forecast_item import ForecastItem

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    """Per-project rollup of forecast item masses.

    Attributes:
        project_id: Project the rollup belongs to.
        stream_totals: Stream label → total kg, sorted by label. Only items
            with a non-null mass contribute.
        unallocated_count: Items with no ``waste_stream_key``.
        conversion_required_count: Allocated items in m / m3 / L whose
            factor was unavailable.
        non_mass_count: Allocated items in m² or count (never mass).
        included_count: Items that contributed a mass to a stream.
        items: The normalized items, in storage order.
    """

    project_id: str
    stream_totals: dict[str, float] = field(default_factory=dict)
    unallocated_count: int = 0
    conversion_required_count: int = 0
    non_mass_count: int = 0
    included_count: int = 0
    items: list[ForecastItem] = field(default_factory=list)

    @property
    def total_kg(self) -> float:
        return sum(self.stream_totals.values())

    def stream_kg(self, stream_name: str) -> float:
        return self.stream_totals.get(stream_name.strip(), 0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "project_id": self.project_id,
            "stream_totals": dict(self.stream_totals),
            "unallocated_count": self.unallocated_count,
            "conversion_required_count": self.conversion_required_count,
            "non_mass_count": self.non_mass_count,
            "included_count": self.included_count,
            "total_kg": self.total_kg,
        }


def aggregate_items(
    project_id: str,
    items: list[ForecastItem],
    resolver: ConversionResolver,
) -> AggregationResult:
    """Normalize ``items`` and roll them up per stream. Pure apart from resolver lookups."""
    totals: dict[str, float] = {}
    result = AggregationResult(project_id=project_id)

    for raw in items:
        item = normalize_item(raw, resolver.factors_for_item(raw))
        result.items.append(item)

        if not item.is_allocated:
            result.unallocated_count += 1
            continue

        kg = item.computed_waste_kg
        if kg is None:
            if item.unit.needs_factor:
                result.conversion_required_count += 1
            else:
                result.non_mass_count += 1
            continue

        key = item.waste_stream_key
        assert key is not None
        totals[key] = totals.get(key, 0.0) + kg
        result.included_count += 1

    result.stream_totals = {k: totals[k] for k in sorted(totals)}
    return result


class ForecastAggregator:
    """Recompute and persist forecast item caches for a project.

    Args:
        conn: Open connection (caller owns the transaction).
        resolver: Conversion resolver; a fresh DB-backed one is built per
            ``recompute`` call when omitted, so factor edits are picked up.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        resolver: Optional[ConversionResolver] = None,
    ) -> None:
        self.conn = conn
        self.items = ForecastItemRepository(conn)
        self._resolver = resolver

    def _make_resolver(self) -> ConversionResolver:
        if self._resolver is not None:
            return self._resolver
        return ConversionResolver(
            factor_repo=ConversionFactorRepository(self.conn),
            stream_repo=WasteStreamRepository(self.conn),
        )

    def recompute(self, project_id: str) -> AggregationResult:
        """Re-derive every item of ``project_id`` and return the rollup.

        Only items whose cached fields actually changed are written back.
        """
        stored = self.items.list_for_project(project_id)
        result = aggregate_items(project_id, stored, self._make_resolver())

        changed = [
            new
            for old, new in zip(stored, result.items)
            if (old.computed_waste_qty, old.computed_waste_kg)
            != (new.computed_waste_qty, new.computed_waste_kg)
        ]
        self.items.update_computed(changed)

        logger.info(
            "Aggregated project %s: %d item(s), %d stream(s), %d unallocated, "
            "%d need conversion, %d cache row(s) refreshed",
            project_id,
            len(stored),
            len(result.stream_totals),
            result.unallocated_count,
            result.conversion_required_count,
            len(changed),
        )
        return result
