"""
Conversion resolver: which density / kg-per-metre applies to an item.

Precedence, highest first:
  1. item-level override (``ForecastItem.density_kg_m3`` / ``kg_per_m``)
  2. an active ``ConversionFactor`` row for (stream, m3|m → kg)
  3. the stream catalog default (``waste_streams`` table, then the
     built-in ``STREAM_DEFAULTS``)

"No factor" is a normal outcome (``None``), not an error. Lookups are
memoized per resolver instance, so build one resolver per aggregation run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from waste_planner.db.repositories.catalog_repo import WasteStreamRepository
from waste_planner.db.repositories.conversion_repo import ConversionFactorRepository
from waste_planner.models.forecast_item import ForecastItem
from waste_planner.taxonomy.stream_catalog import get_stream_default

logger = logging.getLogger(__name__)

SOURCE_ITEM = "item_override"
SOURCE_FACTOR = "conversion_factor"
SOURCE_CATALOG = "stream_catalog"
SOURCE_BUILTIN = "builtin_default"


@dataclass(frozen=True)
class ResolvedFactors:
    """Best-known conversion factors for a stream (or item).

    Attributes:
        density_kg_m3: kg per m³, or ``None``.
        kg_per_m: kg per linear metre, or ``None``.
        density_source / kg_per_m_source: Where each value came from.
    """

    density_kg_m3: Optional[float] = None
    kg_per_m: Optional[float] = None
    density_source: Optional[str] = None
    kg_per_m_source: Optional[str] = None


NO_FACTORS = ResolvedFactors()


class ConversionResolver:
    """Resolve conversion factors by stream name.

    Args:
        factor_repo: Source of active ``ConversionFactor`` rows; ``None``
            skips that tier.
        stream_repo: Source of ``waste_streams`` catalog rows; ``None``
            skips that tier.
        use_builtin_defaults: Fall back to ``STREAM_DEFAULTS`` when the
            catalog table has no row for a stream.
    """

    def __init__(
        self,
        factor_repo: Optional[ConversionFactorRepository] = None,
        stream_repo: Optional[WasteStreamRepository] = None,
        use_builtin_defaults: bool = True,
    ) -> None:
        self.factor_repo = factor_repo
        self.stream_repo = stream_repo
        self.use_builtin_defaults = use_builtin_defaults
        self._cache: dict[str, ResolvedFactors] = {}

    def resolve(self, stream_name: Optional[str]) -> ResolvedFactors:
        """Factors for ``stream_name`` ignoring item overrides."""
        if not stream_name or not stream_name.strip():
            return NO_FACTORS
        key = stream_name.strip()
        if key not in self._cache:
            self._cache[key] = self._lookup(key)
        return self._cache[key]

    def factors_for_item(self, item: ForecastItem) -> ResolvedFactors:
        """Factors for ``item``: its overrides win over the stream's values."""
        resolved = self.resolve(item.waste_stream_key)
        if item.density_kg_m3 is not None:
            resolved = replace(
                resolved, density_kg_m3=item.density_kg_m3, density_source=SOURCE_ITEM
            )
        if item.kg_per_m is not None:
            resolved = replace(resolved, kg_per_m=item.kg_per_m, kg_per_m_source=SOURCE_ITEM)
        return resolved

    def _lookup(self, stream_name: str) -> ResolvedFactors:
        density, density_src = self._catalog_value(stream_name, "density")
        per_m, per_m_src = self._catalog_value(stream_name, "kg_per_m")

        if self.factor_repo is not None:
            m3 = self.factor_repo.get_active(stream_name, "m3", "kg")
            if m3 is not None:
                density, density_src = m3.factor, SOURCE_FACTOR
            linear = self.factor_repo.get_active(stream_name, "m", "kg")
            if linear is not None:
                per_m, per_m_src = linear.factor, SOURCE_FACTOR

        if density is None and per_m is None:
            logger.debug("No conversion factors known for stream %r", stream_name)
        return ResolvedFactors(
            density_kg_m3=density,
            kg_per_m=per_m,
            density_source=density_src,
            kg_per_m_source=per_m_src,
        )

    def _catalog_value(
        self, stream_name: str, which: str
    ) -> tuple[Optional[float], Optional[str]]:
        if self.stream_repo is not None:
            entry = self.stream_repo.get(stream_name)
            if entry is not None:
                value = (
                    entry.default_density_kg_m3 if which == "density" else entry.default_kg_per_m
                )
                if value is not None:
                    return value, SOURCE_CATALOG
        if self.use_builtin_defaults:
            default = get_stream_default(stream_name)
            if default is not None:
                value = default.density_kg_m3 if which == "density" else default.kg_per_m
                if value is not None:
                    return value, SOURCE_BUILTIN
        return None, None
