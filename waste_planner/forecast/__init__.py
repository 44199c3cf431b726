"""
Forecast layer: turns raw forecast items into masses and per-stream totals.

Modules
-------
normalizer : compute_waste_qty() + compute_waste_kg() + normalize_item()
             — pure functions, no DB or I/O.
conversion : ConversionResolver — item override → active ConversionFactor
             → stream catalog default.
aggregator : aggregate_items() (pure) + ForecastAggregator (loads items,
             persists cached computed fields, returns AggregationResult).
"""
