"""
Distance layer: project site → facility drive distances.

Modules
-------
cache : DistanceCache.get_distances() / recompute() — geocode once,
        compute only missing facilities in batches, upsert, merge.
"""
