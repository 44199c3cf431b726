"""
Strategy layer: per-stream presentation rows, recommendations and apply actions.

Modules
-------
builder     : StreamPlanRow / StrategySummary / WasteStrategy + build_strategy()
              + rank_facilities() — pure, no DB or I/O.
recommender : build_recommendations() — ordered rule scan producing
              Recommendation objects with apply actions.
actions     : apply_action() and the per-variant pure
              (PlanDocument, payload) -> PlanDocument functions.
impact      : cost / carbon savings ranges attached to recommendations.
optimiser   : weighted facility scoring per stream + apply_assignments().
checklist   : build_checklist() — readiness score and next best action.
"""
