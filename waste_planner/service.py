"""
Planning service: the operations exposed upward to the CLI (and any other
presentation layer).

    recompute_aggregation(project_id)             -> AggregationResult
    get_strategy(project_id)                      -> WasteStrategy
    apply_recommendation(project_id, rec_id | action) -> ApplyResult
    recompute_distances(project_id)               -> DistanceResult
    run_optimiser(project_id)                     -> OptimiserReport
    apply_optimiser(project_id, assignments)      -> OptimiserApplyResult
    get_checklist(project_id)                     -> PlanningChecklist
    create_item / update_item / delete_item       -> synced AggregationResult

The service owns no state beyond the connection. Each forecast item write
is committed before the aggregate sync runs, so a crash between the two
leaves the item durable and the next recompute converges.

Usage::

    with get_connection(config.database.db_path) as conn:
        service = PlanningService(conn, config)
        strategy = service.get_strategy("p-1")
        service.apply_recommendation("p-1", recommendation_id="allocate-to-mixed")
"""

from __future__ import annotations

import logging
import sqlite3
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from waste_planner.config import AppConfig
from waste_planner.db.repositories.catalog_repo import FacilityRepository, PartnerRepository
from waste_planner.db.repositories.conversion_repo import ConversionFactorRepository
from waste_planner.db.repositories.forecast_item_repo import ForecastItemRepository
from waste_planner.db.repositories.plan_repo import PlanDocumentRepository
from waste_planner.db.repositories.project_repo import ProjectRepository
from waste_planner.distances.cache import DistanceCache, DistanceResult
from waste_planner.errors import NotFoundError, UpstreamUnavailable, ValidationError
from waste_planner.forecast.aggregator import AggregationResult, ForecastAggregator
from waste_planner.maps.google_client import GoogleMapsClient, MapsClient
from waste_planner.models.catalog import ConversionFactor, Facility, Project
from waste_planner.models.forecast_item import ForecastItem
from waste_planner.models.plan import PlanDocument, PlanDocumentRecord
from waste_planner.models.recommendation import AllocateToMixedAction, parse_apply_action
from waste_planner.strategy.actions import ActionOutcome, apply_action, ensure_stream_exists
from waste_planner.strategy.builder import WasteStrategy, build_strategy, build_stream_rows
from waste_planner.strategy.checklist import PlanningChecklist, build_checklist
from waste_planner.strategy.optimiser import (
    OptimiserReport,
    ScoreWeights,
    apply_assignments,
    build_optimiser_report,
)
from waste_planner.taxonomy.stream_catalog import suggest_stream_for_material

logger = logging.getLogger(__name__)

_RAW_ITEM_FIELDS = (
    "item_name", "quantity", "unit", "excess_percent", "kg_per_m",
    "density_kg_m3", "waste_stream_key", "material_type",
)


@dataclass
class ApplyResult:
    """Outcome of ``apply_recommendation``.

    Attributes:
        outcome:        What the action did to the plan document.
        record:         Stored plan row after the apply (``None`` if nothing
                        has ever been stored for the project).
        strategy:       Strategy rebuilt from the new state.
        items_reassigned: Forecast items moved by ``allocate_to_mixed``.
    """

    outcome: ActionOutcome
    record: Optional[PlanDocumentRecord]
    strategy: WasteStrategy
    items_reassigned: int = 0

    @property
    def changed(self) -> bool:
        return self.outcome.changed or self.items_reassigned > 0


@dataclass
class OptimiserApplyResult:
    """Outcome of ``apply_optimiser``.

    Attributes:
        applied: Streams pointed at their chosen facility.
        skipped: Streams with no plan entry.
        record:  Stored plan row after the apply.
        changed: Whether a new plan revision was written.
    """

    applied: list[str]
    skipped: list[str]
    record: Optional[PlanDocumentRecord]
    changed: bool = False


@dataclass
class _PlanningState:
    project: Project
    document: PlanDocument
    record: Optional[PlanDocumentRecord]
    aggregation: AggregationResult
    distances: DistanceResult
    facilities: list[Facility]


def _validate(model: Any, data: dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(str(exc)) from exc


class PlanningService:
    """Facade over repositories, aggregator, distance cache and strategy.

    Args:
        conn: Open connection. The service commits after each mutation.
        config: Application config (planning rules, maps settings).
        maps_client: Routing capability. When omitted, a Google client is
            built on first use if an API key is configured; otherwise only
            cached distances are served.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        config: AppConfig,
        maps_client: Optional[MapsClient] = None,
    ) -> None:
        self.conn = conn
        self.config = config
        self._maps_client = maps_client
        self.projects = ProjectRepository(conn)
        self.items = ForecastItemRepository(conn)
        self.plans = PlanDocumentRepository(conn)
        self.facilities = FacilityRepository(conn)
        self.factors = ConversionFactorRepository(conn)

    # ── Helpers ────────────────────────────────────────────────────────────────

    @property
    def maps_client(self) -> Optional[MapsClient]:
        if self._maps_client is None and self.config.maps.api_key:
            try:
                self._maps_client = GoogleMapsClient.from_config(self.config.maps)
            except UpstreamUnavailable as exc:
                logger.warning("Maps client unavailable: %s", exc)
        return self._maps_client

    def _require_project(self, project_id: str) -> Project:
        project = self.projects.get(project_id)
        if project is None:
            raise NotFoundError("project", project_id)
        return project

    def _distance_cache(self) -> DistanceCache:
        return DistanceCache(
            self.conn, self.maps_client, batch_size=self.config.maps.batch_size
        )

    def _latest_document(self, project_id: str) -> tuple[PlanDocument, Optional[PlanDocumentRecord]]:
        record = self.plans.get_latest(project_id)
        return (record.document if record else PlanDocument()), record

    # ── Projects ───────────────────────────────────────────────────────────────

    def create_project(self, data: dict[str, Any]) -> Project:
        """Validate and upsert a project (full replace of its row)."""
        project = _validate(Project, data)
        partner_id = project.primary_partner_id
        if partner_id and PartnerRepository(self.conn).get(partner_id) is None:
            raise NotFoundError("partner", partner_id)
        self.projects.upsert(project)
        self.conn.commit()
        logger.info("Saved project %s", project.project_id)
        return project

    # ── Aggregation ────────────────────────────────────────────────────────────

    def recompute_aggregation(self, project_id: str) -> AggregationResult:
        self._require_project(project_id)
        result = ForecastAggregator(self.conn).recompute(project_id)
        self.conn.commit()
        return result

    # ── Forecast items ─────────────────────────────────────────────────────────

    def create_item(self, project_id: str, data: dict[str, Any]) -> tuple[ForecastItem, AggregationResult]:
        """Validate and insert an item, then sync the project's aggregate.

        An item with a ``material_type`` but no stream is allocated to the
        suggested stream for that material.

        Raises:
            NotFoundError: Unknown project.
            ValidationError: Malformed item fields (nothing is written).
        """
        project = self._require_project(project_id)
        raw = {k: v for k, v in data.items() if k in _RAW_ITEM_FIELDS}
        if not raw.get("waste_stream_key") and raw.get("material_type"):
            raw["waste_stream_key"] = suggest_stream_for_material(
                raw["material_type"], project.selected_streams or None
            )
        item = _validate(
            ForecastItem,
            {**raw, "item_id": data.get("item_id") or uuid.uuid4().hex, "project_id": project_id},
        )
        if self.items.get(item.item_id) is not None:
            raise ValidationError(f"Forecast item {item.item_id!r} already exists.")
        self.items.insert(item)
        self.conn.commit()
        logger.info("Created forecast item %s on project %s", item.item_id, project_id)
        result = self.recompute_aggregation(project_id)
        return self.items.get(item.item_id) or item, result

    def update_item(self, item_id: str, changes: dict[str, Any]) -> tuple[ForecastItem, AggregationResult]:
        """Apply raw-field ``changes`` to an item and sync.

        Computed cache fields in ``changes`` are ignored.
        """
        current = self.items.get(item_id)
        if current is None:
            raise NotFoundError("forecast item", item_id)
        merged = current.model_dump(include=set(_RAW_ITEM_FIELDS))
        merged.update({k: v for k, v in changes.items() if k in _RAW_ITEM_FIELDS})
        item = _validate(
            ForecastItem,
            {**merged, "item_id": current.item_id, "project_id": current.project_id},
        )
        if not self.items.update(item):
            raise NotFoundError("forecast item", item_id)
        self.conn.commit()
        result = self.recompute_aggregation(current.project_id)
        return self.items.get(item_id) or item, result

    def delete_item(self, item_id: str) -> AggregationResult:
        current = self.items.get(item_id)
        if current is None:
            raise NotFoundError("forecast item", item_id)
        self.items.delete(item_id)
        self.conn.commit()
        logger.info("Deleted forecast item %s", item_id)
        return self.recompute_aggregation(current.project_id)

    # ── Conversion factors ─────────────────────────────────────────────────────

    def add_conversion_factor(self, data: dict[str, Any]) -> int:
        """Insert an active factor. A second active factor for the same
        (stream, from_unit, to_unit) is rejected with ``ValidationError``."""
        factor = _validate(ConversionFactor, data)
        factor_id = self.factors.insert(factor)
        self.conn.commit()
        return factor_id

    # ── Plan documents ─────────────────────────────────────────────────────────

    def get_plan_document(self, project_id: str) -> PlanDocument:
        self._require_project(project_id)
        return self._latest_document(project_id)[0]

    def save_plan_document(
        self,
        project_id: str,
        document: Union[PlanDocument, dict[str, Any]],
        expected_revision: Optional[int] = None,
    ) -> PlanDocumentRecord:
        """Replace the project's plan document (whole-document write)."""
        self._require_project(project_id)
        if not isinstance(document, PlanDocument):
            document = _validate(PlanDocument, document)
        record = self.plans.save(project_id, document, expected_revision=expected_revision)
        self.conn.commit()
        return record

    def seed_default_plans(self, project_id: str) -> PlanDocumentRecord:
        """Ensure the project has plans for its selected streams, padded from
        ``planning.fallback_streams`` up to ``planning.min_streams``."""
        project = self._require_project(project_id)
        planning = self.config.planning
        document, record = self._latest_document(project_id)
        before = document

        for stream in project.selected_streams:
            if stream.strip():
                document = ensure_stream_exists(document, stream)
        for stream in planning.fallback_streams:
            if len(document.waste_stream_plans) >= planning.min_streams:
                break
            document = ensure_stream_exists(document, stream)

        if record is not None and document == before:
            return record
        return self.save_plan_document(project_id, document)

    # ── Distances ──────────────────────────────────────────────────────────────

    def get_distances(self, project_id: str) -> DistanceResult:
        result = self._distance_cache().get_distances(project_id)
        self.conn.commit()
        return result

    def recompute_distances(
        self, project_id: str, facility_ids: Optional[list[str]] = None
    ) -> DistanceResult:
        result = self._distance_cache().recompute(project_id, facility_ids)
        self.conn.commit()
        return result

    # ── Strategy ───────────────────────────────────────────────────────────────

    def _planning_state(self, project_id: str) -> _PlanningState:
        project = self._require_project(project_id)
        aggregation = self.recompute_aggregation(project_id)
        document, record = self._latest_document(project_id)
        distances = self.get_distances(project_id)
        # Reload: geocoding may have filled in the site coordinates.
        project = self.projects.get(project_id) or project
        return _PlanningState(
            project=project,
            document=document,
            record=record,
            aggregation=aggregation,
            distances=distances,
            facilities=self.facilities.list_all(),
        )

    def get_strategy(self, project_id: str) -> WasteStrategy:
        """Build the current strategy: aggregate, load plan, resolve distances."""
        state = self._planning_state(project_id)
        return build_strategy(
            state.project,
            state.document,
            state.aggregation,
            state.facilities,
            state.distances,
            self.config.planning,
            revision=state.record.revision if state.record else None,
        )

    def apply_recommendation(
        self,
        project_id: str,
        recommendation_id: Optional[str] = None,
        action: Optional[Union[dict[str, Any], Any]] = None,
        expected_revision: Optional[int] = None,
    ) -> ApplyResult:
        """Apply a recommendation (by id) or a raw action to the plan.

        Load latest document → mutate only the targeted entry → persist
        (when changed) → rebuild the strategy.

        Raises:
            NotFoundError: Unknown project, or no current recommendation
                with ``recommendation_id``.
            ValidationError: Neither/both of id and action given, a
                malformed action, or an advisory recommendation.
            StaleRevisionError: ``expected_revision`` no longer matches.
        """
        self._require_project(project_id)
        if (recommendation_id is None) == (action is None):
            raise ValidationError("Provide exactly one of recommendation_id or action.")

        if recommendation_id is not None:
            rec = self.get_strategy(project_id).get_recommendation(recommendation_id)
            if rec is None:
                raise NotFoundError("recommendation", recommendation_id)
            if rec.apply_action is None:
                raise ValidationError(f"Recommendation {recommendation_id!r} is advisory only.")
            parsed = rec.apply_action
        elif isinstance(action, dict):
            try:
                parsed = parse_apply_action(action)
            except PydanticValidationError as exc:
                raise ValidationError(str(exc)) from exc
        else:
            parsed = action

        planning = self.config.planning
        document, record = self._latest_document(project_id)
        outcome = apply_action(
            document,
            parsed,
            mixed_stream_key=planning.mixed_stream_key,
            default_outcome=planning.default_outcome,
        )

        if outcome.changed:
            record = self.plans.save(project_id, outcome.document, expected_revision=expected_revision)
            self.conn.commit()

        reassigned = 0
        if isinstance(parsed, AllocateToMixedAction) and outcome.stream_name:
            reassigned = self.items.assign_stream_to_unallocated(project_id, outcome.stream_name)
            self.conn.commit()

        logger.info(
            "Applied %s on project %s (stream=%s, changed=%s, ignored=%s, reassigned=%d)",
            parsed.type, project_id, outcome.stream_name, outcome.changed,
            outcome.ignored, reassigned,
        )
        return ApplyResult(
            outcome=outcome,
            record=record,
            strategy=self.get_strategy(project_id),
            items_reassigned=reassigned,
        )

    # ── Optimiser and checklist ────────────────────────────────────────────────

    def run_optimiser(
        self, project_id: str, weights: Optional[ScoreWeights] = None
    ) -> OptimiserReport:
        """Score every accepting facility for each stream that carries tonnes."""
        state = self._planning_state(project_id)
        rows = build_stream_rows(
            state.project, state.document, state.aggregation,
            state.facilities, state.distances, self.config.planning,
        )
        options = self.config.optimiser
        return build_optimiser_report(
            project_id,
            rows,
            state.facilities,
            state.distances,
            weights or ScoreWeights.from_config(options),
            options.max_alternatives,
        )

    def apply_optimiser(
        self,
        project_id: str,
        assignments: Optional[dict[str, str]] = None,
        expected_revision: Optional[int] = None,
    ) -> OptimiserApplyResult:
        """Assign facilities to streams and save one new plan revision.

        Args:
            project_id:        Target project.
            assignments:       ``{stream_name: facility_id}``. When omitted,
                               every optimiser pick that is not already
                               assigned is applied.
            expected_revision: Refuse to save if the plan moved past this.

        Raises:
            NotFoundError: Unknown project or facility.
            ValidationError: A facility does not accept its stream.
            StaleRevisionError: ``expected_revision`` no longer matches.
        """
        self._require_project(project_id)
        if assignments is None:
            report = self.run_optimiser(project_id)
            assignments = {
                r.stream_name: r.recommended.facility_id
                for r in report.results
                if r.recommended is not None and not r.is_current
            }

        by_id = {f.facility_id: f for f in self.facilities.list_all()}
        for stream_name, facility_id in assignments.items():
            facility = by_id.get(facility_id)
            if facility is None:
                raise NotFoundError("facility", facility_id)
            if not facility.accepts(stream_name):
                raise ValidationError(
                    f"Facility {facility_id!r} does not accept stream {stream_name!r}."
                )

        document, record = self._latest_document(project_id)
        outcome = apply_assignments(document, assignments, by_id)
        changed = outcome.document != document
        if changed:
            record = self.plans.save(
                project_id, outcome.document, expected_revision=expected_revision
            )
            self.conn.commit()

        logger.info(
            "Optimiser assigned %d stream(s) on project %s (skipped=%d, changed=%s)",
            len(outcome.applied), project_id, len(outcome.skipped), changed,
        )
        return OptimiserApplyResult(
            applied=outcome.applied, skipped=outcome.skipped, record=record, changed=changed
        )

    def get_checklist(self, project_id: str) -> PlanningChecklist:
        """Readiness checklist for the current plan state."""
        strategy = self.get_strategy(project_id)
        project = self._require_project(project_id)
        document, _ = self._latest_document(project_id)
        return build_checklist(project, document, strategy, self.config.planning.mixed_stream_key)

    # ── Catalog ────────────────────────────────────────────────────────────────

    def seed_catalog(self, seed_path: Optional[Path] = None) -> tuple[int, int, int]:
        from waste_planner.catalog.seed_loader import seed_catalog

        counts = seed_catalog(self.conn, seed_path)
        self.conn.commit()
        return counts
