"""
Apply actions: pure ``(PlanDocument, payload) -> PlanDocument`` mutations.

Each variant touches exactly one plan entry (or creates it); every other
entry passes through unchanged. All of them are idempotent: applying the
same action twice yields the same document as applying it once.

An action whose target stream has no plan entry raises ``ConflictIgnored``
inside the variant function. ``apply_action`` catches it and returns the
input document unchanged with ``ignored=True``.

``allocate_to_mixed`` only has a document half here (ensure the mixed plan
exists). Reassigning the unallocated forecast items is done by the service,
which owns the database.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from waste_planner.errors import ConflictIgnored
from waste_planner.models.plan import PlanDocument, WasteStreamPlan
from waste_planner.models.recommendation import (
    AllocateToMixedAction,
    AllocateToMixedPayload,
    CreateStreamAction,
    MarkStreamSeparateAction,
    SetFacilityAction,
    SetFacilityPayload,
    SetOutcomeAction,
    SetOutcomePayload,
    StreamPayload,
)
from waste_planner.taxonomy.stream_catalog import MIXED_CD_KEY, default_intended_outcomes
from waste_planner.taxonomy.waste_taxonomy import (
    DestinationMode,
    HandlingMode,
    IntendedOutcome,
    OutcomeLabel,
    outcome_label,
    recognized_outcomes,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActionOutcome:
    """Result of ``apply_action``.

    Attributes:
        document: The resulting document (the input one when nothing changed).
        changed: Whether ``document`` differs from the input.
        ignored: The target stream did not exist.
        stream_name: The stream the action resolved to, if any.
    """

    document: PlanDocument
    changed: bool
    ignored: bool = False
    stream_name: str | None = None


def ensure_stream_exists(document: PlanDocument, stream_name: str) -> PlanDocument:
    """Add a plan for ``stream_name`` with default outcomes unless it exists.

    This is the only operation that adds structure to a plan document.
    """
    name = stream_name.strip()
    if document.get_plan(name) is not None:
        return document
    logger.info("Creating stream plan %r", name)
    return document.with_plan(
        WasteStreamPlan(
            category=name,
            handling_mode=HandlingMode.MIXED,
            intended_outcomes=default_intended_outcomes(name),
            destination_mode=DestinationMode.FACILITY,
        )
    )


def _require_plan(document: PlanDocument, stream_name: str) -> WasteStreamPlan:
    plan = document.get_plan(stream_name)
    if plan is None:
        raise ConflictIgnored(stream_name)
    return plan


def set_facility(document: PlanDocument, payload: SetFacilityPayload) -> PlanDocument:
    plan = _require_plan(document, payload.stream_name)
    return document.with_plan(
        plan.model_copy(
            update={
                "destination_mode": DestinationMode.FACILITY,
                "facility_id": payload.facility_id,
                "partner_id": payload.partner_id if payload.partner_id else plan.partner_id,
                "custom_destination_name": None,
                "custom_destination_address": None,
            }
        )
    )


def set_outcome(
    document: PlanDocument,
    payload: SetOutcomePayload,
    default_outcome: str = IntendedOutcome.RECYCLE.value,
) -> PlanDocument:
    """Set intended outcomes.

    Recognized outcomes in the payload replace the current list. With none
    given, a plan that already has a known outcome label is left alone and an
    unknown one gets the stream's default outcomes (or ``default_outcome``).
    """
    plan = _require_plan(document, payload.stream_name)
    requested = recognized_outcomes(payload.intended_outcomes)
    if requested:
        outcomes = requested
    elif outcome_label(plan.intended_outcomes) != OutcomeLabel.UNKNOWN:
        return document
    else:
        outcomes = default_intended_outcomes(plan.category, fallback=default_outcome)
    return document.with_plan(plan.model_copy(update={"intended_outcomes": outcomes}))


def mark_stream_separate(document: PlanDocument, payload: StreamPayload) -> PlanDocument:
    plan = _require_plan(document, payload.stream_name)
    return document.with_plan(plan.model_copy(update={"handling_mode": HandlingMode.SEPARATED}))


def create_stream(document: PlanDocument, payload: StreamPayload) -> PlanDocument:
    return ensure_stream_exists(document, payload.stream_name)


def allocate_to_mixed(
    document: PlanDocument,
    payload: AllocateToMixedPayload,
    mixed_stream_key: str = MIXED_CD_KEY,
) -> PlanDocument:
    return ensure_stream_exists(document, payload.stream_name or mixed_stream_key)


def apply_action(
    document: PlanDocument,
    action: Any,
    mixed_stream_key: str = MIXED_CD_KEY,
    default_outcome: str = IntendedOutcome.RECYCLE.value,
) -> ActionOutcome:
    """Dispatch ``action`` to its variant function.

    Args:
        document: Current plan document.
        action: A parsed apply action (see ``parse_apply_action``).
        mixed_stream_key: Catch-all stream for ``allocate_to_mixed``.
        default_outcome: Last-resort outcome for ``set_outcome``.
    """
    try:
        if isinstance(action, SetFacilityAction):
            stream = action.payload.stream_name
            result = set_facility(document, action.payload)
        elif isinstance(action, SetOutcomeAction):
            stream = action.payload.stream_name
            result = set_outcome(document, action.payload, default_outcome)
        elif isinstance(action, MarkStreamSeparateAction):
            stream = action.payload.stream_name
            result = mark_stream_separate(document, action.payload)
        elif isinstance(action, CreateStreamAction):
            stream = action.payload.stream_name
            result = create_stream(document, action.payload)
        elif isinstance(action, AllocateToMixedAction):
            stream = action.payload.stream_name or mixed_stream_key
            result = allocate_to_mixed(document, action.payload, mixed_stream_key)
        else:
            raise TypeError(f"Unsupported apply action: {type(action).__name__}")
    except ConflictIgnored as exc:
        logger.info("%s", exc)
        return ActionOutcome(
            document=document, changed=False, ignored=True, stream_name=exc.stream_name
        )

    return ActionOutcome(document=result, changed=result != document, stream_name=stream)
