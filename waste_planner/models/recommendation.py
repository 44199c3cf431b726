"""
Recommendation and apply-action models.

Apply actions form a tagged union discriminated on ``type``. Each variant
carries its own typed payload, so a raw action submitted from the CLI or an
API caller is validated into exactly one shape before anything is loaded::

    action = parse_apply_action(
        {"type": "set_facility",
         "payload": {"stream_name": "Metals", "facility_id": "akl-metal-1"}}
    )

Recommendations are derived on every strategy build and never persisted.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


# ── Payloads ──────────────────────────────────────────────────────────────────

class StreamPayload(BaseModel):
    """Payload naming the target stream plan."""

    model_config = ConfigDict(frozen=True)

    stream_name: str

    @field_validator("stream_name")
    @classmethod
    def validate_stream_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("stream_name must be non-empty.")
        return v


class SetFacilityPayload(StreamPayload):
    facility_id: Optional[str] = None
    partner_id: Optional[str] = None


class SetOutcomePayload(StreamPayload):
    intended_outcomes: list[str] = []


class AllocateToMixedPayload(BaseModel):
    """``stream_name`` overrides the configured mixed stream key when given."""

    model_config = ConfigDict(frozen=True)

    stream_name: Optional[str] = None


# ── Actions ───────────────────────────────────────────────────────────────────

class MarkStreamSeparateAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["mark_stream_separate"] = "mark_stream_separate"
    payload: StreamPayload


class SetFacilityAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["set_facility"] = "set_facility"
    payload: SetFacilityPayload


class SetOutcomeAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["set_outcome"] = "set_outcome"
    payload: SetOutcomePayload


class CreateStreamAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["create_stream"] = "create_stream"
    payload: StreamPayload


class AllocateToMixedAction(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["allocate_to_mixed"] = "allocate_to_mixed"
    payload: AllocateToMixedPayload = AllocateToMixedPayload()


ApplyAction = Annotated[
    Union[
        MarkStreamSeparateAction,
        SetFacilityAction,
        SetOutcomeAction,
        CreateStreamAction,
        AllocateToMixedAction,
    ],
    Field(discriminator="type"),
]

_APPLY_ACTION_ADAPTER: TypeAdapter[Any] = TypeAdapter(ApplyAction)


def parse_apply_action(raw: dict[str, Any]) -> Any:
    """Validate a raw ``{"type": ..., "payload": {...}}`` dict into an action.

    Raises:
        pydantic.ValidationError: Unknown ``type`` or malformed payload.
    """
    return _APPLY_ACTION_ADAPTER.validate_python(raw)


# ── Recommendation ────────────────────────────────────────────────────────────

class ImpactEstimate(BaseModel):
    """Indicative effect of acting on a recommendation.

    Ranges are ``(low, high)`` and only present when tonnes move out of
    landfill; data-quality items carry notes only.
    """

    model_config = ConfigDict(frozen=True)

    tonnes_diverted: Optional[float] = None
    diversion_delta_percent: Optional[float] = None
    cost_savings_nzd_range: Optional[tuple[float, float]] = None
    carbon_savings_tco2e_range: Optional[tuple[float, float]] = None
    notes: list[str] = []


class Recommendation(BaseModel):
    """A derived, optionally machine-applicable suggestion.

    Attributes:
        rec_id: Stable slug, e.g. ``"set-facility-metals"``.
        priority: Rule rank; 1 is the most urgent.
        category: Grouping (``data_quality``, ``facility_optimisation``,
            ``outcome``, ``source_separation``, ``stream_setup``).
        title / description: Human text.
        stream_name: Target stream, when the recommendation has one.
        apply_action: Action to apply, or ``None`` for advisory items.
        estimated_impact: Tonnes, cost and carbon effect, when estimable.
    """

    model_config = ConfigDict(frozen=True)

    rec_id: str
    priority: int
    category: str
    title: str
    description: str
    stream_name: Optional[str] = None
    apply_action: Optional[ApplyAction] = None
    estimated_impact: Optional[ImpactEstimate] = None
