"""
Plan document models.

A project's plan document is the human-authored half of the planning state:
which streams were chosen, how each is handled onsite, its intended
outcomes and its destination. Derived quantities (stream totals, tonnes,
diversion %) are never stored here; they are recomputed from forecast items
on every read.

Both models are frozen. Mutations go through ``PlanDocument.with_plan`` /
``model_copy`` so apply actions stay pure ``(doc, payload) -> doc``
functions that never touch unrelated entries.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from waste_planner.taxonomy.waste_taxonomy import DestinationMode, HandlingMode


class WasteStreamPlan(BaseModel):
    """Plan for one stream within a project's plan document.

    Attributes:
        category: Stream name; unique within a document.
        handling_mode: ``mixed`` or ``separated``.
        intended_outcomes: Waste hierarchy terms; empty means unknown.
        destination_mode: ``facility`` (catalog) or ``custom`` (free text).
        facility_id / partner_id: Catalog destination when in facility mode.
        custom_destination_name / custom_destination_address: Custom mode.
        manual_qty_tonnes: Tonnes entered directly on the plan, added to
            the forecast total for the stream.
        notes: Free text.
    """

    model_config = ConfigDict(frozen=True)

    category: str
    handling_mode: HandlingMode = HandlingMode.MIXED
    intended_outcomes: list[str] = []
    destination_mode: DestinationMode = DestinationMode.FACILITY
    facility_id: Optional[str] = None
    partner_id: Optional[str] = None
    custom_destination_name: Optional[str] = None
    custom_destination_address: Optional[str] = None
    manual_qty_tonnes: Optional[float] = None
    notes: Optional[str] = None

    @field_validator("category")
    @classmethod
    def validate_category(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Stream plan category must be non-empty.")
        return v

    @field_validator("manual_qty_tonnes")
    @classmethod
    def validate_manual_tonnes(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and (not math.isfinite(v) or v < 0):
            raise ValueError(f"manual_qty_tonnes must be a finite number >= 0, got {v}.")
        return v

    @field_validator(
        "facility_id", "partner_id", "custom_destination_name", "custom_destination_address"
    )
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        v = v.strip()
        return v or None

    @property
    def has_destination(self) -> bool:
        if self.destination_mode == DestinationMode.CUSTOM:
            return bool(self.custom_destination_name or self.custom_destination_address)
        return self.facility_id is not None


class PlanDocument(BaseModel):
    """The per-project plan document.

    Unknown top-level sections are preserved (``extra="allow"``) so a
    round trip through the engine never drops data another screen wrote.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    waste_stream_plans: list[WasteStreamPlan] = []
    monitoring: dict[str, Any] = {}
    site_controls: dict[str, Any] = {}
    responsibilities: list[dict[str, Any]] = []
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_unique_categories(self) -> "PlanDocument":
        seen: set[str] = set()
        for plan in self.waste_stream_plans:
            if plan.category in seen:
                raise ValueError(
                    f"Duplicate stream plan category '{plan.category}' in plan document."
                )
            seen.add(plan.category)
        return self

    def stream_names(self) -> list[str]:
        return [p.category for p in self.waste_stream_plans]

    def get_plan(self, stream_name: str) -> Optional[WasteStreamPlan]:
        """Return the plan whose category equals ``stream_name`` (trimmed)."""
        wanted = stream_name.strip()
        for plan in self.waste_stream_plans:
            if plan.category == wanted:
                return plan
        return None

    def with_plan(self, plan: WasteStreamPlan) -> "PlanDocument":
        """Return a copy with ``plan`` replacing its category's entry, or appended.

        Entry order is preserved; the replaced entry keeps its position.
        """
        plans = list(self.waste_stream_plans)
        for idx, existing in enumerate(plans):
            if existing.category == plan.category:
                plans[idx] = plan
                break
        else:
            plans.append(plan)
        return self.model_copy(update={"waste_stream_plans": plans})

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


@dataclass
class PlanDocumentRecord:
    """One persisted ``plan_documents`` row.

    Attributes:
        doc_id: Row primary key.
        project_id: Owning project.
        document: Parsed plan document.
        revision: Save counter, incremented on every update.
        created_at: Row creation time; the latest row per project wins.
        updated_at: Last in-place update of this row.
    """

    doc_id: int
    project_id: str
    document: PlanDocument
    revision: int
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
