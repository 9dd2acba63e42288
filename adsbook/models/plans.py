"""Bulk-generation plans, proposal action references and the finalized plan."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Channel = Literal["SP", "SB"]

GENERATOR_BY_CHANNEL: dict[str, str] = {
    "SP": "bulkgen:sp:update",
    "SB": "bulkgen:sb:update",
}


class BulkgenPlan(BaseModel):
    """One executable plan for a single channel and run."""

    model_config = ConfigDict(frozen=True)

    channel: Channel
    generator: Literal["bulkgen:sp:update", "bulkgen:sb:update"]
    run_id: str = Field(min_length=1)
    notes: str | None = None
    actions: list[dict[str, Any]] = Field(default_factory=list)

    @model_validator(mode="after")
    def _generator_matches_channel(self) -> BulkgenPlan:
        expected = GENERATOR_BY_CHANNEL[self.channel]
        if self.generator != expected:
            raise ValueError(f"generator {self.generator} does not match channel {self.channel}")
        return self

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "channel": self.channel,
            "generator": self.generator,
            "run_id": self.run_id,
        }
        if self.notes:
            doc["notes"] = self.notes
        doc["actions"] = [dict(action) for action in self.actions]
        return doc


class ProposalActionRef(BaseModel):
    """A proposal action addressed by a stable ``change_id``."""

    model_config = ConfigDict(frozen=True)

    change_id: str
    channel: Channel
    generator: str
    run_id: str
    plan_index: int
    action_index: int
    action_type: str
    entity_ref: str
    summary: str
    numeric_field: str | None = None
    numeric_value: float | None = None
    text_field: str | None = None
    text_value: str | None = None
    action: dict[str, Any] = Field(default_factory=dict)


class FinalPlanSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    actions_total: int = 0
    approved_actions: int = 0
    overridden_actions: int = 0
    rejected_actions: int = 0


class FinalPlan(BaseModel):
    """The immutable, executable outcome of applying a review patch to a proposal."""

    model_config = ConfigDict(frozen=True)

    pack_id: str
    created_at: str
    source: Literal["review_patch_applied"] = "review_patch_applied"
    review_patch_pack_id: str
    plan_source: str = "scope.contract.ads_optimization_v1.proposal.bulkgen_plans"
    summary: FinalPlanSummary
    warnings: list[str] = Field(default_factory=list)
    bulkgen_plans: list[dict[str, Any]] = Field(default_factory=list)
