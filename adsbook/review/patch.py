"""Review patch documents: one decision per proposal ``change_id``."""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from adsbook.errors import PackParseError
from adsbook.packs import compact_json, load_json_document, require_kind, validate_document
from adsbook.review.plans import fnv1a32_hex

if TYPE_CHECKING:
    from collections.abc import Mapping

REVIEW_PATCH_KIND = "aph_review_patch_pack_v1"

DecisionMode = Literal["approve", "override", "reject"]

DECISION_ALIASES: dict[str, DecisionMode] = {
    "approve": "approve",
    "accept": "approve",
    "override": "override",
    "modify": "override",
    "reject": "reject",
}


def _clean(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _override_value(data: Mapping[str, Any]) -> Any:
    for key in ("override_value", "override_new_value"):
        if data.get(key) is not None:
            return data[key]
    nested = data.get("override")
    if isinstance(nested, dict) and nested.get("new_value") is not None:
        return nested["new_value"]
    return None


class ReviewDecision(BaseModel):
    model_config = ConfigDict(frozen=True)

    change_id: str = Field(min_length=1)
    decision: DecisionMode
    override_value: float | str | None = None
    note: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out: dict[str, Any] = {
            "change_id": data["change_id"].strip()
            if isinstance(data.get("change_id"), str)
            else data.get("change_id"),
            "decision": data.get("decision"),
            "override_value": _override_value(data),
            "note": _clean(data.get("note")),
        }
        raw = out["decision"]
        if isinstance(raw, str):
            mapped = DECISION_ALIASES.get(raw.strip().lower())
            if mapped is None:
                raise ValueError(
                    f"decision must be one of approve, override, reject (got {raw!r})"
                )
            out["decision"] = mapped
        return out

    @field_validator("override_value")
    @classmethod
    def _finite_number(cls, value: float | str | None) -> float | str | None:
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError("override_value must be a finite number")
        return value


class ReviewPatchPack(BaseModel):
    """A review decision set tagged with the experiment it was authored for.

    Both the full document (``links`` / ``patch`` / ``trace`` sections) and
    the compact form with top-level ``experiment_id`` and ``decisions`` are
    accepted; ``to_document()`` always emits the full form.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["aph_review_patch_pack_v1"] = REVIEW_PATCH_KIND
    pack_version: Literal["v1"] = "v1"
    pack_id: str = Field(min_length=1)
    created_at: str
    experiment_id: str = Field(min_length=1)
    proposal_pack_id: str | None = None
    workflow_mode: Literal["manual", "api"] = "manual"
    model: str | None = None
    notes: str | None = None
    decisions: list[ReviewDecision] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _flatten_sections(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        links = data.get("links") if isinstance(data.get("links"), dict) else {}
        patch = data.get("patch") if isinstance(data.get("patch"), dict) else {}
        trace = data.get("trace") if isinstance(data.get("trace"), dict) else {}

        decisions = patch.get("decisions", data.get("decisions"))
        if not isinstance(decisions, list) or not decisions:
            raise ValueError("patch.decisions must be a non-empty array.")

        out: dict[str, Any] = {
            "kind": data.get("kind"),
            "pack_version": data.get("pack_version") or "v1",
            "pack_id": _clean(data.get("pack_id"))
            or f"patch_{fnv1a32_hex(compact_json(decisions))}",
            "created_at": _clean(data.get("created_at")) or datetime.now(UTC).isoformat(),
            "experiment_id": _clean(links.get("experiment_id"))
            or _clean(data.get("experiment_id")),
            "proposal_pack_id": _clean(links.get("proposal_pack_id"))
            or _clean(data.get("proposal_pack_id")),
            "workflow_mode": (_clean(trace.get("workflow_mode")) or "manual").lower(),
            "model": _clean(trace.get("model")),
            "notes": _clean(patch.get("notes")) or _clean(data.get("notes")),
            "decisions": decisions,
        }
        if out["experiment_id"] is None:
            raise ValueError("links.experiment_id is required.")
        return out

    def to_document(self) -> dict[str, Any]:
        links: dict[str, Any] = {"experiment_id": self.experiment_id}
        if self.proposal_pack_id:
            links["proposal_pack_id"] = self.proposal_pack_id
        trace: dict[str, Any] = {"workflow_mode": self.workflow_mode}
        if self.model:
            trace["model"] = self.model
        patch: dict[str, Any] = {
            "decisions": [d.model_dump(exclude_none=True) for d in self.decisions]
        }
        if self.notes:
            patch["notes"] = self.notes
        return {
            "kind": self.kind,
            "pack_version": self.pack_version,
            "pack_id": self.pack_id,
            "created_at": self.created_at,
            "links": links,
            "trace": trace,
            "patch": patch,
        }


def parse_review_patch_pack(
    raw: str | bytes | Mapping[str, Any], expected_experiment_id: str | None = None
) -> ReviewPatchPack:
    """Parse and shape-check a review patch; raise PackParseError on any problem."""
    doc = load_json_document(raw)
    require_kind(doc, REVIEW_PATCH_KIND)
    pack = validate_document(ReviewPatchPack, doc, "Review patch pack")
    if expected_experiment_id is not None and pack.experiment_id != expected_experiment_id:
        raise PackParseError(
            f"links.experiment_id ({pack.experiment_id}) must match selected experiment "
            f"({expected_experiment_id}).",
            code="experiment_mismatch",
        )
    return pack
