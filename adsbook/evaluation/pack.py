"""Evaluation output documents returned by the (human or AI) evaluator."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from adsbook.contract import unique_strings
from adsbook.errors import EvaluationNeedsInputError, PackParseError
from adsbook.packs import load_json_document, require_kind, validate_document

if TYPE_CHECKING:
    from collections.abc import Mapping

EVALUATION_PACK_KIND = "aph_experiment_evaluation_pack_v1"

UUID_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


def _strip(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip() or None
    return value


class EvaluationOutcomeScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0, le=100)
    label: Literal["success", "mixed", "fail"]
    confidence: float = Field(ge=0, le=1)
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def _unique_tags(cls, value: Any) -> list[str]:
        return unique_strings(value)


class KivUpdate(BaseModel):
    model_config = ConfigDict(frozen=True)

    kiv_id: str | None = None
    title: str | None = None
    status: Literal["open", "done", "dismissed"]
    resolution_notes: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _clean(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out = {key: _strip(data.get(key)) for key in ("kiv_id", "title", "resolution_notes")}
        status = data.get("status")
        out["status"] = status.strip().lower() if isinstance(status, str) else status
        return out

    @model_validator(mode="after")
    def _needs_reference(self) -> KivUpdate:
        if not self.kiv_id and not self.title:
            raise ValueError("requires kiv_id or title")
        return self


class EvaluationBody(BaseModel):
    model_config = ConfigDict(frozen=True)

    summary: str = Field(min_length=1)
    outcome: EvaluationOutcomeScore
    why: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
    notes: str | None = None
    mark_complete: bool = True
    kiv_updates: list[KivUpdate] = Field(default_factory=list)

    @field_validator("summary", "notes", mode="before")
    @classmethod
    def _strip_text(cls, value: Any) -> Any:
        return _strip(value)

    @field_validator("why", "next_steps", mode="before")
    @classmethod
    def _unique(cls, value: Any) -> list[str]:
        return unique_strings(value)

    @field_validator("mark_complete", mode="before")
    @classmethod
    def _default_true(cls, value: Any) -> Any:
        return True if value is None else value


class EvaluationPack(BaseModel):
    """A parsed ``aph_experiment_evaluation_pack_v1`` document."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["aph_experiment_evaluation_pack_v1"] = EVALUATION_PACK_KIND
    experiment_id: str
    product_asin: str = Field(min_length=1)
    evaluation: EvaluationBody

    @model_validator(mode="before")
    @classmethod
    def _lift_product(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        product = data.get("product") if isinstance(data.get("product"), dict) else {}
        asin = product.get("asin")
        return {
            "kind": data.get("kind"),
            "experiment_id": _strip(data.get("experiment_id")),
            "product_asin": asin.strip().upper() if isinstance(asin, str) else asin,
            "evaluation": data.get("evaluation"),
        }

    @field_validator("experiment_id")
    @classmethod
    def _uuid(cls, value: str) -> str:
        if not UUID_RE.match(value):
            raise ValueError("experiment_id is required and must be a UUID.")
        return value


def parse_evaluation_pack(
    raw: str | bytes | Mapping[str, Any],
    expected_experiment_id: str | None = None,
    expected_asin: str | None = None,
) -> EvaluationPack:
    """Parse an evaluation document; ``ok: false`` surfaces the evaluator's questions."""
    doc = load_json_document(raw)
    require_kind(doc, EVALUATION_PACK_KIND)
    if doc.get("ok") is False:
        raise EvaluationNeedsInputError(unique_strings(doc.get("questions")))

    pack = validate_document(EvaluationPack, doc, "Evaluation pack")
    if expected_experiment_id and pack.experiment_id != expected_experiment_id:
        raise PackParseError(
            f"experiment_id ({pack.experiment_id}) must match selected experiment "
            f"({expected_experiment_id}).",
            code="experiment_mismatch",
        )
    if expected_asin and pack.product_asin != expected_asin.strip().upper():
        raise PackParseError(
            f"product.asin ({pack.product_asin}) must match expected ASIN "
            f"({expected_asin.strip().upper()}).",
            code="asin_mismatch",
        )
    return pack
