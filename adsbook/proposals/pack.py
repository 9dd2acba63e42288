"""Product-experiment proposal documents (``aph_product_experiment_pack_v1``)."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from adsbook.contract import unique_strings
from adsbook.errors import PackParseError
from adsbook.evidence.dates import parse_date_only
from adsbook.models.plans import GENERATOR_BY_CHANNEL, BulkgenPlan
from adsbook.packs import load_json_document, require_kind, validate_document
from adsbook.review.plans import coerce_number

if TYPE_CHECKING:
    from collections.abc import Mapping

PRODUCT_PACK_KIND = "aph_product_experiment_pack_v1"

FieldKind = Literal["id", "text", "number", "optional_text"]

_COMMON_ACTIONS: dict[str, tuple[tuple[str, FieldKind], ...]] = {
    "update_campaign_budget": (("campaign_id", "id"), ("new_budget", "number")),
    "update_campaign_state": (("campaign_id", "id"), ("new_state", "text")),
    "update_campaign_bidding_strategy": (("campaign_id", "id"), ("new_strategy", "text")),
    "update_ad_group_state": (("ad_group_id", "id"), ("new_state", "text")),
    "update_target_bid": (("target_id", "id"), ("new_bid", "number")),
    "update_target_state": (("target_id", "id"), ("new_state", "text")),
}

# Required fields per action type and channel.
ACTION_FIELDS: dict[str, dict[str, tuple[tuple[str, FieldKind], ...]]] = {
    "SP": {
        **_COMMON_ACTIONS,
        "update_ad_group_default_bid": (("ad_group_id", "id"), ("new_bid", "number")),
        "update_placement_modifier": (
            ("campaign_id", "id"),
            ("placement_code", "text"),
            ("new_pct", "number"),
        ),
    },
    "SB": {
        **_COMMON_ACTIONS,
        "update_ad_group_default_bid": (("ad_group_id", "id"), ("new_default_bid", "number")),
        "update_placement_modifier": (
            ("campaign_id", "id"),
            ("placement_raw", "optional_text"),
            ("placement_code", "optional_text"),
            ("new_pct", "number"),
        ),
    },
}


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    if isinstance(value, str):
        return value.strip() or None
    return None


def normalize_action(
    channel: str, raw: Any, label: str, errors: list[str]
) -> dict[str, Any] | None:
    """Keep the fields the action type needs; append a message per problem to ``errors``."""
    if not isinstance(raw, dict):
        errors.append(f"{label} must be an object")
        return None
    kind = _text(raw.get("type"))
    if kind is None:
        errors.append(f"{label}.type is required")
        return None
    action_fields = ACTION_FIELDS[channel].get(kind)
    if action_fields is None:
        errors.append(f"{label}.type is unsupported for {channel}: {kind}")
        return None

    action: dict[str, Any] = {"type": kind}
    valid = True
    for key, field_kind in action_fields:
        value = raw.get(key)
        if field_kind == "number":
            number = coerce_number(value)
            if number is None:
                errors.append(f"{label}.{key} must be a number")
                valid = False
            else:
                action[key] = number
        elif field_kind == "optional_text":
            if text := _text(value):
                action[key] = text
        else:
            text = _text(value)
            if text is None:
                errors.append(f"{label}.{key} is required")
                valid = False
            else:
                action[key] = text
    return action if valid else None


class ProposedPlan(BaseModel):
    model_config = ConfigDict(frozen=True)

    channel: Literal["SP", "SB"]
    generator: str
    run_id: str = Field(min_length=1)
    notes: str | None = None
    actions: list[dict[str, Any]] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _normalize_actions(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        channel = data.get("channel")
        channel = channel.strip().upper() if isinstance(channel, str) else channel
        out = {
            **data,
            "channel": channel,
            "generator": _text(data.get("generator")),
            "run_id": _text(data.get("run_id")),
            "notes": _text(data.get("notes")),
        }
        actions = data.get("actions")
        if channel not in ACTION_FIELDS or not isinstance(actions, list) or not actions:
            return out

        errors: list[str] = []
        expected = GENERATOR_BY_CHANNEL[channel]
        if out["generator"] != expected:
            errors.append(f"generator must be {expected} for channel {channel}")
        normalized = []
        for index, raw in enumerate(actions):
            action = normalize_action(channel, raw, f"actions[{index}]", errors)
            if action is not None:
                normalized.append(action)
        if errors:
            raise ValueError("; ".join(errors))
        out["actions"] = normalized
        return out

    def to_plan(self) -> BulkgenPlan:
        return BulkgenPlan(
            channel=self.channel,
            generator=GENERATOR_BY_CHANNEL[self.channel],  # type: ignore[arg-type]
            run_id=self.run_id,
            notes=self.notes or None,
            actions=self.actions,
        )


class ManualChangeEntity(BaseModel):
    model_config = ConfigDict(frozen=True)

    entity_type: str = "generic"
    product_id: str | None = None
    campaign_id: str | None = None
    ad_group_id: str | None = None
    target_id: str | None = None
    keyword_id: str | None = None
    note: str | None = None
    extra: Any = None

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        out = {
            key: _text(data.get(key))
            for key in ("product_id", "campaign_id", "ad_group_id", "target_id", "keyword_id")
        }
        if out["product_id"]:
            out["product_id"] = out["product_id"].upper()
        out["note"] = _text(data.get("note"))
        out["extra"] = data.get("extra")
        out["entity_type"] = (
            _text(data.get("entity_type"))
            or ("product" if out["product_id"] else None)
            or ("campaign" if out["campaign_id"] else None)
            or ("target" if out["target_id"] else None)
            or "generic"
        )
        return out


class ManualChange(BaseModel):
    model_config = ConfigDict(frozen=True)

    channel: str = Field(min_length=1)
    change_type: str = Field(min_length=1)
    summary: str = Field(min_length=1)
    why: str | None = None
    entities: list[ManualChangeEntity] = Field(default_factory=list)

    @field_validator("channel", "change_type", "summary", "why", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class ProposedKivItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1)
    details: str | None = None
    tags: list[str] = Field(default_factory=list)
    priority: int | None = None
    due_date: str | None = None

    @field_validator("title", "details", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("tags", mode="before")
    @classmethod
    def _unique_tags(cls, value: Any) -> list[str]:
        return unique_strings(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _integer_priority(cls, value: Any) -> int | None:
        if value is None or value == "":
            return None
        number = coerce_number(value)
        if number is None:
            raise ValueError("priority must be a number")
        return math.floor(number)

    @field_validator("due_date", mode="before")
    @classmethod
    def _date_only(cls, value: Any) -> str | None:
        if value is None or value == "":
            return None
        parsed = parse_date_only(value)
        if parsed is None:
            raise ValueError("due_date must be YYYY-MM-DD")
        return parsed


class ProposalScope(BaseModel):
    """Experiment scope; keys other than the plans and status pass through untouched."""

    model_config = ConfigDict(frozen=True, extra="allow")

    status: str = "planned"
    bulkgen_plans: list[ProposedPlan] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return "planned"
        return value.strip() if isinstance(value, str) else value


class ExperimentProposal(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    objective: str = Field(min_length=1)
    hypothesis: str | None = None
    evaluation_lag_days: int | None = None
    evaluation_window_days: int | None = None
    primary_metrics: Any = None
    guardrails: Any = None
    scope: ProposalScope = Field(default_factory=ProposalScope)

    @field_validator("name", "objective", "hypothesis", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("evaluation_lag_days", "evaluation_window_days", mode="before")
    @classmethod
    def _whole_days(cls, value: Any) -> int | None:
        number = coerce_number(value)
        return None if number is None else math.floor(number)


def _with_product_entity(change: Any, asin: Any) -> Any:
    """Prepend a product entity for the pack ASIN unless the change already names it."""
    if not isinstance(change, dict) or not isinstance(asin, str) or not asin.strip():
        return change
    asin = asin.strip().upper()
    entities = change.get("entities") if isinstance(change.get("entities"), list) else []
    entities = [e for e in entities if isinstance(e, dict)]
    if any((_text(e.get("product_id")) or "").upper() == asin for e in entities):
        return {**change, "entities": entities}
    return {**change, "entities": [{"entity_type": "product", "product_id": asin}, *entities]}


class ProductExperimentPack(BaseModel):
    """A parsed product-experiment proposal; it creates the experiment it describes."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["aph_product_experiment_pack_v1"] = PRODUCT_PACK_KIND
    product_asin: str = Field(min_length=1)
    experiment: ExperimentProposal
    manual_changes: list[ManualChange] = Field(default_factory=list)
    kiv_items: list[ProposedKivItem] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _lift_product(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        product = data.get("product") if isinstance(data.get("product"), dict) else {}
        asin = product.get("asin")
        return {
            "kind": data.get("kind"),
            "product_asin": asin.strip().upper() if isinstance(asin, str) else asin,
            "experiment": data.get("experiment"),
            "manual_changes": [
                _with_product_entity(change, asin) for change in data.get("manual_changes") or []
            ],
            "kiv_items": data.get("kiv_items") or [],
        }

    @property
    def bulkgen_plans(self) -> list[BulkgenPlan]:
        return [plan.to_plan() for plan in self.experiment.scope.bulkgen_plans]

    def scope_extras(self) -> dict[str, Any]:
        """Scope keys other than ``status`` and ``bulkgen_plans``."""
        return dict(self.experiment.scope.model_extra or {})


def parse_product_experiment_pack(
    raw: str | bytes | Mapping[str, Any], expected_asin: str
) -> ProductExperimentPack:
    doc = load_json_document(raw)
    require_kind(doc, PRODUCT_PACK_KIND)
    pack = validate_document(ProductExperimentPack, doc, "Output pack")
    expected = expected_asin.strip().upper()
    if pack.product_asin != expected:
        raise PackParseError(
            f"product.asin ({pack.product_asin}) must match route ASIN ({expected or 'UNKNOWN'}).",
            code="asin_mismatch",
        )
    return pack
