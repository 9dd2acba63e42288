"""Executable plan parsing, stable action ids and review ranking."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any, Literal

from adsbook.contract import contract_of
from adsbook.models.plans import BulkgenPlan, ProposalActionRef

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

SIGNATURE_KEYS = (
    "campaign_id",
    "ad_group_id",
    "target_id",
    "placement_code",
    "placement_raw",
    "new_budget",
    "new_bid",
    "new_default_bid",
    "new_pct",
    "new_state",
    "new_strategy",
)

ENTITY_KEYS = ("campaign_id", "ad_group_id", "target_id", "placement_code", "placement_raw")

STATE_TYPES = frozenset({"update_campaign_state", "update_target_state"})
NUMERIC_TYPES = frozenset(
    {
        "update_campaign_budget",
        "update_target_bid",
        "update_ad_group_default_bid",
        "update_placement_modifier",
    }
)

ObjectiveMode = Literal["growth", "efficiency", "neutral"]


def clean_text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def coerce_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value) if math.isfinite(value) else None
    if isinstance(value, str) and value.strip():
        try:
            number = float(value)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def _js_string(value: Any) -> str:
    """String form used inside signatures; integral floats render without ``.0``."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def fnv1a32_hex(value: str) -> str:
    """32-bit FNV-1a hash as 8 lowercase hex digits."""
    digest = 0x811C9DC5
    for char in value:
        digest ^= ord(char)
        digest = (digest * 0x01000193) & 0xFFFFFFFF
    return f"{digest:08x}"


def parse_executable_plans(value: Any) -> list[BulkgenPlan]:
    """Keep only well-formed SP/SB plans that have a run id and at least one action."""
    if not isinstance(value, list):
        return []
    plans: list[BulkgenPlan] = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        channel = (clean_text(entry.get("channel")) or "").upper()
        generator = clean_text(entry.get("generator"))
        run_id = clean_text(entry.get("run_id"))
        actions = [dict(a) for a in entry.get("actions") or [] if isinstance(a, dict)]
        if not run_id or not actions:
            continue
        if channel not in ("SP", "SB"):
            continue
        if generator not in ("bulkgen:sp:update", "bulkgen:sb:update"):
            continue
        try:
            plans.append(
                BulkgenPlan(
                    channel=channel,  # type: ignore[arg-type]
                    generator=generator,  # type: ignore[arg-type]
                    run_id=run_id,
                    notes=clean_text(entry.get("notes")),
                    actions=actions,
                )
            )
        except ValueError:
            # generator/channel mismatch
            continue
    return plans


def extract_proposal_plans(scope: Mapping[str, Any] | None) -> list[BulkgenPlan]:
    """Proposal plans from the contract, falling back to the legacy ``scope.bulkgen_plans``."""
    proposal = contract_of(scope).get("proposal")
    if isinstance(proposal, dict):
        plans = parse_executable_plans(proposal.get("bulkgen_plans"))
        if plans:
            return plans
    return parse_executable_plans((scope or {}).get("bulkgen_plans"))


def action_type(action: Mapping[str, Any]) -> str:
    return clean_text(action.get("type")) or "unknown"


def numeric_field_for(channel: str, action: Mapping[str, Any]) -> str | None:
    kind = action_type(action)
    if kind == "update_campaign_budget":
        return "new_budget"
    if kind == "update_target_bid":
        return "new_bid"
    if kind == "update_placement_modifier":
        return "new_pct"
    if kind == "update_ad_group_default_bid":
        return "new_default_bid" if channel == "SB" else "new_bid"
    return None


def text_field_for(action: Mapping[str, Any]) -> str | None:
    if "new_state" in action:
        return "new_state"
    if "new_strategy" in action:
        return "new_strategy"
    kind = action_type(action)
    if kind.endswith("_state"):
        return "new_state"
    if kind == "update_campaign_bidding_strategy":
        return "new_strategy"
    return None


def action_signature(plan: BulkgenPlan, action: Mapping[str, Any]) -> str:
    parts = [plan.channel, plan.generator, plan.run_id, action_type(action)]
    for key in SIGNATURE_KEYS:
        value = action.get(key)
        parts.append(f"{key}={'' if key not in action else _js_string(value)}")
    return "|".join(parts)


def entity_ref_for(action: Mapping[str, Any]) -> str:
    pieces = [f"{key}={value}" for key in ENTITY_KEYS if (value := clean_text(action.get(key)))]
    return " · ".join(pieces) if pieces else "global"


def _summary(channel: str, action: Mapping[str, Any], numeric_field: str | None) -> str:
    if numeric_field is not None:
        value = action.get(numeric_field)
    else:
        value = action.get("new_state", action.get("new_strategy"))
    label = "" if value is None else f" -> {_js_string(value)}"
    return f"{channel} {action_type(action)}{label}"


def build_proposal_action_refs(plans: Iterable[BulkgenPlan]) -> list[ProposalActionRef]:
    """Address every proposal action by a ``change_id`` that is stable across re-reads.

    An id already carried by the action wins; otherwise the id hashes the
    action signature plus its occurrence count, so identical actions in one
    proposal still get distinct ids.
    """
    refs: list[ProposalActionRef] = []
    seen: dict[str, int] = {}
    for plan_index, plan in enumerate(plans):
        for action_index, action in enumerate(plan.actions):
            signature = action_signature(plan, action)
            count = seen.get(signature, 0)
            seen[signature] = count + 1
            existing = (
                clean_text(action.get("change_id"))
                or clean_text(action.get("action_id"))
                or clean_text(action.get("id"))
            )
            change_id = existing or f"chg_{fnv1a32_hex(f'{signature}#{count}')}"
            numeric_field = numeric_field_for(plan.channel, action)
            text_field = None if numeric_field else text_field_for(action)
            refs.append(
                ProposalActionRef(
                    change_id=change_id,
                    channel=plan.channel,
                    generator=plan.generator,
                    run_id=plan.run_id,
                    plan_index=plan_index,
                    action_index=action_index,
                    action_type=action_type(action),
                    entity_ref=entity_ref_for(action),
                    summary=_summary(plan.channel, action, numeric_field),
                    numeric_field=numeric_field,
                    numeric_value=coerce_number(action.get(numeric_field)) if numeric_field else None,
                    text_field=text_field,
                    text_value=clean_text(action.get(text_field)) if text_field else None,
                    action=dict(action),
                )
            )
    return refs


# --- Review ordering ---


def _normalize(value: str) -> str:
    return " ".join(value.strip().lower().split())


def objective_mode(objective: str | None) -> ObjectiveMode:
    text = _normalize(objective or "")
    if not text:
        return "neutral"
    if any(word in text for word in ("grow", "scale", "increase", "expand")):
        return "growth"
    if any(word in text for word in ("acos", "efficien", "profit", "reduce spend", "guardrail")):
        return "efficiency"
    return "neutral"


def _objective_rank(mode: ObjectiveMode, kind: str) -> int:
    if mode == "neutral":
        return 1
    if mode == "growth":
        if kind in NUMERIC_TYPES:
            return 0
        return 2 if kind in STATE_TYPES else 1
    if kind in STATE_TYPES:
        return 0
    if kind in NUMERIC_TYPES - {"update_placement_modifier"}:
        return 1
    return 2


def affected_kpis(kind: str) -> tuple[str, ...]:
    if kind == "update_campaign_budget":
        return ("spend", "sales", "orders")
    if kind == "update_campaign_bidding_strategy":
        return ("acos", "roas", "cpc", "spend")
    if kind in ("update_target_bid", "update_ad_group_default_bid"):
        return ("spend", "cpc", "sales", "orders", "acos", "roas")
    if kind == "update_placement_modifier":
        return ("spend", "sales", "orders", "acos", "roas")
    if kind in STATE_TYPES:
        return ("spend", "sales", "orders")
    return ("spend",)


def _kpi_rank(kind: str, forecast_kpis: list[str]) -> int:
    if not forecast_kpis:
        return 1
    hit = any(metric in kpi for metric in affected_kpis(kind) for kpi in forecast_kpis)
    return 0 if hit else 1


def _risk_rank(kind: str) -> int:
    if kind in STATE_TYPES:
        return 3
    if kind == "update_campaign_bidding_strategy":
        return 2
    if kind in NUMERIC_TYPES:
        return 1
    return 5


def rank_and_sort_proposal_actions(
    refs: Iterable[ProposalActionRef],
    objective: str | None = None,
    forecast_kpis: Iterable[str] | None = None,
) -> list[dict[str, Any]]:
    """Order actions for review: objective fit, KPI fit, lower risk, larger magnitude first."""
    mode = objective_mode(objective)
    kpis = [k for k in (_normalize(str(k)) for k in forecast_kpis or []) if k]
    ranked: list[dict[str, Any]] = []
    for ref in refs:
        ranked.append(
            {
                **ref.model_dump(),
                "review_rank": {
                    "objective_alignment": _objective_rank(mode, ref.action_type),
                    "expected_kpi_movement": _kpi_rank(ref.action_type, kpis),
                    "risk_guardrail": _risk_rank(ref.action_type),
                    "magnitude": abs(ref.numeric_value or 0.0),
                },
            }
        )
    ranked.sort(
        key=lambda r: (
            r["review_rank"]["objective_alignment"],
            r["review_rank"]["expected_kpi_movement"],
            r["review_rank"]["risk_guardrail"],
            -r["review_rank"]["magnitude"],
            r["channel"],
            r["run_id"],
            r["action_index"],
        )
    )
    return ranked
