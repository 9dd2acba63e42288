"""The ``ads_optimization_v1`` contract stored inside an experiment scope.

The contract collects what an optimization run said about itself
(``baseline_ref``, ``forecast``, ``ai_run_meta``, ``evaluation_plan``) and
the review lifecycle artifacts (``proposal``, ``review_patch``,
``final_plan``). Unknown keys are preserved; malformed known keys are
dropped rather than rejected.
"""

from __future__ import annotations

import copy
import math
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Mapping

CONTRACT_KEY = "ads_optimization_v1"

WORKFLOW_MODES = frozenset({"manual", "api"})
FORECAST_DIRECTIONS = frozenset({"up", "down", "flat", "uncertain"})

_AI_RUN_TEXT_FIELDS = ("model", "prompt_template_id", "started_at", "completed_at")


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _finite(value: Any) -> float | None:
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


def unique_strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    out: list[str] = []
    for entry in value:
        text = _text(entry)
        if text and text not in out:
            out.append(text)
    return out


def _baseline_ref(value: Any) -> dict[str, Any] | None:
    if not isinstance(value, dict):
        return None
    through = _text(value.get("data_available_through"))
    if not through:
        return None
    return {**value, "data_available_through": through}


def _directional_kpis(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    rows = []
    for entry in value:
        if not isinstance(entry, dict):
            continue
        kpi = _text(entry.get("kpi"))
        direction = (_text(entry.get("direction")) or "").lower()
        if not kpi or direction not in FORECAST_DIRECTIONS:
            continue
        row = {**entry, "kpi": kpi, "direction": direction}
        note = _text(entry.get("note"))
        if note:
            row["note"] = note
        else:
            row.pop("note", None)
        rows.append(row)
    return rows


def _forecast(value: Any) -> dict[str, Any] | None:
    if not isinstance(value, dict):
        return None
    forecast = dict(value)
    for key in ("directional_kpis", "window_days", "confidence", "assumptions"):
        forecast.pop(key, None)

    kpis = _directional_kpis(value.get("directional_kpis"))
    if kpis:
        forecast["directional_kpis"] = kpis
    window_days = _finite(value.get("window_days"))
    if window_days is not None and window_days >= 0:
        forecast["window_days"] = math.floor(window_days)
    confidence = _finite(value.get("confidence"))
    if confidence is not None and 0 <= confidence <= 1:
        forecast["confidence"] = confidence
    assumptions = unique_strings(value.get("assumptions"))
    if assumptions:
        forecast["assumptions"] = assumptions
    return forecast or None


def _ai_run_meta(value: Any, default_workflow_mode: bool) -> dict[str, Any] | None:
    if not isinstance(value, dict):
        return {"workflow_mode": "manual"} if default_workflow_mode else None
    mode = (_text(value.get("workflow_mode")) or "").lower()
    if mode not in WORKFLOW_MODES:
        if not default_workflow_mode:
            return None
        mode = "manual"
    meta = {**value, "workflow_mode": mode}
    for key in _AI_RUN_TEXT_FIELDS:
        text = _text(value.get(key))
        if text:
            meta[key] = text
        else:
            meta.pop(key, None)
    return meta


def normalize_contract(
    value: Any, *, default_workflow_mode: bool = False
) -> dict[str, Any] | None:
    """Normalize a raw contract object; None when nothing usable remains."""
    if not isinstance(value, dict):
        return None
    contract = dict(value)
    parsed = {
        "baseline_ref": _baseline_ref(value.get("baseline_ref")),
        "forecast": _forecast(value.get("forecast")),
        "ai_run_meta": _ai_run_meta(value.get("ai_run_meta"), default_workflow_mode),
        "evaluation_plan": value.get("evaluation_plan")
        if isinstance(value.get("evaluation_plan"), dict)
        else None,
    }
    for key, parsed_value in parsed.items():
        if parsed_value is None:
            contract.pop(key, None)
        else:
            contract[key] = parsed_value
    return contract or None


def contract_of(scope: Mapping[str, Any] | None) -> dict[str, Any]:
    """The raw contract object of a scope, or an empty dict."""
    container = (scope or {}).get("contract")
    contract = container.get(CONTRACT_KEY) if isinstance(container, dict) else None
    return contract if isinstance(contract, dict) else {}


def normalize_scope(
    scope: Mapping[str, Any] | None, *, default_workflow_mode: bool = True
) -> dict[str, Any]:
    """Deep copy of ``scope`` with its contract normalized in place."""
    out = copy.deepcopy(dict(scope or {}))
    container = out.get("contract") if isinstance(out.get("contract"), dict) else {}
    parsed = normalize_contract(
        container.get(CONTRACT_KEY), default_workflow_mode=default_workflow_mode
    )
    if parsed is not None:
        out["contract"] = {**container, CONTRACT_KEY: parsed}
    return out


def merge_contract(
    scope: Mapping[str, Any] | None, patch: Mapping[str, Any], *, status: str | None = None
) -> dict[str, Any]:
    """Return a new scope with ``patch`` shallow-merged into the contract."""
    out = copy.deepcopy(dict(scope or {}))
    container = out.get("contract") if isinstance(out.get("contract"), dict) else {}
    out["contract"] = {**container, CONTRACT_KEY: {**contract_of(out), **patch}}
    if status is not None:
        out["status"] = status
    return out


def snapshot_contract(contract: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """The run-describing part of a contract, copied into evaluation metrics."""
    if not contract:
        return None
    snapshot = {
        "baseline_ref": contract.get("baseline_ref"),
        "forecast": contract.get("forecast"),
        "ai_run_meta": contract.get("ai_run_meta"),
    }
    if not any(snapshot.values()):
        return None
    return snapshot


def forecast_kpi_names(contract: Mapping[str, Any] | None) -> list[str]:
    forecast = (contract or {}).get("forecast")
    if not isinstance(forecast, dict):
        return []
    return [row["kpi"] for row in _directional_kpis(forecast.get("directional_kpis"))]
