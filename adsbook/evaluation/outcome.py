"""Outcome score normalization and display tone."""

from __future__ import annotations

import math
from typing import Any, Literal, TypedDict

OutcomeTone = Literal["positive", "mixed", "negative", "neutral"]
OutcomeLabel = Literal["success", "mixed", "fail"]


class EvaluationOutcome(TypedDict):
    score: float | None
    label: OutcomeLabel | None
    summary: str | None
    next_steps: str | None


def _finite(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_outcome_score_percent(score: Any) -> float | None:
    """Scores ≤ 1 are fractions and get scaled to percent; result is clamped to 0..100."""
    value = _finite(score)
    if value is None:
        return None
    if value <= 1:
        value *= 100
    return max(0.0, min(100.0, value))


def outcome_tone(score: Any) -> OutcomeTone:
    normalized = normalize_outcome_score_percent(score)
    if normalized is None:
        return "neutral"
    if normalized >= 70:
        return "positive"
    if normalized >= 40:
        return "mixed"
    return "negative"


def _text(value: Any) -> str | None:
    if isinstance(value, list):
        parts = [str(v).strip() for v in value if str(v).strip()]
        return "\n".join(parts) or None
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def extract_evaluation_outcome(metrics_json: Any) -> EvaluationOutcome:
    metrics = metrics_json if isinstance(metrics_json, dict) else {}
    outcome = metrics.get("outcome") if isinstance(metrics.get("outcome"), dict) else {}
    label = outcome.get("label")
    return EvaluationOutcome(
        score=_finite(outcome.get("score")),
        label=label if label in ("success", "mixed", "fail") else None,
        summary=_text(metrics.get("summary")),
        next_steps=_text(metrics.get("next_steps")),
    )
