"""Experiment model and lifecycle status derivation."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ExperimentStatus(StrEnum):
    PLANNED = "planned"
    PROPOSED = "PROPOSED"
    REVIEWED = "REVIEWED"
    FINALIZED = "FINALIZED"
    EXECUTED = "EXECUTED"
    EVALUATED = "EVALUATED"


# Statuses from which the finalized plan may be handed to the bulk-sheet generator.
EXECUTABLE_STATUSES = frozenset(
    {ExperimentStatus.FINALIZED, ExperimentStatus.EXECUTED, ExperimentStatus.EVALUATED}
)

# Statuses that still accept a (new) review patch.
REVIEWABLE_STATUSES = frozenset({ExperimentStatus.PROPOSED, ExperimentStatus.REVIEWED})


def derive_status(scope: dict[str, Any] | None) -> str:
    """Status lives in ``scope.status``; blank or missing means ``planned``."""
    raw = (scope or {}).get("status")
    if not isinstance(raw, str) or not raw.strip():
        return ExperimentStatus.PLANNED.value
    value = raw.strip()
    for status in ExperimentStatus:
        if value.upper() == status.value.upper():
            return status.value
    return value


class Experiment(BaseModel):
    """One advertising experiment; ``scope`` is the mutable JSON document."""

    model_config = ConfigDict(frozen=True)

    experiment_id: str
    account_id: str
    marketplace: str
    name: str
    objective: str = ""
    hypothesis: str | None = None
    evaluation_lag_days: int | None = None
    evaluation_window_days: int | None = None
    primary_metrics: Any = None
    guardrails: Any = None
    scope: dict[str, Any] = Field(default_factory=dict)
    scope_version: int = 1
    created_at: str = ""
    updated_at: str = ""

    @property
    def status(self) -> str:
        return derive_status(self.scope)

    @property
    def asin(self) -> str | None:
        product_id = self.scope.get("product_id")
        if isinstance(product_id, str) and product_id.strip():
            return product_id.strip().upper()
        return None
