"""API request/response schemas (separate from domain models)."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Responses ---


class ExperimentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    experiment_id: str
    name: str
    objective: str
    hypothesis: str | None
    status: str
    product_asin: str | None
    marketplace: str
    evaluation_lag_days: int | None
    evaluation_window_days: int | None
    primary_metrics: Any = None
    guardrails: Any = None
    scope_version: int
    created_at: str
    updated_at: str


class ExperimentListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    experiments: list[ExperimentResponse]
    total: int


class ExperimentCreatedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    experiment: ExperimentResponse


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool
    status: str
    version: str
    db_connected: bool


class ConfigCheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    account_id: str
    marketplace: str
    db_path: str
    require_complete_packs: bool
    chunk_days: int


class EventResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    id: int
    event_type: str
    event_date: str
    occurred_at: str
    run_id: str | None = None
    phase_id: int | None = None


class MarkUploadedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    run_id: str
    effective_date: str | None
    uploaded_at: str | None


class KivItemResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    item: dict[str, Any]


class KivListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    asin: str
    open: list[dict[str, Any]]
    recently_closed: list[dict[str, Any]]
    items: list[dict[str, Any]]


class DriverIntentListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    asin: str
    intents: list[dict[str, Any]]


class DriverIntentResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    intent: dict[str, Any]


class DeletedResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True
    deleted: bool


# --- Requests ---


class ExperimentCreateRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    objective: str = ""
    product_asin: str | None = None
    hypothesis: str | None = None
    evaluation_lag_days: int | None = Field(default=None, ge=0)
    evaluation_window_days: int | None = Field(default=None, ge=1)
    primary_metrics: Any = None
    guardrails: Any = None
    scope: dict[str, Any] = Field(default_factory=dict)


class ScopeUpdateRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    scope: dict[str, Any]
    expected_version: int | None = None


class KivCreateRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = Field(min_length=1)
    details: str | None = None
    tags: list[str] = Field(default_factory=list)
    priority: int | None = None
    due_date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")


class KivUpdateRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str | None = Field(default=None, pattern=r"^(open|done|dismissed)$")
    resolution_notes: str | None = None
    title: str | None = None
    details: str | None = None
    tags: list[str] | None = None
    priority: int | None = None
    due_date: str | None = Field(default=None, pattern=r"^\d{4}-\d{2}-\d{2}$")


class DriverIntentRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    channel: str = Field(pattern=r"^(SP|SB|SD|sp|sb|sd)$")
    campaign_id: str = Field(min_length=1)
    intent: str = Field(min_length=1)
    is_driver: bool = True
    notes: str | None = None
    constraints: dict[str, Any] | None = None
