"""Experiment endpoints: list, create, detail, scope edits and proposal import."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from adsbook.api.deps import ContextDep, DbDep, RawBodyDep, SettingsDep
from adsbook.api.schemas import (
    ExperimentCreatedResponse,
    ExperimentCreateRequest,
    ExperimentListResponse,
    ExperimentResponse,
    ScopeUpdateRequest,
)
from adsbook.contract import normalize_scope
from adsbook.detail import build_experiment_detail, experiment_summary
from adsbook.models.experiment import Experiment
from adsbook.proposals.importer import ProposalImporter

router = APIRouter(tags=["experiments"])


def _experiment_to_response(exp: Experiment) -> ExperimentResponse:
    return ExperimentResponse(**experiment_summary(exp))


@router.get("/experiments", response_model=ExperimentListResponse)
def list_experiments(
    db: DbDep,
    ctx: ContextDep,
    status: str | None = None,
) -> ExperimentListResponse:
    experiments = db.list_experiments(ctx, status)
    return ExperimentListResponse(
        experiments=[_experiment_to_response(e) for e in experiments],
        total=len(experiments),
    )


@router.post("/experiments", response_model=ExperimentCreatedResponse, status_code=201)
def create_experiment(
    body: ExperimentCreateRequest,
    db: DbDep,
    ctx: ContextDep,
) -> ExperimentCreatedResponse:
    scope = normalize_scope(body.scope)
    if body.product_asin:
        scope["product_id"] = body.product_asin.strip().upper()
    exp = db.create_experiment(
        ctx,
        name=body.name,
        objective=body.objective,
        hypothesis=body.hypothesis,
        evaluation_lag_days=body.evaluation_lag_days,
        evaluation_window_days=body.evaluation_window_days,
        primary_metrics=body.primary_metrics,
        guardrails=body.guardrails,
        scope=scope,
    )
    return ExperimentCreatedResponse(experiment=_experiment_to_response(exp))


@router.get("/experiments/{experiment_id}")
def get_experiment(
    experiment_id: str,
    db: DbDep,
    ctx: ContextDep,
    settings: SettingsDep,
) -> dict[str, Any]:
    return build_experiment_detail(
        db, ctx, experiment_id, major_limit=settings.timeline_major_limit
    )


@router.put("/experiments/{experiment_id}/scope", response_model=ExperimentCreatedResponse)
def update_scope(
    experiment_id: str,
    body: ScopeUpdateRequest,
    db: DbDep,
    ctx: ContextDep,
) -> ExperimentCreatedResponse:
    exp = db.require_experiment(ctx, experiment_id)
    expected = exp.scope_version if body.expected_version is None else body.expected_version
    updated = db.update_experiment_scope(
        ctx, experiment_id, normalize_scope(body.scope), expected
    )
    return ExperimentCreatedResponse(experiment=_experiment_to_response(updated))


@router.post("/products/{asin}/experiment-pack", status_code=201)
def import_experiment_pack(
    asin: str,
    raw: RawBodyDep,
    db: DbDep,
    ctx: ContextDep,
) -> dict[str, Any]:
    return ProposalImporter(db).import_pack(ctx, asin, raw)
