"""Evaluation import and listing endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from adsbook.api.deps import ContextDep, DbDep, RawBodyDep
from adsbook.evaluation.importer import EvaluationImporter
from adsbook.evaluation.outcome import extract_evaluation_outcome, outcome_tone

router = APIRouter(prefix="/experiments", tags=["evaluations"])


@router.post("/{experiment_id}/evaluations", status_code=201)
def import_evaluation(
    experiment_id: str,
    raw: RawBodyDep,
    db: DbDep,
    ctx: ContextDep,
) -> dict[str, Any]:
    return EvaluationImporter(db).import_pack(ctx, experiment_id, raw)


@router.get("/{experiment_id}/evaluations")
def list_evaluations(
    experiment_id: str,
    db: DbDep,
    ctx: ContextDep,
) -> dict[str, Any]:
    db.require_experiment(ctx, experiment_id)
    evaluations = []
    for evaluation in db.list_evaluations(experiment_id):
        outcome = extract_evaluation_outcome(evaluation["metrics"])
        evaluations.append({**evaluation, "tone": outcome_tone(outcome["score"])})
    return {"ok": True, "experiment_id": experiment_id, "evaluations": evaluations}
