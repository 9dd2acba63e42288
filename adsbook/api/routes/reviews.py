"""Review patch, finalize and execution hand-off endpoints."""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response

from adsbook.api.deps import ContextDep, DbDep, RawBodyDep
from adsbook.contract import contract_of
from adsbook.filenames import final_plan_filename
from adsbook.review.selection import select_plans_for_execution
from adsbook.review.service import ReviewService

router = APIRouter(prefix="/experiments", tags=["reviews"])


@router.post("/{experiment_id}/review-patch")
def store_review_patch(
    experiment_id: str,
    raw: RawBodyDep,
    db: DbDep,
    ctx: ContextDep,
) -> dict[str, Any]:
    return ReviewService(db).store_review_patch(ctx, experiment_id, raw)


@router.post("/{experiment_id}/finalize")
def finalize_plan(
    experiment_id: str,
    db: DbDep,
    ctx: ContextDep,
) -> dict[str, Any]:
    return ReviewService(db).finalize_plan(ctx, experiment_id)


@router.get("/{experiment_id}/execution-plan")
def get_execution_plan(
    experiment_id: str,
    db: DbDep,
    ctx: ContextDep,
) -> dict[str, Any]:
    exp = db.require_experiment(ctx, experiment_id)
    selection = select_plans_for_execution(exp.scope)
    return {
        "ok": True,
        "experiment_id": experiment_id,
        "source": selection.source,
        "final_plan_pack_id": selection.final_plan_pack_id,
        "bulkgen_plans": [plan.to_document() for plan in selection.plans],
    }


@router.post("/{experiment_id}/execute")
def hand_off_for_execution(
    experiment_id: str,
    db: DbDep,
    ctx: ContextDep,
) -> dict[str, Any]:
    return ReviewService(db).hand_off_for_execution(ctx, experiment_id)


@router.get("/{experiment_id}/final-plan-pack")
def download_final_plan(
    experiment_id: str,
    db: DbDep,
    ctx: ContextDep,
) -> Response:
    exp = db.require_experiment(ctx, experiment_id)
    select_plans_for_execution(exp.scope)
    final_plan = contract_of(exp.scope)["final_plan"]
    return Response(
        content=json.dumps(final_plan, indent=2, ensure_ascii=False) + "\n",
        media_type="application/json",
        headers={
            "Content-Disposition": (
                f'attachment; filename="{final_plan_filename(exp.name, experiment_id)}"'
            )
        },
    )
