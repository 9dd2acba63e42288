"""Experiment events, upload markers and rollback packs."""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response

from adsbook.api.deps import ContextDep, DbDep, RawBodyDep
from adsbook.api.schemas import EventResponse, MarkUploadedResponse
from adsbook.errors import PackParseError
from adsbook.events import ExperimentEventService
from adsbook.filenames import rollback_pack_filename
from adsbook.rollback import build_rollback_pack

router = APIRouter(prefix="/experiments", tags=["events"])


@router.post("/{experiment_id}/events", response_model=EventResponse, status_code=201)
def record_event(
    experiment_id: str,
    raw: RawBodyDep,
    db: DbDep,
    ctx: ContextDep,
) -> EventResponse:
    try:
        body = json.loads(raw)
    except ValueError as exc:
        raise PackParseError("Invalid JSON payload.", code="invalid_json") from exc
    event = ExperimentEventService(db).record_event(ctx, experiment_id, body)
    return EventResponse(
        id=event["id"],
        event_type=event["event_type"],
        event_date=event["event_date"],
        occurred_at=event["occurred_at"],
        run_id=event["run_id"],
        phase_id=event["phase_id"],
    )


@router.get("/{experiment_id}/events")
def list_events(
    experiment_id: str,
    db: DbDep,
    ctx: ContextDep,
) -> dict[str, Any]:
    db.require_experiment(ctx, experiment_id)
    return {"ok": True, "experiment_id": experiment_id, "events": db.list_events(experiment_id)}


@router.post(
    "/{experiment_id}/phases/{run_id}/mark-uploaded", response_model=MarkUploadedResponse
)
def mark_uploaded(
    experiment_id: str,
    run_id: str,
    db: DbDep,
    ctx: ContextDep,
) -> MarkUploadedResponse:
    result = ExperimentEventService(db).mark_uploaded(ctx, experiment_id, run_id)
    return MarkUploadedResponse(
        run_id=result["run_id"],
        effective_date=result["effective_date"],
        uploaded_at=result["uploaded_at"],
    )


@router.get("/{experiment_id}/rollback-pack")
def download_rollback_pack(
    experiment_id: str,
    db: DbDep,
    ctx: ContextDep,
    run_id: str | None = None,
) -> Response:
    exp = db.require_experiment(ctx, experiment_id)
    target_run_id = run_id.strip() if run_id and run_id.strip() else None
    pack = build_rollback_pack(
        {
            "experiment_id": exp.experiment_id,
            "asin": exp.asin or "UNKNOWN_ASIN",
            "marketplace": exp.marketplace,
        },
        db.list_experiment_changes(ctx, experiment_id),
        target_run_id=target_run_id,
    )
    filename = rollback_pack_filename(exp.name, exp.experiment_id, target_run_id)
    return Response(
        content=json.dumps(pack, indent=2, ensure_ascii=False) + "\n",
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
