"""Baseline evidence pack endpoint."""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Query

from adsbook.api.deps import ContextDep, DbDep, SettingsDep
from adsbook.evidence.builder import EvidencePackBuilder

router = APIRouter(prefix="/products", tags=["evidence"])


@router.get("/{asin}/evidence-pack")
def get_evidence_pack(
    asin: str,
    db: DbDep,
    ctx: ContextDep,
    settings: SettingsDep,
    requested_range: Annotated[str | None, Query(alias="range")] = "baseline",
    end_date: str | None = None,
    require_complete: bool | None = None,
) -> dict[str, Any]:
    builder = EvidencePackBuilder.from_settings(db, settings, require_complete=require_complete)
    return builder.build(ctx, asin, requested_range, end_date)
