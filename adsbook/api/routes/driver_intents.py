"""Driver campaign intent endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from adsbook.api.deps import ContextDep, DbDep
from adsbook.api.schemas import (
    DeletedResponse,
    DriverIntentListResponse,
    DriverIntentRequest,
    DriverIntentResponse,
)

router = APIRouter(prefix="/products", tags=["driver-intents"])


@router.get("/{asin}/driver-intents", response_model=DriverIntentListResponse)
def list_driver_intents(
    asin: str,
    db: DbDep,
    ctx: ContextDep,
) -> DriverIntentListResponse:
    return DriverIntentListResponse(
        asin=asin.strip().upper(), intents=db.list_driver_intents(ctx, asin)
    )


@router.put("/{asin}/driver-intents", response_model=DriverIntentResponse)
def upsert_driver_intent(
    asin: str,
    body: DriverIntentRequest,
    db: DbDep,
    ctx: ContextDep,
) -> DriverIntentResponse:
    intent = db.upsert_driver_intent(ctx, asin, **body.model_dump())
    return DriverIntentResponse(intent=intent)


@router.delete("/{asin}/driver-intents/{intent_id}", response_model=DeletedResponse)
def delete_driver_intent(
    asin: str,
    intent_id: int,
    db: DbDep,
    ctx: ContextDep,
) -> DeletedResponse:
    return DeletedResponse(deleted=db.delete_driver_intent(ctx, asin, intent_id))
