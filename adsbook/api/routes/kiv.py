"""Keep-in-view item endpoints."""

from __future__ import annotations

from fastapi import APIRouter

from adsbook.api.deps import ContextDep, DbDep
from adsbook.api.schemas import KivCreateRequest, KivItemResponse, KivListResponse, KivUpdateRequest
from adsbook.errors import KivItemNotFoundError
from adsbook.evaluation.kiv import derive_kiv_carry_forward

router = APIRouter(prefix="/products", tags=["kiv"])


@router.get("/{asin}/kiv", response_model=KivListResponse)
def list_kiv_items(
    asin: str,
    db: DbDep,
    ctx: ContextDep,
) -> KivListResponse:
    items = db.list_kiv_items(ctx, asin)
    carry = derive_kiv_carry_forward(items)
    return KivListResponse(
        asin=asin.strip().upper(),
        open=carry["open"],
        recently_closed=carry["recently_closed"],
        items=items,
    )


@router.post("/{asin}/kiv", response_model=KivItemResponse, status_code=201)
def create_kiv_item(
    asin: str,
    body: KivCreateRequest,
    db: DbDep,
    ctx: ContextDep,
) -> KivItemResponse:
    item = db.create_kiv_item(
        ctx,
        asin,
        title=body.title.strip(),
        details=body.details,
        tags=body.tags,
        priority=body.priority,
        due_date=body.due_date,
    )
    return KivItemResponse(item=item)


@router.patch("/{asin}/kiv/{kiv_id}", response_model=KivItemResponse)
def update_kiv_item(
    asin: str,
    kiv_id: str,
    body: KivUpdateRequest,
    db: DbDep,
    ctx: ContextDep,
) -> KivItemResponse:
    existing = db.get_kiv_items_by_ids(ctx, [kiv_id])
    if not existing or existing[0]["asin_norm"] != asin.strip().upper():
        raise KivItemNotFoundError(kiv_id)
    item = db.update_kiv_item(ctx, kiv_id, **body.model_dump(exclude_unset=True))
    return KivItemResponse(item=item)
