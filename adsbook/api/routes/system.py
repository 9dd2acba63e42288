"""Health check and config endpoints."""

from __future__ import annotations

from fastapi import APIRouter
from sqlalchemy.exc import SQLAlchemyError

from adsbook import __version__
from adsbook.api.deps import DbDep, SettingsDep
from adsbook.api.schemas import ConfigCheckResponse, HealthResponse

router = APIRouter(tags=["system"])


@router.get("/health", response_model=HealthResponse)
def health_check(
    db: DbDep,
) -> HealthResponse:
    try:
        db_ok = db.check_connection()
    except SQLAlchemyError:
        db_ok = False

    return HealthResponse(
        ok=db_ok,
        status="healthy" if db_ok else "unhealthy",
        version=__version__,
        db_connected=db_ok,
    )


@router.get("/config/check", response_model=ConfigCheckResponse)
def config_check(
    settings: SettingsDep,
) -> ConfigCheckResponse:
    return ConfigCheckResponse(
        account_id=settings.account_id,
        marketplace=settings.marketplace,
        db_path=str(settings.db_path),
        require_complete_packs=settings.require_complete_packs,
        chunk_days=settings.chunk_days,
    )
