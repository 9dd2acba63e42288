"""FastAPI application factory and entry point."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import structlog
from fastapi import FastAPI

from adsbook import __version__
from adsbook.api.middleware import CorrelationIdMiddleware, add_exception_handlers
from adsbook.api.routes import (
    driver_intents,
    evaluations,
    events,
    evidence,
    experiments,
    kiv,
    reviews,
    system,
)
from adsbook.config import Settings
from adsbook.db import Database
from adsbook.logging import configure_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

logger = structlog.get_logger()

ROUTERS = (system, experiments, evidence, reviews, evaluations, events, kiv, driver_intents)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Initialize DB and settings on startup, cleanup on shutdown."""
    settings = Settings()
    settings.ensure_data_dir()

    configure_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
    )

    db = Database(settings.db_path)
    db.init_schema()

    app.state.db = db
    app.state.settings = settings

    logger.info(
        "Adsbook API started",
        host=settings.api_host,
        port=settings.api_port,
        account_id=settings.account_id,
        marketplace=settings.marketplace,
    )
    yield

    db.close()
    logger.info("Adsbook API shut down")


def include_routes(app: FastAPI, prefix: str = "/api/v1") -> None:
    for module in ROUTERS:
        app.include_router(module.router, prefix=prefix)


def create_app() -> FastAPI:
    """Application factory."""
    app = FastAPI(
        title="Adsbook",
        description="Advertising experiment logbook API",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(CorrelationIdMiddleware)
    add_exception_handlers(app)

    # Prometheus metrics endpoint
    from prometheus_client import make_asgi_app

    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    include_routes(app)
    return app


def main() -> None:
    """Entry point for `adsbook-api` command."""
    import uvicorn

    settings = Settings()
    uvicorn.run(
        "adsbook.api.app:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
    )
