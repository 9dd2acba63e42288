"""FastAPI test client fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from adsbook.api.app import include_routes
from adsbook.api.middleware import CorrelationIdMiddleware, add_exception_handlers

if TYPE_CHECKING:
    from adsbook.config import Settings
    from adsbook.db import Database

ACCOUNT_HEADERS = {"X-Account-ID": "acct-1", "X-Marketplace": "US"}


def _create_test_app(db: Database, settings: Settings) -> FastAPI:
    """Create a FastAPI app with injected test db/settings (no lifespan)."""
    app = FastAPI(title="Adsbook Test")

    app.state.db = db
    app.state.settings = settings

    app.add_middleware(CorrelationIdMiddleware)
    add_exception_handlers(app)
    include_routes(app)

    return app


@pytest.fixture()
def client(db: Database, settings: Settings) -> TestClient:
    app = _create_test_app(db, settings)
    return TestClient(app)


@pytest.fixture()
def seeded_client(seeded_db: Database, settings: Settings) -> TestClient:
    """Client over a store holding products and ad entities for acct-1/US."""
    app = _create_test_app(seeded_db, settings)
    return TestClient(app, headers=ACCOUNT_HEADERS)
