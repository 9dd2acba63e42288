"""FastAPI dependency injection."""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, Request

from adsbook.config import Settings
from adsbook.context import AccountContext
from adsbook.db import Database
from adsbook.logging import bind_account


def _get_db(request: Request) -> Database:
    """Get the database instance from app state."""
    return request.app.state.db  # type: ignore[no-any-return]


def _get_settings(request: Request) -> Settings:
    """Get the settings instance from app state."""
    return request.app.state.settings  # type: ignore[no-any-return]


async def _get_context(
    settings: Annotated[Settings, Depends(_get_settings)],
    x_account_id: Annotated[str | None, Header()] = None,
    x_marketplace: Annotated[str | None, Header()] = None,
) -> AccountContext:
    """Account context from request headers, falling back to the configured defaults."""
    account_id = (x_account_id or "").strip() or settings.account_id
    marketplace = (x_marketplace or "").strip().upper() or settings.marketplace
    ctx = AccountContext(account_id=account_id, marketplace=marketplace)
    bind_account(ctx)
    return ctx


async def _get_raw_body(request: Request) -> bytes:
    """Undecoded request body; pack parsers report malformed JSON themselves."""
    return await request.body()


DbDep = Annotated[Database, Depends(_get_db)]
SettingsDep = Annotated[Settings, Depends(_get_settings)]
ContextDep = Annotated[AccountContext, Depends(_get_context)]
RawBodyDep = Annotated[bytes, Depends(_get_raw_body)]
