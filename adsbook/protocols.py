"""Port interfaces (Protocols) the cores depend on instead of the concrete store."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from adsbook.context import AccountContext
    from adsbook.db import (
        AdEntityDict,
        DriverIntentDict,
        KivItemDict,
        PerformanceRowDict,
        ProductDict,
        SalesRowDict,
    )


@runtime_checkable
class EntityLookupPort(Protocol):
    """Read-only lookups used by the semantic validation gate."""

    def get_product(self, ctx: AccountContext, asin: str) -> ProductDict | None: ...
    def find_entities(
        self, channel: str, entity_type: str, entity_id: str
    ) -> list[AdEntityDict]: ...
    def campaign_ids_for_asin(self, ctx: AccountContext, channel: str, asin: str) -> list[str]: ...
    def get_kiv_items_by_ids(self, ctx: AccountContext, kiv_ids: Any) -> list[KivItemDict]: ...


@runtime_checkable
class EvidenceSourcePort(Protocol):
    """Datasets the evidence pack builder reads, one date range at a time."""

    def get_product(self, ctx: AccountContext, asin: str) -> ProductDict | None: ...
    def campaign_ids_for_asin(self, ctx: AccountContext, channel: str, asin: str) -> list[str]: ...
    def list_driver_intents(self, ctx: AccountContext, asin: str) -> list[DriverIntentDict]: ...
    def list_kiv_items(self, ctx: AccountContext, asin: str) -> list[KivItemDict]: ...
    def performance_rows(
        self,
        ctx: AccountContext,
        *,
        channel: str,
        grain: str,
        start: str,
        end: str,
        campaign_ids: list[str] | None = None,
        advertised_asin: str | None = None,
    ) -> list[PerformanceRowDict]: ...
    def product_sales_rows(
        self, ctx: AccountContext, asin: str, start: str, end: str
    ) -> list[SalesRowDict]: ...
