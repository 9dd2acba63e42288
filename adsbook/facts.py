"""Bulk loading of read-only ad facts (products, entities, performance, sales)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypedDict

import structlog

from adsbook.metrics import imports_total
from adsbook.packs import load_json_document

if TYPE_CHECKING:
    from collections.abc import Mapping

    from adsbook.context import AccountContext
    from adsbook.db import Database

logger = structlog.get_logger()


class FactCounts(TypedDict):
    products: int
    entities: int
    performance_rows: int
    sales_rows: int


def import_facts(
    db: Database, ctx: AccountContext, raw: str | bytes | Mapping[str, Any]
) -> FactCounts:
    """Load a facts document.

    Shape::

        {"products": [{"asin", "title"}],
         "entities": [{"channel", "entity_type", "entity_id", "campaign_id",
                       "ad_group_id", "asin", "name"}],
         "performance": [{"channel", "grain", "date", "campaign_id", ...}],
         "sales": {"<ASIN>": [{"date", "sales", "ppc_cost", ...}]}}
    """
    doc = load_json_document(raw)
    counts = FactCounts(products=0, entities=0, performance_rows=0, sales_rows=0)

    for product in doc.get("products") or []:
        db.upsert_product(ctx, str(product["asin"]), product.get("title"))
        counts["products"] += 1

    for entity in doc.get("entities") or []:
        db.upsert_ad_entity(
            ctx,
            channel=str(entity["channel"]),
            entity_type=str(entity["entity_type"]),
            entity_id=str(entity["entity_id"]),
            campaign_id=entity.get("campaign_id"),
            ad_group_id=entity.get("ad_group_id"),
            asin=entity.get("asin"),
            name=entity.get("name"),
        )
        counts["entities"] += 1

    counts["performance_rows"] = db.add_performance_rows(ctx, doc.get("performance") or [])

    sales = doc.get("sales") or {}
    for asin, rows in sales.items():
        counts["sales_rows"] += db.add_sales_rows(ctx, asin, rows)

    imports_total.labels(kind="facts", result="stored").inc()
    logger.info("Facts imported", account_id=ctx.account_id, marketplace=ctx.marketplace, **counts)
    return counts
