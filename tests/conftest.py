"""Shared test fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from adsbook.config import Settings
from adsbook.context import AccountContext
from adsbook.db import Database
from adsbook.review.plans import build_proposal_action_refs, extract_proposal_plans

if TYPE_CHECKING:
    from collections.abc import Callable

    from adsbook.models.experiment import Experiment

ASIN = "B0TESTASIN"
OTHER_ASIN = "B0OTHER001"


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        account_id="acct-1",
        marketplace="US",
        data_dir=tmp_path / "data",
        log_level="DEBUG",
        log_format="console",
        _env_file=None,
    )


@pytest.fixture()
def db(tmp_path) -> Database:
    db = Database(tmp_path / "test.db")
    db.init_schema()
    yield db
    db.close()


@pytest.fixture()
def ctx() -> AccountContext:
    return AccountContext(account_id="acct-1", marketplace="US")


@pytest.fixture()
def other_ctx() -> AccountContext:
    return AccountContext(account_id="acct-2", marketplace="US")


@pytest.fixture()
def seeded_db(db: Database, ctx: AccountContext, other_ctx: AccountContext) -> Database:
    """Two products with SP/SB entities in acct-1, plus one SP campaign owned by acct-2."""
    db.upsert_product(ctx, ASIN, "Test Widget")
    db.upsert_product(ctx, OTHER_ASIN, "Other Widget")

    entities: list[dict[str, Any]] = [
        {"channel": "SP", "entity_type": "campaign", "entity_id": "C1", "name": "Widget Exact"},
        {"channel": "SP", "entity_type": "campaign", "entity_id": "C2", "name": "Widget Auto"},
        {"channel": "SP", "entity_type": "campaign", "entity_id": "C3", "name": "Other Exact"},
        {"channel": "SP", "entity_type": "ad_group", "entity_id": "AG1", "campaign_id": "C1"},
        {
            "channel": "SP",
            "entity_type": "target",
            "entity_id": "T1",
            "campaign_id": "C1",
            "ad_group_id": "AG1",
        },
        {"channel": "SP", "entity_type": "product_ad", "entity_id": "PA1", "campaign_id": "C1", "asin": ASIN},
        {"channel": "SP", "entity_type": "product_ad", "entity_id": "PA2", "campaign_id": "C2", "asin": ASIN},
        {
            "channel": "SP",
            "entity_type": "product_ad",
            "entity_id": "PA3",
            "campaign_id": "C3",
            "asin": OTHER_ASIN,
        },
        {"channel": "SB", "entity_type": "campaign", "entity_id": "SB1"},
        {
            "channel": "SB",
            "entity_type": "product_ad",
            "entity_id": "SBPA1",
            "campaign_id": "SB1",
            "asin": ASIN,
        },
    ]
    for entity in entities:
        db.upsert_ad_entity(
            ctx,
            channel=entity["channel"],
            entity_type=entity["entity_type"],
            entity_id=entity["entity_id"],
            campaign_id=entity.get("campaign_id"),
            ad_group_id=entity.get("ad_group_id"),
            asin=entity.get("asin"),
            name=entity.get("name"),
        )
    db.upsert_ad_entity(other_ctx, channel="SP", entity_type="campaign", entity_id="CX")
    return db


def _sp_plan(run_id: str = "run-1") -> dict[str, Any]:
    return {
        "channel": "SP",
        "generator": "bulkgen:sp:update",
        "run_id": run_id,
        "actions": [
            {"type": "update_campaign_budget", "campaign_id": "C1", "new_budget": 50},
            {"type": "update_target_bid", "target_id": "T1", "new_bid": 0.75},
            {"type": "update_campaign_state", "campaign_id": "C2", "new_state": "paused"},
        ],
    }


@pytest.fixture()
def make_product_pack() -> Callable[..., dict[str, Any]]:
    """Factory for ``aph_product_experiment_pack_v1`` documents."""

    def _make(
        asin: str = ASIN,
        plans: list[dict[str, Any]] | None = None,
        scope: dict[str, Any] | None = None,
        **extra: Any,
    ) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "kind": "aph_product_experiment_pack_v1",
            "product": {"asin": asin},
            "experiment": {
                "name": "Raise exact budgets",
                "objective": "Grow sales on exact match",
                "hypothesis": "More budget on C1 lifts orders",
                "evaluation_lag_days": 2,
                "evaluation_window_days": 14,
                "primary_metrics": ["sales", "orders"],
                "guardrails": {"max_acos": 0.35},
                "scope": {
                    "status": "planned",
                    "start_date": "2026-03-01",
                    "end_date": "2026-03-14",
                    "bulkgen_plans": [_sp_plan()] if plans is None else plans,
                    **(scope or {}),
                },
            },
        }
        doc.update(extra)
        return doc

    return _make


@pytest.fixture()
def make_review_patch() -> Callable[..., dict[str, Any]]:
    def _make(experiment_id: str, decisions: list[dict[str, Any]], **extra: Any) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "kind": "aph_review_patch_pack_v1",
            "pack_version": "v1",
            "pack_id": "patch_test_1",
            "created_at": "2026-03-02T10:00:00Z",
            "links": {"experiment_id": experiment_id},
            "trace": {"workflow_mode": "manual"},
            "patch": {"decisions": decisions},
        }
        doc.update(extra)
        return doc

    return _make


@pytest.fixture()
def make_evaluation_pack() -> Callable[..., dict[str, Any]]:
    def _make(
        experiment_id: str,
        asin: str = ASIN,
        score: float = 72,
        kiv_updates: list[dict[str, Any]] | None = None,
        **evaluation: Any,
    ) -> dict[str, Any]:
        return {
            "kind": "aph_experiment_evaluation_pack_v1",
            "experiment_id": experiment_id,
            "product": {"asin": asin},
            "evaluation": {
                "summary": "Budget increase lifted orders without breaching ACOS.",
                "outcome": {"score": score, "label": "success", "confidence": 0.8},
                "why": ["Orders up 18%"],
                "next_steps": ["Repeat on C2"],
                "kiv_updates": kiv_updates or [],
                **evaluation,
            },
        }

    return _make


@pytest.fixture()
def proposed_experiment(
    seeded_db: Database, ctx: AccountContext, make_product_pack
) -> Experiment:
    """A PROPOSED experiment imported from the default product pack."""
    from adsbook.proposals.importer import ProposalImporter

    result = ProposalImporter(seeded_db).import_pack(ctx, ASIN, make_product_pack())
    return seeded_db.require_experiment(ctx, result["experiment_id"])


def change_ids_of(experiment: Experiment) -> list[str]:
    """Proposal ``change_id`` values in plan order."""
    return [ref.change_id for ref in build_proposal_action_refs(extract_proposal_plans(experiment.scope))]


@pytest.fixture()
def proposal_change_ids() -> Callable[[Experiment], list[str]]:
    return change_ids_of
