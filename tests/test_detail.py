"""Tests for experiment detail assembly and facts loading."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import pytest

from adsbook.detail import build_experiment_detail
from adsbook.errors import ExperimentNotFoundError, PackParseError
from adsbook.events import ExperimentEventService
from adsbook.facts import import_facts

ASIN = "B0TESTASIN"


class TestBuildExperimentDetail:
    def test_proposed_experiment(self, seeded_db, ctx, proposed_experiment):
        seeded_db.create_kiv_item(ctx, ASIN, title="Check images")
        detail = build_experiment_detail(seeded_db, ctx, proposed_experiment.experiment_id)

        assert detail["experiment"]["status"] == "PROPOSED"
        assert detail["experiment"]["product_asin"] == ASIN
        assert detail["window"] == {"start_date": "2026-03-01", "end_date": "2026-03-14", "source": "scope"}
        assert len(detail["proposal_actions"]) == 3
        assert all("review_rank" in action for action in detail["proposal_actions"])
        assert detail["final_plan"] is None
        assert detail["review_patch"] is None
        assert [i["title"] for i in detail["kiv"]["open"]] == ["Check images"]

    def test_timeline_includes_events(self, seeded_db, ctx, proposed_experiment):
        exp_id = proposed_experiment.experiment_id
        ExperimentEventService(seeded_db).record_event(
            ctx, exp_id, {"event_type": "manual_intervention"}, now=datetime(2026, 3, 5, tzinfo=UTC)
        )
        detail = build_experiment_detail(seeded_db, ctx, exp_id, major_limit=0)
        [entry] = detail["timeline"]["entries"]
        assert entry["kind"] == "event"
        assert entry["is_interruption"] is True
        assert detail["timeline"]["major"] == [entry["change_id"]]

    def test_evaluations_carry_tone(self, seeded_db, ctx, proposed_experiment):
        exp_id = proposed_experiment.experiment_id
        seeded_db.insert_evaluation(
            ctx,
            exp_id,
            window_start="2026-03-03",
            window_end="2026-03-16",
            metrics={"outcome": {"score": 0.45, "label": "mixed"}, "summary": "So-so"},
        )
        [evaluation] = build_experiment_detail(seeded_db, ctx, exp_id)["evaluations"]
        assert evaluation["outcome"]["score_percent"] == 45.0
        assert evaluation["outcome"]["tone"] == "mixed"
        assert evaluation["outcome"]["label"] == "mixed"

    def test_unknown_experiment(self, seeded_db, ctx):
        with pytest.raises(ExperimentNotFoundError):
            build_experiment_detail(seeded_db, ctx, "missing")


class TestImportFacts:
    def test_loads_every_section(self, db, ctx):
        doc = {
            "products": [{"asin": "b0facts001", "title": "Facts"}],
            "entities": [
                {"channel": "sp", "entity_type": "campaign", "entity_id": "F1"},
                {"channel": "SP", "entity_type": "product_ad", "entity_id": "FPA", "campaign_id": "F1", "asin": "B0FACTS001"},
            ],
            "performance": [
                {"channel": "SP", "grain": "campaign", "date": "2026-03-01", "campaign_id": "F1", "spend": 12}
            ],
            "sales": {"B0FACTS001": [{"date": "2026-03-01", "sales": 40, "ppc_cost": 12}]},
        }
        counts = import_facts(db, ctx, json.dumps(doc))

        assert counts == {"products": 1, "entities": 2, "performance_rows": 1, "sales_rows": 1}
        assert db.get_product(ctx, "B0FACTS001")["title"] == "Facts"
        assert db.campaign_ids_for_asin(ctx, "SP", "B0FACTS001") == ["F1"]
        [row] = db.product_sales_rows(ctx, "B0FACTS001", "2026-03-01", "2026-03-01")
        assert row["sales"] == 40

    def test_reimport_is_idempotent(self, db, ctx):
        doc = {"sales": {"B0FACTS001": [{"date": "2026-03-01", "sales": 40}]}}
        import_facts(db, ctx, doc)
        import_facts(db, ctx, {"sales": {"B0FACTS001": [{"date": "2026-03-01", "sales": 55}]}})
        [row] = db.product_sales_rows(ctx, "B0FACTS001", "2026-03-01", "2026-03-31")
        assert row["sales"] == 55

    def test_rejects_non_object(self, db, ctx):
        with pytest.raises(PackParseError):
            import_facts(db, ctx, "[]")
