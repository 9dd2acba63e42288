"""Tests for evaluation pack parsing and import."""

from __future__ import annotations

import pytest

from adsbook.errors import (
    EvaluationNeedsInputError,
    PackParseError,
    PlanStateError,
    ScopeConflictError,
    SemanticValidationError,
)
from adsbook.evaluation.importer import EvaluationImporter
from adsbook.evaluation.pack import parse_evaluation_pack
from adsbook.models.experiment import ExperimentStatus

ASIN = "B0TESTASIN"
EXPERIMENT_ID = "5b1f0c3e-8f4a-4d7e-9a61-0c2b7d9e4f10"


@pytest.fixture()
def importer(seeded_db) -> EvaluationImporter:
    return EvaluationImporter(seeded_db)


@pytest.fixture()
def sales_db(seeded_db, ctx):
    seeded_db.add_sales_rows(
        ctx,
        ASIN,
        [
            {"date": "2026-02-20", "sales": 100, "orders": 4},
            {"date": "2026-02-27", "sales": 100, "orders": 4},
            {"date": "2026-03-05", "sales": 150, "orders": 6},
            {"date": "2026-03-15", "sales": 90, "orders": 3},
            # inside the experiment window but before the lag shift
            {"date": "2026-03-02", "sales": 999, "orders": 99},
        ],
    )
    return seeded_db


class TestParseEvaluationPack:
    def test_valid(self, make_evaluation_pack):
        pack = parse_evaluation_pack(make_evaluation_pack(EXPERIMENT_ID, asin="b0testasin"))
        assert pack.product_asin == ASIN
        assert pack.evaluation.mark_complete is True
        assert pack.evaluation.outcome.score == 72

    def test_needs_input(self):
        doc = {
            "kind": "aph_experiment_evaluation_pack_v1",
            "ok": False,
            "questions": ["Which date did the budget change go live?", " "],
        }
        with pytest.raises(EvaluationNeedsInputError) as excinfo:
            parse_evaluation_pack(doc)
        assert excinfo.value.questions == ["Which date did the budget change go live?"]

    def test_experiment_id_must_be_uuid(self, make_evaluation_pack):
        with pytest.raises(PackParseError) as excinfo:
            parse_evaluation_pack(make_evaluation_pack("exp-1"))
        assert any("must be a UUID" in e for e in excinfo.value.errors)

    def test_score_range(self, make_evaluation_pack):
        with pytest.raises(PackParseError):
            parse_evaluation_pack(make_evaluation_pack(EXPERIMENT_ID, score=120))

    def test_kiv_update_needs_reference(self, make_evaluation_pack):
        doc = make_evaluation_pack(EXPERIMENT_ID, kiv_updates=[{"status": "done"}])
        with pytest.raises(PackParseError) as excinfo:
            parse_evaluation_pack(doc)
        assert any("requires kiv_id or title" in e for e in excinfo.value.errors)

    def test_experiment_mismatch(self, make_evaluation_pack):
        with pytest.raises(PackParseError) as excinfo:
            parse_evaluation_pack(
                make_evaluation_pack(EXPERIMENT_ID),
                expected_experiment_id="00000000-0000-0000-0000-000000000000",
            )
        assert excinfo.value.code == "experiment_mismatch"


class TestEvaluationImporter:
    def test_import_computes_kpis_and_marks_evaluated(
        self, importer, sales_db, ctx, proposed_experiment, make_evaluation_pack
    ):
        exp_id = proposed_experiment.experiment_id
        result = importer.import_pack(ctx, exp_id, make_evaluation_pack(exp_id))

        assert result["ok"] is True
        assert result["status_updated"] is True
        assert result["window_source"] == "scope"
        assert (result["test_window_start"], result["test_window_end"]) == ("2026-03-03", "2026-03-16")
        assert result["outcome_score"] == 72
        assert result["outcome_label"] == "success"

        experiment = sales_db.require_experiment(ctx, exp_id)
        assert experiment.status == ExperimentStatus.EVALUATED
        assert experiment.scope["outcome_summary"].startswith("Budget increase")

        [evaluation] = sales_db.list_evaluations(exp_id)
        kpis = evaluation["metrics"]["computed_kpis"]
        assert kpis["baseline"]["totals"]["sales"] == 200
        assert kpis["test"]["totals"]["sales"] == 240
        assert kpis["delta"]["totals"]["percent"]["sales"] == pytest.approx(0.2)
        assert evaluation["window_start"] == "2026-03-03"

    def test_mark_complete_false_keeps_status(
        self, importer, seeded_db, ctx, proposed_experiment, make_evaluation_pack
    ):
        exp_id = proposed_experiment.experiment_id
        result = importer.import_pack(ctx, exp_id, make_evaluation_pack(exp_id, mark_complete=False))
        assert result["status_updated"] is False
        assert seeded_db.require_experiment(ctx, exp_id).status == ExperimentStatus.PROPOSED

    def test_asin_mismatch(self, importer, ctx, proposed_experiment, make_evaluation_pack):
        exp_id = proposed_experiment.experiment_id
        with pytest.raises(PackParseError) as excinfo:
            importer.import_pack(ctx, exp_id, make_evaluation_pack(exp_id, asin="B0OTHER001"))
        assert excinfo.value.code == "asin_mismatch"

    def test_missing_product_id(self, importer, seeded_db, ctx, make_evaluation_pack):
        exp = seeded_db.create_experiment(ctx, name="No product", experiment_id=EXPERIMENT_ID)
        with pytest.raises(PlanStateError) as excinfo:
            importer.import_pack(ctx, exp.experiment_id, make_evaluation_pack(EXPERIMENT_ID))
        assert excinfo.value.code == "missing_product_id"

    def test_missing_window(self, importer, seeded_db, ctx, make_evaluation_pack):
        seeded_db.create_experiment(
            ctx, name="No dates", experiment_id=EXPERIMENT_ID, scope={"product_id": ASIN}
        )
        with pytest.raises(PlanStateError) as excinfo:
            importer.import_pack(ctx, EXPERIMENT_ID, make_evaluation_pack(EXPERIMENT_ID))
        assert excinfo.value.code == "missing_window"

    def test_window_from_linked_changes(self, importer, seeded_db, ctx, make_evaluation_pack):
        seeded_db.create_experiment(
            ctx, name="Linked", experiment_id=EXPERIMENT_ID, scope={"product_id": ASIN}
        )
        change_id = seeded_db.create_change(
            ctx,
            channel="SP",
            change_type="bid_update",
            summary="Raise bids",
            occurred_at="2026-03-04T10:00:00Z",
        )
        seeded_db.link_changes(EXPERIMENT_ID, [change_id])
        result = importer.import_pack(ctx, EXPERIMENT_ID, make_evaluation_pack(EXPERIMENT_ID))
        assert result["window_source"] == "linked_changes"
        assert result["test_window_start"] == result["test_window_end"] == "2026-03-04"

    def test_unknown_kiv_id_is_rejected(
        self, importer, seeded_db, ctx, proposed_experiment, make_evaluation_pack
    ):
        exp_id = proposed_experiment.experiment_id
        doc = make_evaluation_pack(exp_id, kiv_updates=[{"kiv_id": "missing", "status": "done"}])
        with pytest.raises(SemanticValidationError) as excinfo:
            importer.import_pack(ctx, exp_id, doc)
        assert excinfo.value.issues[0].code == "kiv_id_not_found"
        assert seeded_db.list_evaluations(exp_id) == []

    def test_kiv_updates_match_by_id_then_title(
        self, importer, seeded_db, ctx, proposed_experiment, make_evaluation_pack
    ):
        exp_id = proposed_experiment.experiment_id
        by_id = seeded_db.create_kiv_item(ctx, ASIN, title="Check images")
        by_title = seeded_db.create_kiv_item(ctx, ASIN, title="Watch  CVR")
        doc = make_evaluation_pack(
            exp_id,
            kiv_updates=[
                {"kiv_id": by_id["kiv_id"], "status": "done", "resolution_notes": "Images refreshed"},
                {"title": "watch cvr", "status": "dismissed"},
                {"title": "Test coupon", "status": "open"},
            ],
        )
        result = importer.import_pack(ctx, exp_id, doc)

        assert result["applied"]["kiv"] == {
            "created": 1,
            "updated": 2,
            "status_changed": 2,
            "matched_by_id": 1,
            "matched_by_title": 1,
        }
        assert result["warnings"] == [
            "Created new KIV item from evaluation update (no open title match): Test coupon"
        ]
        items = {item["title"]: item for item in seeded_db.list_kiv_items(ctx, ASIN)}
        assert items["Check images"]["status"] == "done"
        assert items["Check images"]["resolved_at"] is not None
        assert items["Watch  CVR"]["status"] == "dismissed"
        assert items["Test coupon"]["source_experiment_id"] == exp_id
        assert by_title["kiv_id"] == items["Watch  CVR"]["kiv_id"]

    def test_lost_scope_race_stores_nothing(
        self, importer, seeded_db, ctx, proposed_experiment, make_evaluation_pack, monkeypatch
    ):
        exp_id = proposed_experiment.experiment_id
        kiv = seeded_db.create_kiv_item(ctx, ASIN, title="Check images")
        list_changes = seeded_db.list_experiment_changes

        def concurrent_edit(ctx_, experiment_id):
            # another writer bumps the scope after the importer has read it
            current = seeded_db.require_experiment(ctx_, experiment_id)
            seeded_db.update_experiment_scope(
                ctx_, experiment_id, {**current.scope, "notes": "edited"}, current.scope_version
            )
            return list_changes(ctx_, experiment_id)

        monkeypatch.setattr(seeded_db, "list_experiment_changes", concurrent_edit)
        doc = make_evaluation_pack(exp_id, kiv_updates=[{"kiv_id": kiv["kiv_id"], "status": "done"}])

        with pytest.raises(ScopeConflictError):
            importer.import_pack(ctx, exp_id, doc)

        assert seeded_db.list_evaluations(exp_id) == []
        experiment = seeded_db.require_experiment(ctx, exp_id)
        assert experiment.status == ExperimentStatus.PROPOSED
        assert experiment.scope["notes"] == "edited"
        [item] = seeded_db.list_kiv_items(ctx, ASIN)
        assert item["status"] == "open"
