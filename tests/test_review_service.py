"""Tests for the review workflow: patch, finalize, execution hand-off."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from adsbook.contract import contract_of
from adsbook.errors import (
    PackParseError,
    PlanNotFinalizedError,
    PlanStateError,
    ScopeConflictError,
    SemanticValidationError,
)
from adsbook.models.experiment import ExperimentStatus
from adsbook.review.selection import select_plans_for_execution
from adsbook.review.service import ReviewService

if TYPE_CHECKING:
    from adsbook.context import AccountContext
    from adsbook.db import Database
    from adsbook.models.experiment import Experiment

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


@pytest.fixture()
def service(seeded_db: Database) -> ReviewService:
    return ReviewService(seeded_db)


@pytest.fixture()
def ids(proposed_experiment: Experiment, proposal_change_ids) -> list[str]:
    return proposal_change_ids(proposed_experiment)


class TestStoreReviewPatch:
    def test_patch_moves_experiment_to_reviewed(
        self, service, seeded_db, ctx, proposed_experiment, ids, make_review_patch
    ):
        exp_id = proposed_experiment.experiment_id
        patch = make_review_patch(
            exp_id,
            [
                {"change_id": ids[0], "decision": "approve"},
                {"change_id": ids[1], "decision": "override", "override_value": 0.6},
            ],
        )
        result = service.store_review_patch(ctx, exp_id, patch, now=NOW)

        assert result["status"] == ExperimentStatus.REVIEWED
        assert result["review_patch_pack_id"] == "patch_test_1"
        assert result["summary"] == {
            "actions_total": 3,
            "approved_actions": 1,
            "overridden_actions": 1,
            "rejected_actions": 1,
        }
        stored = seeded_db.require_experiment(ctx, exp_id)
        assert stored.scope_version == proposed_experiment.scope_version + 1
        assert contract_of(stored.scope)["review_patch"]["pack_id"] == "patch_test_1"
        # the proposal is left untouched
        assert contract_of(stored.scope)["proposal"] == contract_of(proposed_experiment.scope)["proposal"]

    def test_unknown_change_id_is_rejected(
        self, service, ctx, proposed_experiment, ids, make_review_patch
    ):
        exp_id = proposed_experiment.experiment_id
        patch = make_review_patch(exp_id, [{"change_id": "chg_deadbeef", "decision": "approve"}])
        with pytest.raises(SemanticValidationError) as excinfo:
            service.store_review_patch(ctx, exp_id, patch)
        assert excinfo.value.issues[0].code == "patch_change_id_not_found"
        assert excinfo.value.status_code == 422

    def test_duplicate_change_id_is_rejected(
        self, service, ctx, proposed_experiment, ids, make_review_patch
    ):
        exp_id = proposed_experiment.experiment_id
        patch = make_review_patch(
            exp_id,
            [
                {"change_id": ids[0], "decision": "approve"},
                {"change_id": ids[0], "decision": "reject"},
            ],
        )
        with pytest.raises(SemanticValidationError) as excinfo:
            service.store_review_patch(ctx, exp_id, patch)
        assert [i.code for i in excinfo.value.issues] == ["patch_change_id_duplicate"]

    def test_patch_for_other_experiment(self, service, ctx, proposed_experiment, make_review_patch):
        patch = make_review_patch("some-other-experiment", [{"change_id": "x", "decision": "approve"}])
        with pytest.raises(PackParseError) as excinfo:
            service.store_review_patch(ctx, proposed_experiment.experiment_id, patch)
        assert excinfo.value.code == "experiment_mismatch"

    def test_experiment_without_proposal(self, service, seeded_db, ctx, make_review_patch):
        exp = seeded_db.create_experiment(ctx, name="Manual", scope={"status": "PROPOSED"})
        patch = make_review_patch(exp.experiment_id, [{"change_id": "x", "decision": "approve"}])
        with pytest.raises(PlanStateError) as excinfo:
            service.store_review_patch(ctx, exp.experiment_id, patch)
        assert excinfo.value.code == "missing_proposal_plans"

    def test_patch_can_be_replaced_while_reviewed(
        self, service, seeded_db, ctx, proposed_experiment, ids, make_review_patch
    ):
        exp_id = proposed_experiment.experiment_id
        service.store_review_patch(ctx, exp_id, make_review_patch(exp_id, [{"change_id": ids[0], "decision": "approve"}]))
        second = make_review_patch(
            exp_id, [{"change_id": cid, "decision": "approve"} for cid in ids], pack_id="patch_test_2"
        )
        result = service.store_review_patch(ctx, exp_id, second)
        assert result["summary"]["approved_actions"] == 3
        stored = seeded_db.require_experiment(ctx, exp_id)
        assert contract_of(stored.scope)["review_patch"]["pack_id"] == "patch_test_2"


class TestFinalizePlan:
    def _review(self, service, ctx, exp_id, ids, make_review_patch):
        decisions = [
            {"change_id": ids[0], "decision": "override", "override_value": 80},
            {"change_id": ids[1], "decision": "approve"},
            {"change_id": ids[2], "decision": "reject"},
        ]
        service.store_review_patch(ctx, exp_id, make_review_patch(exp_id, decisions))

    def test_finalize_without_patch(self, service, ctx, proposed_experiment):
        with pytest.raises(PlanStateError) as excinfo:
            service.finalize_plan(ctx, proposed_experiment.experiment_id)
        assert excinfo.value.code == "missing_review_patch"

    def test_finalize_locks_merged_plan(
        self, service, seeded_db, ctx, proposed_experiment, ids, make_review_patch
    ):
        exp_id = proposed_experiment.experiment_id
        self._review(service, ctx, exp_id, ids, make_review_patch)
        result = service.finalize_plan(ctx, exp_id, now=NOW)

        stored = seeded_db.require_experiment(ctx, exp_id)
        assert stored.status == ExperimentStatus.FINALIZED
        final_plan = contract_of(stored.scope)["final_plan"]
        assert final_plan["pack_id"] == result["final_plan_pack_id"]
        actions = final_plan["bulkgen_plans"][0]["actions"]
        assert [a["change_id"] for a in actions] == ids[:2]
        assert actions[0]["new_budget"] == 80.0
        assert result["summary"]["rejected_actions"] == 1

    def test_refinalize_is_idempotent(
        self, service, ctx, proposed_experiment, ids, make_review_patch
    ):
        exp_id = proposed_experiment.experiment_id
        self._review(service, ctx, exp_id, ids, make_review_patch)
        first = service.finalize_plan(ctx, exp_id, now=NOW)
        second = service.finalize_plan(ctx, exp_id)
        assert first["final_plan_pack_id"] == second["final_plan_pack_id"]

    def test_patch_rejected_after_finalize(
        self, service, ctx, proposed_experiment, ids, make_review_patch
    ):
        exp_id = proposed_experiment.experiment_id
        self._review(service, ctx, exp_id, ids, make_review_patch)
        service.finalize_plan(ctx, exp_id)
        with pytest.raises(PlanStateError) as excinfo:
            self._review(service, ctx, exp_id, ids, make_review_patch)
        assert excinfo.value.code == "plan_already_finalized"


class TestExecutionHandOff:
    def test_execution_requires_final_plan(self, service, ctx, proposed_experiment):
        with pytest.raises(PlanNotFinalizedError):
            service.hand_off_for_execution(ctx, proposed_experiment.experiment_id)

    def test_proposal_is_never_executed(self, proposed_experiment):
        with pytest.raises(PlanNotFinalizedError):
            select_plans_for_execution(proposed_experiment.scope)

    def test_hand_off_marks_executed(
        self, service, seeded_db, ctx, proposed_experiment, ids, make_review_patch
    ):
        exp_id = proposed_experiment.experiment_id
        decisions = [{"change_id": cid, "decision": "approve"} for cid in ids]
        service.store_review_patch(ctx, exp_id, make_review_patch(exp_id, decisions))
        final = service.finalize_plan(ctx, exp_id)

        result = service.hand_off_for_execution(ctx, exp_id)
        assert result["final_plan_pack_id"] == final["final_plan_pack_id"]
        assert len(result["bulkgen_plans"][0]["actions"]) == 3
        assert seeded_db.require_experiment(ctx, exp_id).status == ExperimentStatus.EXECUTED

        # a second hand-off returns the same plans and keeps the status
        again = service.hand_off_for_execution(ctx, exp_id)
        assert again["bulkgen_plans"] == result["bulkgen_plans"]

    def test_finalized_without_plans_is_not_executable(self):
        scope = {
            "status": "FINALIZED",
            "contract": {"ads_optimization_v1": {"final_plan": {"pack_id": "final_x", "bulkgen_plans": []}}},
        }
        with pytest.raises(PlanNotFinalizedError):
            select_plans_for_execution(scope)


class TestConcurrentScopeWrites:
    def test_stale_version_conflicts(self, seeded_db, ctx: AccountContext, proposed_experiment):
        exp_id = proposed_experiment.experiment_id
        stale = proposed_experiment.scope_version
        seeded_db.update_experiment_scope(ctx, exp_id, {**proposed_experiment.scope, "note": "a"}, stale)
        with pytest.raises(ScopeConflictError) as excinfo:
            seeded_db.update_experiment_scope(ctx, exp_id, {**proposed_experiment.scope, "note": "b"}, stale)
        assert excinfo.value.status_code == 409
        assert seeded_db.require_experiment(ctx, exp_id).scope["note"] == "a"

    def test_review_on_stale_read_conflicts(
        self, seeded_db, ctx, proposed_experiment, ids, make_review_patch, monkeypatch
    ):
        exp_id = proposed_experiment.experiment_id
        service = ReviewService(seeded_db)
        original = seeded_db.require_experiment

        def stale_read(ctx_, experiment_id):
            experiment = original(ctx_, experiment_id)
            # another writer lands between this read and the write
            seeded_db.update_experiment_scope(
                ctx_, experiment_id, dict(experiment.scope), experiment.scope_version
            )
            return experiment

        monkeypatch.setattr(seeded_db, "require_experiment", stale_read)
        patch = make_review_patch(exp_id, [{"change_id": ids[0], "decision": "approve"}])
        with pytest.raises(ScopeConflictError):
            service.store_review_patch(ctx, exp_id, patch)
