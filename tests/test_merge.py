"""Tests for merging review decisions into proposal plans."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from adsbook.models.plans import BulkgenPlan
from adsbook.review.merge import apply_review_patch, build_final_plan_snapshot
from adsbook.review.patch import ReviewDecision, ReviewPatchPack
from adsbook.review.plans import build_proposal_action_refs

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


@pytest.fixture()
def plans() -> list[BulkgenPlan]:
    return [
        BulkgenPlan(
            channel="SP",
            generator="bulkgen:sp:update",
            run_id="run-1",
            actions=[
                {"type": "update_campaign_budget", "campaign_id": "C1", "new_budget": 50},
                {"type": "update_target_bid", "target_id": "T1", "new_bid": 0.75},
            ],
        ),
        BulkgenPlan(
            channel="SB",
            generator="bulkgen:sb:update",
            run_id="run-1",
            actions=[{"type": "update_campaign_state", "campaign_id": "SB1", "new_state": "paused"}],
        ),
    ]


@pytest.fixture()
def ids(plans) -> list[str]:
    return [ref.change_id for ref in build_proposal_action_refs(plans)]


def _decision(change_id: str, decision: str, **kwargs) -> ReviewDecision:
    return ReviewDecision.model_validate({"change_id": change_id, "decision": decision, **kwargs})


class TestApplyReviewPatch:
    def test_approve_everything(self, plans, ids):
        result = apply_review_patch(plans, [_decision(cid, "approve") for cid in ids])
        assert result.summary.approved_actions == 3
        assert result.summary.rejected_actions == 0
        assert [len(p.actions) for p in result.bulkgen_plans] == [2, 1]
        assert result.bulkgen_plans[0].actions[0]["change_id"] == ids[0]

    def test_missing_decision_rejects(self, plans, ids):
        result = apply_review_patch(plans, [_decision(ids[0], "approve")])
        assert result.summary.approved_actions == 1
        assert result.summary.rejected_actions == 2
        # the SB plan lost its only action and is dropped
        assert [p.channel for p in result.bulkgen_plans] == ["SP"]
        assert len(result.bulkgen_plans[0].actions) == 1

    def test_numeric_override(self, plans, ids):
        result = apply_review_patch(
            plans,
            [_decision(ids[0], "override", override_value="80", note="more room"), _decision(ids[1], "approve")],
        )
        action = result.bulkgen_plans[0].actions[0]
        assert action["new_budget"] == 80.0
        assert action["review"] == {"decision": "override", "proposed_value": 50, "note": "more room"}
        assert result.summary.overridden_actions == 1

    def test_text_override(self, plans, ids):
        result = apply_review_patch(plans, [_decision(ids[2], "modify", override={"new_value": "enabled"})])
        assert result.bulkgen_plans[0].actions[0]["new_state"] == "enabled"

    def test_unusable_override_keeps_proposal(self, plans, ids):
        result = apply_review_patch(plans, [_decision(ids[0], "override", override_value="lots")])
        assert result.bulkgen_plans[0].actions[0]["new_budget"] == 50
        assert result.summary.approved_actions == 1
        assert result.summary.overridden_actions == 0
        assert "no usable override value" in result.warnings[0]

    def test_unknown_change_id_is_ignored_with_warning(self, plans, ids):
        result = apply_review_patch(plans, [_decision("chg_unknown", "approve")])
        assert result.bulkgen_plans == []
        assert result.summary.rejected_actions == 3
        assert result.warnings == [
            "Patch decision ignored; change_id not found in proposal: chg_unknown"
        ]

    def test_reject_all_yields_no_plans(self, plans, ids):
        result = apply_review_patch(plans, [_decision(cid, "reject") for cid in ids])
        assert result.bulkgen_plans == []
        assert result.summary.actions_total == 3

    def test_proposal_is_not_modified(self, plans, ids):
        before = [p.model_dump() for p in plans]
        apply_review_patch(plans, [_decision(ids[0], "override", override_value=99)])
        assert [p.model_dump() for p in plans] == before


class TestFinalPlanSnapshot:
    def _patch(self, ids: list[str]) -> ReviewPatchPack:
        return ReviewPatchPack.model_validate(
            {
                "kind": "aph_review_patch_pack_v1",
                "pack_id": "patch_1",
                "created_at": "2026-03-02T10:00:00Z",
                "experiment_id": "exp-1",
                "decisions": [{"change_id": ids[0], "decision": "approve"}],
            }
        )

    def test_pack_id_is_deterministic(self, plans, ids):
        first = build_final_plan_snapshot(plans, self._patch(ids), now=NOW)
        second = build_final_plan_snapshot(plans, self._patch(ids), now=datetime.now(UTC))
        assert first.pack_id == second.pack_id
        assert first.pack_id.startswith("final_")

    def test_snapshot_fields(self, plans, ids):
        final = build_final_plan_snapshot(plans, self._patch(ids), now=NOW)
        assert final.source == "review_patch_applied"
        assert final.review_patch_pack_id == "patch_1"
        assert final.created_at == NOW.isoformat()
        assert final.bulkgen_plans[0]["generator"] == "bulkgen:sp:update"
        assert final.summary.approved_actions == 1

    def test_different_decisions_change_pack_id(self, plans, ids):
        approve_one = build_final_plan_snapshot(plans, self._patch(ids), now=NOW)
        patch = self._patch(ids).model_copy(
            update={"decisions": [_decision(cid, "approve") for cid in ids]}
        )
        approve_all = build_final_plan_snapshot(plans, patch, now=NOW)
        assert approve_one.pack_id != approve_all.pack_id
