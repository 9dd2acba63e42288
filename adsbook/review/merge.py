"""Deterministic merge of a review decision set into the proposal plans."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from adsbook.models.plans import BulkgenPlan, FinalPlan, FinalPlanSummary
from adsbook.packs import compact_json
from adsbook.review.plans import (
    build_proposal_action_refs,
    clean_text,
    coerce_number,
    fnv1a32_hex,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from adsbook.models.plans import ProposalActionRef
    from adsbook.review.patch import ReviewDecision, ReviewPatchPack


@dataclass(frozen=True, slots=True)
class MergeResult:
    bulkgen_plans: list[BulkgenPlan] = field(default_factory=list)
    summary: FinalPlanSummary = field(default_factory=FinalPlanSummary)
    warnings: list[str] = field(default_factory=list)


def _override_action(
    ref: ProposalActionRef, decision: ReviewDecision
) -> dict[str, Any] | None:
    """Return the overridden action, or None when the override value is unusable."""
    if ref.numeric_field is not None:
        value: Any = coerce_number(decision.override_value)
        target_field = ref.numeric_field
        proposed = ref.action.get(ref.numeric_field)
    elif ref.text_field is not None:
        value = clean_text(decision.override_value)
        target_field = ref.text_field
        proposed = ref.action.get(ref.text_field)
    else:
        return None
    if value is None:
        return None

    review: dict[str, Any] = {"decision": "override", "proposed_value": proposed}
    if decision.note:
        review["note"] = decision.note
    return {**ref.action, target_field: value, "change_id": ref.change_id, "review": review}


def apply_review_patch(
    plans: Iterable[BulkgenPlan], decisions: Iterable[ReviewDecision]
) -> MergeResult:
    """Apply one decision per action; an action without a decision is rejected.

    The proposal itself is never modified. Plans whose actions were all
    rejected are dropped from the result.
    """
    plans = list(plans)
    refs = build_proposal_action_refs(plans)
    ref_by_id = {ref.change_id: ref for ref in refs}
    ref_by_position = {(ref.plan_index, ref.action_index): ref for ref in refs}

    warnings: list[str] = []
    decision_by_id: dict[str, ReviewDecision] = {}
    for decision in decisions:
        if decision.change_id not in ref_by_id:
            warnings.append(
                f"Patch decision ignored; change_id not found in proposal: {decision.change_id}"
            )
            continue
        decision_by_id[decision.change_id] = decision

    approved = overridden = rejected = 0
    merged: list[BulkgenPlan] = []
    for plan_index, plan in enumerate(plans):
        actions: list[dict[str, Any]] = []
        for action_index in range(len(plan.actions)):
            ref = ref_by_position[(plan_index, action_index)]
            decision = decision_by_id.get(ref.change_id)
            if decision is None or decision.decision == "reject":
                rejected += 1
                continue
            if decision.decision == "override":
                updated = _override_action(ref, decision)
                if updated is not None:
                    overridden += 1
                    actions.append(updated)
                    continue
                warnings.append(
                    f"Change {ref.change_id} requested override but no usable override value "
                    "was provided; action kept as proposed."
                )
            approved += 1
            actions.append({**ref.action, "change_id": ref.change_id})
        if actions:
            merged.append(plan.model_copy(update={"actions": actions}))

    return MergeResult(
        bulkgen_plans=merged,
        summary=FinalPlanSummary(
            actions_total=len(refs),
            approved_actions=approved,
            overridden_actions=overridden,
            rejected_actions=rejected,
        ),
        warnings=warnings,
    )


def build_final_plan_snapshot(
    plans: Iterable[BulkgenPlan],
    patch_pack: ReviewPatchPack,
    now: datetime | None = None,
) -> FinalPlan:
    """Merge and wrap the result; ``pack_id`` hashes the patch id and the merged plans."""
    result = apply_review_patch(plans, patch_pack.decisions)
    documents = [plan.to_document() for plan in result.bulkgen_plans]
    digest = fnv1a32_hex(
        compact_json({"review_patch_pack_id": patch_pack.pack_id, "bulkgen_plans": documents})
    )
    return FinalPlan(
        pack_id=f"final_{digest}",
        created_at=(now or datetime.now(UTC)).isoformat(),
        review_patch_pack_id=patch_pack.pack_id,
        summary=result.summary,
        warnings=result.warnings,
        bulkgen_plans=documents,
    )
