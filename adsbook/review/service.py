"""Review workflow: store a patch, finalize the plan, hand it off for execution."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

import structlog

from adsbook.contract import contract_of, merge_contract, normalize_scope
from adsbook.errors import PackParseError, PlanStateError
from adsbook.metrics import experiment_transitions_total, imports_total
from adsbook.models.experiment import REVIEWABLE_STATUSES, ExperimentStatus
from adsbook.review.merge import build_final_plan_snapshot
from adsbook.review.patch import parse_review_patch_pack
from adsbook.review.plans import extract_proposal_plans
from adsbook.review.selection import select_plans_for_execution
from adsbook.validation.semantic import (
    SemanticResult,
    raise_for_issues,
    validate_review_patch_decision_ids,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from adsbook.context import AccountContext
    from adsbook.db import Database
    from adsbook.models.experiment import Experiment
    from adsbook.models.plans import BulkgenPlan

logger = structlog.get_logger()

FINALIZABLE_STATUSES = frozenset({ExperimentStatus.REVIEWED, ExperimentStatus.FINALIZED})


class ReviewService:
    """Drives an experiment from PROPOSED through REVIEWED and FINALIZED to EXECUTED.

    Every write re-reads the experiment and stores the new scope with a
    compare-and-set on ``scope_version``, so concurrent writers get a
    ScopeConflictError instead of silently overwriting each other.
    """

    def __init__(self, db: Database):
        self.db = db

    def _proposal_plans(self, experiment: Experiment) -> list[BulkgenPlan]:
        plans = extract_proposal_plans(experiment.scope)
        if not plans:
            raise PlanStateError(
                "Proposal bulkgen plans are missing; nothing to review.",
                code="missing_proposal_plans",
            )
        return plans

    def _write_scope(
        self, ctx: AccountContext, experiment: Experiment, scope: dict[str, Any]
    ) -> Experiment:
        updated = self.db.update_experiment_scope(
            ctx, experiment.experiment_id, scope, experiment.scope_version
        )
        if updated.status != experiment.status:
            experiment_transitions_total.labels(status=updated.status).inc()
            logger.info(
                "Experiment status changed",
                experiment_id=experiment.experiment_id,
                from_status=experiment.status,
                to_status=updated.status,
            )
        return updated

    def store_review_patch(
        self,
        ctx: AccountContext,
        experiment_id: str,
        raw: str | bytes | Mapping[str, Any],
        *,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Validate and store a review patch; the experiment becomes REVIEWED."""
        try:
            pack = parse_review_patch_pack(raw, expected_experiment_id=experiment_id)
        except PackParseError:
            imports_total.labels(kind="review_patch", result="invalid").inc()
            raise

        experiment = self.db.require_experiment(ctx, experiment_id)
        plans = self._proposal_plans(experiment)
        if experiment.status not in REVIEWABLE_STATUSES:
            raise PlanStateError(
                f"Experiment is {experiment.status}; review decisions can only be changed "
                "while the plan is PROPOSED or REVIEWED.",
                code="plan_already_finalized",
            )

        issues = validate_review_patch_decision_ids(pack.decisions, plans)
        if issues:
            imports_total.labels(kind="review_patch", result="rejected").inc()
        raise_for_issues(
            SemanticResult(issues=issues), "Semantic validation failed for review patch pack."
        )

        preview = build_final_plan_snapshot(plans, pack, now=now)
        scope = merge_contract(
            normalize_scope(experiment.scope),
            {"review_patch": pack.to_document()},
            status=ExperimentStatus.REVIEWED.value,
        )
        updated = self._write_scope(ctx, experiment, scope)
        imports_total.labels(kind="review_patch", result="stored").inc()
        logger.info(
            "Review patch stored",
            experiment_id=experiment_id,
            review_patch_pack_id=pack.pack_id,
            decisions=len(pack.decisions),
        )
        return {
            "ok": True,
            "experiment_id": experiment_id,
            "review_patch_pack_id": pack.pack_id,
            "status": updated.status,
            "product_asin": updated.asin,
            "summary": preview.summary.model_dump(),
            "warnings": preview.warnings,
        }

    def finalize_plan(
        self, ctx: AccountContext, experiment_id: str, *, now: datetime | None = None
    ) -> dict[str, Any]:
        """Re-run the merge from the stored patch and lock the result as the final plan."""
        experiment = self.db.require_experiment(ctx, experiment_id)
        stored = contract_of(experiment.scope).get("review_patch")
        if not isinstance(stored, dict):
            raise PlanStateError(
                "Review patch is missing. Save review decisions before finalizing.",
                code="missing_review_patch",
            )
        try:
            pack = parse_review_patch_pack(stored, expected_experiment_id=experiment_id)
        except PackParseError as exc:
            raise PlanStateError(
                f"Stored review patch is invalid: {exc.message}", code="invalid_review_patch"
            ) from exc

        plans = self._proposal_plans(experiment)
        if experiment.status not in FINALIZABLE_STATUSES:
            raise PlanStateError(
                f"Experiment is {experiment.status}; only a REVIEWED plan can be finalized.",
                code="invalid_status",
            )

        final_plan = build_final_plan_snapshot(plans, pack, now=now)
        scope = merge_contract(
            normalize_scope(experiment.scope),
            {"review_patch": pack.to_document(), "final_plan": final_plan.model_dump()},
            status=ExperimentStatus.FINALIZED.value,
        )
        self._write_scope(ctx, experiment, scope)
        logger.info(
            "Plan finalized",
            experiment_id=experiment_id,
            final_plan_pack_id=final_plan.pack_id,
            approved=final_plan.summary.approved_actions,
            overridden=final_plan.summary.overridden_actions,
            rejected=final_plan.summary.rejected_actions,
        )
        return {
            "ok": True,
            "experiment_id": experiment_id,
            "final_plan_pack_id": final_plan.pack_id,
            "summary": final_plan.summary.model_dump(),
            "warnings": final_plan.warnings,
        }

    def hand_off_for_execution(self, ctx: AccountContext, experiment_id: str) -> dict[str, Any]:
        """Return the final plans for the bulk-sheet generator and mark the experiment EXECUTED."""
        experiment = self.db.require_experiment(ctx, experiment_id)
        selection = select_plans_for_execution(experiment.scope)
        if experiment.status == ExperimentStatus.FINALIZED:
            scope = dict(experiment.scope)
            scope["status"] = ExperimentStatus.EXECUTED.value
            self._write_scope(ctx, experiment, scope)
        return {
            "ok": True,
            "experiment_id": experiment_id,
            "final_plan_pack_id": selection.final_plan_pack_id,
            "bulkgen_plans": [plan.to_document() for plan in selection.plans],
        }
