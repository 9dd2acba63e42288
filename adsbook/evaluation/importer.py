"""Evaluation import: KPI comparison, evaluation record, status and KIV updates."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypedDict

import structlog

from adsbook.contract import contract_of, normalize_contract, snapshot_contract
from adsbook.errors import PackParseError, PlanStateError
from adsbook.evaluation.kiv import normalize_kiv_title
from adsbook.evaluation.kpis import compute_experiment_kpis
from adsbook.evaluation.pack import parse_evaluation_pack
from adsbook.evaluation.window import derive_experiment_date_window
from adsbook.metrics import experiment_transitions_total, imports_total
from adsbook.models.experiment import ExperimentStatus
from adsbook.validation.semantic import SemanticValidator, raise_for_issues

if TYPE_CHECKING:
    from collections.abc import Mapping

    from adsbook.context import AccountContext
    from adsbook.db import Database, KivItemDict
    from adsbook.evaluation.pack import KivUpdate

logger = structlog.get_logger()

MISSING_WINDOW_MESSAGE = (
    "Experiment is missing scope.start_date/end_date and has no linked changes to derive "
    "a KPI window."
)


class KivApplySummary(TypedDict):
    created: int
    updated: int
    status_changed: int
    matched_by_id: int
    matched_by_title: int


class EvaluationImporter:
    """Imports one evaluation document for one experiment."""

    def __init__(self, db: Database):
        self.db = db

    def import_pack(
        self,
        ctx: AccountContext,
        experiment_id: str,
        raw: str | bytes | Mapping[str, Any],
    ) -> dict[str, Any]:
        try:
            pack = parse_evaluation_pack(raw, expected_experiment_id=experiment_id)
        except PackParseError:
            imports_total.labels(kind="evaluation", result="invalid").inc()
            raise

        experiment = self.db.require_experiment(ctx, experiment_id)
        scope_asin = experiment.asin
        if scope_asin is None:
            raise PlanStateError(
                "Experiment scope.product_id is missing; cannot validate evaluation output ASIN.",
                code="missing_product_id",
            )
        if scope_asin != pack.product_asin:
            raise PackParseError(
                f"Pack ASIN ({pack.product_asin}) does not match experiment scope.product_id "
                f"({scope_asin}).",
                code="asin_mismatch",
            )

        semantic = SemanticValidator(self.db, ctx).validate_evaluation_kiv_ids(
            scope_asin, pack.evaluation.kiv_updates
        )
        if semantic.failed:
            imports_total.labels(kind="evaluation", result="rejected").inc()
        raise_for_issues(semantic, "Semantic validation failed for evaluation output pack.")

        changes = self.db.list_experiment_changes(ctx, experiment_id)
        window = derive_experiment_date_window(experiment.scope, changes)
        if window.is_missing or window.start_date is None or window.end_date is None:
            raise PlanStateError(MISSING_WINDOW_MESSAGE, code="missing_window")

        kpis = compute_experiment_kpis(
            lambda start, end: self.db.product_sales_rows(ctx, scope_asin, start, end),
            window.start_date,
            window.end_date,
            experiment.evaluation_lag_days or 0,
        )
        contract = normalize_contract(contract_of(experiment.scope), default_workflow_mode=True)
        evaluation = pack.evaluation
        metrics = {
            "computed_kpis": kpis,
            "outcome": evaluation.outcome.model_dump(),
            "summary": evaluation.summary,
            "why": evaluation.why,
            "next_steps": evaluation.next_steps,
            "notes": evaluation.notes,
            "window_source": window.source,
            "proposal_contract_snapshot": snapshot_contract(contract),
        }
        test_window = kpis["windows"]["test"]

        scope: dict[str, Any] | None = None
        if evaluation.mark_complete and experiment.status != ExperimentStatus.EVALUATED:
            scope = {
                **experiment.scope,
                "status": ExperimentStatus.EVALUATED.value,
                "outcome_summary": evaluation.summary,
            }
        evaluation_id = self.db.insert_evaluation(
            ctx,
            experiment_id,
            window_start=test_window["start_date"],
            window_end=test_window["end_date"],
            metrics=metrics,
            notes=evaluation.summary,
            scope=scope,
            expected_version=experiment.scope_version,
        )
        status_updated = scope is not None
        if status_updated:
            experiment_transitions_total.labels(status=ExperimentStatus.EVALUATED.value).inc()

        warnings: list[str] = []
        kiv_summary = self._apply_kiv_updates(
            ctx, scope_asin, experiment_id, evaluation.kiv_updates, warnings
        )
        imports_total.labels(kind="evaluation", result="stored").inc()
        logger.info(
            "Evaluation imported",
            experiment_id=experiment_id,
            evaluation_id=evaluation_id,
            score=evaluation.outcome.score,
            window_source=window.source,
            status_updated=status_updated,
        )
        return {
            "ok": True,
            "evaluation_id": evaluation_id,
            "experiment_id": experiment_id,
            "product_asin": scope_asin,
            "status_updated": status_updated,
            "outcome_score": evaluation.outcome.score,
            "outcome_label": evaluation.outcome.label,
            "test_window_start": test_window["start_date"],
            "test_window_end": test_window["end_date"],
            "window_source": window.source,
            "applied": {"kiv": kiv_summary},
            "warnings": warnings,
        }

    def _apply_kiv_updates(
        self,
        ctx: AccountContext,
        asin: str,
        experiment_id: str,
        updates: list[KivUpdate],
        warnings: list[str],
    ) -> KivApplySummary:
        """Match each update by id, then by normalized title among open items, else create."""
        summary = KivApplySummary(
            created=0, updated=0, status_changed=0, matched_by_id=0, matched_by_title=0
        )
        if not updates:
            return summary

        items = self.db.list_kiv_items(ctx, asin)
        by_id: dict[str, KivItemDict] = {item["kiv_id"]: item for item in items}
        open_by_title: dict[str, KivItemDict] = {}
        for item in items:  # newest first, so the newest open item wins a title
            if item["status"] == "open" and item["title"].strip():
                open_by_title.setdefault(normalize_kiv_title(item["title"]), item)

        for update in updates:
            if update.kiv_id:
                current = by_id.get(update.kiv_id)
                if current is None:
                    warnings.append(f"KIV update skipped; kiv_id not found: {update.kiv_id}")
                    continue
                matched_by = "id"
            else:
                title = update.title or ""
                current = open_by_title.get(normalize_kiv_title(title))
                if current is None:
                    created = self.db.create_kiv_item(
                        ctx,
                        asin,
                        title=title,
                        source="ai",
                        source_experiment_id=experiment_id,
                        status=update.status,
                        resolution_notes=update.resolution_notes,
                    )
                    summary["created"] += 1
                    warnings.append(
                        "Created new KIV item from evaluation update (no open title match): "
                        f"{title}"
                    )
                    if created["status"] == "open":
                        open_by_title[normalize_kiv_title(title)] = created
                    continue
                matched_by = "title"

            updated = self.db.update_kiv_item(
                ctx,
                current["kiv_id"],
                status=update.status,
                resolution_notes=update.resolution_notes,
            )
            summary["updated"] += 1
            summary[f"matched_by_{matched_by}"] += 1  # type: ignore[literal-required]
            if current["status"] != update.status:
                summary["status_changed"] += 1
            by_id[updated["kiv_id"]] = updated
            normalized = normalize_kiv_title(updated["title"])
            if updated["status"] == "open":
                open_by_title[normalized] = updated
            else:
                open_by_title.pop(normalized, None)
        return summary
