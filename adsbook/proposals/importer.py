"""Create an experiment, its manual changes and KIV items from a proposal pack."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from adsbook.contract import merge_contract, normalize_scope
from adsbook.errors import PackParseError
from adsbook.metrics import experiment_transitions_total, imports_total
from adsbook.models.experiment import ExperimentStatus
from adsbook.proposals.pack import parse_product_experiment_pack
from adsbook.validation.semantic import SemanticValidator, raise_for_issues

if TYPE_CHECKING:
    from collections.abc import Mapping

    from adsbook.context import AccountContext
    from adsbook.db import Database

logger = structlog.get_logger()

CHANGE_SOURCE = "ai_output_pack"


class ProposalImporter:
    def __init__(self, db: Database):
        self.db = db

    def import_pack(
        self,
        ctx: AccountContext,
        asin: str,
        raw: str | bytes | Mapping[str, Any],
        *,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Validate shape and references, then create everything the pack describes.

        Nothing is written unless both the shape and the semantic checks pass.
        Plans are stored as the proposal inside the optimization contract and
        the experiment starts as PROPOSED; a pack without plans keeps its
        declared status.
        """
        try:
            pack = parse_product_experiment_pack(raw, asin)
        except PackParseError:
            imports_total.labels(kind="proposal", result="invalid").inc()
            raise

        plans = pack.bulkgen_plans
        semantic = SemanticValidator(self.db, ctx).validate_product_pack(
            target_asin=asin,
            pack_asin=pack.product_asin,
            plans=plans,
            manual_changes=pack.manual_changes,
        )
        if semantic.failed:
            imports_total.labels(kind="proposal", result="rejected").inc()
        raise_for_issues(semantic, "Semantic validation failed for product experiment pack.")

        created_at = (now or datetime.now(UTC)).isoformat()
        proposal = pack.experiment
        scope = normalize_scope(
            {**pack.scope_extras(), "product_id": pack.product_asin, "status": proposal.scope.status}
        )
        if plans:
            scope = merge_contract(
                scope,
                {
                    "proposal": {
                        "created_at": created_at,
                        "bulkgen_plans": [plan.to_document() for plan in plans],
                    }
                },
                status=ExperimentStatus.PROPOSED.value,
            )

        experiment = self.db.create_experiment(
            ctx,
            name=proposal.name,
            objective=proposal.objective,
            hypothesis=proposal.hypothesis,
            evaluation_lag_days=proposal.evaluation_lag_days,
            evaluation_window_days=proposal.evaluation_window_days,
            primary_metrics=proposal.primary_metrics,
            guardrails=proposal.guardrails,
            scope=scope,
        )
        experiment_transitions_total.labels(status=experiment.status).inc()

        change_ids = [
            self.db.create_change(
                ctx,
                channel=change.channel,
                change_type=change.change_type,
                summary=change.summary,
                why=change.why,
                source=CHANGE_SOURCE,
                occurred_at=created_at,
                entities=[entity.model_dump() for entity in change.entities],
            )
            for change in pack.manual_changes
        ]
        self.db.link_changes(experiment.experiment_id, change_ids)

        kiv_ids = [
            self.db.create_kiv_item(
                ctx,
                pack.product_asin,
                title=item.title,
                details=item.details,
                tags=item.tags,
                priority=item.priority,
                due_date=item.due_date,
                source="ai",
                source_experiment_id=experiment.experiment_id,
            )["kiv_id"]
            for item in pack.kiv_items
        ]

        imports_total.labels(kind="proposal", result="stored").inc()
        logger.info(
            "Proposal imported",
            experiment_id=experiment.experiment_id,
            asin=pack.product_asin,
            plans=len(plans),
            changes=len(change_ids),
            kiv_items=len(kiv_ids),
        )
        return {
            "ok": True,
            "experiment_id": experiment.experiment_id,
            "status": experiment.status,
            "product_asin": pack.product_asin,
            "created_change_ids": change_ids,
            "created_kiv_ids": kiv_ids,
            "warnings": semantic.warnings,
        }
