"""Read-side assembly of everything known about one experiment."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from adsbook.contract import contract_of, forecast_kpi_names
from adsbook.evaluation.kiv import derive_kiv_carry_forward
from adsbook.evaluation.outcome import (
    extract_evaluation_outcome,
    normalize_outcome_score_percent,
    outcome_tone,
)
from adsbook.evaluation.timeline import build_experiment_timeline
from adsbook.evaluation.window import derive_experiment_date_window
from adsbook.review.plans import (
    build_proposal_action_refs,
    extract_proposal_plans,
    rank_and_sort_proposal_actions,
)

if TYPE_CHECKING:
    from adsbook.context import AccountContext
    from adsbook.db import Database
    from adsbook.models.experiment import Experiment


def experiment_summary(experiment: Experiment) -> dict[str, Any]:
    return {
        "experiment_id": experiment.experiment_id,
        "name": experiment.name,
        "objective": experiment.objective,
        "hypothesis": experiment.hypothesis,
        "status": experiment.status,
        "product_asin": experiment.asin,
        "marketplace": experiment.marketplace,
        "evaluation_lag_days": experiment.evaluation_lag_days,
        "evaluation_window_days": experiment.evaluation_window_days,
        "primary_metrics": experiment.primary_metrics,
        "guardrails": experiment.guardrails,
        "scope_version": experiment.scope_version,
        "created_at": experiment.created_at,
        "updated_at": experiment.updated_at,
    }


def build_experiment_detail(
    db: Database,
    ctx: AccountContext,
    experiment_id: str,
    *,
    major_limit: int = 10,
    now: datetime | None = None,
) -> dict[str, Any]:
    experiment = db.require_experiment(ctx, experiment_id)
    contract = contract_of(experiment.scope)

    plans = extract_proposal_plans(experiment.scope)
    proposal_actions = rank_and_sort_proposal_actions(
        build_proposal_action_refs(plans),
        objective=experiment.objective,
        forecast_kpis=forecast_kpi_names(contract),
    )

    changes = db.list_experiment_changes(ctx, experiment_id)
    events = db.list_events(experiment_id)
    window = derive_experiment_date_window(experiment.scope, changes)

    evaluations = []
    for evaluation in db.list_evaluations(experiment_id):
        outcome = extract_evaluation_outcome(evaluation["metrics"])
        evaluations.append(
            {
                **evaluation,
                "outcome": {
                    **outcome,
                    "score_percent": normalize_outcome_score_percent(outcome["score"]),
                    "tone": outcome_tone(outcome["score"]),
                },
            }
        )

    asin = experiment.asin
    kiv = derive_kiv_carry_forward(db.list_kiv_items(ctx, asin), now=now) if asin else None
    final_plan = contract.get("final_plan")

    return {
        "ok": True,
        "experiment": experiment_summary(experiment),
        "scope": experiment.scope,
        "contract": contract,
        "window": window.model_dump(),
        "proposal_actions": proposal_actions,
        "review_patch": contract.get("review_patch"),
        "final_plan": final_plan if isinstance(final_plan, dict) else None,
        "linked_changes": changes,
        "timeline": build_experiment_timeline(changes, events, major_limit),
        "evaluations": evaluations,
        "kiv": kiv,
    }
