"""Choose what may be handed to the bulk-sheet generator."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from adsbook.contract import contract_of
from adsbook.errors import PlanNotFinalizedError
from adsbook.models.experiment import EXECUTABLE_STATUSES, derive_status
from adsbook.review.plans import parse_executable_plans

if TYPE_CHECKING:
    from collections.abc import Mapping

    from adsbook.models.plans import BulkgenPlan


@dataclass(frozen=True, slots=True)
class ExecutionSelection:
    plans: list[BulkgenPlan]
    final_plan_pack_id: str | None
    source: str = "final_plan"


def select_plans_for_execution(scope: Mapping[str, Any] | None) -> ExecutionSelection:
    """Return the finalized plans; the proposal is never an executable fallback."""
    status = derive_status(dict(scope or {}))
    if status not in EXECUTABLE_STATUSES:
        raise PlanNotFinalizedError(
            f"Plan is not finalized (status {status}). Save review decisions and finalize "
            "to lock a final plan before execution."
        )
    final_plan = contract_of(scope).get("final_plan")
    if not isinstance(final_plan, dict):
        final_plan = {}
    plans = parse_executable_plans(final_plan.get("bulkgen_plans"))
    if not plans:
        raise PlanNotFinalizedError(
            "Final plan has no executable bulkgen plans; finalize the review before execution."
        )
    pack_id = final_plan.get("pack_id") if isinstance(final_plan.get("pack_id"), str) else None
    return ExecutionSelection(plans=plans, final_plan_pack_id=pack_id)
