"""Semantic boundary gate.

Shape validation proves a document is well-formed; this module proves that
what it references exists and belongs to the current account, marketplace
and product. Entity lookups go across all accounts so a wrong-account id is
reported as a scope mismatch rather than as missing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

import structlog
from pydantic import BaseModel, ConfigDict

from adsbook.errors import SemanticValidationError
from adsbook.metrics import semantic_issues_total
from adsbook.review.plans import build_proposal_action_refs

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from adsbook.context import AccountContext
    from adsbook.models.plans import BulkgenPlan
    from adsbook.protocols import EntityLookupPort

logger = structlog.get_logger()

IssueCode = Literal[
    "entity_not_found",
    "entity_scope_mismatch",
    "product_not_found",
    "patch_change_id_not_found",
    "patch_change_id_duplicate",
    "kiv_id_not_found",
    "kiv_id_scope_mismatch",
]

REC_NOT_FOUND = (
    "Regenerate the pack from the latest baseline data, or switch to the correct "
    "account/marketplace."
)
REC_MISSING_ID = "Regenerate the AI pack so each action has required IDs."
REC_WRONG_ACCOUNT = "Switch to the correct account/marketplace before retrying the import."
REC_WRONG_ASIN = (
    "Regenerate the pack for this ASIN, or remove cross-product actions and use the correct "
    "experiment scope."
)
REC_WRONG_KIV = (
    "Pick KIV items for the correct ASIN, then regenerate and re-upload evaluation output."
)

CAMPAIGN_ACTIONS = frozenset(
    {
        "update_campaign_budget",
        "update_campaign_state",
        "update_campaign_bidding_strategy",
        "update_placement_modifier",
    }
)
AD_GROUP_ACTIONS = frozenset({"update_ad_group_state", "update_ad_group_default_bid"})
TARGET_ACTIONS = frozenset({"update_target_bid", "update_target_state"})

_ENTITY_LABELS = {"campaign": "campaign_id", "ad_group": "ad_group_id", "target": "target_id"}
_CHANNELS = ("SP", "SB", "SD")


class SemanticIssue(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: IssueCode
    field: str
    id: str
    message: str
    recommendation: str
    channel: str | None = None
    context: dict[str, Any] | None = None


@dataclass(slots=True)
class SemanticResult:
    issues: list[SemanticIssue] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return bool(self.issues)

    def add_warning(self, warning: str) -> None:
        if warning not in self.warnings:
            self.warnings.append(warning)


def format_issues_for_error(
    issues: list[SemanticIssue], prefix: str = "Semantic validation failed."
) -> str:
    """First six issues as ``field (id): message`` lines, then a remainder count."""
    if not issues:
        return prefix
    lines = [f"{i.field}{f' ({i.id})' if i.id else ''}: {i.message}" for i in issues[:6]]
    suffix = f"\n- ...and {len(issues) - 6} more issue(s)." if len(issues) > 6 else ""
    return f"{prefix}\n- " + "\n- ".join(lines) + suffix


def raise_for_issues(result: SemanticResult, prefix: str = "Semantic validation failed.") -> None:
    """Raise SemanticValidationError carrying every issue, or return when there are none."""
    if not result.failed:
        return
    for issue in result.issues:
        semantic_issues_total.labels(code=issue.code).inc()
    logger.warning(
        "Semantic validation rejected import",
        issues=len(result.issues),
        codes=sorted({i.code for i in result.issues}),
    )
    raise SemanticValidationError(
        format_issues_for_error(result.issues, prefix), result.issues, result.warnings
    )


def _clean(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _decision_change_id(decision: Any) -> str:
    if isinstance(decision, dict):
        return _clean(decision.get("change_id"))
    return _clean(getattr(decision, "change_id", None))


def validate_review_patch_decision_ids(
    decisions: Iterable[Any], plans: Iterable[BulkgenPlan]
) -> list[SemanticIssue]:
    """Every decision must name exactly one action of this experiment's proposal."""
    valid = {ref.change_id for ref in build_proposal_action_refs(plans)}
    seen: set[str] = set()
    issues: list[SemanticIssue] = []
    for index, decision in enumerate(decisions):
        change_id = _decision_change_id(decision)
        field_path = f"patch.decisions[{index}].change_id"
        if not change_id:
            issues.append(
                SemanticIssue(
                    code="patch_change_id_not_found",
                    field=field_path,
                    id="",
                    message="Missing change_id in review patch decision.",
                    recommendation="Download a fresh review patch pack and apply edits to its "
                    "existing change_id values.",
                )
            )
            continue
        if change_id in seen:
            issues.append(
                SemanticIssue(
                    code="patch_change_id_duplicate",
                    field=field_path,
                    id=change_id,
                    message=f"Duplicate change_id {change_id} in review patch decisions.",
                    recommendation="Keep one decision per change_id and re-upload the patch pack.",
                )
            )
            continue
        seen.add(change_id)
        if change_id not in valid:
            issues.append(
                SemanticIssue(
                    code="patch_change_id_not_found",
                    field=field_path,
                    id=change_id,
                    message=f"change_id {change_id} is not present in the experiment proposal plan.",
                    recommendation="Regenerate or re-download the patch pack for this exact "
                    "experiment before editing.",
                )
            )
    return issues


class SemanticValidator:
    """Checks import references against the record store for one account context."""

    def __init__(self, lookup: EntityLookupPort, ctx: AccountContext):
        self.lookup = lookup
        self.ctx = ctx
        self._asin_campaigns: dict[tuple[str, str], set[str]] = {}

    # --- Entity checks ---

    def check_entity(
        self, channel: str, entity_type: str, entity_id: str, field_path: str
    ) -> tuple[SemanticIssue | None, str | None]:
        """Return ``(issue, owning campaign id)`` for an ad entity reference."""
        entity_id = entity_id.strip()
        if not entity_id:
            return (
                SemanticIssue(
                    code="entity_not_found",
                    field=field_path,
                    id="",
                    channel=channel,
                    message=f"Missing {field_path}.",
                    recommendation=REC_MISSING_ID,
                ),
                None,
            )

        label = _ENTITY_LABELS.get(entity_type, entity_type)
        matches = self.lookup.find_entities(channel, entity_type, entity_id)
        in_scope = [m for m in matches if self.ctx.matches(m["account_id"], m["marketplace"])]
        if in_scope:
            return None, in_scope[0]["campaign_id"]
        if matches:
            other = matches[0]
            return (
                SemanticIssue(
                    code="entity_scope_mismatch",
                    field=field_path,
                    id=entity_id,
                    channel=channel,
                    message=f"{channel} {label} {entity_id} belongs to account "
                    f"{other['account_id']}/{other['marketplace']}, not "
                    f"{self.ctx.account_id}/{self.ctx.marketplace}.",
                    recommendation=REC_WRONG_ACCOUNT,
                    context={
                        "account_id": other["account_id"],
                        "marketplace": other["marketplace"],
                    },
                ),
                None,
            )
        return (
            SemanticIssue(
                code="entity_not_found",
                field=field_path,
                id=entity_id,
                channel=channel,
                message=f"{channel} {label} {entity_id} was not found for this account.",
                recommendation=REC_NOT_FOUND,
            ),
            None,
        )

    def check_asin_scope(
        self, channel: str, campaign_id: str, asin: str, field_path: str, result: SemanticResult
    ) -> None:
        """Flag campaigns that do not advertise ``asin``; skip with a warning when none do."""
        key = (channel, asin)
        if key not in self._asin_campaigns:
            self._asin_campaigns[key] = set(
                self.lookup.campaign_ids_for_asin(self.ctx, channel, asin)
            )
        campaigns = self._asin_campaigns[key]
        if not campaigns:
            result.add_warning(
                f"Skipped strict ASIN scope check for {channel}; no campaign candidates found "
                f"for ASIN {asin}."
            )
            return
        if campaign_id not in campaigns:
            result.issues.append(
                SemanticIssue(
                    code="entity_scope_mismatch",
                    field=field_path,
                    id=campaign_id,
                    channel=channel,
                    message=f"{channel} campaign_id {campaign_id} does not belong to ASIN scope "
                    f"{asin}.",
                    recommendation=REC_WRONG_ASIN,
                )
            )

    def _check_scoped(
        self,
        channel: str,
        entity_type: str,
        entity_id: str,
        asin: str,
        field_path: str,
        result: SemanticResult,
    ) -> None:
        issue, campaign_id = self.check_entity(channel, entity_type, entity_id, field_path)
        if issue is not None:
            result.issues.append(issue)
            return
        if entity_type == "campaign":
            campaign_id = entity_id.strip()
        if campaign_id:
            self.check_asin_scope(channel, campaign_id, asin, field_path, result)

    # --- Documents ---

    def validate_product_pack(
        self,
        *,
        target_asin: str,
        pack_asin: str,
        plans: Iterable[BulkgenPlan],
        manual_changes: Iterable[Any] = (),
    ) -> SemanticResult:
        """Check a product-experiment proposal before anything is created."""
        result = SemanticResult()
        asin = pack_asin.strip().upper()
        route_asin = target_asin.strip().upper()
        if asin != route_asin:
            result.issues.append(
                SemanticIssue(
                    code="entity_scope_mismatch",
                    field="product.asin",
                    id=asin,
                    message=f"Pack ASIN {asin} does not match selected product ASIN {route_asin}.",
                    recommendation="Import the pack for the matching product, or regenerate the "
                    "pack for this ASIN.",
                )
            )
        if self.lookup.get_product(self.ctx, asin) is None:
            result.issues.append(
                SemanticIssue(
                    code="product_not_found",
                    field="product.asin",
                    id=asin,
                    message=f"ASIN {asin} was not found in products for this "
                    "account/marketplace.",
                    recommendation="Seed or sync the product first, then regenerate the pack "
                    "from the same account/marketplace.",
                )
            )

        for plan_index, plan in enumerate(plans):
            for action_index, action in enumerate(plan.actions):
                base = f"experiment.scope.bulkgen_plans[{plan_index}].actions[{action_index}]"
                kind = _clean(action.get("type"))
                if kind in CAMPAIGN_ACTIONS:
                    entity_type, key = "campaign", "campaign_id"
                elif kind in AD_GROUP_ACTIONS:
                    entity_type, key = "ad_group", "ad_group_id"
                elif kind in TARGET_ACTIONS:
                    entity_type, key = "target", "target_id"
                else:
                    continue
                self._check_scoped(
                    plan.channel,
                    entity_type,
                    _clean(action.get(key)),
                    asin,
                    f"{base}.{key}",
                    result,
                )

        for change_index, change in enumerate(manual_changes):
            self._validate_manual_change(change_index, change, asin, result)
        return result

    def _validate_manual_change(
        self, change_index: int, change: Any, asin: str, result: SemanticResult
    ) -> None:
        channel = _clean(change.channel).upper()
        for entity_index, entity in enumerate(change.entities):
            base = f"manual_changes[{change_index}].entities[{entity_index}]"
            entity_asin = _clean(entity.product_id).upper()
            if entity_asin and entity_asin != asin:
                result.issues.append(
                    SemanticIssue(
                        code="entity_scope_mismatch",
                        field=f"{base}.product_id",
                        id=entity_asin,
                        message=f"Entity product_id {entity_asin} does not match experiment "
                        f"ASIN {asin}.",
                        recommendation=REC_WRONG_ASIN,
                    )
                )

            has_ids = any(
                (entity.campaign_id, entity.ad_group_id, entity.target_id, entity.keyword_id)
            )
            if channel not in _CHANNELS:
                if has_ids:
                    result.add_warning(
                        f"Skipped strict semantic validation for {base} because channel "
                        f"{change.channel} is not SP/SB/SD."
                    )
                continue

            if entity.campaign_id:
                self._check_scoped(
                    channel, "campaign", entity.campaign_id, asin, f"{base}.campaign_id", result
                )
            if entity.ad_group_id:
                issue, _ = self.check_entity(
                    channel, "ad_group", entity.ad_group_id, f"{base}.ad_group_id"
                )
                if issue is not None:
                    result.issues.append(issue)
            target_id = _clean(entity.target_id) or _clean(entity.keyword_id)
            if target_id:
                key = "target_id" if _clean(entity.target_id) else "keyword_id"
                issue, _ = self.check_entity(channel, "target", target_id, f"{base}.{key}")
                if issue is not None:
                    result.issues.append(issue)

    def validate_evaluation_kiv_ids(
        self, asin: str, kiv_updates: Iterable[Mapping[str, Any] | Any]
    ) -> SemanticResult:
        """Every referenced ``kiv_id`` must exist here and belong to ``asin``."""
        result = SemanticResult()
        asin_norm = asin.strip().upper()
        updates = list(kiv_updates)
        ids = [
            kiv_id
            for kiv_id in (_clean(_get(update, "kiv_id")) for update in updates)
            if kiv_id
        ]
        if not ids:
            return result
        found = {item["kiv_id"]: item for item in self.lookup.get_kiv_items_by_ids(self.ctx, ids)}

        for index, update in enumerate(updates):
            kiv_id = _clean(_get(update, "kiv_id"))
            if not kiv_id:
                continue
            field_path = f"evaluation.kiv_updates[{index}].kiv_id"
            item = found.get(kiv_id)
            if item is None:
                result.issues.append(
                    SemanticIssue(
                        code="kiv_id_not_found",
                        field=field_path,
                        id=kiv_id,
                        message=f"kiv_id {kiv_id} was not found for this account/marketplace.",
                        recommendation=REC_WRONG_KIV,
                    )
                )
                continue
            item_asin = (item["asin_norm"] or "").strip().upper()
            if item_asin and item_asin != asin_norm:
                result.issues.append(
                    SemanticIssue(
                        code="kiv_id_scope_mismatch",
                        field=field_path,
                        id=kiv_id,
                        message=f"kiv_id {kiv_id} belongs to ASIN {item_asin}, not {asin_norm}.",
                        recommendation=REC_WRONG_KIV,
                    )
                )
        return result


def _get(value: Any, key: str) -> Any:
    if isinstance(value, dict):
        return value.get(key)
    return getattr(value, key, None)
