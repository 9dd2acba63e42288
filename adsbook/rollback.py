"""Deterministic rollback packs built from the before/after snapshots of linked changes.

Each rollable change carries ``after_json.dedupe_key`` of the form
``source_run::generator::entity::campaign::ad_group::target::...``. The
entity label (or, failing that, the shape of ``before_json``) decides which
update actions restore the previous values.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Literal

import structlog

from adsbook.review.plans import clean_text, coerce_number

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

logger = structlog.get_logger()

ROLLBACK_PACK_KIND = "experiment_output_pack"
ROLLBACK_CHANGE_TYPE = "rollback"

SP_UPDATE = "bulkgen:sp:update"
SB_UPDATE = "bulkgen:sb:update"
_CHANNEL_BY_GENERATOR = {SP_UPDATE: "SP", SB_UPDATE: "SB"}

EntityKind = Literal["campaign", "ad_group", "target", "placement", "unknown"]


@dataclass(frozen=True, slots=True)
class DedupeIdentity:
    source_run_id: str | None
    generator: str | None
    entity: str
    campaign_id: str | None
    ad_group_id: str | None
    target_id: str | None


@dataclass(slots=True)
class ResolvedRollback:
    channel: str | None = None
    generator: str | None = None
    actions: list[dict[str, Any]] = field(default_factory=list)
    source_run_id: str | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.channel is not None and bool(self.actions)


def parse_dedupe_identity(value: str | None) -> DedupeIdentity | None:
    if not value:
        return None
    parts = value.split("::")
    if len(parts) < 7:
        return None
    return DedupeIdentity(
        source_run_id=clean_text(parts[0]),
        generator=clean_text(parts[1]),
        entity=parts[2],
        campaign_id=clean_text(parts[3]),
        ad_group_id=clean_text(parts[4]),
        target_id=clean_text(parts[5]),
    )


def classify_entity(entity: str) -> EntityKind:
    normalized = entity.strip().lower()
    if not normalized:
        return "unknown"
    if "campaign" in normalized:
        return "campaign"
    if "ad group" in normalized:
        return "ad_group"
    if "keyword" in normalized or "target" in normalized:
        return "target"
    if "bidding adjustment" in normalized or "placement" in normalized:
        return "placement"
    return "unknown"


def infer_entity_kind(before: Mapping[str, Any], identity: DedupeIdentity | None) -> EntityKind:
    kind = classify_entity(identity.entity if identity else "")
    if kind != "unknown":
        return kind
    if "percentage" in before:
        return "placement"
    if identity is None:
        return "unknown"
    if identity.target_id:
        return "target"
    if identity.ad_group_id:
        return "ad_group"
    if identity.campaign_id:
        return "campaign"
    return "unknown"


def _upper(value: Any) -> str | None:
    text = clean_text(value)
    return text.upper() if text else None


def build_rollback_actions(
    channel: str,
    kind: EntityKind,
    before: Mapping[str, Any],
    after: Mapping[str, Any],
    identity: DedupeIdentity | None,
) -> tuple[list[dict[str, Any]], list[str]]:
    """Update actions that restore ``before`` for one entity, plus warnings."""
    actions: list[dict[str, Any]] = []
    warnings: list[str] = []
    campaign_id = identity.campaign_id if identity else None
    ad_group_id = identity.ad_group_id if identity else None
    target_id = identity.target_id if identity else None

    if kind == "campaign":
        budget = coerce_number(before.get("daily_budget"))
        state = clean_text(before.get("state"))
        strategy = clean_text(before.get("bidding_strategy"))
        if not campaign_id:
            warnings.append("campaign_id missing in dedupe metadata.")
        else:
            if budget is not None:
                actions.append(
                    {"type": "update_campaign_budget", "campaign_id": campaign_id, "new_budget": budget}
                )
            if state:
                actions.append(
                    {"type": "update_campaign_state", "campaign_id": campaign_id, "new_state": state}
                )
            if strategy:
                actions.append(
                    {
                        "type": "update_campaign_bidding_strategy",
                        "campaign_id": campaign_id,
                        "new_strategy": strategy,
                    }
                )
        return actions, warnings

    if kind == "ad_group":
        state = clean_text(before.get("state"))
        default_bid = coerce_number(before.get("default_bid"))
        if not ad_group_id:
            warnings.append("ad_group_id missing in dedupe metadata.")
        else:
            if state:
                actions.append(
                    {"type": "update_ad_group_state", "ad_group_id": ad_group_id, "new_state": state}
                )
            if default_bid is not None:
                bid_field = "new_bid" if channel == "SP" else "new_default_bid"
                actions.append(
                    {
                        "type": "update_ad_group_default_bid",
                        "ad_group_id": ad_group_id,
                        bid_field: default_bid,
                    }
                )
        return actions, warnings

    if kind == "target":
        state = clean_text(before.get("state"))
        bid = coerce_number(before.get("bid"))
        if not target_id:
            warnings.append("target_id missing in dedupe metadata.")
        else:
            if state:
                actions.append({"type": "update_target_state", "target_id": target_id, "new_state": state})
            if bid is not None:
                actions.append({"type": "update_target_bid", "target_id": target_id, "new_bid": bid})
        return actions, warnings

    if kind == "placement":
        percentage = coerce_number(before.get("percentage"))
        placement_code = _upper(before.get("placement_code")) or _upper(after.get("placement_code"))
        if not campaign_id:
            warnings.append("campaign_id missing in dedupe metadata.")
        if percentage is None:
            warnings.append("before_json.percentage missing for placement rollback.")
        if channel == "SP":
            if not placement_code:
                warnings.append("placement_code missing for SP placement rollback.")
            if campaign_id and placement_code and percentage is not None:
                actions.append(
                    {
                        "type": "update_placement_modifier",
                        "campaign_id": campaign_id,
                        "placement_code": placement_code,
                        "new_pct": percentage,
                    }
                )
        elif campaign_id and percentage is not None:
            action: dict[str, Any] = {"type": "update_placement_modifier", "campaign_id": campaign_id}
            if placement_code:
                action["placement_code"] = placement_code
            placement_raw = clean_text(after.get("placement_raw")) or clean_text(
                before.get("placement_raw")
            )
            if placement_raw:
                action["placement_raw"] = placement_raw
            action["new_pct"] = percentage
            actions.append(action)
        return actions, warnings

    warnings.append(f"Could not classify rollback entity type for {channel} change.")
    return actions, warnings


def resolve_rollback(change: Mapping[str, Any]) -> ResolvedRollback:
    before = change.get("before")
    if not isinstance(before, dict):
        return ResolvedRollback(warnings=["before_json is missing or not an object."])
    after = change.get("after")
    if not isinstance(after, dict):
        return ResolvedRollback(warnings=["after_json is missing or not an object."])

    identity = parse_dedupe_identity(clean_text(after.get("dedupe_key")))
    generator = clean_text(after.get("generator"))
    if generator not in _CHANNEL_BY_GENERATOR and identity is not None:
        generator = identity.generator
    if generator not in _CHANNEL_BY_GENERATOR:
        return ResolvedRollback(
            warnings=["after_json.generator is missing or unsupported for deterministic rollback."]
        )

    kind = infer_entity_kind(before, identity)
    if kind == "unknown":
        return ResolvedRollback(
            warnings=["Could not infer rollback entity from metadata and before_json."]
        )

    channel = _CHANNEL_BY_GENERATOR[generator]
    actions, warnings = build_rollback_actions(channel, kind, before, after, identity)
    if not actions:
        return ResolvedRollback(
            warnings=warnings or [f"No {channel} rollback actions were produced."]
        )
    return ResolvedRollback(
        channel=channel,
        generator=generator,
        actions=actions,
        source_run_id=identity.source_run_id if identity else None,
        warnings=warnings,
    )


def rollback_run_id(now: datetime) -> str:
    return f"rollback:{now.astimezone(UTC).strftime('%Y%m%dT%H%M%SZ')}"


def build_rollback_pack(
    experiment: Mapping[str, Any],
    changes: Iterable[Mapping[str, Any]],
    *,
    target_run_id: str | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    """Build an ``experiment_output_pack`` that reverts the experiment's linked changes.

    ``experiment`` needs ``experiment_id``, ``asin`` and ``marketplace``.
    Changes are filtered to ``target_run_id`` when given and processed in
    ``change_id`` order. Changes that cannot be rolled back deterministically
    are skipped with a ``change_id=<id>: <reason>`` warning.
    """
    now = now or datetime.now(UTC)
    run_id = rollback_run_id(now)
    warnings: list[str] = []

    def warn(message: str) -> None:
        if message not in warnings:
            warnings.append(message)

    selected = sorted(
        (c for c in changes if not target_run_id or c.get("run_id") == target_run_id),
        key=lambda c: str(c["change_id"]),
    )
    if target_run_id and not selected:
        warn(f"No changes found for target run_id={target_run_id}.")

    plans = {
        channel: {
            "channel": channel,
            "generator": generator,
            "run_id": run_id,
            "actions": [],
            "source_change_ids": [],
        }
        for generator, channel in _CHANNEL_BY_GENERATOR.items()
    }
    manual_changes: list[dict[str, Any]] = []

    for change in selected:
        change_id = str(change["change_id"])
        resolved = resolve_rollback(change)
        for reason in resolved.warnings:
            warn(f"change_id={change_id}: {reason}")
        if not resolved.ok:
            continue

        source_run_id = change.get("run_id") or resolved.source_run_id
        plan = plans[resolved.channel]
        plan["actions"].extend(resolved.actions)
        plan["source_change_ids"].append(change_id)
        manual_changes.append(
            {
                "run_id": run_id,
                "source_change_id": change_id,
                "source_run_id": source_run_id,
                "channel": change.get("channel"),
                "change_type": ROLLBACK_CHANGE_TYPE,
                "summary": f"Rollback {change_id}: {change.get('summary') or 'revert to before_json'}",
                "why": f"Deterministic rollback generated from before_json for change {change_id}.",
                "before_json": change.get("after"),
                "after_json": {
                    "run_id": run_id,
                    "generator": resolved.generator,
                    "actions": resolved.actions,
                    "rollback_of_change_id": change_id,
                    "rollback_of_run_id": source_run_id,
                },
            }
        )

    bulkgen_plans = [plan for plan in plans.values() if plan["actions"]]
    if not bulkgen_plans:
        warn("No deterministic rollback actions were generated.")

    action_count = sum(len(plan["actions"]) for plan in bulkgen_plans)
    logger.info(
        "Rollback pack built",
        experiment_id=experiment.get("experiment_id"),
        target_run_id=target_run_id,
        changes=len(selected),
        actions=action_count,
        warnings=len(warnings),
    )
    return {
        "kind": ROLLBACK_PACK_KIND,
        "generated_at": now.astimezone(UTC).isoformat().replace("+00:00", "Z"),
        "experiment": {
            "experiment_id": experiment.get("experiment_id"),
            "asin": experiment.get("asin"),
            "marketplace": experiment.get("marketplace"),
        },
        "rollback": {
            "rollback_run_id": run_id,
            "target_run_id": target_run_id,
            "source_change_count": len(selected),
            "rollback_change_count": len(manual_changes),
            "rollback_action_count": action_count,
        },
        "bulkgen_plans": bulkgen_plans,
        "manual_changes": manual_changes,
        "warnings": warnings,
    }
