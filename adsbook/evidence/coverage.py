"""Greedy spend-coverage selection of SP campaigns and targets."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from adsbook.models.evidence import CoverageSelection

if TYPE_CHECKING:
    from collections.abc import Sequence


def _spend(row: dict[str, Any]) -> float:
    value = float(row.get("spend") or 0)
    return value if math.isfinite(value) else 0.0


def _select_until_coverage(
    rows: Sequence[dict[str, Any]], limit: int, required_spend: float
) -> tuple[list[dict[str, Any]], float]:
    selected: list[dict[str, Any]] = []
    spend = 0.0
    for row in rows:
        if len(selected) >= limit:
            break
        selected.append(row)
        spend += _spend(row)
        if required_spend > 0 and spend >= required_spend:
            break
    return selected, spend


def sum_spend(rows: Sequence[dict[str, Any]]) -> float:
    return sum(_spend(row) for row in rows)


def select_rows_for_coverage(
    mapped_spend_total: float,
    campaign_rows: Sequence[dict[str, Any]],
    target_rows: Sequence[dict[str, Any]],
    campaign_limit: int = 50,
    target_limit: int = 500,
    coverage_threshold: float = 0.95,
) -> CoverageSelection:
    """Pick the fewest highest-spend rows that reach ``coverage_threshold`` of mapped spend.

    Targets are only drawn from the selected campaigns (or from every
    campaign when none was selected). Limits always win over coverage.
    """
    mapped = float(mapped_spend_total) if math.isfinite(mapped_spend_total) else 0.0
    mapped = max(0.0, mapped)
    required = mapped * coverage_threshold

    # sorted() is stable, so equal-spend rows keep their input order
    campaigns_sorted = sorted(campaign_rows, key=_spend, reverse=True)
    targets_sorted = sorted(target_rows, key=_spend, reverse=True)

    campaigns, campaign_spend = _select_until_coverage(campaigns_sorted, campaign_limit, required)
    campaign_ids = {row.get("campaign_id") for row in campaigns}
    if campaign_ids:
        targets_sorted = [row for row in targets_sorted if row.get("campaign_id") in campaign_ids]
    targets, target_spend = _select_until_coverage(targets_sorted, target_limit, required)

    included = target_spend if targets else campaign_spend
    return CoverageSelection(
        campaigns=campaigns,
        targets=targets,
        campaign_included_spend=campaign_spend,
        target_included_spend=target_spend,
        included_spend_total=included,
        coverage_pct=included / mapped if mapped > 0 else None,
    )
