"""Roll daily performance rows up to campaign or target level."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

SUM_FIELDS = ("impressions", "clicks", "spend", "sales", "orders", "units")


def _finite(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def safe_divide(numerator: Any, denominator: Any) -> float | None:
    den = _finite(denominator)
    if den <= 0:
        return None
    return _finite(numerator) / den


def calc_ctr(clicks: Any, impressions: Any) -> float | None:
    return safe_divide(clicks, impressions)


def calc_cvr(orders: Any, clicks: Any) -> float | None:
    return safe_divide(orders, clicks)


def calc_cpc(spend: Any, clicks: Any) -> float | None:
    return safe_divide(spend, clicks)


def calc_acos(spend: Any, sales: Any) -> float | None:
    return safe_divide(spend, sales)


def calc_roas(spend: Any, sales: Any) -> float | None:
    return safe_divide(sales, spend)


def with_ratios(row: dict[str, Any]) -> dict[str, Any]:
    return {
        **row,
        "ctr": calc_ctr(row["clicks"], row["impressions"]),
        "cpc": calc_cpc(row["spend"], row["clicks"]),
        "cvr": calc_cvr(row["orders"], row["clicks"]),
        "acos": calc_acos(row["spend"], row["sales"]),
        "roas": calc_roas(row["spend"], row["sales"]),
    }


def aggregate_rows(rows: Iterable[dict[str, Any]], key_fields: Sequence[str]) -> list[dict[str, Any]]:
    """Sum ``SUM_FIELDS`` per distinct ``key_fields`` tuple, highest spend first."""
    groups: dict[tuple[Any, ...], dict[str, Any]] = {}
    for row in rows:
        key = tuple(row.get(k) for k in key_fields)
        group = groups.get(key)
        if group is None:
            group = {k: row.get(k) for k in key_fields}
            group.update({f: 0.0 for f in SUM_FIELDS})
            groups[key] = group
        for f in SUM_FIELDS:
            group[f] += _finite(row.get(f))
    aggregated = [with_ratios(g) for g in groups.values()]
    aggregated.sort(key=lambda g: g["spend"], reverse=True)
    return aggregated


def totals(rows: Iterable[dict[str, Any]]) -> dict[str, Any]:
    summed = {f: 0.0 for f in SUM_FIELDS}
    for row in rows:
        for f in SUM_FIELDS:
            summed[f] += _finite(row.get(f))
    return with_ratios(summed)
