"""Requested range → bounded calendar window."""

from __future__ import annotations

from adsbook.evidence.dates import add_days, parse_date_only, utc_today
from adsbook.models.evidence import BoundedRange

REQUESTED_RANGES = ("30d", "60d", "90d", "180d", "all", "baseline")

# Lookback always exceeds the requested range so week-over-week comparisons have history.
LOOKBACK_DAYS = {
    "30d": 60,
    "60d": 60,
    "baseline": 60,
    "90d": 120,
    "180d": 210,
}

UNBOUNDED_LOOKBACK_DAYS = 100_000


def normalize_range(value: str | None) -> str:
    normalized = (value or "").strip().lower()
    return normalized if normalized in REQUESTED_RANGES else "baseline"


def lookback_days(requested_range: str | None, all_cap_days: int = 365, unbounded: bool = False) -> int:
    normalized = normalize_range(requested_range)
    if normalized == "all":
        return UNBOUNDED_LOOKBACK_DAYS if unbounded else all_cap_days
    return LOOKBACK_DAYS[normalized]


def compute_bounded_range(
    requested_range: str | None,
    end_date: str | None,
    *,
    all_cap_days: int = 365,
    unbounded: bool = False,
    today: str | None = None,
) -> BoundedRange:
    """Inclusive window ending at ``end_date`` (or today, UTC, if it is not a valid date)."""
    end_bound = parse_date_only(end_date) or today or utc_today()
    days = max(1, lookback_days(requested_range, all_cap_days, unbounded))
    return BoundedRange(start_bound=add_days(end_bound, -(days - 1)), end_bound=end_bound)
