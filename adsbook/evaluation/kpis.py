"""Baseline-versus-test KPI comparison over product sales rows."""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict

from adsbook.evidence.dates import add_days, day_count_inclusive, parse_date_only

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

KPI_FIELDS = (
    "sales",
    "orders",
    "units",
    "sessions",
    "conversions",
    "ppc_cost",
    "tacos",
    "profits",
    "roi",
    "margin",
)


class KpiWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_date: str
    end_date: str
    days: int


class KpiWindows(BaseModel):
    model_config = ConfigDict(frozen=True)

    lag_days: int
    baseline: KpiWindow
    test: KpiWindow


def compute_kpi_windows(start_date: str, end_date: str, lag_days: float | None = 0) -> KpiWindows:
    """Test window = experiment window shifted by the lag; baseline = same length right before start."""
    for value in (start_date, end_date):
        if parse_date_only(value) is None:
            raise ValueError(f"Invalid date format: {value}. Expected YYYY-MM-DD.")
    if end_date < start_date:
        raise ValueError(
            f"Invalid experiment window: end_date ({end_date}) is before start_date ({start_date})."
        )

    lag = max(0, math.floor(lag_days or 0))
    days = day_count_inclusive(start_date, end_date)
    baseline_end = add_days(start_date, -1)
    return KpiWindows(
        lag_days=lag,
        baseline=KpiWindow(
            start_date=add_days(baseline_end, -(days - 1)), end_date=baseline_end, days=days
        ),
        test=KpiWindow(
            start_date=add_days(start_date, lag), end_date=add_days(end_date, lag), days=days
        ),
    )


def _finite(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def aggregate_kpis(rows: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Totals, per-field averages over non-null values, and the row count."""
    totals = dict.fromkeys(KPI_FIELDS, 0.0)
    counts = dict.fromkeys(KPI_FIELDS, 0)
    row_count = 0
    for row in rows:
        row_count += 1
        for field in KPI_FIELDS:
            value = _finite(row.get(field))
            if value is None:
                continue
            totals[field] += value
            counts[field] += 1
    averages = {f: (totals[f] / counts[f] if counts[f] else None) for f in KPI_FIELDS}
    return {"totals": totals, "averages": averages, "row_count": row_count}


def compute_delta(
    baseline: Mapping[str, float | None], test: Mapping[str, float | None]
) -> dict[str, dict[str, float | None]]:
    absolute: dict[str, float | None] = {}
    percent: dict[str, float | None] = {}
    for field in KPI_FIELDS:
        base, current = baseline.get(field), test.get(field)
        if base is None or current is None:
            absolute[field] = percent[field] = None
            continue
        absolute[field] = current - base
        percent[field] = None if base == 0 else (current - base) / base
    return {"absolute": absolute, "percent": percent}


def compute_experiment_kpis(
    load_rows: Callable[[str, str], list[Any]],
    start_date: str,
    end_date: str,
    lag_days: float | None = 0,
) -> dict[str, Any]:
    """Load both windows through ``load_rows(start, end)`` and compare them."""
    windows = compute_kpi_windows(start_date, end_date, lag_days)
    baseline = aggregate_kpis(load_rows(windows.baseline.start_date, windows.baseline.end_date))
    test = aggregate_kpis(load_rows(windows.test.start_date, windows.test.end_date))
    return {
        "windows": {
            "baseline": windows.baseline.model_dump(),
            "test": windows.test.model_dump(),
        },
        "lag_days": windows.lag_days,
        "baseline": baseline,
        "test": test,
        "delta": {
            "totals": compute_delta(baseline["totals"], test["totals"]),
            "averages": compute_delta(baseline["averages"], test["averages"]),
        },
    }
