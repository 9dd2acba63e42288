"""Tests for experiment window and KPI window derivation."""

from __future__ import annotations

import pytest

from adsbook.evaluation.kpis import (
    aggregate_kpis,
    compute_delta,
    compute_experiment_kpis,
    compute_kpi_windows,
)
from adsbook.evaluation.window import derive_experiment_date_window


class TestDeriveExperimentDateWindow:
    def test_scope_dates_win(self):
        window = derive_experiment_date_window(
            {"start_date": "2026-03-01", "end_date": "2026-03-14"},
            [{"validated_snapshot_date": "2026-02-01", "occurred_at": "2026-01-01T00:00:00Z"}],
        )
        assert (window.start_date, window.end_date, window.source) == ("2026-03-01", "2026-03-14", "scope")

    def test_half_scope_falls_through_to_snapshots(self):
        changes = [
            {"validated_snapshot_date": "2026-02-10", "occurred_at": "2026-02-09T10:00:00Z"},
            {"validated_snapshot_date": "2026-02-03", "occurred_at": "2026-02-02T10:00:00Z"},
            {"validated_snapshot_date": None, "occurred_at": "2026-01-15T10:00:00Z"},
        ]
        window = derive_experiment_date_window({"start_date": "2026-03-01"}, changes)
        assert (window.start_date, window.end_date) == ("2026-02-03", "2026-02-10")
        assert window.source == "validated_snapshot_dates"

    def test_linked_change_dates(self):
        changes = [
            {"occurred_at": "2026-02-09T23:30:00-05:00"},
            {"occurred_at": "2026-02-02T10:00:00Z"},
        ]
        window = derive_experiment_date_window({}, changes)
        # the first timestamp is already 2026-02-10 in UTC
        assert (window.start_date, window.end_date) == ("2026-02-02", "2026-02-10")
        assert window.source == "linked_changes"

    def test_missing(self):
        window = derive_experiment_date_window(None, [])
        assert window.is_missing
        assert window.start_date is None

    def test_invalid_scope_dates_are_ignored(self):
        window = derive_experiment_date_window(
            {"start_date": "2026-02-30", "end_date": "2026-03-14"}, []
        )
        assert window.is_missing


class TestComputeKpiWindows:
    def test_windows_with_lag(self):
        windows = compute_kpi_windows("2026-03-01", "2026-03-14", lag_days=2)
        assert windows.baseline.model_dump() == {
            "start_date": "2026-02-15",
            "end_date": "2026-02-28",
            "days": 14,
        }
        assert windows.test.model_dump() == {
            "start_date": "2026-03-03",
            "end_date": "2026-03-16",
            "days": 14,
        }

    def test_fractional_and_negative_lag(self):
        assert compute_kpi_windows("2026-03-01", "2026-03-01", lag_days=1.9).lag_days == 1
        assert compute_kpi_windows("2026-03-01", "2026-03-01", lag_days=-3).lag_days == 0
        assert compute_kpi_windows("2026-03-01", "2026-03-01", lag_days=None).lag_days == 0

    def test_single_day(self):
        windows = compute_kpi_windows("2026-03-01", "2026-03-01")
        assert windows.baseline.start_date == windows.baseline.end_date == "2026-02-28"

    @pytest.mark.parametrize(
        ("start", "end"),
        [("2026-03-14", "2026-03-01"), ("2026/03/01", "2026-03-14"), ("2026-03-01", "")],
    )
    def test_invalid_input(self, start, end):
        with pytest.raises(ValueError):
            compute_kpi_windows(start, end)


class TestKpiAggregation:
    def test_aggregate_skips_missing_values(self):
        agg = aggregate_kpis(
            [{"sales": 100, "orders": 4}, {"sales": "50", "orders": None}, {"sales": "n/a"}]
        )
        assert agg["row_count"] == 3
        assert agg["totals"]["sales"] == 150
        assert agg["averages"]["sales"] == 75
        assert agg["averages"]["orders"] == 4
        assert agg["averages"]["units"] is None

    def test_delta(self):
        delta = compute_delta({"sales": 100, "orders": 0}, {"sales": 120, "orders": 3})
        assert delta["absolute"]["sales"] == 20
        assert delta["percent"]["sales"] == pytest.approx(0.2)
        assert delta["absolute"]["orders"] == 3
        assert delta["percent"]["orders"] is None
        assert delta["absolute"]["units"] is None

    def test_compute_experiment_kpis_loads_both_windows(self):
        calls = []

        def load_rows(start, end):
            calls.append((start, end))
            return [{"sales": 100}] if start < "2026-03-01" else [{"sales": 130}]

        result = compute_experiment_kpis(load_rows, "2026-03-01", "2026-03-14", 2)
        assert calls == [("2026-02-15", "2026-02-28"), ("2026-03-03", "2026-03-16")]
        assert result["lag_days"] == 2
        assert result["delta"]["totals"]["absolute"]["sales"] == 30
