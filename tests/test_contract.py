"""Tests for the optimization contract stored in experiment scopes."""

from __future__ import annotations

from adsbook.contract import (
    contract_of,
    forecast_kpi_names,
    merge_contract,
    normalize_contract,
    normalize_scope,
    snapshot_contract,
)


class TestNormalizeContract:
    def test_keeps_valid_fields_and_unknown_keys(self):
        contract = normalize_contract(
            {
                "baseline_ref": {"data_available_through": " 2026-02-28 ", "pack_id": "p1"},
                "forecast": {
                    "directional_kpis": [
                        {"kpi": "sales", "direction": "UP", "note": " "},
                        {"kpi": "acos", "direction": "sideways"},
                        "junk",
                    ],
                    "window_days": "14.7",
                    "confidence": 1.5,
                    "assumptions": ["a", "a", ""],
                },
                "ai_run_meta": {"workflow_mode": "API", "model": " gpt "},
                "custom": {"x": 1},
            }
        )
        assert contract["baseline_ref"] == {"data_available_through": "2026-02-28", "pack_id": "p1"}
        assert contract["forecast"] == {
            "directional_kpis": [{"kpi": "sales", "direction": "up"}],
            "window_days": 14,
            "assumptions": ["a"],
        }
        assert contract["ai_run_meta"] == {"workflow_mode": "api", "model": "gpt"}
        assert contract["custom"] == {"x": 1}

    def test_malformed_known_keys_are_dropped(self):
        contract = normalize_contract(
            {"baseline_ref": {"pack_id": "p1"}, "ai_run_meta": {"workflow_mode": "robot"}, "evaluation_plan": []}
        )
        assert contract is None

    def test_default_workflow_mode(self):
        assert normalize_contract({}, default_workflow_mode=True) == {
            "ai_run_meta": {"workflow_mode": "manual"}
        }
        assert normalize_contract("nope") is None


class TestScopeHelpers:
    def test_normalize_scope_does_not_mutate(self):
        scope = {"contract": {"ads_optimization_v1": {"ai_run_meta": {"workflow_mode": "API"}}}}
        out = normalize_scope(scope)
        assert contract_of(out)["ai_run_meta"]["workflow_mode"] == "api"
        assert scope["contract"]["ads_optimization_v1"]["ai_run_meta"]["workflow_mode"] == "API"

    def test_merge_contract_keeps_siblings(self):
        scope = {
            "status": "PROPOSED",
            "contract": {"other_v1": {"a": 1}, "ads_optimization_v1": {"proposal": {"x": 1}}},
        }
        out = merge_contract(scope, {"review_patch": {"pack_id": "p"}}, status="REVIEWED")
        assert out["status"] == "REVIEWED"
        assert out["contract"]["other_v1"] == {"a": 1}
        assert contract_of(out) == {"proposal": {"x": 1}, "review_patch": {"pack_id": "p"}}
        assert contract_of(scope) == {"proposal": {"x": 1}}

    def test_contract_of_bad_shapes(self):
        assert contract_of(None) == {}
        assert contract_of({"contract": []}) == {}
        assert contract_of({"contract": {"ads_optimization_v1": "x"}}) == {}


class TestSnapshots:
    def test_snapshot(self):
        assert snapshot_contract({"proposal": {}}) is None
        assert snapshot_contract({"forecast": {"window_days": 7}, "proposal": {}}) == {
            "baseline_ref": None,
            "forecast": {"window_days": 7},
            "ai_run_meta": None,
        }

    def test_forecast_kpi_names(self):
        contract = {"forecast": {"directional_kpis": [{"kpi": "CPC", "direction": "down"}, {"kpi": "x"}]}}
        assert forecast_kpi_names(contract) == ["CPC"]
        assert forecast_kpi_names(None) == []
