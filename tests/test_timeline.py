"""Tests for the interruption-aware experiment timeline."""

from __future__ import annotations

from adsbook.evaluation.timeline import build_experiment_timeline, pick_major_actions


def _change(change_id: str, day: int, change_type: str = "bid_update") -> dict:
    return {
        "change_id": change_id,
        "occurred_at": f"2026-03-{day:02d}T10:00:00Z",
        "change_type": change_type,
        "channel": "SP",
        "summary": change_id,
    }


class TestPickMajorActions:
    def test_most_recent_first(self):
        picked = pick_major_actions([_change("a", 1), _change("b", 3), _change("c", 2)], limit=2)
        assert picked == {"major": ["b", "c"], "interruption_ids": []}

    def test_interruptions_survive_the_limit(self):
        changes = [
            _change("old-stop", 1, "stop_loss"),
            _change("b", 5),
            _change("c", 6),
            _change("rb", 2, "rollback"),
        ]
        picked = pick_major_actions(changes, limit=1)
        assert picked["major"] == ["c", "rb", "old-stop"]
        assert picked["interruption_ids"] == ["rb", "old-stop"]

    def test_ties_break_on_change_id(self):
        picked = pick_major_actions([_change("a", 1), _change("b", 1)], limit=1)
        assert picked["major"] == ["b"]

    def test_non_finite_or_negative_limit(self):
        assert pick_major_actions([_change("a", 1)], limit=float("inf"))["major"] == []
        assert pick_major_actions([_change("a", 1)], limit=-1)["major"] == []
        assert pick_major_actions([_change("a", 1)], limit=2.9)["major"] == ["a"]


class TestBuildExperimentTimeline:
    def test_merges_changes_and_events(self):
        events = [
            {
                "id": 7,
                "occurred_at": "2026-03-04T08:00:00Z",
                "event_type": "guardrail_breach",
                "run_id": "run-1",
                "notes": "ACOS over 40%",
                "payload": {"acos": 0.41},
            }
        ]
        timeline = build_experiment_timeline(
            [_change("a", 1), _change("b", 5), _change("c", 6)], events, limit=1
        )
        kinds = [(e["kind"], e["change_id"]) for e in timeline["entries"]]
        assert kinds == [("change", "c"), ("change", "b"), ("event", "event:7"), ("change", "a")]
        assert timeline["major"] == ["c", "event:7"]
        assert timeline["interruption_ids"] == ["event:7"]

        event = timeline["entries"][2]
        assert event["is_interruption"] is True
        assert event["is_major"] is True
        assert event["summary"] == "ACOS over 40%"
        assert timeline["entries"][1]["is_major"] is False

    def test_empty(self):
        assert build_experiment_timeline([], [], limit=5) == {
            "entries": [],
            "major": [],
            "interruption_ids": [],
        }

    def test_orders_by_instant_across_timestamp_formats(self):
        changes = [
            {"change_id": "late", "occurred_at": "2026-03-04T10:00:00.900000+00:00", "change_type": "bid_update"},
            # 09:30 UTC written with a +02:00 offset
            {"change_id": "early", "occurred_at": "2026-03-04T11:30:00+02:00", "change_type": "bid_update"},
            {"change_id": "undated", "occurred_at": None, "change_type": "bid_update"},
        ]
        events = [{"id": 1, "occurred_at": "2026-03-04T10:00:00Z", "event_type": "note"}]

        timeline = build_experiment_timeline(changes, events, limit=1)

        assert [e["change_id"] for e in timeline["entries"]] == ["late", "event:1", "early", "undated"]
        assert timeline["major"] == ["late"]
