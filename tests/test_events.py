"""Tests for experiment events and upload phases."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from adsbook.errors import ExperimentNotFoundError, PackParseError
from adsbook.events import ExperimentEventService

# 2026-03-02 02:30 UTC is still 2026-03-01 in Los Angeles.
NOW = datetime(2026, 3, 2, 2, 30, tzinfo=UTC)


@pytest.fixture()
def service(seeded_db) -> ExperimentEventService:
    return ExperimentEventService(seeded_db)


class TestRecordEvent:
    def test_defaults_to_now_in_marketplace_time(self, service, ctx, proposed_experiment):
        event = service.record_event(
            ctx,
            proposed_experiment.experiment_id,
            {"event_type": "guardrail_breach", "notes": " ACOS spiked ", "payload": {"acos": 0.5}},
            now=NOW,
        )
        assert event["event_type"] == "guardrail_breach"
        assert event["occurred_at"] == "2026-03-02T02:30:00Z"
        assert event["event_date"] == "2026-03-01"
        assert event["notes"] == "ACOS spiked"
        assert event["payload"] == {"acos": 0.5, "notes": "ACOS spiked"}
        assert event["phase_id"] is None

    def test_explicit_dates(self, service, ctx, proposed_experiment):
        event = service.record_event(
            ctx,
            proposed_experiment.experiment_id,
            {
                "event_type": "stop_loss",
                "occurred_at": "2026-03-05T10:00:00+02:00",
                "event_date": "2026-03-06",
            },
        )
        assert event["occurred_at"] == "2026-03-05T08:00:00Z"
        assert event["event_date"] == "2026-03-06"

    def test_attaches_to_uploaded_phase(self, service, ctx, proposed_experiment):
        exp_id = proposed_experiment.experiment_id
        service.mark_uploaded(ctx, exp_id, "run-1", now=NOW)
        event = service.record_event(ctx, exp_id, {"event_type": "rollback", "run_id": "run-1"}, now=NOW)
        assert event["phase_id"] is not None
        assert event["run_id"] == "run-1"

    @pytest.mark.parametrize(
        ("body", "code"),
        [
            ({"event_type": "celebration"}, "invalid_event_type"),
            ({"event_type": "stop_loss", "payload": [1]}, "invalid_payload"),
            ({"event_type": "stop_loss", "occurred_at": "yesterday"}, "invalid_occurred_at"),
            ({"event_type": "stop_loss", "event_date": "03/01/2026"}, "invalid_event_date"),
        ],
    )
    def test_invalid_bodies(self, service, ctx, proposed_experiment, body, code):
        with pytest.raises(PackParseError) as excinfo:
            service.record_event(ctx, proposed_experiment.experiment_id, body)
        assert excinfo.value.code == code

    def test_unknown_experiment(self, service, ctx):
        with pytest.raises(ExperimentNotFoundError):
            service.record_event(ctx, "missing", {"event_type": "stop_loss"})

    def test_other_account_cannot_see_experiment(self, service, other_ctx, proposed_experiment):
        with pytest.raises(ExperimentNotFoundError):
            service.record_event(other_ctx, proposed_experiment.experiment_id, {"event_type": "stop_loss"})


class TestMarkUploaded:
    def test_stamps_phase_and_logs_event(self, service, seeded_db, ctx, proposed_experiment):
        exp_id = proposed_experiment.experiment_id
        result = service.mark_uploaded(ctx, exp_id, " run-1 ", now=NOW)

        assert result == {
            "ok": True,
            "run_id": "run-1",
            "effective_date": "2026-03-01",
            "uploaded_at": "2026-03-02T02:30:00Z",
        }
        [event] = seeded_db.list_events(exp_id)
        assert event["event_type"] == "uploaded_to_amazon"
        assert event["payload"] == {"source": "manual_click"}

    def test_second_upload_updates_the_same_phase(self, service, seeded_db, ctx, proposed_experiment):
        exp_id = proposed_experiment.experiment_id
        first = service.mark_uploaded(ctx, exp_id, "run-1", now=NOW)
        later = datetime(2026, 3, 3, 18, 0, tzinfo=UTC)
        second = service.mark_uploaded(ctx, exp_id, "run-1", now=later)
        assert second["effective_date"] == "2026-03-03"
        assert seeded_db.get_phase(exp_id, "run-1")["uploaded_at"] == second["uploaded_at"]
        assert first["uploaded_at"] != second["uploaded_at"]
        assert len(seeded_db.list_events(exp_id)) == 2

    def test_blank_run_id(self, service, ctx, proposed_experiment):
        with pytest.raises(PackParseError) as excinfo:
            service.mark_uploaded(ctx, proposed_experiment.experiment_id, "  ")
        assert excinfo.value.code == "missing_identifiers"
