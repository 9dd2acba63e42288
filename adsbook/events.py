"""Experiment events and upload phases."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

from adsbook.errors import PackParseError
from adsbook.evidence.dates import parse_date_only, parse_timestamp, to_marketplace_date
from adsbook.evaluation.timeline import INTERRUPTION_TYPES
from adsbook.review.plans import clean_text

if TYPE_CHECKING:
    from collections.abc import Mapping

    from adsbook.context import AccountContext
    from adsbook.db import Database, EventDict

logger = structlog.get_logger()

UPLOADED_EVENT_TYPE = "uploaded_to_amazon"
SUPPORTED_EVENT_TYPES = tuple(sorted(INTERRUPTION_TYPES))


def _iso(moment: datetime) -> str:
    return moment.astimezone(UTC).isoformat().replace("+00:00", "Z")


class ExperimentEventService:
    """Records interruption events and upload markers against an experiment's runs."""

    def __init__(self, db: Database):
        self.db = db

    def record_event(
        self,
        ctx: AccountContext,
        experiment_id: str,
        body: Mapping[str, Any],
        *,
        now: datetime | None = None,
    ) -> EventDict:
        """Validate and store one event.

        ``occurred_at`` defaults to now and ``event_date`` to the marketplace-local
        date of ``occurred_at``. A ``run_id`` is attached to its phase when one exists.
        """
        experiment = self.db.require_experiment(ctx, experiment_id)
        if not isinstance(body, dict):
            raise PackParseError("Body must be a JSON object.", code="body_not_object")

        event_type = clean_text(body.get("event_type"))
        if event_type not in INTERRUPTION_TYPES:
            raise PackParseError(
                f"event_type must be one of: {', '.join(SUPPORTED_EVENT_TYPES)}.",
                code="invalid_event_type",
            )

        payload = body.get("payload", {})
        if not isinstance(payload, dict):
            raise PackParseError(
                "payload must be an object when provided.", code="invalid_payload"
            )

        if "occurred_at" in body:
            occurred_at = parse_timestamp(body["occurred_at"])
            if occurred_at is None:
                raise PackParseError(
                    "occurred_at must be a valid datetime when provided.",
                    code="invalid_occurred_at",
                )
        else:
            occurred_at = now or datetime.now(UTC)

        if "event_date" in body:
            event_date = parse_date_only(body["event_date"])
            if event_date is None:
                raise PackParseError(
                    "event_date must be YYYY-MM-DD when provided.", code="invalid_event_date"
                )
        else:
            event_date = to_marketplace_date(occurred_at, experiment.marketplace)

        run_id = clean_text(body.get("run_id"))
        notes = clean_text(body.get("notes"))
        phase = self.db.get_phase(experiment_id, run_id) if run_id else None

        payload = dict(payload)
        if notes:
            payload["notes"] = notes

        event = self.db.add_event(
            experiment_id,
            event_type=event_type,
            event_date=event_date,
            occurred_at=_iso(occurred_at),
            run_id=run_id,
            phase_id=phase["id"] if phase else None,
            notes=notes,
            payload=payload,
        )
        logger.info(
            "Experiment event recorded",
            experiment_id=experiment_id,
            event_type=event_type,
            run_id=run_id,
            phase_id=event["phase_id"],
        )
        return event

    def mark_uploaded(
        self,
        ctx: AccountContext,
        experiment_id: str,
        run_id: str,
        *,
        now: datetime | None = None,
    ) -> dict[str, Any]:
        """Stamp a run as uploaded to the marketplace and log an upload event."""
        run_id = run_id.strip()
        if not run_id:
            raise PackParseError("Missing experiment id or run_id.", code="missing_identifiers")
        experiment = self.db.require_experiment(ctx, experiment_id)

        moment = now or datetime.now(UTC)
        marketplace_date = to_marketplace_date(moment, experiment.marketplace)
        phase = self.db.upsert_phase(
            experiment_id, run_id, effective_date=marketplace_date, uploaded_at=_iso(moment)
        )
        self.db.add_event(
            experiment_id,
            event_type=UPLOADED_EVENT_TYPE,
            event_date=marketplace_date,
            occurred_at=_iso(moment),
            run_id=run_id,
            phase_id=phase["id"],
            payload={"source": "manual_click"},
        )
        logger.info(
            "Run marked as uploaded",
            experiment_id=experiment_id,
            run_id=run_id,
            effective_date=marketplace_date,
        )
        return {
            "ok": True,
            "run_id": phase["run_id"],
            "effective_date": phase["effective_date"],
            "uploaded_at": phase["uploaded_at"],
        }
