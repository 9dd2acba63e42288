"""Interruption-aware experiment timeline."""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, TypedDict

from adsbook.evidence.dates import parse_timestamp

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

INTERRUPTION_TYPES = frozenset({"guardrail_breach", "manual_intervention", "stop_loss", "rollback"})
_UNDATED = datetime.min.replace(tzinfo=UTC)


class MajorActions(TypedDict):
    major: list[str]
    interruption_ids: list[str]


def is_interruption_change(change_type: str) -> bool:
    return change_type in INTERRUPTION_TYPES


def _sorted_newest_first(changes: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    # occurred_at desc (as instants, whatever the offset notation), change_id desc
    return sorted(
        changes,
        key=lambda c: (
            parse_timestamp(c.get("occurred_at")) or _UNDATED,
            str(c.get("change_id") or ""),
        ),
        reverse=True,
    )


def pick_major_actions(changes: Iterable[Mapping[str, Any]], limit: float) -> MajorActions:
    """The ``limit`` most recent changes, plus every interruption regardless of the limit."""
    ordered = _sorted_newest_first(changes)

    interruption_ids: list[str] = []
    for change in ordered:
        change_id = str(change["change_id"])
        if is_interruption_change(str(change.get("change_type") or "")):
            if change_id not in interruption_ids:
                interruption_ids.append(change_id)

    normalized_limit = max(0, math.floor(limit)) if math.isfinite(limit) else 0
    major: list[str] = []
    for change in ordered[:normalized_limit]:
        change_id = str(change["change_id"])
        if change_id not in major:
            major.append(change_id)
    for change_id in interruption_ids:
        if change_id not in major:
            major.append(change_id)

    return MajorActions(major=major, interruption_ids=interruption_ids)


def build_experiment_timeline(
    changes: Iterable[Mapping[str, Any]],
    events: Iterable[Mapping[str, Any]],
    limit: int,
) -> dict[str, Any]:
    """Merge linked changes and recorded events into one newest-first timeline.

    Recorded events take part in major-action selection under an
    ``event:<id>`` key so interruption events are never hidden by the limit.
    """
    entries: list[dict[str, Any]] = []
    for change in changes:
        entries.append(
            {
                "kind": "change",
                "change_id": str(change["change_id"]),
                "occurred_at": change.get("occurred_at"),
                "change_type": change.get("change_type"),
                "channel": change.get("channel"),
                "summary": change.get("summary"),
                "source": change.get("source"),
            }
        )
    for event in events:
        entries.append(
            {
                "kind": "event",
                "change_id": f"event:{event['id']}",
                "occurred_at": event.get("occurred_at"),
                "change_type": event.get("event_type"),
                "run_id": event.get("run_id"),
                "summary": event.get("notes") or event.get("event_type"),
                "payload": event.get("payload"),
            }
        )

    picked = pick_major_actions(entries, limit)
    major = set(picked["major"])
    interruptions = set(picked["interruption_ids"])
    ordered = _sorted_newest_first(entries)
    return {
        "entries": [
            {
                **entry,
                "is_major": entry["change_id"] in major,
                "is_interruption": entry["change_id"] in interruptions,
            }
            for entry in ordered
        ],
        "major": picked["major"],
        "interruption_ids": picked["interruption_ids"],
    }
