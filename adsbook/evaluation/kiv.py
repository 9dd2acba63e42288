"""KIV ("keep in view") status normalization and carry-forward."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Literal, TypedDict

from adsbook.evidence.dates import parse_timestamp

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

KivStatus = Literal["open", "done", "dismissed"]

RECENTLY_CLOSED_DAYS = 30


class KivCarryForward(TypedDict):
    open: list[dict[str, Any]]
    recently_closed: list[dict[str, Any]]


def normalize_kiv_status(value: object) -> KivStatus:
    if not isinstance(value, str):
        return "open"
    normalized = value.strip().lower()
    if normalized == "done":
        return "done"
    if normalized == "dismissed":
        return "dismissed"
    return "open"


def normalize_kiv_title(value: str) -> str:
    return " ".join(value.strip().lower().split())


def derive_kiv_carry_forward(
    items: Iterable[Mapping[str, Any]], now: datetime | None = None
) -> KivCarryForward:
    """Split items into open ones and those closed within the last 30 days.

    Closure time is ``resolved_at``, falling back to ``created_at``; closed
    items with neither timestamp are dropped.
    """
    cutoff = (now or datetime.now(UTC)) - timedelta(days=RECENTLY_CLOSED_DAYS)
    carry = KivCarryForward(open=[], recently_closed=[])
    for item in items:
        status = normalize_kiv_status(item.get("status"))
        normalized = {**item, "status": status}
        if status == "open":
            carry["open"].append(normalized)
            continue
        closed_at = parse_timestamp(item.get("resolved_at")) or parse_timestamp(item.get("created_at"))
        if closed_at is not None and closed_at >= cutoff:
            carry["recently_closed"].append(normalized)
    return carry
