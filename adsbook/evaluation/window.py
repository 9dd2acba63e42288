"""Experiment date window derivation."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict

from adsbook.evidence.dates import parse_date_only, to_date_only

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

WindowSource = Literal["scope", "validated_snapshot_dates", "linked_changes", "missing"]


class DateWindow(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_date: str | None
    end_date: str | None
    source: WindowSource

    @property
    def is_missing(self) -> bool:
        return self.source == "missing"


def _min_max(dates: list[str]) -> tuple[str, str] | None:
    if not dates:
        return None
    return min(dates), max(dates)


def derive_experiment_date_window(
    scope: Mapping[str, Any] | None, changes: Iterable[Mapping[str, Any]]
) -> DateWindow:
    """Pick the evaluation window from the most authoritative source available.

    Explicit scope dates win; otherwise the span of validated snapshot dates
    of linked changes; otherwise the span of their ``occurred_at`` dates.
    """
    scope = scope if isinstance(scope, dict) else {}
    start = parse_date_only(scope.get("start_date"))
    end = parse_date_only(scope.get("end_date"))
    if start and end:
        return DateWindow(start_date=start, end_date=end, source="scope")

    change_list = list(changes)
    snapshot = _min_max(
        [d for c in change_list if (d := parse_date_only(c.get("validated_snapshot_date")))]
    )
    if snapshot:
        return DateWindow(
            start_date=snapshot[0], end_date=snapshot[1], source="validated_snapshot_dates"
        )

    linked = _min_max([d for c in change_list if (d := to_date_only(c.get("occurred_at")))])
    if linked:
        return DateWindow(start_date=linked[0], end_date=linked[1], source="linked_changes")

    return DateWindow(start_date=None, end_date=None, source="missing")
