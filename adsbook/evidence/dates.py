"""Calendar-date helpers shared by the evidence and evaluation code."""

from __future__ import annotations

import re
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo

DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date_only(value: object) -> str | None:
    """Return ``value`` if it is a real ``YYYY-MM-DD`` calendar date, else None."""
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not DATE_RE.match(text):
        return None
    try:
        date.fromisoformat(text)
    except ValueError:
        return None
    return text


def to_date_only(iso: object) -> str | None:
    """Date part (UTC) of an ISO-8601 timestamp, or None if unparseable."""
    if not isinstance(iso, str) or not iso.strip():
        return None
    text = iso.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC)
    return parsed.date().isoformat()


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 timestamp into an aware UTC datetime."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def add_days(day: str, days: int) -> str:
    return (date.fromisoformat(day) + timedelta(days=days)).isoformat()


def day_count_inclusive(start: str, end: str) -> int:
    delta = (date.fromisoformat(end) - date.fromisoformat(start)).days
    return delta + 1 if delta >= 0 else 0


def utc_today() -> str:
    return datetime.now(UTC).date().isoformat()


MARKETPLACE_TIME_ZONES = {
    "US": "America/Los_Angeles",
    "CA": "America/Toronto",
    "UK": "Europe/London",
    "DE": "Europe/Berlin",
    "FR": "Europe/Berlin",
    "IT": "Europe/Berlin",
    "ES": "Europe/Berlin",
    "NL": "Europe/Berlin",
    "AU": "Australia/Sydney",
}


def marketplace_time_zone(marketplace: str) -> str:
    return MARKETPLACE_TIME_ZONES.get(marketplace.strip().upper(), "UTC")


def to_marketplace_date(moment: datetime, marketplace: str) -> str:
    """Calendar date of ``moment`` in the marketplace's local time zone."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(ZoneInfo(marketplace_time_zone(marketplace))).date().isoformat()
