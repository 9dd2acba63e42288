"""Download filename helpers."""

from __future__ import annotations

import re

_WHITESPACE = re.compile(r"\s+")
_DISALLOWED = re.compile(r"[^A-Za-z0-9_-]+")
_REPEATED_UNDERSCORE = re.compile(r"_{2,}")

MAX_SEGMENT_LENGTH = 80


def sanitize_file_segment(value: str | None, fallback: str = "experiment") -> str:
    """Reduce ``value`` to a filename-safe segment of at most 80 characters."""
    cleaned = _WHITESPACE.sub("_", (value or "").strip())
    cleaned = _DISALLOWED.sub("", cleaned)
    cleaned = _REPEATED_UNDERSCORE.sub("_", cleaned)
    cleaned = cleaned[:MAX_SEGMENT_LENGTH]
    return cleaned or fallback


def rollback_pack_filename(name: str | None, experiment_id: str, run_id: str | None = None) -> str:
    run_suffix = f"_run_{sanitize_file_segment(run_id, 'run')}" if run_id else ""
    return f"{sanitize_file_segment(name)}_{experiment_id}{run_suffix}_rollback_pack.json"


def final_plan_filename(name: str | None, experiment_id: str) -> str:
    return f"{sanitize_file_segment(name)}_{experiment_id}_final_plan_pack.json"
