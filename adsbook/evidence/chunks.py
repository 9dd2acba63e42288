"""Date-chunked dataset loading with per-chunk failure diagnostics."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog

from adsbook.errors import PackIncompleteError
from adsbook.evidence.dates import add_days, day_count_inclusive, parse_date_only
from adsbook.models.evidence import ChunkError, ChunkStats

if TYPE_CHECKING:
    from collections.abc import Callable

logger = structlog.get_logger()

T = TypeVar("T")

MAX_CHUNKS = 60
DEFAULT_CHUNK_DAYS = 7

_TIMEOUT_RE = re.compile(r"statement timeout|canceling statement", re.IGNORECASE)


def is_statement_timeout_message(message: str) -> bool:
    return bool(_TIMEOUT_RE.search(message))


def choose_chunk_days(day_count: int, requested_chunk_days: int = DEFAULT_CHUNK_DAYS) -> int:
    """Widen chunks (7 → 14 → 30 days) until the range fits in ``MAX_CHUNKS`` chunks."""
    chunk_days = requested_chunk_days if requested_chunk_days > 0 else DEFAULT_CHUNK_DAYS
    chunk_count = -(-day_count // chunk_days)
    if chunk_count > MAX_CHUNKS and chunk_days < 14:
        chunk_days = 14
        chunk_count = -(-day_count // chunk_days)
    if chunk_count > MAX_CHUNKS and chunk_days < 30:
        chunk_days = 30
    return chunk_days


def build_date_chunks(
    start: str, end: str, chunk_days: int = DEFAULT_CHUNK_DAYS
) -> list[tuple[str, str]]:
    """Split ``start..end`` (inclusive) into consecutive inclusive chunks."""
    for value in (start, end):
        if parse_date_only(value) is None:
            raise ValueError(f"Invalid ISO date: {value}")
    days = day_count_inclusive(start, end)
    if days <= 0:
        return []

    size = choose_chunk_days(days, chunk_days)
    chunks: list[tuple[str, str]] = []
    cursor = start
    while cursor <= end:
        chunk_end = min(add_days(cursor, size - 1), end)
        chunks.append((cursor, chunk_end))
        if chunk_end >= end:
            break
        cursor = add_days(chunk_end, 1)
    return chunks


@dataclass(frozen=True, slots=True)
class ChunkFetchResult(Generic[T]):
    rows: list[T] = field(default_factory=list)
    chunk_errors: list[ChunkError] = field(default_factory=list)
    stats: ChunkStats = field(
        default_factory=lambda: ChunkStats(chunks_total=0, chunks_succeeded=0, chunks_failed=0)
    )

    @property
    def timeout_failures(self) -> int:
        return sum(1 for e in self.chunk_errors if e.timed_out)

    @property
    def complete(self) -> bool:
        return not self.chunk_errors

    def diagnostics(self) -> dict[str, Any]:
        return {
            "stats": self.stats.model_dump(),
            "chunk_errors": [e.model_dump() for e in self.chunk_errors],
        }


def fetch_by_date_chunks(
    start: str,
    end: str,
    run_chunk: Callable[[str, str], list[T]],
    chunk_days: int = DEFAULT_CHUNK_DAYS,
) -> ChunkFetchResult[T]:
    """Run ``run_chunk`` once per chunk, collecting rows and recording failures.

    A failing chunk never aborts the remaining chunks and is never retried
    here; retrying is left to the caller.
    """
    rows: list[T] = []
    errors: list[ChunkError] = []
    chunks = build_date_chunks(start, end, chunk_days)

    for chunk_start, chunk_end in chunks:
        try:
            rows.extend(run_chunk(chunk_start, chunk_end))
        except Exception as exc:  # noqa: BLE001 - every chunk failure becomes a diagnostic
            message = str(exc) or "unknown error"
            errors.append(
                ChunkError(
                    chunk_start=chunk_start,
                    chunk_end=chunk_end,
                    message=message,
                    timed_out=is_statement_timeout_message(message),
                )
            )
            logger.warning(
                "Chunk load failed",
                chunk_start=chunk_start,
                chunk_end=chunk_end,
                error=message,
            )

    stats = ChunkStats(
        chunks_total=len(chunks),
        chunks_succeeded=len(chunks) - len(errors),
        chunks_failed=len(errors),
        retries_used_max=0,
        failed_ranges_count=len(errors),
        failed_ranges_sample=[
            {"chunk_start": e.chunk_start, "chunk_end": e.chunk_end, "message": e.message}
            for e in errors[:3]
        ],
    )
    return ChunkFetchResult(rows=rows, chunk_errors=errors, stats=stats)


def require_complete_chunk_fetch(
    label: str,
    result: ChunkFetchResult[T],
    code: str = "CHUNK_FETCH_INCOMPLETE",
    context: dict[str, Any] | None = None,
) -> list[T]:
    """Return the rows, or raise PackIncompleteError if any chunk failed."""
    if result.complete:
        return result.rows
    raise PackIncompleteError(
        f"Failed loading {label}: chunk failures detected.",
        label=label,
        code=code,
        stats=result.stats.model_dump(),
        chunk_errors=[e.model_dump() for e in result.chunk_errors],
        context=context,
    )
