"""Tests for date-chunked loading and pack messages."""

from __future__ import annotations

import pytest

from adsbook.errors import PackIncompleteError
from adsbook.evidence.chunks import (
    MAX_CHUNKS,
    build_date_chunks,
    choose_chunk_days,
    fetch_by_date_chunks,
    is_statement_timeout_message,
    require_complete_chunk_fetch,
)
from adsbook.evidence.messages import (
    build_chunk_failure_message,
    build_dataset_empty_message,
    build_no_channel_messages,
    describe_chunk_failure_kind,
    legacy_warnings_from_messages,
)


class TestBuildDateChunks:
    def test_chunks_cover_range_without_gaps(self):
        chunks = build_date_chunks("2026-01-01", "2026-01-20", 7)
        assert chunks == [
            ("2026-01-01", "2026-01-07"),
            ("2026-01-08", "2026-01-14"),
            ("2026-01-15", "2026-01-20"),
        ]

    def test_single_day(self):
        assert build_date_chunks("2026-01-05", "2026-01-05") == [("2026-01-05", "2026-01-05")]

    def test_end_before_start_is_empty(self):
        assert build_date_chunks("2026-01-05", "2026-01-01") == []

    def test_invalid_date_raises(self):
        with pytest.raises(ValueError, match="Invalid ISO date"):
            build_date_chunks("2026-13-01", "2026-12-31")

    def test_long_range_widens_chunks(self):
        assert choose_chunk_days(365, 7) == 7
        assert choose_chunk_days(500, 7) == 14
        assert choose_chunk_days(1000, 7) == 30
        chunks = build_date_chunks("2024-01-01", "2026-12-31", 7)
        assert len(chunks) <= MAX_CHUNKS

    def test_non_positive_chunk_days_uses_default(self):
        assert choose_chunk_days(30, 0) == 7


class TestFetchByDateChunks:
    def test_collects_rows_from_every_chunk(self):
        calls: list[tuple[str, str]] = []

        def run_chunk(start: str, end: str) -> list[str]:
            calls.append((start, end))
            return [start]

        result = fetch_by_date_chunks("2026-01-01", "2026-01-14", run_chunk, 7)
        assert result.rows == ["2026-01-01", "2026-01-08"]
        assert result.complete
        assert result.stats.chunks_total == 2
        assert result.stats.chunks_succeeded == 2
        assert len(calls) == 2

    def test_failed_chunk_does_not_abort_the_rest(self):
        def run_chunk(start: str, end: str) -> list[str]:
            if start == "2026-01-08":
                raise RuntimeError("canceling statement due to statement timeout")
            return [start]

        result = fetch_by_date_chunks("2026-01-01", "2026-01-21", run_chunk, 7)
        assert result.rows == ["2026-01-01", "2026-01-15"]
        assert not result.complete
        assert result.stats.chunks_failed == 1
        assert result.timeout_failures == 1
        assert result.chunk_errors[0].chunk_start == "2026-01-08"
        assert result.chunk_errors[0].timed_out is True
        assert result.stats.failed_ranges_sample[0]["chunk_end"] == "2026-01-14"

    def test_empty_error_message_is_replaced(self):
        def run_chunk(start: str, end: str) -> list[str]:
            raise RuntimeError()

        result = fetch_by_date_chunks("2026-01-01", "2026-01-01", run_chunk)
        assert result.chunk_errors[0].message == "unknown error"
        assert result.chunk_errors[0].timed_out is False

    def test_require_complete_raises_with_diagnostics(self):
        def run_chunk(start: str, end: str) -> list[str]:
            raise RuntimeError("boom")

        result = fetch_by_date_chunks("2026-01-01", "2026-01-03", run_chunk)
        with pytest.raises(PackIncompleteError) as excinfo:
            require_complete_chunk_fetch("sales trend", result, context={"dataset": "sales"})
        exc = excinfo.value
        assert exc.code == "CHUNK_FETCH_INCOMPLETE"
        assert exc.status == "pack_incomplete"
        assert exc.stats["chunks_failed"] == 1
        assert exc.chunk_errors[0]["message"] == "boom"
        assert exc.context == {"dataset": "sales"}

    def test_require_complete_returns_rows(self):
        result = fetch_by_date_chunks("2026-01-01", "2026-01-02", lambda s, e: [1])
        assert require_complete_chunk_fetch("x", result) == [1]

    def test_timeout_detection(self):
        assert is_statement_timeout_message("ERROR: Statement Timeout")
        assert not is_statement_timeout_message("connection refused")


class TestChunkFailureMessages:
    def test_no_failures_means_no_message(self):
        assert build_chunk_failure_message("SP targeting", 4, 0, 0, "suffix") is None

    def test_partial_failure_is_a_warning(self):
        message = build_chunk_failure_message("SP targeting", 4, 1, 0, "SP targets are missing.")
        assert message is not None
        assert message.level == "warn"
        assert message.code == "CHUNK_PARTIAL"
        assert "1/4 chunks failed; errors" in message.text

    def test_total_failure_is_an_error_with_suffix(self):
        message = build_chunk_failure_message("SP targeting", 3, 3, 3, "SP targets are missing.")
        assert message is not None
        assert message.level == "error"
        assert message.code == "CHUNK_FAILED"
        assert message.text.endswith("SP targets are missing.")
        assert message.meta["failure_kind"] == "timeouts"

    def test_sp_reconciliation_wording(self):
        message = build_chunk_failure_message(
            "SP campaign reconciliation", 2, 2, 1, "unreliable", is_sp_reconciliation=True
        )
        assert message is not None
        assert message.text.startswith("SP reconciliation failed: all 2/2 chunks failed")
        assert message.meta["impact"] == "unreliable"

    def test_failure_kinds(self):
        assert describe_chunk_failure_kind(2, 2) == "timeouts"
        assert describe_chunk_failure_kind(2, 0) == "errors"
        assert describe_chunk_failure_kind(2, 1) == "mixed errors"

    def test_no_channel_messages(self):
        codes = [m.code for m in build_no_channel_messages(False, False)]
        assert codes == ["NO_SB_FOR_ASIN", "NO_SD_FOR_ASIN"]
        assert build_no_channel_messages(True, True) == []

    def test_legacy_warnings_only_include_warn_and_error(self):
        messages = [
            build_dataset_empty_message("sales trend", "2026-01-01", "2026-01-31"),
            build_chunk_failure_message("SB campaigns", 2, 1, 0, "x"),
        ]
        warnings = legacy_warnings_from_messages([m for m in messages if m is not None])
        assert len(warnings) == 1
        assert warnings[0].startswith("Failed loading SB campaigns")
