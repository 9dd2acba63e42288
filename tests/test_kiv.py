"""Tests for KIV status handling and carry-forward."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from adsbook.evaluation.kiv import (
    derive_kiv_carry_forward,
    normalize_kiv_status,
    normalize_kiv_title,
)

NOW = datetime(2026, 3, 31, 12, 0, tzinfo=UTC)


def _ago(days: int) -> str:
    return (NOW - timedelta(days=days)).isoformat()


class TestNormalization:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("DONE", "done"), (" dismissed ", "dismissed"), ("in progress", "open"), (None, "open")],
    )
    def test_status(self, raw, expected):
        assert normalize_kiv_status(raw) == expected

    def test_title(self):
        assert normalize_kiv_title("  Check   Listing\tImages ") == "check listing images"


class TestCarryForward:
    def test_split_by_status_and_age(self):
        items = [
            {"kiv_id": "open", "status": "Open", "created_at": _ago(200)},
            {"kiv_id": "fresh", "status": "done", "resolved_at": _ago(5), "created_at": _ago(90)},
            {"kiv_id": "stale", "status": "dismissed", "resolved_at": _ago(40)},
            {"kiv_id": "created-only", "status": "done", "created_at": _ago(10)},
            {"kiv_id": "no-dates", "status": "done"},
        ]
        carry = derive_kiv_carry_forward(items, now=NOW)
        assert [i["kiv_id"] for i in carry["open"]] == ["open"]
        assert carry["open"][0]["status"] == "open"
        assert [i["kiv_id"] for i in carry["recently_closed"]] == ["fresh", "created-only"]

    def test_boundary_is_inclusive(self):
        carry = derive_kiv_carry_forward(
            [{"kiv_id": "edge", "status": "done", "resolved_at": _ago(30)}], now=NOW
        )
        assert [i["kiv_id"] for i in carry["recently_closed"]] == ["edge"]

    def test_naive_timestamps_are_utc(self):
        carry = derive_kiv_carry_forward(
            [{"kiv_id": "naive", "status": "done", "resolved_at": "2026-03-30 09:00:00"}], now=NOW
        )
        assert len(carry["recently_closed"]) == 1
