"""Tests for download filename helpers."""

from __future__ import annotations

import pytest

from adsbook.filenames import final_plan_filename, rollback_pack_filename, sanitize_file_segment


class TestSanitizeFileSegment:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("Raise exact budgets", "Raise_exact_budgets"),
            ("  Q1 / ACOS   test!  ", "Q1_ACOS_test"),
            ("a__b", "a_b"),
            ("über-test", "ber-test"),
            ("", "experiment"),
            ("///", "experiment"),
            (None, "experiment"),
        ],
    )
    def test_values(self, value, expected):
        assert sanitize_file_segment(value) == expected

    def test_truncates(self):
        assert len(sanitize_file_segment("x" * 200)) == 80


class TestFilenames:
    def test_rollback_pack(self):
        assert rollback_pack_filename("Raise budgets", "exp-1") == "Raise_budgets_exp-1_rollback_pack.json"
        assert (
            rollback_pack_filename("Raise budgets", "exp-1", "run:1")
            == "Raise_budgets_exp-1_run_run1_rollback_pack.json"
        )

    def test_final_plan(self):
        assert final_plan_filename(None, "exp-1") == "experiment_exp-1_final_plan_pack.json"
