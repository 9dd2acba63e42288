"""Tests for outcome score normalization."""

from __future__ import annotations

import pytest

from adsbook.evaluation.outcome import (
    extract_evaluation_outcome,
    normalize_outcome_score_percent,
    outcome_tone,
)


class TestNormalizeOutcomeScore:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            (0.5, 50.0),
            (1, 100.0),
            (72, 72.0),
            ("65", 65.0),
            (140, 100.0),
            (-5, 0.0),
            (None, None),
            ("", None),
            (True, None),
            (float("nan"), None),
        ],
    )
    def test_values(self, raw, expected):
        assert normalize_outcome_score_percent(raw) == expected


class TestOutcomeTone:
    @pytest.mark.parametrize(
        ("score", "tone"),
        [(70, "positive"), (69.9, "mixed"), (40, "mixed"), (39, "negative"), (0.8, "positive"), (None, "neutral")],
    )
    def test_thresholds(self, score, tone):
        assert outcome_tone(score) == tone


class TestExtractEvaluationOutcome:
    def test_reads_metrics(self):
        outcome = extract_evaluation_outcome(
            {
                "outcome": {"score": 72, "label": "success"},
                "summary": " Worked ",
                "next_steps": ["Repeat on C2", " ", "Watch ACOS"],
            }
        )
        assert outcome == {
            "score": 72.0,
            "label": "success",
            "summary": "Worked",
            "next_steps": "Repeat on C2\nWatch ACOS",
        }

    def test_unknown_label_and_bad_shape(self):
        assert extract_evaluation_outcome({"outcome": {"label": "great"}})["label"] is None
        assert extract_evaluation_outcome(None) == {
            "score": None,
            "label": None,
            "summary": None,
            "next_steps": None,
        }
