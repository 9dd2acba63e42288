"""Semantic checks run on every externally authored import before any write."""

from adsbook.validation.semantic import (
    SemanticIssue,
    SemanticResult,
    SemanticValidator,
    format_issues_for_error,
    raise_for_issues,
    validate_review_patch_decision_ids,
)

__all__ = [
    "SemanticIssue",
    "SemanticResult",
    "SemanticValidator",
    "format_issues_for_error",
    "raise_for_issues",
    "validate_review_patch_decision_ids",
]
