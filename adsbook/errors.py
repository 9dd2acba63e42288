"""Exception taxonomy shared by the services, the API and the CLI.

Every error carries a machine-readable ``code`` and the HTTP status the API
maps it to. ``details()`` returns the structured payload placed under
``details`` in error responses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from adsbook.validation.semantic import SemanticIssue


class AdsbookError(Exception):
    """Base class for all domain errors."""

    code: str = "adsbook_error"
    status_code: int = 500

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def details(self) -> dict[str, Any]:
        return {"code": self.code}


# --- Input shape ---


class PackParseError(AdsbookError, ValueError):
    """An inbound document is malformed or tagged for another experiment."""

    code = "invalid_pack"
    status_code = 400

    def __init__(
        self, message: str, *, code: str | None = None, errors: list[str] | None = None
    ) -> None:
        super().__init__(message, code=code)
        self.errors = errors or []

    def details(self) -> dict[str, Any]:
        return {"code": self.code, "errors": list(self.errors)}


class EvaluationNeedsInputError(PackParseError):
    """The evaluator returned ``ok: false`` with open questions instead of a result."""

    code = "evaluation_needs_input"

    def __init__(self, questions: list[str]) -> None:
        if questions:
            lines = "\n".join(f"- {q}" for q in questions)
            message = f"AI evaluation output marked ok=false with questions:\n{lines}"
        else:
            message = "AI evaluation output marked ok=false."
        super().__init__(message)
        self.questions = questions

    def details(self) -> dict[str, Any]:
        return {"code": self.code, "questions": list(self.questions)}


# --- Lookups ---


class NotFoundError(AdsbookError, LookupError):
    code = "not_found"
    status_code = 404


class ExperimentNotFoundError(NotFoundError):
    code = "experiment_not_found"

    def __init__(self, experiment_id: str) -> None:
        super().__init__(f"Experiment not found: {experiment_id}")
        self.experiment_id = experiment_id


class ProductNotFoundError(NotFoundError):
    code = "product_not_found"

    def __init__(self, asin: str) -> None:
        super().__init__(f"Product not found for this account: {asin}")
        self.asin = asin


class KivItemNotFoundError(NotFoundError):
    code = "kiv_item_not_found"

    def __init__(self, kiv_id: str) -> None:
        super().__init__(f"KIV item not found: {kiv_id}")
        self.kiv_id = kiv_id


# --- Lifecycle and concurrency ---


class PlanStateError(AdsbookError):
    """A lifecycle precondition does not hold (missing patch, missing proposal, ...)."""

    code = "invalid_state"
    status_code = 400


class PlanNotFinalizedError(AdsbookError):
    """Execution was requested for an experiment without a finalized plan."""

    code = "plan_not_finalized"
    status_code = 409


class ScopeConflictError(AdsbookError):
    """The experiment scope changed between read and write."""

    code = "scope_conflict"
    status_code = 409

    def __init__(self, experiment_id: str, expected_version: int) -> None:
        super().__init__(
            f"Experiment {experiment_id} was modified concurrently "
            f"(expected scope version {expected_version}); reload and retry."
        )
        self.experiment_id = experiment_id
        self.expected_version = expected_version


# --- Semantic boundary ---


class SemanticValidationError(AdsbookError):
    """An import references entities that are missing or outside the current scope."""

    code = "semantic_validation_failed"
    status_code = 422

    def __init__(
        self,
        message: str,
        issues: list[SemanticIssue],
        warnings: list[str] | None = None,
    ) -> None:
        super().__init__(message)
        self.issues = issues
        self.warnings = warnings or []

    def details(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "issues": [issue.model_dump(exclude_none=True) for issue in self.issues],
            "warnings": list(self.warnings),
        }


# --- Partial data ---


class PackIncompleteError(AdsbookError):
    """A chunked dataset load had failures while completeness was required."""

    code = "CHUNK_FETCH_INCOMPLETE"
    status_code = 409

    def __init__(
        self,
        message: str,
        *,
        label: str,
        code: str | None = None,
        stats: dict[str, Any] | None = None,
        chunk_errors: list[dict[str, Any]] | None = None,
        context: dict[str, Any] | None = None,
        messages: list[dict[str, Any]] | None = None,
        fetch_diagnostics: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.status = "pack_incomplete"
        self.label = label
        self.stats = stats or {}
        self.chunk_errors = chunk_errors or []
        self.context = context or {}
        self.messages = messages or []
        self.fetch_diagnostics = fetch_diagnostics or {}

    def details(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "label": self.label,
            "stats": self.stats,
            "chunk_errors": self.chunk_errors,
            "context": self.context,
        }
