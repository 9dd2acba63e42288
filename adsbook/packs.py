"""Shared loading and validation of externally authored JSON documents."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ValidationError

from adsbook.errors import PackParseError

if TYPE_CHECKING:
    from collections.abc import Mapping

M = TypeVar("M", bound=BaseModel)


def load_json_document(raw: str | bytes | Mapping[str, Any]) -> dict[str, Any]:
    """Accept JSON text or an already-decoded mapping; the root must be an object."""
    if isinstance(raw, str | bytes):
        try:
            parsed = json.loads(raw)
        except ValueError as exc:
            raise PackParseError("Invalid JSON payload.", code="invalid_json") from exc
    else:
        parsed = raw
    if not isinstance(parsed, dict):
        raise PackParseError("Payload must be a JSON object.", code="invalid_json")
    return dict(parsed)


def require_kind(doc: Mapping[str, Any], expected: str) -> None:
    if doc.get("kind") != expected:
        raise PackParseError(f"kind must be {expected}.", code="invalid_kind")


def _format_loc(loc: tuple[int | str, ...]) -> str:
    out = ""
    for part in loc:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}" if out else str(part)
    return out or "(root)"


def format_validation_errors(exc: ValidationError) -> list[str]:
    lines = []
    for err in exc.errors():
        message = str(err["msg"]).removeprefix("Value error, ")
        lines.append(f"{_format_loc(err['loc'])}: {message}")
    return lines


def validate_document(model: type[M], doc: Mapping[str, Any], title: str) -> M:
    """Validate ``doc`` against ``model``, aggregating every problem into one PackParseError."""
    try:
        return model.model_validate(doc)
    except ValidationError as exc:
        errors = format_validation_errors(exc)
        raise PackParseError(
            f"{title} validation failed:\n" + "\n".join(f"- {e}" for e in errors),
            errors=errors,
        ) from exc


def compact_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, default=str)
