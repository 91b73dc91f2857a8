"""Shared helpers for decoding and validating collaborator payloads."""
from __future__ import annotations

import json
import re
from typing import Any

from jsonschema import Draft7Validator

from src.anchoring.errors import PayloadValidationError

__all__ = ["parse_json_body", "validation_errors", "ensure_valid"]

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def parse_json_body(body: Any) -> Any:
    """Decode a JSON body, tolerating a fenced ```json envelope."""

    if not isinstance(body, (str, bytes)):
        return body
    text = body.decode("utf-8", errors="replace") if isinstance(body, bytes) else body
    text = text.strip()
    fenced = _FENCE_PATTERN.match(text)
    if fenced:
        text = fenced.group(1)
    if not text:
        raise PayloadValidationError("Response body is empty")
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise PayloadValidationError(f"Invalid JSON response: {exc}") from exc


def validation_errors(validator: Draft7Validator, payload: Any) -> tuple[str, ...]:
    """Return human readable schema violations ordered by location."""

    errors = sorted(validator.iter_errors(payload), key=lambda error: [str(part) for part in error.absolute_path])
    messages: list[str] = []
    for error in errors:
        location = "/".join(str(part) for part in error.absolute_path) or "<root>"
        messages.append(f"{location}: {error.message}")
    return tuple(messages)


def ensure_valid(validator: Draft7Validator, payload: Any, *, label: str) -> None:
    errors = validation_errors(validator, payload)
    if errors:
        raise PayloadValidationError(f"{label} payload failed validation: {errors[0]}", errors=errors)
