"""HTTP client for the replacement suggestion service."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

import requests

from src.anchoring.config import SuggestionSettings
from src.anchoring.errors import PayloadValidationError, SuggestionServiceError, SuggestionTimeoutError
from src.integrations.payloads import ensure_valid, parse_json_body

from .schemas import SUGGESTION_RESPONSE_VALIDATOR

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuggestionRequest:
    """Context sent when asking for replacements of a highlighted phrase."""

    highlighted_text: str
    context_before: str = ""
    context_after: str = ""
    full_prompt: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "highlightedText": self.highlighted_text,
            "contextBefore": self.context_before,
            "contextAfter": self.context_after,
            "fullPrompt": self.full_prompt,
            "metadata": dict(self.metadata),
        }
        category = self.metadata.get("category")
        if isinstance(category, str) and category.strip():
            payload["highlightedCategory"] = category.strip()
        return payload

    def cache_key(self) -> str:
        encoded = json.dumps(self.to_payload(), sort_keys=True, ensure_ascii=False, default=str)
        return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SuggestionResponse:
    suggestions: tuple[str, ...]
    is_placeholder: bool = False
    warnings: tuple[str, ...] = ()

    @classmethod
    def empty(cls, reason: str, *, errors: tuple[str, ...] = ()) -> "SuggestionResponse":
        return cls(suggestions=(), is_placeholder=False, warnings=(reason, *errors))

    def to_mapping(self) -> dict[str, Any]:
        return {"suggestions": list(self.suggestions), "isPlaceholder": self.is_placeholder}


def merge_suggestions(*groups: Iterable[str]) -> tuple[str, ...]:
    """Concatenate suggestion lists, dropping blanks and case-insensitive repeats."""

    seen: set[str] = set()
    merged: list[str] = []
    for group in groups:
        for suggestion in group:
            text = suggestion.strip() if isinstance(suggestion, str) else ""
            key = text.casefold()
            if not text or key in seen:
                continue
            seen.add(key)
            merged.append(text)
    return tuple(merged)


def parse_suggestion_response(body: Any) -> SuggestionResponse:
    """Decode and validate a suggestion payload; malformed input yields an empty result."""

    try:
        payload = parse_json_body(body)
        ensure_valid(SUGGESTION_RESPONSE_VALIDATOR, payload, label="Suggestion")
    except PayloadValidationError as exc:
        logger.warning("Discarding malformed suggestion payload: %s", exc)
        return SuggestionResponse.empty(str(exc), errors=exc.errors)

    texts = [item if isinstance(item, str) else item["text"] for item in payload["suggestions"]]
    return SuggestionResponse(
        suggestions=merge_suggestions(texts),
        is_placeholder=bool(payload.get("isPlaceholder", False)),
    )


class SuggestionClient:
    """Client for the enhancement suggestion endpoint."""

    ENDPOINT = "/api/get-enhancement-suggestions"
    DEFAULT_TIMEOUT_MS = 3000

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ):
        if not base_url:
            raise SuggestionServiceError(
                "Suggestion service URL required. Set ANCHORING_SUGGESTIONS_URL or suggestions.base_url."
            )
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout_ms = timeout_ms

    @classmethod
    def from_settings(cls, settings: SuggestionSettings) -> "SuggestionClient":
        return cls(base_url=settings.base_url or "", api_key=settings.api_key, timeout_ms=settings.timeout_ms)

    def get_suggestions(self, request: SuggestionRequest) -> SuggestionResponse:
        """Fetch suggestions for ``request``.

        Raises:
            SuggestionTimeoutError: when the service does not answer in time.
            SuggestionServiceError: on other transport failures or non-2xx status.
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        try:
            response = requests.post(
                f"{self.base_url}{self.ENDPOINT}",
                json=request.to_payload(),
                headers=headers,
                timeout=self.timeout_ms / 1000,
            )
        except requests.Timeout as exc:
            raise SuggestionTimeoutError(self.timeout_ms) from exc
        except requests.RequestException as exc:
            raise SuggestionServiceError(f"Suggestion request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise SuggestionServiceError(
                f"Suggestion service returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return parse_suggestion_response(response.text)

    async def get_suggestions_async(self, request: SuggestionRequest) -> SuggestionResponse:
        return await asyncio.to_thread(self.get_suggestions, request)
