"""HTTP client for the external span labeling service."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Mapping

import requests

from src.anchoring import Span, dedupe_spans
from src.anchoring.cache import build_cache_key, text_hash
from src.anchoring.config import LabelingSettings
from src.anchoring.errors import LabelingServiceError, PayloadValidationError
from src.anchoring.normalization import normalize
from src.anchoring.taxonomy import normalize_category
from src.integrations.payloads import ensure_valid, parse_json_body

from .schemas import LABELING_RESPONSE_VALIDATOR

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LabelingRequest:
    """Parameters of one labeling call; also the labeling cache identity."""

    text: str
    max_spans: int = 60
    min_confidence: float = 0.5
    template_version: str = "v1"
    policy: Mapping[str, Any] = field(default_factory=dict)
    cache_id: str | None = None

    @classmethod
    def from_settings(cls, text: str, settings: LabelingSettings, *, cache_id: str | None = None) -> "LabelingRequest":
        return cls(
            text=normalize(text),
            max_spans=settings.max_spans,
            min_confidence=settings.min_confidence,
            template_version=settings.template_version,
            policy=dict(settings.policy),
            cache_id=cache_id,
        )

    @property
    def signature(self) -> str:
        return text_hash(self.text)

    def cache_key(self) -> str:
        return build_cache_key(
            text=self.text,
            cache_id=self.cache_id,
            max_spans=self.max_spans,
            min_confidence=self.min_confidence,
            template_version=self.template_version,
            policy=self.policy,
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "maxSpans": self.max_spans,
            "minConfidence": self.min_confidence,
            "policy": dict(self.policy),
            "templateVersion": self.template_version,
        }


@dataclass(frozen=True)
class LabelingResponse:
    """Validated labeling result."""

    spans: tuple[Span, ...]
    meta: Mapping[str, Any] = field(default_factory=dict)
    warnings: tuple[str, ...] = ()

    @classmethod
    def empty(cls, reason: str, *, errors: tuple[str, ...] = ()) -> "LabelingResponse":
        return cls(spans=(), meta={"empty_reason": reason}, warnings=(reason, *errors))

    def with_meta(self, **updates: Any) -> "LabelingResponse":
        meta = dict(self.meta)
        meta.update(updates)
        return replace(self, meta=meta)

    def to_mapping(self) -> dict[str, Any]:
        return {
            "spans": [span.to_mapping() for span in self.spans],
            "meta": dict(self.meta),
        }


def parse_labeling_response(body: Any) -> LabelingResponse:
    """Decode and validate a labeling payload.

    Malformed payloads never raise: they produce an empty response and a
    logged warning.
    """

    try:
        payload = parse_json_body(body)
        ensure_valid(LABELING_RESPONSE_VALIDATOR, payload, label="Labeling")
    except PayloadValidationError as exc:
        logger.warning("Discarding malformed labeling payload: %s", exc)
        return LabelingResponse.empty(str(exc), errors=exc.errors)

    spans: list[Span] = []
    for item in payload["spans"]:
        span = Span.from_mapping(item)
        category = normalize_category(span.category)
        if category != span.category:
            span = replace(span, category=category)
        if span.end <= span.start:
            logger.warning("Dropping span %s with empty range %d-%d", span.id, span.start, span.end)
            continue
        spans.append(span)
    meta = payload.get("meta") or {}
    return LabelingResponse(spans=tuple(dedupe_spans(spans)), meta=dict(meta))


class LabelingClient:
    """Client for the span labeling service."""

    ENDPOINT = "/llm/label-spans"

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str | None = None,
        timeout: float = 10.0,
    ):
        if not base_url:
            raise LabelingServiceError("Labeling service URL required. Set ANCHORING_LABELING_URL or labeling.base_url.")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: LabelingSettings) -> "LabelingClient":
        return cls(base_url=settings.base_url or "", api_key=settings.api_key, timeout=settings.timeout_seconds)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    def label_spans(self, request: LabelingRequest) -> LabelingResponse:
        """POST ``request`` and return the validated spans.

        Raises:
            LabelingServiceError: on transport failure or a non-2xx status.
        """
        url = f"{self.base_url}{self.ENDPOINT}"
        try:
            response = requests.post(
                url,
                json=request.to_payload(),
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise LabelingServiceError(f"Labeling request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise LabelingServiceError(
                f"Labeling service returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        result = parse_labeling_response(response.text)
        logger.debug("Labeling returned %d spans for text of length %d", len(result.spans), len(request.text))
        return result

    async def label_spans_async(self, request: LabelingRequest) -> LabelingResponse:
        """Run :meth:`label_spans` in a worker thread so callers can cancel the wait."""

        return await asyncio.to_thread(self.label_spans, request)
