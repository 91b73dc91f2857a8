"""Core data models for span anchoring."""
from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

__all__ = [
    "Span",
    "MatchResult",
    "EditResult",
    "DEFAULT_CONFIDENCE",
    "make_idempotency_key",
    "dedupe_spans",
]

# Labeling backends that omit a confidence score are treated as fairly sure.
DEFAULT_CONFIDENCE = 0.7

EXACT_STRATEGIES = frozenset({"hint", "exact"})


def _clamp_confidence(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, float(value)))


def _as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return default


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def make_idempotency_key(quote: str, start: int, end: int) -> str:
    """Derive a stable dedupe key from a quote and its position."""

    digest = hashlib.sha1(f"{start}:{end}:{quote}".encode("utf-8")).hexdigest()
    return digest[:16]


@dataclass(frozen=True, slots=True)
class Span:
    """A labeled substring of the prompt with a semantic category."""

    id: str
    text: str
    start: int
    end: int
    category: str = ""
    quote: str = ""
    source: str = ""
    confidence: float = DEFAULT_CONFIDENCE
    left_ctx: str = ""
    right_ctx: str = ""
    idempotency_key: str = ""
    validator_pass: bool = True
    metadata: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "metadata", dict(self.metadata))
        object.__setattr__(self, "confidence", _clamp_confidence(self.confidence))
        if not self.idempotency_key:
            key = make_idempotency_key(self.display_quote, self.start, self.end)
            object.__setattr__(self, "idempotency_key", key)

    @property
    def display_quote(self) -> str:
        """The literal text this span points at, preferring ``quote``."""

        return self.quote or self.text

    @property
    def length(self) -> int:
        return max(0, self.end - self.start)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "Span":
        """Build a span from a wire payload (camelCase or snake_case keys)."""

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in payload and payload[key] is not None:
                    return payload[key]
            return None

        text = _as_str(pick("text"))
        quote = _as_str(pick("quote"))
        start = _as_int(pick("start"))
        end = _as_int(pick("end"), default=start + len(quote or text))
        category = _as_str(pick("category", "role"))
        span_id = pick("id")
        if not isinstance(span_id, str) or not span_id:
            span_id = f"{start}-{end}-{category}"
        validator_pass = pick("validatorPass", "validator_pass")
        known = {
            "id",
            "text",
            "quote",
            "start",
            "end",
            "category",
            "role",
            "source",
            "confidence",
            "leftCtx",
            "left_ctx",
            "rightCtx",
            "right_ctx",
            "idempotencyKey",
            "idempotency_key",
            "validatorPass",
            "validator_pass",
        }
        extra = {key: value for key, value in payload.items() if key not in known}
        return cls(
            id=span_id,
            text=text,
            quote=quote,
            start=start,
            end=end,
            category=category,
            source=_as_str(pick("source")),
            confidence=pick("confidence"),
            left_ctx=_as_str(pick("leftCtx", "left_ctx")),
            right_ctx=_as_str(pick("rightCtx", "right_ctx")),
            idempotency_key=_as_str(pick("idempotencyKey", "idempotency_key")),
            validator_pass=validator_pass if isinstance(validator_pass, bool) else True,
            metadata=extra,
        )

    def to_mapping(self) -> dict[str, Any]:
        """Return the camelCase wire representation."""

        payload: dict[str, Any] = dict(self.metadata)
        payload.update(
            {
                "id": self.id,
                "text": self.text,
                "quote": self.quote,
                "start": self.start,
                "end": self.end,
                "category": self.category,
                "source": self.source,
                "confidence": self.confidence,
                "leftCtx": self.left_ctx,
                "rightCtx": self.right_ctx,
                "idempotencyKey": self.idempotency_key,
                "validatorPass": self.validator_pass,
            }
        )
        return payload


@dataclass(frozen=True, slots=True)
class MatchResult:
    """Location of a quote inside a haystack.

    ``strategy`` records which locator tier produced the match; only the
    ``hint`` and ``exact`` tiers guarantee ``haystack[start:end] == quote``.
    """

    start: int
    end: int
    exact: bool
    strategy: str = "exact"
    score: float = 0.0

    def to_mapping(self) -> dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "exact": self.exact,
            "strategy": self.strategy,
            "score": self.score,
        }


@dataclass(frozen=True, slots=True)
class EditResult:
    """Outcome of applying a single span edit to a prompt."""

    updated_prompt: str | None
    match_start: int | None = None
    match_end: int | None = None

    @property
    def changed(self) -> bool:
        return self.updated_prompt is not None


def dedupe_spans(spans: Iterable[Span]) -> list[Span]:
    """Drop spans whose idempotency key was already seen, keeping order."""

    seen: set[str] = set()
    ordered: list[Span] = []
    for span in spans:
        if span.idempotency_key in seen:
            continue
        seen.add(span.idempotency_key)
        ordered.append(span)
    return ordered
