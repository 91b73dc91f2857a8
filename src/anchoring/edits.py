"""Synthesis of prompt mutations from span edits."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping, Sequence

from . import EditResult, MatchResult, Span
from .cache import SpanPositionCache
from .locator import locate

__all__ = [
    "EDIT_REPLACE",
    "EDIT_REMOVE",
    "SpanEdit",
    "derive_quote",
    "apply_edit",
    "apply_edits",
]

logger = logging.getLogger(__name__)

EDIT_REPLACE = "replaceSpanText"
EDIT_REMOVE = "removeSpan"
_EDIT_TYPES = {EDIT_REPLACE, EDIT_REMOVE}

Locator = Callable[..., "MatchResult | None"]


@dataclass(frozen=True, slots=True)
class SpanEdit:
    """A single replace/remove operation targeting a span."""

    type: str
    replacement_text: str = ""
    anchor_quote: str = ""
    span_id: str = ""

    def __post_init__(self) -> None:
        if self.type not in _EDIT_TYPES:
            raise ValueError(f"Unsupported edit type: {self.type!r}")

    @classmethod
    def replace(cls, replacement_text: str, **kwargs: Any) -> "SpanEdit":
        return cls(type=EDIT_REPLACE, replacement_text=replacement_text, **kwargs)

    @classmethod
    def remove(cls, **kwargs: Any) -> "SpanEdit":
        return cls(type=EDIT_REMOVE, **kwargs)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SpanEdit":
        def text(*keys: str) -> str:
            for key in keys:
                value = payload.get(key)
                if isinstance(value, str):
                    return value
            return ""

        return cls(
            type=text("type"),
            replacement_text=text("replacementText", "replacement_text"),
            anchor_quote=text("anchorQuote", "anchor_quote"),
            span_id=text("spanId", "span_id"),
        )


def _coerce_span(span: Span | Mapping[str, Any] | None) -> Span | None:
    if span is None or isinstance(span, Span):
        return span
    if isinstance(span, Mapping):
        return Span.from_mapping(span)
    return None


def _coerce_edit(edit: SpanEdit | Mapping[str, Any]) -> SpanEdit | None:
    if isinstance(edit, SpanEdit):
        return edit
    try:
        return SpanEdit.from_mapping(edit)
    except ValueError as exc:
        logger.warning("Ignoring edit: %s", exc)
        return None


def derive_quote(span: Span | None, edit: SpanEdit) -> str:
    """First non-empty of ``span.quote``, ``span.text``, ``edit.anchor_quote``."""

    if span is not None:
        if span.quote:
            return span.quote
        if span.text:
            return span.text
    return edit.anchor_quote


def _find(
    prompt: str,
    quote: str,
    span: Span | None,
    *,
    cache: SpanPositionCache | None,
    locator: Locator,
) -> MatchResult | None:
    options = {
        "prefer_index": span.start if span is not None else None,
        "left_ctx": span.left_ctx if span is not None else "",
        "right_ctx": span.right_ctx if span is not None else "",
    }
    if cache is not None:
        return cache.locate(prompt, quote, **options)
    return locator(prompt, quote, **options)


def apply_edit(
    prompt: str,
    edit: SpanEdit | Mapping[str, Any],
    span: Span | Mapping[str, Any] | None,
    *,
    cache: SpanPositionCache | None = None,
    locator: Locator = locate,
) -> EditResult:
    """Compute the prompt produced by applying ``edit`` to ``span``.

    Never raises for unusable input; ``updated_prompt`` is ``None`` whenever
    the edit cannot be applied or would leave the prompt unchanged.
    """

    if not isinstance(prompt, str) or not prompt:
        return EditResult(None)
    resolved_edit = _coerce_edit(edit)
    if resolved_edit is None:
        return EditResult(None)
    resolved_span = _coerce_span(span)

    quote = derive_quote(resolved_span, resolved_edit)
    if not quote or not quote.strip():
        return EditResult(None)

    match = _find(prompt, quote, resolved_span, cache=cache, locator=locator)
    if match is None:
        logger.info("Edit skipped: quote %r not found in prompt", quote[:50])
        return EditResult(None)

    replacement = resolved_edit.replacement_text if resolved_edit.type == EDIT_REPLACE else ""
    updated = prompt[: match.start] + replacement + prompt[match.end :]
    if updated == prompt:
        return EditResult(None, match.start, match.end)
    return EditResult(updated, match.start, match.end)


def apply_edits(
    prompt: str,
    edits: Iterable[SpanEdit | Mapping[str, Any]],
    spans: Sequence[Span | Mapping[str, Any]] = (),
    *,
    cache: SpanPositionCache | None = None,
    locator: Locator = locate,
) -> str | None:
    """Apply several edits against the same prompt snapshot.

    Edits are resolved first, then spliced right-to-left so earlier offsets
    remain valid. Edits that overlap an already accepted range are dropped.
    Returns ``None`` when nothing changed.
    """

    if not isinstance(prompt, str) or not prompt:
        return None
    by_id: dict[str, Span] = {}
    for raw in spans:
        coerced = _coerce_span(raw)
        if coerced is not None:
            by_id[coerced.id] = coerced

    planned: list[tuple[int, int, str]] = []
    for raw_edit in edits:
        edit = _coerce_edit(raw_edit)
        if edit is None:
            continue
        span = by_id.get(edit.span_id) if edit.span_id else None
        quote = derive_quote(span, edit)
        if not quote.strip():
            continue
        match = _find(prompt, quote, span, cache=cache, locator=locator)
        if match is None:
            logger.info("Edit for span %s skipped: quote not found", edit.span_id or "<anchor>")
            continue
        replacement = edit.replacement_text if edit.type == EDIT_REPLACE else ""
        planned.append((match.start, match.end, replacement))

    updated = prompt
    boundary = len(prompt) + 1
    for start, end, replacement in sorted(planned, key=lambda item: (item[0], item[1]), reverse=True):
        if end > boundary:
            logger.info("Dropping overlapping edit at %d-%d", start, end)
            continue
        updated = updated[:start] + replacement + updated[end:]
        boundary = start
    return None if updated == prompt else updated
