"""Diff-based highlight rendering over an editable HTML surface."""
from __future__ import annotations

import logging
from bisect import insort
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Iterable, Mapping

from bs4 import Tag

from src.anchoring import DEFAULT_CONFIDENCE, MatchResult, Span
from src.anchoring.cache import SpanPositionCache
from src.anchoring.context import extract_context
from src.anchoring.locator import DEFAULT_CONTEXT_WINDOW, locate
from src.anchoring.normalization import NormalizedText, normalize, normalize_with_offsets
from src.anchoring.taxonomy import parent_category

from . import (
    DATA_ATTRIBUTES,
    HIGHLIGHT_CLASS,
    HIGHLIGHT_TAG,
    PULSE_CLASS,
    RenderSummary,
    ScrollRequest,
    WrapSegment,
)
from .dom_index import build_text_node_index, new_tag, surface_text, unwrap_highlight, wrap_range_segments
from .timers import Timers

__all__ = ["HighlightRenderer", "span_from_element", "wrapper_classes"]

logger = logging.getLogger(__name__)

DEFAULT_PULSE_DURATION_MS = 1500


def wrapper_classes(category: str) -> list[str]:
    parent = parent_category(category) or "unknown"
    return [HIGHLIGHT_CLASS, f"{HIGHLIGHT_CLASS}-{parent}"]


@dataclass(slots=True)
class _Placement:
    span: Span
    start: int
    end: int
    quote: str
    left_ctx: str
    right_ctx: str
    wrappers: list[Tag] = field(default_factory=list)

    def same_target(self, other: "_Placement") -> bool:
        return (
            self.start == other.start
            and self.end == other.end
            and self.quote == other.quote
            and self.span.category == other.span.category
        )

    @property
    def attached(self) -> bool:
        return bool(self.wrappers) and all(wrapper.parent is not None for wrapper in self.wrappers)


def _coerce(span: Span | Mapping[str, Any]) -> Span:
    return span if isinstance(span, Span) else Span.from_mapping(span)


def _overlaps(coverage: list[tuple[int, int]], start: int, end: int) -> bool:
    return any(start < covered_end and covered_start < end for covered_start, covered_end in coverage)


class HighlightRenderer:
    """Keeps the highlight wrappers under ``root`` in sync with a span list.

    Each pass removes wrappers for spans that vanished or moved, leaves
    unchanged ones alone and wraps the rest. Spans that cannot be located,
    overlap an earlier span or fail to wrap are skipped individually.
    """

    def __init__(
        self,
        root: Tag,
        *,
        position_cache: SpanPositionCache | None = None,
        context_window: int = DEFAULT_CONTEXT_WINDOW,
        snippet_width: int = 30,
        pulse_duration_ms: int = DEFAULT_PULSE_DURATION_MS,
    ) -> None:
        self.root = root
        self.position_cache = position_cache
        self.context_window = context_window
        self.snippet_width = snippet_width
        self.pulse_duration_ms = pulse_duration_ms
        self._placements: dict[str, _Placement] = {}
        self._fingerprint: str | None = None

    @property
    def rendered_ids(self) -> tuple[str, ...]:
        ordered = sorted(self._placements.values(), key=lambda placement: placement.start)
        return tuple(placement.span.id for placement in ordered)

    def wrappers_for(self, span_id: str) -> list[Tag]:
        placement = self._placements.get(span_id)
        return list(placement.wrappers) if placement else []

    def _locate(self, surface: str, span: Span) -> MatchResult | None:
        options = {
            "prefer_index": span.start,
            "left_ctx": span.left_ctx,
            "right_ctx": span.right_ctx,
            "context_window": self.context_window,
        }
        if self.position_cache is not None:
            return self.position_cache.locate(surface, span.display_quote, **options)
        return locate(surface, span.display_quote, **options)

    def render(
        self,
        spans: Iterable[Span | Mapping[str, Any]],
        text: str,
        fingerprint: str | None = None,
    ) -> RenderSummary:
        if (
            fingerprint is not None
            and fingerprint == self._fingerprint
            and all(placement.attached for placement in self._placements.values())
        ):
            return RenderSummary(kept=list(self.rendered_ids), unchanged=True)

        summary = RenderSummary()
        raw_surface = surface_text(self.root)
        surface = normalize(raw_surface)
        if surface != normalize(text):
            logger.info("Surface text differs from display text; clearing highlights")
            summary.removed = self.clear()
            summary.cleared = True
            return summary

        # Spans are located in normalized text; wrapping needs raw DOM offsets.
        offsets: NormalizedText | None = None
        if surface != raw_surface:
            offsets = normalize_with_offsets(raw_surface)
            if offsets.value != surface:
                logger.warning("Surface text does not normalize segment-wise; locating on raw text")
                offsets = None
                surface = raw_surface

        desired: dict[str, _Placement] = {}
        coverage: list[tuple[int, int]] = []
        for raw in spans:
            span = _coerce(raw)
            if span.id in desired:
                summary.skipped[span.id] = "duplicate"
                continue
            if not span.display_quote.strip():
                summary.skipped[span.id] = "empty-quote"
                continue
            match = self._locate(surface, span)
            if match is None:
                logger.warning("Skipping span %s: quote %r not found", span.id, span.display_quote[:50])
                summary.skipped[span.id] = "not-found"
                continue
            start, end = match.start, match.end
            if offsets is not None:
                start, end = offsets.to_source_range(start, end)
            if _overlaps(coverage, start, end):
                logger.info("Skipping span %s: overlaps an earlier span at %d-%d", span.id, start, end)
                summary.skipped[span.id] = "overlap"
                continue
            left, right = extract_context(surface, match.start, match.end, self.snippet_width)
            desired[span.id] = _Placement(
                span=span,
                start=start,
                end=end,
                quote=surface[match.start : match.end],
                left_ctx=span.left_ctx or left,
                right_ctx=span.right_ctx or right,
            )
            insort(coverage, (start, end))

        for span_id, placement in list(self._placements.items()):
            target = desired.get(span_id)
            if target is not None and placement.attached and target.same_target(placement):
                continue
            self._unwrap(placement)
            del self._placements[span_id]
            if target is None:
                summary.removed.append(span_id)

        index = build_text_node_index(self.root)
        for span_id, placement in sorted(desired.items(), key=lambda item: item[1].start):
            if span_id in self._placements:
                summary.kept.append(span_id)
                continue
            try:
                wrappers = wrap_range_segments(
                    self.root,
                    placement.start,
                    placement.end,
                    partial(self._make_wrapper, placement),
                    node_index=index,
                )
            except Exception:
                logger.exception("Failed to wrap span %s", span_id)
                summary.skipped[span_id] = "wrap-failed"
                index = build_text_node_index(self.root)
                continue
            if not wrappers:
                summary.skipped[span_id] = "wrap-failed"
                continue
            placement.wrappers = wrappers
            self._placements[span_id] = placement
            summary.rendered.append(span_id)

        self._fingerprint = fingerprint
        logger.debug(
            "Render pass: %d rendered, %d kept, %d removed, %d skipped",
            len(summary.rendered),
            len(summary.kept),
            len(summary.removed),
            len(summary.skipped),
        )
        return summary

    def _make_wrapper(self, placement: _Placement, segment: WrapSegment) -> Tag:
        span = placement.span
        values = {
            "id": span.id,
            "category": span.category,
            "source": span.source,
            "start": str(span.start),
            "end": str(span.end),
            "quote": normalize(span.display_quote),
            "left_ctx": placement.left_ctx,
            "right_ctx": placement.right_ctx,
            "confidence": repr(span.confidence),
            "idempotency_key": span.idempotency_key,
            "validator_pass": "true" if span.validator_pass else "false",
        }
        attrs = {DATA_ATTRIBUTES[name]: value for name, value in values.items()}
        wrapper = new_tag(self.root, HIGHLIGHT_TAG, attrs)
        wrapper["class"] = wrapper_classes(span.category)
        return wrapper

    def _unwrap(self, placement: _Placement) -> None:
        for wrapper in placement.wrappers:
            if wrapper.parent is not None:
                unwrap_highlight(wrapper)
        placement.wrappers = []

    def clear(self) -> list[str]:
        """Remove every highlight wrapper; returns the ids that were rendered."""

        removed = list(self.rendered_ids)
        for placement in self._placements.values():
            self._unwrap(placement)
        self._placements.clear()
        for stray in self.root.find_all(HIGHLIGHT_TAG, attrs={DATA_ATTRIBUTES["id"]: True}):
            if stray.parent is not None:
                unwrap_highlight(stray)
        self._fingerprint = None
        return removed

    def scroll_to_span(self, span_id: str, timers: Timers) -> ScrollRequest | None:
        """Pulse the wrappers of ``span_id`` and describe how to scroll to them."""

        wrappers = self.wrappers_for(span_id) or self.root.find_all(
            HIGHLIGHT_TAG, attrs={DATA_ATTRIBUTES["id"]: span_id}
        )
        if not wrappers:
            logger.debug("No rendered highlight for span %s", span_id)
            return None
        for wrapper in wrappers:
            classes = wrapper.get("class") or []
            if isinstance(classes, str):
                classes = classes.split()
            if PULSE_CLASS not in classes:
                wrapper["class"] = [*classes, PULSE_CLASS]
        timers.call_later(self.pulse_duration_ms, partial(_remove_pulse, list(wrappers)))
        return ScrollRequest(span_id=span_id, element=wrappers[0])


def _remove_pulse(wrappers: list[Tag]) -> None:
    for wrapper in wrappers:
        classes = wrapper.get("class") or []
        if isinstance(classes, str):
            classes = classes.split()
        wrapper["class"] = [name for name in classes if name != PULSE_CLASS]


def span_from_element(element: Any) -> Span | None:
    """Rebuild a span from a highlight wrapper's data attributes."""

    if not isinstance(element, Tag) or not element.has_attr(DATA_ATTRIBUTES["id"]):
        return None

    def attr(name: str) -> str:
        value = element.get(DATA_ATTRIBUTES[name], "")
        return " ".join(value) if isinstance(value, list) else str(value)

    def as_int(name: str) -> int:
        try:
            return int(attr(name))
        except ValueError:
            return 0

    try:
        confidence: float | None = float(attr("confidence"))
    except ValueError:
        confidence = None
    quote = attr("quote")
    return Span(
        id=attr("id"),
        text=quote or element.get_text(),
        quote=quote,
        start=as_int("start"),
        end=as_int("end"),
        category=attr("category"),
        source=attr("source"),
        confidence=confidence if confidence is not None else DEFAULT_CONFIDENCE,
        left_ctx=attr("left_ctx"),
        right_ctx=attr("right_ctx"),
        idempotency_key=attr("idempotency_key"),
        validator_pass=attr("validator_pass") != "false",
    )
