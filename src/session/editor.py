"""One editor session owning every cache, timer and renderer it uses."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Iterable, Mapping

from bs4 import Tag

from src.anchoring import EditResult, Span
from src.anchoring.cache import LabelingResultCache, SpanPositionCache
from src.anchoring.config import AnchoringConfig
from src.anchoring.context import build_suggestion_context
from src.anchoring.edits import SpanEdit, apply_edit
from src.anchoring.normalization import normalize
from src.highlighting import RenderSummary, ScrollRequest
from src.highlighting.renderer import HighlightRenderer, span_from_element
from src.highlighting.reveal import ProgressiveRevealScheduler, RevealThresholds
from src.highlighting.timers import Timers
from src.integrations.suggestions import SuggestionRequest, SuggestionResponse

from .labeling import LabelingBackend, LabelingResult, SpanLabelingSession
from .suggestions import SuggestionBackend, SuggestionFetcher

__all__ = ["EditorSession"]

logger = logging.getLogger(__name__)


class EditorSession:
    """Ties labeling, rendering, reveal and suggestions to one editable surface.

    Nothing here is shared between sessions; :meth:`close` releases it all.
    """

    def __init__(
        self,
        root: Tag,
        *,
        timers: Timers,
        config: AnchoringConfig | None = None,
        labeling_client: LabelingBackend | None = None,
        suggestion_client: SuggestionBackend | None = None,
        cache_id: str | None = None,
        on_suggestions: Callable[[SuggestionRequest, SuggestionResponse], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self.config = config or AnchoringConfig.default()
        self.timers = timers
        self.text = ""
        self.spans: tuple[Span, ...] = ()
        self.on_error = on_error
        self.position_cache = SpanPositionCache(
            self.config.cache.max_entries,
            version=self.config.labeling.template_version,
        )
        self.renderer = HighlightRenderer(
            root,
            position_cache=self.position_cache,
            context_window=self.config.locator.context_window,
            snippet_width=self.config.locator.snippet_width,
            pulse_duration_ms=self.config.render.pulse_duration_ms,
        )
        reveal = self.config.reveal
        self.reveal = ProgressiveRevealScheduler(
            timers,
            RevealThresholds(
                high=reveal.high,
                medium=reveal.medium,
                high_delay_ms=reveal.high_delay_ms,
                medium_delay_ms=reveal.medium_delay_ms,
                low_delay_ms=reveal.low_delay_ms,
            ),
        )
        self.labeling_cache = LabelingResultCache(
            self.config.cache.labeling_limit,
            persist_path=self.config.cache.persist_path,
        )
        self.labeling: SpanLabelingSession | None = None
        if labeling_client is not None:
            self.labeling = SpanLabelingSession(
                labeling_client,
                self.config.labeling,
                timers=timers,
                cache=self.labeling_cache,
                cache_id=cache_id,
                on_result=self._on_labels,
                on_error=self._report,
            )
        self.suggestions: SuggestionFetcher | None = None
        if suggestion_client is not None:
            self.suggestions = SuggestionFetcher(
                suggestion_client,
                timeout_ms=self.config.suggestions.timeout_ms,
                cache_ttl_seconds=self.config.suggestions.cache_ttl_seconds,
                on_result=on_suggestions,
                on_error=lambda _request, exc: self._report(exc),
            )

    def _report(self, exc: Exception) -> None:
        if self.on_error is not None:
            self.on_error(exc)

    def set_text(self, text: str) -> None:
        """Adopt new editor text and schedule labeling for it."""

        self.text = normalize(text)
        if self.labeling is not None:
            self.labeling.update_text(self.text)

    def show_spans(self, spans: Iterable[Span | Mapping[str, Any]], fingerprint: str | None = None) -> RenderSummary:
        """Render ``spans`` and start a fresh progressive reveal for the ones drawn."""

        resolved = tuple(span if isinstance(span, Span) else Span.from_mapping(span) for span in spans)
        summary = self.renderer.render(resolved, self.text, fingerprint)
        visible = set(self.renderer.rendered_ids)
        self.spans = tuple(span for span in resolved if span.id in visible)
        if not summary.unchanged:
            self.reveal.schedule(self.spans)
        return summary

    def _on_labels(self, result: LabelingResult) -> None:
        if result.text != self.text:
            logger.debug("Ignoring labels for outdated text")
            return
        self.show_spans(result.spans, fingerprint=result.fingerprint)

    def span_for_element(self, element: Any) -> Span | None:
        return span_from_element(element)

    def scroll_to_span(self, span_id: str) -> ScrollRequest | None:
        return self.renderer.scroll_to_span(span_id, self.timers)

    def request_suggestions(self, span: Span) -> asyncio.Task[SuggestionResponse | None] | None:
        """Ask for replacements of ``span`` using context rebuilt from the prompt."""

        if self.suggestions is None:
            return None
        context = build_suggestion_context(
            self.text,
            span.display_quote,
            span_meta=span.to_mapping(),
        )
        if not context.found:
            logger.info("Span %s is no longer in the prompt; requesting without offsets", span.id)
        request = SuggestionRequest(
            highlighted_text=span.display_quote.strip(),
            context_before=context.context_before,
            context_after=context.context_after,
            full_prompt=self.text,
            metadata={
                "category": span.category,
                "confidence": span.confidence,
                "spanId": span.id,
                "start": context.start,
                "end": context.end,
            },
        )
        return self.suggestions.fetch(request)

    def apply_suggestion(self, span: Span, replacement: str) -> EditResult:
        return self._commit(apply_edit(self.text, SpanEdit.replace(replacement), span, cache=self.position_cache))

    def remove_span(self, span: Span) -> EditResult:
        return self._commit(apply_edit(self.text, SpanEdit.remove(), span, cache=self.position_cache))

    def _commit(self, result: EditResult) -> EditResult:
        if result.updated_prompt is not None:
            self.set_text(result.updated_prompt)
        return result

    def close(self) -> None:
        """Cancel pending work and release every session-owned resource."""

        if self.labeling is not None:
            self.labeling.cancel()
        if self.suggestions is not None:
            self.suggestions.cancel()
            self.suggestions.clear_cache()
        self.reveal.cancel()
        self.renderer.clear()
        self.position_cache.clear()
        self.spans = ()
