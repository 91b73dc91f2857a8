"""Debounced, cancellable span labeling with cache and stale fallback."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

from src.anchoring import Span
from src.anchoring.cache import LabelingResultCache, text_hash
from src.anchoring.config import LabelingSettings
from src.anchoring.errors import ServiceError
from src.anchoring.normalization import normalize
from src.highlighting.timers import Timers
from src.integrations.labeling import LabelingRequest, LabelingResponse

from .debounce import Debouncer, smart_debounce_ms

__all__ = ["LabelingStatus", "LabelingResult", "SpanLabelingSession"]

logger = logging.getLogger(__name__)


class LabelingStatus(Enum):
    IDLE = "idle"
    LOADING = "loading"
    REFRESHING = "refreshing"
    SUCCESS = "success"
    ERROR = "error"
    STALE = "stale"


class LabelingBackend(Protocol):
    async def label_spans_async(self, request: LabelingRequest) -> LabelingResponse: ...


@dataclass(frozen=True)
class LabelingResult:
    """Spans delivered to the session owner together with their provenance.

    ``source`` is ``network``, ``cache``, ``cache-fallback`` or ``initial``.
    """

    spans: tuple[Span, ...]
    text: str
    signature: str
    source: str
    status: LabelingStatus
    meta: Mapping[str, Any] = field(default_factory=dict)

    @property
    def fingerprint(self) -> str:
        return f"{self.signature}::{self.source}"


class SpanLabelingSession:
    """Labels the current text, coalescing edits and ignoring stale replies.

    Every request bumps a generation counter; replies that resolve after a
    newer request started are dropped. A failed request falls back to a
    cached result for the same payload when one exists.
    """

    def __init__(
        self,
        client: LabelingBackend,
        settings: LabelingSettings,
        *,
        timers: Timers,
        cache: LabelingResultCache | None = None,
        cache_id: str | None = None,
        initial: Mapping[str, Any] | None = None,
        on_result: Callable[[LabelingResult], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
    ) -> None:
        self.client = client
        self.settings = settings
        self.cache = cache if cache is not None else LabelingResultCache()
        self.cache_id = cache_id
        self.on_result = on_result
        self.on_error = on_error
        self.status = LabelingStatus.IDLE
        self.error: Exception | None = None
        self.result: LabelingResult | None = None
        self._debouncer = Debouncer(timers, settings.debounce_ms)
        self._generation = 0
        self._task: asyncio.Task[None] | None = None
        self._request: LabelingRequest | None = None
        self._initial = dict(initial) if initial else None
        self._last_emitted: str | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending(self) -> bool:
        return self._debouncer.pending or (self._task is not None and not self._task.done())

    def update_text(self, text: str) -> None:
        """Record new text and schedule labeling after the quiet period."""

        normalized = normalize(text)
        if not normalized.strip():
            self.cancel()
            self._request = None
            self.status = LabelingStatus.IDLE
            return

        request = LabelingRequest.from_settings(normalized, self.settings, cache_id=self.cache_id)
        if self._request is not None and request.cache_key() == self._request.cache_key() and self.pending:
            return
        self._request = request

        if self._seed_initial(request):
            return
        cached = self.cache.get(request.cache_key(), request.text)
        if cached is not None:
            self.cancel()
            self.status = LabelingStatus.SUCCESS
            self._emit(
                LabelingResult(
                    spans=tuple(Span.from_mapping(item) for item in cached.spans),
                    text=cached.text,
                    signature=cached.signature,
                    source="cache",
                    status=LabelingStatus.SUCCESS,
                    meta=dict(cached.meta or {}),
                )
            )
            return

        delay = smart_debounce_ms(request.text) if self.settings.smart_debounce else self.settings.debounce_ms
        self._debouncer.trigger(lambda: self._start(request, refreshing=False), delay_ms=delay)

    def refresh(self) -> asyncio.Task[None] | None:
        """Label the current text now, flushing any pending debounce and skipping the cache."""

        if self._request is None:
            return None
        self._debouncer.cancel()
        return self._start(self._request, refreshing=True)

    def cancel(self) -> None:
        """Drop pending and in-flight work without reporting an error."""

        self._debouncer.cancel()
        self._generation += 1
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        """Await the in-flight request, if any."""

        task = self._task
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                logger.debug("Labeling task was cancelled while waiting")

    def _seed_initial(self, request: LabelingRequest) -> bool:
        initial = self._initial
        if initial is None:
            return False
        version = initial.get("templateVersion", initial.get("template_version"))
        signature = initial.get("signature")
        if signature != request.signature or version != request.template_version:
            return False
        self._initial = None
        spans = [item for item in initial.get("spans", ()) if isinstance(item, Mapping)]
        meta = initial.get("meta") if isinstance(initial.get("meta"), Mapping) else {}
        self.cache.set(
            request.cache_key(),
            text=request.text,
            spans=spans,
            meta=meta,
            signature=request.signature,
            cache_id=request.cache_id,
        )
        self.status = LabelingStatus.SUCCESS
        self._emit(
            LabelingResult(
                spans=tuple(Span.from_mapping(item) for item in spans),
                text=request.text,
                signature=request.signature,
                source="initial",
                status=LabelingStatus.SUCCESS,
                meta=dict(meta),
            )
        )
        return True

    def _start(self, request: LabelingRequest, *, refreshing: bool) -> asyncio.Task[None]:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._generation += 1
        self.status = LabelingStatus.REFRESHING if refreshing or self.result is not None else LabelingStatus.LOADING
        self.error = None
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(request, self._generation))
        return self._task

    async def _run(self, request: LabelingRequest, generation: int) -> None:
        try:
            response = await self.client.label_spans_async(request)
        except asyncio.CancelledError:
            logger.debug("Labeling generation %s cancelled", generation)
            return
        except ServiceError as exc:
            if generation != self._generation:
                return
            self._handle_failure(request, exc)
            return
        except Exception as exc:
            logger.exception("Unexpected labeling failure for generation %s", generation)
            if generation != self._generation:
                return
            self._handle_failure(request, exc)
            return

        if generation != self._generation:
            logger.debug("Dropping stale labeling result for generation %s", generation)
            return

        signature = text_hash(request.text)
        self.cache.set(
            request.cache_key(),
            text=request.text,
            spans=[span.to_mapping() for span in response.spans],
            meta=response.meta,
            signature=signature,
            cache_id=request.cache_id,
        )
        self.status = LabelingStatus.SUCCESS
        self._emit(
            LabelingResult(
                spans=response.spans,
                text=request.text,
                signature=signature,
                source="network",
                status=LabelingStatus.SUCCESS,
                meta=dict(response.meta),
            )
        )

    def _handle_failure(self, request: LabelingRequest, exc: Exception) -> None:
        cached = self.cache.get(request.cache_key(), request.text)
        if cached is not None:
            logger.warning("Labeling failed (%s); serving cached spans", exc)
            meta = dict(cached.meta or {})
            meta["source"] = "cache-fallback"
            self.status = LabelingStatus.STALE
            self.error = exc
            self._emit(
                LabelingResult(
                    spans=tuple(Span.from_mapping(item) for item in cached.spans),
                    text=cached.text,
                    signature=cached.signature,
                    source="cache-fallback",
                    status=LabelingStatus.STALE,
                    meta=meta,
                )
            )
            return
        logger.warning("Labeling failed: %s", exc)
        self.status = LabelingStatus.ERROR
        self.error = exc
        if self.on_error is not None:
            self.on_error(exc)

    def _emit(self, result: LabelingResult) -> None:
        self.result = result
        if result.fingerprint == self._last_emitted:
            return
        self._last_emitted = result.fingerprint
        if self.on_result is not None:
            self.on_result(result)
