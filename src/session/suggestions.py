"""Suggestion fetching with timeout, silent cancellation and a TTL cache."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Protocol

from src.anchoring.errors import ServiceError, SuggestionTimeoutError
from src.integrations.suggestions import SuggestionRequest, SuggestionResponse

__all__ = ["SuggestionFetcher"]

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 3000
DEFAULT_CACHE_TTL_SECONDS = 300


class SuggestionBackend(Protocol):
    async def get_suggestions_async(self, request: SuggestionRequest) -> SuggestionResponse: ...


class SuggestionFetcher:
    """Fetches suggestions for the current selection.

    Starting a fetch cancels the previous one; cancelled fetches never reach
    ``on_error``. Timeouts do, as :class:`SuggestionTimeoutError`.
    """

    def __init__(
        self,
        client: SuggestionBackend,
        *,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS,
        on_result: Callable[[SuggestionRequest, SuggestionResponse], None] | None = None,
        on_error: Callable[[SuggestionRequest, Exception], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.timeout_ms = timeout_ms
        self.cache_ttl_seconds = cache_ttl_seconds
        self.on_result = on_result
        self.on_error = on_error
        self._clock = clock
        self._cache: dict[str, tuple[float, SuggestionResponse]] = {}
        self._task: asyncio.Task[SuggestionResponse | None] | None = None
        self._task_key: str | None = None
        self._generation = 0

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def cached(self, request: SuggestionRequest) -> SuggestionResponse | None:
        key = request.cache_key()
        entry = self._cache.get(key)
        if entry is None:
            return None
        stored_at, response = entry
        if self._clock() - stored_at > self.cache_ttl_seconds:
            del self._cache[key]
            return None
        return response

    def clear_cache(self) -> None:
        self._cache.clear()

    def fetch(self, request: SuggestionRequest) -> asyncio.Task[SuggestionResponse | None]:
        """Start fetching for ``request``, superseding any other in-flight fetch.

        An identical request already in flight is joined instead of restarted.
        """

        key = request.cache_key()
        if self.in_flight and self._task_key == key:
            assert self._task is not None
            return self._task
        self.cancel()
        self._generation += 1
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run(request, key, self._generation))
        self._task_key = key
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._task_key = None

    async def _run(self, request: SuggestionRequest, key: str, generation: int) -> SuggestionResponse | None:
        cached = self.cached(request)
        if cached is not None:
            logger.debug("Suggestion cache hit for %r", request.highlighted_text[:40])
            self._deliver(request, cached, generation)
            return cached

        try:
            response = await asyncio.wait_for(
                self.client.get_suggestions_async(request),
                timeout=self.timeout_ms / 1000,
            )
        except asyncio.CancelledError:
            logger.debug("Suggestion fetch for %r cancelled", request.highlighted_text[:40])
            return None
        except asyncio.TimeoutError:
            self._report(request, SuggestionTimeoutError(self.timeout_ms), generation)
            return None
        except ServiceError as exc:
            self._report(request, exc, generation)
            return None
        except Exception as exc:
            logger.exception("Unexpected suggestion fetch failure for %r", request.highlighted_text[:40])
            self._report(request, exc, generation)
            return None

        if response.suggestions:
            self._cache[key] = (self._clock(), response)
        self._deliver(request, response, generation)
        return response

    def _deliver(self, request: SuggestionRequest, response: SuggestionResponse, generation: int) -> None:
        if generation != self._generation:
            return
        if self.on_result is not None:
            self.on_result(request, response)

    def _report(self, request: SuggestionRequest, exc: Exception, generation: int) -> None:
        if generation != self._generation:
            return
        logger.warning("Suggestion fetch failed: %s", exc)
        if self.on_error is not None:
            self.on_error(request, exc)
