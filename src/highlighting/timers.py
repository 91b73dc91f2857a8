"""Timer primitives used by the reveal scheduler, debouncer and pulse."""
from __future__ import annotations

import asyncio
import heapq
import itertools
from typing import Callable, Protocol

__all__ = ["TimerHandle", "Timers", "AsyncioTimers", "ManualTimers", "ManualTimerHandle"]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...

    def cancelled(self) -> bool: ...


class Timers(Protocol):
    """Schedules callbacks after a delay expressed in milliseconds."""

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> TimerHandle: ...

    def now_ms(self) -> float: ...


class AsyncioTimers:
    """Timers backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop or asyncio.get_running_loop()

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay_ms) / 1000.0, callback)

    def now_ms(self) -> float:
        return self.loop.time() * 1000.0


class ManualTimerHandle:
    def __init__(self, when: float, callback: Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self._cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self._cancelled = True

    def cancelled(self) -> bool:
        return self._cancelled


class ManualTimers:
    """Deterministic clock advanced explicitly by tests and the CLI."""

    def __init__(self) -> None:
        self._now = 0.0
        self._queue: list[tuple[float, int, ManualTimerHandle]] = []
        self._sequence = itertools.count()

    def now_ms(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> ManualTimerHandle:
        handle = ManualTimerHandle(self._now + max(0.0, delay_ms), callback)
        heapq.heappush(self._queue, (handle.when, next(self._sequence), handle))
        return handle

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled())

    def advance(self, delay_ms: float) -> int:
        """Move the clock forward, firing due callbacks in order. Returns the count fired."""

        target = self._now + max(0.0, delay_ms)
        fired = 0
        while self._queue and self._queue[0][0] <= target:
            when, _, handle = heapq.heappop(self._queue)
            self._now = max(self._now, when)
            if handle.cancelled():
                continue
            handle.fired = True
            handle.callback()
            fired += 1
        self._now = target
        return fired

    def run_all(self) -> int:
        """Fire every pending callback regardless of its delay."""

        fired = 0
        while self._queue:
            fired += self.advance(max(0.0, self._queue[0][0] - self._now))
        return fired
