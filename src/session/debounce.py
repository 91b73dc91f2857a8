"""Debounced operations modelled as small state machines."""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

from src.highlighting.timers import TimerHandle, Timers

__all__ = [
    "OperationState",
    "ScheduledOperation",
    "Debouncer",
    "smart_debounce_ms",
]

logger = logging.getLogger(__name__)


class OperationState(Enum):
    """Lifecycle of one scheduled operation."""

    IDLE = "idle"
    PENDING = "pending"
    FIRED = "fired"
    CANCELLED = "cancelled"


def smart_debounce_ms(text: str) -> int:
    """Shorter quiet periods for short texts, longer ones for long texts."""

    length = len(text or "")
    if length < 100:
        return 50
    if length < 500:
        return 150
    if length < 2000:
        return 300
    return 450


class ScheduledOperation:
    """A callback armed on a timer; moves idle -> pending -> fired | cancelled."""

    def __init__(self, generation: int, callback: Callable[[], None]) -> None:
        self.generation = generation
        self._callback = callback
        self._handle: TimerHandle | None = None
        self.state = OperationState.IDLE

    def arm(self, timers: Timers, delay_ms: float) -> None:
        if self.state is not OperationState.IDLE:
            raise RuntimeError(f"Cannot arm operation in state {self.state.value}")
        self.state = OperationState.PENDING
        self._handle = timers.call_later(delay_ms, self.fire)

    def fire(self) -> bool:
        """Run the callback if still pending. Returns True when it ran."""

        if self.state is not OperationState.PENDING:
            return False
        self.state = OperationState.FIRED
        if self._handle is not None:
            self._handle.cancel()
        self._callback()
        return True

    def cancel(self) -> bool:
        if self.state is not OperationState.PENDING:
            return False
        self.state = OperationState.CANCELLED
        if self._handle is not None:
            self._handle.cancel()
        return True


class Debouncer:
    """Coalesces bursts of triggers into one call per quiet period."""

    def __init__(self, timers: Timers, delay_ms: float = 500) -> None:
        self.timers = timers
        self.delay_ms = delay_ms
        self._generation = 0
        self._current: ScheduledOperation | None = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def pending(self) -> bool:
        return self._current is not None and self._current.state is OperationState.PENDING

    def trigger(self, callback: Callable[[], None], *, delay_ms: float | None = None) -> ScheduledOperation:
        """Replace any pending call with ``callback`` after a fresh quiet period."""

        if self._current is not None and self._current.cancel():
            logger.debug("Debounced generation %s superseded", self._current.generation)
        self._generation += 1
        operation = ScheduledOperation(self._generation, callback)
        operation.arm(self.timers, self.delay_ms if delay_ms is None else delay_ms)
        self._current = operation
        return operation

    def flush(self) -> bool:
        """Run the pending call immediately. Returns False when nothing was pending."""

        if self._current is None:
            return False
        return self._current.fire()

    def cancel(self) -> bool:
        if self._current is None:
            return False
        return self._current.cancel()
