"""Confidence-tiered, staggered reveal of rendered spans."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Callable, Iterable, Sequence

from src.anchoring import Span

from .timers import TimerHandle, Timers

__all__ = ["RevealThresholds", "ProgressiveRevealScheduler"]

logger = logging.getLogger(__name__)

TIER_HIGH = "high"
TIER_MEDIUM = "medium"
TIER_LOW = "low"
_TIER_ORDER = (TIER_HIGH, TIER_MEDIUM, TIER_LOW)


@dataclass(frozen=True, slots=True)
class RevealThresholds:
    high: float = 0.8
    medium: float = 0.6
    high_delay_ms: int = 0
    medium_delay_ms: int = 50
    low_delay_ms: int = 100

    def __post_init__(self) -> None:
        if self.medium > self.high:
            raise ValueError("medium threshold must not exceed high threshold")

    def tier_for(self, confidence: float) -> str:
        if confidence >= self.high:
            return TIER_HIGH
        if confidence >= self.medium:
            return TIER_MEDIUM
        return TIER_LOW

    def delay_for(self, tier: str) -> int:
        return {
            TIER_HIGH: self.high_delay_ms,
            TIER_MEDIUM: self.medium_delay_ms,
            TIER_LOW: self.low_delay_ms,
        }[tier]


class ProgressiveRevealScheduler:
    """Reveals spans tier by tier; every ``schedule`` call starts a new generation."""

    def __init__(
        self,
        timers: Timers,
        thresholds: RevealThresholds | None = None,
        *,
        on_change: Callable[[tuple[str, ...]], None] | None = None,
    ) -> None:
        self.timers = timers
        self.thresholds = thresholds or RevealThresholds()
        self.on_change = on_change
        self._generation = 0
        self._handles: list[TimerHandle] = []
        self._order: list[str] = []
        self._visible: set[str] = set()

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def visible_ids(self) -> tuple[str, ...]:
        return tuple(span_id for span_id in self._order if span_id in self._visible)

    @property
    def progress(self) -> int:
        """Percentage of scheduled spans currently visible (0-100)."""

        if not self._order:
            return 100
        return len(self._visible) * 100 // len(self._order)

    @property
    def pending(self) -> bool:
        if len(self._visible) >= len(self._order):
            return False
        return any(not handle.cancelled() for handle in self._handles)

    def schedule(self, spans: Iterable[Span]) -> None:
        self.cancel()
        self._generation += 1
        generation = self._generation
        ordered: Sequence[Span] = list(spans)
        self._order = list(dict.fromkeys(span.id for span in ordered))
        self._visible = set()

        tiers: dict[str, list[str]] = {tier: [] for tier in _TIER_ORDER}
        for span in ordered:
            tiers[self.thresholds.tier_for(span.confidence)].append(span.id)

        for tier in _TIER_ORDER:
            ids = tiers[tier]
            if not ids:
                continue
            delay = self.thresholds.delay_for(tier)
            if delay <= 0:
                self._reveal(generation, tuple(ids))
            else:
                self._handles.append(self.timers.call_later(delay, partial(self._reveal, generation, tuple(ids))))
        logger.debug(
            "Scheduled reveal generation %s: %s",
            generation,
            {tier: len(ids) for tier, ids in tiers.items()},
        )

    def cancel(self) -> None:
        """Cancel pending tiers; already visible spans stay visible."""

        for handle in self._handles:
            handle.cancel()
        self._handles = []

    def _reveal(self, generation: int, ids: tuple[str, ...]) -> None:
        if generation != self._generation:
            return
        self._visible.update(ids)
        if self.on_change is not None:
            self.on_change(self.visible_ids)
