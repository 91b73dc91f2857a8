"""Tests for the progressive reveal scheduler."""

from __future__ import annotations

import pytest

from src.anchoring import Span
from src.highlighting.reveal import ProgressiveRevealScheduler, RevealThresholds
from src.highlighting.timers import ManualTimers


def _spans(*confidences: float) -> list[Span]:
    return [
        Span(id=f"s{index}", text=f"word{index}", start=index * 6, end=index * 6 + 5, confidence=confidence)
        for index, confidence in enumerate(confidences)
    ]


def test_reveals_tiers_on_schedule() -> None:
    timers = ManualTimers()
    changes = []
    scheduler = ProgressiveRevealScheduler(timers, on_change=changes.append)

    scheduler.schedule(_spans(0.9, 0.7, 0.3))

    assert scheduler.visible_ids == ("s0",)
    assert scheduler.progress == 33
    timers.advance(49)
    assert scheduler.visible_ids == ("s0",)
    timers.advance(1)
    assert scheduler.visible_ids == ("s0", "s1")
    assert scheduler.progress < 100
    assert scheduler.pending
    timers.advance(50)
    assert scheduler.visible_ids == ("s0", "s1", "s2")
    assert scheduler.progress == 100
    assert not scheduler.pending
    assert changes == [("s0",), ("s0", "s1"), ("s0", "s1", "s2")]


def test_new_schedule_supersedes_pending_tiers() -> None:
    timers = ManualTimers()
    scheduler = ProgressiveRevealScheduler(timers)
    scheduler.schedule(_spans(0.9, 0.3))

    scheduler.schedule(_spans(0.65))
    timers.run_all()

    assert scheduler.generation == 2
    assert scheduler.visible_ids == ("s0",)
    assert scheduler.progress == 100


def test_cancel_keeps_already_visible_spans() -> None:
    timers = ManualTimers()
    scheduler = ProgressiveRevealScheduler(timers)
    scheduler.schedule(_spans(0.95, 0.1))

    scheduler.cancel()
    timers.run_all()

    assert scheduler.visible_ids == ("s0",)
    assert not scheduler.pending


def test_empty_schedule_is_complete() -> None:
    scheduler = ProgressiveRevealScheduler(ManualTimers())

    scheduler.schedule([])

    assert scheduler.progress == 100


def test_thresholds_classify_confidence() -> None:
    thresholds = RevealThresholds()

    assert thresholds.tier_for(0.8) == "high"
    assert thresholds.tier_for(0.6) == "medium"
    assert thresholds.tier_for(0.59) == "low"
    assert thresholds.delay_for("medium") == 50
    with pytest.raises(ValueError):
        RevealThresholds(high=0.5, medium=0.7)
