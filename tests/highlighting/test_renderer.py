"""Tests for diff-based highlight rendering."""

from __future__ import annotations

from unittest.mock import patch

from bs4 import BeautifulSoup

from src.anchoring import Span
from src.anchoring.cache import SpanPositionCache
from src.highlighting import PULSE_CLASS
from src.highlighting.dom_index import surface_text
from src.highlighting.renderer import HighlightRenderer, span_from_element, wrapper_classes
from src.highlighting.timers import ManualTimers

HTML = "<div id='editor'><p>A lone astronaut walks across red <i>dunes</i></p></div>"

ASTRONAUT = Span(id="s1", text="astronaut", start=7, end=16, category="subject.identity", confidence=0.9)
DUNES = Span(id="s2", text="red dunes", start=30, end=39, category="environment.location", confidence=0.4)


def _renderer(**kwargs):
    soup = BeautifulSoup(HTML, "html.parser")
    root = soup.find(id="editor")
    return soup, root, HighlightRenderer(root, **kwargs)


def test_render_wraps_each_span_with_metadata() -> None:
    soup, root, renderer = _renderer()
    text = surface_text(root)

    summary = renderer.render([ASTRONAUT, DUNES], text)

    assert summary.rendered == ["s1", "s2"]
    assert renderer.rendered_ids == ("s1", "s2")
    wrapper = renderer.wrappers_for("s1")[0]
    assert wrapper.get_text() == "astronaut"
    assert wrapper["data-category"] == "subject.identity"
    assert wrapper["data-start"] == "7"
    assert wrapper["class"] == ["value-word", "value-word-subject"]
    assert [tag.get_text() for tag in renderer.wrappers_for("s2")] == ["red ", "dunes"]
    assert surface_text(root) == text


def test_wrapper_attributes_round_trip_to_span() -> None:
    _, root, renderer = _renderer()
    renderer.render([ASTRONAUT], surface_text(root))

    rebuilt = span_from_element(renderer.wrappers_for("s1")[0])

    assert rebuilt is not None
    assert (rebuilt.id, rebuilt.start, rebuilt.end) == ("s1", 7, 16)
    assert rebuilt.quote == "astronaut"
    assert rebuilt.category == "subject.identity"
    assert rebuilt.confidence == 0.9
    assert rebuilt.left_ctx == "A lone "
    assert rebuilt.right_ctx == " walks across red dunes"
    assert rebuilt.idempotency_key == ASTRONAUT.idempotency_key
    assert rebuilt.validator_pass is True
    assert span_from_element(root) is None


def test_render_skips_unusable_spans_individually() -> None:
    _, root, renderer = _renderer()
    spans = [
        ASTRONAUT,
        Span(id="s1", text="lone", start=2, end=6),
        Span(id="overlap", text="lone astronaut", start=2, end=16),
        Span(id="missing", text="blue sea", start=0, end=8),
        Span(id="blank", text="  ", start=0, end=2),
        DUNES,
    ]

    summary = renderer.render(spans, surface_text(root))

    assert summary.rendered == ["s1", "s2"]
    assert summary.skipped == {
        "s1": "duplicate",
        "overlap": "overlap",
        "missing": "not-found",
        "blank": "empty-quote",
    }


def test_render_clears_when_surface_diverges_from_text() -> None:
    soup, root, renderer = _renderer()
    renderer.render([ASTRONAUT, DUNES], surface_text(root))

    summary = renderer.render([ASTRONAUT], "Some other text entirely")

    assert summary.cleared
    assert summary.removed == ["s1", "s2"]
    assert soup.find("span") is None
    assert renderer.rendered_ids == ()


def test_same_fingerprint_skips_render_pass() -> None:
    _, root, renderer = _renderer()
    text = surface_text(root)
    renderer.render([ASTRONAUT], text, fingerprint="abc::network")

    with patch.object(renderer, "_locate") as locate_mock:
        summary = renderer.render([ASTRONAUT], text, fingerprint="abc::network")

    locate_mock.assert_not_called()
    assert summary.unchanged
    assert summary.kept == ["s1"]


def test_rerender_diffs_against_existing_wrappers() -> None:
    _, root, renderer = _renderer()
    text = surface_text(root)
    renderer.render([ASTRONAUT, DUNES], text)
    original_wrapper = renderer.wrappers_for("s1")[0]

    summary = renderer.render([ASTRONAUT], text)

    assert summary.kept == ["s1"]
    assert summary.removed == ["s2"]
    assert summary.rendered == []
    assert renderer.wrappers_for("s1")[0] is original_wrapper
    assert root.find(attrs={"data-span-id": "s2"}) is None


def test_moved_span_is_rewrapped() -> None:
    _, root, renderer = _renderer()
    text = surface_text(root)
    renderer.render([Span(id="w", text="lone", start=2, end=6)], text)

    summary = renderer.render([Span(id="w", text="walks", start=17, end=22)], text)

    assert summary.rendered == ["w"]
    assert [tag.get_text() for tag in root.find_all(attrs={"data-span-id": "w"})] == ["walks"]


def test_render_uses_session_position_cache() -> None:
    cache = SpanPositionCache()
    _, root, renderer = _renderer(position_cache=cache)
    text = surface_text(root)

    renderer.render([ASTRONAUT], text)
    renderer.clear()
    renderer.render([ASTRONAUT], text)

    assert cache.get_snapshot()["hits"] == 1


def test_wrap_failure_skips_only_that_span() -> None:
    _, root, renderer = _renderer()
    original = renderer._make_wrapper

    def flaky(placement, segment):
        if placement.span.id == "s1":
            raise RuntimeError("boom")
        return original(placement, segment)

    with patch.object(renderer, "_make_wrapper", side_effect=flaky):
        summary = renderer.render([ASTRONAUT, DUNES], surface_text(root))

    assert summary.skipped == {"s1": "wrap-failed"}
    assert summary.rendered == ["s2"]


def test_wrap_failure_midway_leaves_no_stray_wrappers() -> None:
    _, root, renderer = _renderer()
    text = surface_text(root)
    before = str(root)
    original = renderer._make_wrapper
    calls = []

    def fail_on_second_segment(placement, segment):
        calls.append(segment)
        if len(calls) == 2:
            raise RuntimeError("boom")
        return original(placement, segment)

    with patch.object(renderer, "_make_wrapper", side_effect=fail_on_second_segment):
        summary = renderer.render([DUNES], text)

    assert summary.skipped == {"s2": "wrap-failed"}
    assert root.find(attrs={"data-span-id": "s2"}) is None
    assert str(root) == before

    retry = renderer.render([DUNES], text)

    assert retry.rendered == ["s2"]
    assert [tag.get_text() for tag in root.find_all(attrs={"data-span-id": "s2"})] == ["red ", "dunes"]


def test_render_onto_decomposed_surface() -> None:
    soup = BeautifulSoup("<div>Un nin\u0303o corriendo</div>", "html.parser")
    renderer = HighlightRenderer(soup.div)
    text = "Un ni\u00f1o corriendo"
    span = Span(id="s1", text="ni\u00f1o", start=3, end=7, category="subject.identity")

    summary = renderer.render([span], text)

    assert summary.rendered == ["s1"]
    assert summary.skipped == {}
    wrapper = renderer.wrappers_for("s1")[0]
    assert wrapper.get_text() == "nin\u0303o"
    assert wrapper["data-quote"] == "ni\u00f1o"
    assert surface_text(soup.div) == "Un nin\u0303o corriendo"

    again = renderer.render([span], text)

    assert again.kept == ["s1"]
    assert again.rendered == []


def test_scroll_to_span_pulses_then_settles() -> None:
    timers = ManualTimers()
    _, root, renderer = _renderer(pulse_duration_ms=1500)
    renderer.render([ASTRONAUT], surface_text(root))

    request = renderer.scroll_to_span("s1", timers)

    assert request is not None
    assert request.element is renderer.wrappers_for("s1")[0]
    assert (request.behavior, request.block) == ("smooth", "center")
    assert PULSE_CLASS in request.element["class"]
    timers.advance(1499)
    assert PULSE_CLASS in request.element["class"]
    timers.advance(1)
    assert PULSE_CLASS not in request.element["class"]
    assert renderer.scroll_to_span("unknown", timers) is None


def test_wrapper_classes_fall_back_to_unknown() -> None:
    assert wrapper_classes("lens") == ["value-word", "value-word-camera"]
    assert wrapper_classes("") == ["value-word", "value-word-unknown"]
