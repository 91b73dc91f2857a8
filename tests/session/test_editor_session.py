"""Tests for the editor session that ties labeling, rendering and suggestions together."""

from __future__ import annotations

import asyncio

from bs4 import BeautifulSoup

from src.anchoring import Span
from src.highlighting.dom_index import surface_text
from src.highlighting.timers import ManualTimers
from src.integrations.labeling import LabelingRequest, LabelingResponse
from src.integrations.suggestions import SuggestionRequest, SuggestionResponse
from src.session import EditorSession

HTML = "<div id='editor'><p>A lone astronaut walks across red dunes</p></div>"


class FakeLabelingClient:
    def __init__(self) -> None:
        self.requests: list[LabelingRequest] = []

    async def label_spans_async(self, request: LabelingRequest) -> LabelingResponse:
        self.requests.append(request)
        await asyncio.sleep(0)
        spans = []
        for span_id, quote, category, confidence in (
            ("astronaut", "astronaut", "subject.identity", 0.9),
            ("dunes", "red dunes", "environment.location", 0.4),
        ):
            start = request.text.find(quote)
            if start >= 0:
                spans.append(
                    Span(id=span_id, text=quote, start=start, end=start + len(quote), category=category, confidence=confidence)
                )
        return LabelingResponse(spans=tuple(spans))


class FakeSuggestionClient:
    def __init__(self) -> None:
        self.requests: list[SuggestionRequest] = []

    async def get_suggestions_async(self, request: SuggestionRequest) -> SuggestionResponse:
        self.requests.append(request)
        await asyncio.sleep(0)
        return SuggestionResponse(suggestions=("cosmonaut", "explorer"))


def _editor_root():
    soup = BeautifulSoup(HTML, "html.parser")
    return soup, soup.find(id="editor")


def test_labels_are_rendered_revealed_and_editable() -> None:
    soup, root = _editor_root()
    timers = ManualTimers()
    suggestions_client = FakeSuggestionClient()
    received = []

    async def scenario():
        editor = EditorSession(
            root,
            timers=timers,
            labeling_client=FakeLabelingClient(),
            suggestion_client=suggestions_client,
            cache_id="doc-1",
            on_suggestions=lambda request, response: received.append(response),
        )
        editor.set_text(surface_text(root))
        timers.advance(50)
        await editor.labeling.wait()

        assert editor.renderer.rendered_ids == ("astronaut", "dunes")
        assert editor.reveal.visible_ids == ("astronaut",)
        timers.advance(100)
        assert editor.reveal.progress == 100

        span = editor.span_for_element(editor.renderer.wrappers_for("astronaut")[0])
        await editor.request_suggestions(span)

        scroll = editor.scroll_to_span("astronaut")
        assert scroll is not None and scroll.span_id == "astronaut"

        edit = editor.apply_suggestion(span, "cosmonaut")
        assert edit.updated_prompt == "A lone cosmonaut walks across red dunes"
        assert editor.text == edit.updated_prompt
        assert editor.labeling.pending

        editor.close()
        return editor

    editor = asyncio.run(scenario())

    request = suggestions_client.requests[0]
    assert request.highlighted_text == "astronaut"
    assert request.context_before == "A lone "
    assert request.context_after == " walks across red dunes"
    assert request.metadata["spanId"] == "astronaut"
    assert (request.metadata["start"], request.metadata["end"]) == (7, 16)
    assert received[0].suggestions == ("cosmonaut", "explorer")

    assert editor.renderer.rendered_ids == ()
    assert soup.find(attrs={"data-span-id": True}) is None
    assert len(editor.position_cache) == 0
    assert not editor.labeling.pending


def test_session_without_services_renders_given_spans() -> None:
    _, root = _editor_root()
    editor = EditorSession(root, timers=ManualTimers())
    editor.set_text(surface_text(root))

    summary = editor.show_spans(
        [{"id": "dunes", "text": "red dunes", "start": 30, "end": 39, "confidence": 0.95}]
    )

    assert summary.rendered == ["dunes"]
    assert editor.reveal.visible_ids == ("dunes",)
    assert editor.request_suggestions(editor.spans[0]) is None

    removal = editor.remove_span(editor.spans[0])

    assert removal.updated_prompt == "A lone astronaut walks across "
    assert editor.text == removal.updated_prompt


def test_sessions_do_not_share_caches() -> None:
    _, first_root = _editor_root()
    _, second_root = _editor_root()
    first = EditorSession(first_root, timers=ManualTimers())
    second = EditorSession(second_root, timers=ManualTimers())
    first.set_text(surface_text(first_root))

    first.show_spans([Span(id="a", text="astronaut", start=7, end=16)])

    assert len(first.position_cache) == 1
    assert len(second.position_cache) == 0
    assert first.labeling_cache is not second.labeling_cache
