"""Context snippets around located quotes."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from .locator import locate
from .normalization import normalize

__all__ = [
    "DEFAULT_SNIPPET_WIDTH",
    "SUGGESTION_CONTEXT_WINDOW",
    "SuggestionContext",
    "extract_context",
    "build_suggestion_context",
]

DEFAULT_SNIPPET_WIDTH = 30
SUGGESTION_CONTEXT_WINDOW = 300


def extract_context(text: str, start: int, end: int, width: int = DEFAULT_SNIPPET_WIDTH) -> tuple[str, str]:
    """Return the ``width`` characters on each side of ``[start, end)``."""

    length = len(text)
    start = min(max(start, 0), length)
    end = min(max(end, start), length)
    return text[max(0, start - width) : start], text[end : min(length, end + width)]


@dataclass(frozen=True, slots=True)
class SuggestionContext:
    """Where a highlight sits in the prompt and the text around it.

    ``found`` is False when the highlight could not be located; offsets are
    then ``None`` and the context strings come only from captured snippets.
    """

    found: bool
    start: int | None
    end: int | None
    context_before: str
    context_after: str

    def to_mapping(self) -> dict[str, Any]:
        return {
            "found": self.found,
            "start": self.start,
            "end": self.end,
            "contextBefore": self.context_before,
            "contextAfter": self.context_after,
        }


def build_suggestion_context(
    prompt: str,
    highlight: str,
    *,
    prefer_index: int | None = None,
    span_meta: Mapping[str, Any] | None = None,
    window: int = SUGGESTION_CONTEXT_WINDOW,
) -> SuggestionContext:
    """Build the before/after context sent along with a suggestion request.

    Captured ``leftCtx``/``rightCtx`` in ``span_meta`` win over text sliced
    from the prompt. An unresolvable highlight is reported with
    ``found=False`` rather than pinned to offset 0.
    """

    meta = span_meta or {}
    left_ctx = meta.get("leftCtx") or meta.get("left_ctx") or ""
    right_ctx = meta.get("rightCtx") or meta.get("right_ctx") or ""
    if prefer_index is None and isinstance(meta.get("start"), int):
        prefer_index = meta["start"]

    normalized_prompt = normalize(prompt)
    quote = normalize(highlight).strip()
    match = (
        locate(
            normalized_prompt,
            quote,
            prefer_index=prefer_index,
            left_ctx=left_ctx if isinstance(left_ctx, str) else "",
            right_ctx=right_ctx if isinstance(right_ctx, str) else "",
        )
        if quote
        else None
    )
    if match is None:
        return SuggestionContext(
            found=False,
            start=None,
            end=None,
            context_before=left_ctx if isinstance(left_ctx, str) else "",
            context_after=right_ctx if isinstance(right_ctx, str) else "",
        )

    before, after = extract_context(normalized_prompt, match.start, match.end, window)
    return SuggestionContext(
        found=True,
        start=match.start,
        end=match.end,
        context_before=left_ctx if isinstance(left_ctx, str) and left_ctx else before.strip(),
        context_after=right_ctx if isinstance(right_ctx, str) and right_ctx else after.strip(),
    )
