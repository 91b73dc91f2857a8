"""Text canonicalization and grapheme-aware indexing."""
from __future__ import annotations

import re
import unicodedata
from bisect import bisect_left, bisect_right
from dataclasses import dataclass
from typing import Any, Iterator

__all__ = [
    "normalize",
    "collapse_whitespace",
    "is_cluster_boundary",
    "iter_clusters",
    "fold_text",
    "FoldedText",
    "NormalizedText",
    "normalize_with_offsets",
    "Grapheme",
    "CanonicalText",
]

_ZWJ = "\u200d"
_WHITESPACE_PATTERN = re.compile(r"\s+")
_EXTEND_CATEGORIES = {"Mn", "Me", "Mc"}


def normalize(text: Any) -> str:
    """Return NFC text with ``\\r\\n``/``\\r`` line endings unified to ``\\n``.

    Non-string input yields an empty string. The operation is idempotent.
    """

    if not isinstance(text, str):
        return ""
    unified = text.replace("\r\n", "\n").replace("\r", "\n")
    return unicodedata.normalize("NFC", unified)


def collapse_whitespace(text: str) -> str:
    """Collapse whitespace runs to a single space and trim the ends."""

    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def _is_regional_indicator(char: str) -> bool:
    return "\U0001f1e6" <= char <= "\U0001f1ff"


def _is_extender(char: str) -> bool:
    if "\ufe00" <= char <= "\ufe0f" or "\U000e0100" <= char <= "\U000e01ef":
        return True  # variation selectors
    if "\U0001f3fb" <= char <= "\U0001f3ff":
        return True  # emoji skin tone modifiers
    if "\U000e0020" <= char <= "\U000e007f":
        return True  # emoji tag sequence characters
    return unicodedata.category(char) in _EXTEND_CATEGORIES


def is_cluster_boundary(text: str, offset: int) -> bool:
    """Return True when ``offset`` does not split a grapheme cluster.

    Approximates extended grapheme clusters: CR LF, combining marks,
    variation selectors, skin tones, ZWJ sequences and regional indicator
    pairs stay together.
    """

    if offset <= 0 or offset >= len(text):
        return True
    prev, cur = text[offset - 1], text[offset]
    if prev == "\r" and cur == "\n":
        return False
    if prev in "\r\n" or cur in "\r\n":
        return True
    if cur == _ZWJ or _is_extender(cur):
        return False
    if prev == _ZWJ:
        return False
    if _is_regional_indicator(prev) and _is_regional_indicator(cur):
        run = 0
        index = offset - 1
        while index >= 0 and _is_regional_indicator(text[index]):
            run += 1
            index -= 1
        return run % 2 == 0
    return True


def iter_clusters(text: str) -> Iterator[tuple[int, int]]:
    """Yield ``(start, end)`` code point ranges of each grapheme cluster."""

    start = 0
    for offset in range(1, len(text)):
        if is_cluster_boundary(text, offset):
            yield start, offset
            start = offset
    if text:
        yield start, len(text)


@dataclass(frozen=True, slots=True)
class FoldedText:
    """Folded view of a text plus a map back to original offsets.

    ``positions[k]`` is the original offset of folded character ``k``.
    """

    value: str
    positions: tuple[int, ...]
    source_length: int

    def to_source_range(self, start: int, end: int) -> tuple[int, int]:
        """Map a folded ``[start, end)`` range onto the original text."""

        if end <= start:
            origin = self.positions[start] if start < len(self.positions) else self.source_length
            return origin, origin
        return self.positions[start], self.positions[end - 1] + 1


def fold_text(text: str, *, casefold: bool = False) -> FoldedText:
    """Collapse whitespace runs (and optionally case) while tracking offsets."""

    pieces: list[str] = []
    positions: list[int] = []
    in_whitespace = False
    for index, char in enumerate(text):
        if char.isspace():
            if not in_whitespace:
                pieces.append(" ")
                positions.append(index)
            in_whitespace = True
            continue
        in_whitespace = False
        folded = char.casefold() if casefold else char
        for piece in folded:
            pieces.append(piece)
            positions.append(index)
    return FoldedText(value="".join(pieces), positions=tuple(positions), source_length=len(text))


@dataclass(frozen=True, slots=True)
class NormalizedText:
    """:func:`normalize` output plus the offsets where it lines up with the source.

    ``normalized_offsets[k]`` and ``source_offsets[k]`` are the same edge in
    both texts; edges fall between composition segments.
    """

    value: str
    normalized_offsets: tuple[int, ...]
    source_offsets: tuple[int, ...]

    def to_source_range(self, start: int, end: int) -> tuple[int, int]:
        """Map a normalized ``[start, end)`` range onto the source, widening to segment edges."""

        first = max(bisect_right(self.normalized_offsets, start) - 1, 0)
        last = min(bisect_left(self.normalized_offsets, end), len(self.normalized_offsets) - 1)
        return self.source_offsets[first], self.source_offsets[max(first, last)]


def _composition_segments(text: str) -> Iterator[tuple[int, int]]:
    # NFC only composes a starter with the non-starters (and Hangul jamo) after it.
    start = 0
    for offset in range(1, len(text)):
        char = text[offset]
        if text[offset - 1] == "\r" and char == "\n":
            continue
        if unicodedata.combining(char) or "\u1160" <= char <= "\u11ff":
            continue
        yield start, offset
        start = offset
    if text:
        yield start, len(text)


def normalize_with_offsets(text: Any) -> NormalizedText:
    """Normalize ``text`` segment by segment, recording matching offsets."""

    source = text if isinstance(text, str) else ""
    pieces: list[str] = []
    normalized_offsets = [0]
    source_offsets = [0]
    total = 0
    for start, end in _composition_segments(source):
        piece = normalize(source[start:end])
        pieces.append(piece)
        total += len(piece)
        normalized_offsets.append(total)
        source_offsets.append(end)
    return NormalizedText(
        value="".join(pieces),
        normalized_offsets=tuple(normalized_offsets),
        source_offsets=tuple(source_offsets),
    )


@dataclass(frozen=True, slots=True)
class Grapheme:
    """A single user-perceived character within a canonical text."""

    segment: str
    start: int
    end: int
    index: int


class CanonicalText:
    """Normalized text with lazily built grapheme indices.

    Offsets used throughout the package are code point offsets into
    ``normalized``; this class converts between them and grapheme indices.
    """

    def __init__(self, text: Any) -> None:
        self.original = text if isinstance(text, str) else ""
        self.normalized = normalize(self.original)
        self._graphemes: list[Grapheme] | None = None
        self._grapheme_starts: list[int] | None = None

    def _build(self) -> list[Grapheme]:
        if self._graphemes is None:
            graphemes = [
                Grapheme(segment=self.normalized[start:end], start=start, end=end, index=index)
                for index, (start, end) in enumerate(iter_clusters(self.normalized))
            ]
            self._graphemes = graphemes
            self._grapheme_starts = [grapheme.start for grapheme in graphemes]
        return self._graphemes

    @property
    def graphemes(self) -> list[Grapheme]:
        return self._build()

    @property
    def length(self) -> int:
        """Number of grapheme clusters."""

        return len(self._build())

    def __len__(self) -> int:
        return self.length

    def to_code_point(self, grapheme_index: int) -> int:
        """Return the code point offset where ``grapheme_index`` starts."""

        graphemes = self._build()
        if grapheme_index <= 0:
            return 0
        if grapheme_index >= len(graphemes):
            return len(self.normalized)
        return graphemes[grapheme_index].start

    def grapheme_index_for_code_point(self, offset: int) -> int:
        """Return the index of the grapheme containing code point ``offset``."""

        graphemes = self._build()
        if offset <= 0:
            return 0
        if offset >= len(self.normalized):
            return len(graphemes)
        assert self._grapheme_starts is not None
        return bisect_right(self._grapheme_starts, offset) - 1

    def slice_graphemes(self, start: int, end: int) -> str:
        """Half-open grapheme slice; indices are clamped, reversed yields ''."""

        total = self.length
        start = min(max(start, 0), total)
        end = min(max(end, 0), total)
        if end <= start:
            return ""
        return self.normalized[self.to_code_point(start) : self.to_code_point(end)]

    def is_grapheme_boundary(self, offset: int) -> bool:
        return is_cluster_boundary(self.normalized, offset)

    def to_dict(self) -> dict[str, Any]:
        return {
            "original": self.original,
            "normalized": self.normalized,
            "length": self.length,
        }
