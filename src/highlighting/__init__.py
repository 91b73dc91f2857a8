"""Data models for rendering span highlights onto an editable HTML surface."""
from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Any

from bs4 import NavigableString, Tag

__all__ = [
    "HIGHLIGHT_TAG",
    "HIGHLIGHT_CLASS",
    "PULSE_CLASS",
    "DATA_ATTRIBUTES",
    "NodeEntry",
    "TextNodeIndex",
    "DomRange",
    "WrapSegment",
    "RenderSummary",
    "ScrollRequest",
]

HIGHLIGHT_TAG = "span"
HIGHLIGHT_CLASS = "value-word"
PULSE_CLASS = "value-word-pulse"

# Wrapper attribute names keyed by the span field they carry.
DATA_ATTRIBUTES: dict[str, str] = {
    "id": "data-span-id",
    "category": "data-category",
    "source": "data-source",
    "start": "data-start",
    "end": "data-end",
    "quote": "data-quote",
    "left_ctx": "data-left-ctx",
    "right_ctx": "data-right-ctx",
    "confidence": "data-confidence",
    "idempotency_key": "data-idempotency-key",
    "validator_pass": "data-validator-pass",
}


@dataclass(slots=True)
class NodeEntry:
    """A text node and its ``[start, end)`` range in the surface text."""

    node: NavigableString
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


@dataclass(slots=True)
class TextNodeIndex:
    """Ordered text nodes of a surface with cumulative offsets.

    Entries are replaced in place when wraps split nodes, so one index can
    serve a whole batch of wraps without re-walking the tree.
    """

    entries: list[NodeEntry] = field(default_factory=list)
    length: int = 0

    @property
    def text(self) -> str:
        return "".join(str(entry.node) for entry in self.entries)

    def entry_at(self, offset: int) -> int | None:
        """Index of the entry containing ``offset`` (``None`` if out of range)."""

        if not self.entries or offset < 0 or offset >= self.length:
            return None
        starts = [entry.start for entry in self.entries]
        return bisect_right(starts, offset) - 1

    def replace(self, position: int, replacements: list[NodeEntry]) -> None:
        self.entries[position : position + 1] = replacements


@dataclass(frozen=True, slots=True)
class DomRange:
    """A global text range expressed as node/local-offset boundaries."""

    start_node: NavigableString
    start_offset: int
    end_node: NavigableString
    end_offset: int
    global_start: int
    global_end: int

    @property
    def collapsed(self) -> bool:
        return self.start_node is self.end_node and self.start_offset == self.end_offset


@dataclass(frozen=True, slots=True)
class WrapSegment:
    """One node-local slice handed to a wrapper factory."""

    node: NavigableString
    global_start: int
    global_end: int
    local_start: int
    local_end: int

    @property
    def text(self) -> str:
        return str(self.node)[self.local_start : self.local_end]


@dataclass(slots=True)
class RenderSummary:
    """What a render pass did."""

    rendered: list[str] = field(default_factory=list)
    kept: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
    cleared: bool = False
    unchanged: bool = False

    def to_mapping(self) -> dict[str, Any]:
        return {
            "rendered": list(self.rendered),
            "kept": list(self.kept),
            "removed": list(self.removed),
            "skipped": dict(self.skipped),
            "cleared": self.cleared,
            "unchanged": self.unchanged,
        }


@dataclass(frozen=True, slots=True)
class ScrollRequest:
    """Instruction for the host view to bring a highlight into view."""

    span_id: str
    element: Tag
    behavior: str = "smooth"
    block: str = "center"
