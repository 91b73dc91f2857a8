"""Text node indexing and range wrapping over a BeautifulSoup tree."""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, Mapping

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from . import DomRange, NodeEntry, TextNodeIndex, WrapSegment

__all__ = [
    "iter_text_nodes",
    "build_text_node_index",
    "surface_text",
    "map_global_range",
    "new_tag",
    "wrap_range_segments",
    "unwrap_highlight",
]

logger = logging.getLogger(__name__)

_NON_TEXT_PARENTS = {"script", "style", "template"}

WrapperFactory = Callable[[WrapSegment], Tag]


def iter_text_nodes(root: Tag | None) -> Iterator[NavigableString]:
    """Yield visible text nodes below ``root`` in document order."""

    if root is None:
        return
    for node in root.descendants:
        if not isinstance(node, NavigableString) or isinstance(node, PreformattedString):
            continue
        parent = node.parent
        if parent is not None and parent.name in _NON_TEXT_PARENTS:
            continue
        yield node


def build_text_node_index(root: Tag | None) -> TextNodeIndex:
    """Walk ``root`` and record every non-empty text node with its offsets."""

    entries: list[NodeEntry] = []
    offset = 0
    for node in iter_text_nodes(root):
        length = len(node)
        if length == 0:
            continue
        entries.append(NodeEntry(node=node, start=offset, end=offset + length))
        offset += length
    return TextNodeIndex(entries=entries, length=offset)


def surface_text(root: Tag | None) -> str:
    return "".join(str(node) for node in iter_text_nodes(root))


def map_global_range(index: TextNodeIndex, start: int, end: int) -> DomRange | None:
    """Translate a global ``[start, end)`` range into node boundaries.

    Offsets are clamped to the indexed text; an empty range yields ``None``.
    """

    if not index.entries:
        return None
    start = min(max(start, 0), index.length)
    end = min(max(end, 0), index.length)
    if end <= start:
        return None

    start_position = index.entry_at(start)
    end_position = index.entry_at(end - 1)
    if start_position is None or end_position is None:
        return None
    start_entry = index.entries[start_position]
    end_entry = index.entries[end_position]
    return DomRange(
        start_node=start_entry.node,
        start_offset=start - start_entry.start,
        end_node=end_entry.node,
        end_offset=end - end_entry.start,
        global_start=start,
        global_end=end,
    )


def _soup_for(node: Any) -> BeautifulSoup:
    current = node
    while current is not None and not isinstance(current, BeautifulSoup):
        current = current.parent
    if isinstance(current, BeautifulSoup):
        return current
    return BeautifulSoup("", "html.parser")


def new_tag(root: Any, name: str, attrs: Mapping[str, str] | None = None) -> Tag:
    """Create a tag owned by the document containing ``root``."""

    return _soup_for(root).new_tag(name, attrs=dict(attrs or {}))


def wrap_range_segments(
    root: Tag | None,
    start: int,
    end: int,
    create_wrapper: WrapperFactory,
    node_index: TextNodeIndex | None = None,
) -> list[Tag]:
    """Wrap every text slice covering ``[start, end)``.

    Nodes are split at the range boundaries and each covered slice is moved
    into the wrapper returned by ``create_wrapper``. When ``node_index`` is
    supplied it is updated in place so later wraps in the same batch can
    reuse it. Returns an empty list for invalid input. If wrapping fails
    partway, wrappers already inserted are removed before the error propagates.
    """

    if root is None or isinstance(start, bool) or isinstance(end, bool):
        return []
    if not isinstance(start, int) or not isinstance(end, int) or end <= start:
        return []
    index = node_index if node_index is not None else build_text_node_index(root)
    if map_global_range(index, start, end) is None:
        return []

    start = max(start, 0)
    end = min(end, index.length)
    segments: list[tuple[NodeEntry, WrapSegment]] = []
    for entry in index.entries:
        if entry.end <= start:
            continue
        if entry.start >= end:
            break
        local_start = max(start, entry.start) - entry.start
        local_end = min(end, entry.end) - entry.start
        segment = WrapSegment(
            node=entry.node,
            global_start=entry.start + local_start,
            global_end=entry.start + local_end,
            local_start=local_start,
            local_end=local_end,
        )
        segments.append((entry, segment))

    wrappers: list[Tag] = []
    try:
        for entry, segment in segments:
            wrapper = create_wrapper(segment)
            text = str(entry.node)
            before = text[: segment.local_start]
            middle = text[segment.local_start : segment.local_end]
            after = text[segment.local_end :]

            inner = NavigableString(middle)
            entry.node.replace_with(wrapper)
            wrapper.append(inner)
            replacements: list[NodeEntry] = []
            if before:
                before_node = NavigableString(before)
                wrapper.insert_before(before_node)
                replacements.append(NodeEntry(before_node, entry.start, segment.global_start))
            replacements.append(NodeEntry(inner, segment.global_start, segment.global_end))
            if after:
                after_node = NavigableString(after)
                wrapper.insert_after(after_node)
                replacements.append(NodeEntry(after_node, segment.global_end, entry.end))
            wrappers.append(wrapper)

            position = next(i for i, candidate in enumerate(index.entries) if candidate is entry)
            index.replace(position, replacements)
    except Exception:
        # A half-wrapped range must not survive; the caller's index is stale after this.
        logger.debug("Rolling back %d wrapper(s) for range %d-%d", len(wrappers), start, end)
        for wrapper in wrappers:
            unwrap_highlight(wrapper)
        raise
    return wrappers


def unwrap_highlight(wrapper: Tag) -> None:
    """Replace ``wrapper`` with its children and merge adjacent strings."""

    parent = wrapper.parent
    if parent is None:
        return
    wrapper.unwrap()
    parent.smooth()
