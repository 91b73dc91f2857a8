"""Tiered quote relocation inside normalized text.

Tiers, first success wins:

1. ``hint``: literal equality at ``prefer_index`` (accepted outright unless
   the supplied context clearly disagrees with that position);
2. ``exact``: every literal occurrence, ranked by context agreement, then by
   distance to ``prefer_index``, then by document order. A quote that only
   occurs in its NFC form is reported as ``normalized`` with ``exact=False``;
3. fuzzy: whitespace-tolerant, case-insensitive, and finally a
   context-bracketed edit-distance match (``exact=False``);
4. ``None``; callers must never invent an offset.
"""
from __future__ import annotations

import logging
from typing import Iterable, Sequence

from . import MatchResult, Span
from .normalization import FoldedText, fold_text, is_cluster_boundary, normalize

__all__ = [
    "DEFAULT_CONTEXT_WINDOW",
    "FUZZY_DISTANCE_THRESHOLD",
    "find_occurrences",
    "context_score",
    "edit_distance",
    "locate",
    "locate_span",
]

logger = logging.getLogger(__name__)

DEFAULT_CONTEXT_WINDOW = 80
FUZZY_DISTANCE_THRESHOLD = 0.35
_MIN_FRAGMENT = 4
_MAX_BRACKET_PAIRS = 200


def find_occurrences(haystack: str, quote: str) -> list[int]:
    """Return every (possibly overlapping) start offset of ``quote``."""

    if not quote:
        return []
    occurrences: list[int] = []
    index = haystack.find(quote)
    while index != -1:
        occurrences.append(index)
        index = haystack.find(quote, index + 1)
    return occurrences


def context_score(
    haystack: str,
    start: int,
    end: int,
    left_ctx: str = "",
    right_ctx: str = "",
    *,
    window: int = DEFAULT_CONTEXT_WINDOW,
) -> int:
    """Count context characters agreeing with the text around ``[start, end)``.

    Left context is compared backwards from ``start`` and right context
    forwards from ``end``, one character at a time, stopping at the first
    mismatch and never looking further than ``window`` characters.
    """

    score = 0
    if left_ctx:
        limit = min(window, len(left_ctx), start)
        for offset in range(1, limit + 1):
            if left_ctx[-offset] != haystack[start - offset]:
                break
            score += 1
    if right_ctx:
        limit = min(window, len(right_ctx), len(haystack) - end)
        for offset in range(limit):
            if right_ctx[offset] != haystack[end + offset]:
                break
            score += 1
    return score


def _max_context_score(haystack: str, start: int, end: int, left_ctx: str, right_ctx: str, window: int) -> int:
    left = min(window, len(left_ctx), start) if left_ctx else 0
    right = min(window, len(right_ctx), len(haystack) - end) if right_ctx else 0
    return left + right


def edit_distance(left: str, right: str) -> int:
    """Iterative Levenshtein distance."""

    if left == right:
        return 0
    if not left:
        return len(right)
    if not right:
        return len(left)
    previous = list(range(len(right) + 1))
    for i, left_char in enumerate(left, start=1):
        current = [i]
        for j, right_char in enumerate(right, start=1):
            cost = 0 if left_char == right_char else 1
            current.append(min(current[j - 1] + 1, previous[j] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def _on_boundaries(haystack: str, start: int, end: int) -> bool:
    return is_cluster_boundary(haystack, start) and is_cluster_boundary(haystack, end)


def _rank(
    haystack: str,
    candidates: Iterable[tuple[int, int]],
    *,
    prefer_index: int | None,
    left_ctx: str,
    right_ctx: str,
    window: int,
) -> tuple[int, int, int] | None:
    """Pick the best ``(start, end, score)`` candidate or ``None``."""

    best: tuple[int, int, int] | None = None
    best_key: tuple[int, int, int] | None = None
    for start, end in candidates:
        if not _on_boundaries(haystack, start, end):
            continue
        score = context_score(haystack, start, end, left_ctx, right_ctx, window=window)
        distance = abs(start - prefer_index) if prefer_index is not None else 0
        key = (-score, distance, start)
        if best_key is None or key < best_key:
            best_key = key
            best = (start, end, score)
    return best


def _folded_candidates(folded: FoldedText, needle: str) -> list[tuple[int, int]]:
    candidates: list[tuple[int, int]] = []
    for index in find_occurrences(folded.value, needle):
        candidates.append(folded.to_source_range(index, index + len(needle)))
    return candidates


def _fragment_anchors(haystack: str, fragment: str, *, from_end: bool) -> list[int]:
    """Offsets where the longest present piece of ``fragment`` touches the quote.

    For left context the piece is a suffix and the anchor is where it ends;
    for right context the piece is a prefix and the anchor is where it starts.
    """

    for size in range(len(fragment), _MIN_FRAGMENT - 1, -1):
        piece = fragment[-size:] if from_end else fragment[:size]
        if not piece.strip():
            continue
        occurrences = find_occurrences(haystack, piece)
        if occurrences:
            return [index + size for index in occurrences] if from_end else occurrences
    return []


def _trim(haystack: str, start: int, end: int) -> tuple[int, int]:
    while start < end and haystack[start].isspace():
        start += 1
    while end > start and haystack[end - 1].isspace():
        end -= 1
    return start, end


def _best_region(
    haystack: str,
    target: str,
    regions: Sequence[tuple[int, int]],
    prefer_index: int | None,
) -> tuple[int, int, float] | None:
    best: tuple[int, int, float] | None = None
    best_key: tuple[float, int, int] | None = None
    for raw_start, raw_end in regions[:_MAX_BRACKET_PAIRS]:
        start, end = _trim(haystack, raw_start, raw_end)
        if end <= start or not _on_boundaries(haystack, start, end):
            continue
        candidate = fold_text(haystack[start:end], casefold=True).value
        ratio = edit_distance(target, candidate) / max(len(target), len(candidate), 1)
        if ratio > FUZZY_DISTANCE_THRESHOLD:
            continue
        distance = abs(start - prefer_index) if prefer_index is not None else 0
        key = (ratio, distance, start)
        if best_key is None or key < best_key:
            best_key = key
            best = (start, end, ratio)
    return best


def _bracketed_match(
    haystack: str,
    quote: str,
    *,
    prefer_index: int | None,
    left_ctx: str,
    right_ctx: str,
    window: int,
) -> tuple[int, int, float] | None:
    """Edit-distance match inside a region bracketed by context fragments.

    Regions closed on both sides are tried first; a single matching side is
    enough when no paired region is acceptable.
    """

    left_anchors = _fragment_anchors(haystack, left_ctx[-window:], from_end=True) if left_ctx else []
    right_anchors = _fragment_anchors(haystack, right_ctx[:window], from_end=False) if right_ctx else []
    if not left_anchors and not right_anchors:
        return None
    target = fold_text(quote, casefold=True).value.strip()
    if not target:
        return None

    quote_len = len(quote)
    max_len = quote_len * 2 + 16
    paired: list[tuple[int, int]] = []
    for left in left_anchors:
        for right in right_anchors:
            if left <= right <= left + max_len:
                paired.append((left, right))
        if len(paired) >= _MAX_BRACKET_PAIRS:
            break
    best = _best_region(haystack, target, paired, prefer_index)
    if best is not None:
        return best

    one_sided = [(left, min(len(haystack), left + quote_len + 1)) for left in left_anchors]
    one_sided.extend((max(0, right - quote_len - 1), right) for right in right_anchors)
    return _best_region(haystack, target, one_sided, prefer_index)


def locate(
    haystack: str,
    quote: str,
    *,
    prefer_index: int | None = None,
    left_ctx: str = "",
    right_ctx: str = "",
    context_window: int = DEFAULT_CONTEXT_WINDOW,
) -> MatchResult | None:
    """Find the best range of ``quote`` inside ``haystack``.

    Returns ``None`` when no acceptable match exists. Results with
    ``exact=True`` always satisfy ``haystack[start:end] == quote``.
    """

    if not isinstance(haystack, str) or not isinstance(quote, str) or not haystack or not quote:
        return None
    if isinstance(prefer_index, bool) or not isinstance(prefer_index, int):
        prefer_index = None
    left_ctx = left_ctx if isinstance(left_ctx, str) else ""
    right_ctx = right_ctx if isinstance(right_ctx, str) else ""
    window = max(0, context_window)

    forms: Sequence[str] = tuple(dict.fromkeys((quote, normalize(quote))))

    if prefer_index is not None and prefer_index >= 0:
        for form in forms:
            end = prefer_index + len(form)
            if haystack[prefer_index:end] != form or not _on_boundaries(haystack, prefer_index, end):
                continue
            score = context_score(haystack, prefer_index, end, left_ctx, right_ctx, window=window)
            if score == _max_context_score(haystack, prefer_index, end, left_ctx, right_ctx, window):
                if form == quote:
                    return MatchResult(prefer_index, end, True, "hint", float(score))
                return MatchResult(prefer_index, end, False, "normalized", float(score))

    for form in forms:
        occurrences = [(index, index + len(form)) for index in find_occurrences(haystack, form)]
        best = _rank(
            haystack,
            occurrences,
            prefer_index=prefer_index,
            left_ctx=left_ctx,
            right_ctx=right_ctx,
            window=window,
        )
        if best is not None:
            start, end, score = best
            if form == quote:
                return MatchResult(start, end, True, "exact", float(score))
            logger.debug("Located quote via normalized form at %d-%d", start, end)
            return MatchResult(start, end, False, "normalized", float(score))

    for strategy, casefold in (("whitespace", False), ("casefold", True)):
        needle = fold_text(quote, casefold=casefold).value.strip()
        if not needle:
            return None
        folded = fold_text(haystack, casefold=casefold)
        best = _rank(
            haystack,
            _folded_candidates(folded, needle),
            prefer_index=prefer_index,
            left_ctx=left_ctx,
            right_ctx=right_ctx,
            window=window,
        )
        if best is not None:
            start, end, score = best
            logger.debug("Located quote via %s fallback at %d-%d", strategy, start, end)
            return MatchResult(start, end, False, strategy, float(score))

    if left_ctx or right_ctx:
        bracketed = _bracketed_match(
            haystack,
            quote,
            prefer_index=prefer_index,
            left_ctx=left_ctx,
            right_ctx=right_ctx,
            window=window,
        )
        if bracketed is not None:
            start, end, ratio = bracketed
            logger.debug("Located quote via context bracketing at %d-%d (distance %.2f)", start, end, ratio)
            return MatchResult(start, end, False, "context", round(1.0 - ratio, 4))

    return None


def locate_span(haystack: str, span: Span, *, context_window: int = DEFAULT_CONTEXT_WINDOW) -> MatchResult | None:
    """Relocate ``span`` using its offsets and captured context as hints."""

    return locate(
        haystack,
        span.display_quote,
        prefer_index=span.start,
        left_ctx=span.left_ctx,
        right_ctx=span.right_ctx,
        context_window=context_window,
    )
