"""Memoization of locator results and labeling responses."""
from __future__ import annotations

import hashlib
import json
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from . import EXACT_STRATEGIES, MatchResult
from .locator import DEFAULT_CONTEXT_WINDOW, locate

__all__ = [
    "DEFAULT_LABELING_CACHE_LIMIT",
    "text_hash",
    "serialize_policy",
    "build_cache_key",
    "position_cache_key",
    "SpanPositionCache",
    "LabelingCacheEntry",
    "LabelingResultCache",
]

logger = logging.getLogger(__name__)

DEFAULT_LABELING_CACHE_LIMIT = 50
_FNV_OFFSET = 2166136261
_FNV_PRIME = 16777619
_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def text_hash(text: str) -> str:
    """32-bit FNV-1a digest of ``text`` rendered in base 36."""

    if not text:
        return "0"
    value = _FNV_OFFSET
    for char in text:
        value ^= ord(char)
        value = (value * _FNV_PRIME) & 0xFFFFFFFF
    digits: list[str] = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def serialize_policy(policy: Mapping[str, Any] | None) -> str:
    """Flatten ``policy`` deterministically as ``key:value|key:value``."""

    if not isinstance(policy, Mapping):
        return ""
    parts: list[str] = []
    for key in sorted(policy):
        value = policy[key]
        if isinstance(value, (Mapping, list, tuple)):
            rendered = json.dumps(value, sort_keys=True, separators=(",", ":"))
        elif isinstance(value, bool):
            rendered = "true" if value else "false"
        elif value is None:
            rendered = "null"
        else:
            rendered = str(value)
        parts.append(f"{key}:{rendered}")
    return "|".join(parts)


def build_cache_key(
    *,
    text: str,
    cache_id: str | None = None,
    max_spans: int | None = None,
    min_confidence: float | None = None,
    template_version: str | None = None,
    policy: Mapping[str, Any] | None = None,
) -> str:
    """Labeling cache key.

    ``maxSpans::minConfidence::templateVersion::policy::derivedTextId`` where
    the derived id is ``<cache_id>::<hash>`` or ``anon::<hash>``.
    """

    base_id = cache_id.strip() if isinstance(cache_id, str) and cache_id.strip() else None
    derived = f"{base_id or 'anon'}::{text_hash(text or '')}"
    fields = [
        "" if max_spans is None else str(max_spans),
        "" if min_confidence is None else str(min_confidence),
        template_version or "",
        serialize_policy(policy),
        derived,
    ]
    return "::".join(fields)


def position_cache_key(
    text: str,
    quote: str,
    *,
    prefer_index: int | None = None,
    left_ctx: str = "",
    right_ctx: str = "",
    context_window: int = DEFAULT_CONTEXT_WINDOW,
    version: str = "",
) -> str:
    """Key for one locator call; any differing argument yields a new key."""

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    options = json.dumps(
        {
            "quote": quote,
            "prefer": prefer_index,
            "left": left_ctx,
            "right": right_ctx,
            "window": context_window,
            "version": version,
        },
        sort_keys=True,
        ensure_ascii=False,
    )
    options_digest = hashlib.sha256(options.encode("utf-8")).hexdigest()
    return f"{digest}:{options_digest}"


_MISSING = object()


class SpanPositionCache:
    """Session-owned memo of locator results.

    Misses (``None`` results) are cached too so a span that cannot be found
    is not rescanned on every render. ``max_entries`` enables LRU eviction.
    """

    def __init__(
        self,
        max_entries: int | None = None,
        *,
        locator: Callable[..., MatchResult | None] = locate,
        version: str = "",
    ) -> None:
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be positive when provided")
        self._entries: OrderedDict[str, MatchResult | None] = OrderedDict()
        self._max_entries = max_entries
        self._locator = locator
        self.version = version
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self._telemetry = {
            "exact_matches": 0,
            "case_insensitive_matches": 0,
            "fuzzy_matches": 0,
            "failures": 0,
            "total_requests": 0,
        }

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def _lookup(self, key: str) -> Any:
        value = self._entries.get(key, _MISSING)
        if value is _MISSING:
            self.misses += 1
            return _MISSING
        self.hits += 1
        self._entries.move_to_end(key)
        return value

    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored result for ``key``.

        A cached miss is stored as ``None``; ``default`` is returned only when
        ``key`` has never been stored, so callers can tell the two apart.
        """

        value = self._lookup(key)
        return default if value is _MISSING else value

    def set(self, key: str, result: MatchResult | None) -> None:
        self._entries[key] = result
        self._entries.move_to_end(key)
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self.evictions += 1
                logger.debug("Evicted position cache entry %s", evicted[:12])

    def clear(self) -> None:
        self._entries.clear()

    def record_result(self, result: MatchResult | None) -> None:
        """Update per-strategy telemetry for one locator outcome."""

        self._telemetry["total_requests"] += 1
        if result is None:
            self._telemetry["failures"] += 1
        elif result.strategy in EXACT_STRATEGIES:
            self._telemetry["exact_matches"] += 1
        elif result.strategy == "casefold":
            self._telemetry["case_insensitive_matches"] += 1
        else:
            self._telemetry["fuzzy_matches"] += 1

    def locate(
        self,
        text: str,
        quote: str,
        *,
        prefer_index: int | None = None,
        left_ctx: str = "",
        right_ctx: str = "",
        context_window: int = DEFAULT_CONTEXT_WINDOW,
    ) -> MatchResult | None:
        """Memoized front-end for the locator."""

        key = position_cache_key(
            text,
            quote,
            prefer_index=prefer_index,
            left_ctx=left_ctx,
            right_ctx=right_ctx,
            context_window=context_window,
            version=self.version,
        )
        cached = self._lookup(key)
        if cached is not _MISSING:
            return cached
        result = self._locator(
            text,
            quote,
            prefer_index=prefer_index,
            left_ctx=left_ctx,
            right_ctx=right_ctx,
            context_window=context_window,
        )
        self.record_result(result)
        if result is None:
            logger.warning("Unable to locate quote %r in text of length %d", quote[:50], len(text))
        self.set(key, result)
        return result

    def get_snapshot(self) -> dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "size": len(self._entries),
            "max_entries": self._max_entries,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
            "evictions": self.evictions,
            "telemetry": dict(self._telemetry),
        }


@dataclass(slots=True)
class LabelingCacheEntry:
    """Stored labeling response for one request key."""

    spans: list[dict[str, Any]]
    text: str
    signature: str
    meta: dict[str, Any] | None = None
    cache_id: str | None = None
    timestamp: float = field(default_factory=time.time)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "LabelingCacheEntry":
        text = payload.get("text") if isinstance(payload.get("text"), str) else ""
        spans = payload.get("spans")
        meta = payload.get("meta")
        signature = payload.get("signature")
        timestamp = payload.get("timestamp")
        return cls(
            spans=[dict(item) for item in spans if isinstance(item, Mapping)] if isinstance(spans, list) else [],
            text=text,
            signature=signature if isinstance(signature, str) else text_hash(text),
            meta=dict(meta) if isinstance(meta, Mapping) else None,
            cache_id=payload.get("cacheId") if isinstance(payload.get("cacheId"), str) else None,
            timestamp=float(timestamp) if isinstance(timestamp, (int, float)) else time.time(),
        )

    def to_mapping(self) -> dict[str, Any]:
        return {
            "spans": self.spans,
            "meta": self.meta,
            "text": self.text,
            "signature": self.signature,
            "cacheId": self.cache_id,
            "timestamp": self.timestamp,
        }


class LabelingResultCache:
    """LRU store of labeling responses with optional JSON persistence."""

    def __init__(self, limit: int = DEFAULT_LABELING_CACHE_LIMIT, *, persist_path: Path | None = None) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        self.limit = limit
        self.persist_path = Path(persist_path) if persist_path is not None else None
        self._entries: OrderedDict[str, LabelingCacheEntry] = OrderedDict()
        self._hydrated = self.persist_path is None

    def __len__(self) -> int:
        self._hydrate()
        return len(self._entries)

    def get(self, key: str, text: str) -> LabelingCacheEntry | None:
        """Return the entry for ``key`` unless it was stored for different text."""

        self._hydrate()
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.text != text:
            logger.debug("Ignoring labeling cache entry for changed text (key %s)", key[:40])
            return None
        return entry

    def set(
        self,
        key: str,
        *,
        text: str,
        spans: Sequence[Mapping[str, Any]],
        meta: Mapping[str, Any] | None = None,
        signature: str | None = None,
        cache_id: str | None = None,
    ) -> LabelingCacheEntry | None:
        self._hydrate()
        if not text:
            return None
        entry = LabelingCacheEntry(
            spans=[dict(span) for span in spans],
            text=text,
            signature=signature or text_hash(text),
            meta=dict(meta) if meta is not None else None,
            cache_id=cache_id,
        )
        self._entries.pop(key, None)
        self._entries[key] = entry
        self._trim()
        self._persist()
        return entry

    def clear(self) -> None:
        self._entries.clear()
        self._hydrated = True
        self._persist()

    def _trim(self) -> None:
        while len(self._entries) > self.limit:
            self._entries.popitem(last=False)

    def _hydrate(self) -> None:
        if self._hydrated:
            return
        self._hydrated = True
        assert self.persist_path is not None
        if not self.persist_path.exists():
            return
        try:
            raw = json.loads(self.persist_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Unable to hydrate labeling cache from %s: %s", self.persist_path, exc)
            self._entries.clear()
            return
        if not isinstance(raw, list):
            logger.warning("Ignoring labeling cache file %s: expected a list", self.persist_path)
            return
        for item in raw:
            if not isinstance(item, list) or len(item) != 2:
                continue
            key, value = item
            if isinstance(key, str) and isinstance(value, Mapping):
                self._entries[key] = LabelingCacheEntry.from_mapping(value)
        self._trim()

    def _persist(self) -> None:
        if self.persist_path is None:
            return
        serialized = [[key, entry.to_mapping()] for key, entry in self._entries.items()]
        try:
            self.persist_path.parent.mkdir(parents=True, exist_ok=True)
            self.persist_path.write_text(json.dumps(serialized, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            logger.warning("Unable to persist labeling cache to %s: %s", self.persist_path, exc)
