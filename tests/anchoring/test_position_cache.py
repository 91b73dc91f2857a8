"""Tests for the span position cache and the labeling result cache."""

from __future__ import annotations

import json

import pytest

from src.anchoring import MatchResult
from src.anchoring.cache import (
    LabelingResultCache,
    SpanPositionCache,
    build_cache_key,
    position_cache_key,
    serialize_policy,
    text_hash,
)
from src.anchoring.locator import locate


class CountingLocator:
    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, text, quote, **kwargs):
        self.calls += 1
        return locate(text, quote, **kwargs)


def test_cached_result_matches_direct_locator_call() -> None:
    cache = SpanPositionCache()
    text = "test A test B test C"

    first = cache.locate(text, "test", right_ctx=" C")
    second = cache.locate(text, "test", right_ctx=" C")

    assert first == second == locate(text, "test", right_ctx=" C")
    snapshot = cache.get_snapshot()
    assert snapshot["hits"] == 1
    assert snapshot["misses"] == 1
    assert snapshot["hit_rate"] == 0.5
    assert snapshot["telemetry"]["exact_matches"] == 1
    assert snapshot["telemetry"]["total_requests"] == 1


def test_any_differing_argument_is_a_separate_entry() -> None:
    locator = CountingLocator()
    cache = SpanPositionCache(locator=locator)
    text = "test A test B test C"

    cache.locate(text, "test")
    cache.locate(text, "test", prefer_index=7)
    cache.locate(text, "test", left_ctx="A ")
    cache.locate(text + "!", "test")

    assert locator.calls == 4
    assert len(cache) == 4


def test_misses_are_cached_and_counted_as_failures() -> None:
    locator = CountingLocator()
    cache = SpanPositionCache(locator=locator)

    assert cache.locate("some text", "absent") is None
    assert cache.locate("some text", "absent") is None

    assert locator.calls == 1
    assert cache.get_snapshot()["telemetry"]["failures"] == 1


def test_get_distinguishes_absent_key_from_cached_miss() -> None:
    cache = SpanPositionCache()
    absent = object()
    cache.set("miss", None)

    assert cache.get("miss", absent) is None
    assert cache.get("never-stored", absent) is absent
    assert cache.get("never-stored") is None


def test_telemetry_tracks_fallback_strategies() -> None:
    cache = SpanPositionCache()

    cache.locate("A Golden Hour glow", "golden hour")
    cache.locate("golden   hour", "golden hour")

    telemetry = cache.get_snapshot()["telemetry"]
    assert telemetry["case_insensitive_matches"] == 1
    assert telemetry["fuzzy_matches"] == 1


def test_lru_eviction_respects_max_entries() -> None:
    cache = SpanPositionCache(2)
    cache.set("a", MatchResult(0, 1, True))
    cache.set("b", MatchResult(1, 2, True))
    cache.get("a")
    cache.set("c", MatchResult(2, 3, True))

    assert "a" in cache
    assert "b" not in cache
    assert "c" in cache
    assert cache.get_snapshot()["evictions"] == 1


def test_clear_empties_cache() -> None:
    cache = SpanPositionCache()
    cache.locate("hello world", "world")

    cache.clear()

    assert len(cache) == 0


def test_rejects_non_positive_capacity() -> None:
    with pytest.raises(ValueError):
        SpanPositionCache(0)


def test_position_key_includes_version() -> None:
    assert position_cache_key("t", "q", version="v1") != position_cache_key("t", "q", version="v2")


def test_text_hash_is_stable_base36() -> None:
    digest = text_hash("Un perro en la playa")

    assert digest == text_hash("Un perro en la playa")
    assert digest != text_hash("Un gato en la playa")
    assert set(digest) <= set("0123456789abcdefghijklmnopqrstuvwxyz")
    assert text_hash("") == "0"


def test_serialize_policy_sorts_keys_and_renders_values() -> None:
    policy = {"b": True, "a": 6, "c": None, "d": {"x": 1}}

    assert serialize_policy(policy) == 'a:6|b:true|c:null|d:{"x":1}'
    assert serialize_policy(None) == ""


def test_build_cache_key_layout() -> None:
    key = build_cache_key(
        text="hi",
        cache_id="doc-1",
        max_spans=60,
        min_confidence=0.5,
        template_version="v1",
        policy={"allowOverlap": False},
    )

    assert key == f"60::0.5::v1::allowOverlap:false::doc-1::{text_hash('hi')}"
    assert build_cache_key(text="hi").endswith(f"anon::{text_hash('hi')}")


def test_labeling_cache_ignores_entries_for_changed_text() -> None:
    cache = LabelingResultCache()
    cache.set("key", text="a red car", spans=[{"text": "red", "start": 2, "end": 5}])

    assert cache.get("key", "a red car") is not None
    assert cache.get("key", "a blue car") is None


def test_labeling_cache_skips_empty_text_and_trims_to_limit() -> None:
    cache = LabelingResultCache(limit=2)

    assert cache.set("empty", text="", spans=[]) is None
    for index in range(3):
        cache.set(f"k{index}", text=f"text {index}", spans=[])

    assert len(cache) == 2
    assert cache.get("k0", "text 0") is None


def test_labeling_cache_round_trips_through_disk(tmp_path) -> None:
    path = tmp_path / "cache" / "labels.json"
    writer = LabelingResultCache(persist_path=path)
    writer.set(
        "key",
        text="a red car",
        spans=[{"text": "red", "start": 2, "end": 5}],
        meta={"version": "v1"},
        cache_id="doc",
    )

    reader = LabelingResultCache(persist_path=path)
    entry = reader.get("key", "a red car")

    assert entry is not None
    assert entry.spans == [{"text": "red", "start": 2, "end": 5}]
    assert entry.meta == {"version": "v1"}
    assert entry.cache_id == "doc"
    assert entry.signature == text_hash("a red car")


def test_labeling_cache_tolerates_corrupt_file(tmp_path) -> None:
    path = tmp_path / "labels.json"
    path.write_text("{not json", encoding="utf-8")

    cache = LabelingResultCache(persist_path=path)

    assert cache.get("key", "text") is None
    cache.set("key", text="text", spans=[])
    assert json.loads(path.read_text(encoding="utf-8"))[0][0] == "key"
