"""Tests for text canonicalization and grapheme indexing."""

from __future__ import annotations

from src.anchoring.normalization import (
    CanonicalText,
    collapse_whitespace,
    fold_text,
    is_cluster_boundary,
    iter_clusters,
    normalize,
    normalize_with_offsets,
)

WAVE_MEDIUM = "\U0001f44b\U0001f3fd"
FAMILY = "\U0001f468\u200d\U0001f469\u200d\U0001f467"


def test_normalize_composes_and_unifies_line_endings() -> None:
    raw = "nin\u0303o\r\nplaya\rsol"

    assert normalize(raw) == "ni\u00f1o\nplaya\nsol"


def test_normalize_is_idempotent() -> None:
    samples = ["Un nin\u0303o", "a\r\n\r\nb", WAVE_MEDIUM + " hi", "", "plain"]

    for sample in samples:
        once = normalize(sample)
        assert normalize(once) == once


def test_normalize_rejects_non_strings() -> None:
    assert normalize(None) == ""
    assert normalize(42) == ""


def test_normalized_offsets_map_back_to_source() -> None:
    raw = "nin\u0303o\r\nsol"

    mapped = normalize_with_offsets(raw)

    assert mapped.value == normalize(raw) == "ni\u00f1o\nsol"
    assert mapped.to_source_range(2, 3) == (2, 4)
    assert mapped.to_source_range(0, 4) == (0, 5)
    assert mapped.to_source_range(5, 8) == (7, 10)
    assert normalize_with_offsets(None).value == ""


def test_collapse_whitespace_trims_and_joins_runs() -> None:
    assert collapse_whitespace("  golden \n\t hour  ") == "golden hour"


def test_cluster_boundaries_keep_modifiers_and_zwj_sequences_together() -> None:
    assert not is_cluster_boundary(WAVE_MEDIUM, 1)
    assert not is_cluster_boundary(FAMILY, 1)
    assert not is_cluster_boundary(FAMILY, 2)
    assert is_cluster_boundary("ab", 1)
    assert not is_cluster_boundary("a\r\nb", 2)


def test_regional_indicator_pairs_form_single_clusters() -> None:
    flags = "\U0001f1ea\U0001f1f8\U0001f1f2\U0001f1fd"

    assert list(iter_clusters(flags)) == [(0, 2), (2, 4)]


def test_fold_text_maps_folded_offsets_back_to_source() -> None:
    folded = fold_text("Golden   Hour", casefold=True)

    assert folded.value == "golden hour"
    start = folded.value.index("hour")
    assert folded.to_source_range(start, start + 4) == (9, 13)


def test_canonical_text_converts_between_graphemes_and_code_points() -> None:
    canonical = CanonicalText(WAVE_MEDIUM + "x" + "e\u0301")

    assert canonical.normalized == WAVE_MEDIUM + "x\u00e9"
    assert len(canonical) == 3
    assert canonical.to_code_point(1) == 2
    assert canonical.to_code_point(10) == len(canonical.normalized)
    assert canonical.grapheme_index_for_code_point(1) == 0
    assert canonical.grapheme_index_for_code_point(2) == 1
    assert canonical.slice_graphemes(0, 1) == WAVE_MEDIUM
    assert canonical.slice_graphemes(2, 1) == ""
    assert not canonical.is_grapheme_boundary(1)
    assert canonical.to_dict()["length"] == 3
