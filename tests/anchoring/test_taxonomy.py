"""Tests for the category taxonomy helpers."""

from __future__ import annotations

from src.anchoring.taxonomy import (
    PARENT_CATEGORIES,
    VALID_CATEGORIES,
    attributes_for,
    is_attribute,
    is_valid_category,
    normalize_category,
    parent_category,
)


def test_legacy_ids_map_to_namespaced_attributes() -> None:
    assert normalize_category("wardrobe") == "subject.wardrobe"
    assert normalize_category(" timeOfDay ") == "lighting.timeOfDay"
    assert normalize_category("mood") == "style.aesthetic"
    assert normalize_category("camera.framing") == "shot.type"


def test_unknown_ids_pass_through_stripped() -> None:
    assert normalize_category("  sparkle ") == "sparkle"
    assert normalize_category(None) == ""


def test_parent_and_attribute_helpers() -> None:
    assert parent_category("subject.wardrobe") == "subject"
    assert parent_category("lens") == "camera"
    assert parent_category("") is None
    assert is_attribute("camera.lens")
    assert not is_attribute("lighting")


def test_every_attribute_belongs_to_a_known_parent() -> None:
    for category in VALID_CATEGORIES:
        assert category.split(".", 1)[0] in PARENT_CATEGORIES
        assert is_valid_category(category)
    assert not is_valid_category("sparkle")
    assert "camera.lens" in attributes_for("camera")
    assert attributes_for("nope") == ()
