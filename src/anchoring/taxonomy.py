"""Closed category taxonomy for labeled spans."""
from __future__ import annotations

from typing import Mapping

__all__ = [
    "TAXONOMY_VERSION",
    "PARENT_CATEGORIES",
    "CATEGORY_ATTRIBUTES",
    "VALID_CATEGORIES",
    "LEGACY_ID_MAP",
    "normalize_category",
    "parent_category",
    "is_attribute",
    "is_valid_category",
    "attributes_for",
]

TAXONOMY_VERSION = "3.0.0"

CATEGORY_ATTRIBUTES: Mapping[str, tuple[str, ...]] = {
    "shot": ("shot.type",),
    "subject": ("subject.identity", "subject.appearance", "subject.wardrobe", "subject.emotion"),
    "action": ("action.movement", "action.state", "action.gesture"),
    "environment": ("environment.location", "environment.weather", "environment.context"),
    "lighting": ("lighting.source", "lighting.quality", "lighting.timeOfDay"),
    "camera": ("camera.movement", "camera.lens", "camera.angle", "camera.focus"),
    "style": ("style.aesthetic", "style.filmStock"),
    "technical": (
        "technical.aspectRatio",
        "technical.frameRate",
        "technical.resolution",
        "technical.duration",
    ),
    "audio": ("audio.score", "audio.soundEffect", "audio.ambient"),
}

PARENT_CATEGORIES: tuple[str, ...] = tuple(CATEGORY_ATTRIBUTES)

VALID_CATEGORIES: frozenset[str] = frozenset(PARENT_CATEGORIES) | frozenset(
    attribute for attributes in CATEGORY_ATTRIBUTES.values() for attribute in attributes
)

LEGACY_ID_MAP: Mapping[str, str] = {
    "identity": "subject.identity",
    "appearance": "subject.appearance",
    "wardrobe": "subject.wardrobe",
    "action": "action.movement",
    "emotion": "subject.emotion",
    "subject.action": "action.movement",
    "location": "environment.location",
    "weather": "environment.weather",
    "context": "environment.context",
    "lighting_source": "lighting.source",
    "lightingSource": "lighting.source",
    "lighting_quality": "lighting.quality",
    "lightingQuality": "lighting.quality",
    "time_of_day": "lighting.timeOfDay",
    "timeOfDay": "lighting.timeOfDay",
    "timeofday": "lighting.timeOfDay",
    "framing": "shot.type",
    "camera.framing": "shot.type",
    "shot": "shot.type",
    "camera_move": "camera.movement",
    "cameraMove": "camera.movement",
    "movement": "camera.movement",
    "lens": "camera.lens",
    "angle": "camera.angle",
    "focus": "camera.focus",
    "aperture": "camera.focus",
    "depth_of_field": "camera.focus",
    "aesthetic": "style.aesthetic",
    "mood": "style.aesthetic",
    "film_stock": "style.filmStock",
    "filmStock": "style.filmStock",
    "filmFormat": "style.filmStock",
    "aspect_ratio": "technical.aspectRatio",
    "aspectRatio": "technical.aspectRatio",
    "frame_rate": "technical.frameRate",
    "frameRate": "technical.frameRate",
    "fps": "technical.frameRate",
    "resolution": "technical.resolution",
    "specs": "technical.resolution",
    "duration": "technical.duration",
    "score": "audio.score",
    "sound_effect": "audio.soundEffect",
    "soundEffect": "audio.soundEffect",
    "sfx": "audio.soundEffect",
    "ambient": "audio.ambient",
    "ambience": "audio.ambient",
}


def normalize_category(value: str | None) -> str:
    """Map a legacy flat id onto its namespaced taxonomy id.

    Unknown ids are returned stripped but otherwise untouched.
    """

    if not isinstance(value, str):
        return ""
    token = value.strip()
    return LEGACY_ID_MAP.get(token, token)


def parent_category(value: str | None) -> str | None:
    """Return the parent id (``subject`` for ``subject.wardrobe``)."""

    resolved = normalize_category(value)
    if not resolved:
        return None
    return resolved.split(".", 1)[0]


def is_attribute(value: str | None) -> bool:
    return "." in normalize_category(value)


def is_valid_category(value: str | None) -> bool:
    return normalize_category(value) in VALID_CATEGORIES


def attributes_for(parent: str) -> tuple[str, ...]:
    return CATEGORY_ATTRIBUTES.get(parent, ())
