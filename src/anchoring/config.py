"""Configuration loader for the anchoring toolkit."""
from __future__ import annotations

import os
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import ConfigError

__all__ = [
    "LocatorSettings",
    "CacheSettings",
    "RevealSettings",
    "LabelingSettings",
    "SuggestionSettings",
    "RenderSettings",
    "AnchoringConfig",
    "load_anchoring_config",
]

_DEFAULT_CONFIG_PATH = Path("config/anchoring.yaml")
_DEFAULT_POLICY: Mapping[str, Any] = {"nonTechnicalWordLimit": 6, "allowOverlap": False}
_ENV_LABELING_URL = "ANCHORING_LABELING_URL"
_ENV_SUGGESTIONS_URL = "ANCHORING_SUGGESTIONS_URL"
_ENV_API_KEY = "ANCHORING_API_KEY"


def _section(payload: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = payload.get(key)
    if section is None:
        return {}
    if not isinstance(section, MappingABC):
        raise ConfigError(f"Anchoring config section '{key}' must be a mapping.")
    return section


def _int(payload: Mapping[str, Any], key: str, default: int, *, minimum: int = 0, label: str) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"{label}.{key} must be an integer >= {minimum}.")
    if value < minimum:
        raise ConfigError(f"{label}.{key} must be >= {minimum}.")
    return value


def _optional_int(payload: Mapping[str, Any], key: str, *, label: str) -> int | None:
    if payload.get(key) is None:
        return None
    return _int(payload, key, 1, minimum=1, label=label)


def _float(
    payload: Mapping[str, Any],
    key: str,
    default: float,
    *,
    minimum: float,
    maximum: float,
    label: str,
) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{label}.{key} must be a number between {minimum} and {maximum}.")
    number = float(value)
    if not minimum <= number <= maximum:
        raise ConfigError(f"{label}.{key} must be between {minimum} and {maximum} inclusive.")
    return number


def _bool(payload: Mapping[str, Any], key: str, default: bool, *, label: str) -> bool:
    value = payload.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"{label}.{key} must be a boolean.")
    return value


def _optional_str(payload: Mapping[str, Any], key: str, *, label: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigError(f"{label}.{key} must be a string.")
    return value.strip() or None


@dataclass(slots=True)
class LocatorSettings:
    context_window: int = 80
    snippet_width: int = 30

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "LocatorSettings":
        return cls(
            context_window=_int(payload, "context_window", 80, label="locator"),
            snippet_width=_int(payload, "snippet_width", 30, label="locator"),
        )


@dataclass(slots=True)
class CacheSettings:
    max_entries: int | None = None
    labeling_limit: int = 50
    persist_path: Path | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any], *, base_path: Path | None) -> "CacheSettings":
        persist = _optional_str(payload, "persist_path", label="cache")
        return cls(
            max_entries=_optional_int(payload, "max_entries", label="cache"),
            labeling_limit=_int(payload, "labeling_limit", 50, minimum=1, label="cache"),
            persist_path=_resolve_path(Path(persist), base=base_path) if persist else None,
        )


@dataclass(slots=True)
class RevealSettings:
    high: float = 0.8
    medium: float = 0.6
    high_delay_ms: int = 0
    medium_delay_ms: int = 50
    low_delay_ms: int = 100

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "RevealSettings":
        high = _float(payload, "high", 0.8, minimum=0.0, maximum=1.0, label="reveal")
        medium = _float(payload, "medium", 0.6, minimum=0.0, maximum=1.0, label="reveal")
        if medium > high:
            raise ConfigError("reveal.medium must not exceed reveal.high.")
        return cls(
            high=high,
            medium=medium,
            high_delay_ms=_int(payload, "high_delay_ms", 0, label="reveal"),
            medium_delay_ms=_int(payload, "medium_delay_ms", 50, label="reveal"),
            low_delay_ms=_int(payload, "low_delay_ms", 100, label="reveal"),
        )


@dataclass(slots=True)
class LabelingSettings:
    base_url: str | None = None
    api_key: str | None = None
    timeout_seconds: float = 10.0
    max_spans: int = 60
    min_confidence: float = 0.5
    template_version: str = "v1"
    debounce_ms: int = 500
    smart_debounce: bool = True
    policy: dict[str, Any] = field(default_factory=lambda: dict(_DEFAULT_POLICY))

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "LabelingSettings":
        policy = payload.get("policy")
        if policy is not None and not isinstance(policy, MappingABC):
            raise ConfigError("labeling.policy must be a mapping.")
        merged = dict(_DEFAULT_POLICY)
        merged.update(policy or {})
        template_version = payload.get("template_version", "v1")
        if not isinstance(template_version, str) or not template_version.strip():
            raise ConfigError("labeling.template_version must be a non-empty string.")
        return cls(
            base_url=_optional_str(payload, "base_url", label="labeling"),
            api_key=_optional_str(payload, "api_key", label="labeling"),
            timeout_seconds=_float(payload, "timeout_seconds", 10.0, minimum=0.1, maximum=600.0, label="labeling"),
            max_spans=_int(payload, "max_spans", 60, minimum=1, label="labeling"),
            min_confidence=_float(payload, "min_confidence", 0.5, minimum=0.0, maximum=1.0, label="labeling"),
            template_version=template_version.strip(),
            debounce_ms=_int(payload, "debounce_ms", 500, label="labeling"),
            smart_debounce=_bool(payload, "smart_debounce", True, label="labeling"),
            policy=merged,
        )


@dataclass(slots=True)
class SuggestionSettings:
    base_url: str | None = None
    api_key: str | None = None
    timeout_ms: int = 3000
    cache_ttl_seconds: int = 300

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "SuggestionSettings":
        return cls(
            base_url=_optional_str(payload, "base_url", label="suggestions"),
            api_key=_optional_str(payload, "api_key", label="suggestions"),
            timeout_ms=_int(payload, "timeout_ms", 3000, minimum=1, label="suggestions"),
            cache_ttl_seconds=_int(payload, "cache_ttl_seconds", 300, label="suggestions"),
        )


@dataclass(slots=True)
class RenderSettings:
    pulse_duration_ms: int = 1500

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "RenderSettings":
        return cls(pulse_duration_ms=_int(payload, "pulse_duration_ms", 1500, label="render"))


@dataclass(slots=True)
class AnchoringConfig:
    locator: LocatorSettings = field(default_factory=LocatorSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    reveal: RevealSettings = field(default_factory=RevealSettings)
    labeling: LabelingSettings = field(default_factory=LabelingSettings)
    suggestions: SuggestionSettings = field(default_factory=SuggestionSettings)
    render: RenderSettings = field(default_factory=RenderSettings)

    @classmethod
    def default(cls) -> "AnchoringConfig":
        return cls()

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], *, base_path: Path | None = None) -> "AnchoringConfig":
        return cls(
            locator=LocatorSettings.from_mapping(_section(payload, "locator")),
            cache=CacheSettings.from_mapping(_section(payload, "cache"), base_path=base_path),
            reveal=RevealSettings.from_mapping(_section(payload, "reveal")),
            labeling=LabelingSettings.from_mapping(_section(payload, "labeling")),
            suggestions=SuggestionSettings.from_mapping(_section(payload, "suggestions")),
            render=RenderSettings.from_mapping(_section(payload, "render")),
        )

    def with_environment(self, environ: Mapping[str, str] | None = None) -> "AnchoringConfig":
        """Return a copy with service URLs and API key taken from the environment."""

        env = os.environ if environ is None else environ
        labeling = self.labeling
        suggestions = self.suggestions
        if env.get(_ENV_LABELING_URL):
            labeling = replace(labeling, base_url=env[_ENV_LABELING_URL].strip())
        if env.get(_ENV_SUGGESTIONS_URL):
            suggestions = replace(suggestions, base_url=env[_ENV_SUGGESTIONS_URL].strip())
        if env.get(_ENV_API_KEY):
            key = env[_ENV_API_KEY].strip()
            labeling = replace(labeling, api_key=labeling.api_key or key)
            suggestions = replace(suggestions, api_key=suggestions.api_key or key)
        return replace(self, labeling=labeling, suggestions=suggestions)


def _read_yaml(path: Path) -> Mapping[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Anchoring config '{path}' is not valid YAML: {exc}") from exc
    if not isinstance(data, MappingABC):
        raise ConfigError("Anchoring config must be a mapping")
    return data


def load_anchoring_config(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> AnchoringConfig:
    """Load anchoring configuration from YAML or fallback to defaults."""

    if config_path is not None:
        resolved = Path(config_path).expanduser()
        if not resolved.exists():
            raise FileNotFoundError(f"Anchoring config '{resolved}' does not exist")
        config = AnchoringConfig.from_dict(_read_yaml(resolved), base_path=resolved.parent)
    elif _DEFAULT_CONFIG_PATH.exists():
        config = AnchoringConfig.from_dict(_read_yaml(_DEFAULT_CONFIG_PATH), base_path=_DEFAULT_CONFIG_PATH.parent)
    else:
        config = AnchoringConfig.default()
    return config.with_environment(environ)


def _resolve_path(path: Path, *, base: Path | None) -> Path:
    candidate = path.expanduser()
    if candidate.is_absolute() or base is None:
        return candidate.resolve()
    return (base / candidate).resolve()
