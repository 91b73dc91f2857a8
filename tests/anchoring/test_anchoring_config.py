"""Tests for anchoring configuration loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from src.anchoring.config import AnchoringConfig, load_anchoring_config
from src.anchoring.errors import ConfigError


def _write(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "anchoring.yaml"
    path.write_text(body, encoding="utf-8")
    return path


def test_defaults_when_no_config_file(tmp_path, monkeypatch) -> None:
    monkeypatch.chdir(tmp_path)

    config = load_anchoring_config(environ={})

    assert config == AnchoringConfig.default()
    assert config.locator.context_window == 80
    assert config.reveal.medium_delay_ms == 50
    assert config.labeling.policy == {"nonTechnicalWordLimit": 6, "allowOverlap": False}


def test_loads_yaml_and_resolves_relative_paths(tmp_path) -> None:
    path = _write(
        tmp_path,
        """
locator:
  context_window: 40
cache:
  max_entries: 100
  persist_path: state/labels.json
labeling:
  base_url: http://localhost:3001
  template_version: v2
  policy:
    allowOverlap: true
suggestions:
  timeout_ms: 1500
""",
    )

    config = load_anchoring_config(path, environ={})

    assert config.locator.context_window == 40
    assert config.locator.snippet_width == 30
    assert config.cache.max_entries == 100
    assert config.cache.persist_path == (tmp_path / "state" / "labels.json").resolve()
    assert config.labeling.base_url == "http://localhost:3001"
    assert config.labeling.template_version == "v2"
    assert config.labeling.policy == {"nonTechnicalWordLimit": 6, "allowOverlap": True}
    assert config.suggestions.timeout_ms == 1500


def test_environment_supplies_urls_and_api_key(tmp_path) -> None:
    path = _write(tmp_path, "labeling:\n  api_key: from-file\n")
    environ = {
        "ANCHORING_LABELING_URL": "http://labels.test",
        "ANCHORING_SUGGESTIONS_URL": "http://suggest.test",
        "ANCHORING_API_KEY": "from-env",
    }

    config = load_anchoring_config(path, environ=environ)

    assert config.labeling.base_url == "http://labels.test"
    assert config.suggestions.base_url == "http://suggest.test"
    assert config.labeling.api_key == "from-file"
    assert config.suggestions.api_key == "from-env"


@pytest.mark.parametrize(
    "body",
    [
        "locator: [1, 2]\n",
        "locator:\n  context_window: -1\n",
        "reveal:\n  high: 0.5\n  medium: 0.7\n",
        "labeling:\n  min_confidence: 2\n",
        "labeling:\n  smart_debounce: sometimes\n",
        "labeling:\n  template_version: ''\n",
        "- just\n- a list\n",
        "locator: {context_window: [\n",
    ],
)
def test_invalid_values_raise_config_error(tmp_path, body) -> None:
    path = _write(tmp_path, body)

    with pytest.raises(ConfigError):
        load_anchoring_config(path, environ={})


def test_missing_explicit_path_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_anchoring_config(tmp_path / "absent.yaml")
