"""Tests for the anchoring command line entry point."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

import main


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    for name in ("ANCHORING_LABELING_URL", "ANCHORING_SUGGESTIONS_URL", "ANCHORING_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


class TestLocateCommand:
    """Tests for `main locate`."""

    def test_context_selects_occurrence(self, capsys):
        """Right context outranks the preferred index."""
        exit_code = main.main(
            [
                "locate",
                "--text",
                "test A test B test C",
                "--quote",
                "test",
                "--prefer-index",
                "0",
                "--right-ctx",
                " C",
                "--output",
                "json",
            ]
        )

        assert exit_code == 0
        payload = json.loads(capsys.readouterr().out)
        assert payload["start"] == 14
        assert payload["exact"] is True

    def test_missing_quote_reports_not_found(self, capsys):
        """An absent quote exits non-zero without inventing an offset."""
        exit_code = main.main(["locate", "--text", "hello world", "--quote", "planet"])

        assert exit_code == 1
        assert "not found" in capsys.readouterr().out


class TestApplyEditCommand:
    """Tests for `main apply-edit`."""

    def test_remove_span(self, capsys):
        """Removing a span prints the updated prompt."""
        exit_code = main.main(
            ["apply-edit", "--prompt", "hello world today", "--quote", " world", "--start", "5", "--remove"]
        )

        assert exit_code == 0
        assert capsys.readouterr().out.strip() == "hello today"

    def test_replace_json_output(self, capsys):
        """JSON output carries the matched range."""
        exit_code = main.main(
            [
                "apply-edit",
                "--prompt",
                "hello world today",
                "--quote",
                "world",
                "--replacement",
                "earth",
                "--output",
                "json",
            ]
        )

        assert exit_code == 0
        assert json.loads(capsys.readouterr().out) == {
            "updatedPrompt": "hello earth today",
            "matchStart": 6,
            "matchEnd": 11,
        }

    def test_no_op_edit_exits_non_zero(self, capsys):
        """Replacing a span with identical text reports no change."""
        exit_code = main.main(
            ["apply-edit", "--prompt", "hello world", "--quote", "world", "--replacement", "world"]
        )

        assert exit_code == 1
        assert "no change" in capsys.readouterr().out


class TestRenderCommand:
    """Tests for `main render`."""

    def test_render_writes_highlighted_html(self, tmp_path, capsys):
        """Spans are wrapped and the summary lists skipped spans."""
        html_path = tmp_path / "editor.html"
        html_path.write_text("<html><body><p>A lone astronaut walks</p></body></html>", encoding="utf-8")
        spans_path = tmp_path / "spans.json"
        spans_path.write_text(
            json.dumps(
                {
                    "spans": [
                        {"id": "s1", "text": "astronaut", "start": 7, "end": 16, "category": "subject.identity"},
                        {"id": "s2", "text": "comet", "start": 0, "end": 5},
                    ]
                }
            ),
            encoding="utf-8",
        )
        out_path = tmp_path / "out.html"

        exit_code = main.main(
            ["render", "--html", str(html_path), "--spans", str(spans_path), "--out", str(out_path), "--output", "json"]
        )

        assert exit_code == 0
        summary = json.loads(capsys.readouterr().out)
        assert summary["rendered"] == ["s1"]
        assert summary["skipped"] == {"s2": "not-found"}
        rendered = out_path.read_text(encoding="utf-8")
        assert 'data-span-id="s1"' in rendered
        assert ">astronaut</span>" in rendered

    def test_render_rejects_bad_span_file(self, tmp_path, capsys):
        """A span file that is not a list is reported as an error."""
        html_path = tmp_path / "editor.html"
        html_path.write_text("<p>text</p>", encoding="utf-8")
        spans_path = tmp_path / "spans.json"
        spans_path.write_text('"nope"', encoding="utf-8")

        exit_code = main.main(["render", "--html", str(html_path), "--spans", str(spans_path)])

        assert exit_code == 2
        assert "error:" in capsys.readouterr().err


class TestLabelCommand:
    """Tests for `main label`."""

    def test_label_prints_spans(self, capsys):
        """Spans from the service are listed one per line."""
        with patch("requests.post") as mock_post:
            mock_post.return_value.status_code = 200
            mock_post.return_value.text = json.dumps(
                {"spans": [{"text": "astronaut", "start": 7, "end": 16, "category": "identity", "confidence": 0.9}]}
            )

            exit_code = main.main(["label", "--text", "A lone astronaut", "--base-url", "http://labels.test"])

        assert exit_code == 0
        output = capsys.readouterr().out
        assert "subject.identity" in output
        assert "astronaut" in output

    def test_label_without_service_url_fails(self, capsys):
        """Missing service configuration is reported as an error."""
        exit_code = main.main(["label", "--text", "A lone astronaut"])

        assert exit_code == 1
        assert "error:" in capsys.readouterr().err


def test_unknown_command_prints_usage(capsys):
    """Unknown subcommands exit with usage."""
    assert main.main(["frobnicate"]) == 2
    assert "usage" in capsys.readouterr().err


def test_missing_config_file_is_reported(tmp_path, capsys):
    """An explicit config path that does not exist is an error."""
    exit_code = main.main(["locate", "--text", "a", "--quote", "a", "--config", str(tmp_path / "absent.yaml")])

    assert exit_code == 2
    assert "error:" in capsys.readouterr().err
