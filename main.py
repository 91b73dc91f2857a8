#!/usr/bin/env python3

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence

from bs4 import BeautifulSoup

from src.anchoring import Span
from src.anchoring.cache import SpanPositionCache
from src.anchoring.config import AnchoringConfig, load_anchoring_config
from src.anchoring.edits import SpanEdit, apply_edit
from src.anchoring.errors import ConfigError, LabelingServiceError
from src.anchoring.locator import locate
from src.anchoring.normalization import normalize
from src.highlighting.dom_index import surface_text
from src.highlighting.renderer import HighlightRenderer
from src.integrations.labeling import LabelingClient, LabelingRequest

OUTPUT_TEXT = "text"
OUTPUT_JSON = "json"


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to an anchoring YAML config (default: config/anchoring.yaml when present).",
    )
    parser.add_argument(
        "--output",
        choices=(OUTPUT_TEXT, OUTPUT_JSON),
        default=OUTPUT_TEXT,
        help="Output format.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")


def build_locate_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Locate a quote inside a text.",
        prog="python -m main locate",
    )
    parser.add_argument("--text", required=True, help="Text to search.")
    parser.add_argument("--quote", required=True, help="Quote to locate.")
    parser.add_argument("--prefer-index", type=int, default=None, help="Previously known start offset.")
    parser.add_argument("--left-ctx", default="", help="Text expected immediately before the quote.")
    parser.add_argument("--right-ctx", default="", help="Text expected immediately after the quote.")
    _add_common_arguments(parser)
    return parser


def build_apply_edit_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Replace or remove a quoted span inside a prompt.",
        prog="python -m main apply-edit",
    )
    parser.add_argument("--prompt", required=True, help="Prompt to edit.")
    parser.add_argument("--quote", required=True, help="Span text to edit.")
    parser.add_argument("--start", type=int, default=None, help="Known start offset of the span.")
    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--replacement", help="Replacement text for the span.")
    action.add_argument("--remove", action="store_true", help="Remove the span from the prompt.")
    _add_common_arguments(parser)
    return parser


def build_render_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Render span highlights into an HTML document.",
        prog="python -m main render",
    )
    parser.add_argument("--html", type=Path, required=True, help="HTML file holding the editable surface.")
    parser.add_argument("--spans", type=Path, required=True, help="JSON file with a span list or {spans: [...]}.")
    parser.add_argument("--out", type=Path, default=None, help="Write the highlighted HTML here instead of stdout.")
    _add_common_arguments(parser)
    return parser


def build_label_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Request span labels for a text from the labeling service.",
        prog="python -m main label",
    )
    parser.add_argument("--text", required=True, help="Text to label.")
    parser.add_argument("--base-url", default=None, help="Labeling service URL (overrides configuration).")
    _add_common_arguments(parser)
    return parser


def _configure_logging(verbose: bool) -> None:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


def _load_config(args: argparse.Namespace) -> AnchoringConfig:
    return load_anchoring_config(args.config)


def _read_spans(path: Path) -> list[Span]:
    data: Any = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("spans", [])
    if not isinstance(data, list):
        raise ValueError("Span file must contain a list of spans or an object with a 'spans' list.")
    return [Span.from_mapping(item) for item in data if isinstance(item, dict)]


def locate_cli(args: argparse.Namespace) -> int:
    config = _load_config(args)
    text = normalize(args.text)
    match = locate(
        text,
        normalize(args.quote),
        prefer_index=args.prefer_index,
        left_ctx=args.left_ctx,
        right_ctx=args.right_ctx,
        context_window=config.locator.context_window,
    )
    if args.output == OUTPUT_JSON:
        print(json.dumps(match.to_mapping() if match else None))
    elif match is None:
        print("not found")
    else:
        kind = "exact" if match.exact else "fuzzy"
        print(f"{match.start}-{match.end} ({kind} via {match.strategy}): {text[match.start:match.end]!r}")
    return 0 if match is not None else 1


def apply_edit_cli(args: argparse.Namespace) -> int:
    config = _load_config(args)
    quote = normalize(args.quote)
    if args.remove:
        edit = SpanEdit.remove(anchor_quote=quote)
    else:
        edit = SpanEdit.replace(args.replacement, anchor_quote=quote)
    span = None
    if args.start is not None:
        span = Span(id="cli", text=quote, start=args.start, end=args.start + len(quote))
    cache = SpanPositionCache(config.cache.max_entries, version=config.labeling.template_version)
    result = apply_edit(normalize(args.prompt), edit, span, cache=cache)

    if args.output == OUTPUT_JSON:
        print(
            json.dumps(
                {
                    "updatedPrompt": result.updated_prompt,
                    "matchStart": result.match_start,
                    "matchEnd": result.match_end,
                }
            )
        )
    elif result.updated_prompt is None:
        print("no change")
    else:
        print(result.updated_prompt)
    return 0 if result.changed else 1


def render_cli(args: argparse.Namespace) -> int:
    config = _load_config(args)
    try:
        spans = _read_spans(args.spans)
    except (OSError, ValueError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2
    soup = BeautifulSoup(args.html.read_text(encoding="utf-8"), "html.parser")
    root = soup.body or soup
    renderer = HighlightRenderer(
        root,
        context_window=config.locator.context_window,
        snippet_width=config.locator.snippet_width,
        pulse_duration_ms=config.render.pulse_duration_ms,
    )
    summary = renderer.render(spans, surface_text(root))
    html = str(soup)
    if args.out is not None:
        args.out.write_text(html, encoding="utf-8")
    elif args.output == OUTPUT_TEXT:
        print(html)

    if args.output == OUTPUT_JSON:
        payload = summary.to_mapping()
        if args.out is None:
            payload["html"] = html
        print(json.dumps(payload, indent=2))
    else:
        for span_id, reason in summary.skipped.items():
            print(f"  skipped {span_id}: {reason}", file=sys.stderr)
    return 0


def label_cli(args: argparse.Namespace) -> int:
    config = _load_config(args)
    settings = config.labeling
    if args.base_url:
        settings = replace(settings, base_url=args.base_url)
    try:
        client = LabelingClient.from_settings(settings)
        response = client.label_spans(LabelingRequest.from_settings(args.text, settings))
    except LabelingServiceError as exc:
        status = f" (HTTP {exc.status_code})" if exc.status_code is not None else ""
        print(f"error: {exc}{status}", file=sys.stderr)
        return 1

    if args.output == OUTPUT_JSON:
        print(json.dumps(response.to_mapping(), indent=2, ensure_ascii=False))
        return 0
    for span in response.spans:
        print(f"{span.start:>5}-{span.end:<5} {span.category or '-':<24} {span.confidence:.2f}  {span.display_quote}")
    for warning in response.warnings:
        print(f"  warning: {warning}", file=sys.stderr)
    return 0


_COMMANDS = {
    "locate": (build_locate_parser, locate_cli),
    "apply-edit": (build_apply_edit_parser, apply_edit_cli),
    "render": (build_render_parser, render_cli),
    "label": (build_label_parser, label_cli),
}


def main(argv: Sequence[str] | None = None) -> int:
    raw_args = list(sys.argv[1:] if argv is None else argv)

    if not raw_args or raw_args[0] not in _COMMANDS:
        names = ", ".join(_COMMANDS)
        print(f"usage: python -m main {{{names}}} [options]", file=sys.stderr)
        return 2

    build_parser, handler = _COMMANDS[raw_args[0]]
    parser = build_parser()
    try:
        args = parser.parse_args(raw_args[1:])
    except argparse.ArgumentError as exc:
        parser.error(str(exc))

    _configure_logging(args.verbose)
    try:
        return handler(args)
    except (ConfigError, FileNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
