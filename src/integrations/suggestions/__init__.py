"""Replacement suggestion service integration."""

from __future__ import annotations


from .client import (
    SuggestionClient,
    SuggestionRequest,
    SuggestionResponse,
    merge_suggestions,
    parse_suggestion_response,
)


__all__ = [
    "SuggestionClient",
    "SuggestionRequest",
    "SuggestionResponse",
    "merge_suggestions",
    "parse_suggestion_response",
]
