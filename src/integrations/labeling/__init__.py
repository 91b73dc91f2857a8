"""Span labeling service integration."""

from __future__ import annotations


from .client import (
    LabelingClient,
    LabelingRequest,
    LabelingResponse,
    parse_labeling_response,
)


__all__ = [
    "LabelingClient",
    "LabelingRequest",
    "LabelingResponse",
    "parse_labeling_response",
]
