"""Session orchestration: debouncing, labeling, suggestions and editor ownership."""

from __future__ import annotations


from .debounce import Debouncer, OperationState, ScheduledOperation, smart_debounce_ms
from .editor import EditorSession
from .labeling import LabelingResult, LabelingStatus, SpanLabelingSession
from .suggestions import SuggestionFetcher


__all__ = [
    "Debouncer",
    "EditorSession",
    "LabelingResult",
    "LabelingStatus",
    "OperationState",
    "ScheduledOperation",
    "SpanLabelingSession",
    "SuggestionFetcher",
    "smart_debounce_ms",
]
