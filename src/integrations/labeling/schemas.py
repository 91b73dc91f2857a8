"""JSON schema for span labeling responses."""
from __future__ import annotations

from jsonschema import Draft7Validator

__all__ = ["LABELING_RESPONSE_SCHEMA", "LABELING_RESPONSE_VALIDATOR"]

_SPAN_SCHEMA = {
    "type": "object",
    "required": ["start", "end"],
    "properties": {
        "id": {"type": "string"},
        "text": {"type": "string"},
        "quote": {"type": "string"},
        "start": {"type": "integer", "minimum": 0},
        "end": {"type": "integer", "minimum": 0},
        "category": {"type": "string"},
        "role": {"type": "string"},
        "source": {"type": "string"},
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "leftCtx": {"type": "string"},
        "rightCtx": {"type": "string"},
        "idempotencyKey": {"type": "string"},
        "validatorPass": {"type": "boolean"},
    },
    "anyOf": [{"required": ["text"]}, {"required": ["quote"]}],
}

LABELING_RESPONSE_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["spans"],
    "properties": {
        "spans": {"type": "array", "items": _SPAN_SCHEMA},
        "meta": {"type": ["object", "null"]},
    },
}

LABELING_RESPONSE_VALIDATOR = Draft7Validator(LABELING_RESPONSE_SCHEMA)
