"""JSON schema for suggestion responses."""
from __future__ import annotations

from jsonschema import Draft7Validator

__all__ = ["SUGGESTION_RESPONSE_SCHEMA", "SUGGESTION_RESPONSE_VALIDATOR"]

SUGGESTION_RESPONSE_SCHEMA = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["suggestions"],
    "properties": {
        "suggestions": {
            "type": "array",
            "items": {
                "oneOf": [
                    {"type": "string"},
                    {
                        "type": "object",
                        "required": ["text"],
                        "properties": {"text": {"type": "string"}},
                    },
                ]
            },
        },
        "isPlaceholder": {"type": "boolean"},
    },
}

SUGGESTION_RESPONSE_VALIDATOR = Draft7Validator(SUGGESTION_RESPONSE_SCHEMA)
