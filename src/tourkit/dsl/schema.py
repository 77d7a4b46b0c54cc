from __future__ import annotations

from typing import Any

import jsonschema

_META_PROPERTIES: dict[str, Any] = {
    "label": {"type": "string"},
    "preDelayMs": {"type": "integer", "minimum": 0},
    "narration": {"type": "string"},
    "capture": {"$ref": "#/definitions/capture"},
    "annotate": {"$ref": "#/definitions/annotate"},
}


def _step(kind: str | list[str], required: list[str], properties: dict[str, Any]) -> dict[str, Any]:
    type_rule = {"const": kind} if isinstance(kind, str) else {"enum": kind}
    return {
        "type": "object",
        "required": ["type", *required],
        "properties": {"type": type_rule, **_META_PROPERTIES, **properties},
        "additionalProperties": False,
    }


_ANCHOR = {"type": "string", "pattern": r"^tour\.[A-Za-z0-9_-]+(\.[A-Za-z0-9_-]+)+$"}
_EVENT = {"type": "string", "pattern": r"^tour\.event\.[A-Za-z0-9_.-]+$"}
_TIMEOUT = {"type": "integer", "minimum": 0}

TOUR_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["tourId", "steps"],
    "properties": {
        "tourId": {"type": "string", "pattern": r"^[A-Za-z0-9][A-Za-z0-9._-]*$"},
        "description": {"type": "string"},
        "steps": {
            "type": "array",
            "items": {
                "oneOf": [
                    _step(["narration", "say"], [], {"message": {"type": "string"}, "text": {"type": "string"}}),
                    _step("goto", ["routeKey"], {"routeKey": {"type": "string", "minLength": 1}}),
                    _step("click", ["anchor"], {"anchor": _ANCHOR, "timeoutMs": _TIMEOUT}),
                    {
                        **_step(
                            "fill",
                            ["anchor"],
                            {
                                "anchor": _ANCHOR,
                                "value": {"type": "string"},
                                "valueEnv": {"type": "string", "pattern": r"^[A-Za-z_][A-Za-z0-9_]*$"},
                                "timeoutMs": _TIMEOUT,
                            },
                        ),
                        "oneOf": [{"required": ["value"]}, {"required": ["valueEnv"]}],
                    },
                    _step("waitForEvent", ["name"], {"name": _EVENT, "timeoutMs": _TIMEOUT}),
                    _step("expectVisible", ["anchor"], {"anchor": _ANCHOR, "timeoutMs": _TIMEOUT}),
                    _step("waitMs", ["durationMs"], {"durationMs": {"type": "integer", "minimum": 1}}),
                    _step(
                        ["screenshot", "snapshot"],
                        ["name"],
                        {"name": {"type": "string", "pattern": r"^[A-Za-z0-9._-]+$"}, "fullPage": {"type": "boolean"}},
                    ),
                    _step(
                        "annotate",
                        ["instructions"],
                        {"instructions": {"type": "string", "minLength": 1}, "targetScreenshot": {"type": "string"}},
                    ),
                ]
            },
        },
    },
    "additionalProperties": False,
    "definitions": {
        "capture": {
            "type": "object",
            "required": ["when", "name"],
            "properties": {
                "when": {"enum": ["before", "after"]},
                "name": {"type": "string", "minLength": 1},
                "fullPage": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
        "annotate": {
            "type": "object",
            "required": ["instructions"],
            "properties": {
                "instructions": {"type": "string", "minLength": 1},
                "targetScreenshot": {"type": "string"},
            },
            "additionalProperties": False,
        },
    },
}


def validate_tour_payload(payload: dict[str, Any]) -> None:
    jsonschema.validate(instance=payload, schema=TOUR_SCHEMA)
