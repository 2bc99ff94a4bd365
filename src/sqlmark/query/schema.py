"""JSON Schemas for the exchange document and the execution response."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Mapping

import jsonschema

from ..errors import MalformedDocumentError

MAX_SCHEMA_ERRORS = 25

_RANGE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["startLineNumber", "startColumn", "endLineNumber", "endColumn"],
    "properties": {
        "startLineNumber": {"type": "integer", "minimum": 1},
        "startColumn": {"type": "integer", "minimum": 1},
        "endLineNumber": {"type": "integer", "minimum": 1},
        "endColumn": {"type": "integer", "minimum": 1},
    },
}

_SOURCE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["markup", "sourceType", "sourceId"],
    "properties": {
        "markup": {"type": "string", "minLength": 1},
        "sourceType": {"enum": ["asset_table", "timeseries", "query"]},
        "sourceId": {"type": "string"},
        "sourceConfig": {"type": ["object", "null"]},
        "markupRange": {"oneOf": [_RANGE_SCHEMA, {"type": "null"}]},
    },
}

_PARAMETER_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["name", "dataType"],
    "properties": {
        "id": {"type": ["string", "null"]},
        "name": {"type": "string"},
        "dataType": {"enum": ["text", "int", "double", "boolean", "datetime"]},
    },
}

DOCUMENT_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "QueryDocument",
    "type": "object",
    "required": ["query", "sources"],
    "properties": {
        "query": {"type": "string"},
        "sources": {"type": "array", "items": _SOURCE_SCHEMA},
        "parameters": {"type": "array", "items": _PARAMETER_SCHEMA},
    },
}

RESPONSE_SCHEMA: dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "title": "ExecuteQueryResponse",
    "type": "object",
    "required": ["columns", "records"],
    "properties": {
        "columns": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string"},
                    "underlyingDataType": {"type": ["string", "null"]},
                    "genericDataType": {"type": ["string", "null"]},
                },
            },
        },
        "records": {"type": "array", "items": {"type": "array"}},
    },
}

_DOCUMENT_VALIDATOR = jsonschema.Draft202012Validator(DOCUMENT_SCHEMA)
_RESPONSE_VALIDATOR = jsonschema.Draft202012Validator(RESPONSE_SCHEMA)


def document_problems(payload: Any) -> list[str]:
    """Return human-readable schema violations for a document payload."""

    return _collect(_DOCUMENT_VALIDATOR.iter_errors(payload))


def response_problems(payload: Any) -> list[str]:
    return _collect(_RESPONSE_VALIDATOR.iter_errors(payload))


def validate_document(payload: Any) -> Mapping[str, Any]:
    """Raise :class:`MalformedDocumentError` unless ``payload`` is a valid document."""

    problems = document_problems(payload)
    if problems:
        raise MalformedDocumentError(problems=problems)
    return payload


def validate_response(payload: Any) -> Mapping[str, Any]:
    problems = response_problems(payload)
    if problems:
        raise MalformedDocumentError(message="Execution response is malformed", problems=problems)
    return payload


def _collect(issues: Iterable[jsonschema.ValidationError]) -> list[str]:
    problems: list[str] = []
    for issue in sorted(issues, key=lambda item: list(map(str, item.absolute_path))):
        path = _format_path(issue.absolute_path)
        problems.append(f"{path}: {issue.message}" if path else issue.message)
        if len(problems) >= MAX_SCHEMA_ERRORS:
            problems.append("Too many validation errors; stopping early.")
            break
    return problems


def _format_path(path: Iterable[Any]) -> str:
    parts: list[str] = []
    for element in path:
        if isinstance(element, int):
            parts.append(f"[{element}]")
        elif parts:
            parts.append(f".{element}")
        else:
            parts.append(str(element))
    return "".join(parts)


__all__ = [
    "DOCUMENT_SCHEMA",
    "RESPONSE_SCHEMA",
    "document_problems",
    "response_problems",
    "validate_document",
    "validate_response",
]
