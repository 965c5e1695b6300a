"""
Centralized LLM JSON parsing and validation module.

Single choke point for turning chat-completion text into Python objects, so no
feature carries its own brittle parsing logic.

Key functions:
- extract_first_json_object: Pull the first balanced {...} block out of chatty text
- parse_json_response: Parse raw LLM text into Python dict/list
- validate_shape: Validate parsed payload against known schemas

Design principles:
- Graceful degradation (return None on failures, never crash)
- Standardized error logging
"""

import json
from dataclasses import dataclass
from typing import Any, cast

import structlog

logger = structlog.get_logger()


@dataclass
class ValidationResult:
    """Result of schema validation."""

    valid: bool
    errors: list[str]


def extract_first_json_object(raw: str | None) -> str | None:
    """
    Return the first balanced JSON object embedded in raw text.

    Models often wrap JSON in prose or code fences. Braces inside string
    literals (including escaped quotes) do not count toward nesting.

    Examples:
        >>> extract_first_json_object('Sure! {"a": {"b": 1}} hope that helps')
        '{"a": {"b": 1}}'
        >>> extract_first_json_object("no json here") is None
        True
    """
    if not raw:
        return None

    start = raw.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(raw)):
        char = raw[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return raw[start : index + 1]

    logger.debug("llm_json_unbalanced", raw_length=len(raw))
    return None


def parse_json_response(raw: str | None) -> dict[str, Any] | list[Any] | None:
    """
    Parse raw LLM response into Python dict or list.

    Args:
        raw: Raw text from LLM response (may be None, empty, or malformed)

    Returns:
        Parsed dict/list if valid JSON, None otherwise

    Examples:
        >>> parse_json_response('{"query_type": "lookup"}')
        {'query_type': 'lookup'}
        >>> parse_json_response('not json')
        None
    """
    if raw is None or raw == "":
        logger.debug("llm_json_parse_empty", raw=raw)
        return None

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(
            "llm_json_parse_failed",
            error=str(e),
            raw_length=len(raw),
            raw_preview=raw[:100] if len(raw) > 100 else raw,
        )
        return None

    if not isinstance(parsed, dict | list):
        logger.warning("llm_json_parse_not_container", value_type=type(parsed).__name__)
        return None

    logger.debug("llm_json_parse_success", length=len(str(parsed)))
    return cast(dict[str, Any] | list[Any], parsed)


# Schema definitions
# Each schema defines required fields and their expected types
_SCHEMAS: dict[str, dict[str, Any]] = {
    "slots": {
        "required_fields": ["query_type"],
        "optional_fields": [
            "intent",
            "time_phrase",
            "entities",
            "flags",
            "aggregation",
            "measure",
            "group_by",
            "k",
            "order",
            "tables",
            "columns",
            "needs_clarification",
            "clarification",
        ],
        "field_types": {
            "query_type": str,
            "intent": (str, type(None)),
            "time_phrase": (str, type(None)),
            "entities": (dict, type(None)),
            "flags": (dict, type(None)),
            "aggregation": (str, type(None)),
            "measure": (str, type(None)),
            "group_by": (list, str, type(None)),
            "k": (int, type(None)),
            "order": (str, type(None)),
            "tables": (list, type(None)),
            "columns": (list, type(None)),
            "needs_clarification": (bool, type(None)),
            "clarification": (str, list, type(None)),
        },
    },
}


def validate_shape(payload: dict[str, Any] | list[Any] | None, schema_name: str) -> ValidationResult:
    """
    Validate parsed JSON payload against expected schema.

    Args:
        payload: Parsed JSON (dict or list)
        schema_name: Name of schema to validate against (e.g., "slots")

    Returns:
        ValidationResult with valid flag and error list
    """
    if payload is None:
        return ValidationResult(valid=False, errors=["Payload is None"])

    if schema_name not in _SCHEMAS:
        return ValidationResult(
            valid=False,
            errors=[f"Unknown schema: {schema_name}. Available schemas: {list(_SCHEMAS.keys())}"],
        )

    schema = _SCHEMAS[schema_name]
    errors: list[str] = []

    if not isinstance(payload, dict):
        errors.append(f"Expected dict for schema '{schema_name}', got {type(payload).__name__}")
        return ValidationResult(valid=False, errors=errors)

    for required in schema.get("required_fields", []):
        if required not in payload:
            errors.append(f"Missing required field: {required}")

    for name, expected_type in schema.get("field_types", {}).items():
        # bool is an int subclass; a boolean k is still the wrong type
        value = payload.get(name)
        if name in payload and (
            not isinstance(value, expected_type) or (isinstance(value, bool) and bool not in _as_tuple(expected_type))
        ):
            errors.append(f"Field '{name}' has wrong type: expected {expected_type}, got {type(value).__name__}")

    if errors:
        logger.warning(
            "llm_json_validation_failed",
            schema=schema_name,
            errors=errors,
            payload_keys=list(payload.keys()),
        )
        return ValidationResult(valid=False, errors=errors)

    logger.debug("llm_json_validation_success", schema=schema_name)
    return ValidationResult(valid=True, errors=[])


def _as_tuple(expected_type: type | tuple[type, ...]) -> tuple[type, ...]:
    return expected_type if isinstance(expected_type, tuple) else (expected_type,)
