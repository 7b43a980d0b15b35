"""
Schema Validation - JSON Schema validation utilities.

Validates module type configuration schemas at plugin load time and
action/command results against their declared output schemas.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from jsonschema import Draft7Validator, SchemaError

logger = logging.getLogger(__name__)


def validate_json_schema(schema: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate that a schema is itself a valid JSON Schema (Draft 7).

    Args:
        schema: The schema to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        Draft7Validator.check_schema(schema)
        return True, None
    except SchemaError as e:
        return False, f"Invalid schema: {e.message}"


def validate_against_schema(
    value: Any, schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate a value against a JSON Schema.

    Args:
        value: The value to validate (module spec, action result, ...)
        schema: The JSON Schema to validate against

    Returns:
        Tuple of (is_valid, error_message). All validation errors are
        reported, each prefixed with the dotted path of the failing field.
    """
    validator = Draft7Validator(schema, format_checker=Draft7Validator.FORMAT_CHECKER)
    errors = sorted(
        validator.iter_errors(value),
        key=lambda e: [str(p) for p in e.absolute_path],
    )

    if not errors:
        return True, None

    error_messages = []
    for error in errors:
        path = ".".join(str(p) for p in error.absolute_path) or "(root)"
        error_messages.append(f"{path}: {error.message}")

    logger.debug(f"Schema validation failed with {len(errors)} error(s)")
    return False, "; ".join(error_messages)
