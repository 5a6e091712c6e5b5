"""
Schema Validation - JSON Schema binding for the instance resource.

Declares the desired-state schema of the instance resource, which
attributes force replacement, which are computed when unset, and provides
functions to validate specs against it.
"""

import logging
from typing import Any, Dict, FrozenSet, Optional, Tuple

from jsonschema import Draft7Validator, ValidationError

from errors import SpecValidationError

logger = logging.getLogger(__name__)

INSTANCE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": [
        "image_id",
        "instance_type",
        "subnet_id",
        "password",
        "block_device_mappings",
    ],
    "properties": {
        "image_id": {"type": "string", "minLength": 1},
        "instance_type": {"type": "string", "minLength": 1},
        "subnet_id": {"type": "string", "minLength": 1},
        "password": {"type": "string"},
        "block_device_mappings": {
            "type": "array",
            "minItems": 1,
            "items": {
                "type": "object",
                "required": ["volume_size", "volume_type"],
                "properties": {
                    "volume_size": {"type": "integer", "minimum": 1},
                    "volume_type": {"type": "string", "minLength": 1},
                    "device_name": {"type": ["string", "null"]},
                },
                "additionalProperties": False,
            },
        },
        "min_count": {"type": ["integer", "null"], "minimum": 1},
        "instance_name": {"type": ["string", "null"]},
        "security_group_ids": {
            "type": ["array", "null"],
            "items": {"type": "string"},
        },
        "key_name": {"type": ["string", "null"]},
        "user_data": {"type": ["string", "null"]},
        "tags": {
            "type": ["object", "null"],
            "additionalProperties": {"type": "string"},
            # Name is derived from instance_name
            "propertyNames": {"not": {"const": "Name"}},
        },
    },
    "additionalProperties": False,
}

# Changing any of these destroys and recreates the instance
REPLACE_ATTRIBUTES: FrozenSet[str] = frozenset(
    {"image_id", "subnet_id", "user_data", "block_device_mappings"}
)

# Optional attributes resolved from defaults or the API when left unset
COMPUTED_ATTRIBUTES: FrozenSet[str] = frozenset(
    {"min_count", "instance_name", "security_group_ids"}
)

SENSITIVE_ATTRIBUTES: FrozenSet[str] = frozenset({"password"})


def validate_json_schema(schema: Dict[str, Any]) -> Tuple[bool, Optional[str]]:
    """
    Validate that a schema is a valid JSON Schema.

    Args:
        schema: The schema to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        Draft7Validator.check_schema(schema)
        return True, None
    except Exception as e:
        return False, f"Invalid schema: {str(e)}"


def validate_spec_against_schema(
    spec: Dict[str, Any], schema: Dict[str, Any]
) -> Tuple[bool, Optional[str]]:
    """
    Validate a resource spec against a JSON Schema.

    Args:
        spec: The desired-state document to validate
        schema: The JSON Schema to validate against

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        validator = Draft7Validator(
            schema, format_checker=Draft7Validator.FORMAT_CHECKER
        )
        errors = list(validator.iter_errors(spec))

        if not errors:
            return True, None

        # Collect all validation errors
        error_messages = []
        for error in errors:
            path = ".".join(str(p) for p in error.absolute_path) or "(root)"
            error_messages.append(f"{path}: {error.message}")

        return False, "; ".join(error_messages)

    except ValidationError as e:
        return False, f"Validation error: {str(e)}"
    except Exception as e:
        logger.error(f"Unexpected error during validation: {e}")
        return False, f"Validation failed: {str(e)}"


def validate_resource_spec(
    spec: Dict[str, Any],
    schema: Dict[str, Any] = INSTANCE_SCHEMA,
    address: str = "",
) -> None:
    """
    Validate a desired-state document against a resource schema.

    Args:
        spec: The desired-state document
        schema: The resource type's JSON Schema
        address: Resource address used in the error message

    Raises:
        SpecValidationError: If the document does not match the schema
    """
    is_valid, error = validate_spec_against_schema(spec, schema)
    if not is_valid:
        message = f"{address}: {error}" if address else error
        raise SpecValidationError(message, operation="validate")
