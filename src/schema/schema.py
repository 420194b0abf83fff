"""
Centralized JSON Schema Loading Module.

This module loads JSON schema files from disk once, at import time, and
exposes them as module-level constants. It also validates node parameters
against the node parameter schema.

File Location:
    Schemas live in the same directory as this module (src/schema/). The
    path is resolved using __file__ so it works from any working directory.

Error Handling:
    - FileNotFoundError: Schema file doesn't exist at expected path
    - json.JSONDecodeError: Schema file contains invalid JSON syntax
    - InvalidConfiguration: Node parameters fail validation
"""
import json
from pathlib import Path
from typing import Dict, Any

from jsonschema import Draft7Validator

from ghost.errors import InvalidConfiguration

SCHEMA_DIR = Path(__file__).parent


def _load_schema(schema_filename: str) -> Dict[str, Any]:
    """
    Load a JSON schema file from the schema directory.

    Args:
        schema_filename: Name of the JSON schema file (e.g., "node_parameters_schema.json")

    Returns:
        Parsed JSON schema as a dictionary, ready for use with jsonschema library

    Raises:
        FileNotFoundError: If the schema file doesn't exist at the expected location
        json.JSONDecodeError: If the schema file exists but contains invalid JSON
    """
    schema_path = SCHEMA_DIR / schema_filename

    if not schema_path.exists():
        raise FileNotFoundError(
            f"Schema file not found: {schema_path}. "
            f"Expected location: {SCHEMA_DIR}"
        )

    try:
        with open(schema_path, "r") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise json.JSONDecodeError(
            f"Invalid JSON in schema file {schema_filename}: {e.msg}",
            e.doc,
            e.pos
        ) from e


# Node Parameters Schema
# JSON Schema (Draft 7) for {source, resource, operation, ...} including
# which source/resource/operation combinations are supported
NODE_PARAMETERS_SCHEMA = _load_schema("node_parameters_schema.json")

_NODE_PARAMETERS_VALIDATOR = Draft7Validator(NODE_PARAMETERS_SCHEMA)


def get_node_parameters_schema() -> Dict[str, Any]:
    """Get the node parameters JSON schema (same object as NODE_PARAMETERS_SCHEMA)."""
    return NODE_PARAMETERS_SCHEMA


def validate_node_parameters(parameters: Dict[str, Any]) -> None:
    """Validate node parameters against the node parameters schema.

    All violations are collected; the first (by path) becomes the message and
    the full list is kept in ``details["violations"]``.

    Args:
        parameters: Node configuration mapping

    Raises:
        InvalidConfiguration: If validation fails

    Example:
        >>> validate_node_parameters({"source": "contentApi", "resource": "post", "operation": "get", "identifier": "abc"})
        >>> validate_node_parameters({"source": "contentApi", "resource": "post", "operation": "delete"})
        InvalidConfiguration: Invalid node parameters: 'delete' is not one of ['get', 'getAll'] at path: operation
    """
    errors = sorted(_NODE_PARAMETERS_VALIDATOR.iter_errors(parameters), key=lambda e: [str(p) for p in e.path])
    if not errors:
        return

    violations = [
        {"path": ".".join(str(p) for p in error.path), "message": error.message}
        for error in errors
    ]
    first = violations[0]
    raise InvalidConfiguration(
        f"Invalid node parameters: {first['message']} at path: {first['path']}",
        details={"violations": violations}
    )
