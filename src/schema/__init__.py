"""Schema Package - JSON Schema Loading and Validation.

This package loads the JSON schemas used by the Ghost node once at import
time and exposes them as module-level constants.

Available Schemas:
    NODE_PARAMETERS_SCHEMA: JSON Schema for the node configuration
        ({source, resource, operation, ...}) including the supported
        source/resource/operation combinations.

Usage Patterns:
    from schema import validate_node_parameters
    validate_node_parameters({"source": "adminApi", "resource": "post", "operation": "create"})
"""
from .schema import NODE_PARAMETERS_SCHEMA, get_node_parameters_schema, validate_node_parameters

__all__ = ["NODE_PARAMETERS_SCHEMA", "get_node_parameters_schema", "validate_node_parameters"]
