"""
Form Validation System

Schema-driven validation for client form answers. Schemas are the
JSON-Schema-like dicts stored on FormTemplate.field_schema; they are parsed
into typed nodes and checked without side effects.

Usage:
    from services.validation import validate, parse_schema

    # When a template is created or loaded (raises SchemaError if broken)
    parse_schema(template.field_schema)

    # When a client submits
    result = validate(instance.schema_snapshot, form_data)
    if not result.is_valid:
        message = result.first_message()   # "name: Full Name is required"
"""

from .types import (
    FieldType,
    StringSchema,
    NumberSchema,
    BooleanSchema,
    ObjectSchema,
    ArraySchema,
    AnySchema,
    SchemaNode,
    parse_schema,
)

from .exceptions import (
    FormSchemaError,
    SchemaError,
    ConfigurationError,
)

from .engine import (
    ErrorKind,
    FieldError,
    ValidationResult,
    EMAIL_PATTERN,
    is_empty,
    validate,
)

__all__ = [
    # Types
    'FieldType',
    'StringSchema',
    'NumberSchema',
    'BooleanSchema',
    'ObjectSchema',
    'ArraySchema',
    'AnySchema',
    'SchemaNode',
    'parse_schema',

    # Exceptions
    'FormSchemaError',
    'SchemaError',
    'ConfigurationError',

    # Engine
    'ErrorKind',
    'FieldError',
    'ValidationResult',
    'EMAIL_PATTERN',
    'is_empty',
    'validate',
]
