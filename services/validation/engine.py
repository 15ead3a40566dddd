"""
Form Data Validation Engine

Checks a submitted answer document against a field schema and returns every
problem found, in schema declaration order. Validation never raises for bad
data; only a malformed schema raises (SchemaError, from parse_schema).

Usage:
    result = validate(template.field_schema, form_data)
    if not result.is_valid:
        return jsonify({'error': f"Validation failed: {result.first_message()}"}), 422
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .types import (
    AnySchema,
    ArraySchema,
    BooleanSchema,
    NumberSchema,
    ObjectSchema,
    SchemaNode,
    StringSchema,
    parse_schema,
)

EMAIL_PATTERN = re.compile(r'[^\s@]+@[^\s@]+\.[^\s@]+')
DECIMAL_PATTERN = re.compile(r'[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?')
RADIX_PATTERN = re.compile(r'0(?:[xX][0-9a-fA-F]+|[oO][0-7]+|[bB][01]+)')

_MISSING = object()


class ErrorKind:
    """Error kind tags carried on FieldError."""
    REQUIRED = 'required'
    TYPE = 'type'
    FORMAT = 'format'
    MIN_LENGTH = 'minLength'
    MAX_LENGTH = 'maxLength'
    PATTERN = 'pattern'
    ENUM = 'enum'
    MINIMUM = 'minimum'
    MAXIMUM = 'maximum'
    MIN_ITEMS = 'minItems'
    MAX_ITEMS = 'maxItems'


@dataclass(frozen=True)
class FieldError:
    """One validation failure at a dotted/indexed path (e.g. 'address.city', 'children[1]')."""
    path: str
    message: str
    kind: str
    constraint: Any = None
    allowed_values: Optional[List[Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'path': self.path, 'message': self.message, 'kind': self.kind}
        if self.constraint is not None:
            data['constraint'] = self.constraint
        if self.allowed_values is not None:
            data['allowedValues'] = list(self.allowed_values)
        return data


@dataclass
class ValidationResult:
    """Outcome of validate(). Valid iff errors is empty."""
    errors: List[FieldError] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def first_message(self) -> Optional[str]:
        """'<path>: <message>' for the first error, or None when valid."""
        if not self.errors:
            return None
        first = self.errors[0]
        return f"{first.path}: {first.message}" if first.path else first.message

    def messages(self) -> List[str]:
        return [e.message for e in self.errors]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'valid': self.is_valid,
            'errors': [e.to_dict() for e in self.errors],
        }


def is_empty(value: Any) -> bool:
    """Missing, None and the empty string all count as not provided."""
    return value is _MISSING or value is None or (isinstance(value, str) and value == '')


def validate(schema, data: Any) -> ValidationResult:
    """
    Validate data against a schema.

    Args:
        schema: Raw schema dict or an already parsed SchemaNode
        data: The answer document (normally a dict keyed by field name)

    Returns:
        ValidationResult with errors in declaration order

    Raises:
        SchemaError: If a raw schema is malformed
    """
    node = parse_schema(schema)
    errors: List[FieldError] = []

    if isinstance(node, ObjectSchema):
        if data is None:
            data = {}
        if not isinstance(data, dict):
            errors.append(FieldError('', 'Form data must be an object', ErrorKind.TYPE))
            return ValidationResult(errors)
        _check_object_members(node, data, '', errors)
    elif is_empty(data):
        errors.append(FieldError('', f"{node.title or 'Value'} is required", ErrorKind.REQUIRED))
    else:
        _check_value(node, data, '', node.title or 'Value', errors)

    return ValidationResult(errors)


def _join(parent: str, name: str) -> str:
    return f"{parent}.{name}" if parent else name


def _check_object_members(node: ObjectSchema, data: dict, path: str, errors: List[FieldError]):
    """Required pass over the object, then type and constraint checks per present property."""
    for name in node.required:
        if is_empty(data.get(name, _MISSING)):
            errors.append(FieldError(
                _join(path, name),
                f"{node.title_for(name)} is required",
                ErrorKind.REQUIRED,
            ))

    for name, child in node.properties:
        value = data.get(name, _MISSING)
        if is_empty(value):
            continue
        _check_value(child, value, _join(path, name), child.title or name, errors)


def _check_value(node: SchemaNode, value: Any, path: str, title: str, errors: List[FieldError]):
    check = _CHECKS.get(type(node))
    if check is None:
        raise TypeError(f"Unsupported schema node: {type(node).__name__}")
    check(node, value, path, title, errors)


def _check_string(node: StringSchema, value, path, title, errors):
    if not isinstance(value, str):
        errors.append(FieldError(path, f"{title} must be a text value", ErrorKind.TYPE))
        return

    if node.format == 'email' and not EMAIL_PATTERN.fullmatch(value):
        errors.append(FieldError(path, 'Please enter a valid email address',
                                 ErrorKind.FORMAT, constraint='email'))
    elif node.format == 'uri' and not _is_uri(value):
        errors.append(FieldError(path, 'Please enter a valid URL',
                                 ErrorKind.FORMAT, constraint='uri'))

    if node.min_length is not None and len(value) < node.min_length:
        errors.append(FieldError(path, f"{title} must be at least {node.min_length} characters long",
                                 ErrorKind.MIN_LENGTH, constraint=node.min_length))

    if node.max_length is not None and len(value) > node.max_length:
        errors.append(FieldError(path, f"{title} must be no more than {node.max_length} characters long",
                                 ErrorKind.MAX_LENGTH, constraint=node.max_length))

    if node.regex is not None and not node.regex.search(value):
        errors.append(FieldError(path, node.pattern_message or f"{title} format is invalid",
                                 ErrorKind.PATTERN, constraint=node.pattern))

    _check_enum(node, value, path, title, errors)


def _is_uri(value: str) -> bool:
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc or parsed.path)


def _check_number(node: NumberSchema, value, path, title, errors):
    number = _coerce_number(value)
    if number is None or (node.integer and not float(number).is_integer()):
        kind_label = 'whole number' if node.integer else 'number'
        errors.append(FieldError(path, f"{title} must be a valid {kind_label}", ErrorKind.TYPE))
        return

    if node.minimum is not None and number < node.minimum:
        errors.append(FieldError(path, f"{title} must be at least {node.minimum}",
                                 ErrorKind.MINIMUM, constraint=node.minimum))

    if node.maximum is not None and number > node.maximum:
        errors.append(FieldError(path, f"{title} must be no more than {node.maximum}",
                                 ErrorKind.MAXIMUM, constraint=node.maximum))

    _check_enum(node, number, path, title, errors, raw=value)


def _coerce_number(value):
    """
    Number as-is, numeric string parsed, anything else (including bool) None.

    Strings follow numeric literal syntax: decimal with optional exponent, or
    0x/0o/0b integers. Python-only spellings such as '1_000', 'inf' and 'nan'
    are rejected, and so is a whitespace-only string.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if DECIMAL_PATTERN.fullmatch(text):
            number = float(text)
        elif RADIX_PATTERN.fullmatch(text):
            number = int(text, 0)
        else:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _check_boolean(node: BooleanSchema, value, path, title, errors):
    if not isinstance(value, bool):
        errors.append(FieldError(path, f"{title} must be true or false", ErrorKind.TYPE))
        return
    _check_enum(node, value, path, title, errors)


def _check_object(node: ObjectSchema, value, path, title, errors):
    if not isinstance(value, dict):
        errors.append(FieldError(path, f"{title} must be a valid object", ErrorKind.TYPE))
        return
    _check_object_members(node, value, path, errors)


def _check_array(node: ArraySchema, value, path, title, errors):
    if not isinstance(value, list):
        errors.append(FieldError(path, f"{title} must be a list", ErrorKind.TYPE))
        return

    if node.min_items is not None and len(value) < node.min_items:
        errors.append(FieldError(path, f"{title} must have at least {node.min_items} items",
                                 ErrorKind.MIN_ITEMS, constraint=node.min_items))

    if node.max_items is not None and len(value) > node.max_items:
        errors.append(FieldError(path, f"{title} must have no more than {node.max_items} items",
                                 ErrorKind.MAX_ITEMS, constraint=node.max_items))

    if node.items is None:
        return

    item_title = node.items.title or title
    for index, item in enumerate(value):
        item_path = f"{path}[{index}]"
        if is_empty(item):
            errors.append(FieldError(item_path, f"{item_title} is required", ErrorKind.REQUIRED))
            continue
        _check_value(node.items, item, item_path, item_title, errors)


def _check_any(node: AnySchema, value, path, title, errors):
    pass


def _check_enum(node, value, path, title, errors, raw=None):
    if node.enum is None:
        return
    if value in node.enum or (raw is not None and raw in node.enum):
        return
    errors.append(FieldError(path, f"Please select a valid option for {title}",
                             ErrorKind.ENUM, allowed_values=list(node.enum)))


_CHECKS = {
    StringSchema: _check_string,
    NumberSchema: _check_number,
    BooleanSchema: _check_boolean,
    ObjectSchema: _check_object,
    ArraySchema: _check_array,
    AnySchema: _check_any,
}
