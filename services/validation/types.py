"""
Form Schema Type Definitions

Frozen dataclasses representing a parsed field schema tree. A raw schema
(as stored on FormTemplate.field_schema) is a JSON-Schema-like dict; it is
converted once by parse_schema() into one of the node types below, keyed
by its "type" value. The validation engine dispatches on node class.

Only the operator subset the intake forms use is understood:
required, type, format, minLength/maxLength, pattern (+ patternMessage),
enum, minimum/maximum, minItems/maxItems, properties and items.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .exceptions import SchemaError


class FieldType(Enum):
    """Schema node types."""
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    OBJECT = "object"
    ARRAY = "array"
    ANY = "any"


SUPPORTED_FORMATS = ('email', 'uri')


@dataclass(frozen=True)
class StringSchema:
    """
    A string field.

    Attributes:
        title: Human label used in error messages
        format: 'email' or 'uri'; any other format is accepted unchecked
        min_length / max_length: Inclusive length bounds
        pattern: Regex source, matched anywhere in the value
        pattern_message: Replaces the generic pattern error message
        enum: Allowed values, in declaration order
    """
    title: Optional[str] = None
    format: Optional[str] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    pattern_message: Optional[str] = None
    enum: Optional[Tuple[Any, ...]] = None
    regex: Optional[re.Pattern] = field(default=None, compare=False, repr=False)

    type = FieldType.STRING


@dataclass(frozen=True)
class NumberSchema:
    """A numeric field. integer=True additionally requires a whole number."""
    title: Optional[str] = None
    integer: bool = False
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    enum: Optional[Tuple[Any, ...]] = None

    @property
    def type(self) -> FieldType:
        return FieldType.INTEGER if self.integer else FieldType.NUMBER


@dataclass(frozen=True)
class BooleanSchema:
    """A true/false field."""
    title: Optional[str] = None
    enum: Optional[Tuple[Any, ...]] = None

    type = FieldType.BOOLEAN


@dataclass(frozen=True)
class ObjectSchema:
    """
    An object with declared properties.

    properties keeps declaration order so errors come out in the order the
    template author wrote the fields.
    """
    title: Optional[str] = None
    properties: Tuple[Tuple[str, 'SchemaNode'], ...] = ()
    required: Tuple[str, ...] = ()

    type = FieldType.OBJECT

    def get_property(self, name: str) -> Optional['SchemaNode']:
        """Get the schema of a declared property, or None."""
        return next((node for key, node in self.properties if key == name), None)

    def property_names(self) -> List[str]:
        return [key for key, _ in self.properties]

    def title_for(self, name: str) -> str:
        """Display label for a child: its title, else its name."""
        node = self.get_property(name)
        return (node.title if node is not None and node.title else name)


@dataclass(frozen=True)
class ArraySchema:
    """A list of items, each validated against the items schema if given."""
    title: Optional[str] = None
    items: Optional['SchemaNode'] = None
    min_items: Optional[int] = None
    max_items: Optional[int] = None

    type = FieldType.ARRAY


@dataclass(frozen=True)
class AnySchema:
    """A node with no or unknown type. Presence is checked, content is not."""
    title: Optional[str] = None
    declared_type: Optional[str] = None

    type = FieldType.ANY


SchemaNode = Union[StringSchema, NumberSchema, BooleanSchema, ObjectSchema, ArraySchema, AnySchema]

SCHEMA_NODE_TYPES = (StringSchema, NumberSchema, BooleanSchema, ObjectSchema, ArraySchema, AnySchema)


# =============================================================================
# PARSING
# =============================================================================

def parse_schema(raw: Dict[str, Any], path: str = '') -> SchemaNode:
    """
    Convert a raw schema dict into a typed node tree.

    A root (or nested) node without "type" but with "properties" is read
    as an object, which is how most stored templates are written.

    Raises:
        SchemaError: If the tree is structurally invalid
    """
    if isinstance(raw, SCHEMA_NODE_TYPES):
        return raw
    if not isinstance(raw, dict):
        raise SchemaError("schema node must be an object", path or '<root>')

    declared = raw.get('type')
    if declared is None and 'properties' in raw:
        declared = 'object'

    title = raw.get('title')
    if title is not None and not isinstance(title, str):
        raise SchemaError("title must be a string", path or '<root>')

    if declared == 'string':
        return _parse_string(raw, path, title)
    if declared in ('number', 'integer'):
        return NumberSchema(
            title=title,
            integer=(declared == 'integer'),
            minimum=_number_or_none(raw, 'minimum', path),
            maximum=_number_or_none(raw, 'maximum', path),
            enum=_enum_or_none(raw, path),
        )
    if declared == 'boolean':
        return BooleanSchema(title=title, enum=_enum_or_none(raw, path))
    if declared == 'object':
        return _parse_object(raw, path, title)
    if declared == 'array':
        items_raw = raw.get('items')
        items = parse_schema(items_raw, f"{path}[]" if path else '[]') if items_raw is not None else None
        return ArraySchema(
            title=title,
            items=items,
            min_items=_count_or_none(raw, 'minItems', path),
            max_items=_count_or_none(raw, 'maxItems', path),
        )
    if declared is not None and not isinstance(declared, str):
        raise SchemaError("type must be a string", path or '<root>')
    return AnySchema(title=title, declared_type=declared)


def _parse_string(raw: dict, path: str, title: Optional[str]) -> StringSchema:
    pattern = raw.get('pattern')
    regex = None
    if pattern is not None:
        if not isinstance(pattern, str):
            raise SchemaError("pattern must be a string", path)
        try:
            regex = re.compile(_strict_end_anchors(pattern))
        except re.error as e:
            raise SchemaError(f"invalid pattern {pattern!r}: {e}", path)

    pattern_message = raw.get('patternMessage')
    if pattern_message is not None and not isinstance(pattern_message, str):
        raise SchemaError("patternMessage must be a string", path)

    fmt = raw.get('format')
    if fmt is not None and not isinstance(fmt, str):
        raise SchemaError("format must be a string", path)

    return StringSchema(
        title=title,
        format=fmt,
        min_length=_count_or_none(raw, 'minLength', path),
        max_length=_count_or_none(raw, 'maxLength', path),
        pattern=pattern,
        pattern_message=pattern_message,
        enum=_enum_or_none(raw, path),
        regex=regex,
    )


def _strict_end_anchors(pattern: str) -> str:
    """
    Rewrite every bare '$' as '\\Z'.

    Python's '$' also matches before a trailing newline, so '^\\d{5}$' would
    accept '12345\\n'. Escaped dollars and dollars inside a character class
    are literals and stay as they are.
    """
    out = []
    in_class = False
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == '\\':
            out.append(pattern[i:i + 2])
            i += 2
            continue
        if in_class:
            if ch == ']':
                in_class = False
            out.append(ch)
        elif ch == '[':
            in_class = True
            out.append(ch)
            # A ']' straight after '[' or '[^' is a literal, not the close
            if pattern[i + 1:i + 2] == '^':
                out.append('^')
                i += 1
            if pattern[i + 1:i + 2] == ']':
                out.append(']')
                i += 1
        elif ch == '$':
            out.append(r'\Z')
        else:
            out.append(ch)
        i += 1
    return ''.join(out)


def _parse_object(raw: dict, path: str, title: Optional[str]) -> ObjectSchema:
    props_raw = raw.get('properties') or {}
    if not isinstance(props_raw, dict):
        raise SchemaError("properties must be an object", path or '<root>')

    properties = []
    for name, child in props_raw.items():
        child_path = f"{path}.{name}" if path else name
        properties.append((name, parse_schema(child, child_path)))

    required = raw.get('required') or []
    if not isinstance(required, list) or not all(isinstance(r, str) for r in required):
        raise SchemaError("required must be a list of property names", path or '<root>')
    if len(required) != len(set(required)):
        duplicates = sorted({r for r in required if required.count(r) > 1})
        raise SchemaError(f"duplicate required names: {duplicates}", path or '<root>')

    return ObjectSchema(title=title, properties=tuple(properties), required=tuple(required))


def _count_or_none(raw: dict, key: str, path: str) -> Optional[int]:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise SchemaError(f"{key} must be a non-negative integer", path or '<root>')
    return value


def _number_or_none(raw: dict, key: str, path: str) -> Optional[float]:
    value = raw.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaError(f"{key} must be a number", path or '<root>')
    return value


def _enum_or_none(raw: dict, path: str) -> Optional[Tuple[Any, ...]]:
    value = raw.get('enum')
    if value is None:
        return None
    if not isinstance(value, list) or not value:
        raise SchemaError("enum must be a non-empty list", path or '<root>')
    return tuple(value)
