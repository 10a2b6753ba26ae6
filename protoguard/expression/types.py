"""Static types used by the expression checker, and runtime type names."""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from protoguard.models.schema import Cardinality, FieldDescriptor, FieldType


@dataclass(frozen=True)
class Type:
    kind: str                       # int uint double bool string bytes null timestamp duration list map message dyn
    elem: Optional["Type"] = None   # List element or map value
    key: Optional["Type"] = None    # Map key
    message: Optional[str] = None   # Full name for message types

    def __str__(self) -> str:
        if self.kind == "list":
            return f"list({self.elem})"
        if self.kind == "map":
            return f"map({self.key}, {self.elem})"
        if self.kind == "message":
            return self.message or "message"
        return self.kind

    @property
    def is_dyn(self) -> bool:
        return self.kind == "dyn"


DYN = Type("dyn")
INT = Type("int")
DOUBLE = Type("double")
BOOL = Type("bool")
STRING = Type("string")
BYTES = Type("bytes")
NULL = Type("null")
TIMESTAMP = Type("timestamp")
DURATION = Type("duration")
LIST_DYN = Type("list", elem=DYN)
MAP_DYN = Type("map", elem=DYN, key=DYN)

NUMERIC_KINDS = frozenset({"int", "double"})


def list_of(elem: Type) -> Type:
    return Type("list", elem=elem)


def map_of(key: Type, value: Type) -> Type:
    return Type("map", elem=value, key=key)


def message_type(full_name: str) -> Type:
    return Type("message", message=full_name)


def scalar_type(field_type: FieldType, message: Optional[str] = None) -> Type:
    """Static type of a single value of ``field_type``.

    Every integer width maps to ``int``; enums read as ``int`` too.
    """
    if field_type.is_integer or field_type == FieldType.ENUM:
        return INT
    if field_type in (FieldType.DOUBLE, FieldType.FLOAT):
        return DOUBLE
    simple = {
        FieldType.BOOL: BOOL,
        FieldType.STRING: STRING,
        FieldType.BYTES: BYTES,
        FieldType.TIMESTAMP: TIMESTAMP,
        FieldType.DURATION: DURATION,
    }
    if field_type in simple:
        return simple[field_type]
    if field_type == FieldType.MESSAGE and message:
        return message_type(message)
    return DYN


def field_type(field: FieldDescriptor, message: Optional[str] = None) -> Type:
    """Static type of a field value, collections included."""
    value = scalar_type(field.type, message)
    if field.label == Cardinality.REPEATED:
        return list_of(value)
    if field.label == Cardinality.MAP:
        return map_of(scalar_type(field.key_type), value)
    return value


def unify(a: Type, b: Type) -> Type:
    """Common type of two branches, or dyn when they differ."""
    if a == b:
        return a
    if a.kind == "null":
        return b
    if b.kind == "null":
        return a
    return DYN


def runtime_type_name(value: Any) -> str:
    """CEL-style type name of a runtime value, for error messages."""
    from protoguard.expression.values import MessageView

    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "double"
    if isinstance(value, str):
        return "string"
    if isinstance(value, bytes):
        return "bytes"
    if isinstance(value, datetime):
        return "timestamp"
    if isinstance(value, timedelta):
        return "duration"
    if isinstance(value, MessageView):
        return value.type_name
    if isinstance(value, (list, tuple)):
        return "list"
    if isinstance(value, dict):
        return "map"
    return type(value).__name__
