"""Runtime values: read-only message views, zero values, and equality."""

from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any, Mapping

from protoguard.errors import EvaluationError
from protoguard.models.schema import FLOAT_TYPES, Cardinality, FieldDescriptor, FieldType, MessageDescriptor

if TYPE_CHECKING:
    from protoguard.schema.registry import SchemaRegistry

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_SCALAR_ZERO: dict[FieldType, Any] = {
    FieldType.DOUBLE: 0.0,
    FieldType.FLOAT: 0.0,
    FieldType.BOOL: False,
    FieldType.STRING: "",
    FieldType.BYTES: b"",
    FieldType.ENUM: 0,
    FieldType.TIMESTAMP: EPOCH,
    FieldType.DURATION: timedelta(0),
}


def zero_value(field_type: FieldType) -> Any:
    """Default value of a singular scalar field."""
    if field_type.is_integer:
        return 0
    return _SCALAR_ZERO.get(field_type)


def as_utc(value: datetime) -> datetime:
    """Timestamps without tzinfo are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_populated(field: FieldDescriptor, value: Any) -> bool:
    """True when the field is set: any value with presence, otherwise a non-zero value."""
    if value is None:
        return False
    if field.label != Cardinality.SINGLE:
        return len(value) > 0
    if field.has_presence:
        return True
    return not values_equal(value, zero_value(field.type))


class MessageView:
    """Read-only view of a message instance for expression evaluation.

    Reading an unset field yields its zero value (an empty view for message
    fields), so expressions never see None for declared fields.
    """

    __slots__ = ("_data", "_descriptor", "_registry")

    def __init__(self, data: Mapping[str, Any], descriptor: MessageDescriptor, registry: "SchemaRegistry"):
        self._data = data
        self._descriptor = descriptor
        self._registry = registry

    @property
    def type_name(self) -> str:
        return self._descriptor.name

    @property
    def descriptor(self) -> MessageDescriptor:
        return self._descriptor

    @property
    def raw(self) -> Mapping[str, Any]:
        return self._data

    def _field(self, name: str) -> FieldDescriptor:
        field = self._descriptor.field(name)
        if field is None:
            raise EvaluationError(f"no such field '{name}' on {self.type_name}")
        return field

    def has(self, name: str) -> bool:
        field = self._field(name)
        value = self._data.get(name)
        if field.has_presence:
            return value is not None
        return is_populated(field, value)

    def get(self, name: str) -> Any:
        field = self._field(name)
        return wrap_value(field, self._data.get(name), self.type_name, self._registry)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MessageView):
            return NotImplemented
        if other.type_name != self.type_name:
            return False
        for field in self._descriptor.fields:
            if self.has(field.name) != other.has(field.name):
                return False
            if not values_equal(self.get(field.name), other.get(field.name)):
                return False
        return True

    def __hash__(self) -> int:
        return hash(self.type_name)

    def __repr__(self) -> str:
        return f"MessageView({self.type_name}, {dict(self._data)!r})"


def wrap_message(value: Any, owner: str, field: FieldDescriptor, registry: "SchemaRegistry") -> MessageView:
    descriptor = registry.field_message(owner, field)
    if value is None:
        value = {}
    if isinstance(value, MessageView):
        return value
    if not isinstance(value, Mapping):
        raise EvaluationError(
            f"field '{field.name}' expects a {descriptor.name} mapping, got {type(value).__name__}"
        )
    return MessageView(value, descriptor, registry)


def wrap_single(field: FieldDescriptor, value: Any, owner: str, registry: "SchemaRegistry") -> Any:
    """Wrap one element (or the whole value of a singular field)."""
    if field.type == FieldType.MESSAGE:
        return wrap_message(value, owner, field, registry)
    if value is None:
        return zero_value(field.type)
    if field.type in FLOAT_TYPES and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    if field.type == FieldType.TIMESTAMP and isinstance(value, datetime):
        return as_utc(value)
    if field.type == FieldType.BYTES and isinstance(value, bytearray):
        return bytes(value)
    return value


def wrap_value(field: FieldDescriptor, value: Any, owner: str, registry: "SchemaRegistry") -> Any:
    """Expression-facing value of a field, collections included."""
    if field.label == Cardinality.REPEATED:
        items = value if value is not None else ()
        return tuple(wrap_single(field, item, owner, registry) for item in items)
    if field.label == Cardinality.MAP:
        entries = value if value is not None else {}
        return {k: wrap_single(field, v, owner, registry) for k, v in entries.items()}
    return wrap_single(field, value, owner, registry)


def values_equal(a: Any, b: Any) -> bool:
    """Equality with CEL semantics: bool never equals a number, numbers compare by value."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(values_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict) and isinstance(b, dict):
        if len(a) != len(b):
            return False
        for key, value in a.items():
            match = _lookup_key(b, key)
            if match is _MISSING or not values_equal(value, match):
                return False
        return True
    if isinstance(a, datetime) and isinstance(b, datetime):
        return as_utc(a) == as_utc(b)
    if type(a) is not type(b) and not (isinstance(a, MessageView) and isinstance(b, MessageView)):
        return False
    return a == b


_MISSING = object()


def _lookup_key(mapping: dict, key: Any) -> Any:
    """Map lookup where ``1`` and ``1.0`` match but ``True`` and ``1`` do not."""
    for candidate, value in mapping.items():
        if values_equal(candidate, key):
            return value
    return _MISSING


def map_get(mapping: dict, key: Any) -> Any:
    """Value at ``key`` or raise EvaluationError."""
    if isinstance(key, str) and key in mapping:
        return mapping[key]
    value = _lookup_key(mapping, key)
    if value is _MISSING:
        raise EvaluationError(f"no such key: {key!r}")
    return value


def map_contains(mapping: dict, key: Any) -> bool:
    return _lookup_key(mapping, key) is not _MISSING


def list_contains(items: Any, value: Any) -> bool:
    return any(values_equal(item, value) for item in items)
