"""Schema descriptor models.

These mirror the parts of a Protocol Buffer descriptor that rule evaluation
needs: message types, their fields, enums, oneof groups, and the rules attached
to each. Descriptors are produced by an external schema compiler and consumed
read-only.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FieldType(str, Enum):
    """Field value types."""

    DOUBLE = "double"
    FLOAT = "float"
    INT32 = "int32"
    INT64 = "int64"
    UINT32 = "uint32"
    UINT64 = "uint64"
    SINT32 = "sint32"
    SINT64 = "sint64"
    FIXED32 = "fixed32"
    FIXED64 = "fixed64"
    SFIXED32 = "sfixed32"
    SFIXED64 = "sfixed64"
    BOOL = "bool"
    STRING = "string"
    BYTES = "bytes"
    ENUM = "enum"
    MESSAGE = "message"
    TIMESTAMP = "timestamp"
    DURATION = "duration"

    @property
    def is_integer(self) -> bool:
        return self in INTEGER_TYPES


INTEGER_TYPES = frozenset({
    FieldType.INT32, FieldType.INT64, FieldType.UINT32, FieldType.UINT64,
    FieldType.SINT32, FieldType.SINT64, FieldType.FIXED32, FieldType.FIXED64,
    FieldType.SFIXED32, FieldType.SFIXED64,
})

FLOAT_TYPES = frozenset({FieldType.DOUBLE, FieldType.FLOAT})

# Types allowed as map keys (same set protobuf allows)
MAP_KEY_TYPES = INTEGER_TYPES | {FieldType.BOOL, FieldType.STRING}

# Inclusive value ranges for bounded integer types
INTEGER_RANGES: dict[FieldType, tuple[int, int]] = {
    FieldType.INT32: (-(2**31), 2**31 - 1),
    FieldType.SINT32: (-(2**31), 2**31 - 1),
    FieldType.SFIXED32: (-(2**31), 2**31 - 1),
    FieldType.INT64: (-(2**63), 2**63 - 1),
    FieldType.SINT64: (-(2**63), 2**63 - 1),
    FieldType.SFIXED64: (-(2**63), 2**63 - 1),
    FieldType.UINT32: (0, 2**32 - 1),
    FieldType.FIXED32: (0, 2**32 - 1),
    FieldType.UINT64: (0, 2**64 - 1),
    FieldType.FIXED64: (0, 2**64 - 1),
}


class Cardinality(str, Enum):
    SINGLE = "single"
    REPEATED = "repeated"
    MAP = "map"


class IgnoreMode(str, Enum):
    """When field rules are skipped."""

    NEVER = "never"                    # Default presence semantics
    IF_UNPOPULATED = "if_unpopulated"  # Skip when unset or equal to the zero value
    ALWAYS = "always"                  # Never evaluate rules on this field


class RuleSpec(BaseModel):
    """A custom expression rule as written in a schema."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    expression: str = Field(min_length=1)
    message: str = ""


class FieldDescriptor(BaseModel):
    """A field of a message type, with its attached rules."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: FieldType
    label: Cardinality = Cardinality.SINGLE
    type_name: Optional[str] = None    # Referenced message/enum (value type for maps)
    key_type: Optional[FieldType] = None
    optional: bool = False             # Explicit presence for scalar fields
    required: bool = False
    ignore: IgnoreMode = IgnoreMode.NEVER
    in_oneof: bool = False             # Set by MessageDescriptor for oneof members
    rules: dict[str, Any] = Field(default_factory=dict)
    cel: tuple[RuleSpec, ...] = ()

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not v.isidentifier():
            raise ValueError(f"'{v}' is not a valid field name")
        return v

    @model_validator(mode="after")
    def check_references(self) -> "FieldDescriptor":
        if self.type in (FieldType.MESSAGE, FieldType.ENUM) and not self.type_name:
            raise ValueError(f"field '{self.name}' of type {self.type.value} needs 'type_name'")
        if self.label == Cardinality.MAP:
            if self.key_type is None:
                raise ValueError(f"map field '{self.name}' needs 'key_type'")
            if self.key_type not in MAP_KEY_TYPES:
                raise ValueError(f"map field '{self.name}' cannot use {self.key_type.value} keys")
        elif self.key_type is not None:
            raise ValueError(f"'key_type' is only valid on map fields ('{self.name}')")
        if self.optional and (self.label != Cardinality.SINGLE or self.type == FieldType.MESSAGE):
            raise ValueError(f"'optional' only applies to singular scalar fields ('{self.name}')")
        return self

    @property
    def has_presence(self) -> bool:
        """Whether an unset value is distinguishable from the zero value."""
        if self.label != Cardinality.SINGLE:
            return False
        if self.optional or self.in_oneof:
            return True
        return self.type in (FieldType.MESSAGE, FieldType.TIMESTAMP, FieldType.DURATION)


class OneofDescriptor(BaseModel):
    """A group of fields of which at most one may be set."""

    model_config = ConfigDict(frozen=True)

    name: str
    fields: tuple[str, ...]
    required: bool = False


class MessageDescriptor(BaseModel):
    """A message type with its fields and message-level rules."""

    model_config = ConfigDict(frozen=True)

    name: str
    fields: tuple[FieldDescriptor, ...] = ()
    oneofs: tuple[OneofDescriptor, ...] = ()
    required: tuple[str, ...] = ()    # Message-level presence requirements
    cel: tuple[RuleSpec, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def mark_oneof_members(cls, data: Any) -> Any:
        """Oneof members always have explicit presence."""
        if not isinstance(data, dict):
            return data
        fields, oneofs = data.get("fields"), data.get("oneofs")
        if not isinstance(fields, (list, tuple)) or not isinstance(oneofs, (list, tuple)):
            return data
        members: set[str] = set()
        for oneof in oneofs:
            names = oneof.get("fields") if isinstance(oneof, dict) else getattr(oneof, "fields", None)
            if isinstance(names, (list, tuple)):
                members.update(name for name in names if isinstance(name, str))
        marked = []
        for field in fields:
            if isinstance(field, dict) and isinstance(field.get("name"), str) and field["name"] in members:
                field = {**field, "in_oneof": True}
            elif isinstance(field, FieldDescriptor) and field.name in members:
                field = field.model_copy(update={"in_oneof": True})
            marked.append(field)
        return {**data, "fields": marked}

    def field(self, name: str) -> Optional[FieldDescriptor]:
        for f in self.fields:
            if f.name == name:
                return f
        return None


class EnumDescriptor(BaseModel):
    """An enum: a tagged set of known integer values.

    Open enums (the default) pass unknown integers through unless a field asks
    for ``defined_only``. Closed enums reject unknown values outright.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    values: dict[str, int]
    closed: bool = False

    @property
    def numbers(self) -> frozenset[int]:
        return frozenset(self.values.values())


class SchemaDescriptor(BaseModel):
    """One schema file: a package with its message and enum types."""

    model_config = ConfigDict(frozen=True)

    package: str = ""
    messages: tuple[MessageDescriptor, ...] = ()
    enums: tuple[EnumDescriptor, ...] = ()
    source: Optional[str] = Field(default=None, exclude=True)

    def qualify(self, name: str) -> str:
        """Full name for a type declared in this file."""
        if name.startswith("."):
            return name[1:]
        if self.package and not name.startswith(self.package + "."):
            return f"{self.package}.{name}"
        return name
