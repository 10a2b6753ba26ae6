"""Schema registry: full-name lookup of message and enum types."""

from pathlib import Path
from typing import Any, Iterable, Optional, Union

from protoguard.errors import SchemaError
from protoguard.models.schema import (
    EnumDescriptor,
    FieldDescriptor,
    FieldType,
    MessageDescriptor,
    SchemaDescriptor,
)
from protoguard.schema.loader import load_schema, schema_from_dict


class SchemaRegistry:
    """Holds every known message and enum type, keyed by full name.

    Type references inside a file are resolved the way protobuf scopes them:
    a leading dot means fully qualified, otherwise the reference is looked up
    in the declaring package, then each enclosing package, then the root.
    """

    def __init__(self, schemas: Iterable[SchemaDescriptor] = ()):
        self._messages: dict[str, MessageDescriptor] = {}
        self._enums: dict[str, EnumDescriptor] = {}
        self._packages: dict[str, str] = {}  # type full name -> declaring package
        for schema in schemas:
            self.add(schema)

    @classmethod
    def from_files(cls, *paths: Union[str, Path]) -> "SchemaRegistry":
        schemas: list[SchemaDescriptor] = []
        for path in paths:
            schemas.extend(load_schema(path))
        return cls(schemas)

    @classmethod
    def from_dicts(cls, *documents: dict[str, Any]) -> "SchemaRegistry":
        return cls(schema_from_dict(doc) for doc in documents)

    def add(self, schema: SchemaDescriptor) -> None:
        """Register every type declared in ``schema``.

        Raises:
            SchemaError: If a type name is already registered
        """
        for enum in schema.enums:
            full_name = schema.qualify(enum.name)
            self._check_unique(full_name, schema.source)
            self._enums[full_name] = enum.model_copy(update={"name": full_name})
            self._packages[full_name] = schema.package

        for message in schema.messages:
            full_name = schema.qualify(message.name)
            self._check_unique(full_name, schema.source)
            self._messages[full_name] = message.model_copy(update={"name": full_name})
            self._packages[full_name] = schema.package

    def _check_unique(self, full_name: str, source: Optional[str]) -> None:
        if full_name in self._messages or full_name in self._enums:
            raise SchemaError(f"duplicate type '{full_name}'", location=source)

    # ── Lookup ──

    @property
    def message_names(self) -> list[str]:
        """Message full names in registration order."""
        return list(self._messages)

    @property
    def enum_names(self) -> list[str]:
        return list(self._enums)

    def __contains__(self, full_name: str) -> bool:
        return full_name in self._messages or full_name in self._enums

    def message(self, full_name: str) -> MessageDescriptor:
        try:
            return self._messages[full_name]
        except KeyError:
            raise SchemaError(f"unknown message type '{full_name}'") from None

    def enum(self, full_name: str) -> EnumDescriptor:
        try:
            return self._enums[full_name]
        except KeyError:
            raise SchemaError(f"unknown enum type '{full_name}'") from None

    def resolve(self, reference: str, scope: str) -> str:
        """Resolve a type reference made from within the type ``scope``.

        Args:
            reference: Name as written in the schema
            scope: Full name of the referring message type

        Returns:
            Full name of the referenced type

        Raises:
            SchemaError: If no registered type matches
        """
        if reference.startswith("."):
            candidate = reference[1:]
            if candidate in self:
                return candidate
            raise SchemaError(f"unknown type '{reference}'", location=scope)

        package = self._packages.get(scope, "")
        parts = package.split(".") if package else []
        while True:
            candidate = ".".join(parts + [reference])
            if candidate in self:
                return candidate
            if not parts:
                break
            parts.pop()
        raise SchemaError(f"unknown type '{reference}'", location=scope)

    def field_message(self, owner: str, field: FieldDescriptor) -> MessageDescriptor:
        """Message descriptor referenced by a message-typed field."""
        location = f"{owner}.{field.name}"
        full_name = self.resolve(field.type_name or "", owner)
        if full_name not in self._messages:
            raise SchemaError(f"'{full_name}' is not a message type", location=location)
        return self._messages[full_name]

    def field_enum(self, owner: str, field: FieldDescriptor) -> EnumDescriptor:
        """Enum descriptor referenced by an enum-typed field."""
        location = f"{owner}.{field.name}"
        full_name = self.resolve(field.type_name or "", owner)
        if full_name not in self._enums:
            raise SchemaError(f"'{full_name}' is not an enum type", location=location)
        return self._enums[full_name]

    def referenced_messages(self, full_name: str) -> list[str]:
        """Message types directly referenced by fields of ``full_name``."""
        message = self.message(full_name)
        refs: list[str] = []
        for field in message.fields:
            if field.type == FieldType.MESSAGE:
                ref = self.field_message(full_name, field).name
                if ref not in refs:
                    refs.append(ref)
        return refs

    def closure(self, full_name: str) -> list[str]:
        """``full_name`` plus every message type reachable from it, depth-first."""
        seen: list[str] = []
        stack = [full_name]
        while stack:
            name = stack.pop()
            if name in seen:
                continue
            seen.append(name)
            stack.extend(reversed(self.referenced_messages(name)))
        return seen
