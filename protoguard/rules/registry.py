"""Rule registry: extracts the ordered rules attached to each message type.

Everything that can be wrong with a rule set short of an expression's
contents is reported here, eagerly, as a SchemaError: unknown rule keys,
parameters of the wrong type, parameter sets no value could satisfy,
duplicate or reserved rule ids at one attachment point, and presence
requirements that name fields the message does not have.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Optional

import structlog

from protoguard.errors import SchemaError
from protoguard.models.rules import Rule, RuleKind, RuleScope, RuleTarget
from protoguard.models.schema import (
    Cardinality,
    FieldDescriptor,
    FieldType,
    MessageDescriptor,
    RuleSpec,
)
from protoguard.rules import standard
from protoguard.schema.registry import SchemaRegistry

logger = structlog.get_logger()

CEL_KEY = "cel"

# Constraint ids of the presence rules; expression rules may not reuse them.
RESERVED_IDS = frozenset({"required", "oneof"})


@dataclass(frozen=True)
class FieldRules:
    """Rules for one field, split by the value they apply to."""

    field: FieldDescriptor
    value: tuple[Rule, ...] = ()
    items: tuple[Rule, ...] = ()
    keys: tuple[Rule, ...] = ()
    values: tuple[Rule, ...] = ()

    @property
    def all(self) -> tuple[Rule, ...]:
        return self.value + self.items + self.keys + self.values


@dataclass(frozen=True)
class MessageRules:
    """Rules for one message type in evaluation order."""

    message: MessageDescriptor
    rules: tuple[Rule, ...]             # required, oneofs, then expressions
    fields: tuple[FieldRules, ...]

    @property
    def count(self) -> int:
        return len(self.rules) + sum(len(f.all) for f in self.fields)


class RuleRegistry:
    """Builds and caches MessageRules for the types of a SchemaRegistry."""

    def __init__(self, schemas: SchemaRegistry):
        self.schemas = schemas
        self._cache: dict[str, MessageRules] = {}

    def rules_for(self, full_name: str) -> MessageRules:
        """Ordered rules for ``full_name``.

        Raises:
            SchemaError: If the type is unknown or any attached rule is malformed
        """
        cached = self._cache.get(full_name)
        if cached is not None:
            return cached

        message = self.schemas.message(full_name)
        result = MessageRules(
            message=message,
            rules=tuple(self._message_rules(message)),
            fields=tuple(self._field_rules(message, field) for field in message.fields),
        )
        self._cache[full_name] = result
        logger.debug("rules_extracted", type_name=full_name, rules=result.count)
        return result

    # ── Message-level rules ──

    def _message_rules(self, message: MessageDescriptor) -> list[Rule]:
        owner = message.name
        rules: list[Rule] = []

        required: list[str] = []
        for name in message.required:
            if message.field(name) is None:
                raise SchemaError(f"required field '{name}' is not a field of the message", location=owner)
            if name not in required:
                required.append(name)
        for field in message.fields:
            if field.required and field.name not in required:
                required.append(field.name)
        for name in required:
            rules.append(Rule(
                id="required", target=RuleTarget.FIELD, kind=RuleKind.PRESENCE,
                owner=owner, field=name, message="value is required",
            ))

        claimed: dict[str, str] = {}
        for oneof in message.oneofs:
            location = f"{owner}.{oneof.name}"
            if not oneof.fields:
                raise SchemaError("oneof has no fields", location=location)
            for name in oneof.fields:
                field = message.field(name)
                if field is None:
                    raise SchemaError(f"oneof member '{name}' is not a field of the message", location=location)
                if field.label != Cardinality.SINGLE:
                    raise SchemaError(f"oneof member '{name}' cannot be {field.label.value}", location=location)
                if name in claimed:
                    raise SchemaError(f"field '{name}' is already in oneof '{claimed[name]}'", location=location)
                claimed[name] = oneof.name
            rules.append(Rule(
                id="oneof", target=RuleTarget.MESSAGE, kind=RuleKind.PRESENCE, owner=owner,
                field=oneof.name, params=oneof.fields,
                message=f"only one of {', '.join(oneof.fields)} may be set",
            ))
            if oneof.required:
                rules.append(Rule(
                    id="required", target=RuleTarget.MESSAGE, kind=RuleKind.PRESENCE, owner=owner,
                    field=oneof.name, params=oneof.fields,
                    message=f"exactly one of {', '.join(oneof.fields)} must be set",
                ))

        expressions = self._expressions(message.cel, owner, None, RuleScope.VALUE, target=RuleTarget.MESSAGE)
        _check_unique(expressions, owner)
        return rules + expressions

    # ── Field rules ──

    def _field_rules(self, message: MessageDescriptor, field: FieldDescriptor) -> FieldRules:
        owner = message.name
        location = f"{owner}.{field.name}"
        if field.type == FieldType.MESSAGE:
            self.schemas.field_message(owner, field)

        if field.label == Cardinality.SINGLE:
            value = self._scoped(owner, field, RuleScope.VALUE, field.type, field.rules, field.cel)
            return FieldRules(field=field, value=value)

        family = standard.REPEATED if field.label == Cardinality.REPEATED else standard.MAP
        nested_keys = standard.NESTED_KEYS[family]
        top_level = {k: v for k, v in field.rules.items() if k not in nested_keys}
        value = tuple(
            self._standard(owner, field, RuleScope.VALUE, family, top_level, field.type)
            + self._expressions(field.cel, owner, field.name, RuleScope.VALUE)
        )
        _check_unique(value, location)

        nested: dict[str, dict[str, Any]] = {}
        for key in nested_keys:
            block = field.rules.get(key, {})
            if not isinstance(block, dict):
                raise SchemaError(f"'{key}' must be a mapping of rules", location=location)
            nested[key] = block

        if family == standard.REPEATED:
            if any(r.key == "unique" for r in value) and field.type == FieldType.MESSAGE:
                raise SchemaError("unique does not apply to repeated message fields", location=location)
            items = self._nested(owner, field, RuleScope.ITEMS, field.type, nested["items"])
            return FieldRules(field=field, value=value, items=items)

        keys = self._nested(owner, field, RuleScope.KEYS, field.key_type, nested["keys"])
        values = self._nested(owner, field, RuleScope.VALUES, field.type, nested["values"])
        return FieldRules(field=field, value=value, keys=keys, values=values)

    def _nested(
        self,
        owner: str,
        field: FieldDescriptor,
        scope: RuleScope,
        value_type: FieldType,
        block: dict[str, Any],
    ) -> tuple[Rule, ...]:
        """Rules from an ``items`` / ``keys`` / ``values`` block."""
        location = f"{owner}.{field.name}.{scope.value}"
        raw_cel = block.get(CEL_KEY, [])
        if not isinstance(raw_cel, list):
            raise SchemaError(f"'{CEL_KEY}' must be a list of rules", location=location)
        try:
            cel = tuple(RuleSpec.model_validate(spec) for spec in raw_cel)
        except ValueError as e:
            raise SchemaError(f"malformed expression rule: {e}", location=location) from e
        standard_rules = {k: v for k, v in block.items() if k != CEL_KEY}
        return self._scoped(owner, field, scope, value_type, standard_rules, cel)

    def _scoped(
        self,
        owner: str,
        field: FieldDescriptor,
        scope: RuleScope,
        value_type: FieldType,
        rules: dict[str, Any],
        cel: Iterable[RuleSpec],
    ) -> tuple[Rule, ...]:
        """Standard rules then expression rules for one attachment point."""
        family = standard.family_for(value_type)
        location = _location(owner, field.name, scope)
        if family is None:
            if rules:
                raise SchemaError(
                    f"message values accept no standard rules (got {', '.join(rules)})", location=location
                )
            result = []
        else:
            result = self._standard(owner, field, scope, family, rules, value_type)
            if value_type == FieldType.ENUM and not any(r.key == "defined_only" for r in result):
                enum = self.schemas.field_enum(owner, field)
                if enum.closed:
                    result.append(self._make_standard(
                        owner, field, scope, family, "defined_only", enum.numbers,
                    ))
        result += self._expressions(cel, owner, field.name, scope)
        _check_unique(result, location)
        return tuple(result)

    def _standard(
        self,
        owner: str,
        field: FieldDescriptor,
        scope: RuleScope,
        family: str,
        rules: dict[str, Any],
        value_type: FieldType,
    ) -> list[Rule]:
        location = _location(owner, field.name, scope)
        enum_numbers = None
        if value_type == FieldType.ENUM and family != standard.REPEATED and family != standard.MAP:
            enum_numbers = self.schemas.field_enum(owner, field).numbers
        context = standard.RuleContext(family=family, field_type=value_type, enum_numbers=enum_numbers)

        parsed: dict[str, Any] = {}
        for key, raw in rules.items():
            definition = standard.lookup(family, key)
            if definition is None:
                raise SchemaError(f"unknown rule '{key}' for {family} values", location=location)
            try:
                param = definition.parse(raw, context)
            except ValueError as e:
                raise SchemaError(f"{family}.{key} {e}", location=location) from e
            if definition.flag and raw is False:
                continue
            parsed[key] = param

        try:
            standard.check_conflicts(parsed)
        except ValueError as e:
            raise SchemaError(str(e), location=location) from e

        return [self._make_standard(owner, field, scope, family, key, param) for key, param in parsed.items()]

    @staticmethod
    def _make_standard(
        owner: str,
        field: FieldDescriptor,
        scope: RuleScope,
        family: str,
        key: str,
        param: Any,
    ) -> Rule:
        definition = standard.lookup(family, key)
        return Rule(
            id=f"{family}.{key}",
            target=RuleTarget.FIELD,
            kind=RuleKind.STANDARD,
            owner=owner,
            field=field.name,
            scope=scope,
            key=key,
            family=family,
            params=param,
            message=definition.render(param),
        )

    @staticmethod
    def _expressions(
        specs: Iterable[RuleSpec],
        owner: str,
        field: Optional[str],
        scope: RuleScope,
        target: RuleTarget = RuleTarget.FIELD,
    ) -> list[Rule]:
        return [
            Rule(
                id=spec.id,
                target=target,
                kind=RuleKind.EXPRESSION,
                owner=owner,
                field=field,
                scope=scope,
                expression=spec.expression,
                message=spec.message,
            )
            for spec in specs
        ]


def _location(owner: str, field: str, scope: RuleScope) -> str:
    if scope == RuleScope.VALUE:
        return f"{owner}.{field}"
    return f"{owner}.{field}.{scope.value}"


def _check_unique(rules: Iterable[Rule], location: str) -> None:
    seen: set[str] = set()
    for rule in rules:
        if rule.kind == RuleKind.EXPRESSION and rule.id in RESERVED_IDS:
            raise SchemaError(f"rule id '{rule.id}' is reserved for presence rules", location=location)
        if rule.id in seen:
            raise SchemaError(f"duplicate rule id '{rule.id}'", location=location)
        seen.add(rule.id)
