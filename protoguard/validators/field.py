"""Field evaluator: rules on one field, its elements, and nested messages.

Order within a field: value rules (standard, then expressions), then each
element in index order (map entries in sorted key order) with its key
rules, value rules and nested message.
"""

from typing import Any, Mapping, Optional, Sequence

from protoguard.errors import EvaluationError
from protoguard.expression.types import field_type, scalar_type
from protoguard.expression.values import is_populated, wrap_value
from protoguard.models.schema import Cardinality, FieldDescriptor, FieldType, IgnoreMode
from protoguard.rules.registry import FieldRules
from protoguard.validators.base import BaseEvaluator, EvalContext
from protoguard.validators.checks import CompiledRule, compile_rule
from protoguard.validators.collector import join_field, join_index, join_key


def _key_order(key: Any) -> tuple:
    return (type(key).__name__, key)


class FieldEvaluator(BaseEvaluator):
    """Evaluates the rules attached to one field of a message."""

    def __init__(
        self,
        owner: str,
        field: FieldDescriptor,
        registry,
        value: Sequence[CompiledRule] = (),
        items: Sequence[CompiledRule] = (),
        keys: Sequence[CompiledRule] = (),
        values: Sequence[CompiledRule] = (),
        nested: Optional[str] = None,
    ):
        self.owner = owner
        self.field = field
        self.registry = registry
        self.value_rules = tuple(value)
        self.item_rules = tuple(items)
        self.key_rules = tuple(keys)
        self.map_value_rules = tuple(values)
        self.nested = nested  # Full name of the element message type, if any

    @property
    def name(self) -> str:
        return f"{self.owner}.{self.field.name}"

    @property
    def is_trivial(self) -> bool:
        """True when nothing would ever be reported for this field."""
        return not (self.value_rules or self.item_rules or self.key_rules or self.map_value_rules or self.nested)

    def evaluate(self, value: Any, path: str, ctx: EvalContext) -> None:
        """Evaluate the field of the message mapping ``value``."""
        field = self.field
        if field.ignore == IgnoreMode.ALWAYS:
            return
        raw = value.get(field.name)
        path = join_field(path, field.name)

        # Unset fields with presence are skipped; implicit-presence fields
        # are checked as their zero value unless told to ignore it.
        if field.has_presence and raw is None:
            return
        if field.ignore == IgnoreMode.IF_UNPOPULATED:
            try:
                populated = is_populated(field, raw)
            except TypeError as e:
                ctx.collector.fault(path, "type", str(e))
                return
            if not populated:
                return

        if field.label == Cardinality.REPEATED:
            self._repeated(raw, path, ctx)
        elif field.label == Cardinality.MAP:
            self._map(raw, path, ctx)
        else:
            self._single(raw, path, ctx)

    def _wrap(self, raw: Any, path: str, ctx: EvalContext) -> tuple[bool, Any]:
        try:
            return True, wrap_value(self.field, raw, self.owner, self.registry)
        except EvaluationError as e:
            ctx.collector.fault(path, "type", str(e))
        return False, None

    def _single(self, raw: Any, path: str, ctx: EvalContext) -> None:
        ok, wrapped = self._wrap(raw, path, ctx)
        if not ok:
            return
        self._run_rules(self.value_rules, wrapped, path, ctx)
        if self.nested is not None:
            self._descend(self.nested, raw, path, ctx)

    def _repeated(self, raw: Any, path: str, ctx: EvalContext) -> None:
        items = raw if raw is not None else ()
        if not isinstance(items, (list, tuple)):
            ctx.collector.fault(path, "type", f"expected a list, got {type(items).__name__}")
            return
        ok, wrapped = self._wrap(items, path, ctx)
        if not ok:
            return
        self._run_rules(self.value_rules, wrapped, path, ctx)
        for index, item in enumerate(items):
            item_path = join_index(path, index)
            self._run_rules(self.item_rules, wrapped[index], item_path, ctx)
            if self.nested is not None:
                self._descend(self.nested, item, item_path, ctx)

    def _map(self, raw: Any, path: str, ctx: EvalContext) -> None:
        entries = raw if raw is not None else {}
        if not isinstance(entries, Mapping):
            ctx.collector.fault(path, "type", f"expected a mapping, got {type(entries).__name__}")
            return
        ok, wrapped = self._wrap(entries, path, ctx)
        if not ok:
            return
        self._run_rules(self.value_rules, wrapped, path, ctx)
        try:
            ordered = sorted(entries, key=_key_order)
        except TypeError:
            ordered = list(entries)
        for key in ordered:
            entry_path = join_key(path, key)
            self._run_rules(self.key_rules, key, entry_path, ctx, for_key=True)
            self._run_rules(self.map_value_rules, wrapped[key], entry_path, ctx)
            if self.nested is not None:
                self._descend(self.nested, entries[key], entry_path, ctx)


def build_field_evaluator(owner: str, rules: FieldRules, registry) -> FieldEvaluator:
    """Compile a field's rules into a FieldEvaluator.

    Raises:
        SchemaError: If an expression rule does not compile
    """
    field = rules.field
    nested = None
    if field.type == FieldType.MESSAGE:
        nested = registry.field_message(owner, field).name

    def compile_all(scoped, value_type, this):
        return [compile_rule(rule, value_type, this, registry) for rule in scoped]

    element = scalar_type(field.type, nested)
    return FieldEvaluator(
        owner,
        field,
        registry,
        value=compile_all(rules.value, field.type, field_type(field, nested)),
        items=compile_all(rules.items, field.type, element),
        keys=compile_all(rules.keys, field.key_type, scalar_type(field.key_type) if field.key_type else element),
        values=compile_all(rules.values, field.type, element),
        nested=nested,
    )
