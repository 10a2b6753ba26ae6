"""Compiled rule checks.

A CompiledRule wraps one Rule as a closure taking ``(value, now)`` and
returning the violation message, or None when the value passes. Anything
that stops a rule from producing an answer raises EvaluationError.
"""

from datetime import datetime
from typing import Any, Callable, Optional

from protoguard.errors import EvaluationError, ExpressionError
from protoguard.expression import compile_expression
from protoguard.expression.types import Type, runtime_type_name
from protoguard.expression.values import MessageView
from protoguard.models.rules import Rule, RuleKind, RuleTarget
from protoguard.models.schema import FieldType
from protoguard.rules import standard

Check = Callable[[Any, datetime], Optional[str]]

_RESULT_KINDS = ("bool", "string", "dyn")


class CompiledRule:
    __slots__ = ("rule", "_check")

    def __init__(self, rule: Rule, check: Check):
        self.rule = rule
        self._check = check

    @property
    def id(self) -> str:
        return self.rule.id

    def run(self, value: Any, now: datetime) -> Optional[str]:
        """Violation message for ``value``, or None if it passes.

        Raises:
            EvaluationError: If the rule cannot be evaluated on ``value``
        """
        try:
            return self._check(value, now)
        except (TypeError, ValueError, OverflowError) as e:
            raise EvaluationError(str(e)) from e

    def __repr__(self) -> str:
        return f"CompiledRule({self.rule.id!r} on {self.rule.attachment})"


def compile_standard(rule: Rule, value_type: FieldType) -> CompiledRule:
    """Bind a standard rule's parsed parameter into a check.

    Collection-level rules (``repeated.*``, ``map.*``) see the whole
    collection; everything else sees one value, type-checked first.
    """
    definition = standard.lookup(rule.family, rule.key)
    check = definition.bind(rule.params)
    message = rule.message

    if rule.family in (standard.REPEATED, standard.MAP):
        coerce = _collection(rule.family)
    else:
        coerce = standard.value_coercer(value_type)

    def run(value: Any, now: datetime) -> Optional[str]:
        return None if check(coerce(value), now) else message
    return CompiledRule(rule, run)


def _collection(family: str) -> Callable[[Any], Any]:
    def coerce(value: Any) -> Any:
        if family == standard.MAP and not isinstance(value, dict):
            raise EvaluationError(f"expected a map, got {runtime_type_name(value)}")
        if family == standard.REPEATED and not isinstance(value, (list, tuple)):
            raise EvaluationError(f"expected a list, got {runtime_type_name(value)}")
        return value
    return coerce


def compile_custom(rule: Rule, this: Type, registry) -> CompiledRule:
    """Compile an expression rule against the static type of ``this``.

    Raises:
        ExpressionError: If the expression does not parse or type-check, or
            cannot yield a bool or string
    """
    location = rule.attachment
    try:
        program = compile_expression(rule.expression or "", this, registry)
    except ExpressionError as e:
        raise ExpressionError(
            e.message, expression=e.expression, position=e.position, location=f"{location} [{rule.id}]"
        ) from e
    if program.result_type.kind not in _RESULT_KINDS:
        raise ExpressionError(
            f"expression must yield bool or string, not {program.result_type}",
            expression=program.source,
            location=f"{location} [{rule.id}]",
        )
    default_message = rule.message or f"expression '{rule.id}' failed"

    def run(value: Any, now: datetime) -> Optional[str]:
        outcome = program.evaluate({"this": value, "now": now})
        if isinstance(outcome, bool):
            return None if outcome else default_message
        if isinstance(outcome, str):
            return outcome or None
        raise EvaluationError(f"expression must yield bool or string, got {runtime_type_name(outcome)}")
    return CompiledRule(rule, run)


def compile_presence(rule: Rule) -> CompiledRule:
    """Presence checks over a MessageView: required fields and oneof groups."""
    message = rule.message

    if rule.target == RuleTarget.FIELD:
        field = rule.field

        def required(view: MessageView, now: datetime) -> Optional[str]:
            return None if view.has(field) else message
        return CompiledRule(rule, required)

    members = tuple(rule.params or ())
    if rule.id == "oneof":
        def at_most_one(view: MessageView, now: datetime) -> Optional[str]:
            return message if sum(1 for m in members if view.has(m)) > 1 else None
        return CompiledRule(rule, at_most_one)

    def at_least_one(view: MessageView, now: datetime) -> Optional[str]:
        return None if any(view.has(m) for m in members) else message
    return CompiledRule(rule, at_least_one)


def compile_rule(rule: Rule, value_type: Optional[FieldType], this: Type, registry) -> CompiledRule:
    """Compile any rule kind into a CompiledRule.

    Args:
        rule: Rule from the registry
        value_type: Field type of the checked value (None for message rules)
        this: Static expression type of the checked value
        registry: SchemaRegistry for message field lookups
    """
    if rule.kind == RuleKind.PRESENCE:
        return compile_presence(rule)
    if rule.kind == RuleKind.STANDARD:
        return compile_standard(rule, value_type)
    return compile_custom(rule, this, registry)
