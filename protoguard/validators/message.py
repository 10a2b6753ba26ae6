"""Message evaluator: message-level rules, then each field in declaration order."""

from typing import Any, Mapping, Sequence

from protoguard.expression.types import message_type
from protoguard.expression.values import MessageView
from protoguard.models.rules import RuleKind
from protoguard.models.schema import IgnoreMode, MessageDescriptor
from protoguard.rules.registry import MessageRules
from protoguard.validators.base import BaseEvaluator, EvalContext
from protoguard.validators.checks import CompiledRule, compile_rule
from protoguard.validators.collector import join_field
from protoguard.validators.field import FieldEvaluator, build_field_evaluator


class MessageEvaluator(BaseEvaluator):
    """Evaluates one message type.

    Message-level rules run first, in registry order: required fields, oneof
    groups, then expressions over the whole message. Presence rules report
    at the path of the field or oneof they name.
    """

    def __init__(
        self,
        descriptor: MessageDescriptor,
        registry,
        rules: Sequence[CompiledRule] = (),
        fields: Sequence[FieldEvaluator] = (),
    ):
        self.descriptor = descriptor
        self.registry = registry
        self.rules = tuple(rules)
        self.fields = tuple(fields)

    @property
    def name(self) -> str:
        return self.descriptor.name

    def evaluate(self, value: Any, path: str, ctx: EvalContext) -> None:
        if isinstance(value, MessageView):
            value = value.raw
        if not isinstance(value, Mapping):
            ctx.collector.fault(path, "type", f"expected a {self.name} mapping, got {type(value).__name__}")
            return

        view = MessageView(value, self.descriptor, self.registry)
        for compiled in self.rules:
            if compiled.rule.kind == RuleKind.PRESENCE:
                self._run_rules((compiled,), view, join_field(path, compiled.rule.field), ctx)
            else:
                self._run_rules((compiled,), view, path, ctx)

        for field in self.fields:
            field.evaluate(value, path, ctx)


def build_message_evaluator(rules: MessageRules, registry) -> MessageEvaluator:
    """Compile a message type's rules into a MessageEvaluator.

    Nested message types are referenced by name and looked up at evaluation
    time, so recursive types compile without special handling.

    Raises:
        SchemaError: If an expression rule does not compile
    """
    message = rules.message
    this = message_type(message.name)
    compiled = []
    for rule in rules.rules:
        if rule.kind == RuleKind.PRESENCE and rule.field is not None:
            target = message.field(rule.field)
            if target is not None and target.ignore == IgnoreMode.ALWAYS:
                continue
        compiled.append(compile_rule(rule, None, this, registry))

    fields = [build_field_evaluator(message.name, field_rules, registry) for field_rules in rules.fields]
    return MessageEvaluator(
        message,
        registry,
        rules=compiled,
        fields=[f for f in fields if not f.is_trivial],
    )
