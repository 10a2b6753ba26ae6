"""Static checker: catches unbound names, unknown functions and fields, and
operator type mismatches before any instance is validated.

Types flow bottom-up. Anything the checker cannot know statically is ``dyn``
and is checked again at evaluation time.
"""

import re
from typing import Optional

from protoguard.errors import ExpressionError
from protoguard.expression.functions import FUNCTIONS, compile_regex
from protoguard.expression.nodes import (
    Binary,
    Call,
    Comprehension,
    Conditional,
    Has,
    Ident,
    Index,
    ListExpr,
    Literal,
    MapExpr,
    Node,
    Select,
    Unary,
)
from protoguard.expression.types import (
    BOOL,
    BYTES,
    DOUBLE,
    DURATION,
    DYN,
    INT,
    NULL,
    NUMERIC_KINDS,
    STRING,
    TIMESTAMP,
    Type,
    field_type,
    list_of,
    map_of,
    unify,
)
from protoguard.models.schema import FieldType

_LITERAL_TYPES = {
    "int": INT, "uint": INT, "double": DOUBLE, "string": STRING,
    "bytes": BYTES, "bool": BOOL, "null": NULL,
}

# (operator, left kind, right kind) -> result
_ARITHMETIC: dict[tuple[str, str, str], Type] = {}
for _op in ("+", "-", "*", "/", "%"):
    _ARITHMETIC[(_op, "int", "int")] = INT
for _op in ("+", "-", "*", "/"):
    _ARITHMETIC[(_op, "double", "double")] = DOUBLE
_ARITHMETIC.update({
    ("+", "string", "string"): STRING,
    ("+", "bytes", "bytes"): BYTES,
    ("+", "timestamp", "duration"): TIMESTAMP,
    ("+", "duration", "timestamp"): TIMESTAMP,
    ("+", "duration", "duration"): DURATION,
    ("-", "timestamp", "timestamp"): DURATION,
    ("-", "timestamp", "duration"): TIMESTAMP,
    ("-", "duration", "duration"): DURATION,
})

_ORDERED_KINDS = frozenset({"string", "bytes", "bool", "timestamp", "duration"})


class Checker:
    def __init__(self, source: str, variables: dict[str, Type], registry=None):
        self.source = source
        self.registry = registry
        self.scopes: list[dict[str, Type]] = [dict(variables)]

    def _error(self, message: str, node: Node) -> ExpressionError:
        return ExpressionError(message, expression=self.source, position=node.pos)

    def _lookup(self, name: str) -> Optional[Type]:
        for scope in reversed(self.scopes):
            if name in scope:
                return scope[name]
        return None

    def check(self, node: Node) -> Type:
        method = getattr(self, f"_check_{type(node).__name__.lower()}")
        return method(node)

    def _expect(self, node: Node, kinds: tuple[str, ...], what: str) -> Type:
        found = self.check(node)
        if not found.is_dyn and found.kind not in kinds:
            raise self._error(f"{what} expects {' or '.join(kinds)}, found {found}", node)
        return found

    # ── Leaves ──

    def _check_literal(self, node: Literal) -> Type:
        if node.kind == "int" and not (-(2**63) <= node.value <= 2**63 - 1):
            raise self._error("int literal out of range", node)
        return _LITERAL_TYPES[node.kind]

    def _check_ident(self, node: Ident) -> Type:
        found = self._lookup(node.name)
        if found is None:
            raise self._error(f"undeclared reference to '{node.name}'", node)
        return found

    # ── Field access ──

    def _message_field(self, operand: Type, name: str, node: Node) -> Type:
        message = self.registry.message(operand.message)
        field = message.field(name)
        if field is None:
            raise self._error(f"undefined field '{name}' on {operand.message}", node)
        referenced = None
        if field.type == FieldType.MESSAGE:
            referenced = self.registry.field_message(message.name, field).name
        return field_type(field, referenced)

    def _check_select(self, node: Select) -> Type:
        operand = self.check(node.operand)
        if operand.kind == "message" and self.registry is not None:
            return self._message_field(operand, node.field, node)
        if operand.kind == "map":
            return operand.elem or DYN
        if operand.is_dyn or operand.kind == "message":
            return DYN
        raise self._error(f"type '{operand}' does not support field selection", node)

    def _check_has(self, node: Has) -> Type:
        operand = self.check(node.operand)
        if operand.kind == "message" and self.registry is not None:
            self._message_field(operand, node.field, node)
        elif not (operand.is_dyn or operand.kind in ("map", "message")):
            raise self._error(f"has() does not apply to type '{operand}'", node)
        return BOOL

    def _check_index(self, node: Index) -> Type:
        operand = self.check(node.operand)
        index = self.check(node.index)
        if operand.kind == "list":
            if not index.is_dyn and index.kind != "int":
                raise self._error(f"list index must be int, found {index}", node)
            return operand.elem or DYN
        if operand.kind == "map":
            return operand.elem or DYN
        if operand.is_dyn:
            return DYN
        raise self._error(f"type '{operand}' does not support indexing", node)

    # ── Calls ──

    def _check_call(self, node: Call) -> Type:
        function = FUNCTIONS.get(node.function)
        if function is None:
            raise self._error(f"undeclared reference to function '{node.function}'", node)

        if node.target is not None:
            if not function.member:
                raise self._error(f"'{node.function}' cannot be called as a method", node)
            receiver = self.check(node.target)
            receiver_node = node.target
            args = node.args
        else:
            if not function.global_:
                raise self._error(f"'{node.function}' must be called as a method", node)
            if not node.args:
                raise self._error(f"'{node.function}' needs an argument", node)
            receiver = self.check(node.args[0])
            receiver_node = node.args[0]
            args = node.args[1:]

        if len(args) not in function.arity:
            expected = " or ".join(str(a) for a in function.arity)
            raise self._error(f"'{node.function}' takes {expected} argument(s), got {len(args)}", node)
        if function.receivers and not receiver.is_dyn and receiver.kind not in function.receivers:
            raise self._error(f"'{node.function}' does not apply to type '{receiver}'", receiver_node)
        for arg in args:
            self.check(arg)

        if node.function == "matches" and isinstance(args[0], Literal) and args[0].kind == "string":
            try:
                compile_regex(args[0].value)
            except re.error as e:
                raise self._error(f"invalid regular expression: {e}", args[0]) from e

        return function.result

    # ── Operators ──

    def _check_unary(self, node: Unary) -> Type:
        if node.op == "!":
            self._expect(node.operand, ("bool",), "'!'")
            return BOOL
        operand = self._expect(node.operand, ("int", "double", "duration"), "unary '-'")
        return operand

    def _check_binary(self, node: Binary) -> Type:
        if node.op in ("&&", "||"):
            self._expect(node.left, ("bool",), f"'{node.op}'")
            self._expect(node.right, ("bool",), f"'{node.op}'")
            return BOOL

        left = self.check(node.left)
        right = self.check(node.right)

        if node.op in ("==", "!="):
            return BOOL

        if node.op == "in":
            if not (right.is_dyn or right.kind in ("list", "map")):
                raise self._error(f"'in' expects a list or map on the right, found {right}", node)
            return BOOL

        if left.is_dyn or right.is_dyn:
            return BOOL if node.op in ("<", "<=", ">", ">=") else DYN

        if node.op in ("<", "<=", ">", ">="):
            if left.kind in NUMERIC_KINDS and right.kind in NUMERIC_KINDS:
                return BOOL
            if left.kind == right.kind and left.kind in _ORDERED_KINDS:
                return BOOL
            raise self._error(f"no matching overload for '{node.op}' on {left} and {right}", node)

        if node.op == "+" and left.kind == "list" and right.kind == "list":
            return list_of(unify(left.elem or DYN, right.elem or DYN))
        result = _ARITHMETIC.get((node.op, left.kind, right.kind))
        if result is None:
            raise self._error(f"no matching overload for '{node.op}' on {left} and {right}", node)
        return result

    def _check_conditional(self, node: Conditional) -> Type:
        self._expect(node.condition, ("bool",), "conditional")
        return unify(self.check(node.then), self.check(node.otherwise))

    # ── Aggregates ──

    def _check_listexpr(self, node: ListExpr) -> Type:
        elem: Optional[Type] = None
        for item in node.items:
            item_type = self.check(item)
            elem = item_type if elem is None else unify(elem, item_type)
        return list_of(elem or DYN)

    def _check_mapexpr(self, node: MapExpr) -> Type:
        key: Optional[Type] = None
        value: Optional[Type] = None
        for key_node, value_node in node.entries:
            key_type = self.check(key_node)
            if not key_type.is_dyn and key_type.kind not in ("int", "string", "bool"):
                raise self._error(f"unsupported map key type {key_type}", key_node)
            value_type = self.check(value_node)
            key = key_type if key is None else unify(key, key_type)
            value = value_type if value is None else unify(value, value_type)
        return map_of(key or DYN, value or DYN)

    def _check_comprehension(self, node: Comprehension) -> Type:
        range_type = self.check(node.range)
        if range_type.kind == "list":
            var_type = range_type.elem or DYN
        elif range_type.kind == "map":
            var_type = range_type.key or DYN
        elif range_type.is_dyn:
            var_type = DYN
        else:
            raise self._error(f"'{node.macro}' expects a list or map, found {range_type}", node)

        if node.var in ("this", "now"):
            raise self._error(f"cannot rebind '{node.var}'", node)

        self.scopes.append({node.var: var_type})
        try:
            if node.macro in ("all", "exists", "exists_one", "filter"):
                self._expect(node.body, ("bool",), f"'{node.macro}' predicate")
                if node.macro == "filter":
                    return list_of(var_type)
                return BOOL
            # map
            if node.transform is not None:
                self._expect(node.body, ("bool",), "'map' filter")
                return list_of(self.check(node.transform))
            return list_of(self.check(node.body))
        finally:
            self.scopes.pop()


def check(source: str, node: Node, variables: dict[str, Type], registry=None) -> Type:
    """Type-check ``node``; returns its static type.

    Raises:
        ExpressionError: On the first static error found
    """
    return Checker(source, variables, registry).check(node)
