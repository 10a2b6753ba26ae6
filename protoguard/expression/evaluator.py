"""Expression compiler and evaluator.

A parsed, type-checked tree is compiled once into nested closures; a Program
then evaluates against an activation (``{"this": ..., "now": ...}``) any
number of times. Evaluation reads its inputs and builds new values only: it
never mutates the activation or the message under validation.
"""

import math
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from protoguard.errors import EvaluationError, ExpressionError
from protoguard.expression.checker import check
from protoguard.expression.functions import FUNCTIONS, INT64_MAX, UINT64_MAX, call, check_int_range
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
from protoguard.expression.parser import parse
from protoguard.expression.types import TIMESTAMP, Type, runtime_type_name
from protoguard.expression.values import (
    MessageView,
    list_contains,
    map_contains,
    map_get,
    values_equal,
)

Activation = dict[str, Any]
Evaluate = Callable[[Activation], Any]


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _no_overload(op: str, *values: Any) -> EvaluationError:
    kinds = ", ".join(runtime_type_name(v) for v in values)
    return EvaluationError(f"no matching overload for '{op}' applied to ({kinds})")


def _as_bool(value: Any, what: str) -> bool:
    if not isinstance(value, bool):
        raise EvaluationError(f"{what} expects bool, got {runtime_type_name(value)}")
    return value


def _int_result(value: int, *operands: int) -> int:
    """Results stay within int64 unless an operand is a uint beyond int64."""
    upper = UINT64_MAX if any(o > INT64_MAX for o in operands) else INT64_MAX
    return check_int_range(value, upper)


# ── Operators ──

def _add(a: Any, b: Any) -> Any:
    if _is_int(a) and _is_int(b):
        return _int_result(a + b, a, b)
    if isinstance(a, float) and isinstance(b, float):
        return a + b
    if isinstance(a, str) and isinstance(b, str):
        return a + b
    if isinstance(a, bytes) and isinstance(b, bytes):
        return a + b
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return tuple(a) + tuple(b)
    if isinstance(a, datetime) and isinstance(b, timedelta):
        return a + b
    if isinstance(a, timedelta) and isinstance(b, datetime):
        return b + a
    if isinstance(a, timedelta) and isinstance(b, timedelta):
        return a + b
    raise _no_overload("+", a, b)


def _subtract(a: Any, b: Any) -> Any:
    if _is_int(a) and _is_int(b):
        return _int_result(a - b, a, b)
    if isinstance(a, float) and isinstance(b, float):
        return a - b
    if isinstance(a, datetime) and isinstance(b, (datetime, timedelta)):
        return a - b
    if isinstance(a, timedelta) and isinstance(b, timedelta):
        return a - b
    raise _no_overload("-", a, b)


def _multiply(a: Any, b: Any) -> Any:
    if _is_int(a) and _is_int(b):
        return _int_result(a * b, a, b)
    if isinstance(a, float) and isinstance(b, float):
        return a * b
    raise _no_overload("*", a, b)


def _truncated_div(a: int, b: int) -> int:
    quotient = abs(a) // abs(b)
    return quotient if (a >= 0) == (b >= 0) else -quotient


def _divide(a: Any, b: Any) -> Any:
    if _is_int(a) and _is_int(b):
        if b == 0:
            raise EvaluationError("division by zero")
        return _int_result(_truncated_div(a, b), a, b)
    if isinstance(a, float) and isinstance(b, float):
        if b == 0.0:
            if a == 0.0 or math.isnan(a):
                return math.nan
            return math.copysign(math.inf, a) * math.copysign(1.0, b)
        return a / b
    raise _no_overload("/", a, b)


def _modulo(a: Any, b: Any) -> Any:
    if _is_int(a) and _is_int(b):
        if b == 0:
            raise EvaluationError("modulus by zero")
        return a - b * _truncated_div(a, b)
    raise _no_overload("%", a, b)


_ORDERED_TYPES = (str, bytes, bool, datetime, timedelta)


def _compare(op: str, a: Any, b: Any) -> bool:
    comparable = (_is_number(a) and _is_number(b)) or any(
        isinstance(a, t) and isinstance(b, t) and (t is bool or not isinstance(a, bool))
        for t in _ORDERED_TYPES
    )
    if not comparable:
        raise _no_overload(op, a, b)
    if op == "<":
        return a < b
    if op == "<=":
        return a <= b
    if op == ">":
        return a > b
    return a >= b


_ARITHMETIC = {"+": _add, "-": _subtract, "*": _multiply, "/": _divide, "%": _modulo}


class Compiler:
    """Turns a syntax tree into a closure over an activation."""

    def compile(self, node: Node) -> Evaluate:
        method = getattr(self, f"_compile_{type(node).__name__.lower()}")
        return method(node)

    def _compile_literal(self, node: Literal) -> Evaluate:
        value = node.value
        return lambda act: value

    def _compile_ident(self, node: Ident) -> Evaluate:
        name = node.name

        def run(act: Activation) -> Any:
            try:
                return act[name]
            except KeyError:
                raise EvaluationError(f"unbound identifier '{name}'") from None
        return run

    def _compile_select(self, node: Select) -> Evaluate:
        operand = self.compile(node.operand)
        field = node.field

        def run(act: Activation) -> Any:
            target = operand(act)
            if isinstance(target, MessageView):
                return target.get(field)
            if isinstance(target, dict):
                return map_get(target, field)
            raise EvaluationError(f"type '{runtime_type_name(target)}' does not support field selection")
        return run

    def _compile_has(self, node: Has) -> Evaluate:
        operand = self.compile(node.operand)
        field = node.field

        def run(act: Activation) -> bool:
            target = operand(act)
            if isinstance(target, MessageView):
                return target.has(field)
            if isinstance(target, dict):
                return map_contains(target, field)
            raise EvaluationError(f"has() does not apply to type '{runtime_type_name(target)}'")
        return run

    def _compile_index(self, node: Index) -> Evaluate:
        operand = self.compile(node.operand)
        index = self.compile(node.index)

        def run(act: Activation) -> Any:
            target = operand(act)
            key = index(act)
            if isinstance(target, (list, tuple)):
                if isinstance(key, float) and key.is_integer():
                    key = int(key)
                if not _is_int(key):
                    raise EvaluationError(f"list index must be int, got {runtime_type_name(key)}")
                if key < 0 or key >= len(target):
                    raise EvaluationError(f"index {key} out of range for list of size {len(target)}")
                return target[key]
            if isinstance(target, dict):
                return map_get(target, key)
            raise EvaluationError(f"type '{runtime_type_name(target)}' does not support indexing")
        return run

    def _compile_call(self, node: Call) -> Evaluate:
        function = FUNCTIONS[node.function]
        parts = ([node.target] if node.target is not None else []) + list(node.args)
        compiled = [self.compile(part) for part in parts]

        def run(act: Activation) -> Any:
            return call(function, [arg(act) for arg in compiled])
        return run

    def _compile_unary(self, node: Unary) -> Evaluate:
        operand = self.compile(node.operand)
        if node.op == "!":
            return lambda act: not _as_bool(operand(act), "'!'")

        def negate(act: Activation) -> Any:
            value = operand(act)
            if _is_int(value):
                return check_int_range(-value, INT64_MAX)
            if isinstance(value, (float, timedelta)):
                return -value
            raise _no_overload("-", value)
        return negate

    def _compile_binary(self, node: Binary) -> Evaluate:
        left = self.compile(node.left)
        right = self.compile(node.right)
        op = node.op

        if op in ("&&", "||"):
            return self._logical(op, left, right)
        if op == "==":
            return lambda act: values_equal(left(act), right(act))
        if op == "!=":
            return lambda act: not values_equal(left(act), right(act))
        if op in ("<", "<=", ">", ">="):
            return lambda act: _compare(op, left(act), right(act))
        if op == "in":
            def contains(act: Activation) -> bool:
                item = left(act)
                container = right(act)
                if isinstance(container, (list, tuple)):
                    return list_contains(container, item)
                if isinstance(container, dict):
                    return map_contains(container, item)
                raise _no_overload("in", item, container)
            return contains

        apply = _ARITHMETIC[op]
        return lambda act: apply(left(act), right(act))

    @staticmethod
    def _logical(op: str, left: Evaluate, right: Evaluate) -> Evaluate:
        # Either side may decide the result; an error only surfaces when the
        # other side does not (false && error -> false, true || error -> true).
        deciding = op == "||"

        def run(act: Activation) -> bool:
            left_error: Optional[EvaluationError] = None
            try:
                lhs = _as_bool(left(act), f"'{op}'")
                if lhs is deciding:
                    return deciding
            except EvaluationError as e:
                left_error = e
            else:
                return _as_bool(right(act), f"'{op}'")
            try:
                rhs = _as_bool(right(act), f"'{op}'")
            except EvaluationError:
                raise left_error from None
            if rhs is deciding:
                return deciding
            raise left_error
        return run

    def _compile_conditional(self, node: Conditional) -> Evaluate:
        condition = self.compile(node.condition)
        then = self.compile(node.then)
        otherwise = self.compile(node.otherwise)
        return lambda act: then(act) if _as_bool(condition(act), "conditional") else otherwise(act)

    def _compile_listexpr(self, node: ListExpr) -> Evaluate:
        items = [self.compile(item) for item in node.items]
        return lambda act: tuple(item(act) for item in items)

    def _compile_mapexpr(self, node: MapExpr) -> Evaluate:
        entries = [(self.compile(k), self.compile(v)) for k, v in node.entries]

        def run(act: Activation) -> dict:
            result: dict = {}
            for key_fn, value_fn in entries:
                key = key_fn(act)
                if not isinstance(key, (str, int)):
                    raise EvaluationError(f"unsupported map key type {runtime_type_name(key)}")
                if map_contains(result, key):
                    raise EvaluationError(f"duplicate map key {key!r}")
                result[key] = value_fn(act)
            return result
        return run

    def _compile_comprehension(self, node: Comprehension) -> Evaluate:
        source = self.compile(node.range)
        body = self.compile(node.body)
        transform = self.compile(node.transform) if node.transform is not None else None
        var = node.var
        macro = node.macro

        def elements(act: Activation) -> list:
            target = source(act)
            if isinstance(target, (list, tuple)):
                return list(target)
            if isinstance(target, dict):
                return list(target.keys())
            raise EvaluationError(f"'{macro}' does not apply to type '{runtime_type_name(target)}'")

        def bind(act: Activation, item: Any) -> Activation:
            scope = dict(act)
            scope[var] = item
            return scope

        if macro in ("all", "exists"):
            deciding = macro == "exists"

            def quantify(act: Activation) -> bool:
                error: Optional[EvaluationError] = None
                for item in elements(act):
                    try:
                        if _as_bool(body(bind(act, item)), f"'{macro}' predicate") is deciding:
                            return deciding
                    except EvaluationError as e:
                        error = error or e
                if error is not None:
                    raise error
                return not deciding
            return quantify

        if macro == "exists_one":
            def exactly_one(act: Activation) -> bool:
                count = 0
                for item in elements(act):
                    if _as_bool(body(bind(act, item)), "'exists_one' predicate"):
                        count += 1
                return count == 1
            return exactly_one

        if macro == "filter":
            def keep(act: Activation) -> tuple:
                return tuple(
                    item for item in elements(act)
                    if _as_bool(body(bind(act, item)), "'filter' predicate")
                )
            return keep

        # map
        def project(act: Activation) -> tuple:
            results = []
            for item in elements(act):
                scope = bind(act, item)
                if transform is None:
                    results.append(body(scope))
                elif _as_bool(body(scope), "'map' filter"):
                    results.append(transform(scope))
            return tuple(results)
        return project


class Program:
    """A compiled expression, ready to evaluate many times."""

    __slots__ = ("source", "result_type", "_run")

    def __init__(self, source: str, result_type: Type, run: Evaluate):
        self.source = source
        self.result_type = result_type
        self._run = run

    def evaluate(self, activation: Activation) -> Any:
        """Evaluate against ``activation``.

        Raises:
            EvaluationError: If the expression faults on these inputs
        """
        try:
            return self._run(activation)
        except RecursionError:
            raise EvaluationError("expression recursion limit exceeded") from None

    def __repr__(self) -> str:
        return f"Program({self.source!r})"


def compile_expression(source: str, this: Type, registry=None, extra: Optional[dict[str, Type]] = None) -> Program:
    """Parse, check, and compile ``source``.

    Args:
        source: Expression text
        this: Static type of the value bound to ``this``
        registry: SchemaRegistry for field lookups on message types
        extra: Additional variable declarations

    Returns:
        A compiled Program

    Raises:
        ExpressionError: On syntax or static type errors
    """
    variables = {"this": this, "now": TIMESTAMP}
    if extra:
        variables.update(extra)
    node = parse(source)
    try:
        result_type = check(source, node, variables, registry)
        run = Compiler().compile(node)
    except RecursionError:
        raise ExpressionError("expression nested too deeply", expression=source) from None
    return Program(source, result_type, run)
