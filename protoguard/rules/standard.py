"""Standard rule catalogue: parameterised checks keyed by type family.

Each entry pairs a parameter parser (run once, at compile time) with a pure
check ``(value, param) -> bool`` and a message template. The registry parses
parameters and raises SchemaError on bad ones; the validator binds parsed
parameters into closures, so nothing is interpreted at validation time.

Families are named after the field type (``string``, ``int32``, ``double``,
``timestamp`` ...) plus ``repeated`` and ``map`` for collection-level rules.
Constraint ids are ``<family>.<key>``.
"""

import math
import operator
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from protoguard.errors import EvaluationError
from protoguard.expression.functions import (
    compile_regex,
    describe,
    format_duration,
    format_timestamp,
    parse_duration,
    parse_timestamp,
    unique,
)
from protoguard.expression.values import as_utc, list_contains, values_equal
from protoguard.models.schema import FLOAT_TYPES, INTEGER_RANGES, INTEGER_TYPES, FieldType
from protoguard.rules import formats

REPEATED = "repeated"
MAP = "map"

# Nested rule sets on collections; handled by the registry, not the catalogue
NESTED_KEYS = {REPEATED: ("items",), MAP: ("keys", "values")}


@dataclass(frozen=True)
class RuleContext:
    """What a parameter parser may need to know about its field."""

    family: str
    field_type: Optional[FieldType] = None
    enum_numbers: Optional[frozenset[int]] = None


@dataclass(frozen=True)
class StandardRule:
    key: str
    parse: Callable[[Any, RuleContext], Any]
    check: Callable[..., bool]
    message: str
    flag: bool = False        # Boolean switch; ``false`` disables the rule
    uses_now: bool = False    # check(value, param, now)

    def bind(self, param: Any) -> Callable[[Any, datetime], bool]:
        """Close over ``param``; the result takes ``(value, now)``."""
        check = self.check
        if self.uses_now:
            return lambda value, now: check(value, param, now)
        return lambda value, now: check(value, param)

    def render(self, param: Any) -> str:
        return self.message.format(param=render_param(param))


def render_param(param: Any) -> str:
    if isinstance(param, (tuple, list, frozenset)):
        return "[" + ", ".join(render_param(p) for p in param) + "]"
    if isinstance(param, datetime):
        return format_timestamp(param)
    if isinstance(param, timedelta):
        return format_duration(param)
    return describe(param)


# ── Parameter parsers ──
# Each raises ValueError describing what it expected.

def _type_name(value: Any) -> str:
    return type(value).__name__


def _number(param: Any, ctx: RuleContext) -> Any:
    if isinstance(param, bool) or not isinstance(param, (int, float)):
        raise ValueError(f"expects a number, got {_type_name(param)}")
    if ctx.field_type in FLOAT_TYPES:
        return float(param)
    if isinstance(param, float):
        if not param.is_integer():
            raise ValueError(f"expects an integer, got {param}")
        param = int(param)
    bounds = INTEGER_RANGES.get(ctx.field_type)
    if bounds and not bounds[0] <= param <= bounds[1]:
        raise ValueError(f"{param} is out of range for {ctx.field_type.value}")
    return param


def _list_of(item: Callable[[Any, RuleContext], Any]) -> Callable[[Any, RuleContext], tuple]:
    def parse(param: Any, ctx: RuleContext) -> tuple:
        if not isinstance(param, (list, tuple)):
            raise ValueError(f"expects a list, got {_type_name(param)}")
        return tuple(item(p, ctx) for p in param)
    return parse


def _count(param: Any, ctx: RuleContext) -> int:
    if isinstance(param, bool) or not isinstance(param, int):
        raise ValueError(f"expects a non-negative integer, got {_type_name(param)}")
    if param < 0:
        raise ValueError(f"expects a non-negative integer, got {param}")
    return param


def _flag(param: Any, ctx: RuleContext) -> bool:
    if not isinstance(param, bool):
        raise ValueError(f"expects true or false, got {_type_name(param)}")
    return param


def _text(param: Any, ctx: RuleContext) -> str:
    if not isinstance(param, str):
        raise ValueError(f"expects a string, got {_type_name(param)}")
    return param


def _regex(param: Any, ctx: RuleContext) -> str:
    param = _text(param, ctx)
    try:
        compile_regex(param)
    except re.error as e:
        raise ValueError(f"invalid regular expression {param!r}: {e}") from e
    return param


def _binary(param: Any, ctx: RuleContext) -> bytes:
    if isinstance(param, (bytes, bytearray)):
        return bytes(param)
    if isinstance(param, str):
        return param.encode("utf-8")
    raise ValueError(f"expects bytes or a string, got {_type_name(param)}")


def _timestamp(param: Any, ctx: RuleContext) -> datetime:
    if isinstance(param, datetime):
        return as_utc(param)
    if isinstance(param, str):
        try:
            return parse_timestamp(param)
        except EvaluationError as e:
            raise ValueError(str(e)) from e
    raise ValueError(f"expects an RFC 3339 timestamp, got {_type_name(param)}")


def _duration(param: Any, ctx: RuleContext) -> timedelta:
    if isinstance(param, timedelta):
        return param
    if isinstance(param, str):
        try:
            return parse_duration(param)
        except EvaluationError as e:
            raise ValueError(str(e)) from e
    if isinstance(param, (int, float)) and not isinstance(param, bool):
        return timedelta(seconds=param)
    raise ValueError(f"expects a duration such as '1.5s', got {_type_name(param)}")


def _defined_only(param: Any, ctx: RuleContext) -> frozenset[int]:
    _flag(param, ctx)
    return ctx.enum_numbers or frozenset()


# ── Checks ──

def _utf8(value: bytes) -> str:
    try:
        return value.decode("utf-8")
    except UnicodeDecodeError:
        raise EvaluationError("bytes value is not valid UTF-8") from None


def _search(value: Any, pattern: str) -> bool:
    if isinstance(value, bytes):
        value = _utf8(value)
    return compile_regex(pattern).search(value) is not None


def _when(check: Callable[[Any], bool]) -> Callable[[Any, bool], bool]:
    """Adapt a predicate to a flag rule: a disabled flag always passes."""
    return lambda value, enabled: not enabled or check(value)


def _lt_now(value: datetime, enabled: bool, now: datetime) -> bool:
    return not enabled or value < now


def _gt_now(value: datetime, enabled: bool, now: datetime) -> bool:
    return not enabled or value > now


def _within(value: datetime, window: timedelta, now: datetime) -> bool:
    return abs(value - now) <= window


def _rule(key, parse, check, message, flag=False, uses_now=False) -> StandardRule:
    return StandardRule(key, parse, check, message, flag=flag, uses_now=uses_now)


def _ordering(parse) -> list[StandardRule]:
    """const / gt / gte / lt / lte over an ordered type."""
    return [
        _rule("const", parse, values_equal, "value must equal {param}"),
        _rule("gt", parse, operator.gt, "value must be greater than {param}"),
        _rule("gte", parse, operator.ge, "value must be greater than or equal to {param}"),
        _rule("lt", parse, operator.lt, "value must be less than {param}"),
        _rule("lte", parse, operator.le, "value must be less than or equal to {param}"),
    ]


def _in_list(value: Any, param: tuple) -> bool:
    return list_contains(param, value)


def _membership(parse) -> list[StandardRule]:
    return [
        _rule("in", _list_of(parse), _in_list, "value must be in list {param}"),
        _rule("not_in", _list_of(parse), lambda v, p: not _in_list(v, p), "value must not be in list {param}"),
    ]


def _numeric(field_type: FieldType) -> list[StandardRule]:
    rules = _ordering(_number) + _membership(_number)
    if field_type in FLOAT_TYPES:
        rules.append(_rule("finite", _flag, _when(math.isfinite), "value must be finite", flag=True))
    return rules


_STRING_RULES = [
    _rule("const", _text, values_equal, "value must equal {param}"),
    _rule("len", _count, lambda v, p: len(v) == p, "value length must be {param} characters"),
    _rule("min_len", _count, lambda v, p: len(v) >= p, "value length must be at least {param} characters"),
    _rule("max_len", _count, lambda v, p: len(v) <= p, "value length must be at most {param} characters"),
    _rule("len_bytes", _count, lambda v, p: len(v.encode("utf-8")) == p, "value length must be {param} bytes"),
    _rule("min_bytes", _count, lambda v, p: len(v.encode("utf-8")) >= p, "value length must be at least {param} bytes"),
    _rule("max_bytes", _count, lambda v, p: len(v.encode("utf-8")) <= p, "value length must be at most {param} bytes"),
    _rule("pattern", _regex, _search, "value does not match regex pattern {param}"),
    _rule("prefix", _text, lambda v, p: v.startswith(p), "value does not have prefix {param}"),
    _rule("suffix", _text, lambda v, p: v.endswith(p), "value does not have suffix {param}"),
    _rule("contains", _text, lambda v, p: p in v, "value does not contain substring {param}"),
    _rule("not_contains", _text, lambda v, p: p not in v, "value contains substring {param}"),
    _rule("in", _list_of(_text), _in_list, "value must be in list {param}"),
    _rule("not_in", _list_of(_text), lambda v, p: not _in_list(v, p), "value must not be in list {param}"),
    _rule("email", _flag, _when(formats.is_email), "value must be a valid email address", flag=True),
    _rule("hostname", _flag, _when(formats.is_hostname), "value must be a valid hostname", flag=True),
    _rule("ip", _flag, _when(formats.is_ip), "value must be a valid IP address", flag=True),
    _rule("ipv4", _flag, _when(formats.is_ipv4), "value must be a valid IPv4 address", flag=True),
    _rule("ipv6", _flag, _when(formats.is_ipv6), "value must be a valid IPv6 address", flag=True),
    _rule("uri", _flag, _when(formats.is_uri), "value must be a valid URI", flag=True),
    _rule("uri_ref", _flag, _when(formats.is_uri_ref), "value must be a valid URI reference", flag=True),
    _rule("uuid", _flag, _when(formats.is_uuid), "value must be a valid UUID", flag=True),
]

_BYTES_RULES = [
    _rule("const", _binary, values_equal, "value must equal {param}"),
    _rule("len", _count, lambda v, p: len(v) == p, "value length must be {param} bytes"),
    _rule("min_len", _count, lambda v, p: len(v) >= p, "value length must be at least {param} bytes"),
    _rule("max_len", _count, lambda v, p: len(v) <= p, "value length must be at most {param} bytes"),
    _rule("pattern", _regex, _search, "value does not match regex pattern {param}"),
    _rule("prefix", _binary, lambda v, p: v.startswith(p), "value does not have prefix {param}"),
    _rule("suffix", _binary, lambda v, p: v.endswith(p), "value does not have suffix {param}"),
    _rule("contains", _binary, lambda v, p: p in v, "value does not contain {param}"),
    _rule("in", _list_of(_binary), _in_list, "value must be in list {param}"),
    _rule("not_in", _list_of(_binary), lambda v, p: not _in_list(v, p), "value must not be in list {param}"),
    _rule("ip", _flag, _when(formats.is_ip), "value must be a valid IP address", flag=True),
    _rule("ipv4", _flag, _when(formats.is_ipv4), "value must be a valid IPv4 address", flag=True),
    _rule("ipv6", _flag, _when(formats.is_ipv6), "value must be a valid IPv6 address", flag=True),
]

_BOOL_RULES = [
    _rule("const", _flag, values_equal, "value must equal {param}"),
]

_ENUM_RULES = [
    _rule("const", _number, values_equal, "value must equal {param}"),
    _rule("defined_only", _defined_only, lambda v, p: v in p, "value must be one of the defined enum values", flag=True),
] + _membership(_number)

_TIMESTAMP_RULES = _ordering(_timestamp) + [
    _rule("lt_now", _flag, _lt_now, "value must be less than now", flag=True, uses_now=True),
    _rule("gt_now", _flag, _gt_now, "value must be greater than now", flag=True, uses_now=True),
    _rule("within", _duration, _within, "value must be within {param} of now", uses_now=True),
]

_DURATION_RULES = _ordering(_duration) + _membership(_duration)

_REPEATED_RULES = [
    _rule("min_items", _count, lambda v, p: len(v) >= p, "value must contain at least {param} item(s)"),
    _rule("max_items", _count, lambda v, p: len(v) <= p, "value must contain no more than {param} item(s)"),
    _rule("unique", _flag, _when(unique), "repeated value must contain unique items", flag=True),
]

_MAP_RULES = [
    _rule("min_pairs", _count, lambda v, p: len(v) >= p, "map must be at least {param} entries"),
    _rule("max_pairs", _count, lambda v, p: len(v) <= p, "map must be at most {param} entries"),
]


def _index(rules: list[StandardRule]) -> dict[str, StandardRule]:
    return {r.key: r for r in rules}


CATALOGUE: dict[str, dict[str, StandardRule]] = {
    FieldType.STRING.value: _index(_STRING_RULES),
    FieldType.BYTES.value: _index(_BYTES_RULES),
    FieldType.BOOL.value: _index(_BOOL_RULES),
    FieldType.ENUM.value: _index(_ENUM_RULES),
    FieldType.TIMESTAMP.value: _index(_TIMESTAMP_RULES),
    FieldType.DURATION.value: _index(_DURATION_RULES),
    REPEATED: _index(_REPEATED_RULES),
    MAP: _index(_MAP_RULES),
}
for _type in sorted(INTEGER_TYPES | FLOAT_TYPES, key=lambda t: t.value):
    CATALOGUE[_type.value] = _index(_numeric(_type))


def family_for(field_type: FieldType) -> Optional[str]:
    """Catalogue family for single values of ``field_type``; None for messages."""
    if field_type == FieldType.MESSAGE:
        return None
    return field_type.value


def lookup(family: str, key: str) -> Optional[StandardRule]:
    return CATALOGUE.get(family, {}).get(key)


# ── Parameter conflicts ──

_MIN_MAX_PAIRS = (
    ("min_len", "max_len"),
    ("min_bytes", "max_bytes"),
    ("min_items", "max_items"),
    ("min_pairs", "max_pairs"),
)


def check_conflicts(params: dict[str, Any]) -> None:
    """Reject parameter sets no value could satisfy.

    ``params`` holds parsed parameters for one attachment point.

    Raises:
        ValueError: Describing the first conflict found
    """
    for low_key, high_key in _MIN_MAX_PAIRS:
        if low_key in params and high_key in params and params[low_key] > params[high_key]:
            raise ValueError(
                f"{low_key} ({params[low_key]}) is greater than {high_key} ({params[high_key]})"
            )

    if "gt" in params and "gte" in params:
        raise ValueError("gt and gte cannot both be set")
    if "lt" in params and "lte" in params:
        raise ValueError("lt and lte cannot both be set")
    if "lt_now" in params and "gt_now" in params and params["lt_now"] and params["gt_now"]:
        raise ValueError("lt_now and gt_now cannot both be set")

    low_key = "gt" if "gt" in params else "gte" if "gte" in params else None
    high_key = "lt" if "lt" in params else "lte" if "lte" in params else None
    if low_key and high_key:
        low, high = params[low_key], params[high_key]
        exclusive = low_key == "gt" or high_key == "lt"
        if low > high or (low == high and exclusive):
            raise ValueError(
                f"lower bound {low_key} ({render_param(low)}) is not below "
                f"upper bound {high_key} ({render_param(high)})"
            )


# ── Runtime value types ──

def _expect(kinds: tuple[type, ...], label: str) -> Callable[[Any], Any]:
    def coerce(value: Any) -> Any:
        if isinstance(value, bool) and bool not in kinds:
            raise EvaluationError(f"expected {label}, got bool")
        if not isinstance(value, kinds):
            raise EvaluationError(f"expected {label}, got {_type_name(value)}")
        return value
    return coerce


def _integer_in_range(field_type: FieldType) -> Callable[[Any], int]:
    low, high = INTEGER_RANGES[field_type]
    expect = _expect((int,), "an integer")

    def coerce(value: Any) -> int:
        value = expect(value)
        if not low <= value <= high:
            raise EvaluationError(f"{value} is out of range for {field_type.value}")
        return value
    return coerce


def _bytes_value(value: Any) -> bytes:
    if isinstance(value, bytearray):
        return bytes(value)
    return _expect((bytes,), "bytes")(value)


def _float_value(value: Any) -> float:
    return float(_expect((int, float), "a number")(value))


def _timestamp_value(value: Any) -> datetime:
    return as_utc(_expect((datetime,), "a timestamp")(value))


def value_coercer(field_type: FieldType) -> Callable[[Any], Any]:
    """Runtime type check for one value of ``field_type``.

    A mismatch raises EvaluationError, which the validator records as a fault.
    """
    if field_type in INTEGER_TYPES:
        return _integer_in_range(field_type)
    if field_type in FLOAT_TYPES:
        return _float_value
    if field_type == FieldType.BYTES:
        return _bytes_value
    if field_type == FieldType.TIMESTAMP:
        return _timestamp_value
    kinds = {
        FieldType.STRING: ((str,), "a string"),
        FieldType.BOOL: ((bool,), "a bool"),
        FieldType.ENUM: ((int,), "an enum number"),
        FieldType.DURATION: ((timedelta,), "a duration"),
    }
    if field_type in kinds:
        return _expect(*kinds[field_type])
    return lambda value: value
