"""Built-in functions available to rule expressions.

Every function is pure. Member-style functions receive their target as the
first positional argument, so ``s.startsWith(p)`` and a global call
``startsWith(s, p)`` share one implementation where both forms are allowed.
"""

import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from protoguard.config import get_settings
from protoguard.errors import EvaluationError
from protoguard.expression.types import (
    BOOL,
    BYTES,
    DOUBLE,
    DURATION,
    DYN,
    INT,
    STRING,
    TIMESTAMP,
    Type,
    list_of,
    runtime_type_name,
)
from protoguard.expression.values import EPOCH, MessageView, as_utc, values_equal
from protoguard.rules import formats

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1
UINT64_MAX = 2**64 - 1


@lru_cache(maxsize=get_settings().REGEX_CACHE_SIZE)
def compile_regex(pattern: str) -> "re.Pattern[str]":
    """Compile and cache a pattern. Raises re.error on a bad pattern."""
    return re.compile(pattern)


def _overload_error(name: str, *args: Any) -> EvaluationError:
    signature = ", ".join(runtime_type_name(a) for a in args)
    return EvaluationError(f"no matching overload for {name}({signature})")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


# ── Strings and bytes ──

def size(value: Any) -> int:
    if isinstance(value, str):
        return len(value)
    if isinstance(value, (bytes, list, tuple, dict)):
        return len(value)
    raise _overload_error("size", value)


def _require_str(name: str, *args: Any) -> None:
    if not all(isinstance(a, str) for a in args):
        raise _overload_error(name, *args)


def contains(value: Any, part: Any) -> bool:
    if isinstance(value, bytes) and isinstance(part, bytes):
        return part in value
    _require_str("contains", value, part)
    return part in value


def starts_with(value: Any, prefix: Any) -> bool:
    if isinstance(value, bytes) and isinstance(prefix, bytes):
        return value.startswith(prefix)
    _require_str("startsWith", value, prefix)
    return value.startswith(prefix)


def ends_with(value: Any, suffix: Any) -> bool:
    if isinstance(value, bytes) and isinstance(suffix, bytes):
        return value.endswith(suffix)
    _require_str("endsWith", value, suffix)
    return value.endswith(suffix)


def matches(value: Any, pattern: Any) -> bool:
    _require_str("matches", value, pattern)
    try:
        return compile_regex(pattern).search(value) is not None
    except re.error as e:
        raise EvaluationError(f"invalid regular expression {pattern!r}: {e}") from e


def lower_ascii(value: Any) -> str:
    _require_str("lowerAscii", value)
    return "".join(ch.lower() if ch.isascii() else ch for ch in value)


def upper_ascii(value: Any) -> str:
    _require_str("upperAscii", value)
    return "".join(ch.upper() if ch.isascii() else ch for ch in value)


def trim(value: Any) -> str:
    _require_str("trim", value)
    return value.strip()


def split(value: Any, separator: Any) -> tuple[str, ...]:
    _require_str("split", value, separator)
    if separator == "":
        return tuple(value)
    return tuple(value.split(separator))


def replace(value: Any, old: Any, new: Any) -> str:
    _require_str("replace", value, old, new)
    return value.replace(old, new)


def join(items: Any, separator: Any = "") -> str:
    if not isinstance(items, (list, tuple)) or not all(isinstance(i, str) for i in items):
        raise _overload_error("join", items, separator)
    _require_str("join", separator)
    return separator.join(items)


# ── Formats ──

def is_email(value: Any) -> bool:
    _require_str("isEmail", value)
    return formats.is_email(value)


def is_hostname(value: Any) -> bool:
    _require_str("isHostname", value)
    return formats.is_hostname(value)


def is_ip(value: Any, version: Any = 0) -> bool:
    if not isinstance(value, str) or not _is_int(version):
        raise _overload_error("isIp", value, version)
    return formats.is_ip(value, version)


def is_uri(value: Any) -> bool:
    _require_str("isUri", value)
    return formats.is_uri(value)


def is_uri_ref(value: Any) -> bool:
    _require_str("isUriRef", value)
    return formats.is_uri_ref(value)


def is_uuid(value: Any) -> bool:
    _require_str("isUuid", value)
    return formats.is_uuid(value)


def is_nan(value: Any) -> bool:
    if not isinstance(value, float):
        raise _overload_error("isNan", value)
    return math.isnan(value)


def is_inf(value: Any, sign: Any = 0) -> bool:
    if not isinstance(value, float) or not _is_int(sign):
        raise _overload_error("isInf", value, sign)
    if sign > 0:
        return value == math.inf
    if sign < 0:
        return value == -math.inf
    return math.isinf(value)


# ── Lists ──

def unique(items: Any) -> bool:
    if not isinstance(items, (list, tuple)):
        raise _overload_error("unique", items)
    seen: list[Any] = []
    for item in items:
        if any(values_equal(item, other) for other in seen):
            return False
        seen.append(item)
    return True


# ── Conversions ──

def check_int_range(value: int, upper: int = UINT64_MAX) -> int:
    if value < INT64_MIN or value > upper:
        raise EvaluationError("integer overflow")
    return value


def to_int(value: Any) -> int:
    if _is_int(value):
        return check_int_range(value, INT64_MAX)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise EvaluationError("double out of int range")
        return check_int_range(int(value), INT64_MAX)
    if isinstance(value, str):
        try:
            return check_int_range(int(value, 10), INT64_MAX)
        except ValueError:
            raise EvaluationError(f"cannot convert {value!r} to int") from None
    if isinstance(value, datetime):
        return int((as_utc(value) - EPOCH).total_seconds())
    raise _overload_error("int", value)


def to_uint(value: Any) -> int:
    result = to_int(value) if not (_is_int(value) and value > INT64_MAX) else value
    if result < 0 or result > UINT64_MAX:
        raise EvaluationError("uint out of range")
    return result


def to_double(value: Any) -> float:
    if _is_int(value) or isinstance(value, float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            raise EvaluationError(f"cannot convert {value!r} to double") from None
    raise _overload_error("double", value)


def format_duration(value: timedelta) -> str:
    seconds = value.total_seconds()
    if seconds == int(seconds):
        return f"{int(seconds)}s"
    return f"{seconds:.9f}".rstrip("0") + "s"


def format_timestamp(value: datetime) -> str:
    value = as_utc(value)
    text = value.strftime("%Y-%m-%dT%H:%M:%S")
    if value.microsecond:
        text += f".{value.microsecond:06d}".rstrip("0")
    return text + "Z"


def to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_int(value):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, bytes):
        try:
            return value.decode("utf-8")
        except UnicodeDecodeError:
            raise EvaluationError("bytes are not valid UTF-8") from None
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, timedelta):
        return format_duration(value)
    raise _overload_error("string", value)


def to_bytes(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    if isinstance(value, str):
        return value.encode("utf-8")
    raise _overload_error("bytes", value)


_BOOL_STRINGS = {
    "1": True, "t": True, "true": True, "TRUE": True, "True": True,
    "0": False, "f": False, "false": False, "FALSE": False, "False": False,
}


def to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value in _BOOL_STRINGS:
        return _BOOL_STRINGS[value]
    raise _overload_error("bool", value)


def dyn(value: Any) -> Any:
    return value


# ── Time ──

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")

_DURATION_UNITS = {
    "ns": 1e-9, "us": 1e-6, "µs": 1e-6, "ms": 1e-3, "s": 1.0, "m": 60.0, "h": 3600.0,
}

# Protobuf Duration limit: +/- 10,000 years in seconds
MAX_DURATION_SECONDS = 315_576_000_000


def parse_duration(text: str) -> timedelta:
    """Parse Go-style duration strings like ``1h30m``, ``-1.5s``, ``250ms``."""
    original = text
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise EvaluationError(f"invalid duration {original!r}")

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise EvaluationError(f"invalid duration {original!r}")
    if total > MAX_DURATION_SECONDS:
        raise EvaluationError(f"duration {original!r} out of range")
    return timedelta(seconds=sign * total)


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp; a trailing ``Z`` means UTC."""
    normalized = text.strip()
    if normalized.endswith(("Z", "z")):
        normalized = normalized[:-1] + "+00:00"
    try:
        value = datetime.fromisoformat(normalized)
    except ValueError:
        raise EvaluationError(f"invalid timestamp {text!r}") from None
    if value.tzinfo is None:
        raise EvaluationError(f"timestamp {text!r} needs a UTC offset")
    return as_utc(value)


def to_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        return parse_timestamp(value)
    if _is_int(value):
        return EPOCH + timedelta(seconds=value)
    raise _overload_error("timestamp", value)


def to_duration(value: Any) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, str):
        return parse_duration(value)
    raise _overload_error("duration", value)


def _zone(name: Any) -> Union[timezone, ZoneInfo]:
    if not isinstance(name, str):
        raise _overload_error("timezone", name)
    match = re.fullmatch(r"([+-])(\d{2}):(\d{2})", name)
    if match:
        offset = timedelta(hours=int(match.group(2)), minutes=int(match.group(3)))
        return timezone(-offset if match.group(1) == "-" else offset)
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        raise EvaluationError(f"unknown time zone {name!r}") from None


def _local(value: Any, name: str, tz: Optional[str]) -> datetime:
    if not isinstance(value, datetime):
        raise _overload_error(name, value)
    value = as_utc(value)
    return value.astimezone(_zone(tz)) if tz is not None else value


def get_full_year(value: Any, tz: Optional[str] = None) -> int:
    return _local(value, "getFullYear", tz).year


def get_month(value: Any, tz: Optional[str] = None) -> int:
    """Zero-based month."""
    return _local(value, "getMonth", tz).month - 1


def get_day_of_month(value: Any, tz: Optional[str] = None) -> int:
    """Zero-based day of month."""
    return _local(value, "getDayOfMonth", tz).day - 1


def get_date(value: Any, tz: Optional[str] = None) -> int:
    """One-based day of month."""
    return _local(value, "getDate", tz).day


def get_day_of_week(value: Any, tz: Optional[str] = None) -> int:
    """0 is Sunday."""
    return (_local(value, "getDayOfWeek", tz).weekday() + 1) % 7


def get_day_of_year(value: Any, tz: Optional[str] = None) -> int:
    """Zero-based day of year."""
    return _local(value, "getDayOfYear", tz).timetuple().tm_yday - 1


def _duration_part(name: str, divisor: float) -> Callable[..., int]:
    def accessor(value: Any, tz: Optional[str] = None) -> int:
        if isinstance(value, timedelta):
            return int(value / timedelta(seconds=divisor))
        local = _local(value, name, tz)
        return {
            "getHours": local.hour,
            "getMinutes": local.minute,
            "getSeconds": local.second,
            "getMilliseconds": local.microsecond // 1000,
        }[name]
    return accessor


# ── Registry ──

@dataclass(frozen=True)
class Function:
    """A built-in function.

    ``arity`` counts arguments after the receiver. Global calls to member
    functions pass the receiver as the first argument.
    """

    name: str
    impl: Callable[..., Any]
    arity: tuple[int, ...]
    result: Type
    member: bool = True
    global_: bool = False
    receivers: frozenset[str] = field(default_factory=frozenset)  # Allowed receiver kinds, empty = any


def _fn(name, impl, arity, result, member=True, global_=False, receivers=()) -> Function:
    if isinstance(arity, int):
        arity = (arity,)
    return Function(name, impl, tuple(arity), result, member, global_, frozenset(receivers))


_STRINGS = ("string",)
_STRING_BYTES = ("string", "bytes")
_TIME = ("timestamp",)
_TIME_OR_DURATION = ("timestamp", "duration")

FUNCTIONS: dict[str, Function] = {f.name: f for f in [
    _fn("size", size, 0, INT, global_=True, receivers=("string", "bytes", "list", "map")),
    _fn("contains", contains, 1, BOOL, receivers=_STRING_BYTES),
    _fn("startsWith", starts_with, 1, BOOL, receivers=_STRING_BYTES),
    _fn("endsWith", ends_with, 1, BOOL, receivers=_STRING_BYTES),
    _fn("matches", matches, 1, BOOL, global_=True, receivers=_STRINGS),
    _fn("lowerAscii", lower_ascii, 0, STRING, receivers=_STRINGS),
    _fn("upperAscii", upper_ascii, 0, STRING, receivers=_STRINGS),
    _fn("trim", trim, 0, STRING, receivers=_STRINGS),
    _fn("split", split, 1, list_of(STRING), receivers=_STRINGS),
    _fn("replace", replace, 2, STRING, receivers=_STRINGS),
    _fn("join", join, (0, 1), STRING, receivers=("list",)),
    _fn("isEmail", is_email, 0, BOOL, receivers=_STRINGS),
    _fn("isHostname", is_hostname, 0, BOOL, receivers=_STRINGS),
    _fn("isIp", is_ip, (0, 1), BOOL, receivers=_STRINGS),
    _fn("isUri", is_uri, 0, BOOL, receivers=_STRINGS),
    _fn("isUriRef", is_uri_ref, 0, BOOL, receivers=_STRINGS),
    _fn("isUuid", is_uuid, 0, BOOL, receivers=_STRINGS),
    _fn("isNan", is_nan, 0, BOOL, receivers=("double",)),
    _fn("isInf", is_inf, (0, 1), BOOL, receivers=("double",)),
    _fn("unique", unique, 0, BOOL, receivers=("list",)),
    _fn("int", to_int, 0, INT, member=False, global_=True),
    _fn("uint", to_uint, 0, INT, member=False, global_=True),
    _fn("double", to_double, 0, DOUBLE, member=False, global_=True),
    _fn("string", to_string, 0, STRING, member=False, global_=True),
    _fn("bytes", to_bytes, 0, BYTES, member=False, global_=True),
    _fn("bool", to_bool, 0, BOOL, member=False, global_=True),
    _fn("dyn", dyn, 0, DYN, member=False, global_=True),
    _fn("timestamp", to_timestamp, 0, TIMESTAMP, member=False, global_=True),
    _fn("duration", to_duration, 0, DURATION, member=False, global_=True),
    _fn("getFullYear", get_full_year, (0, 1), INT, receivers=_TIME),
    _fn("getMonth", get_month, (0, 1), INT, receivers=_TIME),
    _fn("getDayOfMonth", get_day_of_month, (0, 1), INT, receivers=_TIME),
    _fn("getDate", get_date, (0, 1), INT, receivers=_TIME),
    _fn("getDayOfWeek", get_day_of_week, (0, 1), INT, receivers=_TIME),
    _fn("getDayOfYear", get_day_of_year, (0, 1), INT, receivers=_TIME),
    _fn("getHours", _duration_part("getHours", 3600), (0, 1), INT, receivers=_TIME_OR_DURATION),
    _fn("getMinutes", _duration_part("getMinutes", 60), (0, 1), INT, receivers=_TIME_OR_DURATION),
    _fn("getSeconds", _duration_part("getSeconds", 1), (0, 1), INT, receivers=_TIME_OR_DURATION),
    _fn("getMilliseconds", _duration_part("getMilliseconds", 0.001), (0, 1), INT, receivers=_TIME_OR_DURATION),
]}


def call(function: Function, args: list[Any]) -> Any:
    """Invoke ``function`` with receiver-first ``args``, mapping stray errors to EvaluationError."""
    try:
        return function.impl(*args)
    except EvaluationError:
        raise
    except (TypeError, ValueError, OverflowError) as e:
        raise EvaluationError(f"{function.name}: {e}") from e


def describe(value: Any) -> str:
    """Short rendering of a runtime value for messages."""
    if isinstance(value, MessageView):
        return value.type_name
    if isinstance(value, (str, bytes)):
        return repr(value)
    if isinstance(value, (bool, int, float, datetime, timedelta)):
        return to_string(value)
    return repr(value)
