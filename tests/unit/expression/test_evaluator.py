"""Evaluation semantics of compiled expressions."""

import math
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from protoguard.errors import EvaluationError
from protoguard.expression import MessageView, compile_expression, types

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def evaluate(source: str, this: Any = None, this_type: types.Type = types.DYN, registry=None) -> Any:
    program = compile_expression(source, this_type, registry)
    return program.evaluate({"this": this, "now": NOW})


class TestArithmetic:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("1 + 2 * 3", 7),
            ("(1 + 2) * 3", 9),
            ("7 / 2", 3),
            ("-7 / 2", -3),
            ("-7 % 3", -1),
            ("7 % -3", 1),
            ("1.5 + 2.0", 3.5),
            ("'ab' + 'cd'", "abcd"),
            ("b'a' + b'b'", b"ab"),
            ("-9223372036854775808", -(2**63)),
            ("18446744073709551615u", 2**64 - 1),
        ],
    )
    def test_values(self, source: str, expected: Any) -> None:
        assert evaluate(source) == expected

    @pytest.mark.parametrize(
        "source",
        [
            "9223372036854775807 + 1",
            "-9223372036854775808 - 1",
            "-9223372036854775808 / -1",
            "4611686018427387904 * 2",
            "18446744073709551615u + 1u",
        ],
    )
    def test_integer_overflow(self, source: str) -> None:
        with pytest.raises(EvaluationError, match="overflow"):
            evaluate(source)

    def test_negating_int64_min_overflows(self) -> None:
        with pytest.raises(EvaluationError, match="overflow"):
            evaluate("-this", this=-(2**63))

    @pytest.mark.parametrize("source", ["1 / 0", "1 % 0"])
    def test_integer_division_by_zero(self, source: str) -> None:
        with pytest.raises(EvaluationError, match="by zero"):
            evaluate(source)

    def test_float_division_by_zero(self) -> None:
        assert evaluate("1.0 / 0.0") == math.inf
        assert evaluate("-1.0 / 0.0") == -math.inf
        assert math.isnan(evaluate("0.0 / 0.0"))

    def test_mixed_int_and_double_at_runtime(self) -> None:
        with pytest.raises(EvaluationError, match="no matching overload"):
            evaluate("dyn(1) + 1.5")

    def test_dynamic_type_mismatch(self) -> None:
        with pytest.raises(EvaluationError, match="no matching overload"):
            evaluate("this + 1", this="a")


class TestLogic:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("false && 1 / 0 == 1", False),
            ("1 / 0 == 1 && false", False),
            ("true || 1 / 0 == 1", True),
            ("1 / 0 == 1 || true", True),
            ("true && true", True),
            ("false || false", False),
        ],
    )
    def test_errors_absorbed_by_deciding_side(self, source: str, expected: bool) -> None:
        assert evaluate(source) is expected

    @pytest.mark.parametrize("source", ["1 / 0 == 1 && true", "false || 1 / 0 == 1"])
    def test_errors_surface_otherwise(self, source: str) -> None:
        with pytest.raises(EvaluationError, match="division by zero"):
            evaluate(source)

    def test_non_bool_operand_at_runtime(self) -> None:
        with pytest.raises(EvaluationError, match="expects bool"):
            evaluate("this && true", this=1)

    def test_conditional_is_lazy(self) -> None:
        assert evaluate("true ? 1 : 1 / 0") == 1
        assert evaluate("this > 0 ? 'pos' : 'neg'", this=-3) == "neg"


class TestEquality:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("1 == 1.0", True),
            ("true != 1", True),
            ("'a' == 'a'", True),
            ("b'a' == 'a'", False),
            ("[1, 2] == [1, 2]", True),
            ("[1, 2] == [2, 1]", False),
            ("{'a': 1} == {'a': 1.0}", True),
            ("null == null", True),
        ],
    )
    def test_equality(self, source: str, expected: bool) -> None:
        assert evaluate(source) is expected

    @pytest.mark.parametrize(
        "source, expected",
        [
            ("2 in [1, 2]", True),
            ("3 in [1, 2]", False),
            ("1 in [1.0]", True),
            ("true in [1]", False),
            ("'a' in {'a': 1}", True),
        ],
    )
    def test_membership(self, source: str, expected: bool) -> None:
        assert evaluate(source) is expected

    def test_ordering(self) -> None:
        assert evaluate("1 < 1.5") is True
        assert evaluate("'a' < 'b'") is True
        assert evaluate("false < true") is True
        with pytest.raises(EvaluationError):
            evaluate("this < 1", this=True)


class TestCollections:
    def test_index(self) -> None:
        assert evaluate("[10, 20][1]") == 20
        assert evaluate("{'a': 1}['a']") == 1
        assert evaluate("this.a", this={"a": 5}) == 5

    def test_index_out_of_range(self) -> None:
        with pytest.raises(EvaluationError, match="out of range"):
            evaluate("[1][3]")

    def test_missing_map_key(self) -> None:
        with pytest.raises(EvaluationError, match="no such key"):
            evaluate("{'a': 1}['b']")

    def test_duplicate_map_literal_key(self) -> None:
        with pytest.raises(EvaluationError, match="duplicate map key"):
            evaluate("{'a': 1, 'a': 2}")

    def test_has_on_map(self) -> None:
        assert evaluate("has(this.a)", this={"a": 1}) is True
        assert evaluate("has(this.b)", this={"a": 1}) is False


class TestMacros:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("[1, 2, 3].all(x, x > 0)", True),
            ("[1, 2, 3].all(x, x > 1)", False),
            ("[1, 2, 3].exists(x, x > 2)", True),
            ("[1, 2, 3].exists_one(x, x > 1)", False),
            ("[1, 2, 3].exists_one(x, x > 2)", True),
            ("[].all(x, x > 0)", True),
            ("[].exists(x, x > 0)", False),
        ],
    )
    def test_quantifiers(self, source: str, expected: bool) -> None:
        assert evaluate(source) is expected

    def test_projection(self) -> None:
        assert evaluate("[1, 2, 3].map(x, x * 2)") == (2, 4, 6)
        assert evaluate("[1, 2, 3].filter(x, x > 1)") == (2, 3)
        assert evaluate("[1, 2, 3].map(x, x > 1, x * 10)") == (20, 30)

    def test_map_iterates_keys(self) -> None:
        assert evaluate("{'a': 1, 'bb': 2}.all(k, k.size() <= 2)") is True
        assert evaluate("{'a': 1}.exists(k, k == 'a')") is True

    def test_error_absorbed_when_an_element_decides(self) -> None:
        assert evaluate("[0, -1].all(x, 1 / x > 0)") is False
        assert evaluate("[0, 1].exists(x, 1 / x > 0)") is True

    def test_error_raised_when_nothing_decides(self) -> None:
        with pytest.raises(EvaluationError, match="division by zero"):
            evaluate("[0, 1].all(x, 1 / x > 0)")

    def test_nested_comprehensions(self) -> None:
        assert evaluate("[[1], [2, 3]].all(l, l.all(x, x > 0))") is True


class TestStrings:
    @pytest.mark.parametrize(
        "source, expected",
        [
            ("'hello'.startsWith('he')", True),
            ("'hello'.endsWith('lo')", True),
            ("'hello'.contains('ell')", True),
            ("'hello'.matches('l+')", True),
            ("'hello'.matches('^l')", False),
            ("'ABC'.lowerAscii()", "abc"),
            ("'  x '.trim()", "x"),
            ("'a,b'.split(',')", ("a", "b")),
            ("['a', 'b'].join('-')", "a-b"),
            ("'aXa'.replace('a', 'b')", "bXb"),
            ("size('héllo')", 5),
            ("size(b'\\xff\\x00')", 2),
            ("'a@b.co'.isEmail()", True),
            ("'2001:db8::1'.isIp(6)", True),
            ("string(12)", "12"),
            ("int('42')", 42),
            ("double(1)", 1.0),
            ("bool('true')", True),
        ],
    )
    def test_functions(self, source: str, expected: Any) -> None:
        assert evaluate(source) == expected

    def test_bad_regex_at_runtime(self) -> None:
        with pytest.raises(EvaluationError, match="invalid regular expression"):
            evaluate("'abc'.matches(this)", this="[")

    @pytest.mark.parametrize("source", ["int('x')", "uint(-1)", "int(1e300)", "bool('maybe')"])
    def test_bad_conversions(self, source: str) -> None:
        with pytest.raises(EvaluationError):
            evaluate(source)


class TestTime:
    def test_now_binding(self) -> None:
        assert evaluate("now") == NOW
        assert evaluate("timestamp('2024-01-01T00:00:00Z') < now") is True

    def test_arithmetic(self) -> None:
        assert evaluate("now - duration('1h')") == NOW - timedelta(hours=1)
        assert evaluate("now - timestamp('2024-06-01T11:00:00Z')") == timedelta(hours=1)
        assert evaluate("duration('1h') + duration('30m') == duration('90m')") is True

    def test_accessors_in_utc(self) -> None:
        assert evaluate("timestamp('2024-03-15T10:20:30Z').getFullYear()") == 2024
        assert evaluate("timestamp('2024-03-15T10:20:30Z').getMonth()") == 2
        assert evaluate("timestamp('2024-03-15T10:20:30Z').getDate()") == 15
        assert evaluate("timestamp('2024-03-15T10:20:30Z').getDayOfMonth()") == 14
        assert evaluate("timestamp('2024-03-15T10:20:30Z').getHours()") == 10

    def test_accessors_with_offset(self) -> None:
        # 2024-01-01 is a Monday; 23:30Z is already Tuesday at +02:00
        source = "timestamp('2024-01-01T23:30:00Z')"
        assert evaluate(f"{source}.getDayOfWeek()") == 1
        assert evaluate(f"{source}.getDayOfWeek('+02:00')") == 2
        assert evaluate(f"{source}.getHours('-05:00')") == 18

    def test_duration_accessors(self) -> None:
        assert evaluate("duration('1h30m').getMinutes()") == 90
        assert evaluate("duration('1.5s').getMilliseconds()") == 1500

    def test_string_rendering(self) -> None:
        assert evaluate("string(duration('90s'))") == "90s"
        assert evaluate("string(timestamp('2024-01-01T00:00:00Z'))") == "2024-01-01T00:00:00Z"

    @pytest.mark.parametrize(
        "source",
        ["timestamp('yesterday')", "timestamp('2024-01-01T00:00:00')", "duration('1 hour')",
         "now.getHours('Nowhere/Special')"],
    )
    def test_bad_time_values(self, source: str) -> None:
        with pytest.raises(EvaluationError):
            evaluate(source)


class TestMessageView:
    @pytest.fixture
    def user_view(self, acme_registry):
        descriptor = acme_registry.message("acme.User")
        return MessageView({"email": "a@b.co", "nickname": ""}, descriptor, acme_registry)

    def test_unset_fields_read_as_zero(self, acme_registry, user_view) -> None:
        this = types.message_type("acme.User")
        assert evaluate("this.age", user_view, this, acme_registry) == 0
        assert evaluate("this.address.city", user_view, this, acme_registry) == ""
        assert evaluate("this.items.size()", user_view, this, acme_registry) == 0

    def test_has_follows_presence(self, acme_registry, user_view) -> None:
        this = types.message_type("acme.User")
        assert evaluate("has(this.email)", user_view, this, acme_registry) is True
        assert evaluate("has(this.age)", user_view, this, acme_registry) is False
        # Optional fields are present once set, even to the zero value
        assert evaluate("has(this.nickname)", user_view, this, acme_registry) is True
        assert evaluate("has(this.address)", user_view, this, acme_registry) is False

    def test_view_is_read_only(self, acme_registry, user_view) -> None:
        with pytest.raises(AttributeError):
            user_view.extra = 1
        assert dict(user_view.raw) == {"email": "a@b.co", "nickname": ""}

    def test_program_is_reusable(self, acme_registry) -> None:
        program = compile_expression(
            "this.email.endsWith('.co')", types.message_type("acme.User"), acme_registry
        )
        descriptor = acme_registry.message("acme.User")
        first = MessageView({"email": "a@b.co"}, descriptor, acme_registry)
        second = MessageView({"email": "a@b.org"}, descriptor, acme_registry)
        assert program.evaluate({"this": first, "now": NOW}) is True
        assert program.evaluate({"this": second, "now": NOW}) is False
        assert program.evaluate({"this": first, "now": NOW}) is True
