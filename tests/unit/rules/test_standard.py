"""Standard rule catalogue: parameter parsing, checks, and conflicts."""

import re
from datetime import datetime, timedelta, timezone

import pytest

from protoguard.errors import EvaluationError
from protoguard.models.schema import FieldType
from protoguard.rules import standard
from protoguard.rules.standard import RuleContext

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def bound(family: str, key: str, raw, field_type: FieldType = None, enum_numbers=None):
    """Parse ``raw`` for ``family.key`` and return the bound check and parsed param."""
    rule = standard.lookup(family, key)
    context = RuleContext(
        family=family,
        field_type=field_type or FieldType(family),
        enum_numbers=enum_numbers,
    )
    param = rule.parse(raw, context)
    return rule.bind(param), param


class TestCatalogue:
    def test_every_scalar_family_is_present(self) -> None:
        for field_type in FieldType:
            if field_type == FieldType.MESSAGE:
                assert standard.family_for(field_type) is None
            else:
                assert standard.family_for(field_type) in standard.CATALOGUE

    def test_collection_families(self) -> None:
        assert set(standard.CATALOGUE["repeated"]) == {"min_items", "max_items", "unique"}
        assert set(standard.CATALOGUE["map"]) == {"min_pairs", "max_pairs"}

    def test_lookup_unknown(self) -> None:
        assert standard.lookup("string", "gte") is None
        assert standard.lookup("nope", "const") is None

    def test_float_families_have_finite(self) -> None:
        assert standard.lookup("double", "finite") is not None
        assert standard.lookup("int32", "finite") is None


class TestStringRules:
    @pytest.mark.parametrize(
        "key, param, good, bad",
        [
            ("min_len", 3, "abc", "ab"),
            ("max_len", 2, "ab", "abc"),
            ("len", 2, "éé", "e"),
            ("max_bytes", 2, "ab", "é!"),
            ("pattern", "^[a-z]+$", "abc", "ab1"),
            ("prefix", "ab", "abc", "cab"),
            ("suffix", "bc", "abc", "bca"),
            ("contains", "b", "abc", "ac"),
            ("not_contains", "b", "ac", "abc"),
            ("in", ["a", "b"], "a", "c"),
            ("not_in", ["a", "b"], "c", "a"),
            ("const", "x", "x", "y"),
            ("email", True, "a@b.co", "a@"),
            ("uuid", True, "123e4567-e89b-12d3-a456-426614174000", "x"),
        ],
    )
    def test_check(self, key: str, param, good: str, bad: str) -> None:
        check, _ = bound("string", key, param)
        assert check(good, NOW)
        assert not check(bad, NOW)

    def test_len_counts_characters_not_bytes(self) -> None:
        check, _ = bound("string", "max_len", 3)
        assert check("héé", NOW)

    def test_disabled_flag_passes(self) -> None:
        check, _ = bound("string", "email", False)
        assert check("not an email", NOW)

    @pytest.mark.parametrize(
        "key, raw",
        [("min_len", -1), ("min_len", "3"), ("min_len", True), ("pattern", "(unclosed"), ("email", "yes"),
         ("in", "a")],
    )
    def test_bad_params(self, key: str, raw) -> None:
        with pytest.raises(ValueError):
            bound("string", key, raw)


class TestNumericRules:
    def test_ordering(self) -> None:
        gt, _ = bound("int32", "gt", 0)
        lte, _ = bound("int32", "lte", 10)
        assert gt(1, NOW) and not gt(0, NOW)
        assert lte(10, NOW) and not lte(11, NOW)

    def test_int_param_range(self) -> None:
        with pytest.raises(ValueError, match="out of range for int32"):
            bound("int32", "lte", 2**31)
        with pytest.raises(ValueError, match="out of range for uint32"):
            bound("uint32", "gte", -1)

    def test_integral_float_param_is_accepted(self) -> None:
        _, param = bound("int64", "gte", 5.0)
        assert param == 5 and isinstance(param, int)
        with pytest.raises(ValueError, match="expects an integer"):
            bound("int64", "gte", 5.5)

    def test_float_family_converts_params(self) -> None:
        _, param = bound("double", "lt", 1)
        assert isinstance(param, float)

    def test_bool_is_not_a_number(self) -> None:
        with pytest.raises(ValueError, match="expects a number"):
            bound("int32", "const", True)

    def test_finite(self) -> None:
        check, _ = bound("double", "finite", True)
        assert check(1.5, NOW)
        assert not check(float("inf"), NOW)
        assert not check(float("nan"), NOW)

    def test_membership_with_numeric_equality(self) -> None:
        check, _ = bound("double", "in", [1, 2])
        assert check(1.0, NOW)
        assert not check(3.0, NOW)


class TestTimeRules:
    def test_lt_now_and_gt_now(self) -> None:
        lt_now, _ = bound("timestamp", "lt_now", True)
        gt_now, _ = bound("timestamp", "gt_now", True)
        past = NOW - timedelta(days=1)
        future = NOW + timedelta(days=1)
        assert lt_now(past, NOW) and not lt_now(future, NOW)
        assert gt_now(future, NOW) and not gt_now(past, NOW)
        assert not lt_now(NOW, NOW)

    def test_within(self) -> None:
        within, param = bound("timestamp", "within", "1h")
        assert param == timedelta(hours=1)
        assert within(NOW - timedelta(minutes=30), NOW)
        assert not within(NOW + timedelta(hours=2), NOW)

    def test_timestamp_param(self) -> None:
        gt, param = bound("timestamp", "gt", "2024-01-01T00:00:00Z")
        assert param == datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert gt(NOW, NOW)
        with pytest.raises(ValueError):
            bound("timestamp", "gt", "yesterday")

    def test_duration_params(self) -> None:
        _, from_text = bound("duration", "lte", "90s")
        _, from_number = bound("duration", "lte", 90)
        assert from_text == from_number == timedelta(seconds=90)


class TestOtherFamilies:
    def test_bytes(self) -> None:
        prefix, param = bound("bytes", "prefix", "ab")
        assert param == b"ab"
        assert prefix(b"abc", NOW)
        pattern, _ = bound("bytes", "pattern", "^a")
        assert pattern(b"abc", NOW)

    def test_bytes_pattern_needs_utf8(self) -> None:
        pattern, _ = bound("bytes", "pattern", "^a")
        with pytest.raises(EvaluationError, match="UTF-8"):
            pattern(b"\xff", NOW)

    def test_bytes_ip(self) -> None:
        ipv4, _ = bound("bytes", "ipv4", True)
        assert ipv4(b"\x7f\x00\x00\x01", NOW)
        assert not ipv4(b"\x00", NOW)

    def test_enum_defined_only(self) -> None:
        check, param = bound("enum", "defined_only", True, enum_numbers=frozenset({0, 1}))
        assert param == frozenset({0, 1})
        assert check(1, NOW)
        assert not check(7, NOW)

    def test_repeated_unique(self) -> None:
        check, _ = bound("repeated", "unique", True, field_type=FieldType.STRING)
        assert check(["a", "b"], NOW)
        assert not check(["a", "a"], NOW)

    def test_map_pairs(self) -> None:
        check, _ = bound("map", "max_pairs", 1, field_type=FieldType.STRING)
        assert check({"a": 1}, NOW)
        assert not check({"a": 1, "b": 2}, NOW)


class TestMessages:
    @pytest.mark.parametrize(
        "family, key, param, expected",
        [
            ("int32", "lte", 150, "value must be less than or equal to 150"),
            ("string", "min_len", 3, "value length must be at least 3 characters"),
            ("string", "in", ["a", "b"], "value must be in list ['a', 'b']"),
            ("repeated", "unique", True, "repeated value must contain unique items"),
            ("timestamp", "lt_now", True, "value must be less than now"),
            ("duration", "gt", "1.5s", "value must be greater than 1.5s"),
            ("timestamp", "gt", "2024-01-01T00:00:00Z", "value must be greater than 2024-01-01T00:00:00Z"),
        ],
    )
    def test_render(self, family: str, key: str, param, expected: str) -> None:
        rule = standard.lookup(family, key)
        field_type = FieldType.STRING if family == "repeated" else FieldType(family)
        parsed = rule.parse(param, RuleContext(family=family, field_type=field_type))
        assert rule.render(parsed) == expected


class TestConflicts:
    @pytest.mark.parametrize(
        "params, fragment",
        [
            ({"min_len": 5, "max_len": 2}, "min_len (5) is greater than max_len (2)"),
            ({"min_items": 3, "max_items": 1}, "min_items"),
            ({"min_pairs": 3, "max_pairs": 1}, "min_pairs"),
            ({"min_bytes": 3, "max_bytes": 1}, "min_bytes"),
            ({"gt": 1, "gte": 1}, "gt and gte"),
            ({"lt": 1, "lte": 1}, "lt and lte"),
            ({"lt_now": True, "gt_now": True}, "lt_now and gt_now"),
            ({"gt": 10, "lt": 5}, "not below"),
            ({"gte": 5, "lt": 5}, "not below"),
        ],
    )
    def test_conflicting(self, params: dict, fragment: str) -> None:
        with pytest.raises(ValueError, match=re.escape(fragment)):
            standard.check_conflicts(params)

    @pytest.mark.parametrize(
        "params",
        [{"min_len": 2, "max_len": 2}, {"gte": 5, "lte": 5}, {"gt": 1, "lt": 3}, {"lt_now": True}],
    )
    def test_satisfiable(self, params: dict) -> None:
        standard.check_conflicts(params)


class TestValueCoercer:
    def test_integer_range(self) -> None:
        coerce = standard.value_coercer(FieldType.INT32)
        assert coerce(5) == 5
        with pytest.raises(EvaluationError, match="out of range for int32"):
            coerce(2**31)
        with pytest.raises(EvaluationError, match="got bool"):
            coerce(True)

    def test_types(self) -> None:
        assert standard.value_coercer(FieldType.DOUBLE)(1) == 1.0
        assert standard.value_coercer(FieldType.BYTES)(bytearray(b"a")) == b"a"
        naive = datetime(2024, 1, 1)
        assert standard.value_coercer(FieldType.TIMESTAMP)(naive).tzinfo == timezone.utc
        with pytest.raises(EvaluationError, match="expected a string, got int"):
            standard.value_coercer(FieldType.STRING)(1)
        with pytest.raises(EvaluationError, match="expected a duration"):
            standard.value_coercer(FieldType.DURATION)("1s")
