"""Lexer and parser unit tests."""

import pytest

from protoguard.errors import ExpressionError
from protoguard.expression.lexer import tokenize
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
    Select,
    Unary,
)
from protoguard.expression.parser import parse


class TestLexer:
    def test_literal_kinds(self) -> None:
        tokens = tokenize("1 1u 2.5 .5 1e3 0x1F 'a' b'b' true")
        assert [t.kind for t in tokens] == [
            "INT", "UINT", "DOUBLE", "DOUBLE", "DOUBLE", "INT", "STRING", "BYTES", "IDENT", "EOF",
        ]
        assert tokens[5].value == 31
        assert tokens[7].value == b"b"

    def test_escapes_and_raw_strings(self) -> None:
        tokens = tokenize(r"'a\nb' r'a\nb' '\x41é'")
        assert tokens[0].value == "a\nb"
        assert tokens[1].value == "a\\nb"
        assert tokens[2].value == "Aé"

    def test_triple_quoted_string_spans_lines(self) -> None:
        assert tokenize("'''a\nb'''")[0].value == "a\nb"

    def test_comments_are_skipped(self) -> None:
        tokens = tokenize("1 // the answer\n+ 2")
        assert [t.value for t in tokens[:-1]] == [1, "+", 2]

    def test_operators_longest_match(self) -> None:
        tokens = tokenize("a <= b && !c")
        assert [t.value for t in tokens[:-1]] == ["a", "<=", "b", "&&", "!", "c"]

    @pytest.mark.parametrize("source", ["'open", "'a\nb'", "'\\q'", "#", "0x", "99999999999999999999"])
    def test_lexical_errors(self, source: str) -> None:
        with pytest.raises(ExpressionError):
            tokenize(source)

    def test_error_carries_position(self) -> None:
        with pytest.raises(ExpressionError) as exc_info:
            tokenize("1 + #")
        assert exc_info.value.position == 4
        assert exc_info.value.expression == "1 + #"


class TestParser:
    def test_precedence(self) -> None:
        node = parse("1 + 2 * 3 == 7 && true")
        assert isinstance(node, Binary) and node.op == "&&"
        equality = node.left
        assert isinstance(equality, Binary) and equality.op == "=="
        addition = equality.left
        assert addition.op == "+"
        assert isinstance(addition.right, Binary) and addition.right.op == "*"

    def test_conditional_is_right_associative(self) -> None:
        node = parse("a ? 1 : b ? 2 : 3")
        assert isinstance(node, Conditional)
        assert isinstance(node.otherwise, Conditional)

    def test_negative_literal_is_folded(self) -> None:
        node = parse("-9223372036854775808")
        assert node == Literal(-(2**63), "int", pos=0)

    def test_negation_of_expression(self) -> None:
        node = parse("-x")
        assert isinstance(node, Unary) and node.op == "-"

    def test_member_chain(self) -> None:
        node = parse("this.items[0].name.startsWith('a')")
        assert isinstance(node, Call)
        assert node.function == "startsWith"
        assert isinstance(node.target, Select) and node.target.field == "name"
        assert isinstance(node.target.operand, Index)

    def test_global_call(self) -> None:
        node = parse("size(this)")
        assert isinstance(node, Call)
        assert node.target is None
        assert node.args == [Ident("this", pos=5)]

    def test_has_macro(self) -> None:
        node = parse("has(this.name)")
        assert isinstance(node, Has)
        assert node.field == "name"
        assert isinstance(node.operand, Ident)

    def test_has_needs_selection(self) -> None:
        with pytest.raises(ExpressionError, match="has"):
            parse("has(this)")

    @pytest.mark.parametrize("macro", ["all", "exists", "exists_one", "filter", "map"])
    def test_comprehension_macros(self, macro: str) -> None:
        node = parse(f"this.{macro}(x, x > 0)")
        assert isinstance(node, Comprehension)
        assert node.macro == macro
        assert node.var == "x"

    def test_three_argument_map(self) -> None:
        node = parse("this.map(x, x > 0, x * 2)")
        assert isinstance(node, Comprehension)
        assert node.transform is not None

    def test_macro_variable_must_be_identifier(self) -> None:
        with pytest.raises(ExpressionError):
            parse("this.all(1, true)")

    def test_list_and_map_literals(self) -> None:
        assert isinstance(parse("[1, 2, 3,]"), ListExpr)
        node = parse("{'a': 1, 'b': 2}")
        assert isinstance(node, MapExpr)
        assert len(node.entries) == 2

    def test_in_operator(self) -> None:
        node = parse("x in [1, 2]")
        assert isinstance(node, Binary) and node.op == "in"

    @pytest.mark.parametrize("source", ["", "1 +", "(1", "a.", "1 2", "f(1,,2)", "if", "{1 2}"])
    def test_syntax_errors(self, source: str) -> None:
        with pytest.raises(ExpressionError):
            parse(source)

    def test_deep_nesting_is_rejected(self) -> None:
        with pytest.raises(ExpressionError, match="nested too deeply"):
            parse("(" * 200 + "1" + ")" * 200)
