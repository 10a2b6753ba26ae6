"""Recursive-descent parser for rule expressions.

Precedence, lowest first::

    ?:   ||   &&   == != < <= > >= in   + -   * / %   ! - (unary)   . [] ()

Macros (``has``, ``all``, ``exists``, ``exists_one``, ``map``, ``filter``) are
expanded while parsing, so later stages only see Has and Comprehension nodes.
"""

from typing import Optional

from protoguard.errors import ExpressionError
from protoguard.expression.lexer import RESERVED, Token, tokenize
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

RELATIONS = ("==", "!=", "<", "<=", ">", ">=")

COMPREHENSION_MACROS = {
    "all": (2,),
    "exists": (2,),
    "exists_one": (2,),
    "filter": (2,),
    "map": (2, 3),
}

# Each nesting level costs about ten parser frames
MAX_DEPTH = 40


class Parser:
    def __init__(self, text: str):
        self.text = text
        self.tokens: list[Token] = tokenize(text)
        self.pos = 0
        self.depth = 0

    def _error(self, message: str, token: Optional[Token] = None) -> ExpressionError:
        token = token or self._peek()
        return ExpressionError(message, expression=self.text, position=token.pos)

    # ── Token helpers ──

    def _peek(self) -> Token:
        return self.tokens[self.pos]

    def _advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != "EOF":
            self.pos += 1
        return token

    def _check_op(self, *ops: str) -> bool:
        token = self._peek()
        return token.kind == "OP" and token.value in ops

    def _match_op(self, *ops: str) -> bool:
        if self._check_op(*ops):
            self.pos += 1
            return True
        return False

    def _expect_op(self, op: str) -> Token:
        if not self._check_op(op):
            token = self._peek()
            found = "end of expression" if token.kind == "EOF" else repr(token.value)
            raise self._error(f"expected '{op}', found {found}", token)
        return self._advance()

    def _expect_ident(self) -> Token:
        token = self._peek()
        if token.kind != "IDENT":
            raise self._error("expected identifier", token)
        return self._advance()

    # ── Grammar ──

    def parse(self) -> Node:
        if self._peek().kind == "EOF":
            raise self._error("empty expression")
        node = self._expression()
        token = self._peek()
        if token.kind != "EOF":
            raise self._error(f"unexpected {token.value!r}", token)
        return node

    def _expression(self) -> Node:
        self.depth += 1
        if self.depth > MAX_DEPTH:
            raise self._error("expression nested too deeply")
        try:
            return self._conditional()
        finally:
            self.depth -= 1

    def _conditional(self) -> Node:
        node = self._or()
        if self._check_op("?"):
            token = self._advance()
            then = self._or()
            self._expect_op(":")
            otherwise = self._expression()
            return Conditional(node, then, otherwise, pos=token.pos)
        return node

    def _or(self) -> Node:
        node = self._and()
        while self._check_op("||"):
            token = self._advance()
            node = Binary("||", node, self._and(), pos=token.pos)
        return node

    def _and(self) -> Node:
        node = self._relation()
        while self._check_op("&&"):
            token = self._advance()
            node = Binary("&&", node, self._relation(), pos=token.pos)
        return node

    def _relation(self) -> Node:
        node = self._addition()
        while True:
            token = self._peek()
            if token.kind == "OP" and token.value in RELATIONS:
                self._advance()
                node = Binary(token.value, node, self._addition(), pos=token.pos)
            elif token.kind == "IDENT" and token.value == "in":
                self._advance()
                node = Binary("in", node, self._addition(), pos=token.pos)
            else:
                return node

    def _addition(self) -> Node:
        node = self._multiplication()
        while self._check_op("+", "-"):
            token = self._advance()
            node = Binary(token.value, node, self._multiplication(), pos=token.pos)
        return node

    def _multiplication(self) -> Node:
        node = self._unary()
        while self._check_op("*", "/", "%"):
            token = self._advance()
            node = Binary(token.value, node, self._unary(), pos=token.pos)
        return node

    def _unary(self) -> Node:
        if self._check_op("!"):
            token = self._advance()
            return Unary("!", self._unary(), pos=token.pos)
        if self._check_op("-"):
            token = self._advance()
            operand = self._unary()
            # Fold negative numeric literals so int64 min is representable
            if isinstance(operand, Literal) and operand.kind in ("int", "double"):
                return Literal(-operand.value, operand.kind, pos=token.pos)
            return Unary("-", operand, pos=token.pos)
        return self._member()

    def _member(self) -> Node:
        node = self._primary()
        while True:
            if self._check_op("."):
                self._advance()
                name = self._expect_ident()
                if self._check_op("("):
                    self._advance()
                    args = self._arguments(")")
                    node = self._member_call(node, name, args)
                else:
                    node = Select(node, name.value, pos=name.pos)
            elif self._check_op("["):
                token = self._advance()
                index = self._expression()
                self._expect_op("]")
                node = Index(node, index, pos=token.pos)
            else:
                return node

    def _member_call(self, target: Node, name: Token, args: list[Node]) -> Node:
        arities = COMPREHENSION_MACROS.get(name.value)
        if arities is None:
            return Call(name.value, args, target=target, pos=name.pos)
        if len(args) not in arities:
            raise self._error(f"'{name.value}' macro takes {' or '.join(map(str, arities))} arguments", name)
        var = args[0]
        if not isinstance(var, Ident):
            raise self._error(f"'{name.value}' macro needs an identifier as its first argument", name)
        if name.value == "map" and len(args) == 3:
            return Comprehension("map", target, var.name, args[1], transform=args[2], pos=name.pos)
        return Comprehension(name.value, target, var.name, args[1], pos=name.pos)

    def _arguments(self, closing: str) -> list[Node]:
        args: list[Node] = []
        if self._match_op(closing):
            return args
        while True:
            args.append(self._expression())
            if self._match_op(closing):
                return args
            self._expect_op(",")
            # Trailing comma
            if self._match_op(closing):
                return args

    def _primary(self) -> Node:
        token = self._peek()

        if token.kind in ("INT", "UINT", "DOUBLE", "STRING", "BYTES"):
            self._advance()
            kind = {"INT": "int", "UINT": "uint", "DOUBLE": "double", "STRING": "string", "BYTES": "bytes"}[token.kind]
            return Literal(token.value, kind, pos=token.pos)

        if token.kind == "IDENT":
            self._advance()
            if token.value == "true":
                return Literal(True, "bool", pos=token.pos)
            if token.value == "false":
                return Literal(False, "bool", pos=token.pos)
            if token.value == "null":
                return Literal(None, "null", pos=token.pos)
            if token.value in RESERVED or token.value == "in":
                raise self._error(f"reserved word '{token.value}'", token)
            if self._check_op("("):
                self._advance()
                args = self._arguments(")")
                if token.value == "has":
                    return self._has(token, args)
                return Call(token.value, args, pos=token.pos)
            return Ident(token.value, pos=token.pos)

        if token.kind == "OP":
            if token.value == ".":
                # Leading-dot qualified identifier
                self._advance()
                name = self._expect_ident()
                return Ident(name.value, pos=token.pos)
            if token.value == "(":
                self._advance()
                node = self._expression()
                self._expect_op(")")
                return node
            if token.value == "[":
                self._advance()
                return ListExpr(self._arguments("]"), pos=token.pos)
            if token.value == "{":
                self._advance()
                return MapExpr(self._map_entries(), pos=token.pos)

        if token.kind == "EOF":
            raise self._error("unexpected end of expression", token)
        raise self._error(f"unexpected {token.value!r}", token)

    def _has(self, token: Token, args: list[Node]) -> Node:
        if len(args) != 1 or not isinstance(args[0], Select):
            raise self._error("has() needs a single field selection argument, e.g. has(this.name)", token)
        select = args[0]
        return Has(select.operand, select.field, pos=token.pos)

    def _map_entries(self) -> list[tuple[Node, Node]]:
        entries: list[tuple[Node, Node]] = []
        if self._match_op("}"):
            return entries
        while True:
            key = self._expression()
            self._expect_op(":")
            entries.append((key, self._expression()))
            if self._match_op("}"):
                return entries
            self._expect_op(",")
            if self._match_op("}"):
                return entries


def parse(text: str) -> Node:
    """Parse expression source into a syntax tree.

    Raises:
        ExpressionError: On any syntax error
    """
    try:
        return Parser(text).parse()
    except RecursionError:
        raise ExpressionError("expression nested too deeply", expression=text) from None
