"""Syntax tree for rule expressions."""

from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class Node:
    pos: int = field(default=0, kw_only=True)


@dataclass
class Literal(Node):
    value: Any
    kind: str  # int, uint, double, string, bytes, bool, null


@dataclass
class Ident(Node):
    name: str


@dataclass
class Select(Node):
    operand: Node
    field: str


@dataclass
class Has(Node):
    """``has(operand.field)``: presence test, never reads the value."""

    operand: Node
    field: str


@dataclass
class Index(Node):
    operand: Node
    index: Node


@dataclass
class Call(Node):
    function: str
    args: list[Node]
    target: Optional[Node] = None  # Receiver for member-style calls


@dataclass
class Unary(Node):
    op: str
    operand: Node


@dataclass
class Binary(Node):
    op: str
    left: Node
    right: Node


@dataclass
class Conditional(Node):
    condition: Node
    then: Node
    otherwise: Node


@dataclass
class ListExpr(Node):
    items: list[Node]


@dataclass
class MapExpr(Node):
    entries: list[tuple[Node, Node]]


@dataclass
class Comprehension(Node):
    """Expanded macro: all, exists, exists_one, map, filter."""

    macro: str
    range: Node
    var: str
    body: Node
    transform: Optional[Node] = None  # Second expression of map(x, filter, transform)
