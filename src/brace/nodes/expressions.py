"""Expression nodes for the Brace AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from brace.nodes.base import Node


@dataclass(frozen=True, slots=True)
class Expr(Node):
    """Base class for expressions."""


@dataclass(frozen=True, slots=True)
class Const(Expr):
    """Literal value: 42, 'text', true, null"""

    value: Any


@dataclass(frozen=True, slots=True)
class Var(Expr):
    """Template variable: $name"""

    name: str


@dataclass(frozen=True, slots=True)
class SystemVar(Expr):
    """System accessor: $.env.HOME, $.globals.site, $.tpl.name, $.version"""

    path: Sequence[str]


@dataclass(frozen=True, slots=True)
class Getattr(Expr):
    """Key access with dot syntax: $user.name

    Looks up the key first and falls back to an attribute.
    """

    obj: Expr
    attr: str


@dataclass(frozen=True, slots=True)
class Getitem(Expr):
    """Subscript access: $items[0], $map[$key]"""

    obj: Expr
    key: Expr


@dataclass(frozen=True, slots=True)
class Property(Expr):
    """Object property access: $user->name"""

    obj: Expr
    name: str


@dataclass(frozen=True, slots=True)
class MethodCall(Expr):
    """Object method call: $user->full_name(', ')"""

    obj: Expr
    name: str
    args: Sequence[Expr] = ()


@dataclass(frozen=True, slots=True)
class FuncCall(Expr):
    """Allowed host function call: count($items)"""

    name: str
    args: Sequence[Expr] = ()


@dataclass(frozen=True, slots=True)
class Modifier(Expr):
    """Modifier pipe: $title|truncate:20:'...'"""

    value: Expr
    name: str
    args: Sequence[Expr] = ()


@dataclass(frozen=True, slots=True)
class BinOp(Expr):
    """Arithmetic or concatenation: $a + $b, $a ~ $b"""

    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class UnaryOp(Expr):
    """Unary operator: -$a, !$a"""

    op: str
    operand: Expr


@dataclass(frozen=True, slots=True)
class Compare(Expr):
    """Comparison: $a == $b, $a === $b, $x in $list"""

    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class BoolOp(Expr):
    """Logical operator: $a && $b, $a or $b, $a xor $b"""

    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True, slots=True)
class CondExpr(Expr):
    """Ternary: $a ? $b : $c, or the short form $a ?: $c when if_true is None."""

    test: Expr
    if_true: Expr | None
    if_false: Expr


@dataclass(frozen=True, slots=True)
class Test(Expr):
    """Postfix test that never raises on undefined values.

    ``$a?`` is true when the value is set and not empty, ``$a!`` when it is
    set at all (not None).
    """

    value: Expr
    strict: bool = False


@dataclass(frozen=True, slots=True)
class ListExpr(Expr):
    """List literal: [1, 2, 3]"""

    items: Sequence[Expr]


@dataclass(frozen=True, slots=True)
class DictExpr(Expr):
    """Mapping literal: ["a" => 1, "b" => 2]"""

    keys: Sequence[Expr]
    values: Sequence[Expr]


@dataclass(frozen=True, slots=True)
class Concat(Expr):
    """Interpolated string: "Hello, {$name}!" """

    nodes: Sequence[Expr]
