"""Output nodes for the Brace AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from brace.nodes.base import Node
from brace.nodes.expressions import Expr


@dataclass(frozen=True, slots=True)
class Data(Node):
    """Literal template text."""

    value: str


@dataclass(frozen=True, slots=True)
class Output(Node):
    """Interpolation: {$expr}, or {raw $expr} when ``raw`` is set."""

    expr: Expr
    raw: bool = False


@dataclass(frozen=True, slots=True)
class Assign(Node):
    """Assignment: {var $x = expr} or {$x = expr}"""

    name: str
    value: Expr


@dataclass(frozen=True, slots=True)
class Capture(Node):
    """Capture rendered output into a variable: {var $x|mod}...{/var}"""

    name: str
    body: Sequence[Node]
    modifiers: Sequence[tuple[str, Sequence[Expr]]] = ()


@dataclass(frozen=True, slots=True)
class Filter(Node):
    """Apply modifiers to rendered output: {filter|upper}...{/filter}"""

    modifiers: Sequence[tuple[str, Sequence[Expr]]]
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class Autoescape(Node):
    """Escaping policy region: {autoescape false}...{/autoescape}"""

    enabled: bool
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class Cycle(Node):
    """Cycle through values: {cycle ["odd", "even"] index=$i}

    Without ``index`` a per-render counter keyed by the tag position is used.
    """

    values: Expr
    index: Expr | None = None
