"""Control flow nodes for the Brace AST."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from brace.nodes.base import Node
from brace.nodes.expressions import Expr


@dataclass(frozen=True, slots=True)
class If(Node):
    """Conditional: {if cond}...{elseif cond}...{else}...{/if}"""

    test: Expr
    body: Sequence[Node]
    elif_: Sequence[tuple[Expr, Sequence[Node]]] = ()
    else_: Sequence[Node] = ()


@dataclass(frozen=True, slots=True)
class Foreach(Node):
    """Iteration: {foreach $list as $k => $v index=$i first=$f last=$l}...{foreachelse}...{/foreach}

    ``key``, ``index``, ``first`` and ``last`` are variable names bound on
    every iteration when given.
    """

    iter: Expr
    value: str
    body: Sequence[Node]
    key: str | None = None
    index: str | None = None
    first: str | None = None
    last: str | None = None
    else_: Sequence[Node] = ()


@dataclass(frozen=True, slots=True)
class ForRange(Node):
    """Counted loop: {for $i=1 to=10 step=2}...{forelse}...{/for}

    ``stop`` is inclusive. A negative step counts down.
    """

    target: str
    start: Expr
    stop: Expr
    step: Expr | None
    body: Sequence[Node]
    index: str | None = None
    first: str | None = None
    last: str | None = None
    else_: Sequence[Node] = ()


@dataclass(frozen=True, slots=True)
class While(Node):
    """Loop: {while cond}...{/while}"""

    test: Expr
    body: Sequence[Node]


@dataclass(frozen=True, slots=True)
class Switch(Node):
    """Branch on a value: {switch $x}{case 1, 2}...{default}...{/switch}

    Cases do not fall through. ``has_break`` is set when a ``{break}``
    inside the switch must leave it early.
    """

    subject: Expr
    cases: Sequence[tuple[Sequence[Expr], Sequence[Node]]]
    default: Sequence[Node] = ()
    has_break: bool = False


@dataclass(frozen=True, slots=True)
class Break(Node):
    """Leave the nearest loop or switch. ``owner`` names the frame it exits."""

    owner: str


@dataclass(frozen=True, slots=True)
class Continue(Node):
    """Skip to the next iteration of the nearest loop."""

    owner: str
