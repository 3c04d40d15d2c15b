"""Registered function call nodes."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from brace.nodes.base import Node
from brace.nodes.expressions import Expr


@dataclass(frozen=True, slots=True)
class FunctionCall(Node):
    """Inline function tag: {paginate total=$count page=$page}

    Positional arguments are ``args``; ``smart`` binds ``kwargs`` to the
    callable's keyword parameters instead of passing one mapping.
    """

    name: str
    kwargs: Sequence[tuple[str, Expr]] = ()
    args: Sequence[Expr] = ()
    smart: bool = False


@dataclass(frozen=True, slots=True)
class BlockFunctionCall(Node):
    """Block function tag: {markdown}...{/markdown}

    The callable receives the attribute mapping and the rendered body.
    """

    name: str
    kwargs: Sequence[tuple[str, Expr]]
    body: Sequence[Node]
