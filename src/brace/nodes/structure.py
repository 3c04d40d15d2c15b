"""Template structure nodes: inheritance, inclusion, macros."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from brace.nodes.base import Node
from brace.nodes.expressions import Expr


@dataclass(frozen=True, slots=True)
class Template(Node):
    """Root node of a compiled template.

    Attributes:
        body: Top-level nodes (ignored at render time when ``extends`` is set)
        extends: Parent template expression, if any
        blocks: Regions defined by this template, by name
        uses: Templates whose regions are imported with ``{use}``
        macros: Macro definitions by (origin template, name)
        dependencies: Template name → freshness token (None when missing)
    """

    body: Sequence[Node]
    extends: Expr | None = None
    blocks: Mapping[str, Block] = field(default_factory=dict)
    uses: Sequence[str] = ()
    macros: Mapping[tuple[str, str], Macro] = field(default_factory=dict)
    dependencies: Mapping[str, object] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class Block(Node):
    """Overridable region: {block "content"}...{/block}

    ``autoescape`` is the policy of the enclosing {autoescape} region, or
    None for the template default.
    """

    name: str
    body: Sequence[Node]
    autoescape: bool | None = None


@dataclass(frozen=True, slots=True)
class Parent(Node):
    """Render the overridden parent version of the enclosing region: {parent}"""

    block: str


@dataclass(frozen=True, slots=True)
class Include(Node):
    """Render another template at run time: {include "name" a=1}

    ``optional`` is true when a missing template renders nothing.
    """

    template: Expr
    vars: Sequence[tuple[str, Expr]] = ()
    optional: bool = True


@dataclass(frozen=True, slots=True)
class Macro(Node):
    """Macro definition: {macro name($a, $b=1)}...{/macro}

    ``origin`` is the name of the template that defines the macro.
    ``autoescape`` works as on Block.
    """

    name: str
    params: Sequence[tuple[str, Expr | None]]
    body: Sequence[Node]
    origin: str = "<string>"
    autoescape: bool | None = None


@dataclass(frozen=True, slots=True)
class MacroCall(Node):
    """Macro invocation: {macro.name a=1}

    ``origin`` and ``name`` identify the resolved macro definition.
    """

    origin: str
    name: str
    args: Sequence[tuple[str, Expr]] = ()


@dataclass(frozen=True, slots=True)
class Fragment(Node):
    """Sequence of nodes spliced in place: {insert}, custom compilers."""

    body: Sequence[Node]
