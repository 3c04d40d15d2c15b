"""Block scope frames for the parser's tag stack."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from brace.environment.registry import TagDefinition
    from brace.nodes import Node


@dataclass(slots=True)
class Scope:
    """One open tag on the parser's scope stack.

    The body of a block is split into branches: ``{if}`` starts with the
    unnamed branch and ``{elseif}``/``{else}`` open new ones. Nodes parsed
    while the frame is on top are appended to the current branch.

    Attributes:
        name: Tag name
        definition: Tag definition that handles this frame
        lineno: Line of the opening tag
        col_offset: Column of the opening tag
        data: Per-tag state set by the open callback
        branches: (label, body) pairs in source order
        closed: Set by an open callback when the tag turned out to be inline
            (``{var $x = 1}``); the frame is then never pushed
    """

    name: str
    definition: TagDefinition
    lineno: int
    col_offset: int
    data: dict[str, Any] = field(default_factory=dict)
    branches: list[tuple[str, list[Node]]] = field(default_factory=lambda: [("", [])])
    closed: bool = False

    @property
    def body(self) -> list[Node]:
        """Node list of the current branch."""
        return self.branches[-1][1]

    @property
    def label(self) -> str:
        return self.branches[-1][0]

    def branch(self, label: str) -> list[Node]:
        """Start a new branch and return its node list."""
        body: list[Node] = []
        self.branches.append((label, body))
        return body

    def branch_bodies(self, label: str) -> list[list[Node]]:
        return [body for name, body in self.branches if name == label]

    def has_branch(self, label: str) -> bool:
        return any(name == label for name, _ in self.branches)

    @property
    def isolated(self) -> bool:
        return self.definition.isolated
