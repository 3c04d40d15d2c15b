"""Tag and modifier registries for the Brace environment.

Tags (``{foreach}``, ``{include}``, user functions) are described by a
:class:`TagDefinition` and stored in an :class:`ActionRegistry`; modifiers
(``|upper``) and allowed host functions live in a :class:`ModifierRegistry`.

Lookups never raise: a miss returns ``None`` and the parser decides whether
that is an error. Later registration of the same name replaces the earlier
one, which is how built-ins are overridden.

All mutations use copy-on-write for thread-safety.
"""

from __future__ import annotations

import builtins
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from brace.nodes import Node
    from brace.parser.core import Parser
    from brace.parser.scope import Scope
    from brace.parser.tokens import TokenStream

    TagCallback = Callable[[Parser, TokenStream, Scope], Node | None]
else:
    TagCallback = Callable[..., Any]


class TagKind(IntEnum):
    """How a tag is compiled."""

    INLINE_COMPILER = 1
    BLOCK_COMPILER = 2
    INLINE_FUNCTION = 3
    BLOCK_FUNCTION = 4
    MODIFIER = 5


@dataclass(frozen=True, slots=True)
class TagDefinition:
    """Everything the parser needs to handle one tag name.

    Callbacks take ``(parser, tokens, scope)``. Inline tags use ``parser``;
    block tags use ``open`` and ``close`` plus ``tags`` for nested tags such
    as ``{elseif}``. ``float_tags`` are nested tags that may also appear
    deeper inside other blocks (``{break}`` inside an ``{if}`` inside a
    ``{foreach}``). An ``isolated`` block compiles to its own function, so
    floating tags of outer frames cannot reach through it.

    Attributes:
        kind: Tag kind
        parser: Inline callback, or the attribute parser of an inline function
        open: Block open callback
        close: Block close callback
        tags: Nested tag name → callback
        float_tags: Nested tags also honoured from nested frames
        function: Host callable of a function tag
        smart: Bind attributes to the callable's keyword parameters
        isolated: Block body is compiled as a separate function
    """

    kind: TagKind
    parser: TagCallback | None = None
    open: TagCallback | None = None
    close: TagCallback | None = None
    tags: Mapping[str, TagCallback] = field(default_factory=dict)
    float_tags: frozenset[str] = frozenset()
    function: Callable[..., Any] | None = None
    smart: bool = False
    isolated: bool = False

    @property
    def is_block(self) -> bool:
        return self.kind in (TagKind.BLOCK_COMPILER, TagKind.BLOCK_FUNCTION)


class ActionRegistry:
    """Name → TagDefinition table with a pluggable fallback loader.

    Supports:
        - registry['name'] = definition
        - 'name' in registry
        - registry.resolve('name') (consults ``loader`` on a miss)
    """

    __slots__ = ("_actions", "loader")

    def __init__(
        self,
        actions: Mapping[str, TagDefinition] | None = None,
        loader: Callable[[str], TagDefinition | None] | None = None,
    ):
        self._actions: dict[str, TagDefinition] = dict(actions or {})
        self.loader = loader

    def register(self, name: str, definition: TagDefinition) -> None:
        new = self._actions.copy()
        new[name] = definition
        self._actions = new

    __setitem__ = register

    def __getitem__(self, name: str) -> TagDefinition:
        return self._actions[name]

    def __contains__(self, name: object) -> bool:
        return name in self._actions

    def __iter__(self) -> Iterator[str]:
        return iter(self._actions)

    def __len__(self) -> int:
        return len(self._actions)

    def resolve(self, name: str) -> TagDefinition | None:
        """Return the definition for ``name``, or None when nobody knows it."""
        definition = self._actions.get(name)
        if definition is None and self.loader is not None:
            definition = self.loader(name)
            if definition is not None:
                self.register(name, definition)
        return definition

    def owners(self, tag: str) -> list[str]:
        """Names of block tags that accept ``tag`` as a nested tag."""
        return sorted(name for name, d in self._actions.items() if tag in d.tags)

    def names(self) -> list[str]:
        return sorted(self._actions)


# Host builtins that must never be callable from templates
UNSAFE_BUILTINS = frozenset(
    {
        "__build_class__",
        "__import__",
        "breakpoint",
        "compile",
        "delattr",
        "eval",
        "exec",
        "exit",
        "getattr",
        "globals",
        "help",
        "input",
        "locals",
        "memoryview",
        "open",
        "quit",
        "setattr",
        "vars",
    }
)

# Functions that stay callable even when native functions are disabled
DEFAULT_ALLOWED_FUNCTIONS = (
    "abs",
    "bool",
    "dict",
    "float",
    "int",
    "len",
    "list",
    "max",
    "min",
    "range",
    "round",
    "sorted",
    "str",
    "sum",
)


def host_function(name: str) -> Callable[..., Any] | None:
    """Resolve a callable from the host (Python builtins), skipping unsafe ones."""
    if name.startswith("_") or name in UNSAFE_BUILTINS:
        return None
    func = getattr(builtins, name, None)
    return func if callable(func) else None


class ModifierRegistry:
    """Modifier table plus the allow-list of host functions.

    Resolution order for ``resolve(name)``:

    1. registered modifiers
    2. allowed functions (explicit allow-list)
    3. any safe host builtin, unless native functions are denied
    4. the fallback ``loader``
    """

    __slots__ = ("_modifiers", "_allowed", "loader")

    def __init__(
        self,
        modifiers: Mapping[str, Callable[..., Any]] | None = None,
        loader: Callable[[str], Callable[..., Any] | None] | None = None,
    ):
        self._modifiers: dict[str, Callable[..., Any]] = dict(modifiers or {})
        self._allowed: dict[str, Callable[..., Any]] = {}
        self.loader = loader
        self.allow(DEFAULT_ALLOWED_FUNCTIONS)

    def register(self, name: str, func: Callable[..., Any]) -> None:
        new = self._modifiers.copy()
        new[name] = func
        self._modifiers = new

    __setitem__ = register

    def __getitem__(self, name: str) -> Callable[..., Any]:
        return self._modifiers[name]

    def __contains__(self, name: object) -> bool:
        return name in self._modifiers

    def names(self) -> list[str]:
        return sorted(self._modifiers)

    def allow(self, funcs: Iterable[str] | Mapping[str, Callable[..., Any]]) -> None:
        """Add host functions to the allow-list.

        Accepts names of host builtins or a mapping of name → callable.
        """
        new = self._allowed.copy()
        if isinstance(funcs, Mapping):
            new.update(funcs)
        else:
            for name in funcs:
                func = host_function(name)
                if func is not None:
                    new[name] = func
        self._allowed = new

    def resolve_function(self, name: str, deny_native: bool = False) -> Callable[..., Any] | None:
        """Resolve a host function callable from templates."""
        func = self._allowed.get(name)
        if func is None and not deny_native:
            func = host_function(name)
        return func

    def is_allowed_function(self, name: str, deny_native: bool = False) -> bool:
        return self.resolve_function(name, deny_native) is not None

    def resolve(self, name: str, deny_native: bool = False) -> Callable[..., Any] | None:
        """Resolve a modifier, falling back to host functions and the loader."""
        func = self._modifiers.get(name)
        if func is None:
            func = self.resolve_function(name, deny_native)
        if func is None and self.loader is not None:
            func = self.loader(name)
            if func is not None:
                self.register(name, func)
        return func
