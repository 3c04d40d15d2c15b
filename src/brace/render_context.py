"""Per-render state kept out of the user context.

Generated code never stores bookkeeping in the user's variable dict. The
current line, include depth, ``{cycle}`` counters and the macro recursion
limit live on a :class:`RenderContext` held in a ContextVar, so concurrent
renders in different threads never see each other's state.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar, Token
from dataclasses import dataclass, field


@dataclass
class RenderContext:
    """Per-render state isolated from user context.

    Attributes:
        template_name: Current template name for error messages
        source: Template source for runtime error snippets
        line: Current line number (updated during render by generated code)
        include_depth: Current include depth (DoS protection)
        max_include_depth: Maximum allowed include depth
        max_macro_recursion: Nested macro invocations allowed before
            MacroRecursionError is raised
        cycles: ``{cycle}`` counters keyed by tag position; shared with
            included templates so a cycle keeps counting across includes
        template_stack: (template_name, line) pairs of the include chain
    """

    template_name: str | None = None
    source: str | None = None
    line: int = 0
    include_depth: int = 0
    max_include_depth: int = 50
    max_macro_recursion: int = 32
    cycles: dict[str, int] = field(default_factory=dict)
    template_stack: list[tuple[str, int]] = field(default_factory=list)

    def check_include_depth(self, template_name: str) -> None:
        """Raise TemplateRuntimeError when includes nest too deeply."""
        if self.include_depth >= self.max_include_depth:
            from brace.environment.exceptions import TemplateRuntimeError

            raise TemplateRuntimeError(
                f"Maximum include depth exceeded ({self.max_include_depth}) "
                f"when including '{template_name}'",
                template_name=self.template_name,
                lineno=self.line or None,
                suggestion="Check for circular includes: A → B → A",
            )

    def next_cycle(self, key: str) -> int:
        """Return the counter for a ``{cycle}`` tag and advance it."""
        index = self.cycles.get(key, 0)
        self.cycles[key] = index + 1
        return index

    def child_context(self, template_name: str | None, source: str | None) -> RenderContext:
        """Create the context of an included template (depth + 1)."""
        stack = self.template_stack.copy()
        if self.template_name and self.line > 0:
            stack.append((self.template_name, self.line))
        return RenderContext(
            template_name=template_name,
            source=source,
            include_depth=self.include_depth + 1,
            max_include_depth=self.max_include_depth,
            max_macro_recursion=self.max_macro_recursion,
            cycles=self.cycles,
            template_stack=stack,
        )


_render_context: ContextVar[RenderContext | None] = ContextVar(
    "brace_render_context",
    default=None,
)


def get_render_context() -> RenderContext | None:
    """Current render context, or None outside of a render call."""
    return _render_context.get()


def get_render_context_required() -> RenderContext:
    """Current render context; used by generated code for line tracking.

    Raises:
        RuntimeError: If not in a render context
    """
    ctx = _render_context.get()
    if ctx is None:
        raise RuntimeError("Not in a render context")
    return ctx


@contextmanager
def render_context(
    template_name: str | None = None,
    source: str | None = None,
    *,
    max_include_depth: int = 50,
    max_macro_recursion: int = 32,
) -> Iterator[RenderContext]:
    """Set a fresh RenderContext for the duration of the ``with`` block.

    Example:
        with render_context(template_name="page.tpl") as ctx:
            html = template._render_func(user_ctx, None)
    """
    ctx = RenderContext(
        template_name=template_name,
        source=source,
        max_include_depth=max_include_depth,
        max_macro_recursion=max_macro_recursion,
    )
    token = _render_context.set(ctx)
    try:
        yield ctx
    finally:
        _render_context.reset(token)


def set_render_context(ctx: RenderContext) -> Token[RenderContext | None]:
    """Set a RenderContext and return the reset token (used by includes)."""
    return _render_context.set(ctx)


def reset_render_context(token: Token[RenderContext | None]) -> None:
    _render_context.reset(token)
