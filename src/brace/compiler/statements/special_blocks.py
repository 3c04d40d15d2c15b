"""Special block compilation: capture, filter, autoescape, cycle."""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from brace.compiler.utils import assign, call, ctx_store, join_buffer, name_load

if TYPE_CHECKING:
    from collections.abc import Sequence

    from brace.nodes import Node


class SpecialBlockMixin:
    """Mixin for compiling blocks that post-process their rendered body.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    if TYPE_CHECKING:
        _streaming: bool
        _append_name: str
        _escape_stack: list[bool]
        _name: str | None

        def _next_id(self) -> int: ...
        def _compile_expr(self, node: Any) -> ast.expr: ...
        def _compile_body(self, nodes: Sequence[Node]) -> list[ast.stmt]: ...
        def _emit_output(self, value_expr: ast.expr) -> ast.stmt: ...
        def _output_value(self, value: ast.expr, raw: bool = False) -> ast.expr: ...
        def _apply_modifiers(self, value: ast.expr, modifiers: Any) -> ast.expr: ...

    def _capture_body(self, body: Sequence[Node]) -> tuple[list[ast.stmt], ast.expr]:
        """Render ``body`` into a private buffer, even inside streaming functions.

        Returns the statements and an expression for the captured Markup.
        """
        uid = self._next_id()
        buf, append = f"_buf_{uid}", f"_append_{uid}"
        stmts: list[ast.stmt] = [
            assign(buf, ast.List(elts=[], ctx=ast.Load())),
            assign(append, ast.Attribute(value=name_load(buf), attr="append", ctx=ast.Load())),
        ]
        saved = self._streaming, self._append_name
        self._streaming, self._append_name = False, append
        try:
            stmts.extend(self._compile_body(body))
        finally:
            self._streaming, self._append_name = saved
        return stmts, call("_Markup", join_buffer(buf))

    def _compile_capture(self, node: Any) -> list[ast.stmt]:
        """{var $x|mod}...{/var} → ctx['x'] = _Markup(mod(captured))"""
        stmts, value = self._capture_body(node.body)
        if node.modifiers:
            value = call("_Markup", self._apply_modifiers(value, node.modifiers))
        stmts.append(ctx_store(node.name, value))
        return stmts

    def _compile_filter(self, node: Any) -> list[ast.stmt]:
        """{filter|mod}...{/filter} outputs the modified body unescaped."""
        stmts, value = self._capture_body(node.body)
        stmts.append(
            self._emit_output(call("_s", self._apply_modifiers(value, node.modifiers)))
        )
        return stmts

    def _compile_autoescape(self, node: Any) -> list[ast.stmt]:
        """Escaping is decided at compile time; the region only moves the policy."""
        self._escape_stack.append(node.enabled)
        try:
            return self._compile_body(node.body)
        finally:
            self._escape_stack.pop()

    def _compile_cycle(self, node: Any) -> list[ast.stmt]:
        """{cycle [a, b] index=$i}; without index a per-render counter is used."""
        if node.index is not None:
            index = self._compile_expr(node.index)
        else:
            key = f"{self._name or '<string>'}:{node.lineno}:{node.col_offset}"
            index = call("_next_cycle", ast.Constant(value=key))
        value = call("_cycle", self._compile_expr(node.values), index)
        return [self._emit_output(self._output_value(value))]
