"""Basic statement compilation: literal text, output, assignment."""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from brace.compiler.utils import call, ctx_store

if TYPE_CHECKING:
    from collections.abc import Sequence

    from brace.nodes import Node


class BasicStatementMixin:
    """Mixin for compiling basic output statements.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    if TYPE_CHECKING:
        _streaming: bool
        _autoescape: bool

        def _compile_expr(self, node: Any) -> ast.expr: ...
        def _compile_body(self, nodes: Sequence[Node]) -> list[ast.stmt]: ...
        def _emit_output(self, value_expr: ast.expr) -> ast.stmt: ...

    def _compile_data(self, node: Any) -> list[ast.stmt]:
        """StringBuilder mode: _append("text"); streaming mode: yield "text"."""
        if not node.value:
            return []
        return [self._emit_output(ast.Constant(value=node.value))]

    def _output_value(self, value: ast.expr, raw: bool = False) -> ast.expr:
        """Wrap a value in ``_e`` (escaping) or ``_s`` (plain text).

        ``_e`` converts to text itself so Markup values are detected before
        conversion.
        """
        if self._autoescape and not raw:
            return call("_e", value)
        return call("_s", value)

    def _compile_output(self, node: Any) -> list[ast.stmt]:
        value = self._output_value(self._compile_expr(node.expr), node.raw)
        return [self._emit_output(value)]

    def _compile_assign(self, node: Any) -> list[ast.stmt]:
        """{var $x = expr} → ctx['x'] = expr"""
        return [ctx_store(node.name, self._compile_expr(node.value))]

    def _compile_fragment(self, node: Any) -> list[ast.stmt]:
        return self._compile_body(node.body)
