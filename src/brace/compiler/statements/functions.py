"""Registered function tag compilation.

Function results are written without escaping: a function tag produces
markup the same way a built-in tag does.
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from brace.compiler.utils import call

if TYPE_CHECKING:
    from collections.abc import Sequence

    from brace.nodes import Node


class FunctionCompilationMixin:
    """Mixin for compiling ``{function}`` and ``{blockfunction}...{/blockfunction}`` tags.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    if TYPE_CHECKING:

        def _compile_expr(self, node: Any) -> ast.expr: ...
        def _compile_args(self, nodes: Any) -> list[ast.expr]: ...
        def _compile_kwargs(self, pairs: Any) -> ast.Dict: ...
        def _emit_output(self, value_expr: ast.expr) -> ast.stmt: ...
        def _capture_body(self, body: Sequence[Node]) -> tuple[list[ast.stmt], ast.expr]: ...

    def _compile_function_call(self, node: Any) -> list[ast.stmt]:
        """_s(_call_function('name', {kwargs}, [args], smart))"""
        result = call(
            "_call_function",
            ast.Constant(value=node.name),
            self._compile_kwargs(node.kwargs),
            ast.List(elts=self._compile_args(node.args), ctx=ast.Load()),
            ast.Constant(value=node.smart),
        )
        return [self._emit_output(call("_s", result))]

    def _compile_block_function_call(self, node: Any) -> list[ast.stmt]:
        """Capture the body, then _s(_call_block_function('name', {kwargs}, body))"""
        stmts, content = self._capture_body(node.body)
        result = call(
            "_call_block_function",
            ast.Constant(value=node.name),
            self._compile_kwargs(node.kwargs),
            content,
        )
        stmts.append(self._emit_output(call("_s", result)))
        return stmts
