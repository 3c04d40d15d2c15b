"""Template structure statement compilation: regions, parent, include, macro calls."""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from brace.compiler.utils import call, name_load


class TemplateStructureMixin:
    """Mixin for compiling template structure statements.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    if TYPE_CHECKING:
        _streaming: bool
        _macro_names: dict[tuple[str, str], str]

        def _compile_expr(self, node: Any) -> ast.expr: ...
        def _compile_kwargs(self, pairs: Any) -> ast.Dict: ...
        def _emit_output(self, value_expr: ast.expr) -> ast.stmt: ...

    def _render_region(self, name: str, level: ast.expr) -> list[ast.stmt]:
        """StringBuilder: _append(_render_block(name, ctx, _blocks, level))
        Streaming: yield from _render_block_stream(name, ctx, _blocks, level)
        """
        args = (ast.Constant(value=name), name_load("ctx"), name_load("_blocks"), level)
        if self._streaming:
            return [ast.Expr(value=ast.YieldFrom(value=call("_render_block_stream", *args)))]
        return [self._emit_output(call("_render_block", *args))]

    def _compile_block(self, node: Any) -> list[ast.stmt]:
        """A region site renders the most derived implementation."""
        return self._render_region(node.name, ast.Constant(value=0))

    def _compile_parent(self, node: Any) -> list[ast.stmt]:
        """{parent} renders the next implementation up the chain, if any."""
        level = ast.BinOp(left=name_load("_level"), op=ast.Add(), right=ast.Constant(value=1))
        return self._render_region(node.block, level)

    def _compile_include(self, node: Any) -> list[ast.stmt]:
        """StringBuilder: _append(_include(name, ctx, vars, optional))
        Streaming: yield from _include_stream(name, ctx, vars, optional)
        """
        args = (
            self._compile_expr(node.template),
            name_load("ctx"),
            self._compile_kwargs(node.vars),
            ast.Constant(value=node.optional),
        )
        if self._streaming:
            return [ast.Expr(value=ast.YieldFrom(value=call("_include_stream", *args)))]
        return [self._emit_output(call("_include", *args))]

    def _compile_macro_call(self, node: Any) -> list[ast.stmt]:
        """_call_macro(_macro_N, 'name', {args}, _depth); output is Markup."""
        fn = self._macro_names[(node.origin, node.name)]
        return [
            self._emit_output(
                call(
                    "_call_macro",
                    name_load(fn),
                    ast.Constant(value=node.name),
                    self._compile_kwargs(node.args),
                    name_load("_depth"),
                )
            )
        ]
