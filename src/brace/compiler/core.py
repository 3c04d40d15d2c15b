"""Compiler: template AST to a Python code object.

The Compiler transforms the Brace AST into a Python ``ast.Module`` and
compiles it to a code object. Uses a mixin-based design for
maintainability.

Design Principles:
1. **AST-to-AST**: Generate ``ast.Module``, not source strings
2. **StringBuilder**: Output via ``buf.append()``, join at end
3. **Local caching**: Cache ``_escape``, ``_str``, ``buf.append`` as locals
4. **O(1) dispatch**: Dict-based node type → handler lookup

Generated module layout::

    def _block_0_content(ctx, _blocks, _level): ...         # str
    def _block_0_content_stream(ctx, _blocks, _level): ...  # generator
    def _macro_0(_args, _depth): ...                        # Markup
    _BLOCKS = {'content': (_block_0_content, _block_0_content_stream)}
    _USES = ('layout/regions.tpl',)

    def render(ctx, _blocks=None):
        if _blocks is None: _blocks = {}
        _register_blocks(_blocks, _BLOCKS, _USES)
        return _extends('base.tpl', ctx, _blocks)   # child templates
        ...                                          # or the body itself

    def render_stream(ctx, _blocks=None): ...

``_blocks`` maps a region name to its implementations, most derived first.
A region site renders ``_blocks[name][0]``; ``{parent}`` inside the
implementation at position ``_level`` renders position ``_level + 1``.
"""

from __future__ import annotations

import ast
import re
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from typing import TYPE_CHECKING

from brace.compiler.expressions import ExpressionCompilationMixin
from brace.compiler.statements import StatementCompilationMixin
from brace.compiler.utils import assign, call, ctx_store, function_def, join_buffer, name_load
from brace.nodes import Assign, Capture
from brace.options import Option

if TYPE_CHECKING:
    import types

    from brace.environment.core import Environment
    from brace.nodes import Block, Macro, Node
    from brace.nodes import Template as TemplateNode

_IDENT_RE = re.compile(r"\W")


class Compiler(ExpressionCompilationMixin, StatementCompilationMixin):
    """Compile a Brace Template AST to a Python code object.

    The generated code defines ``render(ctx, _blocks=None)`` and
    ``render_stream(ctx, _blocks=None)``, one function pair per region and
    one function per macro. A compiler instance is single-use per call to
    :meth:`compile` and not thread-safe.

    Attributes:
        _env: Parent Environment (post-filters)
        _options: Option mask the template is compiled with
        _streaming: When True, output statements generate ``yield``
        _append_name: Local that output is appended to in StringBuilder mode
        _escape_stack: Auto-escape policy per open ``{autoescape}`` region
        _macro_names: (origin, name) → generated function name
        _lenient: Compile variable reads that never raise (``$x?`` tests)

    Node Dispatch:
        Uses O(1) dict lookup for node type → handler::

            dispatch = {"Data": self._compile_data, "Output": ..., ...}
            handler = dispatch[type(node).__name__]
    """

    __slots__ = (
        "_append_name",
        "_block_names",
        "_counter",
        "_env",
        "_escape_stack",
        "_lenient",
        "_macro_names",
        "_name",
        "_node_dispatch",
        "_options",
        "_streaming",
    )

    # Node types that can cause runtime errors and should track line numbers
    _LINE_TRACKED_NODES = frozenset(
        {
            "Output",
            "Assign",
            "Capture",
            "If",
            "Foreach",
            "ForRange",
            "While",
            "Switch",
            "Include",
            "MacroCall",
            "FunctionCall",
            "BlockFunctionCall",
            "Cycle",
            "Filter",
        }
    )

    def __init__(self, env: Environment, options: Option | int = Option.NONE):
        self._env = env
        self._options = Option(options)
        self._name: str | None = None
        self._streaming = False
        self._append_name = "_append"
        self._escape_stack: list[bool] = []
        self._macro_names: dict[tuple[str, str], str] = {}
        self._block_names: dict[str, str] = {}
        self._counter = 0
        self._lenient = False

    def compile(
        self,
        node: TemplateNode,
        name: str | None = None,
        filename: str | None = None,
    ) -> types.CodeType:
        """Compile template AST to a code object ready for ``exec()``."""
        self._name = name
        self._counter = 0
        self._escape_stack = [Option.AUTO_ESCAPE in self._options]

        module = self._compile_template(node)
        for post_filter in self._env.post_filters:
            module = post_filter(module, name)
        ast.fix_missing_locations(module)
        return compile(module, filename or name or "<template>", "exec")

    def _next_id(self) -> int:
        self._counter += 1
        return self._counter

    def _emit_output(self, value_expr: ast.expr) -> ast.stmt:
        """Generate output statement: yield (streaming) or append (StringBuilder).

        All output generation in compiled templates flows through this method,
        allowing the compiler to switch between StringBuilder and generator modes.
        """
        if self._streaming:
            return ast.Expr(value=ast.Yield(value=value_expr))
        return ast.Expr(value=call(self._append_name, value_expr))

    @property
    def _autoescape(self) -> bool:
        return self._escape_stack[-1]

    @contextmanager
    def _escape_policy(self, enabled: bool | None) -> Iterator[None]:
        """Compile under the policy of the {autoescape} region a definition sat in."""
        self._escape_stack.append(self._escape_stack[0] if enabled is None else enabled)
        try:
            yield
        finally:
            self._escape_stack.pop()

    # ------------------------------------------------------------------
    # Module assembly
    # ------------------------------------------------------------------

    def _compile_template(self, node: TemplateNode) -> ast.Module:
        self._block_names = {
            name: f"_block_{index}_{_IDENT_RE.sub('_', name)}"
            for index, name in enumerate(node.blocks)
        }
        self._macro_names = {key: f"_macro_{index}" for index, key in enumerate(node.macros)}

        module_body: list[ast.stmt] = []
        for key, macro in node.macros.items():
            module_body.append(self._make_macro_function(self._macro_names[key], macro))

        for block_name, block_node in node.blocks.items():
            module_body.append(self._make_block_function(block_name, block_node))
            self._streaming = True
            module_body.append(self._make_block_function(block_name, block_node))
            self._streaming = False

        module_body.append(
            assign(
                "_BLOCKS",
                ast.Dict(
                    keys=[ast.Constant(value=name) for name in node.blocks],
                    values=[
                        ast.Tuple(
                            elts=[name_load(fn), name_load(f"{fn}_stream")],
                            ctx=ast.Load(),
                        )
                        for fn in self._block_names.values()
                    ],
                ),
            )
        )
        module_body.append(
            assign(
                "_USES",
                ast.Tuple(elts=[ast.Constant(value=use) for use in node.uses], ctx=ast.Load()),
            )
        )

        module_body.append(self._make_render_function(node))
        self._streaming = True
        module_body.append(self._make_render_function(node))
        self._streaming = False

        return ast.Module(body=module_body, type_ignores=[])

    def _prologue(self) -> list[ast.stmt]:
        """Local caches shared by every generated function."""
        stmts: list[ast.stmt] = [assign("_e", name_load("_escape")), assign("_s", name_load("_str"))]
        if not self._streaming:
            stmts.append(assign("buf", ast.List(elts=[], ctx=ast.Load())))
            stmts.append(
                assign(
                    "_append",
                    ast.Attribute(value=name_load("buf"), attr="append", ctx=ast.Load()),
                )
            )
        return stmts

    def _epilogue(self) -> list[ast.stmt]:
        if self._streaming:
            # Unreachable yield keeps empty bodies generator functions
            return [ast.Return(value=None), ast.Expr(value=ast.Yield(value=None))]
        return [ast.Return(value=join_buffer("buf"))]

    def _make_block_function(self, name: str, block_node: Block) -> ast.FunctionDef:
        """``_block_N_name(ctx, _blocks, _level)``, or its ``_stream`` variant."""
        body = [assign("_depth", ast.Constant(value=0)), *self._prologue()]
        with self._escape_policy(block_node.autoescape):
            body.extend(self._compile_body(block_node.body))
        body.extend(self._epilogue())
        fn = self._block_names[name]
        if self._streaming:
            fn += "_stream"
        return function_def(fn, ("ctx", "_blocks", "_level"), body)

    def _make_macro_function(self, fn: str, macro: Macro) -> ast.FunctionDef:
        """``_macro_N(_args, _depth)`` renders the macro body in a fresh scope.

        Macro bodies always use the StringBuilder path and return Markup so
        the call site does not escape them again.
        """
        body: list[ast.stmt] = [assign("ctx", ast.Dict(keys=[], values=[]))]
        for param, default in macro.params:
            given = ast.Subscript(
                value=name_load("_args"), slice=ast.Constant(value=param), ctx=ast.Load()
            )
            fallback = self._compile_expr(default) if default is not None else ast.Constant(None)
            body.append(
                ctx_store(
                    param,
                    ast.IfExp(
                        test=ast.Compare(
                            left=ast.Constant(value=param),
                            ops=[ast.In()],
                            comparators=[name_load("_args")],
                        ),
                        body=given,
                        orelse=fallback,
                    ),
                )
            )
        body.extend(self._prologue())
        with self._escape_policy(macro.autoescape):
            body.extend(self._compile_body(macro.body))
        body.append(ast.Return(value=call("_Markup", join_buffer("buf"))))
        return function_def(fn, ("_args", "_depth"), body)

    def _make_render_function(self, node: TemplateNode) -> ast.FunctionDef:
        """``render(ctx, _blocks=None)`` or ``render_stream(ctx, _blocks=None)``.

        Child templates run their top-level assignments, then delegate to the
        parent with the collected regions; everything else they contain is
        ignored.
        """
        body: list[ast.stmt] = [
            ast.If(
                test=ast.Compare(
                    left=name_load("_blocks"), ops=[ast.Is()], comparators=[ast.Constant(None)]
                ),
                body=[assign("_blocks", ast.Dict(keys=[], values=[]))],
                orelse=[],
            ),
            assign("_depth", ast.Constant(value=0)),
            ast.Expr(
                value=call(
                    "_register_blocks",
                    name_load("_blocks"),
                    name_load("_BLOCKS"),
                    name_load("_USES"),
                )
            ),
        ]

        if node.extends is not None:
            body.extend(self._prologue())
            for child in node.body:
                if isinstance(child, (Assign, Capture)):
                    body.extend(self._compile_node(child))
            body.append(self._make_line_marker(node.extends.lineno))
            parent_call_args = (
                self._compile_expr(node.extends),
                name_load("ctx"),
                name_load("_blocks"),
            )
            if self._streaming:
                body.append(
                    ast.Expr(value=ast.YieldFrom(value=call("_extends_stream", *parent_call_args)))
                )
                body.extend(self._epilogue())
            else:
                body.append(ast.Return(value=call("_extends", *parent_call_args)))
        else:
            body.extend(self._prologue())
            body.extend(self._compile_body(node.body))
            body.extend(self._epilogue())

        return function_def(
            "render_stream" if self._streaming else "render",
            ("ctx", "_blocks"),
            body,
            defaults=[ast.Constant(value=None)],
        )

    # ------------------------------------------------------------------
    # Node dispatch
    # ------------------------------------------------------------------

    def _make_line_marker(self, lineno: int) -> ast.stmt:
        """``_get_render_ctx().line = lineno`` for runtime error locations."""
        return ast.Assign(
            targets=[
                ast.Attribute(value=call("_get_render_ctx"), attr="line", ctx=ast.Store())
            ],
            value=ast.Constant(value=lineno),
        )

    def _compile_body(self, nodes: Sequence[Node]) -> list[ast.stmt]:
        stmts: list[ast.stmt] = []
        for child in nodes:
            stmts.extend(self._compile_node(child))
        return stmts

    def _compile_node(self, node: Node) -> list[ast.stmt]:
        """Compile a single AST node to Python statements.

        Nodes that can fail at run time get a line marker first.
        """
        node_type = type(node).__name__
        stmts: list[ast.stmt] = []
        if node_type in self._LINE_TRACKED_NODES:
            stmts.append(self._make_line_marker(node.lineno))
        handler = self._get_node_dispatch().get(node_type)
        if handler is None:
            raise TypeError(f"Cannot compile node {node_type}")
        stmts.extend(handler(node))
        return stmts

    def _get_node_dispatch(self) -> dict[str, Callable[[Node], list[ast.stmt]]]:
        """Get node type dispatch table (cached on first call)."""
        if not hasattr(self, "_node_dispatch"):
            self._node_dispatch = {
                "Data": self._compile_data,
                "Output": self._compile_output,
                "Assign": self._compile_assign,
                "Fragment": self._compile_fragment,
                "If": self._compile_if,
                "Foreach": self._compile_foreach,
                "ForRange": self._compile_for_range,
                "While": self._compile_while,
                "Switch": self._compile_switch,
                "Break": self._compile_break,
                "Continue": self._compile_continue,
                "Block": self._compile_block,
                "Parent": self._compile_parent,
                "Include": self._compile_include,
                "MacroCall": self._compile_macro_call,
                "Capture": self._compile_capture,
                "Filter": self._compile_filter,
                "Autoescape": self._compile_autoescape,
                "Cycle": self._compile_cycle,
                "FunctionCall": self._compile_function_call,
                "BlockFunctionCall": self._compile_block_function_call,
            }
        return self._node_dispatch
