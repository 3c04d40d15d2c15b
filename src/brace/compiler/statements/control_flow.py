"""Control flow statement compilation: if, foreach, for, while, switch.

Loop variables live in ``ctx`` like every other template variable, so they
stay visible after the loop ends, as template authors expect.
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from brace.compiler.utils import assign, call, ctx_store, name_load, name_store

if TYPE_CHECKING:
    from collections.abc import Sequence

    from brace.nodes import Node


def _or_pass(stmts: list[ast.stmt]) -> list[ast.stmt]:
    return stmts or [ast.Pass()]


class ControlFlowMixin:
    """Mixin for compiling control flow statements.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    if TYPE_CHECKING:

        def _next_id(self) -> int: ...
        def _compile_expr(self, node: Any) -> ast.expr: ...
        def _compile_body(self, nodes: Sequence[Node]) -> list[ast.stmt]: ...

    def _compile_if(self, node: Any) -> list[ast.stmt]:
        """Compile {if}...{elseif}...{else}...{/if}."""
        orelse = _or_pass(self._compile_body(node.else_)) if node.else_ else []
        for test, body in reversed(node.elif_):
            orelse = [
                ast.If(
                    test=self._compile_expr(test),
                    body=_or_pass(self._compile_body(body)),
                    orelse=orelse,
                )
            ]
        return [
            ast.If(
                test=self._compile_expr(node.test),
                body=_or_pass(self._compile_body(node.body)),
                orelse=orelse,
            )
        ]

    def _loop_bindings(
        self,
        node: Any,
        index_var: str,
        count_var: str | None,
    ) -> list[ast.stmt]:
        """Assign the ``index=``, ``first=`` and ``last=`` variables of a loop."""
        stmts: list[ast.stmt] = []
        if node.index:
            stmts.append(ctx_store(node.index, name_load(index_var)))
        if node.first:
            stmts.append(
                ctx_store(
                    node.first,
                    ast.Compare(
                        left=name_load(index_var),
                        ops=[ast.Eq()],
                        comparators=[ast.Constant(value=0)],
                    ),
                )
            )
        if node.last and count_var is not None:
            stmts.append(
                ctx_store(
                    node.last,
                    ast.Compare(
                        left=name_load(index_var),
                        ops=[ast.Eq()],
                        comparators=[
                            ast.BinOp(
                                left=name_load(count_var),
                                op=ast.Sub(),
                                right=ast.Constant(value=1),
                            )
                        ],
                    ),
                )
            )
        return stmts

    def _make_loop(
        self,
        node: Any,
        items_var: str,
        target: ast.expr,
        bindings: list[ast.stmt],
    ) -> list[ast.stmt]:
        """for target in _enumerate(items): ... plus the empty-input branch."""
        uid = self._next_id()
        count_var = f"_n_{uid}" if node.last else None
        index_var = target.elts[0].id  # type: ignore[attr-defined]
        body = [
            *bindings,
            *self._loop_bindings(node, index_var, count_var),
            *self._compile_body(node.body),
        ]
        stmts: list[ast.stmt] = []
        if count_var is not None:
            stmts.append(assign(count_var, call("_len", name_load(items_var))))
        stmts.append(
            ast.For(
                target=target,
                iter=call("_enumerate", name_load(items_var)),
                body=_or_pass(body),
                orelse=[],
            )
        )
        if node.else_:
            return [
                ast.If(
                    test=name_load(items_var),
                    body=stmts,
                    orelse=_or_pass(self._compile_body(node.else_)),
                )
            ]
        return stmts

    def _compile_foreach(self, node: Any) -> list[ast.stmt]:
        """Compile {foreach $list as $k => $v}...{foreachelse}...{/foreach}.

        Generates::

            _items_N = _loop_items(list)
            if _items_N:
                for _i_N, (_k_N, _v_N) in _enumerate(_items_N):
                    ctx['v'] = _v_N
                    ...
            else:
                ...
        """
        uid = self._next_id()
        items_var, index_var = f"_items_{uid}", f"_i_{uid}"
        key_var, value_var = f"_k_{uid}", f"_v_{uid}"
        target = ast.Tuple(
            elts=[
                name_store(index_var),
                ast.Tuple(elts=[name_store(key_var), name_store(value_var)], ctx=ast.Store()),
            ],
            ctx=ast.Store(),
        )
        bindings = [ctx_store(node.value, name_load(value_var))]
        if node.key:
            bindings.append(ctx_store(node.key, name_load(key_var)))
        return [
            assign(items_var, call("_loop_items", self._compile_expr(node.iter))),
            *self._make_loop(node, items_var, target, bindings),
        ]

    def _compile_for_range(self, node: Any) -> list[ast.stmt]:
        """Compile {for $i=start to=stop step=n}...{forelse}...{/for}."""
        uid = self._next_id()
        items_var, index_var, value_var = f"_range_{uid}", f"_i_{uid}", f"_v_{uid}"
        step = self._compile_expr(node.step) if node.step is not None else ast.Constant(None)
        target = ast.Tuple(elts=[name_store(index_var), name_store(value_var)], ctx=ast.Store())
        return [
            assign(
                items_var,
                call(
                    "_for_range",
                    self._compile_expr(node.start),
                    self._compile_expr(node.stop),
                    step,
                ),
            ),
            *self._make_loop(
                node, items_var, target, [ctx_store(node.target, name_load(value_var))]
            ),
        ]

    def _compile_while(self, node: Any) -> list[ast.stmt]:
        return [
            ast.While(
                test=self._compile_expr(node.test),
                body=_or_pass(self._compile_body(node.body)),
                orelse=[],
            )
        ]

    def _compile_switch(self, node: Any) -> list[ast.stmt]:
        """Compile {switch}: an if/elif chain over a temporary.

        Cases never fall through. When a {break} targets the switch the chain
        is wrapped in ``try/except _SwitchBreak``.
        """
        subject = f"_sw_{self._next_id()}"
        orelse = self._compile_body(node.default)
        for values, body in reversed(node.cases):
            tests = [
                ast.Compare(
                    left=name_load(subject), ops=[ast.Eq()], comparators=[self._compile_expr(value)]
                )
                for value in values
            ]
            test = tests[0] if len(tests) == 1 else ast.BoolOp(op=ast.Or(), values=tests)
            orelse = [ast.If(test=test, body=_or_pass(self._compile_body(body)), orelse=orelse)]
        stmts: list[ast.stmt] = [assign(subject, self._compile_expr(node.subject)), *orelse]
        if node.has_break:
            return [
                ast.Try(
                    body=stmts,
                    handlers=[
                        ast.ExceptHandler(
                            type=name_load("_SwitchBreak"), name=None, body=[ast.Pass()]
                        )
                    ],
                    orelse=[],
                    finalbody=[],
                )
            ]
        return stmts

    def _compile_break(self, node: Any) -> list[ast.stmt]:
        if node.owner == "switch":
            return [ast.Raise(exc=call("_SwitchBreak"), cause=None)]
        return [ast.Break()]

    def _compile_continue(self, node: Any) -> list[ast.stmt]:
        return [ast.Continue()]
