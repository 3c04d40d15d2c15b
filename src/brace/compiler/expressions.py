"""Expression compilation for the Brace compiler.

Every expression node becomes a Python ``ast.expr``. Operators with PHP-like
semantics that Python lacks (``~``, ``===``, ``xor``, ``in`` on strings)
compile to calls of runtime helpers from :mod:`brace.template.helpers`;
variable reads go through the ``ctx`` dict.
"""

from __future__ import annotations

import ast
from typing import TYPE_CHECKING, Any

from brace.compiler.utils import call, name_load
from brace.options import Option

if TYPE_CHECKING:
    from brace.nodes import Expr


_BINOPS: dict[str, type[ast.operator]] = {
    "+": ast.Add,
    "-": ast.Sub,
    "*": ast.Mult,
    "/": ast.Div,
    "%": ast.Mod,
}

_CMPOPS: dict[str, type[ast.cmpop]] = {
    "==": ast.Eq,
    "!=": ast.NotEq,
    "<": ast.Lt,
    ">": ast.Gt,
    "<=": ast.LtE,
    ">=": ast.GtE,
}


class ExpressionCompilationMixin:
    """Mixin for compiling expression nodes.

    Host attributes and cross-mixin dependencies are declared via inline
    TYPE_CHECKING blocks.
    """

    if TYPE_CHECKING:
        _options: Option
        _lenient: bool

    def _compile_expr(self, node: Expr) -> ast.expr:
        handler = getattr(self, f"_expr_{type(node).__name__}", None)
        if handler is None:
            raise TypeError(f"Cannot compile expression {type(node).__name__}")
        return handler(node)

    def _compile_args(self, nodes: Any) -> list[ast.expr]:
        return [self._compile_expr(arg) for arg in nodes]

    def _compile_kwargs(self, pairs: Any) -> ast.Dict:
        """``(name, expr)`` pairs → ``{'name': expr, ...}``"""
        return ast.Dict(
            keys=[ast.Constant(value=name) for name, _ in pairs],
            values=[self._compile_expr(value) for _, value in pairs],
        )

    def _apply_modifiers(self, value: ast.expr, modifiers: Any) -> ast.expr:
        """Wrap ``value`` in ``_mod('name')(value, *args)`` for each modifier."""
        for name, args in modifiers:
            value = ast.Call(
                func=call("_mod", ast.Constant(value=name)),
                args=[value, *self._compile_args(args)],
                keywords=[],
            )
        return value

    # ------------------------------------------------------------------
    # Leaves
    # ------------------------------------------------------------------

    def _expr_Const(self, node: Any) -> ast.expr:
        return ast.Constant(value=node.value)

    def _expr_Var(self, node: Any) -> ast.expr:
        if Option.FORCE_VERIFY in self._options and not self._lenient:
            return call("_lookup", name_load("ctx"), ast.Constant(value=node.name))
        return ast.Call(
            func=ast.Attribute(value=name_load("ctx"), attr="get", ctx=ast.Load()),
            args=[ast.Constant(value=node.name)],
            keywords=[],
        )

    def _expr_SystemVar(self, node: Any) -> ast.expr:
        return call(
            "_system",
            name_load("ctx"),
            ast.Tuple(elts=[ast.Constant(value=part) for part in node.path], ctx=ast.Load()),
        )

    def _expr_ListExpr(self, node: Any) -> ast.expr:
        return ast.List(elts=self._compile_args(node.items), ctx=ast.Load())

    def _expr_DictExpr(self, node: Any) -> ast.expr:
        return ast.Dict(keys=self._compile_args(node.keys), values=self._compile_args(node.values))

    def _expr_Concat(self, node: Any) -> ast.expr:
        """Interpolated string: ``''.join([_str(part), ...])``"""
        parts: list[ast.expr] = []
        for part in node.nodes:
            if type(part).__name__ == "Const" and isinstance(part.value, str):
                parts.append(ast.Constant(value=part.value))
            else:
                parts.append(call("_str", self._compile_expr(part)))
        return ast.Call(
            func=ast.Attribute(value=ast.Constant(value=""), attr="join", ctx=ast.Load()),
            args=[ast.List(elts=parts, ctx=ast.Load())],
            keywords=[],
        )

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def _expr_Getattr(self, node: Any) -> ast.expr:
        return call("_getattr", self._compile_expr(node.obj), ast.Constant(value=node.attr))

    def _expr_Getitem(self, node: Any) -> ast.expr:
        return call("_getitem", self._compile_expr(node.obj), self._compile_expr(node.key))

    def _expr_Property(self, node: Any) -> ast.expr:
        return call("_property", self._compile_expr(node.obj), ast.Constant(value=node.name))

    def _expr_MethodCall(self, node: Any) -> ast.expr:
        method = call("_method", self._compile_expr(node.obj), ast.Constant(value=node.name))
        return ast.Call(func=method, args=self._compile_args(node.args), keywords=[])

    def _expr_FuncCall(self, node: Any) -> ast.expr:
        func = call("_func", ast.Constant(value=node.name))
        return ast.Call(func=func, args=self._compile_args(node.args), keywords=[])

    def _expr_Modifier(self, node: Any) -> ast.expr:
        return self._apply_modifiers(
            self._compile_expr(node.value), [(node.name, node.args)]
        )

    # ------------------------------------------------------------------
    # Operators
    # ------------------------------------------------------------------

    def _expr_BinOp(self, node: Any) -> ast.expr:
        left = self._compile_expr(node.left)
        right = self._compile_expr(node.right)
        if node.op == "~":
            return call("_concat", left, right)
        return ast.BinOp(left=left, op=_BINOPS[node.op](), right=right)

    def _expr_UnaryOp(self, node: Any) -> ast.expr:
        operand = self._compile_expr(node.operand)
        if node.op == "not":
            return ast.UnaryOp(op=ast.Not(), operand=operand)
        if node.op == "-":
            return ast.UnaryOp(op=ast.USub(), operand=operand)
        return ast.UnaryOp(op=ast.UAdd(), operand=operand)

    def _expr_Compare(self, node: Any) -> ast.expr:
        left = self._compile_expr(node.left)
        right = self._compile_expr(node.right)
        op = node.op
        if op in ("===", "!=="):
            result: ast.expr = call("_identical", left, right)
        elif op in ("in", "not in"):
            result = call("_contains", left, right)
        else:
            return ast.Compare(left=left, ops=[_CMPOPS[op]()], comparators=[right])
        if op in ("!==", "not in"):
            return ast.UnaryOp(op=ast.Not(), operand=result)
        return result

    def _expr_BoolOp(self, node: Any) -> ast.expr:
        """``&&``/``||`` yield booleans like their PHP counterparts."""
        left = self._compile_expr(node.left)
        right = self._compile_expr(node.right)
        if node.op == "xor":
            return call("_xor", left, right)
        op = ast.And() if node.op == "and" else ast.Or()
        return call("_bool", ast.BoolOp(op=op, values=[left, right]))

    def _expr_CondExpr(self, node: Any) -> ast.expr:
        test = self._compile_expr(node.test)
        if_false = self._compile_expr(node.if_false)
        if node.if_true is None:
            # $a ?: $b
            return ast.BoolOp(op=ast.Or(), values=[test, if_false])
        return ast.IfExp(test=test, body=self._compile_expr(node.if_true), orelse=if_false)

    def _expr_Test(self, node: Any) -> ast.expr:
        """``$a?`` (set and not empty) or ``$a!`` (set); never raises on undefined."""
        saved, self._lenient = self._lenient, True
        try:
            value = self._compile_expr(node.value)
        finally:
            self._lenient = saved
        if node.strict:
            return ast.Compare(left=value, ops=[ast.IsNot()], comparators=[ast.Constant(None)])
        return call("_bool", value)
