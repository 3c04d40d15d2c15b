"""AST construction shorthands shared by the compiler mixins."""

from __future__ import annotations

import ast
from collections.abc import Sequence



def name_load(name: str) -> ast.Name:
    return ast.Name(id=name, ctx=ast.Load())


def name_store(name: str) -> ast.Name:
    return ast.Name(id=name, ctx=ast.Store())


def call(func: str | ast.expr, *args: ast.expr) -> ast.Call:
    """Build ``func(*args)``; a string names a global or local."""
    if isinstance(func, str):
        func = name_load(func)
    return ast.Call(func=func, args=list(args), keywords=[])


def assign(target: str | ast.expr, value: ast.expr) -> ast.Assign:
    if isinstance(target, str):
        target = name_store(target)
    return ast.Assign(targets=[target], value=value)


def ctx_store(var_name: str, value: ast.expr) -> ast.Assign:
    """``ctx['name'] = value``"""
    return ast.Assign(
        targets=[
            ast.Subscript(
                value=name_load("ctx"),
                slice=ast.Constant(value=var_name),
                ctx=ast.Store(),
            )
        ],
        value=value,
    )


def join_buffer(buf: str) -> ast.Call:
    """``''.join(buf)``"""
    return ast.Call(
        func=ast.Attribute(value=ast.Constant(value=""), attr="join", ctx=ast.Load()),
        args=[name_load(buf)],
        keywords=[],
    )


def function_def(
    name: str,
    params: Sequence[str],
    body: list[ast.stmt],
    defaults: Sequence[ast.expr] = (),
) -> ast.FunctionDef:
    return ast.FunctionDef(
        name=name,
        args=ast.arguments(
            posonlyargs=[],
            args=[ast.arg(arg=param) for param in params],
            vararg=None,
            kwonlyargs=[],
            kw_defaults=[],
            kwarg=None,
            defaults=list(defaults),
        ),
        body=body,
        decorator_list=[],
        returns=None,
        type_params=[],
    )
