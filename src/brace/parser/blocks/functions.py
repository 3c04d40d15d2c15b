"""Parsers for registered function tags.

The standard parser passes every ``name=value`` attribute as one mapping;
the smart parser binds attributes to the callable's keyword parameters and
checks them against its signature at compile time.
"""

from __future__ import annotations

import inspect
from typing import TYPE_CHECKING

from brace.nodes import BlockFunctionCall, Fragment, FunctionCall

if TYPE_CHECKING:
    from brace.nodes import Node
    from brace.parser.core import Parser
    from brace.parser.scope import Scope
    from brace.parser.tokens import TokenStream


def std_function_parser(parser: Parser, tokens: TokenStream, scope: Scope) -> FunctionCall:
    kwargs = parser.parse_attributes()
    return FunctionCall(scope.lineno, scope.col_offset, scope.name, tuple(kwargs))


def smart_function_parser(parser: Parser, tokens: TokenStream, scope: Scope) -> FunctionCall:
    token = tokens.current
    kwargs = parser.parse_attributes()
    func = scope.definition.function
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        signature = None
    if signature is not None:
        params = signature.parameters
        accepts_any = any(p.kind is inspect.Parameter.VAR_KEYWORD for p in params.values())
        given = {name for name, _ in kwargs}
        if not accepts_any:
            for name in given:
                if name not in params:
                    raise parser.error(
                        f"Function {{{scope.name}}} has no parameter '{name}'",
                        token,
                        suggestion=f"Parameters: {', '.join(params) or '(none)'}",
                    )
        for name, param in params.items():
            if (
                param.default is inspect.Parameter.empty
                and param.kind
                in (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)
                and name not in given
            ):
                raise parser.error(
                    f"Function {{{scope.name}}} requires parameter '{name}'", token
                )
    return FunctionCall(scope.lineno, scope.col_offset, scope.name, tuple(kwargs), smart=True)


def block_function_open(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    scope.data["kwargs"] = tuple(parser.parse_attributes())


def block_function_close(parser: Parser, tokens: TokenStream, scope: Scope) -> BlockFunctionCall:
    body = [node for _, branch in scope.branches for node in branch]
    return BlockFunctionCall(
        scope.lineno, scope.col_offset, scope.name, scope.data["kwargs"], tuple(body)
    )


def std_close(parser: Parser, tokens: TokenStream, scope: Scope) -> Node:
    """Default close for custom block compilers: splice the body in place."""
    body = [node for _, branch in scope.branches for node in branch]
    return Fragment(scope.lineno, scope.col_offset, tuple(body))
