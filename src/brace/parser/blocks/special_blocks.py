"""Special tags: var, filter, autoescape, cycle, raw."""

from __future__ import annotations

from typing import TYPE_CHECKING

from brace._types import TokenType
from brace.nodes import Assign, Autoescape, Capture, Const, Cycle, Filter, Output

if TYPE_CHECKING:
    from brace.nodes import Node
    from brace.parser.core import Parser
    from brace.parser.scope import Scope
    from brace.parser.tokens import TokenStream


def var_open(parser: Parser, tokens: TokenStream, scope: Scope) -> Node | None:
    """{var $x = expr} assigns inline; {var $x|mod}...{/var} captures output."""
    name = parser.parse_variable_name()
    if tokens.skip_if(TokenType.ASSIGN):
        value = parser.parse_expression()
        tokens.expect_end()
        scope.closed = True
        return Assign(scope.lineno, scope.col_offset, name, value)
    scope.data["name"] = name
    scope.data["modifiers"] = parser.parse_modifier_chain()
    tokens.expect_end()
    return None


def var_close(parser: Parser, tokens: TokenStream, scope: Scope) -> Capture:
    return Capture(
        scope.lineno,
        scope.col_offset,
        scope.data["name"],
        tuple(scope.body),
        tuple((name, tuple(args)) for name, args in scope.data["modifiers"]),
    )


def filter_open(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    token = tokens.current
    modifiers = parser.parse_modifier_chain()
    tokens.expect_end()
    if not modifiers:
        raise parser.error(
            "{filter} requires at least one modifier",
            token,
            suggestion="Syntax: {filter|upper|truncate:20}...{/filter}",
        )
    scope.data["modifiers"] = modifiers


def filter_close(parser: Parser, tokens: TokenStream, scope: Scope) -> Filter:
    return Filter(
        scope.lineno,
        scope.col_offset,
        tuple((name, tuple(args)) for name, args in scope.data["modifiers"]),
        tuple(scope.body),
    )


def autoescape_open(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    token = tokens.current
    if tokens.at_end():
        enabled = True
    else:
        expr = parser.parse_expression()
        if not (isinstance(expr, Const) and isinstance(expr.value, bool)):
            raise parser.error("{autoescape} expects true or false", token)
        enabled = expr.value
    tokens.expect_end()
    scope.data["enabled"] = enabled


def autoescape_close(parser: Parser, tokens: TokenStream, scope: Scope) -> Autoescape:
    return Autoescape(scope.lineno, scope.col_offset, scope.data["enabled"], tuple(scope.body))


def tag_cycle(parser: Parser, tokens: TokenStream, scope: Scope) -> Cycle:
    values = parser.parse_expression()
    index = None
    if tokens.skip_name("index"):
        tokens.expect(TokenType.ASSIGN)
        index = parser.parse_expression()
    tokens.expect_end()
    return Cycle(scope.lineno, scope.col_offset, values, index)


def tag_raw(parser: Parser, tokens: TokenStream, scope: Scope) -> Output:
    """{raw $expr} prints without auto-escaping."""
    return parser.parse_output(tokens.current, raw=True)
