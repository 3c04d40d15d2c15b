"""Control flow tags: if, foreach, for, while, switch, break, continue.

Each function is a tag callback taking ``(parser, tokens, scope)``. Open
callbacks stash what they parsed in ``scope.data``; nested tags start new
branches; close callbacks assemble the node.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from brace._types import TokenType
from brace.environment.exceptions import ErrorCode
from brace.nodes import Break, Continue, Data, Foreach, ForRange, If, Node, Switch, While
from brace.parser.tokens import describe

if TYPE_CHECKING:
    from brace.nodes import Expr
    from brace.parser.core import Parser
    from brace.parser.scope import Scope
    from brace.parser.tokens import TokenStream

_LOOP_VARS = ("index", "first", "last")


def _loop_variables(
    parser: Parser,
    tokens: TokenStream,
    scope: Scope,
    expressions: tuple[str, ...] = (),
) -> dict[str, Expr]:
    """Parse ``index=$i first=$f last=$l`` (plus expression attributes)."""
    exprs: dict[str, Expr] = {}
    while not tokens.at_end():
        token = tokens.current
        if token.type is not TokenType.NAME:
            raise parser.error(f"Unexpected {describe(token)} in {{{scope.name}}}", token)
        tokens.advance()
        tokens.expect(TokenType.ASSIGN)
        if token.value in _LOOP_VARS:
            if token.value in scope.data:
                raise parser.error(f"Duplicate attribute '{token.value}'", token)
            scope.data[token.value] = parser.parse_variable_name()
        elif token.value in expressions:
            if token.value in exprs:
                raise parser.error(f"Duplicate attribute '{token.value}'", token)
            exprs[token.value] = parser.parse_expression()
        else:
            allowed = ", ".join(expressions + _LOOP_VARS)
            raise parser.error(
                f"Unknown attribute '{token.value}' for {{{scope.name}}}",
                token,
                suggestion=f"Allowed attributes: {allowed}",
            )
    return exprs


# ---------------------------------------------------------------------------
# {if} {elseif} {else} {/if}
# ---------------------------------------------------------------------------


def if_open(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    scope.data["tests"] = [parser.parse_expression()]
    tokens.expect_end()


def tag_elseif(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    if scope.has_branch("else"):
        raise parser.error("{elseif} after {else}", tokens.current, code=ErrorCode.MISPLACED_TAG)
    scope.data["tests"].append(parser.parse_expression())
    tokens.expect_end()
    scope.branch("elseif")


def tag_else(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    if scope.has_branch("else"):
        raise parser.error("Duplicate {else}", tokens.current, code=ErrorCode.MISPLACED_TAG)
    tokens.expect_end()
    scope.branch("else")


def if_close(parser: Parser, tokens: TokenStream, scope: Scope) -> If:
    tests = scope.data["tests"]
    body = tuple(scope.branches[0][1])
    elifs = tuple(
        (test, tuple(branch)) for test, branch in zip(tests[1:], scope.branch_bodies("elseif"))
    )
    else_ = scope.branch_bodies("else")
    return If(
        scope.lineno,
        scope.col_offset,
        tests[0],
        body,
        elifs,
        tuple(else_[0]) if else_ else (),
    )


# ---------------------------------------------------------------------------
# {foreach $list as $key => $value} {foreachelse} {/foreach}
# ---------------------------------------------------------------------------


def foreach_open(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    scope.data["iter"] = parser.parse_expression()
    if not tokens.skip_name("as"):
        raise parser.error(
            f"Expected 'as' in {{foreach}}, got {describe(tokens.current)}",
            tokens.current,
            suggestion="Syntax: {foreach $list as $item} or {foreach $list as $key => $item}",
        )
    first = parser.parse_variable_name()
    if tokens.skip_if(TokenType.DOUBLE_ARROW):
        scope.data["key"] = first
        scope.data["value"] = parser.parse_variable_name()
    else:
        scope.data["value"] = first
    _loop_variables(parser, tokens, scope)


def tag_foreachelse(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    if scope.has_branch("foreachelse"):
        raise parser.error("Duplicate {foreachelse}", tokens.current, code=ErrorCode.MISPLACED_TAG)
    tokens.expect_end()
    scope.branch("foreachelse")


def foreach_close(parser: Parser, tokens: TokenStream, scope: Scope) -> Foreach:
    data = scope.data
    else_ = scope.branch_bodies("foreachelse")
    return Foreach(
        scope.lineno,
        scope.col_offset,
        iter=data["iter"],
        value=data["value"],
        body=tuple(scope.branches[0][1]),
        key=data.get("key"),
        index=data.get("index"),
        first=data.get("first"),
        last=data.get("last"),
        else_=tuple(else_[0]) if else_ else (),
    )


# ---------------------------------------------------------------------------
# {for $i=1 to=10 step=2} {forelse} {/for}
# ---------------------------------------------------------------------------


def for_open(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    start_token = tokens.current
    scope.data["target"] = parser.parse_variable_name()
    tokens.expect(TokenType.ASSIGN)
    scope.data["start"] = parser.parse_expression()
    exprs = _loop_variables(parser, tokens, scope, expressions=("to", "step"))
    if "to" not in exprs:
        raise parser.error(
            "{for} requires a 'to' attribute",
            start_token,
            suggestion="Syntax: {for $i=1 to=10 step=1}",
        )
    scope.data["stop"] = exprs["to"]
    scope.data["step"] = exprs.get("step")


def tag_forelse(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    if scope.has_branch("forelse"):
        raise parser.error("Duplicate {forelse}", tokens.current, code=ErrorCode.MISPLACED_TAG)
    tokens.expect_end()
    scope.branch("forelse")


def for_close(parser: Parser, tokens: TokenStream, scope: Scope) -> ForRange:
    data = scope.data
    else_ = scope.branch_bodies("forelse")
    return ForRange(
        scope.lineno,
        scope.col_offset,
        target=data["target"],
        start=data["start"],
        stop=data["stop"],
        step=data["step"],
        body=tuple(scope.branches[0][1]),
        index=data.get("index"),
        first=data.get("first"),
        last=data.get("last"),
        else_=tuple(else_[0]) if else_ else (),
    )


# ---------------------------------------------------------------------------
# {while}
# ---------------------------------------------------------------------------


def while_open(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    scope.data["test"] = parser.parse_expression()
    tokens.expect_end()


def while_close(parser: Parser, tokens: TokenStream, scope: Scope) -> While:
    return While(scope.lineno, scope.col_offset, scope.data["test"], tuple(scope.body))


# ---------------------------------------------------------------------------
# {switch} {case} {default} {/switch}
# ---------------------------------------------------------------------------


def switch_open(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    scope.data["subject"] = parser.parse_expression()
    scope.data["cases"] = []
    tokens.expect_end()


def tag_case(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    token = tokens.current
    values = parser.parse_expression_list()
    if not values:
        raise parser.error("{case} requires at least one value", token)
    scope.data["cases"].append(tuple(values))
    scope.branch("case")


def tag_default(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    if scope.has_branch("default"):
        raise parser.error("Duplicate {default}", tokens.current, code=ErrorCode.MISPLACED_TAG)
    tokens.expect_end()
    scope.branch("default")


def switch_close(parser: Parser, tokens: TokenStream, scope: Scope) -> Switch:
    leading = scope.branches[0][1]
    for node in leading:
        if not (isinstance(node, Data) and not node.value.strip()):
            raise parser.error(
                "Only whitespace is allowed between {switch} and the first {case}",
                lineno=node.lineno,
                col_offset=node.col_offset,
                code=ErrorCode.MISPLACED_TAG,
            )
    cases = tuple(
        (values, tuple(body))
        for values, body in zip(scope.data["cases"], scope.branch_bodies("case"))
    )
    default = scope.branch_bodies("default")
    return Switch(
        scope.lineno,
        scope.col_offset,
        subject=scope.data["subject"],
        cases=cases,
        default=tuple(default[0]) if default else (),
        has_break=scope.data.get("has_break", False),
    )


# ---------------------------------------------------------------------------
# Floating {break} and {continue}
# ---------------------------------------------------------------------------


def _check_loop_branch(parser: Parser, tokens: TokenStream, scope: Scope, tag: str) -> None:
    if scope.label in ("foreachelse", "forelse"):
        raise parser.error(
            f"{{{tag}}} cannot be used in {{{scope.label}}}",
            tokens.current,
            code=ErrorCode.MISPLACED_TAG,
        )


def tag_break(parser: Parser, tokens: TokenStream, scope: Scope) -> Node:
    token = tokens.current
    _check_loop_branch(parser, tokens, scope, "break")
    tokens.expect_end()
    if scope.name == "switch":
        scope.data["has_break"] = True
    return Break(token.lineno, token.col_offset, scope.name)


def tag_continue(parser: Parser, tokens: TokenStream, scope: Scope) -> Node:
    token = tokens.current
    _check_loop_branch(parser, tokens, scope, "continue")
    tokens.expect_end()
    return Continue(token.lineno, token.col_offset, scope.name)
