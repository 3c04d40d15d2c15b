"""Template structure tags: extends, block, parent, use, include, insert,
import and macro.

Static template names (string literals) are resolved at compile time so
their freshness tokens become dependencies of the including template and
inheritance cycles are caught before anything renders.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from brace._types import TokenType
from brace.environment.exceptions import ErrorCode, TemplateNotFoundError
from brace.nodes import Block, Const, Include, Macro, Parent
from brace.options import Option
from brace.parser.tokens import describe

if TYPE_CHECKING:
    from brace._types import Token
    from brace.nodes import Expr, Node
    from brace.parser.core import Parser
    from brace.parser.scope import Scope
    from brace.parser.tokens import TokenStream

logger = logging.getLogger(__name__)


def _static_name(expr: Expr) -> str | None:
    if isinstance(expr, Const) and isinstance(expr.value, str):
        return expr.value
    return None


def _expect_static_name(parser: Parser, tokens: TokenStream, tag: str) -> tuple[str, Token]:
    token = tokens.current
    if token.type is not TokenType.STRING:
        raise parser.error(
            f"{{{tag}}} requires a quoted template name, got {describe(token)}",
            token,
        )
    tokens.advance()
    return token.value, token


def _require_top_level(parser: Parser, tokens: TokenStream, tag: str) -> None:
    if parser.scopes:
        raise parser.error(
            f"{{{tag}}} must be used at the top level of a template",
            tokens.current,
            code=ErrorCode.MISPLACED_TAG,
        )


# ---------------------------------------------------------------------------
# Inheritance
# ---------------------------------------------------------------------------


def tag_extends(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    token = tokens.current
    _require_top_level(parser, tokens, "extends")
    if parser.extends is not None:
        raise parser.error("Only one {extends} is allowed per template", token)
    expr = parser.parse_expression()
    tokens.expect_end()
    name = _static_name(expr)
    if name is not None:
        parser.load_template(name)
    parser.extends = expr


def tag_use(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    _require_top_level(parser, tokens, "use")
    name, _ = _expect_static_name(parser, tokens, "use")
    tokens.expect_end()
    parser.load_template(name)
    if name not in parser.uses:
        parser.uses.append(name)


def block_open(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    token = tokens.current
    if parser.find_scope("macro") is not None:
        raise parser.error(
            "{block} cannot be defined inside a {macro}", token, code=ErrorCode.MISPLACED_TAG
        )
    if token.type is TokenType.STRING or token.type is TokenType.NAME:
        tokens.advance()
    else:
        raise parser.error(f"Expected region name, got {describe(token)}", token)
    tokens.expect_end()
    name = token.value
    if name in parser.blocks or any(
        s.name == "block" and s.data.get("name") == name for s in parser.scopes
    ):
        raise parser.error(f"Region '{name}' is already defined", token)
    scope.data["name"] = name


def block_close(parser: Parser, tokens: TokenStream, scope: Scope) -> Block:
    block = Block(
        scope.lineno,
        scope.col_offset,
        scope.data["name"],
        tuple(scope.body),
        parser.autoescape_policy(),
    )
    parser.blocks[block.name] = block
    return block


def tag_parent(parser: Parser, tokens: TokenStream, scope: Scope) -> Parent:
    token = tokens.current
    tokens.expect_end()
    return Parent(token.lineno, token.col_offset, scope.data["name"])


# ---------------------------------------------------------------------------
# Inclusion
# ---------------------------------------------------------------------------


def tag_include(parser: Parser, tokens: TokenStream, scope: Scope) -> Include:
    expr = parser.parse_expression()
    variables = parser.parse_attributes()
    force = Option.FORCE_INCLUDE in parser.options
    name = _static_name(expr)
    if name is not None:
        env = parser.env
        if name == parser.origin or env.is_compiling(name, parser.options):
            # Recursive include: only its own freshness is tracked
            parser.add_dependency(name, env.freshness(name))
        else:
            try:
                parser.load_template(name)
            except TemplateNotFoundError:
                if force:
                    raise
                logger.debug("Included template %r not found; it will render empty", name)
                parser.add_dependency(name, None)
    return Include(
        scope.lineno, scope.col_offset, expr, tuple(variables), optional=not force
    )


def tag_insert(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    name, token = _expect_static_name(parser, tokens, "insert")
    tokens.expect_end()
    parser.insert_template(name, token)


# ---------------------------------------------------------------------------
# Macros
# ---------------------------------------------------------------------------


def tag_import(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    """{import "file"}, {import "file" as ns}, {import [a, b] from "file" as ns}"""
    names: list[str] | None = None
    if tokens.skip_if(TokenType.LBRACKET):
        names = [tokens.expect(TokenType.NAME).value]
        while tokens.skip_if(TokenType.COMMA):
            names.append(tokens.expect(TokenType.NAME).value)
        tokens.expect(TokenType.RBRACKET)
        tokens.expect(TokenType.NAME, "from")
    name, token = _expect_static_name(parser, tokens, "import")
    alias = "macro"
    if tokens.skip_name("as"):
        alias = tokens.expect(TokenType.NAME).value
    tokens.expect_end()
    if name == parser.origin or name in parser.import_chain:
        raise parser.error(
            f"Template '{name}' imports itself", token, code=ErrorCode.INHERITANCE_CYCLE
        )
    other = parser.parse_template(name)
    parser.import_macros(other, alias, names, token)


def macro_open(parser: Parser, tokens: TokenStream, scope: Scope) -> None:
    name_token = tokens.expect(TokenType.NAME)
    if (parser.origin, name_token.value) in parser.macros:
        raise parser.error(f"Macro '{name_token.value}' is already defined", name_token)
    params: list[tuple[str, Expr | None]] = []
    seen: set[str] = set()
    tokens.expect(TokenType.LPAREN)
    while not tokens.match(TokenType.RPAREN):
        token = tokens.current
        if token.type not in (TokenType.NAME, TokenType.VARIABLE):
            raise parser.error(f"Expected parameter name, got {describe(token)}", token)
        tokens.advance()
        if token.value in seen:
            raise parser.error(f"Duplicate parameter '{token.value}'", token)
        seen.add(token.value)
        default = parser.parse_expression() if tokens.skip_if(TokenType.ASSIGN) else None
        params.append((token.value, default))
        if not tokens.skip_if(TokenType.COMMA):
            break
    tokens.expect(TokenType.RPAREN)
    tokens.expect_end()
    scope.data["name"] = name_token.value
    scope.data["params"] = tuple(params)
    scope.data["key"] = parser.define_macro_signature(name_token.value, tuple(params))


def macro_close(parser: Parser, tokens: TokenStream, scope: Scope) -> Node | None:
    origin, name = scope.data["key"]
    parser.macros[(origin, name)] = Macro(
        scope.lineno,
        scope.col_offset,
        name,
        scope.data["params"],
        tuple(scope.body),
        origin,
        parser.autoescape_policy(),
    )
    return None
