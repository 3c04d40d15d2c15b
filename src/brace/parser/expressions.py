"""Expression parsing for the Brace parser.

Provides a mixin that parses tag-body expressions from the current token
stream (``self._stream``).

Precedence, lowest first::

    ternary   a ? b : c, a ?: c
    or        ||, or
    xor       xor
    and       &&, and
    not       !, not
    compare   == != === !== < > <= >= in
    concat    ~
    additive  + -
    multiply  * / %
    unary     - +
    postfix   .key [expr] ->prop ->method() |modifier:arg  and tests $a? $a!
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from brace._types import Token, TokenType
from brace.environment.exceptions import ErrorCode
from brace.lexer import tokenize_expression, unescape_double
from brace.nodes import (
    BinOp,
    BoolOp,
    Compare,
    Concat,
    CondExpr,
    Const,
    DictExpr,
    Expr,
    FuncCall,
    Getattr,
    Getitem,
    ListExpr,
    MethodCall,
    Modifier,
    Property,
    SystemVar,
    Test,
    UnaryOp,
    Var,
)
from brace.options import Option
from brace.parser.tokens import TokenStream, describe

if TYPE_CHECKING:
    from brace.environment.core import Environment
    from brace.parser.errors import ParseError

_COMPARE_OPS = {
    TokenType.EQ: "==",
    TokenType.NE: "!=",
    TokenType.IDENTICAL: "===",
    TokenType.NOT_IDENTICAL: "!==",
    TokenType.LT: "<",
    TokenType.GT: ">",
    TokenType.LE: "<=",
    TokenType.GE: ">=",
}

_CONSTANTS = {"true": True, "false": False, "null": None, "none": None}

SYSTEM_ROOTS = frozenset({"env", "globals", "tpl", "version", "now"})

# Tokens after which a trailing '?' or '!' is a postfix test, not an operator
_TEST_TERMINATORS = frozenset(
    {
        TokenType.EOF,
        TokenType.RPAREN,
        TokenType.RBRACKET,
        TokenType.COMMA,
        TokenType.AND,
        TokenType.OR,
        TokenType.DOUBLE_ARROW,
    }
)

_INTERP_VAR_RE = re.compile(r"\$[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z0-9_]+)*")


class ExpressionParsingMixin:
    """Mixin for parsing expressions.

    Host attributes are declared via TYPE_CHECKING.
    """

    if TYPE_CHECKING:
        env: Environment
        options: Option
        _stream: TokenStream

        def error(
            self,
            message: str,
            token: Token | None = None,
            *,
            suggestion: str | None = None,
            code: ErrorCode | None = None,
        ) -> ParseError: ...

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def parse_expression(self) -> Expr:
        """Parse a full expression from the current tag's tokens."""
        return self._parse_ternary()

    def parse_expression_list(self, end: TokenType = TokenType.EOF) -> list[Expr]:
        """Parse ``expr, expr, ...`` up to (not including) ``end``."""
        items: list[Expr] = []
        stream = self._stream
        if stream.match(end):
            return items
        items.append(self.parse_expression())
        while stream.skip_if(TokenType.COMMA):
            if stream.match(end):
                break
            items.append(self.parse_expression())
        return items

    def parse_variable_name(self) -> str:
        """Consume a ``$name`` token and return the bare name."""
        token = self._stream.current
        if token.type is not TokenType.VARIABLE:
            raise self.error(f"Expected a variable, got {describe(token)}", token)
        self._stream.advance()
        return token.value

    def parse_attributes(self) -> list[tuple[str, Expr]]:
        """Parse ``name=expr`` pairs up to the end of the tag."""
        stream = self._stream
        attrs: list[tuple[str, Expr]] = []
        seen: set[str] = set()
        while not stream.at_end():
            token = stream.current
            if token.type is not TokenType.NAME:
                raise self.error(f"Expected attribute name, got {describe(token)}", token)
            stream.advance()
            if token.value in seen:
                raise self.error(f"Duplicate attribute '{token.value}'", token)
            seen.add(token.value)
            stream.expect(TokenType.ASSIGN)
            attrs.append((token.value, self.parse_expression()))
        return attrs

    def parse_modifier_chain(self) -> list[tuple[str, list[Expr]]]:
        """Parse ``|mod:arg|mod2`` pipes (used by {filter} and {var} captures)."""
        stream = self._stream
        modifiers: list[tuple[str, list[Expr]]] = []
        while stream.match(TokenType.PIPE):
            stream.advance()
            name_token = stream.expect(TokenType.NAME)
            self.resolve_modifier(name_token)
            args: list[Expr] = []
            while stream.skip_if(TokenType.COLON):
                args.append(self._parse_unary(modifiers=False))
            modifiers.append((name_token.value, args))
        return modifiers

    # ------------------------------------------------------------------
    # Validation hooks
    # ------------------------------------------------------------------

    def resolve_modifier(self, token: Token) -> None:
        deny = Option.DENY_NATIVE_FUNCS in self.options
        if self.env.modifiers.resolve(token.value, deny) is None:
            raise self.error(
                f"Unknown modifier '{token.value}'",
                token,
                code=ErrorCode.UNKNOWN_MODIFIER,
                suggestion=_close_match(token.value, self.env.modifiers.names()),
            )

    def resolve_function(self, token: Token) -> None:
        deny = Option.DENY_NATIVE_FUNCS in self.options
        if not self.env.modifiers.is_allowed_function(token.value, deny):
            raise self.error(
                f"Function '{token.value}' is not allowed",
                token,
                code=ErrorCode.FORBIDDEN_SYNTAX,
                suggestion="Register it with Environment.add_allowed_functions()",
            )

    def _check_member(self, token: Token) -> None:
        if str(token.value).startswith("_"):
            raise self.error(
                f"Access to private member '{token.value}' is forbidden",
                token,
                code=ErrorCode.FORBIDDEN_SYNTAX,
            )

    # ------------------------------------------------------------------
    # Precedence levels
    # ------------------------------------------------------------------

    def _parse_ternary(self) -> Expr:
        stream = self._stream
        expr = self._parse_or()
        token = stream.current
        if token.type is not TokenType.QUESTION:
            return expr
        stream.advance()
        if stream.skip_if(TokenType.COLON):
            return CondExpr(token.lineno, token.col_offset, expr, None, self._parse_ternary())
        if_true = self._parse_ternary()
        stream.expect(TokenType.COLON)
        if_false = self._parse_ternary()
        return CondExpr(token.lineno, token.col_offset, expr, if_true, if_false)

    def _parse_or(self) -> Expr:
        stream = self._stream
        left = self._parse_xor()
        while stream.match(TokenType.OR) or stream.match_name("or"):
            token = stream.advance()
            left = BoolOp(token.lineno, token.col_offset, "or", left, self._parse_xor())
        return left

    def _parse_xor(self) -> Expr:
        stream = self._stream
        left = self._parse_and()
        while stream.match_name("xor"):
            token = stream.advance()
            left = BoolOp(token.lineno, token.col_offset, "xor", left, self._parse_and())
        return left

    def _parse_and(self) -> Expr:
        stream = self._stream
        left = self._parse_not()
        while stream.match(TokenType.AND) or stream.match_name("and"):
            token = stream.advance()
            left = BoolOp(token.lineno, token.col_offset, "and", left, self._parse_not())
        return left

    def _parse_not(self) -> Expr:
        stream = self._stream
        if stream.match(TokenType.NOT) or stream.match_name("not"):
            token = stream.advance()
            return UnaryOp(token.lineno, token.col_offset, "not", self._parse_not())
        return self._parse_compare()

    def _parse_compare(self) -> Expr:
        stream = self._stream
        left = self._parse_concat()
        while True:
            token = stream.current
            op = _COMPARE_OPS.get(token.type)
            if op is None and token.type is TokenType.NAME and token.value == "in":
                op = "in"
            if op is None and stream.match_name("not") and stream.peek().value == "in":
                stream.advance()
                op = "not in"
            if op is None:
                return left
            stream.advance()
            left = Compare(token.lineno, token.col_offset, op, left, self._parse_concat())

    def _parse_concat(self) -> Expr:
        stream = self._stream
        left = self._parse_additive()
        while stream.match(TokenType.TILDE):
            token = stream.advance()
            left = BinOp(token.lineno, token.col_offset, "~", left, self._parse_additive())
        return left

    def _parse_additive(self) -> Expr:
        stream = self._stream
        left = self._parse_multiplicative()
        while stream.match(TokenType.ADD, TokenType.SUB):
            token = stream.advance()
            left = BinOp(
                token.lineno, token.col_offset, token.value, left, self._parse_multiplicative()
            )
        return left

    def _parse_multiplicative(self) -> Expr:
        stream = self._stream
        left = self._parse_unary()
        while stream.match(TokenType.MUL, TokenType.DIV, TokenType.MOD):
            token = stream.advance()
            left = BinOp(token.lineno, token.col_offset, token.value, left, self._parse_unary())
        return left

    def _parse_unary(self, modifiers: bool = True) -> Expr:
        stream = self._stream
        if stream.match(TokenType.SUB, TokenType.ADD):
            token = stream.advance()
            operand = self._parse_unary(modifiers)
            if isinstance(operand, Const) and isinstance(operand.value, (int, float)):
                value = -operand.value if token.value == "-" else operand.value
                return Const(token.lineno, token.col_offset, value)
            return UnaryOp(token.lineno, token.col_offset, token.value, operand)
        if stream.match(TokenType.NOT):
            token = stream.advance()
            return UnaryOp(token.lineno, token.col_offset, "not", self._parse_unary(modifiers))
        expr = self._parse_postfix(self._parse_primary())
        if modifiers:
            expr = self._parse_modifiers(expr)
        return self._parse_test(expr)

    def _parse_test(self, expr: Expr) -> Expr:
        stream = self._stream
        token = stream.current
        if token.type in (TokenType.QUESTION, TokenType.NOT):
            if stream.peek().type in _TEST_TERMINATORS or _is_keyword(stream.peek()):
                stream.advance()
                return Test(token.lineno, token.col_offset, expr, token.type is TokenType.NOT)
        return expr

    def _parse_modifiers(self, expr: Expr) -> Expr:
        stream = self._stream
        while stream.match(TokenType.PIPE):
            stream.advance()
            name_token = stream.expect(TokenType.NAME)
            self.resolve_modifier(name_token)
            args: list[Expr] = []
            while stream.skip_if(TokenType.COLON):
                args.append(self._parse_unary(modifiers=False))
            expr = Modifier(name_token.lineno, name_token.col_offset, expr, name_token.value, args)
        return expr

    def _parse_postfix(self, expr: Expr) -> Expr:
        stream = self._stream
        while True:
            token = stream.current
            if token.type is TokenType.DOT:
                stream.advance()
                key = stream.current
                if key.type is TokenType.NAME:
                    stream.advance()
                    self._check_member(key)
                    expr = Getattr(token.lineno, token.col_offset, expr, key.value)
                elif key.type is TokenType.NUMBER and isinstance(key.value, int):
                    stream.advance()
                    expr = Getitem(
                        token.lineno, token.col_offset, expr, Const(key.lineno, key.col_offset, key.value)
                    )
                elif key.type is TokenType.VARIABLE:
                    stream.advance()
                    expr = Getitem(
                        token.lineno, token.col_offset, expr, Var(key.lineno, key.col_offset, key.value)
                    )
                else:
                    raise self.error(f"Expected key after '.', got {describe(key)}", key)
            elif token.type is TokenType.LBRACKET:
                stream.advance()
                key_expr = self.parse_expression()
                stream.expect(TokenType.RBRACKET)
                expr = Getitem(token.lineno, token.col_offset, expr, key_expr)
            elif token.type is TokenType.ARROW:
                if Option.DENY_ACCESSOR in self.options:
                    raise self.error(
                        "Property access is disabled",
                        token,
                        code=ErrorCode.FORBIDDEN_SYNTAX,
                    )
                stream.advance()
                member = stream.expect(TokenType.NAME)
                self._check_member(member)
                if stream.match(TokenType.LPAREN):
                    if Option.DENY_METHODS in self.options:
                        raise self.error(
                            "Method calls are disabled",
                            member,
                            code=ErrorCode.FORBIDDEN_SYNTAX,
                        )
                    stream.advance()
                    args = self.parse_expression_list(TokenType.RPAREN)
                    stream.expect(TokenType.RPAREN)
                    expr = MethodCall(token.lineno, token.col_offset, expr, member.value, args)
                else:
                    expr = Property(token.lineno, token.col_offset, expr, member.value)
            else:
                return expr

    def _parse_primary(self) -> Expr:
        stream = self._stream
        token = stream.current
        tt = token.type

        if tt is TokenType.VARIABLE:
            stream.advance()
            return Var(token.lineno, token.col_offset, token.value)

        if tt is TokenType.NUMBER or tt is TokenType.STRING:
            stream.advance()
            return Const(token.lineno, token.col_offset, token.value)

        if tt is TokenType.TEMPLATE_STRING:
            stream.advance()
            return self._parse_template_string(token)

        if tt is TokenType.ACCESSOR:
            return self._parse_accessor()

        if tt is TokenType.LPAREN:
            stream.advance()
            expr = self.parse_expression()
            stream.expect(TokenType.RPAREN)
            return expr

        if tt is TokenType.LBRACKET:
            return self._parse_collection()

        if tt is TokenType.NAME:
            lowered = token.value.lower()
            if lowered in _CONSTANTS:
                stream.advance()
                return Const(token.lineno, token.col_offset, _CONSTANTS[lowered])
            if stream.peek().type is TokenType.LPAREN:
                stream.advance()
                self.resolve_function(token)
                stream.advance()
                args = self.parse_expression_list(TokenType.RPAREN)
                stream.expect(TokenType.RPAREN)
                return FuncCall(token.lineno, token.col_offset, token.value, args)
            raise self.error(
                f"Unexpected name '{token.value}' in expression",
                token,
                suggestion=f"Variables need a '$' prefix: ${token.value}",
            )

        raise self.error(f"Unexpected {describe(token)} in expression", token)

    def _parse_accessor(self) -> Expr:
        stream = self._stream
        token = stream.advance()
        if Option.DENY_ACCESSOR in self.options:
            raise self.error(
                "System accessor '$.' is disabled", token, code=ErrorCode.FORBIDDEN_SYNTAX
            )
        root = stream.expect(TokenType.NAME)
        if root.value not in SYSTEM_ROOTS:
            raise self.error(
                f"Unknown system variable '$.{root.value}'",
                root,
                suggestion=_close_match(root.value, sorted(SYSTEM_ROOTS)),
            )
        path = [root.value]
        while stream.match(TokenType.DOT) and stream.peek().type is TokenType.NAME:
            stream.advance()
            part = stream.advance()
            self._check_member(part)
            path.append(part.value)
        return SystemVar(token.lineno, token.col_offset, tuple(path))

    def _parse_collection(self) -> Expr:
        stream = self._stream
        token = stream.expect(TokenType.LBRACKET)
        if stream.skip_if(TokenType.RBRACKET):
            return ListExpr(token.lineno, token.col_offset, [])
        first = self.parse_expression()
        if stream.skip_if(TokenType.DOUBLE_ARROW):
            keys = [first]
            values = [self.parse_expression()]
            while stream.skip_if(TokenType.COMMA):
                if stream.match(TokenType.RBRACKET):
                    break
                keys.append(self.parse_expression())
                stream.expect(TokenType.DOUBLE_ARROW)
                values.append(self.parse_expression())
            stream.expect(TokenType.RBRACKET)
            return DictExpr(token.lineno, token.col_offset, keys, values)
        items = [first]
        while stream.skip_if(TokenType.COMMA):
            if stream.match(TokenType.RBRACKET):
                break
            items.append(self.parse_expression())
        stream.expect(TokenType.RBRACKET)
        return ListExpr(token.lineno, token.col_offset, items)

    # ------------------------------------------------------------------
    # String interpolation
    # ------------------------------------------------------------------

    def parse_sub_expression(self, text: str, lineno: int, col_offset: int) -> Expr:
        """Parse ``text`` as a standalone expression with its own token stream."""
        tokens = tokenize_expression(text, lineno=lineno, col_offset=col_offset)
        saved = self._stream
        self._stream = TokenStream(tokens, self)
        try:
            expr = self.parse_expression()
            self._stream.expect_end()
        finally:
            self._stream = saved
        return expr

    def _parse_template_string(self, token: Token) -> Expr:
        raw = token.value
        parts: list[Expr] = []
        literal: list[str] = []
        pos = 0
        n = len(raw)
        line, col = token.lineno, token.col_offset + 1

        def flush() -> None:
            if literal:
                text = unescape_double("".join(literal))
                parts.append(Const(line, col, text))
                literal.clear()

        while pos < n:
            ch = raw[pos]
            if ch == "\\" and pos + 1 < n:
                literal.append(raw[pos : pos + 2])
                pos += 2
            elif raw.startswith("{$", pos):
                end = _find_interpolation_end(raw, pos + 1)
                if end < 0:
                    raise self.error("Unclosed '{' in string interpolation", token)
                flush()
                parts.append(self.parse_sub_expression(raw[pos + 1 : end], line, col + pos + 1))
                pos = end + 1
            elif ch == "$":
                m = _INTERP_VAR_RE.match(raw, pos)
                if m is None:
                    literal.append(ch)
                    pos += 1
                    continue
                flush()
                parts.append(self.parse_sub_expression(m.group(), line, col + pos))
                pos = m.end()
            else:
                literal.append(ch)
                pos += 1
        flush()
        if len(parts) == 1 and isinstance(parts[0], Const):
            return parts[0]
        return Concat(token.lineno, token.col_offset, parts)


def _find_interpolation_end(raw: str, pos: int) -> int:
    depth = 0
    quote: str | None = None
    while pos < len(raw):
        ch = raw[pos]
        if quote:
            if ch == "\\":
                pos += 1
            elif ch == quote:
                quote = None
        elif ch == "'":
            quote = ch
        elif ch == "{":
            depth += 1
        elif ch == "}":
            if depth == 0:
                return pos
            depth -= 1
        pos += 1
    return -1


def _is_keyword(token: Token) -> bool:
    return token.type is TokenType.NAME and token.value in ("and", "or", "xor")


def _close_match(name: str, candidates: list[str]) -> str | None:
    from difflib import get_close_matches

    matches = get_close_matches(name, candidates, n=1, cutoff=0.6)
    return f"Did you mean '{matches[0]}'?" if matches else None
