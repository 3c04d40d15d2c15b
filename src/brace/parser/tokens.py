"""Token stream over the tokens of one tag body."""

from __future__ import annotations

from collections.abc import Sequence

from brace._types import Token, TokenType


class TokenStream:
    """Cursor over a tag's expression tokens.

    Tag callbacks receive one of these; it always ends with an EOF token.
    Error reporting goes through the owning parser so messages carry the
    template name, source snippet, and the chain of enclosing tags.
    """

    __slots__ = ("_tokens", "_pos", "_parser")

    def __init__(self, tokens: Sequence[Token], parser=None):
        self._tokens = tokens
        self._pos = 0
        self._parser = parser

    @property
    def current(self) -> Token:
        return self._tokens[self._pos]

    def peek(self, offset: int = 1) -> Token:
        pos = self._pos + offset
        if pos >= len(self._tokens):
            return self._tokens[-1]
        return self._tokens[pos]

    def advance(self) -> Token:
        token = self._tokens[self._pos]
        if token.type is not TokenType.EOF:
            self._pos += 1
        return token

    def at_end(self) -> bool:
        return self.current.type is TokenType.EOF

    def match(self, *types: TokenType) -> bool:
        return self.current.type in types

    def match_name(self, *names: str) -> bool:
        token = self.current
        return token.type is TokenType.NAME and token.value in names

    def skip_if(self, token_type: TokenType, value: object = None) -> Token | None:
        """Consume and return the current token when it matches, else None."""
        token = self.current
        if token.type is token_type and (value is None or token.value == value):
            return self.advance()
        return None

    def skip_name(self, name: str) -> bool:
        return self.skip_if(TokenType.NAME, name) is not None

    def expect(self, token_type: TokenType, value: object = None) -> Token:
        token = self.current
        if token.type is not token_type or (value is not None and token.value != value):
            wanted = repr(value) if value is not None else token_type.name.lower()
            raise self.error(f"Expected {wanted}, got {describe(token)}")
        return self.advance()

    def expect_end(self) -> None:
        if not self.at_end():
            raise self.error(f"Unexpected {describe(self.current)}")

    def error(self, message: str, token: Token | None = None, suggestion: str | None = None):
        token = token or self.current
        if self._parser is not None:
            return self._parser.error(message, token, suggestion=suggestion)
        from brace.parser.errors import ParseError

        return ParseError(message, token.lineno, token.col_offset, suggestion=suggestion)


def describe(token: Token) -> str:
    """Human-readable token description for error messages."""
    if token.type is TokenType.EOF:
        return "end of tag"
    if token.type is TokenType.VARIABLE:
        return f"'${token.value}'"
    if token.type in (TokenType.STRING, TokenType.TEMPLATE_STRING):
        return "string literal"
    return f"'{token.value}'"
