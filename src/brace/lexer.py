"""Lexer for Brace templates.

Splits template source into TEXT and TAG segments, then tokenizes tag
bodies into expression tokens.

Scanning rules:
- An open delimiter followed by whitespace or end of input is literal text,
  so CSS and JavaScript braces pass through untouched. An empty tag body
  (``{}``) is literal too.
- ``{* ... *}`` is a comment and produces no segment.
- ``{ignore}...{/ignore}`` and a bare ``{raw}...{/raw}`` are verbatim
  regions: their content is emitted as text without tag scanning.
- The end of a tag is found while tracking string literals and nested
  delimiter pairs, so ``{$x = "a}b"}`` and ``{"{$a}"}`` are single tags.

Example:
    >>> lexer = Lexer("Hello, {$name|upper}!")
    >>> [s.type.value for s in lexer.segments()]
    ['text', 'tag', 'text']
    >>> [t.type.name for t in tokenize_expression("$name|upper")]
    ['VARIABLE', 'PIPE', 'NAME', 'EOF']
"""

from __future__ import annotations

import re
from bisect import bisect_right
from collections.abc import Iterator

from brace._types import Segment, SegmentType, Token, TokenType
from brace.environment.exceptions import ErrorCode, LexError

VERBATIM_TAGS = frozenset({"ignore", "raw"})

# Longest operators first so "===" is not read as "==" + "="
_OPERATORS: tuple[tuple[str, TokenType], ...] = (
    ("===", TokenType.IDENTICAL),
    ("!==", TokenType.NOT_IDENTICAL),
    ("==", TokenType.EQ),
    ("!=", TokenType.NE),
    ("<=", TokenType.LE),
    (">=", TokenType.GE),
    ("=>", TokenType.DOUBLE_ARROW),
    ("->", TokenType.ARROW),
    ("&&", TokenType.AND),
    ("||", TokenType.OR),
    (".", TokenType.DOT),
    (",", TokenType.COMMA),
    (":", TokenType.COLON),
    ("|", TokenType.PIPE),
    ("?", TokenType.QUESTION),
    ("=", TokenType.ASSIGN),
    ("(", TokenType.LPAREN),
    (")", TokenType.RPAREN),
    ("[", TokenType.LBRACKET),
    ("]", TokenType.RBRACKET),
    ("+", TokenType.ADD),
    ("-", TokenType.SUB),
    ("*", TokenType.MUL),
    ("/", TokenType.DIV),
    ("%", TokenType.MOD),
    ("~", TokenType.TILDE),
    ("<", TokenType.LT),
    (">", TokenType.GT),
    ("!", TokenType.NOT),
)

_WHITESPACE_RE = re.compile(r"\s+")
_ACCESSOR_RE = re.compile(r"\$\.")
_VARIABLE_RE = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)")
_NUMBER_RE = re.compile(r"(?:\d+\.\d+|\d+)(?![A-Za-z_])")
_NAME_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_SINGLE_STRING_RE = re.compile(r"'((?:[^'\\]|\\.)*)'", re.DOTALL)
_DOUBLE_STRING_RE = re.compile(r'"((?:[^"\\]|\\.)*)"', re.DOTALL)
_INTERPOLATION_RE = re.compile(r"(?<!\\)(?:\$[A-Za-z_]|\{\$)")

_DOUBLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    '"': '"',
    "\\": "\\",
    "$": "$",
    "{": "{",
}


def unescape_single(value: str) -> str:
    """Decode a single-quoted literal: only ``\\'`` and ``\\\\`` are escapes."""
    return value.replace("\\\\", "\0").replace("\\'", "'").replace("\0", "\\")


def unescape_double(value: str) -> str:
    """Decode a double-quoted literal's backslash escapes."""
    out: list[str] = []
    i = 0
    n = len(value)
    while i < n:
        ch = value[i]
        if ch == "\\" and i + 1 < n and value[i + 1] in _DOUBLE_ESCAPES:
            out.append(_DOUBLE_ESCAPES[value[i + 1]])
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


class Lexer:
    """Template lexer.

    ``segments()`` returns a fresh lazy iterator on every call, so a failed
    scan can be retried from the start; a single iterator is not resumable
    after it raises.
    """

    __slots__ = ("source", "open_delim", "close_delim", "name", "_line_starts")

    def __init__(
        self,
        source: str,
        *,
        open_delim: str = "{",
        close_delim: str = "}",
        name: str | None = None,
    ):
        if not open_delim or not close_delim:
            raise ValueError("Delimiters must be non-empty strings")
        self.source = source
        self.open_delim = open_delim
        self.close_delim = close_delim
        self.name = name
        self._line_starts = [0] + [m.end() for m in re.finditer(r"\n", source)]

    def position(self, offset: int) -> tuple[int, int]:
        """Map a character offset to (lineno, col_offset)."""
        line = bisect_right(self._line_starts, offset)
        return line, offset - self._line_starts[line - 1]

    def _error(
        self,
        message: str,
        offset: int,
        *,
        expected: str | None = None,
        code: ErrorCode | None = None,
    ) -> LexError:
        lineno, col = self.position(offset)
        return LexError(
            message,
            lineno,
            col,
            offset=offset,
            expected=expected,
            found="end of input",
            name=self.name,
            source=self.source,
            code=code,
        )

    def _text(self, start: int, end: int) -> Segment:
        lineno, col = self.position(start)
        return Segment(SegmentType.TEXT, self.source[start:end], lineno, col, start)

    def segments(self) -> Iterator[Segment]:
        """Yield TEXT and TAG segments lazily."""
        return self._scan()

    def _scan(self) -> Iterator[Segment]:
        source = self.source
        open_delim = self.open_delim
        close_delim = self.close_delim
        n = len(source)
        pos = 0
        text_start = 0

        while True:
            start = source.find(open_delim, pos)
            if start < 0:
                break
            body_start = start + len(open_delim)
            if body_start >= n or source[body_start].isspace():
                pos = body_start
                continue

            # Comment
            if source.startswith("*", body_start):
                end = source.find("*" + close_delim, body_start + 1)
                if end < 0:
                    raise self._error(
                        "Unclosed comment",
                        start,
                        expected="*" + close_delim,
                        code=ErrorCode.UNCLOSED_COMMENT,
                    )
                if start > text_start:
                    yield self._text(text_start, start)
                pos = text_start = end + 1 + len(close_delim)
                continue

            body_end = self._find_tag_end(body_start)
            if body_end < 0:
                raise self._error(
                    "Unclosed tag", start, expected=close_delim, code=ErrorCode.UNCLOSED_TAG
                )
            body = source[body_start:body_end]
            after = body_end + len(close_delim)
            if not body.strip():
                pos = after
                continue

            if start > text_start:
                yield self._text(text_start, start)

            keyword = body.strip()
            if keyword in VERBATIM_TAGS:
                closing = f"{open_delim}/{keyword}{close_delim}"
                end = source.find(closing, after)
                if end < 0:
                    raise self._error(
                        f"Unclosed verbatim region '{keyword}'",
                        start,
                        expected=closing,
                        code=ErrorCode.UNCLOSED_TAG,
                    )
                if end > after:
                    yield self._text(after, end)
                pos = text_start = end + len(closing)
                continue

            lineno, col = self.position(start)
            yield Segment(SegmentType.TAG, body, lineno, col, start)
            pos = text_start = after

        if text_start < n:
            yield self._text(text_start, n)

    def _find_tag_end(self, pos: int) -> int:
        """Return the offset of the closing delimiter for a tag body, or -1."""
        source = self.source
        open_delim = self.open_delim
        close_delim = self.close_delim
        n = len(source)
        quote: str | None = None
        depth = 0
        while pos < n:
            ch = source[pos]
            if quote is not None:
                if ch == "\\":
                    pos += 2
                    continue
                if ch == quote:
                    quote = None
                pos += 1
                continue
            if ch in "'\"":
                quote = ch
                pos += 1
            elif source.startswith(close_delim, pos):
                if depth == 0:
                    return pos
                depth -= 1
                pos += len(close_delim)
            elif source.startswith(open_delim, pos):
                depth += 1
                pos += len(open_delim)
            else:
                pos += 1
        return -1

    def tokenize(self, segment: Segment) -> list[Token]:
        """Tokenize the body of a TAG segment."""
        offset = len(self.open_delim)
        return tokenize_expression(
            segment.value,
            lineno=segment.lineno,
            col_offset=segment.col_offset + offset,
            name=self.name,
            source=self.source,
        )


def tokenize_expression(
    text: str,
    *,
    lineno: int = 1,
    col_offset: int = 0,
    name: str | None = None,
    source: str | None = None,
) -> list[Token]:
    """Tokenize a tag body or standalone expression.

    The returned list always ends with an EOF token.

    Raises:
        LexError: On an unterminated string or an unexpected character.
    """
    tokens: list[Token] = []
    pos = 0
    n = len(text)
    line = lineno
    line_start = -col_offset

    def here() -> tuple[int, int]:
        return line, pos - line_start

    while pos < n:
        m = _WHITESPACE_RE.match(text, pos)
        if m:
            chunk = m.group()
            newlines = chunk.count("\n")
            if newlines:
                line += newlines
                line_start = pos + chunk.rindex("\n") + 1
            pos = m.end()
            continue

        ln, col = here()
        ch = text[pos]

        if ch == "$":
            m = _ACCESSOR_RE.match(text, pos)
            if m:
                tokens.append(Token(TokenType.ACCESSOR, "$.", ln, col))
                pos = m.end()
                continue
            m = _VARIABLE_RE.match(text, pos)
            if m:
                tokens.append(Token(TokenType.VARIABLE, m.group(1), ln, col))
                pos = m.end()
                continue
            raise LexError(
                "Expected a variable name after '$'",
                ln,
                col,
                name=name,
                source=source,
                code=ErrorCode.UNEXPECTED_CHARACTER,
            )

        if ch.isdigit():
            m = _NUMBER_RE.match(text, pos)
            if m:
                raw = m.group()
                value: int | float = float(raw) if "." in raw else int(raw)
                tokens.append(Token(TokenType.NUMBER, value, ln, col))
                pos = m.end()
                continue

        m = _NAME_RE.match(text, pos)
        if m:
            tokens.append(Token(TokenType.NAME, m.group(), ln, col))
            pos = m.end()
            continue

        if ch in "'\"":
            pattern = _SINGLE_STRING_RE if ch == "'" else _DOUBLE_STRING_RE
            m = pattern.match(text, pos)
            if m is None:
                raise LexError(
                    "Unterminated string literal",
                    ln,
                    col,
                    expected=ch,
                    name=name,
                    source=source,
                    code=ErrorCode.UNCLOSED_STRING,
                )
            raw = m.group(1)
            if ch == "'":
                tokens.append(Token(TokenType.STRING, unescape_single(raw), ln, col))
            elif _INTERPOLATION_RE.search(raw):
                tokens.append(Token(TokenType.TEMPLATE_STRING, raw, ln, col))
            else:
                tokens.append(Token(TokenType.STRING, unescape_double(raw), ln, col))
            newlines = m.group().count("\n")
            if newlines:
                line += newlines
                line_start = pos + m.group().rindex("\n") + 1
            pos = m.end()
            continue

        for op, token_type in _OPERATORS:
            if text.startswith(op, pos):
                tokens.append(Token(token_type, op, ln, col))
                pos += len(op)
                break
        else:
            raise LexError(
                f"Unexpected character {ch!r}",
                ln,
                col,
                name=name,
                source=source,
                code=ErrorCode.UNEXPECTED_CHARACTER,
            )

    ln, col = here()
    tokens.append(Token(TokenType.EOF, None, ln, col))
    return tokens
