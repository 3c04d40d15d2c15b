"""Token and segment types shared by the Brace lexer and parser.

The lexer works at two levels:

1. **Segments**: raw template text is split into literal text and tag bodies
   (``Hello {$name}!`` → ``TEXT("Hello ")``, ``TAG("$name")``, ``TEXT("!")``).
2. **Tokens**: each tag body is tokenized into expression tokens
   (``$user.name|upper`` → ``VARIABLE DOT NAME PIPE NAME``).

Both are immutable so token streams can be shared between threads.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class SegmentType(Enum):
    """Kind of a top-level template segment."""

    TEXT = "text"
    TAG = "tag"


@dataclass(frozen=True, slots=True)
class Segment:
    """A slice of template source: literal text or the body of a tag.

    Attributes:
        type: TEXT or TAG
        value: Literal text, or the tag body with delimiters removed
        lineno: 1-based line where the segment starts
        col_offset: 0-based column where the segment starts
        offset: Character offset of the segment in the source
    """

    type: SegmentType
    value: str
    lineno: int
    col_offset: int
    offset: int

    @property
    def is_closing(self) -> bool:
        """True for closing tags such as ``{/foreach}``."""
        return self.type is SegmentType.TAG and self.value.startswith("/")


class TokenType(Enum):
    """Expression token types."""

    NAME = "name"
    VARIABLE = "variable"  # $name
    ACCESSOR = "accessor"  # $.
    NUMBER = "number"
    STRING = "string"  # 'plain' or "plain"
    TEMPLATE_STRING = "template_string"  # "hello {$name}"

    DOT = "."
    ARROW = "->"
    DOUBLE_ARROW = "=>"
    COMMA = ","
    COLON = ":"
    PIPE = "|"
    QUESTION = "?"
    ASSIGN = "="
    LPAREN = "("
    RPAREN = ")"
    LBRACKET = "["
    RBRACKET = "]"

    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"
    TILDE = "~"

    EQ = "=="
    NE = "!="
    IDENTICAL = "==="
    NOT_IDENTICAL = "!=="
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="

    AND = "&&"
    OR = "||"
    NOT = "!"

    EOF = "eof"


@dataclass(frozen=True, slots=True)
class Token:
    """A single expression token.

    ``value`` holds the decoded payload: the identifier for NAME/VARIABLE,
    the parsed number for NUMBER, the unescaped text for STRING, and the raw
    (still escaped) body for TEMPLATE_STRING.
    """

    type: TokenType
    value: Any
    lineno: int
    col_offset: int

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.lineno}:{self.col_offset})"
