"""Parser error handling for Brace.

Provides ParseError with source context, suggestions, and the chain of
enclosing tags at the point of failure.
"""

from __future__ import annotations

from collections.abc import Sequence

from brace.environment.exceptions import ErrorCode, TemplateSyntaxError


class ParseError(TemplateSyntaxError):
    """Syntax or semantic error found while parsing a template.

    Attributes:
        tag_chain: Names of the open tags, outermost first, e.g.
            ``("foreach", "if")`` for an error inside an ``{if}`` nested in a
            ``{foreach}``.
    """

    code: ErrorCode | None = ErrorCode.UNEXPECTED_TOKEN

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        col_offset: int | None = None,
        *,
        name: str | None = None,
        source: str | None = None,
        suggestion: str | None = None,
        tag_chain: Sequence[str] = (),
        code: ErrorCode | None = None,
    ):
        self.tag_chain = tuple(tag_chain)
        if self.tag_chain:
            chain = " > ".join(f"{{{tag}}}" for tag in self.tag_chain)
            message = f"{message} (inside {chain})"
        super().__init__(
            message,
            lineno,
            name=name,
            source=source,
            col_offset=col_offset,
            code=code,
            suggestion=suggestion,
        )
