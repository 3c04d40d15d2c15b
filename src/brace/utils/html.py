"""HTML escaping and the Markup safe-string type."""

from __future__ import annotations

import html
from typing import Any

_ESCAPE_TABLE = str.maketrans(
    {
        "&": "&amp;",
        "<": "&lt;",
        ">": "&gt;",
        '"': "&quot;",
        "'": "&#39;",
    }
)


class Markup(str):
    """A string that is already safe for HTML output.

    Escaping a Markup value returns it unchanged, so ``{$x|escape}`` under
    auto-escape is not double-escaped and ``{$x|raw}`` opts out of escaping.
    Objects with an ``__html__`` method are treated the same way.
    """

    __slots__ = ()

    def __new__(cls, value: Any = "") -> Markup:
        if hasattr(value, "__html__") and not isinstance(value, str):
            value = value.__html__()
        return super().__new__(cls, value)

    def __html__(self) -> Markup:
        return self

    def __add__(self, other: Any) -> Markup:
        if isinstance(other, str):
            return Markup(str.__add__(self, html_escape(other)))
        return NotImplemented

    def __radd__(self, other: Any) -> Markup:
        if isinstance(other, str):
            return Markup(str.__add__(html_escape(other), self))
        return NotImplemented

    def __repr__(self) -> str:
        return f"Markup({str.__repr__(self)})"

    def unescape(self) -> str:
        """Decode HTML entities back to plain text."""
        return html.unescape(str(self))


def html_escape(value: Any) -> Markup:
    """Escape a value for HTML output.

    ``None`` renders as an empty string; Markup and ``__html__`` objects pass
    through untouched.
    """
    if value is None:
        return Markup("")
    if isinstance(value, Markup):
        return value
    if hasattr(value, "__html__"):
        return Markup(value.__html__())
    return Markup(to_text(value).translate(_ESCAPE_TABLE))


def to_text(value: Any) -> str:
    """Convert a value to output text without escaping.

    ``None`` and ``False`` render as empty strings and ``True`` as ``1``.
    """
    if value is None or value is False:
        return ""
    if value is True:
        return "1"
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
