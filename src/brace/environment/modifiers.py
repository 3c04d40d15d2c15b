"""Built-in modifiers.

Modifiers are plain callables taking the piped value first:
``{$title|truncate:20:'…'}`` calls ``truncate(title, 20, '…')``.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable, Sized
from datetime import date, datetime
from typing import Any
from urllib.parse import quote_plus, unquote_plus

from brace.utils.html import Markup, html_escape, to_text

_HSPACE_RE = re.compile(r"[ \t\f\v]+")
_SPACE_RE = re.compile(r"\s+")

# PHP-style date letters accepted by the ``date`` modifier
_DATE_LETTERS = {
    "d": "%d",
    "D": "%a",
    "j": "%-d",
    "l": "%A",
    "N": "%u",
    "w": "%w",
    "z": "%j",
    "W": "%V",
    "F": "%B",
    "m": "%m",
    "M": "%b",
    "n": "%-m",
    "Y": "%Y",
    "y": "%y",
    "a": "%p",
    "A": "%p",
    "g": "%-I",
    "G": "%-H",
    "h": "%I",
    "H": "%H",
    "i": "%M",
    "s": "%S",
    "e": "%Z",
    "T": "%Z",
    "O": "%z",
    "U": "%s",
}


def _to_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value)
    if isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return datetime.fromtimestamp(int(text))
        if text == "now":
            return datetime.now()
        return datetime.fromisoformat(text)
    raise TypeError(f"Cannot convert {type(value).__name__} to a date")


def date_format(value: Any, format: str = "%b %d, %Y") -> str:
    """Format a timestamp, date, or ISO string with ``strftime`` syntax."""
    return _to_datetime(value).strftime(format)


def date_php(value: Any, format: str = "Y m d") -> str:
    """Format a timestamp, date, or ISO string with PHP ``date()`` letters.

    A backslash escapes the next letter.
    """
    out: list[str] = []
    escape = False
    for ch in format:
        if escape:
            out.append(ch.replace("%", "%%"))
            escape = False
        elif ch == "\\":
            escape = True
        elif ch in _DATE_LETTERS:
            out.append(_DATE_LETTERS[ch])
        else:
            out.append(ch.replace("%", "%%"))
    return _to_datetime(value).strftime("".join(out))


def truncate(
    value: Any,
    length: int = 80,
    etc: str = "...",
    by_words: bool = False,
    middle: bool = False,
) -> str:
    """Shorten text to ``length`` characters, appending ``etc``.

    ``by_words`` avoids cutting a word in half; ``middle`` removes text from
    the middle and keeps both ends.
    """
    text = to_text(value)
    length = int(length)
    if len(text) <= length:
        return text
    if middle:
        head = text[: length // 2]
        tail = text[len(text) - length // 2 :] if length // 2 else ""
        if by_words:
            head = head.rsplit(" ", 1)[0] if " " in head.strip() else head
            tail = tail.split(" ", 1)[-1] if " " in tail.strip() else tail
        return f"{head.rstrip()}{etc}{tail.lstrip()}"
    cut = text[:length]
    if by_words and not text[length:length + 1].isspace():
        head, sep, _ = cut.rpartition(" ")
        if sep:
            cut = head
    return cut.rstrip() + etc


def escape(value: Any, type: str = "html") -> Markup | str:
    """Escape text for ``html``, ``url`` or ``js`` contexts."""
    if type == "url":
        return quote_plus(to_text(value))
    if type == "js":
        return json.dumps(value, ensure_ascii=False, default=str)
    return html_escape(value)


def unescape(value: Any, type: str = "html") -> str:
    """Reverse ``escape`` for ``html`` and ``url`` contexts."""
    text = to_text(value)
    if type == "url":
        return unquote_plus(text)
    return Markup(text).unescape()


def strip(value: Any, to_line: bool = False) -> str:
    """Trim and collapse whitespace.

    With ``to_line`` every whitespace run (newlines included) becomes one
    space; otherwise only horizontal runs are collapsed and lines are kept.
    """
    text = to_text(value)
    if to_line:
        return _SPACE_RE.sub(" ", text).strip()
    return "\n".join(_HSPACE_RE.sub(" ", line).strip() for line in text.strip().splitlines())


def length(value: Any) -> int:
    """Number of characters of a string or items of a collection; 0 otherwise."""
    if isinstance(value, Sized):
        return len(value)
    return 0


def iterable(value: Any) -> bool:
    """True for lists, mappings, and other non-string iterables."""
    return isinstance(value, Iterable) and not isinstance(value, (str, bytes))


def upper(value: Any) -> str:
    return to_text(value).upper()


def lower(value: Any) -> str:
    return to_text(value).lower()


def raw(value: Any) -> Markup:
    """Mark a value as safe so auto-escape leaves it alone."""
    return Markup(to_text(value))


DEFAULT_MODIFIERS: dict[str, Callable[..., Any]] = {
    "upper": upper,
    "up": upper,
    "lower": lower,
    "low": lower,
    "date_format": date_format,
    "date": date_php,
    "truncate": truncate,
    "escape": escape,
    "e": escape,
    "unescape": unescape,
    "strip": strip,
    "length": length,
    "iterable": iterable,
    "raw": raw,
}
