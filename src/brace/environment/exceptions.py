"""Exceptions for the Brace template engine.

Exception Hierarchy:
TemplateError (base)
├── ConfigurationError        # Bad option, compile dir, or registration
├── ProviderError             # Provider could not serve a source
│   └── TemplateNotFoundError # No provider has the template
├── TemplateSyntaxError       # Compile-time error with source location
│   ├── LexError              # Unterminated tag or comment
│   └── ParseError            # Unknown tag, bad nesting, bad expression
├── TemplateRuntimeError      # Render-time error with context
│   ├── MacroRecursionError   # Nested macro calls exceeded the bound
│   └── UndefinedError        # Undefined variable under force_verify
└── CacheError                # Compile directory I/O failure

Compile-time errors abort the whole compilation: no partial artifact is ever
cached or returned. Provider and cache errors propagate to the caller of the
entry point that triggered them, so "not found" can be told apart from
"broken template".

Example:
    ```
    B-PAR-001: Unknown tag 'forech'. Did you mean 'foreach'?
      --> page.tpl:3:1
       |
      3 | {forech $items as $item}
       | ^
    ```
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

class ErrorCode(Enum):
    """Searchable error codes.

    Format: B-{CATEGORY}-{NUMBER}
    Categories: CFG (configuration), LEX (lexer), PAR (parser),
    RUN (runtime), TPL (template loading), CCH (compile cache)
    """

    # Configuration errors (B-CFG-xxx)
    INVALID_OPTION = "B-CFG-001"
    INVALID_COMPILE_DIR = "B-CFG-002"
    INVALID_REGISTRATION = "B-CFG-003"

    # Lexer errors (B-LEX-xxx)
    UNCLOSED_TAG = "B-LEX-001"
    UNCLOSED_COMMENT = "B-LEX-002"
    UNCLOSED_STRING = "B-LEX-003"
    UNEXPECTED_CHARACTER = "B-LEX-004"

    # Parser errors (B-PAR-xxx)
    UNKNOWN_TAG = "B-PAR-001"
    UNCLOSED_BLOCK = "B-PAR-002"
    UNEXPECTED_TOKEN = "B-PAR-003"
    MISPLACED_TAG = "B-PAR-004"
    FORBIDDEN_SYNTAX = "B-PAR-005"
    UNKNOWN_MODIFIER = "B-PAR-006"
    UNKNOWN_MACRO = "B-PAR-007"
    INHERITANCE_CYCLE = "B-PAR-008"

    # Runtime errors (B-RUN-xxx)
    UNDEFINED_VARIABLE = "B-RUN-001"
    MACRO_RECURSION = "B-RUN-002"
    RUNTIME_ERROR = "B-RUN-003"

    # Template loading errors (B-TPL-xxx)
    TEMPLATE_NOT_FOUND = "B-TPL-001"
    SYNTAX_ERROR = "B-TPL-002"
    PROVIDER_ERROR = "B-TPL-003"

    # Compile cache errors (B-CCH-xxx)
    CACHE_WRITE = "B-CCH-001"
    CACHE_READ = "B-CCH-002"


@dataclass(frozen=True, slots=True)
class SourceSnippet:
    """Template source context around an error line.

    Attributes:
        lines: Tuple of (line_number, line_content) pairs around the error.
        error_line: The 1-based line number where the error occurred.
        column: Optional column offset for caret pointer.
    """

    lines: tuple[tuple[int, str], ...]
    error_line: int
    column: int | None = None

    def format(self) -> str:
        parts: list[str] = ["   |"]
        for lineno, content in self.lines:
            marker = ">" if lineno == self.error_line else " "
            parts.append(f"{marker}{lineno:>3} | {content}")
            if lineno == self.error_line and self.column is not None:
                parts.append(f"     | {' ' * self.column}^")
        parts.append("   |")
        return "\n".join(parts)


def build_source_snippet(
    source: str,
    error_line: int,
    *,
    context_lines: int = 2,
    column: int | None = None,
) -> SourceSnippet:
    """Build a SourceSnippet from template source.

    Args:
        source: Full template source text.
        error_line: 1-based line number of the error.
        context_lines: Number of lines to show before/after the error line.
        column: Optional column offset for caret pointer.
    """
    all_lines = source.splitlines()
    start = max(0, error_line - 1 - context_lines)
    end = min(len(all_lines), error_line + context_lines)
    lines = tuple((i + 1, all_lines[i]) for i in range(start, end))
    return SourceSnippet(lines=lines, error_line=error_line, column=column)


class TemplateError(Exception):
    """Base exception for all Brace errors.

    Attributes:
        code: Optional ErrorCode for searchable error identification.
    """

    code: ErrorCode | None = None

    def format_compact(self) -> str:
        """Format error as a short diagnostic without traceback noise."""
        header = str(self)
        if self.code and self.code.value not in header:
            header = f"{self.code.value}: {header}"
        return header


class ConfigurationError(TemplateError):
    """Invalid engine setup: unknown option, unusable compile directory,
    or a smart registration whose provider object lacks a required method.

    Never recovered; raised at setup time.
    """

    code: ErrorCode | None = ErrorCode.INVALID_OPTION

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        suggestion: str | None = None,
    ):
        self.message = message
        self.suggestion = suggestion
        if code is not None:
            self.code = code
        text = message if suggestion is None else f"{message}\n  Hint: {suggestion}"
        super().__init__(text)


class ProviderError(TemplateError):
    """A template provider failed to serve a source (unreadable file, bad scheme)."""

    code: ErrorCode | None = ErrorCode.PROVIDER_ERROR


class TemplateNotFoundError(ProviderError):
    """Template not found by any configured provider.

    Example:
        >>> env.get_template("nonexistent.tpl")
        TemplateNotFoundError: Template 'nonexistent.tpl' not found in: templates/
    """

    code: ErrorCode | None = ErrorCode.TEMPLATE_NOT_FOUND


class TemplateSyntaxError(TemplateError):
    """Compile-time error in template source.

    When ``source`` and ``lineno`` are provided the message includes the
    offending line; with ``col_offset`` a caret points at the column.
    """

    code: ErrorCode | None = ErrorCode.SYNTAX_ERROR

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        name: str | None = None,
        filename: str | None = None,
        source: str | None = None,
        col_offset: int | None = None,
        *,
        code: ErrorCode | None = None,
        suggestion: str | None = None,
    ):
        self.message = message
        self.lineno = lineno
        self.name = name
        self.filename = filename
        self.source = source
        self.col_offset = col_offset
        self.suggestion = suggestion
        if code is not None:
            self.code = code
        super().__init__(self._format_message())

    def _location(self) -> str:
        location = self.filename or self.name or "<template>"
        if self.lineno:
            location += f":{self.lineno}"
            if self.col_offset is not None:
                location += f":{self.col_offset + 1}"
        return location

    def _snippet(self) -> str | None:
        if not (self.source and self.lineno):
            return None
        if not 0 < self.lineno <= len(self.source.splitlines()):
            return None
        return build_source_snippet(
            self.source, self.lineno, context_lines=0, column=self.col_offset
        ).format()

    def _format_message(self) -> str:
        parts = [f"{self.message}\n  --> {self._location()}"]
        snippet = self._snippet()
        if snippet:
            parts.append(snippet)
        if self.suggestion:
            parts.append(f"  Hint: {self.suggestion}")
        return "\n".join(parts)

    def format_compact(self) -> str:
        code_prefix = f"{self.code.value}: " if self.code else ""
        parts = [f"{code_prefix}{self.message}", f"  --> {self._location()}"]
        snippet = self._snippet()
        if snippet:
            parts.append(snippet)
        if self.suggestion:
            parts.append(f"  Hint: {self.suggestion}")
        return "\n".join(parts)

    def with_template(self, name: str | None, source: str | None) -> TemplateSyntaxError:
        """Attach template name/source when the raiser did not know them."""
        if self.name is None and name is not None:
            self.name = name
        if self.source is None and source is not None:
            self.source = source
        self.args = (self._format_message(),)
        return self


class LexError(TemplateSyntaxError):
    """Lexical error: a tag or comment opened but never closed.

    Attributes:
        offset: Character offset of the unterminated construct.
        expected: The delimiter the lexer was looking for.
        found: What it reached instead (usually end of input).
    """

    code: ErrorCode | None = ErrorCode.UNCLOSED_TAG

    def __init__(
        self,
        message: str,
        lineno: int | None = None,
        col_offset: int | None = None,
        *,
        offset: int | None = None,
        expected: str | None = None,
        found: str | None = None,
        name: str | None = None,
        source: str | None = None,
        code: ErrorCode | None = None,
    ):
        self.offset = offset
        self.expected = expected
        self.found = found
        if expected is not None:
            message = f"{message} (expected {expected!r}, found {found or 'end of input'})"
        super().__init__(
            message, lineno, name=name, source=source, col_offset=col_offset, code=code
        )


class TemplateRuntimeError(TemplateError):
    """Render-time error with template location.

    Attributes:
        message: Error description
        template_name: Name of the template
        lineno: Line number in template source
        suggestion: Actionable fix suggestion
        source_snippet: Source lines around the failing line
    """

    code: ErrorCode | None = ErrorCode.RUNTIME_ERROR

    def __init__(
        self,
        message: str,
        *,
        values: dict[str, Any] | None = None,
        template_name: str | None = None,
        lineno: int | None = None,
        suggestion: str | None = None,
        source_snippet: SourceSnippet | None = None,
    ):
        self.message = message
        self.values = values or {}
        self.template_name = template_name
        self.lineno = lineno
        self.suggestion = suggestion
        self.source_snippet = source_snippet
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        parts = [f"Runtime Error: {self.message}"]
        if self.template_name or self.lineno:
            loc = self.template_name or "<template>"
            if self.lineno:
                loc += f":{self.lineno}"
            parts.append(f"  Location: {loc}")
        if self.source_snippet:
            parts.append(self.source_snippet.format())
        if self.values:
            parts.append("  Values:")
            for name, value in self.values.items():
                value_repr = repr(value)
                if len(value_repr) > 80:
                    value_repr = value_repr[:77] + "..."
                parts.append(f"    {name} = {value_repr} ({type(value).__name__})")
        if self.suggestion:
            parts.append(f"  Suggestion: {self.suggestion}")
        return "\n".join(parts)

    def format_compact(self) -> str:
        loc = self.template_name or "<template>"
        if self.lineno:
            loc += f":{self.lineno}"
        code_prefix = f"{self.code.value}: " if self.code else ""
        parts = [f"{code_prefix}{self.message}", f"  Location: {loc}"]
        if self.source_snippet:
            parts.append(self.source_snippet.format())
        if self.suggestion:
            parts.append(f"  Hint: {self.suggestion}")
        return "\n".join(parts)


class MacroRecursionError(TemplateRuntimeError):
    """Nested macro invocations exceeded ``max_macro_recursion``."""

    code: ErrorCode | None = ErrorCode.MACRO_RECURSION

    def __init__(self, macro: str, limit: int, **kwargs: Any):
        self.macro = macro
        self.limit = limit
        super().__init__(
            f"Macro recursion limit exceeded: '{macro}' nested more than {limit} times",
            suggestion="Check the macro's termination condition",
            **kwargs,
        )


class UndefinedError(TemplateRuntimeError):
    """Undefined variable accessed while ``force_verify`` is on.

    If ``available_names`` is provided, a "Did you mean?" suggestion is
    included when a close match exists.
    """

    code: ErrorCode | None = ErrorCode.UNDEFINED_VARIABLE

    def __init__(
        self,
        name: str,
        *,
        available_names: frozenset[str] | None = None,
        **kwargs: Any,
    ):
        self.name = name
        message = f"Undefined variable '${name}'"
        if available_names:
            from difflib import get_close_matches

            matches = get_close_matches(name, available_names, n=1, cutoff=0.6)
            if matches:
                message += f". Did you mean '${matches[0]}'?"
        kwargs.setdefault(
            "suggestion", f"Pass '{name}' to render() or test it first with {{if ${name}?}}"
        )
        super().__init__(message, **kwargs)


class CacheError(TemplateError):
    """Compile directory I/O failure (temp file creation, rename, read)."""

    code: ErrorCode | None = ErrorCode.CACHE_WRITE

    def __init__(self, message: str, *, path: str | None = None, code: ErrorCode | None = None):
        self.path = path
        if code is not None:
            self.code = code
        super().__init__(message if path is None else f"{message}: {path}")
