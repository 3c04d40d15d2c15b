"""Brace parser core.

Turns the lexer's segments into an immutable AST. Tags are dispatched
through the environment's action registry and tracked on an explicit stack
of :class:`~brace.parser.scope.Scope` frames, so every error can name the
chain of enclosing tags.

Tag dispatch order for ``{name ...}``:

1. a nested tag of the innermost open block (``{elseif}`` inside ``{if}``)
2. a floating tag of the nearest enclosing block that declares it
   (``{break}`` inside ``{if}`` inside ``{foreach}``); isolated blocks
   such as ``{macro}`` stop the search
3. a registered tag (or one supplied by the fallback tag loader)
4. ``{namespace.macro ...}`` macro calls
5. an expression starting with a function call or constant
"""

from __future__ import annotations

import logging
from difflib import get_close_matches
from typing import TYPE_CHECKING, Any

from brace._types import Segment, SegmentType, Token, TokenType
from brace.environment.exceptions import ErrorCode
from brace.lexer import Lexer
from brace.nodes import (
    Assign,
    Block,
    Data,
    Expr,
    Macro,
    MacroCall,
    Node,
    Output,
    Template,
)
from brace.options import Option
from brace.parser.errors import ParseError
from brace.parser.expressions import ExpressionParsingMixin
from brace.parser.scope import Scope
from brace.parser.tokens import TokenStream

if TYPE_CHECKING:
    from brace.environment.core import Environment

logger = logging.getLogger(__name__)

# Constant names that may open an expression tag: {true ? 'a' : 'b'}
_EXPRESSION_NAMES = frozenset({"true", "false", "null", "none", "not"})

MAX_INSERT_DEPTH = 16


class Parser(ExpressionParsingMixin):
    """Parse one template source into a :class:`~brace.nodes.Template`.

    A parser is single-use and not thread-safe; the environment creates one
    per compilation.

    Attributes:
        env: Owning environment (registries, providers, options)
        name: Template name, or None for string templates
        options: Option mask the template is compiled with
        blocks: Regions defined by this template
        macros: Macro definitions by (origin, name), imported ones included
        namespaces: Macro call namespace → macro name → (origin, name)
        dependencies: Template name → freshness token
    """

    def __init__(
        self,
        env: Environment,
        source: str,
        name: str | None = None,
        *,
        options: Option | int | None = None,
        import_chain: tuple[str, ...] = (),
    ):
        self.env = env
        self.source = source
        self.name = name
        self.origin = name or "<string>"
        self.options = Option(env.options if options is None else options)
        self.lexer = Lexer(
            source, open_delim=env.open_delim, close_delim=env.close_delim, name=name
        )
        self.body: list[Node] = []
        self.blocks: dict[str, Block] = {}
        self.extends: Expr | None = None
        self.uses: list[str] = []
        self.macros: dict[tuple[str, str], Macro] = {}
        self.namespaces: dict[str, dict[str, tuple[str, str]]] = {}
        self.macro_params: dict[tuple[str, str], tuple[tuple[str, Expr | None], ...]] = {}
        self.dependencies: dict[str, Any] = {}
        self._scopes: list[Scope] = []
        self._stream = TokenStream([Token(TokenType.EOF, None, 1, 0)], self)
        self._insert_stack: list[str] = []
        self.import_chain = import_chain

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def parse(self) -> Template:
        for segment in self.lexer.segments():
            self._handle_segment(segment)
        if self._scopes:
            scope = self._scopes[-1]
            raise self.error(
                f"Unclosed tag {{{scope.name}}}: expected {{/{scope.name}}}",
                lineno=scope.lineno,
                col_offset=scope.col_offset,
                code=ErrorCode.UNCLOSED_BLOCK,
            )
        return Template(
            lineno=1,
            col_offset=0,
            body=tuple(self.body),
            extends=self.extends,
            blocks=dict(self.blocks),
            uses=tuple(self.uses),
            macros=dict(self.macros),
            dependencies=dict(self.dependencies),
        )

    @property
    def scopes(self) -> tuple[Scope, ...]:
        """Open tags, outermost first."""
        return tuple(self._scopes)

    @property
    def current_scope(self) -> Scope | None:
        return self._scopes[-1] if self._scopes else None

    def find_scope(self, *names: str) -> Scope | None:
        """Innermost open frame whose tag is one of ``names``."""
        for scope in reversed(self._scopes):
            if scope.name in names:
                return scope
        return None

    def autoescape_policy(self) -> bool | None:
        """Policy of the innermost open {autoescape} region, if any."""
        scope = self.find_scope("autoescape")
        return scope.data["enabled"] if scope is not None else None

    def emit(self, node: Node) -> None:
        """Append a node to the innermost open body."""
        if self._scopes:
            self._scopes[-1].body.append(node)
        else:
            self.body.append(node)

    def error(
        self,
        message: str,
        token: Token | None = None,
        *,
        suggestion: str | None = None,
        code: ErrorCode | None = None,
        lineno: int | None = None,
        col_offset: int | None = None,
    ) -> ParseError:
        """Build a ParseError located at ``token`` with the open tag chain."""
        if token is not None:
            lineno = token.lineno if lineno is None else lineno
            col_offset = token.col_offset if col_offset is None else col_offset
        return ParseError(
            message,
            lineno,
            col_offset,
            name=self.name,
            source=self.lexer.source,
            suggestion=suggestion,
            tag_chain=[scope.name for scope in self._scopes],
            code=code,
        )

    # ------------------------------------------------------------------
    # Cross-template helpers used by tag callbacks
    # ------------------------------------------------------------------

    def add_dependency(self, name: str, freshness: Any) -> None:
        self.dependencies.setdefault(name, freshness)

    def merge_dependencies(self, dependencies: dict[str, Any]) -> None:
        for dep, freshness in dependencies.items():
            self.add_dependency(dep, freshness)

    def load_template(self, name: str):
        """Compile another template this one depends on and record its freshness.

        Returns the compiled Template. Errors of the dependency (including
        TemplateNotFoundError) propagate unchanged.
        """
        template = self.env.compile_dependency(name, self.options)
        self.add_dependency(name, template.freshness)
        self.merge_dependencies(template.dependencies)
        return template

    def parse_template(self, name: str) -> Parser:
        """Parse another template (without compiling it) for {import}."""
        source, freshness = self.env.fetch_source(name)
        self.add_dependency(name, freshness)
        sub = Parser(
            self.env,
            source,
            name,
            options=self.options,
            import_chain=(*self.import_chain, self.origin),
        )
        sub.parse()
        self.merge_dependencies(sub.dependencies)
        return sub

    def insert_template(self, name: str, token: Token) -> None:
        """Splice another template's source into this parse at compile time."""
        if name in self._insert_stack or len(self._insert_stack) >= MAX_INSERT_DEPTH:
            raise self.error(
                f"Recursive {{insert}} of '{name}'", token, code=ErrorCode.INHERITANCE_CYCLE
            )
        source, freshness = self.env.fetch_source(name)
        self.add_dependency(name, freshness)

        saved_lexer, saved_name, saved_stream = self.lexer, self.name, self._stream
        depth = len(self._scopes)
        self.lexer = Lexer(
            source, open_delim=self.env.open_delim, close_delim=self.env.close_delim, name=name
        )
        self.name = name
        self._insert_stack.append(name)
        try:
            for segment in self.lexer.segments():
                self._handle_segment(segment)
            if len(self._scopes) != depth:
                scope = self._scopes[-1]
                raise self.error(
                    f"Unclosed tag {{{scope.name}}} in inserted template",
                    lineno=scope.lineno,
                    col_offset=scope.col_offset,
                    code=ErrorCode.UNCLOSED_BLOCK,
                )
        finally:
            self._insert_stack.pop()
            self.lexer, self.name, self._stream = saved_lexer, saved_name, saved_stream

    def register_macro_namespace(
        self, alias: str, macros: dict[str, tuple[str, str]]
    ) -> None:
        existing = self.namespaces.setdefault(alias, {})
        for macro_name in macros:
            if macro_name in existing and existing[macro_name] != macros[macro_name]:
                logger.debug(
                    "Macro %s.%s redefined in %s", alias, macro_name, self.origin
                )
        existing.update(macros)

    # ------------------------------------------------------------------
    # Segment dispatch
    # ------------------------------------------------------------------

    def _handle_segment(self, segment: Segment) -> None:
        if segment.type is SegmentType.TEXT:
            value = segment.value
            for text_filter in self.env.text_filters:
                value = text_filter(value)
            if value:
                self.emit(Data(segment.lineno, segment.col_offset, value))
            return

        tokens = self.lexer.tokenize(segment)
        self._stream = stream = TokenStream(tokens, self)

        if segment.is_closing:
            stream.expect(TokenType.DIV)
            name_token = stream.expect(TokenType.NAME)
            self._close(name_token, stream)
            return

        first = stream.current
        if first.type is TokenType.NAME:
            self._handle_tag(first, stream)
            return

        if first.type is TokenType.VARIABLE and stream.peek().type is TokenType.ASSIGN:
            name = self.parse_variable_name()
            stream.advance()
            value = self.parse_expression()
            stream.expect_end()
            self.emit(Assign(first.lineno, first.col_offset, name, value))
            return

        self.emit(self._parse_output(first, raw=False))

    def _parse_output(self, token: Token, raw: bool) -> Output:
        expr = self.parse_expression()
        self._stream.expect_end()
        return Output(token.lineno, token.col_offset, expr, raw)

    def parse_output(self, token: Token, raw: bool = False) -> Output:
        """Parse the rest of the tag as an interpolated expression."""
        return self._parse_output(token, raw)

    def _handle_tag(self, token: Token, stream: TokenStream) -> None:
        name = token.value

        # Nested tag of the innermost block
        if self._scopes:
            top = self._scopes[-1]
            callback = top.definition.tags.get(name)
            if callback is not None:
                stream.advance()
                self._emit_result(callback(self, stream, top))
                return

            # Floating tag of an enclosing block
            for scope in reversed(self._scopes):
                if name in scope.definition.float_tags:
                    callback = scope.definition.tags[name]
                    stream.advance()
                    self._emit_result(callback(self, stream, scope))
                    return
                if scope.isolated:
                    break

        # {macro.name ...} must not be taken for the {macro} definition tag
        if (
            name in self.namespaces
            and stream.peek().type is TokenType.DOT
            and stream.peek(2).type is TokenType.NAME
        ):
            self._parse_macro_call(token, stream)
            return

        definition = self.env.actions.resolve(name)
        if definition is None:
            owners = self.env.actions.owners(name)
            if owners:
                expected = ", ".join(f"{{{owner}}}" for owner in owners)
                raise self.error(
                    f"Tag {{{name}}} used outside its owning block; expected inside {expected}",
                    token,
                    code=ErrorCode.MISPLACED_TAG,
                )
            if stream.peek().type is TokenType.DOT and stream.peek(2).type is TokenType.NAME:
                self._parse_macro_call(token, stream)
                return
            if stream.peek().type is TokenType.LPAREN or name.lower() in _EXPRESSION_NAMES:
                self.emit(self._parse_output(token, raw=False))
                return
            candidates = self.env.actions.names() + list(self._open_nested_tags())
            matches = get_close_matches(name, candidates, n=1, cutoff=0.6)
            raise self.error(
                f"Unknown tag {{{name}}}",
                token,
                code=ErrorCode.UNKNOWN_TAG,
                suggestion=f"Did you mean {{{matches[0]}}}?" if matches else None,
            )

        stream.advance()
        scope = Scope(
            name=name,
            definition=definition,
            lineno=token.lineno,
            col_offset=token.col_offset,
        )
        if definition.is_block:
            result = definition.open(self, stream, scope)
            if not scope.closed:
                self._scopes.append(scope)
            self._emit_result(result)
        else:
            self._emit_result(definition.parser(self, stream, scope))

    def _close(self, token: Token, stream: TokenStream) -> None:
        name = token.value
        if not self._scopes:
            raise self.error(
                f"Unexpected closing tag {{/{name}}}: no open block",
                token,
                code=ErrorCode.MISPLACED_TAG,
            )
        top = self._scopes[-1]
        if top.name != name:
            raise self.error(
                f"Unexpected closing tag {{/{name}}}: expected {{/{top.name}}}",
                token,
                code=ErrorCode.MISPLACED_TAG,
                suggestion=f"{{{top.name}}} opened at line {top.lineno} is still open",
            )
        self._scopes.pop()
        close = top.definition.close
        result = close(self, stream, top) if close is not None else None
        stream.expect_end()
        self._emit_result(result)

    def _emit_result(self, result: Node | None) -> None:
        if result is not None:
            self.emit(result)

    def _open_nested_tags(self) -> set[str]:
        names: set[str] = set()
        for scope in self._scopes:
            names.update(scope.definition.tags)
        return names

    # ------------------------------------------------------------------
    # Macros
    # ------------------------------------------------------------------

    def _parse_macro_call(self, token: Token, stream: TokenStream) -> None:
        namespace = stream.advance().value
        stream.expect(TokenType.DOT)
        name_token = stream.expect(TokenType.NAME)
        key = self.namespaces.get(namespace, {}).get(name_token.value)
        if key is None:
            known = sorted(
                f"{ns}.{macro}" for ns, macros in self.namespaces.items() for macro in macros
            )
            matches = get_close_matches(f"{namespace}.{name_token.value}", known, n=1, cutoff=0.6)
            raise self.error(
                f"Unknown macro '{namespace}.{name_token.value}'",
                token,
                code=ErrorCode.UNKNOWN_MACRO,
                suggestion=f"Did you mean '{matches[0]}'?" if matches else None,
            )
        params = self.macro_params[key]
        allowed = {param for param, _ in params}
        args = self.parse_attributes()
        for arg_name, _ in args:
            if arg_name not in allowed:
                raise self.error(
                    f"Macro '{namespace}.{name_token.value}' has no parameter '{arg_name}'",
                    token,
                    suggestion=f"Parameters: {', '.join(sorted(allowed)) or '(none)'}",
                )
        self.emit(MacroCall(token.lineno, token.col_offset, key[0], key[1], tuple(args)))

    def define_macro_signature(
        self, name: str, params: tuple[tuple[str, Expr | None], ...]
    ) -> tuple[str, str]:
        """Make ``{macro.name}`` callable (including from its own body)."""
        key = (self.origin, name)
        self.macro_params[key] = params
        self.register_macro_namespace("macro", {name: key})
        return key

    def import_macros(
        self,
        other: Parser,
        alias: str,
        names: list[str] | None,
        token: Token,
    ) -> None:
        """Make macros defined by ``other`` callable as ``{alias.name}``."""
        own = other.namespaces.get("macro", {})
        if names is not None:
            missing = [n for n in names if n not in own]
            if missing:
                raise self.error(
                    f"Template '{other.name}' does not define macro '{missing[0]}'",
                    token,
                    code=ErrorCode.UNKNOWN_MACRO,
                )
            own = {n: own[n] for n in names}
        self.macros.update(other.macros)
        self.macro_params.update(other.macro_params)
        self.register_macro_namespace(alias, dict(own))

