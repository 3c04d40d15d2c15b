"""Brace parser: segments and tokens to AST."""

from brace.parser.core import Parser
from brace.parser.errors import ParseError
from brace.parser.scope import Scope
from brace.parser.tokens import TokenStream

__all__ = ["ParseError", "Parser", "Scope", "TokenStream"]
