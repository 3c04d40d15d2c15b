"""Brace compiler: Brace AST → Python AST → code object."""

from brace.compiler.core import Compiler

__all__ = ["Compiler"]
