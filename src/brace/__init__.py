"""Brace: a compiling template engine with inheritance, macros and a compile cache.

Quickstart:
    >>> from brace import Environment, DictProvider
    >>> env = Environment(DictProvider({"hello.tpl": "Hello, {$name}!"}))
    >>> env.fetch("hello.tpl", {"name": "World"})
    'Hello, World!'

File-based templates with an on-disk compile cache:
    >>> env = Environment.factory("templates/", "/var/cache/brace", {"auto_reload": True})
    >>> env.display("page.tpl", {"user": user})

Architecture:
Template Source → Lexer → Parser → Brace AST → Compiler → Python AST → exec()

Pipeline stages:
1. **Lexer**: Splits source into text and tag segments, then tokenizes tags
2. **Parser**: Dispatches tags through the action registry on an explicit
   stack of open blocks and builds an immutable Brace AST
3. **Compiler**: Transforms the Brace AST to a Python ``ast.Module``
4. **Template**: Wraps the compiled code with ``render()``/``display()``
5. **CompileCache**: Persists compiled code keyed by (name, options)

Thread-Safety:
Templates are immutable and render with local state only. The environment
guards its in-memory template table with a lock, and compiled artifacts are
published with an atomic rename.
"""

# The environment package must load before brace.cache (it imports the cache)
from brace.environment import (  # isort: skip
    ActionRegistry,
    CacheError,
    ChoiceProvider,
    ConfigurationError,
    DictProvider,
    Environment,
    ErrorCode,
    FileSystemProvider,
    FunctionProvider,
    LexError,
    MacroRecursionError,
    ModifierRegistry,
    Provider,
    ProviderError,
    SourceSnippet,
    TagDefinition,
    TagKind,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    UndefinedError,
    build_source_snippet,
)
from brace._types import Token, TokenType
from brace.cache import CompileCache, CompiledArtifact
from brace.options import Option, merge_options
from brace.parser import ParseError
from brace.render_context import (
    RenderContext,
    get_render_context,
    get_render_context_required,
    render_context,
)
from brace.template import Markup, Template
from brace.utils.html import html_escape

__version__ = "1.4.0"

__all__ = [
    "ActionRegistry",
    "CacheError",
    "ChoiceProvider",
    "CompileCache",
    "CompiledArtifact",
    "ConfigurationError",
    "DictProvider",
    "Environment",
    "ErrorCode",
    "FileSystemProvider",
    "FunctionProvider",
    "LexError",
    "MacroRecursionError",
    "Markup",
    "ModifierRegistry",
    "Option",
    "ParseError",
    "Provider",
    "ProviderError",
    "RenderContext",
    "SourceSnippet",
    "TagDefinition",
    "TagKind",
    "Template",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "Token",
    "TokenType",
    "UndefinedError",
    "__version__",
    "build_source_snippet",
    "get_render_context",
    "get_render_context_required",
    "html_escape",
    "merge_options",
    "render_context",
]


def __getattr__(name: str) -> object:
    """Module-level getattr for the free-threading declaration."""
    if name == "_Py_mod_gil":
        # 0 = Py_MOD_GIL_NOT_USED
        return 0
    raise AttributeError(f"module 'brace' has no attribute {name!r}")
