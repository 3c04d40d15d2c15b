"""Brace environment: engine facade, registries, providers and errors."""

from brace.environment.core import Environment
from brace.environment.exceptions import (
    CacheError,
    ConfigurationError,
    ErrorCode,
    LexError,
    MacroRecursionError,
    ProviderError,
    SourceSnippet,
    TemplateError,
    TemplateNotFoundError,
    TemplateRuntimeError,
    TemplateSyntaxError,
    UndefinedError,
    build_source_snippet,
)
from brace.environment.providers import (
    ChoiceProvider,
    DictProvider,
    FileSystemProvider,
    FunctionProvider,
    Provider,
)
from brace.environment.registry import ActionRegistry, ModifierRegistry, TagDefinition, TagKind

__all__ = [
    "ActionRegistry",
    "CacheError",
    "ChoiceProvider",
    "ConfigurationError",
    "DictProvider",
    "Environment",
    "ErrorCode",
    "FileSystemProvider",
    "FunctionProvider",
    "LexError",
    "MacroRecursionError",
    "ModifierRegistry",
    "Provider",
    "ProviderError",
    "SourceSnippet",
    "TagDefinition",
    "TagKind",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "UndefinedError",
    "build_source_snippet",
]
