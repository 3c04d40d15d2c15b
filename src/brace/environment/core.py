"""Brace Environment: the engine facade.

The Environment owns everything a compilation needs: providers, the tag and
modifier registries, the option mask, filters, and the compile cache. It
orchestrates provider → lexer → parser → compiler → cache and hands out
:class:`~brace.template.Template` objects.

Lookup order of :meth:`Environment.get_template` for a (name, options) key:

1. the in-memory table; under ``auto_reload`` a stale entry is recompiled
2. ``force_compile``: always recompile, never consult the table or disk
3. the on-disk compile cache; under ``auto_reload`` a stale file is ignored
4. compile, persist (unless ``disable_cache``), remember in memory

Thread-Safety:
The in-memory table is guarded by a lock. Two threads missing on the same
key may both compile it; the compile cache's atomic rename makes that safe.
Registries use copy-on-write, but registering tags while other threads
compile is not supported.
"""

from __future__ import annotations

import logging
import sys
import tempfile
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, TextIO

from brace.cache import CompileCache, CompiledArtifact, cache_key
from brace.compiler import Compiler
from brace.environment.actions import (
    DEFAULT_ACTIONS,
    DEFAULT_CLOSE_COMPILER,
    DEFAULT_FUNC_CLOSE,
    DEFAULT_FUNC_OPEN,
    DEFAULT_FUNC_PARSER,
    SMART_FUNC_PARSER,
)
from brace.environment.exceptions import (
    CacheError,
    ConfigurationError,
    ErrorCode,
    ProviderError,
    TemplateSyntaxError,
)
from brace.environment.modifiers import DEFAULT_MODIFIERS
from brace.environment.providers import DictProvider, FileSystemProvider, Provider
from brace.environment.registry import ActionRegistry, ModifierRegistry, TagDefinition, TagKind
from brace.options import Option, coerce_options
from brace.parser import Parser
from brace.template import Template

if TYPE_CHECKING:
    import ast
    import os

    from brace.environment.registry import TagCallback

logger = logging.getLogger(__name__)

# (name, options) pairs currently being compiled in this thread/task
_compiling: ContextVar[tuple[tuple[str, int], ...]] = ContextVar("brace_compiling", default=())

PreFilter = Callable[[str, str | None], str]
TextFilter = Callable[[str], str]
PostFilter = Callable[["ast.Module", str | None], "ast.Module"]


class Environment:
    """Central configuration and template management hub.

    Args:
        provider: Default template provider (an empty DictProvider if omitted)
        compile_dir: Directory for compiled artifacts; None keeps them in memory
        options: Option mask, as an int or a mapping of named flags
        open_delim: Tag open delimiter
        close_delim: Tag close delimiter
        globals: Variables available in every template
        max_macro_recursion: Nested macro calls allowed per render
        best_effort_cache: Log cache I/O failures instead of raising
        tag_loader: Fallback consulted for unknown tags
        modifier_loader: Fallback consulted for unknown modifiers

    Example:
            >>> env = Environment(DictProvider({"hi.tpl": "Hello {$name}!"}))
            >>> env.fetch("hi.tpl", {"name": "World"})
            'Hello World!'

            >>> env = Environment.factory("templates/", "/tmp/brace", {"auto_reload": True})
            >>> env.display("page.tpl", {"user": user})
    """

    def __init__(
        self,
        provider: Provider | None = None,
        compile_dir: str | os.PathLike[str] | None = None,
        options: int | Mapping[str, bool] = 0,
        *,
        open_delim: str = "{",
        close_delim: str = "}",
        globals: Mapping[str, Any] | None = None,
        max_macro_recursion: int = 32,
        best_effort_cache: bool = False,
        tag_loader: Callable[[str], TagDefinition | None] | None = None,
        modifier_loader: Callable[[str], Callable[..., Any] | None] | None = None,
    ):
        if not open_delim or not close_delim or open_delim == close_delim:
            raise ConfigurationError(
                f"Invalid delimiters {open_delim!r} and {close_delim!r}",
                code=ErrorCode.INVALID_REGISTRATION,
                suggestion="Use two different, non-empty delimiters",
            )
        self._provider: Provider = provider if provider is not None else DictProvider()
        self._providers: dict[str, Provider] = {}
        self._options = coerce_options(options)
        self._storage: dict[str, Template] = {}
        self._lock = threading.RLock()
        self._cache: CompileCache | None = None
        if compile_dir is not None:
            self.set_compile_dir(compile_dir)

        self.open_delim = open_delim
        self.close_delim = close_delim
        self.globals: dict[str, Any] = dict(globals or {})
        self.max_macro_recursion = max_macro_recursion
        self.best_effort_cache = best_effort_cache
        self.actions = ActionRegistry(DEFAULT_ACTIONS, loader=tag_loader)
        self.modifiers = ModifierRegistry(DEFAULT_MODIFIERS, loader=modifier_loader)
        self.pre_filters: list[PreFilter] = []
        self.text_filters: list[TextFilter] = []
        self.post_filters: list[PostFilter] = []

    @classmethod
    def factory(
        cls,
        source: str | os.PathLike[str] | Provider,
        compile_dir: str | os.PathLike[str] | None = None,
        options: int | Mapping[str, bool] = 0,
        **kwargs: Any,
    ) -> Environment:
        """Build an environment from a template directory or a provider.

        ``compile_dir`` defaults to the system temporary directory.
        """
        if isinstance(source, Provider):
            provider = source
        elif isinstance(source, (str, bytes)) or hasattr(source, "__fspath__"):
            provider = FileSystemProvider(source)
        else:
            raise ConfigurationError(
                f"Source must be a template directory or a provider, got {type(source).__name__}",
                code=ErrorCode.INVALID_REGISTRATION,
            )
        if compile_dir is None:
            compile_dir = tempfile.gettempdir()
        return cls(provider, compile_dir, options, **kwargs)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_compile_dir(self, directory: str | os.PathLike[str]) -> None:
        """Use ``directory`` for compiled artifacts.

        Raises:
            ConfigurationError: If the directory is missing or not writable.
        """
        self._cache = CompileCache(directory)

    @property
    def cache(self) -> CompileCache | None:
        return self._cache

    @property
    def options(self) -> Option:
        return self._options

    def set_options(self, options: int | Mapping[str, bool]) -> None:
        """Replace the option mask (int) or merge named flags onto it (mapping).

        Clears the in-memory template table.

        Raises:
            ConfigurationError: On an unknown option name or bit.
        """
        new = coerce_options(options, self._options)
        with self._lock:
            self._storage.clear()
            self._options = new

    def get_options(self) -> Option:
        return self._options

    def add_pre_filter(self, callback: PreFilter) -> None:
        """Transform template source before it is parsed: ``callback(source, name)``."""
        self.pre_filters.append(callback)

    def add_filter(self, callback: TextFilter) -> None:
        """Transform every literal text segment: ``callback(text)``."""
        self.text_filters.append(callback)

    def add_post_filter(self, callback: PostFilter) -> None:
        """Transform the generated module: ``callback(module, name)``."""
        self.post_filters.append(callback)

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    def add_provider(self, scheme: str, provider: Provider) -> None:
        """Serve ``scheme:name`` templates from ``provider``."""
        self._providers[scheme] = provider

    def get_provider(self, scheme: str | None = None) -> Provider:
        if not scheme:
            return self._provider
        try:
            return self._providers[scheme]
        except KeyError:
            raise ProviderError(f"Provider for scheme '{scheme}' not found") from None

    def _resolve_provider(self, name: str) -> tuple[Provider, str]:
        scheme, sep, local = name.partition(":")
        if sep and scheme:
            return self.get_provider(scheme), local
        return self._provider, name

    def template_exists(self, name: str) -> bool:
        try:
            provider, local = self._resolve_provider(name)
        except ProviderError:
            return False
        return provider.template_exists(local)

    def fetch_source(self, name: str) -> tuple[str, Any]:
        """Template source with pre-filters applied, and its freshness token."""
        provider, local = self._resolve_provider(name)
        source, freshness = provider.get_source(local)
        for pre_filter in self.pre_filters:
            source = pre_filter(source, name)
        return source, freshness

    def freshness(self, name: str) -> Any:
        """Current freshness token of ``name``, or None if it does not exist."""
        try:
            provider, local = self._resolve_provider(name)
        except ProviderError:
            return None
        return provider.get_last_modified(local)

    def verify(self, tokens: Mapping[str, Any]) -> bool:
        """True when every (template name → freshness) pair is still current."""
        grouped: dict[int, tuple[Provider, dict[str, Any]]] = {}
        for name, token in tokens.items():
            try:
                provider, local = self._resolve_provider(name)
            except ProviderError:
                return False
            grouped.setdefault(id(provider), (provider, {}))[1][local] = token
        return all(provider.verify(group) for provider, group in grouped.values())

    # ------------------------------------------------------------------
    # Registries
    # ------------------------------------------------------------------

    def add_modifier(self, name: str, callback: Callable[..., Any]) -> None:
        self.modifiers.register(name, callback)

    def add_compiler(self, name: str, parser: TagCallback) -> None:
        """Register an inline tag compiled by ``parser(parser, tokens, scope)``."""
        self.actions.register(name, TagDefinition(TagKind.INLINE_COMPILER, parser=parser))

    def add_compiler_smart(self, name: str, storage: object) -> None:
        """Register inline tag ``name`` compiled by ``storage.tag_<name>``.

        Raises:
            ConfigurationError: If ``storage`` has no such method.
        """
        parser = _require_method(storage, f"tag_{name}", name)
        self.actions.register(name, TagDefinition(TagKind.INLINE_COMPILER, parser=parser))

    def add_block_compiler(
        self,
        name: str,
        open: TagCallback,
        close: TagCallback | None = DEFAULT_CLOSE_COMPILER,
        tags: Mapping[str, TagCallback] | None = None,
        floats: Iterable[str] = (),
    ) -> None:
        """Register a block tag ``{name}...{/name}``.

        Args:
            open: Called on the opening tag; may return a node
            close: Called on the closing tag; the default splices the body in
            tags: Nested tags valid directly inside the block
            floats: Nested tags also honoured from inner blocks
        """
        tags = dict(tags or {})
        float_tags = frozenset(floats)
        unknown = float_tags - tags.keys()
        if unknown:
            raise ConfigurationError(
                f"Floating tags {sorted(unknown)} of {{{name}}} have no parser",
                code=ErrorCode.INVALID_REGISTRATION,
            )
        self.actions.register(
            name,
            TagDefinition(
                TagKind.BLOCK_COMPILER,
                open=open,
                close=close or DEFAULT_CLOSE_COMPILER,
                tags=tags,
                float_tags=float_tags,
            ),
        )

    def add_block_compiler_smart(
        self,
        name: str,
        storage: object,
        tags: Sequence[str] = (),
        floats: Iterable[str] = (),
    ) -> None:
        """Register a block tag whose parsers are methods of ``storage``.

        Looks up ``<name>_open``, ``<name>_close`` and ``tag_<nested>`` for
        every nested tag.

        Raises:
            ConfigurationError: If any of those methods is missing.
        """
        open_parser = _require_method(storage, f"{name}_open", name)
        close_parser = _require_method(storage, f"{name}_close", name)
        nested = {tag: _require_method(storage, f"tag_{tag}", name) for tag in tags}
        self.add_block_compiler(name, open_parser, close_parser, nested, floats)

    def add_function(
        self,
        name: str,
        callback: Callable[..., Any],
        parser: TagCallback = DEFAULT_FUNC_PARSER,
    ) -> None:
        """Register ``{name a=1 b=2}`` calling ``callback({"a": 1, "b": 2})``."""
        self.actions.register(
            name, TagDefinition(TagKind.INLINE_FUNCTION, parser=parser, function=callback)
        )

    def add_function_smart(self, name: str, callback: Callable[..., Any]) -> None:
        """Register ``{name a=1 b=2}`` calling ``callback(a=1, b=2)``.

        Attributes are checked against the callback's signature at compile time.
        """
        self.actions.register(
            name,
            TagDefinition(
                TagKind.INLINE_FUNCTION, parser=SMART_FUNC_PARSER, function=callback, smart=True
            ),
        )

    def add_block_function(
        self,
        name: str,
        callback: Callable[[dict[str, Any], str], Any],
        open: TagCallback = DEFAULT_FUNC_OPEN,
        close: TagCallback = DEFAULT_FUNC_CLOSE,
    ) -> None:
        """Register ``{name a=1}body{/name}`` calling ``callback({"a": 1}, body)``."""
        self.actions.register(
            name,
            TagDefinition(TagKind.BLOCK_FUNCTION, open=open, close=close, function=callback),
        )

    def add_allowed_functions(
        self, funcs: Iterable[str] | Mapping[str, Callable[..., Any]]
    ) -> None:
        """Allow host functions even when ``disable_native_funcs`` is set."""
        self.modifiers.allow(funcs)

    def get_modifier(self, name: str) -> Callable[..., Any] | None:
        return self.modifiers.resolve(name, Option.DENY_NATIVE_FUNCS in self._options)

    def get_tag(self, name: str) -> TagDefinition | None:
        return self.actions.resolve(name)

    def get_tag_owners(self, tag: str) -> list[str]:
        """Block tags that declare ``tag`` as a nested tag."""
        return self.actions.owners(tag)

    def is_allowed_function(self, name: str) -> bool:
        return self.modifiers.is_allowed_function(
            name, Option.DENY_NATIVE_FUNCS in self._options
        )

    # ------------------------------------------------------------------
    # Templates
    # ------------------------------------------------------------------

    def _merge_options(self, options: int | Mapping[str, bool]) -> Option:
        if isinstance(options, Mapping):
            return coerce_options(options, self._options)
        return self._options | coerce_options(options)

    def get_template(self, name: str, options: int | Mapping[str, bool] = 0) -> Template:
        """Get a compiled template by name (``scheme:name`` for other providers).

        Args:
            name: Template name
            options: Extra flags for this template, merged onto the environment's

        Raises:
            TemplateNotFoundError: If no provider has the template
            TemplateSyntaxError: If the template fails to compile
            CacheError: If the compile cache fails and best-effort caching is off
        """
        mask = self._merge_options(options)
        key = cache_key(name, mask)
        with self._lock:
            template = self._storage.get(key)

        if template is not None:
            if Option.AUTO_RELOAD in mask and not template.is_valid():
                logger.debug("Template %r changed since it was compiled; recompiling", name)
                template = self.compile(name, True, mask)
                with self._lock:
                    self._storage[key] = template
            return template

        if Option.FORCE_COMPILE in mask:
            return self.compile(name, True, mask)

        template = self._load(name, mask)
        with self._lock:
            self._storage[key] = template
        return template

    def _load(self, name: str, options: Option) -> Template:
        """Load from the compile cache, or compile when missing or stale."""
        if self._cache is not None:
            try:
                artifact = self._cache.load(name, options)
            except CacheError as e:
                if not self.best_effort_cache:
                    raise
                logger.warning("Ignoring unreadable compile cache for %r: %s", name, e)
                artifact = None
            if artifact is not None:
                template = self._from_artifact(artifact)
                if Option.AUTO_RELOAD not in options or template.is_valid():
                    logger.debug("Compile cache hit for %r (options 0x%x)", name, int(options))
                    return template
                logger.debug("Compile cache entry for %r is stale", name)
        return self.compile(name, True, options)

    def _from_artifact(self, artifact: CompiledArtifact) -> Template:
        return Template(
            self,
            artifact.code,
            artifact.name,
            options=artifact.options,
            freshness=artifact.freshness,
            dependencies=artifact.dependencies,
            source=artifact.source,
            filename=artifact.name,
        )

    def compile(
        self, name: str, store: bool = True, options: int | Mapping[str, bool] = 0
    ) -> Template:
        """Compile ``name`` and, if ``store``, persist it to the compile cache.

        Nothing is persisted under ``disable_cache`` or without a compile
        directory. The in-memory table is not touched.
        """
        mask = self._merge_options(options)
        entry = (name, int(mask))
        stack = _compiling.get()
        token = _compiling.set((*stack, entry))
        try:
            source, freshness = self.fetch_source(name)
            template = self._compile_source(source, name, freshness, mask)
        finally:
            _compiling.reset(token)

        if store and self._cache is not None and Option.DISABLE_CACHE not in mask:
            artifact = CompiledArtifact(
                name=name,
                options=int(mask),
                freshness=freshness,
                code=template.code,
                dependencies=template.dependencies,
                source=source,
            )
            try:
                self._cache.store(artifact)
            except CacheError as e:
                if not self.best_effort_cache:
                    raise
                logger.warning("Could not persist compiled template %r: %s", name, e)
        return template

    def _compile_source(
        self, source: str, name: str | None, freshness: Any, options: Option
    ) -> Template:
        node = Parser(self, source, name, options=options).parse()
        code = Compiler(self, options).compile(node, name, name)
        logger.debug("Compiled template %r (options 0x%x)", name or "<string>", int(options))
        return Template(
            self,
            code,
            name,
            options=options,
            freshness=freshness,
            dependencies=node.dependencies,
            source=source,
            filename=name,
        )

    def compile_code(self, source: str, name: str | None = None) -> Template:
        """Compile template source that does not come from a provider."""
        for pre_filter in self.pre_filters:
            source = pre_filter(source, name)
        return self._compile_source(source, name, None, self._options)

    from_string = compile_code

    def is_compiling(self, name: str, options: int) -> bool:
        """True while ``name`` is being compiled further up this call chain."""
        return (name, int(options)) in _compiling.get()

    def compile_dependency(self, name: str, options: int) -> Template:
        """Compiled template that the template being compiled depends on.

        Raises:
            TemplateSyntaxError: If ``name`` is already being compiled up the
                chain (``{extends}`` or ``{use}`` cycle).
        """
        if self.is_compiling(name, options):
            chain = " → ".join(n for n, _ in _compiling.get())
            raise TemplateSyntaxError(
                f"Template '{name}' depends on itself: {chain} → {name}",
                name=name,
                code=ErrorCode.INHERITANCE_CYCLE,
            )
        return self.get_template(name, options)

    def flush(self) -> None:
        """Forget every template held in memory."""
        with self._lock:
            self._storage.clear()

    def clear_all_compiles(self) -> int:
        """Delete every compiled artifact from the compile directory."""
        if self._cache is None:
            return 0
        return self._cache.clear()

    # ------------------------------------------------------------------
    # Rendering shortcuts
    # ------------------------------------------------------------------

    def fetch(self, name: str, variables: Mapping[str, Any] | None = None) -> str:
        """Render ``name`` to a string."""
        return self.get_template(name).render(variables or {})

    def display(
        self,
        name: str,
        variables: Mapping[str, Any] | None = None,
        out: TextIO | None = None,
    ) -> None:
        """Render ``name`` to ``out`` (default: ``sys.stdout``)."""
        self.get_template(name).display(variables, out if out is not None else sys.stdout)

    def pipe(
        self,
        name: str,
        callback: Callable[[str], Any],
        variables: Mapping[str, Any] | None = None,
        chunk: int = 1_000_000,
    ) -> None:
        """Stream ``name`` to ``callback`` in chunks of about ``chunk`` characters."""
        self.get_template(name).pipe(callback, variables, chunk)

    def __repr__(self) -> str:
        return (
            f"<Environment options=0x{int(self._options):x} "
            f"cache={str(self._cache.directory) if self._cache else None!r}>"
        )


def _require_method(storage: object, method: str, tag: str) -> Callable[..., Any]:
    func = getattr(storage, method, None)
    if not callable(func):
        raise ConfigurationError(
            f"Cannot register {{{tag}}}: {type(storage).__name__} has no method '{method}'",
            code=ErrorCode.INVALID_REGISTRATION,
        )
    return func
