"""Template providers for the Brace environment.

Providers supply template source text together with a freshness token, an
opaque comparable value that changes whenever the source changes. Compiled
artifacts record the tokens they were built from; ``verify()`` tells the
environment whether they are still current.

Built-in Providers:
- `FileSystemProvider`: Load from filesystem directories (mtime tokens)
- `DictProvider`: Load from an in-memory mapping (content-hash tokens)
- `ChoiceProvider`: Try multiple providers in order (theme fallback)
- `FunctionProvider`: Wrap a callable as a provider

Custom Providers:
Implement the Provider protocol:
    ```python
    class DatabaseProvider:
        def template_exists(self, name: str) -> bool: ...
        def get_source(self, name: str) -> tuple[str, Any]:
            row = db.query("SELECT source, updated FROM templates WHERE name = ?", name)
            if not row:
                raise TemplateNotFoundError(f"Template '{name}' not found")
            return row.source, row.updated
        def get_last_modified(self, name: str) -> Any: ...
        def verify(self, tokens: Mapping[str, Any]) -> bool: ...
        def list_templates(self) -> list[str]: ...
    ```

Thread-Safety:
Providers should be thread-safe for concurrent ``get_source()`` calls.
The built-in providers are.
"""

from __future__ import annotations

import hashlib
import os
import threading
from collections.abc import Callable, Iterable, Mapping
from difflib import get_close_matches
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from brace.environment.exceptions import ProviderError, TemplateNotFoundError


@runtime_checkable
class Provider(Protocol):
    """Source-resolution contract consumed by the environment."""

    def template_exists(self, name: str) -> bool: ...

    def get_source(self, name: str) -> tuple[str, Any]: ...

    def get_last_modified(self, name: str) -> Any: ...

    def verify(self, tokens: Mapping[str, Any]) -> bool: ...

    def list_templates(self) -> list[str]: ...


def _not_found(name: str, available: Iterable[str], where: str | None = None) -> TemplateNotFoundError:
    available = sorted(available)
    msg = f"Template '{name}' not found"
    if where:
        msg += f" in: {where}"
    matches = get_close_matches(name, available, n=1, cutoff=0.6)
    if matches:
        msg += f". Did you mean '{matches[0]}'?"
    elif available:
        msg += f". Available: {', '.join(available[:10])}"
        if len(available) > 10:
            msg += f" ... ({len(available)} total)"
    return TemplateNotFoundError(msg)


def content_token(source: str) -> str:
    """Freshness token derived from the source text itself."""
    return hashlib.sha256(source.encode("utf-8")).hexdigest()[:16]


class _VerifyMixin:
    """``verify()`` in terms of ``get_last_modified()``."""

    __slots__ = ()

    def get_last_modified(self, name: str) -> Any:
        raise NotImplementedError

    def verify(self, tokens: Mapping[str, Any]) -> bool:
        """True when every template's current freshness equals its recorded token.

        A template that has disappeared is reported as stale.
        """
        for name, token in tokens.items():
            if self.get_last_modified(name) != token:
                return False
        return True


class FileSystemProvider(_VerifyMixin):
    """Load templates from filesystem directories.

    Directories are searched in order and the first matching file wins. The
    freshness token is the file's modification time in nanoseconds.

    Names that would resolve outside the search directories (``../x.tpl``,
    absolute paths) are rejected.

    Example:
            >>> provider = FileSystemProvider("templates/")
            >>> source, mtime = provider.get_source("pages/about.tpl")

            >>> provider = FileSystemProvider(["site/", "shared/"], extension=".tpl")
            >>> provider.list_templates()
            ['base.tpl', 'components/card.tpl', 'pages/home.tpl']
    """

    __slots__ = ("_encoding", "_extension", "_paths")

    def __init__(
        self,
        paths: str | Path | list[str | Path],
        encoding: str = "utf-8",
        extension: str = ".tpl",
    ):
        if isinstance(paths, (str, Path)):
            paths = [paths]
        self._paths = [Path(p) for p in paths]
        self._encoding = encoding
        self._extension = extension

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def _resolve(self, name: str) -> Path | None:
        if not name or os.path.isabs(name) or ".." in Path(name).parts:
            return None
        for base in self._paths:
            path = base / name
            if path.is_file():
                return path
        return None

    def template_exists(self, name: str) -> bool:
        return self._resolve(name) is not None

    def get_source(self, name: str) -> tuple[str, int]:
        """Load template source and its mtime from the filesystem."""
        path = self._resolve(name)
        if path is None:
            raise _not_found(
                name, self.list_templates(), ", ".join(str(p) for p in self._paths)
            )
        try:
            mtime = path.stat().st_mtime_ns
            return path.read_text(self._encoding), mtime
        except FileNotFoundError:
            raise _not_found(name, (), str(path)) from None
        except (OSError, UnicodeDecodeError) as e:
            raise ProviderError(f"Cannot read template '{name}': {e}") from e

    def get_last_modified(self, name: str) -> int | None:
        path = self._resolve(name)
        if path is None:
            return None
        try:
            return path.stat().st_mtime_ns
        except OSError:
            return None

    def list_templates(self) -> list[str]:
        """List all templates with the configured extension in search paths."""
        templates = set()
        for base in self._paths:
            if base.is_dir():
                for path in base.rglob(f"*{self._extension}"):
                    templates.add(path.relative_to(base).as_posix())
        return sorted(templates)


class DictProvider(_VerifyMixin):
    """Load templates from an in-memory mapping.

    The freshness token is a hash of the template text, so artifacts
    compiled from another mapping never pass as current, and ``set()``
    with new text is noticed under ``auto_reload``. Useful for testing and
    embedded templates.

    Example:
            >>> provider = DictProvider({
            ...     "base.tpl": "<html>{block 'content'}{/block}</html>",
            ...     "page.tpl": "{extends 'base.tpl'}{block 'content'}Hi{/block}",
            ... })
            >>> env = Environment(provider=provider)
            >>> env.fetch("page.tpl")
            '<html>Hi</html>'
    """

    __slots__ = ("_lock", "_mapping", "_tokens")

    def __init__(self, mapping: Mapping[str, str] | None = None):
        self._mapping: dict[str, str] = dict(mapping or {})
        self._tokens: dict[str, str] = {
            name: content_token(source) for name, source in self._mapping.items()
        }
        self._lock = threading.Lock()

    def set(self, name: str, source: str) -> None:
        """Add or replace a template."""
        with self._lock:
            self._mapping[name] = source
            self._tokens[name] = content_token(source)

    __setitem__ = set

    def remove(self, name: str) -> None:
        with self._lock:
            self._mapping.pop(name, None)
            self._tokens.pop(name, None)

    def template_exists(self, name: str) -> bool:
        return name in self._mapping

    def get_source(self, name: str) -> tuple[str, str]:
        with self._lock:
            if name not in self._mapping:
                raise _not_found(name, self._mapping)
            return self._mapping[name], self._tokens[name]

    def get_last_modified(self, name: str) -> str | None:
        return self._tokens.get(name)

    def list_templates(self) -> list[str]:
        return sorted(self._mapping)


class ChoiceProvider(_VerifyMixin):
    """Try multiple providers in order, returning the first match.

    Useful for theme fallback patterns where a custom theme overrides
    a subset of templates and the default theme provides the rest.

    Example:
            >>> custom = DictProvider({"nav.tpl": "<nav>Custom</nav>"})
            >>> default = DictProvider({
            ...     "nav.tpl": "<nav>Default</nav>",
            ...     "footer.tpl": "<footer>Default</footer>",
            ... })
            >>> env = Environment(provider=ChoiceProvider([custom, default]))
            >>> env.fetch("nav.tpl")     # from custom
            '<nav>Custom</nav>'
            >>> env.fetch("footer.tpl")  # from default
            '<footer>Default</footer>'
    """

    __slots__ = ("_providers",)

    def __init__(self, providers: list[Provider]):
        self._providers = list(providers)

    def _find(self, name: str) -> Provider | None:
        for provider in self._providers:
            if provider.template_exists(name):
                return provider
        return None

    def template_exists(self, name: str) -> bool:
        return self._find(name) is not None

    def get_source(self, name: str) -> tuple[str, Any]:
        """Ask each provider in order, return the first match."""
        provider = self._find(name)
        if provider is None:
            raise _not_found(name, self.list_templates(), f"{len(self._providers)} providers")
        return provider.get_source(name)

    def get_last_modified(self, name: str) -> Any:
        provider = self._find(name)
        return provider.get_last_modified(name) if provider is not None else None

    def list_templates(self) -> list[str]:
        """Merge template lists from all providers (deduplicated, sorted)."""
        templates: set[str] = set()
        for provider in self._providers:
            templates.update(provider.list_templates())
        return sorted(templates)


class FunctionProvider(_VerifyMixin):
    """Wrap a callable as a template provider.

    The function takes a template name and returns one of:
        - ``(source, freshness)``: source with an explicit token
        - ``str``: source only; its content hash becomes the token
        - ``None``: template not found

    Example:
            >>> def load(name):
            ...     if name == "greeting.tpl":
            ...         return "Hello, {$name}!"
            ...     return None
            >>> env = Environment(provider=FunctionProvider(load))
            >>> env.fetch("greeting.tpl", {"name": "World"})
            'Hello, World!'
    """

    __slots__ = ("_load_func",)

    def __init__(self, load_func: Callable[[str], str | tuple[str, Any] | None]):
        self._load_func = load_func

    def _load(self, name: str) -> tuple[str, Any] | None:
        result = self._load_func(name)
        if result is None:
            return None
        if isinstance(result, str):
            return result, content_token(result)
        return result

    def template_exists(self, name: str) -> bool:
        return self._load(name) is not None

    def get_source(self, name: str) -> tuple[str, Any]:
        """Call the load function and normalize the result."""
        result = self._load(name)
        if result is None:
            raise TemplateNotFoundError(f"Template '{name}' not found")
        return result

    def get_last_modified(self, name: str) -> Any:
        result = self._load(name)
        return result[1] if result is not None else None

    def list_templates(self) -> list[str]:
        """FunctionProvider cannot enumerate templates."""
        return []
