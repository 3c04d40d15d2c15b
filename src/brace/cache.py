"""On-disk compile cache.

One file per (template name, option mask). The file name is derived from
both, so the same pair always maps to the same file and two masks never
share one::

    page.tpl.3f9a0c1d2b4e5f60.8.200.bcache
    ^base    ^sha256(key)     ^len(name) ^options

Files are written to a temporary name in the same directory and renamed
into place, so a concurrent reader sees either the previous artifact or the
new one, never a partial write. Concurrent compilers of the same key may
both write; the last rename wins and both files were complete.

A file that cannot be decoded, or that was written by another interpreter
version or for another key, counts as a miss.
"""

from __future__ import annotations

import hashlib
import logging
import marshal
import os
import re
import sys
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from brace.environment.exceptions import CacheError, ConfigurationError, ErrorCode

if TYPE_CHECKING:
    import types

logger = logging.getLogger(__name__)

# Bump when the artifact layout or the generated code contract changes
CACHE_FORMAT = 4
CACHE_SUFFIX = ".bcache"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass(frozen=True, slots=True)
class CompiledArtifact:
    """Everything needed to rebuild a Template without recompiling.

    Attributes:
        name: Template name
        options: Option mask the code was compiled with
        freshness: Freshness token of the template source
        dependencies: Template name → freshness token of every dependency
        source: Template source (runtime error snippets)
        code: Compiled module code object
    """

    name: str
    options: int
    freshness: Any
    code: types.CodeType
    dependencies: dict[str, Any] = field(default_factory=dict)
    source: str | None = None


def cache_key(name: str, options: int) -> str:
    """Identity of an artifact: option mask (hex) and template name."""
    return f"{int(options):x}@{name}"


def cache_filename(name: str, options: int) -> str:
    """Deterministic file name for (name, options)."""
    digest = hashlib.sha256(cache_key(name, options).encode("utf-8")).hexdigest()[:16]
    base = _UNSAFE_CHARS.sub("_", os.path.basename(name))[:64] or "template"
    return f"{base}.{digest}.{len(name):x}.{int(options):x}{CACHE_SUFFIX}"


class CompileCache:
    """Directory of compiled artifacts.

    Raises:
        ConfigurationError: If ``directory`` is not an existing, writable
            directory.

    Example:
            >>> cache = CompileCache("/tmp/brace")
            >>> cache.store(artifact)
            >>> cache.load("page.tpl", 0x200)
            CompiledArtifact(name='page.tpl', options=512, ...)
    """

    __slots__ = ("_directory", "_hits", "_misses", "_writes")

    def __init__(self, directory: str | os.PathLike[str]):
        path = Path(directory)
        if not path.is_dir():
            raise ConfigurationError(
                f"Compile directory {str(path)!r} does not exist",
                code=ErrorCode.INVALID_COMPILE_DIR,
            )
        if not os.access(path, os.W_OK):
            raise ConfigurationError(
                f"Compile directory {str(path)!r} is not writable",
                code=ErrorCode.INVALID_COMPILE_DIR,
            )
        self._directory = path
        self._hits = 0
        self._misses = 0
        self._writes = 0

    @property
    def directory(self) -> Path:
        return self._directory

    def path_for(self, name: str, options: int) -> Path:
        return self._directory / cache_filename(name, options)

    def load(self, name: str, options: int) -> CompiledArtifact | None:
        """Read the artifact of (name, options), or None on a miss."""
        path = self.path_for(name, options)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            self._misses += 1
            return None
        except OSError as e:
            raise CacheError(
                f"Cannot read compiled template: {e}", path=str(path), code=ErrorCode.CACHE_READ
            ) from e

        try:
            fmt, tag, stored_name, stored_options, freshness, deps, source, code = marshal.loads(
                data
            )
        except (EOFError, ValueError, TypeError):
            logger.debug("Discarding unreadable compile cache file %s", path)
            self._misses += 1
            return None

        if (
            fmt != CACHE_FORMAT
            or tag != sys.implementation.cache_tag
            or stored_name != name
            or stored_options != int(options)
        ):
            logger.debug("Discarding mismatched compile cache file %s", path)
            self._misses += 1
            return None

        self._hits += 1
        return CompiledArtifact(
            name=stored_name,
            options=stored_options,
            freshness=freshness,
            code=code,
            dependencies=dict(deps),
            source=source,
        )

    def store(self, artifact: CompiledArtifact) -> Path:
        """Persist ``artifact`` with write-to-temp then rename.

        Raises:
            CacheError: If the artifact cannot be serialized or the write or
                rename fails.
        """
        path = self.path_for(artifact.name, artifact.options)
        try:
            payload = marshal.dumps(
                (
                    CACHE_FORMAT,
                    sys.implementation.cache_tag,
                    artifact.name,
                    int(artifact.options),
                    artifact.freshness,
                    dict(artifact.dependencies),
                    artifact.source,
                    artifact.code,
                )
            )
        except ValueError as e:
            raise CacheError(
                f"Cannot serialize compiled template '{artifact.name}': {e}", path=str(path)
            ) from e

        temp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                mode="wb",
                dir=self._directory,
                delete=False,
                prefix=".",
                suffix=".tmp",
            ) as f:
                temp_path = Path(f.name)
                f.write(payload)
            # Path.replace() is atomic on both POSIX and Windows
            temp_path.replace(path)
        except OSError as e:
            if temp_path is not None:
                temp_path.unlink(missing_ok=True)
            raise CacheError(f"Cannot write compiled template: {e}", path=str(path)) from e

        self._writes += 1
        logger.debug(
            "Stored compiled template %r (options 0x%x) at %s",
            artifact.name,
            int(artifact.options),
            path,
        )
        return path

    def clear(self) -> int:
        """Delete every compiled artifact in the directory.

        Returns:
            Number of files removed.
        """
        removed = 0
        for path in self._directory.glob(f"*{CACHE_SUFFIX}"):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
        return removed

    def stats(self) -> dict[str, int]:
        """Hit/miss/write counters since construction."""
        return {
            "hits": self._hits,
            "misses": self._misses,
            "writes": self._writes,
            "files": sum(1 for _ in self._directory.glob(f"*{CACHE_SUFFIX}")),
        }
