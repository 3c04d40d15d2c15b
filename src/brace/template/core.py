"""Template: a compiled artifact and its render entry points.

A Template wraps the code object produced by the compiler together with
the freshness token of its own source and the freshness tokens of every
template it depends on (extends, use, include, import, insert). The
environment persists exactly these fields in the compile cache.

Architecture:
    ```
    Template
    ├── _env_ref: WeakRef[Environment]  # Prevents circular refs
    ├── _code: code object              # Compiled Python bytecode
    ├── _render_func: callable          # Extracted render() function
    ├── _freshness, _dependencies       # Validity against the providers
    └── _name, _options                 # Artifact identity
    ```

Thread-Safety:
- Templates are immutable after construction
- ``render()`` creates only local state (buf list, RenderContext)
- Multiple threads can call ``render()`` concurrently
"""

from __future__ import annotations

import logging
import os
import sys
import time
import weakref
from collections.abc import Callable, Iterator, Mapping
from typing import TYPE_CHECKING, Any, TextIO

from brace.options import Option, option_values
from brace.render_context import (
    get_render_context_required,
    render_context,
    reset_render_context,
    set_render_context,
)
from brace.template.helpers import STATIC_NAMESPACE, safe_getattr

if TYPE_CHECKING:
    import types

    from brace.environment.core import Environment
    from brace.render_context import RenderContext

logger = logging.getLogger(__name__)


class Template:
    """Compiled template ready for rendering.

    Wraps a compiled code object containing ``render(ctx, _blocks)`` and
    ``render_stream(ctx, _blocks)``. Templates are immutable and safe for
    concurrent ``render()`` calls.

    Attributes:
        name: Template name (None for string templates)
        options: Option mask the artifact was compiled with
        freshness: Provider freshness token of the source at compile time
        dependencies: Template name → freshness token for every dependency

    Example:
            >>> env = Environment(provider=DictProvider({"hi.tpl": "Hi {$name}!"}))
            >>> env.get_template("hi.tpl").render(name="World")
            'Hi World!'
    """

    __slots__ = (
        "_code",
        "_dependencies",
        "_env_ref",
        "_filename",
        "_freshness",
        "_name",
        "_namespace",
        "_options",
        "_render_func",
        "_render_stream_func",
        "_source",
    )

    def __init__(
        self,
        env: Environment,
        code: types.CodeType,
        name: str | None,
        *,
        options: Option | int = Option.NONE,
        freshness: Any = None,
        dependencies: Mapping[str, Any] | None = None,
        source: str | None = None,
        filename: str | None = None,
    ):
        # Use weakref to prevent circular reference: Template <-> Environment
        self._env_ref: weakref.ref[Environment] = weakref.ref(env)
        self._code = code
        self._name = name
        self._filename = filename
        self._options = Option(options)
        self._freshness = freshness
        self._dependencies = dict(dependencies or {})
        self._source = source

        env_ref = self._env_ref
        template_options = self._options
        deny_native = Option.DENY_NATIVE_FUNCS in template_options

        def _get_env(purpose: str) -> Environment:
            _env = env_ref()
            if _env is None:
                raise RuntimeError(
                    f"Environment has been garbage collected while {purpose}"
                )
            return _env

        def _load_included(
            template_name: str, optional: bool
        ) -> tuple[Template | None, RenderContext]:
            from brace.environment.exceptions import TemplateNotFoundError

            render_ctx = get_render_context_required()
            render_ctx.check_include_depth(template_name)
            try:
                included = _get_env(f"including '{template_name}'").get_template(
                    template_name, options=template_options
                )
            except TemplateNotFoundError:
                if not optional:
                    raise
                logger.debug("Skipping missing include %r", template_name)
                return None, render_ctx
            return included, render_ctx

        # Include helper - loads and renders included template
        def _include(
            template_name: str,
            context: dict[str, Any],
            variables: dict[str, Any],
            optional: bool = True,
        ) -> str:
            included, render_ctx = _load_included(template_name, optional)
            if included is None:
                return ""
            token = set_render_context(render_ctx.child_context(included.name, included.source))
            try:
                result: str = included._render_func({**context, **variables}, None)
                return result
            finally:
                reset_render_context(token)

        def _include_stream(
            template_name: str,
            context: dict[str, Any],
            variables: dict[str, Any],
            optional: bool = True,
        ) -> Iterator[str]:
            included, render_ctx = _load_included(template_name, optional)
            if included is None:
                return
            token = set_render_context(render_ctx.child_context(included.name, included.source))
            try:
                yield from included._render_stream_func({**context, **variables}, None)
            finally:
                reset_render_context(token)

        # Extends helper - renders parent template with the collected regions
        def _extends(template_name: str, context: dict[str, Any], blocks: dict[str, Any]) -> str:
            parent = _get_env(f"extending '{template_name}'").get_template(
                template_name, options=template_options
            )
            result: str = parent._render_func(context, blocks)
            return result

        def _extends_stream(
            template_name: str, context: dict[str, Any], blocks: dict[str, Any]
        ) -> Iterator[str]:
            parent = _get_env(f"extending '{template_name}'").get_template(
                template_name, options=template_options
            )
            yield from parent._render_stream_func(context, blocks)

        def _use(template_name: str, blocks: dict[str, list[Any]]) -> None:
            used = _get_env(f"using '{template_name}'").get_template(
                template_name, options=template_options
            )
            _register_blocks(blocks, used._namespace["_BLOCKS"], used._namespace["_USES"])

        def _register_blocks(
            blocks: dict[str, list[Any]],
            own: Mapping[str, Any],
            uses: tuple[str, ...],
        ) -> None:
            """Append this template's regions, then those of its ``{use}`` templates.

            Later ``{use}`` statements win over earlier ones, and the
            template's own regions win over all of them.
            """
            for region, functions in own.items():
                blocks.setdefault(region, []).append(functions)
            for template_name in reversed(uses):
                _use(template_name, blocks)

        def _mod(name: str) -> Callable[..., Any]:
            from brace.environment.exceptions import TemplateRuntimeError

            func = _get_env(f"resolving modifier '{name}'").modifiers.resolve(name, deny_native)
            if func is None:
                raise TemplateRuntimeError(
                    f"Modifier '{name}' not found",
                    template_name=self._name,
                    lineno=get_render_context_required().line or None,
                )
            return func

        def _func(name: str) -> Callable[..., Any]:
            from brace.environment.exceptions import TemplateRuntimeError

            env = _get_env(f"resolving function '{name}'")
            func = env.modifiers.resolve_function(name, deny_native)
            if func is None:
                raise TemplateRuntimeError(
                    f"Function '{name}' is not allowed",
                    template_name=self._name,
                    lineno=get_render_context_required().line or None,
                    suggestion=f"Register it with env.add_allowed_functions(['{name}'])",
                )
            return func

        def _tag_function(name: str) -> Callable[..., Any]:
            from brace.environment.exceptions import TemplateRuntimeError

            definition = _get_env(f"calling '{name}'").actions.resolve(name)
            if definition is None or definition.function is None:
                raise TemplateRuntimeError(
                    f"Function tag {{{name}}} is no longer registered",
                    template_name=self._name,
                    lineno=get_render_context_required().line or None,
                )
            return definition.function

        def _call_function(
            name: str, kwargs: dict[str, Any], args: list[Any], smart: bool
        ) -> Any:
            func = _tag_function(name)
            if smart:
                return func(*args, **kwargs)
            return func(kwargs)

        def _call_block_function(name: str, kwargs: dict[str, Any], content: str) -> Any:
            return _tag_function(name)(kwargs, content)

        def _system(ctx: dict[str, Any], path: tuple[str, ...]) -> Any:
            """``$.root.a.b`` system accessor."""
            root, rest = path[0], path[1:]
            value: Any
            if root == "env":
                value = os.environ
            elif root == "globals":
                value = _get_env("reading globals").globals
            elif root == "tpl":
                value = {
                    "name": self._name,
                    "options": int(template_options),
                    "flags": option_values(template_options),
                }
            elif root == "version":
                from brace import __version__

                value = __version__
            elif root == "now":
                value = time.time()
            else:
                value = None
            for part in rest:
                value = safe_getattr(value, part)
            return value

        namespace: dict[str, Any] = dict(STATIC_NAMESPACE)
        namespace.update(
            {
                "_include": _include,
                "_include_stream": _include_stream,
                "_extends": _extends,
                "_extends_stream": _extends_stream,
                "_register_blocks": _register_blocks,
                "_mod": _mod,
                "_func": _func,
                "_call_function": _call_function,
                "_call_block_function": _call_block_function,
                "_system": _system,
                "_get_render_ctx": get_render_context_required,
            }
        )
        exec(code, namespace)
        self._render_func = namespace["render"]
        self._render_stream_func = namespace["render_stream"]
        self._namespace = namespace

    @property
    def _env(self) -> Environment:
        """Get the Environment (dereferences weak reference)."""
        env = self._env_ref()
        if env is None:
            raise RuntimeError(
                f"Environment has been garbage collected (template: {self._name or 'unknown'})"
            )
        return env

    @property
    def name(self) -> str | None:
        return self._name

    @property
    def filename(self) -> str | None:
        return self._filename

    @property
    def options(self) -> Option:
        return self._options

    @property
    def freshness(self) -> Any:
        return self._freshness

    @property
    def dependencies(self) -> dict[str, Any]:
        return dict(self._dependencies)

    @property
    def source(self) -> str | None:
        return self._source

    @property
    def code(self) -> types.CodeType:
        return self._code

    def is_valid(self) -> bool:
        """True while the source and every dependency still match their providers.

        String templates (no name) have nothing to check and are always valid.
        """
        if self._name is None:
            return True
        tokens = {self._name: self._freshness, **self._dependencies}
        return self._env.verify(tokens)

    def list_blocks(self) -> list[str]:
        """Names of the regions this template defines."""
        return list(self._namespace["_BLOCKS"])

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _build_context(self, args: tuple[Any, ...], kwargs: dict[str, Any]) -> dict[str, Any]:
        ctx: dict[str, Any] = {}
        ctx.update(self._env.globals)
        if args:
            if len(args) == 1 and isinstance(args[0], Mapping):
                ctx.update(args[0])
            else:
                raise TypeError(
                    f"render() takes at most 1 positional argument (a dict), got {len(args)}"
                )
        ctx.update(kwargs)
        return ctx

    def render(self, *args: Any, **kwargs: Any) -> str:
        """Render template with given context.

        Args:
            *args: Single dict of context variables
            **kwargs: Context variables as keyword arguments

        Returns:
            Rendered template as string

        Example:
            >>> t.render(name="World")
            'Hi World!'
            >>> t.render({"name": "World"})
            'Hi World!'
        """
        from brace.environment.exceptions import (
            TemplateNotFoundError,
            TemplateRuntimeError,
            TemplateSyntaxError,
        )

        ctx = self._build_context(args, kwargs)
        with render_context(
            template_name=self._name,
            source=self._source,
            max_macro_recursion=self._env.max_macro_recursion,
        ) as render_ctx:
            try:
                result: str = self._render_func(ctx, None)
                return result
            except (TemplateRuntimeError, TemplateNotFoundError, TemplateSyntaxError):
                raise
            except Exception as e:
                raise self._enhance_error(e, render_ctx) from e

    fetch = render

    def render_stream(self, *args: Any, **kwargs: Any) -> Iterator[str]:
        """Render template as a generator of chunks.

        Yields chunks at every statement boundary; regions, includes and
        parents stream through without being buffered.

        Example:
            >>> for chunk in t.render_stream(name="World"):
            ...     send(chunk)
        """
        from brace.environment.exceptions import (
            TemplateNotFoundError,
            TemplateRuntimeError,
            TemplateSyntaxError,
        )

        ctx = self._build_context(args, kwargs)
        with render_context(
            template_name=self._name,
            source=self._source,
            max_macro_recursion=self._env.max_macro_recursion,
        ) as render_ctx:
            try:
                for chunk in self._render_stream_func(ctx, None):
                    if chunk:
                        yield chunk
            except (TemplateRuntimeError, TemplateNotFoundError, TemplateSyntaxError):
                raise
            except Exception as e:
                raise self._enhance_error(e, render_ctx) from e

    def display(self, variables: Mapping[str, Any] | None = None, out: TextIO | None = None) -> None:
        """Render straight to ``out`` (default: ``sys.stdout``)."""
        out = out if out is not None else sys.stdout
        for chunk in self.render_stream(variables or {}):
            out.write(chunk)

    def pipe(
        self,
        callback: Callable[[str], Any],
        variables: Mapping[str, Any] | None = None,
        chunk: int = 1_000_000,
    ) -> None:
        """Stream output to ``callback`` in pieces of at least ``chunk`` characters.

        The final piece may be shorter. Nothing is sent for empty output.
        """
        pending: list[str] = []
        size = 0
        for part in self.render_stream(variables or {}):
            pending.append(part)
            size += len(part)
            if size >= chunk:
                callback("".join(pending))
                pending.clear()
                size = 0
        if pending:
            callback("".join(pending))

    def _enhance_error(self, error: Exception, render_ctx: RenderContext) -> Exception:
        """Convert a generic Python exception into TemplateRuntimeError.

        The template name and line come from the RenderContext, which the
        generated code keeps current.
        """
        from brace.environment.exceptions import TemplateRuntimeError, build_source_snippet

        template_name = render_ctx.template_name
        lineno = render_ctx.line or None
        error_str = str(error).strip()
        if not error_str:
            error_str = f"{type(error).__name__} (no details available)"
        else:
            error_str = f"{type(error).__name__}: {error_str}"

        snippet = None
        source = render_ctx.source
        if source and lineno:
            snippet = build_source_snippet(source, lineno)

        suggestion = None
        if isinstance(error, TypeError) and "NoneType" in error_str:
            suggestion = "A value is None; test it first with {if $value?}"

        return TemplateRuntimeError(
            error_str,
            template_name=template_name,
            lineno=lineno,
            suggestion=suggestion,
            source_snippet=snippet,
        )

    def __repr__(self) -> str:
        return f"<Template {self._name or '(inline)'} options=0x{int(self._options):x}>"
