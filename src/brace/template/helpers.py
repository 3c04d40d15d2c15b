"""Pure runtime helper functions injected into the template namespace.

These functions are called by compiled template code at render time.
None of them close over Environment state; the environment-bound helpers
(includes, inheritance, modifiers) are built per template in
:mod:`brace.template.core`.

Thread-Safety:
All functions are stateless and safe for concurrent use.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import Any

from brace.render_context import get_render_context
from brace.utils.html import Markup, html_escape, to_text


class SwitchBreak(Exception):
    """Raised by ``{break}`` to leave the enclosing ``{switch}``."""


# Static entries shared across all Template instances. Generated code only
# reaches builtins through these names.
STATIC_NAMESPACE: dict[str, Any] = {
    "__builtins__": {"__import__": __import__},
    "_Markup": Markup,
    "_escape": html_escape,
    "_str": to_text,
    "_bool": bool,
    "_len": len,
    "_enumerate": enumerate,
    "_SwitchBreak": SwitchBreak,
}


def lookup(ctx: dict[str, Any], var_name: str) -> Any:
    """Look up a variable, raising UndefinedError when it is not set.

    Used instead of ``ctx.get`` when the template is compiled with
    ``force_verify``.
    """
    from brace.environment.exceptions import UndefinedError, build_source_snippet

    try:
        return ctx[var_name]
    except KeyError:
        render_ctx = get_render_context()
        template_name = render_ctx.template_name if render_ctx else None
        lineno = render_ctx.line if render_ctx else None
        source = render_ctx.source if render_ctx else None
        snippet = build_source_snippet(source, lineno) if source and lineno else None
        raise UndefinedError(
            var_name,
            available_names=frozenset(ctx),
            template_name=template_name,
            lineno=lineno,
            source_snippet=snippet,
        ) from None


def safe_getattr(obj: Any, key: str) -> Any:
    """``$obj.key``: mapping key first, then list index, then attribute.

    Missing keys render as None instead of raising.
    """
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        if key in obj:
            return obj[key]
    elif isinstance(obj, (list, tuple)) and key.lstrip("-").isdigit():
        try:
            return obj[int(key)]
        except IndexError:
            return None
    if key.startswith("_"):
        return None
    return getattr(obj, key, None)


def safe_getitem(obj: Any, key: Any) -> Any:
    """``$obj[key]`` that yields None for missing keys and out-of-range indices."""
    if obj is None:
        return None
    try:
        return obj[key]
    except (KeyError, IndexError, TypeError):
        if isinstance(key, str) and not key.startswith("_") and not isinstance(obj, Mapping):
            return getattr(obj, key, None)
        return None


def get_property(obj: Any, name: str) -> Any:
    """``$obj->name``: attribute access, falling back to a mapping key."""
    if obj is None:
        return None
    try:
        return getattr(obj, name)
    except AttributeError:
        if isinstance(obj, Mapping):
            return obj.get(name)
        return None


def get_method(obj: Any, name: str) -> Any:
    """``$obj->name(...)``: resolve a bound method or raise TemplateRuntimeError."""
    from brace.environment.exceptions import TemplateRuntimeError

    method = getattr(obj, name, None)
    if not callable(method):
        render_ctx = get_render_context()
        raise TemplateRuntimeError(
            f"{type(obj).__name__} object has no method '{name}'",
            values={"object": obj},
            template_name=render_ctx.template_name if render_ctx else None,
            lineno=render_ctx.line if render_ctx else None,
        )
    return method


def concat(left: Any, right: Any) -> str:
    """``$a ~ $b``: string concatenation of the rendered values."""
    return to_text(left) + to_text(right)


def identical(left: Any, right: Any) -> bool:
    """``$a === $b``: equal values of the same type."""
    return type(left) is type(right) and left == right


def contains(item: Any, container: Any) -> bool:
    """``$a in $b``: membership that never raises on odd operands."""
    if container is None:
        return False
    if isinstance(container, str):
        return to_text(item) in container
    try:
        return item in container
    except TypeError:
        return False


def xor(left: Any, right: Any) -> bool:
    return bool(left) != bool(right)


def loop_items(value: Any) -> list[tuple[Any, Any]]:
    """Materialize ``{foreach}`` input as (key, value) pairs.

    Mappings iterate their items, other iterables are keyed by position,
    and None or non-iterable values yield nothing (the ``{foreachelse}``
    branch runs).
    """
    if value is None or isinstance(value, (str, bytes)):
        return []
    if isinstance(value, Mapping):
        return list(value.items())
    if hasattr(value, "items") and callable(value.items):
        return list(value.items())
    if isinstance(value, Iterable):
        return list(enumerate(value))
    return []


def for_range(start: Any, stop: Any, step: Any = None) -> range:
    """Inclusive integer range for ``{for $i=start to=stop step=n}``.

    A negative step counts down; zero is an error.
    """
    from brace.environment.exceptions import TemplateRuntimeError

    start, stop = int(start), int(stop)
    step = 1 if step is None else int(step)
    if step == 0:
        render_ctx = get_render_context()
        raise TemplateRuntimeError(
            "{for} step must not be zero",
            template_name=render_ctx.template_name if render_ctx else None,
            lineno=render_ctx.line if render_ctx else None,
        )
    if step > 0:
        return range(start, stop + 1, step)
    return range(start, stop - 1, step)


def cycle_value(values: Any, index: Any) -> Any:
    """Pick ``values[index]`` modulo the number of values."""
    if values is None:
        return None
    if isinstance(values, Mapping):
        values = list(values.values())
    elif not isinstance(values, (list, tuple)):
        values = list(values)
    if not values:
        return None
    return values[int(index or 0) % len(values)]


def next_cycle(key: str) -> int:
    """Advance the per-render counter of the ``{cycle}`` tag at ``key``."""
    render_ctx = get_render_context()
    if render_ctx is None:
        return 0
    return render_ctx.next_cycle(key)


def render_block(name: str, ctx: dict[str, Any], blocks: dict[str, Any], level: int) -> str:
    """Render implementation ``level`` of region ``name``; "" past the chain's end."""
    chain = blocks.get(name)
    if not chain or level >= len(chain):
        return ""
    result: str = chain[level][0](ctx, blocks, level)
    return result


def render_block_stream(
    name: str, ctx: dict[str, Any], blocks: dict[str, Any], level: int
) -> Iterator[str]:
    chain = blocks.get(name)
    if not chain or level >= len(chain):
        return
    yield from chain[level][1](ctx, blocks, level)


def call_macro(
    func: Callable[[dict[str, Any], int], Markup],
    name: str,
    args: dict[str, Any],
    depth: int,
) -> Markup:
    """Invoke a compiled macro one level deeper, enforcing the recursion limit."""
    from brace.environment.exceptions import MacroRecursionError

    render_ctx = get_render_context()
    limit = render_ctx.max_macro_recursion if render_ctx else 32
    if depth >= limit:
        raise MacroRecursionError(
            name,
            limit,
            template_name=render_ctx.template_name if render_ctx else None,
            lineno=render_ctx.line if render_ctx else None,
        )
    return func(args, depth + 1)


STATIC_NAMESPACE.update(
    {
        "_render_block": render_block,
        "_render_block_stream": render_block_stream,
        "_call_macro": call_macro,
        "_lookup": lookup,
        "_getattr": safe_getattr,
        "_getitem": safe_getitem,
        "_property": get_property,
        "_method": get_method,
        "_concat": concat,
        "_identical": identical,
        "_contains": contains,
        "_xor": xor,
        "_loop_items": loop_items,
        "_for_range": for_range,
        "_cycle": cycle_value,
        "_next_cycle": next_cycle,
    }
)
