"""Engine option flags.

Options are a typed ``enum.IntFlag``. The integer value of a flag set is the
compatibility bitmask stored alongside compiled artifacts and folded into
cache file names, so the bit positions below are fixed.

Options can be given either as a raw integer mask or as a mapping of named
booleans merged onto the current mask:

    >>> mask = merge_options({"auto_escape": True, "force_compile": True})
    >>> Option.AUTO_ESCAPE in mask
    True
    >>> merge_options({"auto_escape": False}, mask) == Option.FORCE_COMPILE
    True
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import IntFlag

from brace.environment.exceptions import ConfigurationError, ErrorCode


class Option(IntFlag):
    """Engine behavior flags (disjoint bit positions)."""

    NONE = 0
    DENY_ACCESSOR = 0x8
    DENY_METHODS = 0x10
    DENY_NATIVE_FUNCS = 0x20
    FORCE_INCLUDE = 0x40
    AUTO_RELOAD = 0x80
    FORCE_COMPILE = 0x100
    AUTO_ESCAPE = 0x200
    DISABLE_CACHE = 0x400
    FORCE_VERIFY = 0x800


# Public flag names accepted by Environment.set_options()
OPTION_NAMES: dict[str, Option] = {
    "disable_accessor": Option.DENY_ACCESSOR,
    "disable_methods": Option.DENY_METHODS,
    "disable_native_funcs": Option.DENY_NATIVE_FUNCS,
    "disable_cache": Option.DISABLE_CACHE,
    "force_compile": Option.FORCE_COMPILE,
    "auto_reload": Option.AUTO_RELOAD,
    "force_include": Option.FORCE_INCLUDE,
    "auto_escape": Option.AUTO_ESCAPE,
    "force_verify": Option.FORCE_VERIFY,
}

ALL_OPTIONS = Option(sum(OPTION_NAMES.values()))


def merge_options(values: Mapping[str, bool], mask: int | Option = 0) -> Option:
    """Merge named booleans onto an existing mask.

    True sets the flag, False clears it, and flags not mentioned keep their
    current value.

    Raises:
        ConfigurationError: If a name is not a known option.
    """
    result = Option(mask)
    for key, value in values.items():
        flag = OPTION_NAMES.get(key)
        if flag is None:
            raise ConfigurationError(
                f"Undefined option '{key}'",
                code=ErrorCode.INVALID_OPTION,
                suggestion=f"Known options: {', '.join(sorted(OPTION_NAMES))}",
            )
        if value:
            result |= flag
        else:
            result &= ~flag
    return result


def coerce_options(options: int | Option | Mapping[str, bool], base: int | Option = 0) -> Option:
    """Normalize the option surface (int mask or name mapping) to an Option set."""
    if isinstance(options, Mapping):
        return merge_options(options, base)
    if isinstance(options, bool) or not isinstance(options, int):
        raise ConfigurationError(
            f"Options must be an int mask or a mapping of flags, got {type(options).__name__}",
            code=ErrorCode.INVALID_OPTION,
        )
    unknown = int(options) & ~int(ALL_OPTIONS)
    if unknown:
        raise ConfigurationError(
            f"Undefined option bits 0x{unknown:x}",
            code=ErrorCode.INVALID_OPTION,
        )
    return Option(options)


def option_values(mask: int | Option) -> dict[str, bool]:
    """Expand a mask into its named booleans."""
    mask = Option(mask)
    return {name: flag in mask for name, flag in OPTION_NAMES.items()}
