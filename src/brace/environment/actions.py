"""The built-in tag table.

``DEFAULT_ACTIONS`` is copied into every environment's action registry;
registering a tag with the same name replaces the built-in.
"""

from __future__ import annotations

from brace.environment.registry import TagDefinition, TagKind
from brace.parser.blocks import control_flow, functions, special_blocks, template_structure

_LOOP_FLOATS = frozenset({"break", "continue"})

DEFAULT_ACTIONS: dict[str, TagDefinition] = {
    "foreach": TagDefinition(
        TagKind.BLOCK_COMPILER,
        open=control_flow.foreach_open,
        close=control_flow.foreach_close,
        tags={
            "foreachelse": control_flow.tag_foreachelse,
            "break": control_flow.tag_break,
            "continue": control_flow.tag_continue,
        },
        float_tags=_LOOP_FLOATS,
    ),
    "if": TagDefinition(
        TagKind.BLOCK_COMPILER,
        open=control_flow.if_open,
        close=control_flow.if_close,
        tags={"elseif": control_flow.tag_elseif, "else": control_flow.tag_else},
    ),
    "switch": TagDefinition(
        TagKind.BLOCK_COMPILER,
        open=control_flow.switch_open,
        close=control_flow.switch_close,
        tags={
            "case": control_flow.tag_case,
            "default": control_flow.tag_default,
            "break": control_flow.tag_break,
        },
        float_tags=frozenset({"break"}),
    ),
    "for": TagDefinition(
        TagKind.BLOCK_COMPILER,
        open=control_flow.for_open,
        close=control_flow.for_close,
        tags={
            "forelse": control_flow.tag_forelse,
            "break": control_flow.tag_break,
            "continue": control_flow.tag_continue,
        },
        float_tags=_LOOP_FLOATS,
    ),
    "while": TagDefinition(
        TagKind.BLOCK_COMPILER,
        open=control_flow.while_open,
        close=control_flow.while_close,
        tags={"break": control_flow.tag_break, "continue": control_flow.tag_continue},
        float_tags=_LOOP_FLOATS,
    ),
    "include": TagDefinition(TagKind.INLINE_COMPILER, parser=template_structure.tag_include),
    "insert": TagDefinition(TagKind.INLINE_COMPILER, parser=template_structure.tag_insert),
    "var": TagDefinition(
        TagKind.BLOCK_COMPILER,
        open=special_blocks.var_open,
        close=special_blocks.var_close,
    ),
    "block": TagDefinition(
        TagKind.BLOCK_COMPILER,
        open=template_structure.block_open,
        close=template_structure.block_close,
        tags={"parent": template_structure.tag_parent},
        float_tags=frozenset({"parent"}),
        isolated=True,
    ),
    "extends": TagDefinition(TagKind.INLINE_COMPILER, parser=template_structure.tag_extends),
    "use": TagDefinition(TagKind.INLINE_COMPILER, parser=template_structure.tag_use),
    "filter": TagDefinition(
        TagKind.BLOCK_COMPILER,
        open=special_blocks.filter_open,
        close=special_blocks.filter_close,
    ),
    "macro": TagDefinition(
        TagKind.BLOCK_COMPILER,
        open=template_structure.macro_open,
        close=template_structure.macro_close,
        isolated=True,
    ),
    "import": TagDefinition(TagKind.INLINE_COMPILER, parser=template_structure.tag_import),
    "cycle": TagDefinition(TagKind.INLINE_COMPILER, parser=special_blocks.tag_cycle),
    "raw": TagDefinition(TagKind.INLINE_COMPILER, parser=special_blocks.tag_raw),
    "autoescape": TagDefinition(
        TagKind.BLOCK_COMPILER,
        open=special_blocks.autoescape_open,
        close=special_blocks.autoescape_close,
    ),
}

# Parsers for function tags registered through the environment
DEFAULT_FUNC_PARSER = functions.std_function_parser
SMART_FUNC_PARSER = functions.smart_function_parser
DEFAULT_FUNC_OPEN = functions.block_function_open
DEFAULT_FUNC_CLOSE = functions.block_function_close
DEFAULT_CLOSE_COMPILER = functions.std_close
