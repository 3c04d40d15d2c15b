"""Parser diagnostics: block structure, tag ownership and forbidden syntax."""

from __future__ import annotations

import pytest

from brace import Environment, ErrorCode, ParseError, TemplateSyntaxError

from .conftest import render


@pytest.fixture
def env():
    return Environment()


def parse_error(env: Environment, source: str) -> ParseError:
    with pytest.raises(ParseError) as exc_info:
        env.from_string(source)
    return exc_info.value


class TestBlockStructure:
    def test_unclosed_block_names_tag(self, env):
        error = parse_error(env, "{if $x}yes")
        assert error.code is ErrorCode.UNCLOSED_BLOCK
        assert "Unclosed tag {if}: expected {/if}" in str(error)
        assert error.lineno == 1

    def test_unclosed_innermost_is_reported(self, env):
        error = parse_error(env, "{foreach $a as $b}\n{if $c}x{/foreach}")
        assert error.code is ErrorCode.MISPLACED_TAG
        assert "expected {/if}" in str(error)

    def test_closing_without_open(self, env):
        error = parse_error(env, "text{/if}")
        assert error.code is ErrorCode.MISPLACED_TAG

    def test_parse_error_is_syntax_error(self, env):
        with pytest.raises(TemplateSyntaxError):
            env.from_string("{if $x}")

    def test_elseif_after_else(self, env):
        error = parse_error(env, "{if $a}1{else}2{elseif $b}3{/if}")
        assert error.code is ErrorCode.MISPLACED_TAG

    def test_duplicate_else(self, env):
        error = parse_error(env, "{if $a}1{else}2{else}3{/if}")
        assert "Duplicate {else}" in str(error)

    def test_text_before_first_case(self, env):
        error = parse_error(env, "{switch $a}oops{case 1}x{/switch}")
        assert error.code is ErrorCode.MISPLACED_TAG

    def test_for_requires_to(self, env):
        error = parse_error(env, "{for $i=1}{/for}")
        assert "'to'" in str(error)

    def test_foreach_requires_as(self, env):
        error = parse_error(env, "{foreach $items $item}{/foreach}")
        assert error.suggestion is not None


class TestTagOwnership:
    def test_break_outside_loop(self, env):
        error = parse_error(env, "{break}")
        assert error.code is ErrorCode.MISPLACED_TAG
        assert "expected inside {for}, {foreach}, {switch}, {while}" in str(error)

    def test_break_in_foreachelse(self, env):
        error = parse_error(env, "{foreach $a as $b}{foreachelse}{break}{/foreach}")
        assert error.code is ErrorCode.MISPLACED_TAG

    def test_break_does_not_cross_macro(self, env):
        error = parse_error(env, "{foreach $a as $b}{macro m()}{break}{/macro}{/foreach}")
        assert error.code is ErrorCode.MISPLACED_TAG

    def test_parent_outside_block(self, env):
        error = parse_error(env, "{parent}")
        assert error.code is ErrorCode.MISPLACED_TAG

    def test_block_inside_macro(self, env):
        error = parse_error(env, "{macro m()}{block 'x'}{/block}{/macro}")
        assert error.code is ErrorCode.MISPLACED_TAG

    def test_extends_must_be_top_level(self, env):
        error = parse_error(env, "{if $a}{extends 'base.tpl'}{/if}")
        assert error.code is ErrorCode.MISPLACED_TAG

    def test_innermost_owner_wins(self, env):
        """{break} inside a loop inside a switch leaves the loop only."""
        source = "{switch $x}{case 1}{foreach $items as $i}{$i}{break}{/foreach}after{/switch}"
        assert render(env, source, x=1, items=[1, 2, 3]) == "1after"

    def test_floating_tag_reaches_through_if(self, env):
        source = "{foreach $items as $i}{if $i == 2}{continue}{/if}{$i}{/foreach}"
        assert render(env, source, items=[1, 2, 3]) == "13"


class TestDiagnostics:
    def test_unknown_tag_suggestion(self, env):
        error = parse_error(env, "{forech $a as $b}{/forech}")
        assert error.code is ErrorCode.UNKNOWN_TAG
        assert error.suggestion == "Did you mean {foreach}?"

    def test_tag_chain(self, env):
        error = parse_error(env, "{foreach $a as $b}{if $c}{$d|nosuchmod}{/if}{/foreach}")
        assert error.code is ErrorCode.UNKNOWN_MODIFIER
        assert error.tag_chain == ("foreach", "if")
        assert "(inside {foreach} > {if})" in str(error)

    def test_unknown_macro(self, env):
        error = parse_error(env, "{macro greet()}hi{/macro}{macro.gret}")
        assert error.code is ErrorCode.UNKNOWN_MACRO
        assert error.suggestion == "Did you mean 'macro.greet'?"

    def test_unknown_macro_parameter(self, env):
        error = parse_error(env, "{macro greet(name)}hi{/macro}{macro.greet nmae='x'}")
        assert "no parameter 'nmae'" in str(error)

    def test_name_without_dollar(self, env):
        error = parse_error(env, "{$a + b}")
        assert error.suggestion == "Variables need a '$' prefix: $b"

    def test_private_member(self, env):
        error = parse_error(env, "{$user._secret}")
        assert error.code is ErrorCode.FORBIDDEN_SYNTAX

    def test_error_location(self, env):
        error = parse_error(env, "line one\nline two {$a +}")
        assert error.lineno == 2

    def test_compact_format(self, env):
        error = parse_error(env, "line one\nline two {$a +}")
        compact = error.format_compact()
        assert compact.startswith(f"{error.code.value}: ")
        assert ":2" in compact
        assert "Docs:" not in compact
        assert "Docs:" not in str(error)


class TestSecurityOptions:
    def test_disable_methods(self):
        env = Environment(options={"disable_methods": True})
        error = parse_error(env, "{$user->save()}")
        assert error.code is ErrorCode.FORBIDDEN_SYNTAX
        # Property reads stay allowed
        env.from_string("{$user->name}")

    def test_disable_accessor(self):
        env = Environment(options={"disable_accessor": True})
        assert parse_error(env, "{$.env.HOME}").code is ErrorCode.FORBIDDEN_SYNTAX
        assert parse_error(env, "{$user->name}").code is ErrorCode.FORBIDDEN_SYNTAX

    def test_disable_native_funcs(self):
        env = Environment(options={"disable_native_funcs": True})
        error = parse_error(env, "{repr($a)}")
        assert error.code is ErrorCode.FORBIDDEN_SYNTAX
        env.add_allowed_functions(["repr"])
        assert render(env, "{repr($a)}", a="x") == "'x'"

    def test_unknown_system_variable(self, env):
        error = parse_error(env, "{$.enviro}")
        assert error.suggestion == "Did you mean 'env'?"
