"""Rendering behavior: output, expressions, control flow, modifiers and tags."""

from __future__ import annotations

import pytest

from brace import Environment, Markup, TemplateRuntimeError, TemplateSyntaxError, UndefinedError
from brace.nodes import Data

from .conftest import render


class TestOutput:
    def test_text_and_variable(self, env):
        assert render(env, "Hello, {$name}!", name="World") == "Hello, World!"

    def test_missing_variable_is_empty(self, env):
        assert render(env, "[{$missing}]") == "[]"

    def test_booleans_and_none(self, env):
        assert render(env, "{$t}|{$f}|{$n}", t=True, f=False, n=None) == "1||"

    def test_literal_braces(self, env):
        source = "<script>if (a) { b(); }</script>"
        assert render(env, source) == source

    def test_comment(self, env):
        assert render(env, "a{* hidden {$x} *}b") == "ab"

    def test_ignore_region(self, env):
        assert render(env, "{ignore}{$x}{/ignore}", x=1) == "{$x}"

    def test_render_accepts_mapping_and_kwargs(self, env):
        template = env.from_string("{$a}{$b}")
        assert template.render({"a": 1}, b=2) == "12"

    def test_globals(self, provider):
        env = Environment(provider, globals={"site": "Brace"})
        assert render(env, "{$site}") == "Brace"
        assert render(env, "{$site}", site="Override") == "Override"

    def test_streaming_matches_render(self, env):
        template = env.from_string("{foreach $items as $i}<{$i}>{/foreach}")
        assert "".join(template.render_stream(items=[1, 2])) == template.render(items=[1, 2])


class TestEscaping:
    def test_auto_escape(self, env_autoescape):
        assert render(env_autoescape, "{$x}", x="<b>") == "&lt;b&gt;"

    def test_no_escape_by_default(self, env):
        assert render(env, "{$x}", x="<b>") == "<b>"

    def test_raw_tag(self, env_autoescape):
        assert render(env_autoescape, "{raw $x}", x="<b>") == "<b>"

    def test_raw_modifier(self, env_autoescape):
        assert render(env_autoescape, "{$x|raw}", x="<b>") == "<b>"

    def test_markup_is_not_escaped(self, env_autoescape):
        assert render(env_autoescape, "{$x}", x=Markup("<b>")) == "<b>"

    def test_escape_modifier_not_doubled(self, env_autoescape):
        assert render(env_autoescape, "{$x|escape}", x="&") == "&amp;"

    def test_escape_modifier_without_auto_escape(self, env):
        assert render(env, "{$x|e}", x="<a href='x'>") == "&lt;a href=&#39;x&#39;&gt;"

    def test_escape_url(self, env):
        assert render(env, "{$x|escape:'url'}", x="a b&c") == "a+b%26c"

    def test_autoescape_region(self, env):
        source = "{$x}{autoescape true}{$x}{/autoescape}"
        assert render(env, source, x="<") == "<&lt;"

    def test_autoescape_region_off(self, env_autoescape):
        source = "{$x}{autoescape false}{$x}{/autoescape}"
        assert render(env_autoescape, source, x="<") == "&lt;<"

    def test_region_inside_autoescape(self, env):
        source = '{autoescape true}{block "a"}{$x}{/block}{/autoescape}'
        assert render(env, source, x="<b>") == "&lt;b&gt;"

    def test_region_inside_autoescape_off(self, env_autoescape):
        source = '{autoescape false}{block "a"}{$x}{/block}{/autoescape}'
        assert render(env_autoescape, source, x="<b>") == "<b>"

    def test_region_outside_autoescape_keeps_default(self, env):
        source = '{block "a"}{$x}{/block}{autoescape true}{block "b"}{$x}{/block}{/autoescape}'
        assert render(env, source, x="<b>") == "<b>&lt;b&gt;"

    def test_nested_region_inherits_autoescape(self, env):
        source = '{autoescape true}{block "outer"}{block "inner"}{$x}{/block}{/block}{/autoescape}'
        assert render(env, source, x="<b>") == "&lt;b&gt;"

    def test_child_override_inside_autoescape(self, env, provider):
        provider.set(
            "safe.tpl",
            "{extends 'base.tpl'}{autoescape true}{block 'body'}{$x}{/block}{/autoescape}",
        )
        assert "<body>&lt;b&gt;</body>" in env.fetch("safe.tpl", {"x": "<b>"})

    def test_macro_inside_autoescape(self, env):
        source = "{autoescape true}{macro m(v)}{$v}{/macro}{/autoescape}{macro.m v=$x}"
        assert render(env, source, x="<b>") == "&lt;b&gt;"

    def test_macro_inside_autoescape_off(self, env_autoescape):
        source = "{autoescape false}{macro m(v)}{$v}{/macro}{/autoescape}{macro.m v=$x}"
        assert render(env_autoescape, source, x="<b>") == "<b>"

    def test_imported_macro_keeps_its_policy(self, env, provider):
        provider.set("safe_macros.tpl", "{autoescape true}{macro m(v)}{$v}{/macro}{/autoescape}")
        source = "{import 'safe_macros.tpl'}{macro.m v=$x}|{$x}"
        assert render(env, source, x="<b>") == "&lt;b&gt;|<b>"


class TestExpressions:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("{$a + $b * 2}", "7"),
            ("{($a + $b) * 2}", "8"),
            ("{7 / 2}", "3.5"),
            ("{6 / 2}", "3"),
            ("{$b % 2}", "1"),
            ("{-$a}", "-1"),
            ("{$a ~ '-' ~ $b}", "1-3"),
            ("{$a > 0 ? 'pos' : 'neg'}", "pos"),
            ("{$zero ?: 'fallback'}", "fallback"),
            ("{$a == 1.0 ? 'eq' : 'ne'}", "eq"),
            ("{$a === 1.0 ? 'same' : 'diff'}", "diff"),
            ("{$a !== 1 ? 'diff' : 'same'}", "same"),
            ("{$a xor $zero ? 'y' : 'n'}", "y"),
            ("{'ell' in 'hello' ? 'y' : 'n'}", "y"),
            ("{2 not in $list ? 'y' : 'n'}", "n"),
            ("{true && $zero ? 'y' : 'n'}", "n"),
            ("{$zero || $a ? 'y' : 'n'}", "y"),
            ("{not $zero ? 'y' : 'n'}", "y"),
        ],
    )
    def test_operators(self, env, source, expected):
        assert render(env, source, a=1, b=3, zero=0, list=[1, 2, 3]) == expected

    def test_logical_operators_yield_booleans(self, env):
        assert render(env, "{$a && 'x'}", a="y") == "1"

    def test_is_set_tests(self, env):
        source = "{if $a?}set{/if}|{if $b?}set{/if}|{if $b!}defined{/if}|{if $c!}defined{/if}"
        assert render(env, source, a="x", b="") == "set||defined|"

    def test_string_interpolation(self, env):
        user = {"name": "Ann"}
        assert render(env, '{"Hi $user.name!"}', user=user) == "Hi Ann!"
        assert render(env, '{"Sum {$a + 1}"}', a=1) == "Sum 2"
        assert render(env, '{"cost \\$5"}') == "cost $5"

    def test_single_quotes_do_not_interpolate(self, env):
        assert render(env, "{'$a'}", a=1) == "$a"

    def test_collections(self, env):
        assert render(env, "{var $l = [1, 2, 3]}{$l|length}") == "3"
        assert render(env, "{var $m = ['k' => 'v']}{$m.k}") == "v"
        assert render(env, "{var $l = ['a', 'b']}{$l.1}{$l[0]}") == "ba"

    def test_dynamic_key(self, env):
        assert render(env, "{$m[$k]}{$m.$k}", m={"x": 1}, k="x") == "11"

    def test_missing_path_is_empty(self, env):
        assert render(env, "[{$user.profile.city}]", user={}) == "[]"

    def test_property_and_method(self, env):
        class User:
            name = "Ann"

            def greet(self, who):
                return f"hi {who}"

        assert render(env, "{$u->name} {$u->greet('Bob')} {$u.name}", u=User()) == "Ann hi Bob Ann"

    def test_missing_method(self, env):
        with pytest.raises(TemplateRuntimeError, match="no method 'nope'"):
            render(env, "{$u->nope()}", u=object())

    def test_host_function(self, env):
        assert render(env, "{max($a, 5)}", a=3) == "5"

    def test_system_variables(self, provider):
        from brace import __version__

        env = Environment(provider, globals={"site": "Brace"})
        assert render(env, "{$.version}") == __version__
        assert render(env, "{$.globals.site}") == "Brace"
        assert render(env, "{$.tpl.flags.auto_escape ? 'on' : 'off'}") == "off"

    def test_system_env(self, env, monkeypatch):
        monkeypatch.setenv("BRACE_TEST_VALUE", "from-env")
        assert render(env, "{$.env.BRACE_TEST_VALUE}") == "from-env"

    def test_runtime_error_is_wrapped(self, env):
        with pytest.raises(TemplateRuntimeError) as exc_info:
            render(env, "line one\n{$a / $b}", a=1, b=0)
        assert "ZeroDivisionError" in str(exc_info.value)
        assert exc_info.value.lineno == 2
        assert isinstance(exc_info.value.__cause__, ZeroDivisionError)


class TestForceVerify:
    def test_undefined_variable_raises(self):
        env = Environment(options={"force_verify": True})
        with pytest.raises(UndefinedError) as exc_info:
            render(env, "{$a}{$missing}", a=1)
        assert exc_info.value.name == "missing"

    def test_tests_stay_lenient(self):
        env = Environment(options={"force_verify": True})
        assert render(env, "{if $missing?}x{else}y{/if}") == "y"


class TestControlFlow:
    def test_if_elseif_else(self, env):
        source = "{if $n > 10}big{elseif $n > 5}mid{else}small{/if}"
        assert [render(env, source, n=n) for n in (20, 7, 1)] == ["big", "mid", "small"]

    def test_foreach_key_value(self, env):
        source = "{foreach $m as $k => $v}{$k}={$v};{/foreach}"
        assert render(env, source, m={"a": 1, "b": 2}) == "a=1;b=2;"

    def test_foreach_list_keys_are_positions(self, env):
        source = "{foreach $l as $k => $v}{$k}{$v}{/foreach}"
        assert render(env, source, l=["x", "y"]) == "0x1y"

    def test_foreach_loop_variables(self, env):
        source = (
            "{foreach $l as $v index=$i first=$f last=$z}"
            "{if $f}[{/if}{$i}{$v}{if $z}]{/if}"
            "{/foreach}"
        )
        assert render(env, source, l=["a", "b", "c"]) == "[0a1b2c]"

    def test_foreachelse(self, env):
        source = "{foreach $l as $v}{$v}{foreachelse}empty{/foreach}"
        assert render(env, source, l=[]) == "empty"
        assert render(env, source) == "empty"

    def test_loop_variable_persists(self, env):
        assert render(env, "{foreach [1, 2] as $v}{/foreach}{$v}") == "2"

    def test_break_and_continue(self, env):
        source = "{foreach $l as $v}{if $v == 2}{continue}{/if}{if $v == 4}{break}{/if}{$v}{/foreach}"
        assert render(env, source, l=[1, 2, 3, 4, 5]) == "13"

    def test_for_range_inclusive(self, env):
        assert render(env, "{for $i=1 to=5 step=2}{$i}{/for}") == "135"

    def test_for_range_descending(self, env):
        assert render(env, "{for $i=5 to=1 step=-1}{$i}{/for}") == "54321"

    def test_forelse(self, env):
        assert render(env, "{for $i=3 to=1}x{forelse}none{/for}") == "none"

    def test_for_zero_step(self, env):
        with pytest.raises(TemplateRuntimeError, match="step"):
            render(env, "{for $i=1 to=3 step=0}{/for}")

    def test_while(self, env):
        source = "{var $i = 0}{while $i < 3}{$i}{$i = $i + 1}{/while}"
        assert render(env, source) == "012"

    def test_switch(self, env):
        source = "{switch $x}{case 1, 2}low{case 3}three{default}other{/switch}"
        assert [render(env, source, x=x) for x in (2, 3, 9)] == ["low", "three", "other"]

    def test_switch_break(self, env):
        source = "{switch $x}\n{case 'a'}A{if $stop}{break}{/if}B{default}D{/switch}"
        assert render(env, source, x="a", stop=True) == "A"
        assert render(env, source, x="a", stop=False) == "AB"

    def test_switch_without_match_or_default(self, env):
        assert render(env, "{switch $x}{case 1}one{/switch}", x=5) == ""


class TestSpecialTags:
    def test_var_assignment(self, env):
        assert render(env, "{var $x = 2 * 3}{$x}") == "6"

    def test_var_capture(self, env):
        source = "{var $greeting|upper}hello {$name}{/var}[{$greeting}]"
        assert render(env, source, name="ann") == "[HELLO ANN]"

    def test_capture_is_markup(self, env_autoescape):
        source = "{var $html}<b>{$x}</b>{/var}{$html}"
        assert render(env_autoescape, source, x="<") == "<b>&lt;</b>"

    def test_filter(self, env):
        assert render(env, "{filter|upper}abc {$x}{/filter}", x="y") == "ABC Y"

    def test_filter_requires_modifier(self, env):
        with pytest.raises(TemplateSyntaxError):
            env.from_string("{filter}x{/filter}")

    def test_cycle(self, env):
        source = "{foreach $l as $v}{cycle ['odd', 'even']} {/foreach}"
        template = env.from_string(source)
        assert template.render(l=[1, 2, 3]) == "odd even odd "
        # Counters start over for every render
        assert template.render(l=[1]) == "odd "

    def test_cycle_with_index(self, env):
        source = "{foreach $l as $v index=$i}{cycle ['a', 'b'] index=$i}{/foreach}"
        assert render(env, source, l=[1, 2, 3, 4]) == "abab"


class TestModifiers:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("{$s|upper}", "HELLO WORLD"),
            ("{$s|up|low}", "hello world"),
            ("{$s|truncate:5}", "hello..."),
            ("{$s|truncate:8:'~':true}", "hello~"),
            ("{$s|length}", "11"),
            ("{'  a   b  '|strip}", "a b"),
            ("{$s|iterable ? 'y' : 'n'}", "n"),
            ("{'&amp;'|unescape}", "&"),
            ("{$ts|date_format:'%Y-%m-%d'}", "2024-01-02"),
            ("{$ts|date:'Y/m/d'}", "2024/01/02"),
        ],
    )
    def test_builtin(self, env, source, expected):
        assert render(env, source, s="hello world", ts="2024-01-02T10:00:00") == expected

    def test_registered_modifier(self, env):
        env.add_modifier("reverse", lambda value: str(value)[::-1])
        assert render(env, "{$s|reverse}", s="abc") == "cba"

    def test_host_function_as_modifier(self, env):
        assert render(env, "{$l|len}", l=[1, 2]) == "2"

    def test_modifier_loader(self, provider):
        env = Environment(provider, modifier_loader=lambda name: str.title if name == "title" else None)
        assert render(env, "{$s|title}", s="big deal") == "Big Deal"


class TestRegisteredTags:
    def test_function(self, env):
        env.add_function("hello", lambda params: f"Hi {params['name']}")
        assert render(env, "{hello name=$who}", who="Bob") == "Hi Bob"

    def test_function_output_is_not_escaped(self, env_autoescape):
        env_autoescape.add_function("hr", lambda params: "<hr>")
        assert render(env_autoescape, "{hr}") == "<hr>"

    def test_smart_function(self, env):
        env.add_function_smart("add", lambda a, b=1: a + b)
        assert render(env, "{add a=2 b=3}{add a=1}") == "52"

    def test_smart_function_checks_signature(self, env):
        env.add_function_smart("add", lambda a, b=1: a + b)
        with pytest.raises(TemplateSyntaxError, match="requires parameter 'a'"):
            env.from_string("{add b=2}")
        with pytest.raises(TemplateSyntaxError, match="no parameter 'c'"):
            env.from_string("{add a=1 c=2}")

    def test_block_function(self, env):
        env.add_block_function("wrap", lambda params, content: f"<{params['tag']}>{content}</{params['tag']}>")
        assert render(env, "{wrap tag='b'}x{$y}{/wrap}", y="z") == "<b>xz</b>"

    def test_inline_compiler(self, env):
        env.add_compiler("rule", lambda parser, tokens, scope: Data(scope.lineno, scope.col_offset, "<hr>"))
        assert render(env, "a{rule}b") == "a<hr>b"

    def test_block_compiler_default_close(self, env):
        env.add_block_compiler("group", lambda parser, tokens, scope: None)
        assert render(env, "{group}in{$x}{/group}", x=1) == "in1"

    def test_registration_replaces_builtin(self, env):
        env.add_function("cycle", lambda params: "custom")
        assert render(env, "{cycle}") == "custom"

    def test_tag_loader(self, provider):
        from brace import TagDefinition, TagKind

        def loader(name):
            if name == "stamp":
                return TagDefinition(
                    TagKind.INLINE_COMPILER,
                    parser=lambda parser, tokens, scope: Data(scope.lineno, scope.col_offset, "*"),
                )
            return None

        env = Environment(provider, tag_loader=loader)
        assert render(env, "{stamp}{stamp}") == "**"


class TestFilters:
    def test_pre_filter(self, env):
        env.add_pre_filter(lambda source, name: source.replace("[[", "{").replace("]]", "}"))
        assert render(env, "[[$x]]", x=1) == "1"

    def test_text_filter(self, env):
        env.add_filter(lambda text: text.strip())
        assert render(env, "  a  {$x}  b  ", x=1) == "a1b"

    def test_post_filter_sees_module(self, env):
        seen = []
        env.add_post_filter(lambda module, name: seen.append((type(module).__name__, name)) or module)
        env.from_string("x", name="inline.tpl")
        assert seen == [("Module", "inline.tpl")]
