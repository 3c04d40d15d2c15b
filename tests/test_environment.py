"""Environment surface: providers, options, registration and output helpers."""

from __future__ import annotations

import io
import tempfile
from pathlib import Path

import pytest

from brace import (
    ChoiceProvider,
    ConfigurationError,
    DictProvider,
    Environment,
    ErrorCode,
    FileSystemProvider,
    FunctionProvider,
    Option,
    Provider,
    ProviderError,
    TemplateNotFoundError,
)
from brace.nodes import Data

from .conftest import render


class TestFileSystemProvider:
    @pytest.fixture
    def templates(self, tmp_path):
        root = tmp_path / "templates"
        (root / "pages").mkdir(parents=True)
        (root / "base.tpl").write_text("<main>{block 'body'}{/block}</main>")
        (root / "pages" / "home.tpl").write_text("{extends 'base.tpl'}{block 'body'}home{/block}")
        (root / "notes.txt").write_text("not a template")
        return root

    def test_load(self, templates):
        env = Environment(FileSystemProvider(templates))
        assert env.fetch("pages/home.tpl") == "<main>home</main>"

    def test_freshness_is_mtime(self, templates):
        provider = FileSystemProvider(templates)
        _, token = provider.get_source("base.tpl")
        assert token == (templates / "base.tpl").stat().st_mtime_ns
        assert provider.verify({"base.tpl": token})
        assert not provider.verify({"gone.tpl": token})

    def test_list_templates(self, templates):
        assert FileSystemProvider(templates).list_templates() == ["base.tpl", "pages/home.tpl"]

    def test_search_order(self, templates, tmp_path):
        override = tmp_path / "override"
        override.mkdir()
        (override / "base.tpl").write_text("<section>{block 'body'}{/block}</section>")
        env = Environment(FileSystemProvider([override, templates]))
        assert env.fetch("pages/home.tpl") == "<section>home</section>"

    @pytest.mark.parametrize("name", ["../secret.tpl", "pages/../../secret.tpl", "/etc/passwd"])
    def test_rejects_escaping_names(self, templates, name):
        (templates.parent / "secret.tpl").write_text("secret")
        provider = FileSystemProvider(templates)
        assert not provider.template_exists(name)
        with pytest.raises(TemplateNotFoundError):
            provider.get_source(name)

    def test_not_found_suggests(self, templates):
        with pytest.raises(TemplateNotFoundError, match="Did you mean 'base.tpl'"):
            FileSystemProvider(templates).get_source("bse.tpl")


class TestDictProvider:
    def test_token_follows_content(self):
        provider = DictProvider({"a.tpl": "a"})
        source, token = provider.get_source("a.tpl")
        assert source == "a"
        provider.set("a.tpl", "b")
        assert provider.get_source("a.tpl") == ("b", provider.get_last_modified("a.tpl"))
        assert provider.get_last_modified("a.tpl") != token
        provider.set("a.tpl", "a")
        assert provider.get_last_modified("a.tpl") == token

    def test_separate_mappings_never_share_tokens(self):
        first = DictProvider({"p.tpl": "A"})
        second = DictProvider({"p.tpl": "B"})
        assert first.get_last_modified("p.tpl") != second.get_last_modified("p.tpl")
        assert not second.verify({"p.tpl": first.get_last_modified("p.tpl")})

    def test_item_assignment(self):
        provider = DictProvider()
        provider["x.tpl"] = "x"
        assert provider.template_exists("x.tpl")
        assert provider.list_templates() == ["x.tpl"]

    def test_remove(self):
        provider = DictProvider({"a.tpl": "a"})
        token = provider.get_last_modified("a.tpl")
        provider.remove("a.tpl")
        assert provider.get_last_modified("a.tpl") is None
        assert not provider.verify({"a.tpl": token})

    def test_is_a_provider(self):
        assert isinstance(DictProvider(), Provider)


class TestChoiceProvider:
    def test_first_match_wins(self):
        custom = DictProvider({"nav.tpl": "custom"})
        default = DictProvider({"nav.tpl": "default", "footer.tpl": "footer"})
        env = Environment(ChoiceProvider([custom, default]))
        assert env.fetch("nav.tpl") == "custom"
        assert env.fetch("footer.tpl") == "footer"

    def test_list_templates_merges(self):
        provider = ChoiceProvider([DictProvider({"a.tpl": ""}), DictProvider({"a.tpl": "", "b.tpl": ""})])
        assert provider.list_templates() == ["a.tpl", "b.tpl"]

    def test_not_found(self):
        with pytest.raises(TemplateNotFoundError, match="2 providers"):
            ChoiceProvider([DictProvider(), DictProvider()]).get_source("x.tpl")


class TestFunctionProvider:
    def test_string_result_uses_content_hash(self):
        sources = {"hi.tpl": "Hello {$name}!"}
        provider = FunctionProvider(sources.get)
        env = Environment(provider)
        assert env.fetch("hi.tpl", {"name": "World"}) == "Hello World!"
        token = provider.get_last_modified("hi.tpl")
        sources["hi.tpl"] = "Bye"
        assert provider.get_last_modified("hi.tpl") != token

    def test_tuple_result_keeps_token(self):
        provider = FunctionProvider(lambda name: ("x", 42) if name == "x.tpl" else None)
        assert provider.get_source("x.tpl") == ("x", 42)
        assert provider.verify({"x.tpl": 42})

    def test_missing(self):
        provider = FunctionProvider(lambda name: None)
        assert not provider.template_exists("x.tpl")
        assert provider.list_templates() == []
        with pytest.raises(TemplateNotFoundError):
            provider.get_source("x.tpl")


class TestSchemes:
    @pytest.fixture
    def env(self, provider):
        env = Environment(provider)
        env.add_provider("mail", DictProvider({"hi.tpl": "mail {$x}"}))
        return env

    def test_scheme_selects_provider(self, env):
        assert env.fetch("mail:hi.tpl", {"x": 1}) == "mail 1"
        assert env.get_provider("mail").template_exists("hi.tpl")

    def test_default_provider(self, env, provider):
        assert env.get_provider() is provider

    def test_include_across_schemes(self, env):
        assert render(env, "[{include 'mail:hi.tpl'}]", x=2) == "[mail 2]"

    def test_unknown_scheme(self, env):
        with pytest.raises(ProviderError):
            env.get_template("sms:hi.tpl")
        assert not env.template_exists("sms:hi.tpl")

    def test_template_exists(self, env):
        assert env.template_exists("partial.tpl")
        assert env.template_exists("mail:hi.tpl")
        assert not env.template_exists("mail:partial.tpl")


class TestOutput:
    def test_display(self, env):
        out = io.StringIO()
        env.display("partial.tpl", {"name": "Ann"}, out)
        assert out.getvalue() == "<p>Partial Ann</p>"

    def test_display_defaults_to_stdout(self, env, capsys):
        env.display("partial.tpl", {"name": "Ann"})
        assert capsys.readouterr().out == "<p>Partial Ann</p>"

    def test_pipe_single_chunk(self, env):
        received = []
        env.pipe("child.tpl", received.append)
        assert received == [env.fetch("child.tpl")]

    def test_pipe_small_chunks(self, env):
        received = []
        env.pipe("child.tpl", received.append, chunk=1)
        assert len(received) > 1
        assert "".join(received) == env.fetch("child.tpl")

    def test_pipe_empty_output(self, env):
        received = []
        env.from_string("{if $x}x{/if}").pipe(received.append)
        assert received == []


class TestRegistration:
    def test_compiler_smart(self, env):
        class Tags:
            def tag_rule(self, parser, tokens, scope):
                return Data(scope.lineno, scope.col_offset, "<hr>")

        env.add_compiler_smart("rule", Tags())
        assert render(env, "{rule}") == "<hr>"

    def test_compiler_smart_missing_method(self, env):
        with pytest.raises(ConfigurationError) as exc_info:
            env.add_compiler_smart("rule", object())
        assert exc_info.value.code is ErrorCode.INVALID_REGISTRATION

    def test_block_compiler_smart(self, env):
        class Tags:
            def box_open(self, parser, tokens, scope):
                return None

            def box_close(self, parser, tokens, scope):
                return Data(scope.lineno, scope.col_offset, "[box]")

            def tag_sep(self, parser, tokens, scope):
                return Data(scope.lineno, scope.col_offset, "|")

        env.add_block_compiler_smart("box", Tags(), tags=["sep"])
        assert render(env, "{box}ignored{/box}") == "[box]"
        assert "box" in env.get_tag_owners("sep")

    def test_block_compiler_smart_missing_close(self, env):
        class Tags:
            def box_open(self, parser, tokens, scope):
                return None

        with pytest.raises(ConfigurationError) as exc_info:
            env.add_block_compiler_smart("box", Tags())
        assert exc_info.value.code is ErrorCode.INVALID_REGISTRATION

    def test_floating_tag_needs_parser(self, env):
        with pytest.raises(ConfigurationError, match="no parser"):
            env.add_block_compiler("box", lambda parser, tokens, scope: None, floats=["sep"])

    def test_get_tag_and_modifier(self, env):
        env.add_modifier("shout", str.upper)
        assert env.get_modifier("shout") is str.upper
        assert env.get_tag("foreach").is_block
        assert env.get_tag("nothing") is None

    def test_allowed_functions(self):
        env = Environment(options={"disable_native_funcs": True})
        assert env.is_allowed_function("len")
        assert not env.is_allowed_function("repr")
        env.add_allowed_functions({"double": lambda x: x * 2})
        assert render(env, "{double(4)}") == "8"


class TestOptions:
    def test_named_options(self, provider):
        env = Environment(provider, options={"auto_escape": True, "force_include": True})
        assert Option.AUTO_ESCAPE in env.get_options()
        assert Option.FORCE_INCLUDE in env.options

    def test_set_options_int_replaces(self, env):
        env.set_options({"auto_escape": True})
        env.set_options(int(Option.AUTO_RELOAD))
        assert env.options == Option.AUTO_RELOAD

    def test_set_options_mapping_merges(self, env):
        env.set_options({"auto_escape": True})
        env.set_options({"auto_reload": True})
        assert env.options == Option.AUTO_ESCAPE | Option.AUTO_RELOAD

    def test_set_options_clears_memory(self, env):
        before = env.get_template("partial.tpl")
        env.set_options({"auto_escape": True})
        after = env.get_template("partial.tpl")
        assert after is not before
        assert Option.AUTO_ESCAPE in after.options

    def test_template_options_merge(self, env):
        template = env.get_template("partial.tpl", {"auto_escape": True})
        assert Option.AUTO_ESCAPE in template.options
        assert Option.AUTO_ESCAPE not in env.options
        assert env.get_template("partial.tpl") is not template

    def test_unknown_option(self, provider):
        with pytest.raises(ConfigurationError) as exc_info:
            Environment(provider, options={"autoescape_all": True})
        assert exc_info.value.code is ErrorCode.INVALID_OPTION

    def test_unknown_bits(self, env):
        with pytest.raises(ConfigurationError):
            env.set_options(1 << 30)


class TestDelimiters:
    def test_custom_delimiters(self):
        env = Environment(open_delim="<%", close_delim="%>")
        source = "<%if $a%>{$a}=<%$a%><%/if%>"
        assert render(env, source, a=1) == "{$a}=1"

    @pytest.mark.parametrize(("open_delim", "close_delim"), [("", "}"), ("{", ""), ("#", "#")])
    def test_invalid_delimiters(self, open_delim, close_delim):
        with pytest.raises(ConfigurationError):
            Environment(open_delim=open_delim, close_delim=close_delim)


class TestFactory:
    def test_from_directory(self, tmp_path, compile_dir):
        templates = tmp_path / "templates"
        templates.mkdir()
        (templates / "hi.tpl").write_text("hi {$x}")
        env = Environment.factory(templates, compile_dir, {"auto_reload": True})
        assert isinstance(env.get_provider(), FileSystemProvider)
        assert env.cache.directory == compile_dir
        assert env.fetch("hi.tpl", {"x": 1}) == "hi 1"

    def test_from_provider(self, provider, compile_dir):
        env = Environment.factory(provider, compile_dir)
        assert env.get_provider() is provider

    def test_default_compile_dir(self, provider):
        env = Environment.factory(provider)
        assert env.cache.directory == Path(tempfile.gettempdir())

    def test_rejects_other_sources(self):
        with pytest.raises(ConfigurationError):
            Environment.factory(42)

    def test_kwargs_are_forwarded(self, provider, compile_dir):
        env = Environment.factory(provider, compile_dir, max_macro_recursion=3)
        assert env.max_macro_recursion == 3


class TestTemplate:
    def test_properties(self, env, provider):
        template = env.get_template("child.tpl")
        assert template.name == "child.tpl"
        assert template.freshness == provider.get_last_modified("child.tpl")
        assert template.dependencies == {"base.tpl": provider.get_last_modified("base.tpl")}
        assert template.source == "{extends 'base.tpl'}{block 'body'}Hello World{/block}"
        assert repr(template) == "<Template child.tpl options=0x0>"

    def test_is_valid(self, env, provider):
        template = env.get_template("partial.tpl")
        assert template.is_valid()
        provider.set("partial.tpl", "new")
        assert not template.is_valid()

    def test_string_template_is_always_valid(self, env):
        template = env.from_string("{$x}")
        assert template.name is None
        assert template.is_valid()

    def test_memory_table(self, env):
        assert env.get_template("partial.tpl") is env.get_template("partial.tpl")
        first = env.get_template("partial.tpl")
        env.flush()
        assert env.get_template("partial.tpl") is not first

    def test_not_found(self, env):
        with pytest.raises(TemplateNotFoundError, match="Did you mean 'partial.tpl'"):
            env.get_template("partal.tpl")

    def test_render_rejects_extra_positionals(self, env):
        with pytest.raises(TypeError):
            env.get_template("partial.tpl").render({}, {})

    def test_repr(self, env, compile_dir):
        assert "options=0x0" in repr(env)
        assert str(compile_dir) in repr(Environment(compile_dir=compile_dir))
