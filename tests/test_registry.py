"""Tests for the tag and modifier registries."""

from __future__ import annotations

from brace import ActionRegistry, ModifierRegistry, TagDefinition, TagKind
from brace.environment.actions import DEFAULT_ACTIONS


def _inline(parser, tokens, scope):
    return None


class TestActionRegistry:
    def test_builtin_tags(self):
        registry = ActionRegistry(DEFAULT_ACTIONS)
        for name in ("foreach", "if", "switch", "for", "while", "block", "macro", "include"):
            assert name in registry

    def test_last_registration_wins(self):
        registry = ActionRegistry(DEFAULT_ACTIONS)
        first = TagDefinition(TagKind.INLINE_COMPILER, parser=_inline)
        second = TagDefinition(TagKind.INLINE_FUNCTION, parser=_inline, function=print)
        registry.register("if", first)
        registry["if"] = second
        assert registry.resolve("if") is second

    def test_miss_returns_none(self):
        assert ActionRegistry().resolve("nope") is None

    def test_loader_fallback_is_remembered(self):
        calls = []
        definition = TagDefinition(TagKind.INLINE_COMPILER, parser=_inline)

        def loader(name):
            calls.append(name)
            return definition if name == "lazy" else None

        registry = ActionRegistry(loader=loader)
        assert registry.resolve("lazy") is definition
        assert registry.resolve("lazy") is definition
        assert registry.resolve("other") is None
        assert calls == ["lazy", "other"]

    def test_owners(self):
        registry = ActionRegistry(DEFAULT_ACTIONS)
        assert registry.owners("break") == ["for", "foreach", "switch", "while"]
        assert registry.owners("elseif") == ["if"]
        assert registry.owners("nothing") == []

    def test_block_definitions(self):
        assert DEFAULT_ACTIONS["foreach"].is_block
        assert not DEFAULT_ACTIONS["include"].is_block
        assert DEFAULT_ACTIONS["macro"].isolated
        assert "parent" in DEFAULT_ACTIONS["block"].float_tags


class TestModifierRegistry:
    def test_last_registration_wins(self):
        registry = ModifierRegistry({"shout": str.upper})
        registry.register("shout", str.lower)
        assert registry.resolve("shout") is str.lower

    def test_host_builtins(self):
        registry = ModifierRegistry()
        assert registry.resolve("len") is len
        assert registry.resolve_function("max") is max

    def test_unsafe_builtins_are_never_resolved(self):
        registry = ModifierRegistry()
        for name in ("eval", "exec", "open", "__import__", "getattr"):
            assert registry.resolve(name) is None

    def test_deny_native_keeps_allow_list(self):
        registry = ModifierRegistry()
        assert registry.resolve_function("len", deny_native=True) is len
        assert registry.resolve_function("repr", deny_native=True) is None
        assert registry.resolve_function("repr") is repr

    def test_allow_mapping(self):
        registry = ModifierRegistry()
        registry.allow({"double": lambda x: x * 2})
        assert registry.is_allowed_function("double", deny_native=True)
        assert registry.resolve("double")(4) == 8

    def test_loader_fallback(self):
        registry = ModifierRegistry(loader=lambda name: str.title if name == "titled" else None)
        assert registry.resolve("titled") is str.title
        assert "titled" in registry
