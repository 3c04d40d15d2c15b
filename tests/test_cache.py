"""Compile cache: artifact files, reuse across environments and invalidation."""

from __future__ import annotations

import logging

import pytest

from brace import (
    CacheError,
    CompileCache,
    CompiledArtifact,
    ConfigurationError,
    DictProvider,
    Environment,
    ErrorCode,
    Option,
)
from brace.cache import CACHE_SUFFIX, cache_filename, cache_key


def cache_files(directory):
    return sorted(p.name for p in directory.glob(f"*{CACHE_SUFFIX}"))


class TestNaming:
    def test_cache_key(self):
        assert cache_key("page.tpl", 0x200) == "200@page.tpl"

    def test_filename_is_deterministic(self):
        assert cache_filename("a/page.tpl", 0x200) == cache_filename("a/page.tpl", 0x200)

    def test_masks_get_distinct_files(self):
        assert cache_filename("page.tpl", 0) != cache_filename("page.tpl", Option.AUTO_ESCAPE)

    def test_filename_layout(self):
        name = cache_filename("dir/page.tpl", 0x200)
        assert name.startswith("page.tpl.")
        assert name.endswith(f".{len('dir/page.tpl'):x}.200{CACHE_SUFFIX}")
        assert len(name.split(".")[2]) == 16

    def test_unsafe_characters_are_replaced(self):
        assert cache_filename("sch:we ird.tpl", 0).startswith("sch_we_ird.tpl.")


class TestCompileCache:
    def test_directory_must_exist(self, tmp_path):
        with pytest.raises(ConfigurationError) as exc_info:
            CompileCache(tmp_path / "missing")
        assert exc_info.value.code is ErrorCode.INVALID_COMPILE_DIR

    def test_environment_rejects_missing_directory(self, tmp_path, provider):
        with pytest.raises(ConfigurationError):
            Environment(provider, tmp_path / "missing")

    def test_store_and_load(self, compile_dir):
        cache = CompileCache(compile_dir)
        code = compile("x = 1", "<test>", "exec")
        artifact = CompiledArtifact(
            name="page.tpl",
            options=0x200,
            freshness=3,
            code=code,
            dependencies={"base.tpl": 1},
            source="{$x}",
        )
        path = cache.store(artifact)
        assert path.parent == compile_dir
        loaded = cache.load("page.tpl", 0x200)
        assert loaded is not None
        assert loaded.freshness == 3
        assert loaded.dependencies == {"base.tpl": 1}
        assert loaded.source == "{$x}"
        assert loaded.code == code
        assert cache.stats() == {"hits": 1, "misses": 0, "writes": 1, "files": 1}

    def test_missing_is_miss(self, compile_dir):
        cache = CompileCache(compile_dir)
        assert cache.load("page.tpl", 0) is None
        assert cache.stats()["misses"] == 1

    def test_corrupt_file_is_miss(self, compile_dir):
        cache = CompileCache(compile_dir)
        cache.path_for("page.tpl", 0).write_bytes(b"not marshal data")
        assert cache.load("page.tpl", 0) is None

    def test_other_key_is_miss(self, compile_dir):
        cache = CompileCache(compile_dir)
        code = compile("", "<test>", "exec")
        cache.store(CompiledArtifact("page.tpl", 0, 1, code))
        cache.path_for("page.tpl", 0).rename(cache.path_for("page.tpl", 0x200))
        assert cache.load("page.tpl", 0x200) is None

    def test_no_temp_files_left(self, compile_dir):
        cache = CompileCache(compile_dir)
        cache.store(CompiledArtifact("page.tpl", 0, 1, compile("", "<test>", "exec")))
        assert [p.name for p in compile_dir.iterdir()] == [cache_filename("page.tpl", 0)]

    def test_unserializable_artifact(self, compile_dir):
        cache = CompileCache(compile_dir)
        artifact = CompiledArtifact("page.tpl", 0, object(), compile("", "<test>", "exec"))
        with pytest.raises(CacheError):
            cache.store(artifact)

    def test_clear(self, compile_dir):
        cache = CompileCache(compile_dir)
        for name in ("a.tpl", "b.tpl"):
            cache.store(CompiledArtifact(name, 0, 1, compile("", "<test>", "exec")))
        assert cache.clear() == 2
        assert cache_files(compile_dir) == []


class TestEnvironmentCache:
    def test_compile_writes_template_and_parent(self, cached_env, compile_dir):
        cached_env.get_template("child.tpl")
        assert cache_files(compile_dir) == sorted(
            [cache_filename("child.tpl", 0), cache_filename("base.tpl", 0)]
        )

    def test_string_templates_are_not_persisted(self, cached_env, compile_dir):
        cached_env.from_string("{$x}")
        assert cache_files(compile_dir) == []

    def test_new_environment_reuses_artifacts(self, provider, compile_dir):
        first = Environment(provider, compile_dir)
        expected = first.fetch("child.tpl")

        second = Environment(provider, compile_dir)
        assert second.fetch("child.tpl") == expected
        assert second.cache.stats()["hits"] >= 1
        assert second.cache.stats()["writes"] == 0

    def test_stale_artifact_served_without_auto_reload(self, provider, compile_dir):
        Environment(provider, compile_dir).fetch("partial.tpl")
        provider.set("partial.tpl", "changed")
        assert Environment(provider, compile_dir).fetch("partial.tpl") == "<p>Partial </p>"

    def test_auto_reload_recompiles_changed_source(self, provider, compile_dir):
        options = {"auto_reload": True}
        Environment(provider, compile_dir, options).fetch("partial.tpl")
        provider.set("partial.tpl", "changed")
        assert Environment(provider, compile_dir, options).fetch("partial.tpl") == "changed"

    def test_shared_directory_with_different_sources(self, compile_dir):
        options = {"auto_reload": True}
        first = Environment(DictProvider({"p.tpl": "A"}), compile_dir, options)
        second = Environment(DictProvider({"p.tpl": "B"}), compile_dir, options)
        assert first.fetch("p.tpl") == "A"
        assert second.fetch("p.tpl") == "B"
        third = Environment(DictProvider({"p.tpl": "A"}), compile_dir, options)
        assert third.fetch("p.tpl") == "A"
        assert third.cache.stats()["writes"] == 1

    def test_memory_table_without_auto_reload(self, env, provider):
        assert env.fetch("partial.tpl") == "<p>Partial </p>"
        provider.set("partial.tpl", "changed")
        assert env.fetch("partial.tpl") == "<p>Partial </p>"
        env.flush()
        assert env.fetch("partial.tpl") == "changed"

    def test_memory_table_with_auto_reload(self, provider):
        env = Environment(provider, options={"auto_reload": True})
        assert env.fetch("partial.tpl") == "<p>Partial </p>"
        provider.set("partial.tpl", "changed")
        assert env.fetch("partial.tpl") == "changed"

    def test_auto_reload_follows_dependencies(self, provider, compile_dir):
        env = Environment(provider, compile_dir, {"auto_reload": True})
        env.fetch("child.tpl")
        provider.set("base.tpl", "<main>{block 'body'}{/block}</main>")
        assert env.fetch("child.tpl") == "<main>Hello World</main>"

    def test_removed_dependency_is_stale(self, provider):
        env = Environment(provider, options={"auto_reload": True})
        template = env.get_template("child.tpl")
        provider.remove("base.tpl")
        assert not template.is_valid()

    def test_force_compile_skips_memory(self, provider, compile_dir):
        env = Environment(provider, compile_dir, {"force_compile": True})
        assert env.get_template("partial.tpl") is not env.get_template("partial.tpl")
        assert cache_filename("partial.tpl", Option.FORCE_COMPILE) in cache_files(compile_dir)

    def test_disable_cache(self, provider, compile_dir):
        env = Environment(provider, compile_dir, {"disable_cache": True})
        assert env.fetch("child.tpl") == (
            "<html><head><title>Site</title></head><body>Hello World</body></html>"
        )
        assert cache_files(compile_dir) == []

    def test_per_template_options_get_own_artifact(self, cached_env, compile_dir):
        cached_env.get_template("partial.tpl")
        cached_env.get_template("partial.tpl", {"auto_escape": True})
        files = cache_files(compile_dir)
        assert cache_filename("partial.tpl", 0) in files
        assert cache_filename("partial.tpl", Option.AUTO_ESCAPE) in files

    def test_corrupt_artifact_is_recompiled(self, provider, compile_dir):
        path = compile_dir / cache_filename("partial.tpl", 0)
        path.write_bytes(b"\x00garbage")
        env = Environment(provider, compile_dir)
        assert env.fetch("partial.tpl", {"name": "x"}) == "<p>Partial x</p>"
        assert path.read_bytes() != b"\x00garbage"

    def test_clear_all_compiles(self, cached_env, compile_dir):
        cached_env.get_template("child.tpl")
        assert cached_env.clear_all_compiles() == 2
        assert cache_files(compile_dir) == []

    def test_clear_without_compile_dir(self, env):
        assert env.clear_all_compiles() == 0


class TestCacheFailures:
    @pytest.fixture
    def blocked(self, compile_dir):
        """Occupy the artifact path of partial.tpl with a directory."""
        path = compile_dir / cache_filename("partial.tpl", 0)
        path.mkdir()
        return path

    def test_cache_error_propagates(self, provider, compile_dir, blocked):
        env = Environment(provider, compile_dir)
        with pytest.raises(CacheError) as exc_info:
            env.get_template("partial.tpl")
        assert exc_info.value.code is ErrorCode.CACHE_READ

    def test_best_effort_cache(self, provider, compile_dir, blocked, caplog):
        env = Environment(provider, compile_dir, best_effort_cache=True)
        with caplog.at_level(logging.WARNING, logger="brace.environment.core"):
            assert env.fetch("partial.tpl", {"name": "x"}) == "<p>Partial x</p>"
        messages = [r.getMessage() for r in caplog.records]
        assert any("compile cache" in m for m in messages)
        assert any("Could not persist" in m for m in messages)
