"""Pytest configuration and fixtures for Brace tests."""

import pytest

from brace import DictProvider, Environment


@pytest.fixture
def provider():
    """In-memory provider with a small inheritance and macro set."""
    return DictProvider(
        {
            "base.tpl": (
                "<html>"
                "<head>{block 'head'}<title>Site</title>{/block}</head>"
                "<body>{block 'body'}{/block}</body>"
                "</html>"
            ),
            "child.tpl": "{extends 'base.tpl'}{block 'body'}Hello World{/block}",
            "partial.tpl": "<p>Partial {$name}</p>",
            "macros.tpl": (
                "{macro greet(name)}Hello {$name}{/macro}"
                "{macro add(a, b=2)}{$a + $b}{/macro}"
            ),
        }
    )


@pytest.fixture
def env(provider):
    """Environment over the in-memory provider, no compile directory."""
    return Environment(provider)


@pytest.fixture
def env_autoescape(provider):
    """Environment with auto_escape enabled."""
    return Environment(provider, options={"auto_escape": True})


@pytest.fixture
def compile_dir(tmp_path):
    """Empty, writable compile directory."""
    path = tmp_path / "compiled"
    path.mkdir()
    return path


@pytest.fixture
def cached_env(provider, compile_dir):
    """Environment persisting compiled templates to ``compile_dir``."""
    return Environment(provider, compile_dir)


def render(env: Environment, source: str, **variables) -> str:
    """Compile ``source`` as a string template and render it."""
    return env.from_string(source).render(variables)


def assert_template_equal(template_result: str, expected: str) -> None:
    """Assert template result equals expected, normalizing whitespace.

    Args:
        template_result: The actual template rendering result.
        expected: The expected output.
    """
    actual_normalized = " ".join(template_result.split())
    expected_normalized = " ".join(expected.split())
    assert actual_normalized == expected_normalized, (
        f"Template output mismatch:\n"
        f"  Actual: {actual_normalized!r}\n"
        f"  Expected: {expected_normalized!r}"
    )


def assert_contains(template_result: str, *expected_parts: str) -> None:
    """Assert template result contains all expected parts."""
    for part in expected_parts:
        assert part in template_result, (
            f"Template output missing expected content:\n"
            f"  Missing: {part!r}\n"
            f"  Actual: {template_result!r}"
        )
