"""Tests for the Brace lexer: segment scanning and tag tokenization."""

from __future__ import annotations

import pytest
from hypothesis import given, settings

from brace import ErrorCode, LexError, TokenType
from brace._types import SegmentType
from brace.lexer import Lexer, tokenize_expression

from .strategies import arbitrary_template_source, plain_text, template_fragment, variable_tag


def segments(source: str, **kwargs):
    return list(Lexer(source, **kwargs).segments())


class TestSegments:
    """Splitting source into text and tag segments."""

    def test_text_and_tags(self):
        result = segments("Hello, {$name}!")
        assert [(s.type, s.value) for s in result] == [
            (SegmentType.TEXT, "Hello, "),
            (SegmentType.TAG, "$name"),
            (SegmentType.TEXT, "!"),
        ]

    def test_brace_followed_by_whitespace_is_text(self):
        """JavaScript and CSS bodies pass through untouched."""
        source = "function f() { return 1; }\n.a {\n  color: red;\n}"
        result = segments(source)
        assert len(result) == 1
        assert result[0].type is SegmentType.TEXT
        assert result[0].value == source

    def test_trailing_open_brace_is_text(self):
        assert [s.value for s in segments("a {")] == ["a {"]

    def test_empty_tag_is_text(self):
        result = segments("x{}y")
        assert [(s.type, s.value) for s in result] == [(SegmentType.TEXT, "x{}y")]

    def test_comment_is_dropped(self):
        result = segments("a{* note {$x} *}b")
        assert [s.value for s in result] == ["a", "b"]

    def test_unclosed_comment(self):
        with pytest.raises(LexError) as exc_info:
            segments("a{* never closed")
        assert exc_info.value.code is ErrorCode.UNCLOSED_COMMENT

    def test_unclosed_tag(self):
        with pytest.raises(LexError) as exc_info:
            segments("line one\n{if $x")
        assert exc_info.value.code is ErrorCode.UNCLOSED_TAG
        assert exc_info.value.lineno == 2

    def test_closing_brace_inside_string(self):
        result = segments("{$x|default:'}'}done")
        assert result[0].value == "$x|default:'}'"
        assert result[1].value == "done"

    def test_nested_braces_in_tag(self):
        result = segments('{$x = "a{$y}b"}z')
        assert result[0].value == '$x = "a{$y}b"'
        assert result[1].value == "z"

    def test_ignore_region_is_verbatim(self):
        result = segments("{ignore}{$x} {if}{/ignore}after")
        assert [(s.type, s.value) for s in result] == [
            (SegmentType.TEXT, "{$x} {if}"),
            (SegmentType.TEXT, "after"),
        ]

    def test_unclosed_verbatim_region(self):
        with pytest.raises(LexError):
            segments("{ignore}{$x}")

    def test_closing_tag_flag(self):
        result = segments("{if $a}x{/if}")
        assert [s.is_closing for s in result] == [False, False, True]

    def test_positions(self):
        result = segments("ab\ncd {$x}")
        tag = result[1]
        assert (tag.lineno, tag.col_offset, tag.offset) == (2, 3, 6)

    def test_custom_delimiters(self):
        result = segments("{ literal } <%$x%>", open_delim="<%", close_delim="%>")
        assert [(s.type, s.value) for s in result] == [
            (SegmentType.TEXT, "{ literal } "),
            (SegmentType.TAG, "$x"),
        ]


class TestTokenizeExpression:
    """Tokenizing tag bodies."""

    def test_variable_and_accessors(self):
        tokens = tokenize_expression("$user.name->title")
        assert [t.type for t in tokens] == [
            TokenType.VARIABLE,
            TokenType.DOT,
            TokenType.NAME,
            TokenType.ARROW,
            TokenType.NAME,
            TokenType.EOF,
        ]
        assert tokens[0].value == "user"

    def test_system_accessor(self):
        tokens = tokenize_expression("$.env.HOME")
        assert tokens[0].type is TokenType.ACCESSOR

    def test_numbers(self):
        tokens = tokenize_expression("42 3.5")
        assert [t.value for t in tokens[:2]] == [42, 3.5]

    def test_strings(self):
        tokens = tokenize_expression("'it\\'s' \"plain\" \"hi {$name}\"")
        assert tokens[0].type is TokenType.STRING
        assert tokens[0].value == "it's"
        assert tokens[1].type is TokenType.STRING
        assert tokens[1].value == "plain"
        assert tokens[2].type is TokenType.TEMPLATE_STRING

    def test_longest_operator_wins(self):
        tokens = tokenize_expression("$a !== $b")
        assert tokens[1].type is TokenType.NOT_IDENTICAL

    def test_unterminated_string(self):
        with pytest.raises(LexError) as exc_info:
            tokenize_expression("'open")
        assert exc_info.value.code is ErrorCode.UNCLOSED_STRING

    def test_dollar_without_name(self):
        with pytest.raises(LexError):
            tokenize_expression("$ + 1")

    def test_unexpected_character(self):
        with pytest.raises(LexError) as exc_info:
            tokenize_expression("$a @ $b")
        assert exc_info.value.code is ErrorCode.UNEXPECTED_CHARACTER

    def test_line_tracking(self):
        tokens = tokenize_expression("$a\n+\n$b", lineno=3)
        assert [t.lineno for t in tokens[:3]] == [3, 4, 5]


class TestLexerProperties:
    """Property-based lexer checks."""

    @given(source=plain_text)
    @settings(max_examples=200)
    def test_plain_text_roundtrip(self, source: str) -> None:
        """Text without an opening brace comes back as the original content."""
        result = segments(source)
        assert "".join(s.value for s in result) == source
        assert all(s.type is SegmentType.TEXT for s in result)

    @given(source=variable_tag)
    @settings(max_examples=100)
    def test_variable_tag_is_one_segment(self, source: str) -> None:
        result = segments(source)
        assert len(result) == 1
        assert result[0].type is SegmentType.TAG
        assert result[0].value == source[1:-1]

    @given(source=template_fragment)
    @settings(max_examples=200)
    def test_fragments_scan(self, source: str) -> None:
        """Text segments never contain a tag opening."""
        for segment in segments(source):
            if segment.type is SegmentType.TEXT:
                assert "{$" not in segment.value
                assert "{*" not in segment.value

    @given(source=arbitrary_template_source)
    @settings(max_examples=300)
    def test_no_unhandled_crash(self, source: str) -> None:
        """The lexer only ever fails with LexError."""
        try:
            for segment in segments(source):
                if segment.type is SegmentType.TAG:
                    Lexer(source).tokenize(segment)
        except LexError:
            pass
