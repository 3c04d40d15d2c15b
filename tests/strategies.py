"""Shared hypothesis strategies for Brace property-based testing.

Provides reusable strategies that generate structurally valid template
inputs:

- **Lexer**: Template fragments built from text, variable tags and comments
- **Options**: Named option flag mappings

These are building blocks; individual test modules compose them into
property-specific strategies.
"""

from __future__ import annotations

from hypothesis import strategies as st

from brace.options import OPTION_NAMES

# ---------------------------------------------------------------------------
# Lexer strategies
# ---------------------------------------------------------------------------

# Plain text without an opening brace: every character is literal output
plain_text = st.text(
    alphabet=st.characters(
        blacklist_categories=("Cs",),
        blacklist_characters="{\x00",
    ),
    min_size=1,
    max_size=200,
)

identifier = st.from_regex(r"[a-z_][a-z0-9_]{0,12}", fullmatch=True)

# {$name}
variable_tag = identifier.map(lambda name: f"{{${name}}}")

# {* text *}
_comment_body = st.from_regex(r"[a-zA-Z0-9_ ]{0,30}", fullmatch=True)
comment_tag = _comment_body.map(lambda body: f"{{*{body}*}}")

template_fragment = st.lists(
    st.one_of(plain_text, variable_tag, comment_tag),
    min_size=1,
    max_size=5,
).map("".join)

arbitrary_template_source = st.text(
    alphabet=st.characters(blacklist_categories=("Cs",)),
    min_size=0,
    max_size=300,
)

# ---------------------------------------------------------------------------
# Option strategies
# ---------------------------------------------------------------------------

option_values = st.dictionaries(
    keys=st.sampled_from(sorted(OPTION_NAMES)),
    values=st.booleans(),
    max_size=len(OPTION_NAMES),
)

option_masks = st.sets(st.sampled_from(sorted(OPTION_NAMES.values()))).map(sum)
