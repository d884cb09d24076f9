"""Tests for content.normalize — canonical Markdown round-trip.

Covers:
- Idempotence over a mixed document
- Canonical block forms (headings, bullets, quotes, code, tables)
- Escaping of text that would otherwise re-parse as markup
- Adjacent lists and heading breaks surviving repeated normalization
"""

import itertools

import pytest

from wiki_sync.content.normalize import normalize_markdown

MIXED = """\
Billing Overview
================

Invoices are *generated* monthly.
They are sent by __email__.

* first item
* second item
    * nested item

3) third
4) fourth

> Quoted note
>
> second paragraph

```python
def total(items):
    return sum(items)
```

| Column | Type |
|:-------|-----:|
| id | int |
| note | text \\| more |

***

Visit [the portal](https://example.com "Portal") today.
"""


class TestNormalizeMarkdown:
    """Tests for normalize_markdown()."""

    def test_empty_input(self):
        """Empty and whitespace-only text normalizes to empty."""
        assert normalize_markdown("") == ""
        assert normalize_markdown("  \n\n ") == ""

    def test_idempotent(self):
        """Normalizing twice equals normalizing once."""
        once = normalize_markdown(MIXED)
        assert normalize_markdown(once) == once

    @pytest.mark.parametrize(
        "text",
        [
            "L1-human\nL2",
            "# Title\n\n- a\n- b",
            "Text with 2 * 3 and a_b_c and [brackets]",
            "1. one\n2. two",
            "Line ending with backslash\\\nnext",
        ],
    )
    def test_idempotent_small_inputs(self, text):
        once = normalize_markdown(text)
        assert normalize_markdown(once) == once

    def test_plain_lines_unchanged(self):
        """Ordinary paragraphs with soft breaks survive as is."""
        assert normalize_markdown("L1-human\nL2") == "L1-human\nL2"

    def test_setext_heading_becomes_atx(self):
        assert normalize_markdown("Title\n=====\n\nBody") == "# Title\n\nBody"

    def test_bullets_use_dash(self):
        assert normalize_markdown("* a\n+ b").startswith("- a")

    def test_ordered_list_keeps_start(self):
        """Ordered items are renumbered from their start with dots."""
        assert normalize_markdown("3) x\n4) y") == "3. x\n4. y"

    def test_code_block_fenced(self):
        """Indented code becomes a fenced block."""
        assert normalize_markdown("    code here") == "```\ncode here\n```"

    def test_code_fence_longer_than_content(self):
        """A fence never collides with backticks in the code."""
        text = "````\nuse ``` inside\n````"
        assert normalize_markdown(text) == text

    def test_thematic_break(self):
        assert normalize_markdown("a\n\n***\n\nb") == "a\n\n---\n\nb"

    def test_block_quote_blank_line(self):
        """Blank lines inside quotes keep their marker."""
        result = normalize_markdown("> one\n>\n> two")
        assert result == "> one\n>\n> two"

    def test_table_canonical(self):
        """Tables are rendered with padded pipes and alignment rows."""
        result = normalize_markdown("a|b\n-|:-:\n1|2")
        assert result == "| a | b |\n| --- | :---: |\n| 1 | 2 |"

    def test_emphasis_canonical(self):
        """Underscore emphasis becomes asterisks."""
        assert normalize_markdown("_x_ and __y__") == "*x* and **y**"

    def test_special_characters_escaped(self):
        """Literal asterisks stay literal after a round-trip."""
        result = normalize_markdown(r"2 \* 3")
        assert result == r"2 \* 3"
        assert normalize_markdown(result) == result

    def test_no_trailing_newline(self):
        assert not normalize_markdown("para\n\n").endswith("\n")


# ---------------------------------------------------------------------------
# Adjacent blocks
# ---------------------------------------------------------------------------

BLOCKS = [
    "- a\n- b",
    "+ c",
    "* d",
    "1. one\n2. two",
    "3) three",
    "Title  \nmore\n---",
    "# Head",
    "> quote",
    "para text",
    "```\ncode\n```",
]


class TestAdjacentBlocks:
    """Block sequences must keep their structure across round-trips."""

    def test_adjacent_bullet_lists_stay_separate(self):
        once = normalize_markdown("- a\n- b\n\n+ c")
        assert once == "- a\n- b\n\n* c"
        assert normalize_markdown(once) == once

    def test_three_bullet_lists_alternate(self):
        once = normalize_markdown("- a\n\n+ b\n\n* c")
        assert once == "- a\n\n* b\n\n- c"
        assert normalize_markdown(once) == once

    def test_adjacent_ordered_lists_stay_separate(self):
        once = normalize_markdown("1. one\n2. two\n\n3) three")
        assert once == "1. one\n2. two\n\n3) three"
        assert normalize_markdown(once) == once

    def test_lists_of_different_kinds_use_default_markers(self):
        assert normalize_markdown("* a\n\n1) b") == "- a\n\n1. b"

    def test_hard_break_in_heading(self):
        """A hard break inside a heading becomes a single space."""
        once = normalize_markdown("Title  \nmore\n---")
        assert once == "## Title more"
        assert normalize_markdown(once) == once

    @pytest.mark.parametrize(
        "blocks", list(itertools.product(BLOCKS, repeat=3)), ids=str
    )
    def test_idempotent_combinations(self, blocks):
        once = normalize_markdown("\n\n".join(blocks))
        assert normalize_markdown(once) == once
