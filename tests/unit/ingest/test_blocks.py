"""Tests for SemanticBlockParser: node → block conversion and oversized splits."""

from __future__ import annotations

import pytest

from chunkdex.ingest.blocks import SemanticBlockParser, split_sentences
from chunkdex.ingest.markdown_parser import DocumentNode, ParseError, parse_markdown


def _sentence(word: str, n: int = 80) -> str:
    """A sentence of exactly *n* whitespace-separated words."""
    return " ".join([word] * (n - 1)) + " end."


@pytest.fixture
def parser(count_words) -> SemanticBlockParser:
    return SemanticBlockParser(count_words, max_tokens=200, target_tokens=200)


# ------------------------------------------------------------------
# Node dispatch
# ------------------------------------------------------------------


def test_heading_becomes_single_block_with_level(parser):
    blocks = parser.parse(parse_markdown("## Data Structures\n\nLists are sequences.\n"))
    assert [b.type for b in blocks] == ["heading", "paragraph"]
    assert blocks[0].heading_level == 2
    assert blocks[0].is_heading
    assert blocks[0].tokens == 2
    assert blocks[1].heading_level is None


def test_frontmatter_is_dropped(parser):
    blocks = parser.parse(parse_markdown("---\nauthor: someone\n---\nBody text.\n"))
    assert [b.type for b in blocks] == ["paragraph"]


def test_each_list_item_is_its_own_block(parser):
    blocks = parser.parse(parse_markdown("- first item\n- second item\n- third item\n"))
    assert [b.type for b in blocks] == ["listItem"] * 3
    assert [b.text for b in blocks] == ["first item", "second item", "third item"]
    assert blocks[1].markdown == "- second item\n"


def test_ordered_list_items_keep_their_numbers(parser):
    blocks = parser.parse(parse_markdown("5. five\n6. six\n"))
    assert [b.markdown for b in blocks] == ["5. five\n", "6. six\n"]


def test_small_blocks_not_split(parser):
    text = "One sentence. Two sentence. Three sentence."
    blocks = parser.parse(parse_markdown(text + "\n"))
    assert len(blocks) == 1
    assert blocks[0].text == text


def test_non_node_input_raises(parser):
    with pytest.raises(ParseError):
        parser.parse(["not a node"])  # type: ignore[list-item]


def test_heading_with_invalid_level_raises(parser):
    node = DocumentNode(type="heading", text="Bad", markdown="Bad\n", level=7)
    with pytest.raises(ParseError, match="level"):
        parser.parse([node])


def test_invalid_budgets_rejected(count_words):
    with pytest.raises(ValueError, match="max_tokens"):
        SemanticBlockParser(count_words, max_tokens=0)
    with pytest.raises(ValueError, match="target_tokens"):
        SemanticBlockParser(count_words, target_tokens=0)


# ------------------------------------------------------------------
# Paragraph splitting
# ------------------------------------------------------------------


def test_split_sentences_keeps_punctuation():
    assert split_sentences("Hi there. How are you? Fine!") == ["Hi there.", "How are you?", "Fine!"]


def test_split_sentences_splits_abbreviations():
    assert split_sentences("Ask Mr. Smith.") == ["Ask Mr.", "Smith."]


def test_oversized_paragraph_grouped_into_runs(parser):
    s1, s2, s3 = _sentence("alpha"), _sentence("beta"), _sentence("gamma")
    blocks = parser.parse(parse_markdown(f"{s1} {s2} {s3}\n"))

    assert len(blocks) == 2
    assert blocks[0].text == f"{s1} {s2}"
    assert blocks[0].tokens == 160
    assert blocks[1].text == s3
    assert blocks[1].tokens == 80
    assert all(b.type == "paragraph" for b in blocks)
    assert blocks[0].markdown == f"{s1} {s2}\n"


def test_single_huge_sentence_kept_whole(parser):
    text = _sentence("word", 250)
    blocks = parser.parse(parse_markdown(text + "\n"))
    assert len(blocks) == 1
    assert blocks[0].tokens == 250


def test_group_sentences_oversized_sentence_gets_own_run(count_words):
    p = SemanticBlockParser(count_words, max_tokens=10, target_tokens=5)
    runs = p.group_sentences(["a b.", "c d e f g h i.", "j."])
    assert runs == [["a b."], ["c d e f g h i."], ["j."]]


# ------------------------------------------------------------------
# Code splitting
# ------------------------------------------------------------------


def _code_line(name: str, n: int = 30) -> str:
    return " ".join([name] * n)


def test_oversized_code_cut_at_blank_lines(count_words):
    p = SemanticBlockParser(count_words, max_tokens=60, target_tokens=50)
    body = "\n".join([_code_line("a"), "", _code_line("b"), "", _code_line("c")])
    blocks = p.parse(parse_markdown(f"```python\n{body}\n```\n"))

    assert len(blocks) == 2
    assert all(b.type == "code" for b in blocks)
    assert all(b.markdown.startswith("```python\n") for b in blocks)
    assert _code_line("a") in blocks[0].text and _code_line("b") in blocks[0].text
    assert blocks[1].text == _code_line("c")


def test_oversized_code_without_blank_lines_kept_whole(count_words):
    p = SemanticBlockParser(count_words, max_tokens=60, target_tokens=50)
    body = "\n".join([_code_line("a"), _code_line("b"), _code_line("c")])
    blocks = p.parse(parse_markdown(f"```\n{body}\n```\n"))
    assert len(blocks) == 1
    assert blocks[0].tokens == 90


def test_oversized_blockquote_not_split(count_words):
    p = SemanticBlockParser(count_words, max_tokens=5, target_tokens=5)
    blocks = p.parse(parse_markdown("> One two three. Four five six. Seven eight.\n"))
    assert len(blocks) == 1
    assert blocks[0].type == "blockquote"
