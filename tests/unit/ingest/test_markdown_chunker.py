"""Tests for BaseChunker + MarkdownChunker."""

from __future__ import annotations

import pytest

from chunkdex.db.models import Work
from chunkdex.ingest.markdown import MarkdownChunker
from chunkdex.rag.llm_client import TokenCounter

_DOC = """\
---
title: The Python Tutorial
---

# Data Structures

This chapter describes some things you've learned about already in more detail.

## More on Lists

The list data type has some more methods.

- append an item
- extend the list
- insert at a position

```python
fruits = ['orange', 'apple', 'pear']
fruits.count('apple')
```

## Tuples and Sequences

Tuples are immutable sequences.
"""


# ------------------------------------------------------------------
# BaseChunker, validated via MarkdownChunker
# ------------------------------------------------------------------


def test_base_chunker_invalid_max_tokens():
    with pytest.raises(ValueError, match="max_tokens"):
        MarkdownChunker(max_tokens=0, overlap_tokens=0)


def test_base_chunker_invalid_overlap_negative():
    with pytest.raises(ValueError, match="overlap"):
        MarkdownChunker(overlap_tokens=-1)


def test_base_chunker_overlap_must_be_below_max():
    with pytest.raises(ValueError, match="overlap"):
        MarkdownChunker(max_tokens=20, overlap_tokens=20)


def test_default_counter_is_token_counter():
    assert isinstance(MarkdownChunker().count_tokens, TokenCounter)


# ------------------------------------------------------------------
# MarkdownChunker
# ------------------------------------------------------------------


def test_empty_content_returns_no_chunks(count_words):
    chunker = MarkdownChunker(count_tokens=count_words)
    assert chunker.chunk("", Work.THE_PYTHON_TUTORIAL, "T") == []
    assert chunker.chunk("   \n\n", Work.THE_PYTHON_TUTORIAL, "T") == []


def test_small_document_single_chunk(count_words):
    chunker = MarkdownChunker(count_tokens=count_words)
    chunks = chunker.chunk(_DOC, Work.THE_PYTHON_TUTORIAL, "Tutorial")

    assert len(chunks) == 1
    chunk = chunks[0]
    assert chunk.title == "Tutorial"
    assert chunk.work is Work.THE_PYTHON_TUTORIAL
    # The stack at the end of the document: H1 then the last H2.
    assert chunk.heading_path == ("Data Structures", "Tuples and Sequences")
    assert chunk.raw_text.startswith("# Data Structures > Tuples and Sequences\n\n")


def test_frontmatter_not_in_output(count_words):
    chunker = MarkdownChunker(count_tokens=count_words)
    (chunk,) = chunker.chunk(_DOC, Work.THE_PYTHON_TUTORIAL, "Tutorial")
    assert "title: The Python Tutorial" not in chunk.raw_text
    assert "title: The Python Tutorial" not in chunk.markdown_text


def test_markdown_text_keeps_markup_and_code(count_words):
    chunker = MarkdownChunker(count_tokens=count_words)
    (chunk,) = chunker.chunk(_DOC, Work.THE_PYTHON_TUTORIAL, "Tutorial")
    assert "## More on Lists" in chunk.markdown_text
    assert "```python\nfruits = ['orange', 'apple', 'pear']" in chunk.markdown_text
    assert "- extend the list\n" in chunk.markdown_text


def test_small_budget_splits_with_breadcrumbs(count_words):
    chunker = MarkdownChunker(max_tokens=20, target_tokens=20, overlap_tokens=5, count_tokens=count_words)
    chunks = chunker.chunk(_DOC, Work.THE_PYTHON_TUTORIAL, "Tutorial")

    assert len(chunks) > 1
    assert chunks[0].heading_path[0] == "Data Structures"
    assert any("More on Lists" in c.heading_path for c in chunks)
    assert chunks[-1].heading_path == ("Data Structures", "Tuples and Sequences")
    for c in chunks:
        assert len(c.raw_text) >= c.total_tokens
        assert c.raw_text.startswith("# ")


def test_blocks_exposed_for_inspection(count_words):
    chunker = MarkdownChunker(count_tokens=count_words)
    types = [b.type for b in chunker.blocks(_DOC)]
    assert types == [
        "heading",
        "paragraph",
        "heading",
        "paragraph",
        "listItem",
        "listItem",
        "listItem",
        "code",
        "heading",
        "paragraph",
    ]


def test_work_string_is_coerced(count_words):
    chunker = MarkdownChunker(count_tokens=count_words)
    (chunk,) = chunker.chunk("Hello.\n", "The Python Tutorial", "T")
    assert chunk.work is Work.THE_PYTHON_TUTORIAL


def test_unknown_work_rejected(count_words):
    chunker = MarkdownChunker(count_tokens=count_words)
    with pytest.raises(ValueError):
        chunker.chunk("Hello.\n", "Some Other Book", "T")
