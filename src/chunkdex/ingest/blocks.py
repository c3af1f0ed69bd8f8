"""Semantic block parser: document nodes → atomic ``SemanticBlock``s.

A semantic block is content that should not be broken apart: a heading, a
single list item, a paragraph, a code block. Blocks over ``max_tokens`` are
split when a strategy applies:

- code: cut at blank lines once the running segment exceeds ``target_tokens``
- paragraph: group sentences into runs of at most ``target_tokens``

If no strategy applies, or a strategy yields a single piece, the block is kept
whole and downstream embedding truncates it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable

from chunkdex.ingest.markdown_parser import (
    DocumentNode,
    ParseError,
    code_node,
    render_list_item,
)

# Punctuation stays attached to the sentence it ends. Abbreviations such as
# "Mr." are split too.
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")

MAX_TOKENS = 200
TARGET_TOKENS = 200

TokenCount = Callable[[str], int]


@dataclass(frozen=True)
class SemanticBlock:
    """Smallest unit the assembler treats as indivisible.

    Attributes:
        type: Node type of the source block (``listItem`` for list items).
        text: Plain text, used when building embedded text.
        markdown: Displayable markdown.
        tokens: Token count of ``text``.
        heading_level: Heading depth 1..6 for heading blocks, else None.
    """

    type: str
    text: str
    markdown: str
    tokens: int
    heading_level: int | None = None

    @property
    def is_heading(self) -> bool:
        return self.type == "heading"


class SemanticBlockParser:
    """Convert an ordered node sequence into ordered semantic blocks.

    Args:
        count_tokens: Token counter (``TokenCounter`` or any ``str -> int``).
        max_tokens: Blocks above this size are candidates for splitting.
        target_tokens: Size goal for the pieces of a split block.
    """

    def __init__(
        self,
        count_tokens: TokenCount,
        max_tokens: int = MAX_TOKENS,
        target_tokens: int = TARGET_TOKENS,
    ) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if target_tokens < 1:
            raise ValueError("target_tokens must be >= 1")
        self._count = count_tokens
        self.max_tokens = max_tokens
        self.target_tokens = target_tokens

    def parse(self, nodes: Iterable[DocumentNode]) -> list[SemanticBlock]:
        """Return the semantic blocks for *nodes*, in document order.

        Raises:
            ParseError: If an element is not a ``DocumentNode`` or a heading
                has no valid level.
        """
        blocks: list[SemanticBlock] = []
        for node in nodes:
            if not isinstance(node, DocumentNode):
                raise ParseError(f"expected DocumentNode, got {type(node).__name__}")
            blocks.extend(self._node_to_blocks(node))
        return blocks

    # ------------------------------------------------------------------
    # Per-node dispatch
    # ------------------------------------------------------------------

    def _node_to_blocks(self, node: DocumentNode) -> list[SemanticBlock]:
        if node.type == "yaml":
            return []
        if node.type == "heading":
            return [self._heading_block(node)]
        if node.type == "list":
            return self._list_blocks(node)
        return self._regular_blocks(node)

    def _heading_block(self, node: DocumentNode) -> SemanticBlock:
        if node.level is None or not 1 <= node.level <= 6:
            raise ParseError(f"heading level must be 1..6, got {node.level!r}")
        return SemanticBlock(
            type="heading",
            text=node.text,
            markdown=node.markdown,
            tokens=self._count(node.text),
            heading_level=node.level,
        )

    def _list_blocks(self, node: DocumentNode) -> list[SemanticBlock]:
        """One block per item, each rendered as a single-item list."""
        blocks: list[SemanticBlock] = []
        for idx, item in enumerate(node.items):
            number = (node.start or 0) + idx if node.ordered else None
            markdown = render_list_item(
                item,
                ordered=node.ordered,
                number=number,
                spread=node.spread,
                marker=node.marker,
            )
            blocks.append(
                SemanticBlock(
                    type="listItem",
                    text=item.text,
                    markdown=markdown,
                    tokens=self._count(item.text),
                )
            )
        return blocks

    def _regular_blocks(self, node: DocumentNode) -> list[SemanticBlock]:
        block = SemanticBlock(
            type=node.type,
            text=node.text,
            markdown=node.markdown,
            tokens=self._count(node.text),
        )
        if block.tokens > self.max_tokens:
            return self.split_oversized(node, block)
        return [block]

    # ------------------------------------------------------------------
    # Oversized blocks
    # ------------------------------------------------------------------

    def split_oversized(self, node: DocumentNode, block: SemanticBlock) -> list[SemanticBlock]:
        """Split *block* if a strategy applies; otherwise return it unchanged."""
        result: list[SemanticBlock] | None = None
        if node.type == "code":
            result = self.try_split_code(node)
        if result is None and node.type == "paragraph":
            result = self.try_split_paragraph(node.text)
        return result if result is not None else [block]

    def try_split_code(self, node: DocumentNode) -> list[SemanticBlock] | None:
        """Cut code at blank lines once a segment exceeds ``target_tokens``.

        Returns None when only one segment results.
        """
        value = node.value if node.value is not None else node.text
        segments: list[list[str]] = []
        current: list[str] = []

        for line in value.split("\n"):
            current.append(line)
            # Blank lines are the natural break points; functions that contain
            # blank lines may still be cut.
            if not line.strip() and self._count("\n".join(current)) > self.target_tokens:
                segments.append(current)
                current = []

        if current:
            segments.append(current)

        if len(segments) <= 1:
            return None

        blocks: list[SemanticBlock] = []
        for seg in segments:
            piece = code_node("\n".join(seg), lang=node.lang, meta=node.meta)
            blocks.append(
                SemanticBlock(
                    type="code",
                    text=piece.text,
                    markdown=piece.markdown,
                    tokens=self._count(piece.text),
                )
            )
        return blocks

    def try_split_paragraph(self, text: str) -> list[SemanticBlock] | None:
        """Split *text* into sentence runs of at most ``target_tokens``.

        Returns None when the text has a single sentence or yields a single run.
        """
        sentences = split_sentences(text)
        if len(sentences) <= 1:
            return None

        runs = self.group_sentences(sentences)
        if len(runs) <= 1:
            return None

        blocks: list[SemanticBlock] = []
        for run in runs:
            run_text = " ".join(run)
            blocks.append(
                SemanticBlock(
                    type="paragraph",
                    text=run_text,
                    markdown=run_text + "\n",
                    tokens=self._count(run_text),
                )
            )
        return blocks

    def group_sentences(self, sentences: list[str]) -> list[list[str]]:
        """Group consecutive sentences into runs bounded by ``target_tokens``.

        A new run starts before any sentence that would overflow a non-empty
        run; a single sentence larger than the target forms its own run.
        """
        runs: list[list[str]] = []
        current: list[str] = []
        current_tokens = 0

        for sentence in sentences:
            n = self._count(sentence)
            if current and current_tokens + n > self.target_tokens:
                runs.append(current)
                current = []
                current_tokens = 0
            current.append(sentence)
            current_tokens += n

        if current:
            runs.append(current)
        return runs


def split_sentences(text: str) -> list[str]:
    """Split on ``[.!?]`` followed by whitespace. Empty pieces are dropped."""
    return [s for s in _SENTENCE_SPLIT_RE.split(text) if s]
