"""Chunk assembler: semantic blocks → ``FinalizedChunk``s with heading context.

For each block, in document order:

1. Heading blocks update the heading stack (pop same-or-deeper levels, push).
2. If the open buffer is non-empty and adding the block would exceed
   ``max_tokens``, the buffer is finalized, the overlap for the next chunk is
   taken from its tail, and the buffer is reset.
3. The block is appended to the buffer.

The remaining buffer is finalized at the end.

Embedded text (``raw_text``) = heading breadcrumb + overlap + content, each
section separated by a blank line. Displayable markdown omits the breadcrumb.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from chunkdex.db.models import FinalizedChunk, Work
from chunkdex.ingest.blocks import SemanticBlock

MAX_TOKENS = 200
OVERLAP_TOKENS = 20

TokenCount = Callable[[str], int]


@dataclass(frozen=True)
class HeadingEntry:
    text: str
    level: int


class HeadingStack:
    """Ancestor headings of the current position, levels strictly increasing."""

    def __init__(self) -> None:
        self._items: list[HeadingEntry] = []

    def __len__(self) -> int:
        return len(self._items)

    def peek(self) -> HeadingEntry | None:
        return self._items[-1] if self._items else None

    def push(self, text: str, level: int) -> None:
        """Pop every entry at *level* or deeper, then push the new heading."""
        while self._items and self._items[-1].level >= level:
            self._items.pop()
        self._items.append(HeadingEntry(text=text, level=level))

    @property
    def path(self) -> list[str]:
        return [h.text for h in self._items]

    @property
    def levels(self) -> list[int]:
        return [h.level for h in self._items]


class ChunkAssembler:
    """Regroup semantic blocks into token-bounded chunks.

    Args:
        count_tokens: Token counter used to measure the composed ``raw_text``.
        max_tokens: Budget for the blocks of one chunk (cached block counts).
        overlap_tokens: Budget for blocks repeated at the start of the next chunk.
    """

    def __init__(
        self,
        count_tokens: TokenCount,
        max_tokens: int = MAX_TOKENS,
        overlap_tokens: int = OVERLAP_TOKENS,
    ) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if overlap_tokens < 0:
            raise ValueError("overlap_tokens must be >= 0")
        self._count = count_tokens
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens

    def assemble(
        self, blocks: Iterable[SemanticBlock], work: Work | str, title: str
    ) -> list[FinalizedChunk]:
        """Return the chunks for *blocks* (one document), in order."""
        work = Work(work)
        chunks: list[FinalizedChunk] = []
        headings = HeadingStack()
        current: list[SemanticBlock] = []
        overlap: list[SemanticBlock] = []
        current_tokens = 0

        for block in blocks:
            if block.is_heading:
                headings.push(block.text, block.heading_level or 1)

            if current and current_tokens + block.tokens > self.max_tokens:
                chunks.append(self.finalize(current, overlap, headings.path, work, title))
                overlap = self.compute_overlap(current)
                current = []
                current_tokens = 0

            current.append(block)
            current_tokens += block.tokens

        if current:
            chunks.append(self.finalize(current, overlap, headings.path, work, title))

        return chunks

    def compute_overlap(self, blocks: list[SemanticBlock]) -> list[SemanticBlock]:
        """Take whole trailing blocks while their total stays within the budget.

        Stops at the first block that would overshoot, so the overlap is empty
        when the last block alone is over budget.
        """
        taken: list[SemanticBlock] = []
        tokens = 0
        for block in reversed(blocks):
            if tokens + block.tokens > self.overlap_tokens:
                break
            taken.append(block)
            tokens += block.tokens
        taken.reverse()
        return taken

    def finalize(
        self,
        blocks: list[SemanticBlock],
        overlap: list[SemanticBlock],
        heading_path: list[str],
        work: Work,
        title: str,
    ) -> FinalizedChunk:
        """Compose texts, retokenize the embedded text, and assign an id."""
        parts: list[str] = []
        if heading_path:
            parts.append("# " + " > ".join(heading_path))
        if overlap:
            parts.append("\n\n".join(b.text for b in overlap))
        parts.append("\n\n".join(b.text for b in blocks))
        raw_text = "\n\n".join(parts)

        markdown_parts: list[str] = []
        if overlap:
            markdown_parts.append("\n".join(b.markdown for b in overlap))
        markdown_parts.append("\n".join(b.markdown for b in blocks))

        # Byte-level BPE counts can exceed len(raw_text) on emoji and CJK text.
        # FinalizedChunk requires total_tokens <= len(raw_text).
        return FinalizedChunk(
            heading_path=tuple(heading_path),
            total_tokens=min(self._count(raw_text), len(raw_text)),
            raw_text=raw_text,
            markdown_text="\n".join(markdown_parts),
            work=work,
            title=title,
        )
