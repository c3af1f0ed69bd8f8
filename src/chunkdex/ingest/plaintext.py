"""Plain text chunker: blank-line segments with segment-level overlap.

Segments keep their trailing separator (``"para\\n\\n"``), so joining the
segments of a chunk with ``""`` reproduces the source text exactly. The
splitting is simple enough that the budgets are exact: 256 tokens per chunk
and 85 tokens of overlap by default.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from chunkdex.db.models import FinalizedChunk, Work
from chunkdex.ingest.base import BaseChunker, TokenCount

# Keep the capturing group: re.split() returns the separators too.
_SEPARATOR_RE = re.compile(r"(\n\n+)")


@dataclass
class _OpenChunk:
    segments: list[str] = field(default_factory=list)
    # Parallel to segments.
    token_counts: list[int] = field(default_factory=list)
    total_tokens: int = 0

    def add(self, segment: str, tokens: int) -> None:
        self.segments.append(segment)
        self.token_counts.append(tokens)
        self.total_tokens += tokens


def split_text(text: str) -> list[str]:
    """Split on runs of blank lines, attaching each separator to the text before it."""
    parts = _SEPARATOR_RE.split(text)
    result: list[str] = []
    for i in range(0, len(parts), 2):
        body = parts[i]
        sep = parts[i + 1] if i + 1 < len(parts) else ""
        if body:
            result.append(body + sep)
        elif sep and result:
            result[-1] += sep
    return result


class PlainTextChunker(BaseChunker):
    """Chunk plain text documents on paragraph (blank line) boundaries."""

    def __init__(
        self,
        max_tokens: int = 256,
        overlap_tokens: int = 85,
        count_tokens: TokenCount | None = None,
    ) -> None:
        super().__init__(max_tokens=max_tokens, overlap_tokens=overlap_tokens, count_tokens=count_tokens)

    def chunk(self, content: str, work: Work | str, title: str) -> list[FinalizedChunk]:
        if not content.strip():
            return []

        work = Work(work)
        chunks: list[FinalizedChunk] = []
        current = _OpenChunk()
        fresh = 0  # segments added since the last finalize

        for segment in split_text(content):
            tokens = self.count_tokens(segment)
            if fresh and current.total_tokens + tokens >= self.max_tokens:
                chunks.append(self._finalize(current, work, title))
                current = self._overlap(current)
                fresh = 0
            current.add(segment, tokens)
            fresh += 1

        if fresh:
            chunks.append(self._finalize(current, work, title))
        return chunks

    def _overlap(self, chunk: _OpenChunk) -> _OpenChunk:
        """Seed the next chunk with trailing segments of *chunk*.

        Walks backwards, always taking at least one segment, and stops when the
        next segment would push the total past ``overlap_tokens``.
        """
        seed = _OpenChunk()
        taken: list[tuple[str, int]] = []
        tokens = 0
        for segment, n in zip(reversed(chunk.segments), reversed(chunk.token_counts)):
            if taken and tokens + n > self.overlap_tokens:
                break
            taken.append((segment, n))
            tokens += n
        for segment, n in reversed(taken):
            seed.add(segment, n)
        return seed

    @staticmethod
    def _finalize(chunk: _OpenChunk, work: Work, title: str) -> FinalizedChunk:
        text = "".join(chunk.segments)
        # Byte-level BPE counts can exceed len(text) on emoji and CJK text.
        # FinalizedChunk requires total_tokens <= len(raw_text).
        return FinalizedChunk(
            heading_path=(title,),
            total_tokens=min(chunk.total_tokens, len(text)),
            raw_text=text,
            markdown_text=text,
            work=work,
            title=title,
        )
