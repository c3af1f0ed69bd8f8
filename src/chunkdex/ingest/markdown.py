"""Markdown chunker: semantic blocks with heading breadcrumbs and overlap.

Strategy:
- Parse the document into block nodes (frontmatter dropped).
- Turn nodes into semantic blocks; list items become separate blocks and
  oversized code/paragraphs are split where possible.
- Regroup blocks into chunks of at most ``max_tokens`` (cached block counts),
  each prefixed with its heading path and the tail of the previous chunk.
"""

from __future__ import annotations

from chunkdex.db.models import FinalizedChunk, Work
from chunkdex.ingest.assembler import ChunkAssembler
from chunkdex.ingest.base import BaseChunker, TokenCount
from chunkdex.ingest.blocks import SemanticBlock, SemanticBlockParser
from chunkdex.ingest.markdown_parser import parse_markdown


class MarkdownChunker(BaseChunker):
    """Chunk markdown documents on semantic block boundaries.

    Defaults: 200 max tokens, 200 target tokens for split pieces, 20 overlap tokens.
    """

    def __init__(
        self,
        max_tokens: int = 200,
        target_tokens: int = 200,
        overlap_tokens: int = 20,
        count_tokens: TokenCount | None = None,
    ) -> None:
        super().__init__(max_tokens=max_tokens, overlap_tokens=overlap_tokens, count_tokens=count_tokens)
        self.target_tokens = target_tokens
        self._blocks = SemanticBlockParser(
            self.count_tokens, max_tokens=max_tokens, target_tokens=target_tokens
        )
        self._assembler = ChunkAssembler(
            self.count_tokens, max_tokens=max_tokens, overlap_tokens=overlap_tokens
        )

    def chunk(self, content: str, work: Work | str, title: str) -> list[FinalizedChunk]:
        if not content.strip():
            return []
        return self._assembler.assemble(self.blocks(content), work, title)

    def blocks(self, content: str) -> list[SemanticBlock]:
        """Return the semantic blocks of *content* (exposed for inspection)."""
        return self._blocks.parse(parse_markdown(content))
