"""Base chunker interface for all chunkdex source types."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

from chunkdex.db.models import FinalizedChunk, Work
from chunkdex.rag.llm_client import TokenCounter

TokenCount = Callable[[str], int]


class BaseChunker(ABC):
    """Abstract base for all chunkers.

    Subclasses implement ``chunk()``. Token counting goes through the injected
    counter; by default a ``TokenCounter`` for the default tokenizer model.

    Args:
        max_tokens: Token budget for one chunk.
        overlap_tokens: Token budget for context carried into the next chunk.
        count_tokens: ``str -> int`` token counter.
    """

    def __init__(
        self,
        max_tokens: int,
        overlap_tokens: int,
        count_tokens: TokenCount | None = None,
    ) -> None:
        if max_tokens < 1:
            raise ValueError("max_tokens must be >= 1")
        if overlap_tokens < 0:
            raise ValueError("overlap_tokens must be >= 0")
        if overlap_tokens >= max_tokens:
            raise ValueError("overlap_tokens must be < max_tokens")
        self.max_tokens = max_tokens
        self.overlap_tokens = overlap_tokens
        self.count_tokens: TokenCount = count_tokens or TokenCounter()

    @abstractmethod
    def chunk(self, content: str, work: Work | str, title: str) -> list[FinalizedChunk]:
        """Split *content* into FinalizedChunk objects.

        Args:
            content: Full decoded text of the source document.
            work: Work the document belongs to.
            title: Document title, copied onto every chunk.

        Returns:
            Ordered list of FinalizedChunk objects.
        """
