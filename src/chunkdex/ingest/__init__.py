"""chunkdex ingest pipeline: parser, semantic blocks, chunk assembly, embedder."""

from chunkdex.ingest.assembler import ChunkAssembler
from chunkdex.ingest.base import BaseChunker
from chunkdex.ingest.blocks import SemanticBlock, SemanticBlockParser
from chunkdex.ingest.markdown import MarkdownChunker
from chunkdex.ingest.plaintext import PlainTextChunker

__all__ = [
    "BaseChunker",
    "ChunkAssembler",
    "MarkdownChunker",
    "PlainTextChunker",
    "SemanticBlock",
    "SemanticBlockParser",
]
