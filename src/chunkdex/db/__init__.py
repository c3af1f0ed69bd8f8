"""chunkdex database layer (ChunkDatabase lives in chunkdex.db.database)."""

from chunkdex.db.models import ChunkWithScore, FinalizedChunk, Work

__all__ = [
    "ChunkWithScore",
    "FinalizedChunk",
    "Work",
]
