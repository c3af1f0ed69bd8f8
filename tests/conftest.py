"""Shared pytest fixtures."""

from __future__ import annotations

import hashlib
from typing import Sequence

import numpy as np
import pytest

from chunkdex.db.database import ChunkDatabase, DatabaseMetadata
from chunkdex.db.models import FinalizedChunk, Work


def _count_words(text: str) -> int:
    return len(text.split())


class FakeEmbedder:
    """Offline embedder: hashes each text into a unit vector; records batches."""

    def __init__(self, dimension: int = 8, model: str = "test/fake-embedder") -> None:
        self.dimension = dimension
        self.model = model
        self.batches: list[list[str]] = []

    def vector(self, text: str) -> np.ndarray:
        seed = int.from_bytes(hashlib.sha256(text.encode()).digest()[:4], "little")
        v = np.random.default_rng(seed).normal(size=self.dimension)
        return (v / np.linalg.norm(v)).astype(np.float32)

    def embed(self, texts: Sequence[str], batch_size: int | None = None) -> np.ndarray:
        size = batch_size or 25
        rows: list[np.ndarray] = []
        for start in range(0, len(texts), size):
            batch = list(texts[start : start + size])
            self.batches.append(batch)
            rows.extend(self.vector(t) for t in batch)
        return np.vstack(rows)

    def embed_query(self, text: str) -> np.ndarray:
        return self.vector(text)


def _make_chunk(text: str = "chunk text", work: Work = Work.THE_PYTHON_TUTORIAL, **kwargs) -> FinalizedChunk:
    return FinalizedChunk(
        heading_path=kwargs.pop("heading_path", ("Intro",)),
        total_tokens=kwargs.pop("total_tokens", _count_words(text)),
        raw_text=text,
        markdown_text=kwargs.pop("markdown_text", text + "\n"),
        work=work,
        title=kwargs.pop("title", "Tutorial"),
        **kwargs,
    )


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def sample_db() -> ChunkDatabase:
    """Three chunks whose embeddings are the first three basis vectors of R^4."""
    chunks = [
        _make_chunk("lists are mutable sequences"),
        _make_chunk("tuples are immutable sequences", work=Work.APPLIED_PYTHON_PROGRAMMING),
        _make_chunk("dictionaries map keys to values"),
    ]
    matrix = np.eye(3, 4, dtype=np.float32)
    meta = DatabaseMetadata(embedding_model="test/fake-embedder", dimension=4, created_at="2024-01-01T00:00:00+00:00")
    return ChunkDatabase(chunks, matrix, meta)


@pytest.fixture
def count_words():
    """Deterministic tokenizer stand-in: one token per whitespace-separated word."""
    return _count_words


@pytest.fixture
def make_chunk():
    """Factory for FinalizedChunk objects with sensible defaults."""
    return _make_chunk
