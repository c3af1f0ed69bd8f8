"""Embedder: batched LiteLLM embeddings with unit normalization.

What is embedded for each chunk is ``chunk.raw_text`` (breadcrumb + overlap +
content). Vectors are L2-normalized so that cosine similarity reduces to a dot
product at query time. Order is preserved across batches.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from chunkdex.ingest.progress import ProgressPublisher
from chunkdex.rag import llm_client

EMBED_TASK = "embedding"


@dataclass
class EmbeddingConfig:
    """Configuration for embedding generation."""

    model: str = "openai/text-embedding-3-small"
    batch_size: int = 25
    num_retries: int = 3


def normalize_rows(matrix: np.ndarray) -> np.ndarray:
    """Return *matrix* with every row scaled to unit length (zero rows stay zero)."""
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    norms[norms == 0] = 1.0
    return (matrix / norms).astype(np.float32)


class Embedder:
    """Embed ordered text sequences via ``litellm.embedding()``.

    Args:
        config: Model, batch size, and retry count.
        progress: Publisher updated after every batch. A fresh one is created
            when omitted; read it through ``self.progress``.
    """

    def __init__(
        self,
        config: EmbeddingConfig | None = None,
        progress: ProgressPublisher | None = None,
    ) -> None:
        self._config = config or EmbeddingConfig()
        if self._config.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.progress = progress or ProgressPublisher()
        self._key_checked = False

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def batch_size(self) -> int:
        return self._config.batch_size

    def embed(self, texts: Sequence[str], batch_size: int | None = None) -> np.ndarray:
        """Embed *texts* and return a float32 ``[len(texts) x D]`` matrix of unit rows.

        Raises:
            EnvironmentError: If the provider's API key is not set.
        """
        size = batch_size or self._config.batch_size
        if not texts:
            return np.zeros((0, 0), dtype=np.float32)

        self._check_api_key()

        rows: list[list[float]] = []
        total = len(texts)
        self.progress.update(EMBED_TASK, 0, total)
        for start in range(0, total, size):
            batch = list(texts[start : start + size])
            rows.extend(
                llm_client.embed_batch(
                    self._config.model, batch, num_retries=self._config.num_retries
                )
            )
            self.progress.update(EMBED_TASK, min(start + size, total), total)

        return self._to_matrix(rows)

    def embed_query(self, text: str) -> np.ndarray:
        """Embed a single query string; returns a unit vector of shape ``(D,)``."""
        return self.embed([text])[0]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_matrix(rows: list[list[float]]) -> np.ndarray:
        lengths = {len(r) for r in rows}
        if len(lengths) != 1:
            # Ragged output; returned as an object array and rejected by the
            # dimension checks in ChunkDatabase.build().
            return np.array(rows, dtype=object)
        return normalize_rows(np.asarray(rows, dtype=np.float32))

    def _check_api_key(self) -> None:
        if not self._key_checked:
            llm_client.validate_api_key(self._config.model)
            self._key_checked = True
