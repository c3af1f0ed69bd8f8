"""Chunk database: chunks paired with their unit-normalized embedding matrix.

Row ``i`` of ``embeddings`` is the embedding of ``chunks[i]``. A database is
built once per corpus run (or loaded from its JSON file) and is read-only
afterwards: the chunk list is a tuple and the matrix is flagged non-writeable.

File format::

    {
      "chunks": [{"headingPath": [...], "totalTokens": 12, "rawText": "...",
                  "markdownText": "...", "work": "...", "title": "...",
                  "id": "<uuid4>"}],
      "embeddings": {"dataType": "float32", "data": [...], "dimensions": [rows, cols]},
      "metadata": {"embeddingModel": "...", "dimension": cols, "createdAt": "<iso8601>"}
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol, Sequence

import numpy as np

from chunkdex.config import ConfigError
from chunkdex.db.models import FinalizedChunk

DATA_TYPE = "float32"
DEFAULT_BATCH_SIZE = 25


class DimensionMismatchError(ValueError):
    """Raised when embedding rows/columns disagree with the chunks or the query."""


class SerializationError(ValueError):
    """Raised when a persisted database payload fails validation."""


class SupportsEmbed(Protocol):
    model: str

    def embed(self, texts: Sequence[str], batch_size: int | None = None) -> np.ndarray: ...


@dataclass(frozen=True)
class DatabaseMetadata:
    embedding_model: str
    dimension: int
    created_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "embeddingModel": self.embedding_model,
            "dimension": self.dimension,
            "createdAt": self.created_at,
        }


class ChunkDatabase:
    """Immutable pairing of chunks with their N×D embedding matrix.

    Use ``build()`` to embed a chunk list, or ``load()`` / ``deserialize()`` to
    read a saved one. The constructor validates shapes.

    Raises:
        DimensionMismatchError: If the matrix is not 2-D, its row count differs
            from the chunk count, its dimension is zero, or metadata disagrees.
    """

    def __init__(
        self,
        chunks: Sequence[FinalizedChunk],
        embeddings: np.ndarray,
        metadata: DatabaseMetadata,
    ) -> None:
        _validate_matrix(embeddings, len(chunks))
        if metadata.dimension != embeddings.shape[1]:
            raise DimensionMismatchError(
                f"metadata dimension {metadata.dimension} != embedding width {embeddings.shape[1]}"
            )
        matrix = np.array(embeddings, dtype=np.float32, copy=True)
        matrix.setflags(write=False)
        self._chunks: tuple[FinalizedChunk, ...] = tuple(chunks)
        self._embeddings = matrix
        self._metadata = metadata

    @property
    def chunks(self) -> tuple[FinalizedChunk, ...]:
        return self._chunks

    @property
    def embeddings(self) -> np.ndarray:
        return self._embeddings

    @property
    def metadata(self) -> DatabaseMetadata:
        return self._metadata

    def __len__(self) -> int:
        return len(self._chunks)

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        chunks: Sequence[FinalizedChunk],
        embedder: SupportsEmbed,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> ChunkDatabase:
        """Embed every chunk's ``raw_text`` and return the database.

        Texts are embedded in batches of *batch_size*; row order follows chunk
        order.

        Raises:
            DimensionMismatchError: If the embedder returns the wrong number of
                rows, a ragged or empty-width matrix.
        """
        if not chunks:
            raise DimensionMismatchError("cannot build a database from zero chunks")
        created_at = datetime.now(timezone.utc).isoformat()
        texts = [c.raw_text for c in chunks]
        matrix = np.asarray(embedder.embed(texts, batch_size=batch_size))
        _validate_matrix(matrix, len(chunks))
        return cls(
            chunks,
            matrix.astype(np.float32),
            DatabaseMetadata(
                embedding_model=embedder.model,
                dimension=int(matrix.shape[1]),
                created_at=created_at,
            ),
        )

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return {
            "chunks": [c.to_dict() for c in self._chunks],
            "embeddings": tensor_data_from_matrix(self._embeddings),
            "metadata": self._metadata.to_dict(),
        }

    def serialize(self) -> str:
        """Return the JSON document for this database."""
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    @classmethod
    def from_dict(cls, payload: Any) -> ChunkDatabase:
        """Validate *payload* and build a database from it.

        Raises:
            SerializationError: On any structural or shape violation.
        """
        if not isinstance(payload, dict):
            raise SerializationError("Invalid chunk database: expected a JSON object")
        for key in ("chunks", "embeddings", "metadata"):
            if key not in payload:
                raise SerializationError(f"Invalid chunk database: missing '{key}'")

        chunks = _chunks_from_payload(payload["chunks"])
        matrix = matrix_from_tensor_data(payload["embeddings"])
        metadata = _metadata_from_payload(payload["metadata"])

        try:
            return cls(chunks, matrix, metadata)
        except DimensionMismatchError as exc:
            raise SerializationError(f"Invalid chunk database: {exc}") from exc

    @classmethod
    def deserialize(cls, text: str | bytes) -> ChunkDatabase:
        """Parse a JSON document produced by ``serialize()``.

        Raises:
            SerializationError: If *text* is not JSON or fails validation.
        """
        try:
            payload = json.loads(text)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise SerializationError(f"Invalid chunk database: not JSON ({exc})") from exc
        return cls.from_dict(payload)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def save(self, path: Path) -> Path:
        """Write the database to *path*; never overwrites an existing file.

        Raises:
            ConfigError: If *path* already exists.
        """
        path = Path(path)
        if path.exists():
            raise ConfigError(f"Output file '{path}' already exists")
        data = self.serialize()
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("x", encoding="utf-8") as fh:
            fh.write(data)
        return path

    @classmethod
    def load(cls, path: Path) -> ChunkDatabase:
        """Read and validate the database at *path*.

        Raises:
            FileNotFoundError: If *path* does not exist.
            SerializationError: If the file content is invalid.
        """
        return cls.deserialize(Path(path).read_bytes())


# ------------------------------------------------------------------
# Tensor transport
# ------------------------------------------------------------------


def tensor_data_from_matrix(matrix: np.ndarray) -> dict[str, Any]:
    """Flatten a 2-D float matrix into ``{dataType, data, dimensions}``."""
    if matrix.ndim != 2:
        raise SerializationError("Tensor dimensions must be 2D")
    rows, cols = matrix.shape
    return {
        "dataType": DATA_TYPE,
        "data": [float(x) for x in np.asarray(matrix, dtype=np.float32).ravel(order="C")],
        "dimensions": [int(rows), int(cols)],
    }


def matrix_from_tensor_data(tensor: Any) -> np.ndarray:
    """Rebuild a float32 matrix from ``{dataType, data, dimensions}``.

    Raises:
        SerializationError: If the type is not float32, dimensions are not two
            non-negative integers, or ``len(data) != rows * cols``.
    """
    if not isinstance(tensor, dict):
        raise SerializationError("Invalid embeddings: expected an object")
    if tensor.get("dataType") != DATA_TYPE:
        raise SerializationError(f"Invalid embeddings: dataType must be '{DATA_TYPE}'")

    dims = tensor.get("dimensions")
    if (
        not isinstance(dims, list)
        or len(dims) != 2
        or not all(isinstance(d, int) and not isinstance(d, bool) and d >= 0 for d in dims)
    ):
        raise SerializationError("Invalid embeddings: dimensions must be [rows, cols]")

    data = tensor.get("data")
    if not isinstance(data, list):
        raise SerializationError("Invalid embeddings: data must be an array")
    rows, cols = dims
    if len(data) != rows * cols:
        raise SerializationError(
            f"Invalid embeddings: data.length {len(data)} != dimensions[0] * dimensions[1] ({rows * cols})"
        )
    if not all(isinstance(x, (int, float)) and not isinstance(x, bool) for x in data):
        raise SerializationError("Invalid embeddings: data must contain only numbers")

    return np.asarray(data, dtype=np.float32).reshape(rows, cols)


# ------------------------------------------------------------------
# Validation helpers
# ------------------------------------------------------------------


def _validate_matrix(matrix: np.ndarray, n_chunks: int) -> None:
    if matrix.ndim != 2 or matrix.dtype == object:
        raise DimensionMismatchError("Invalid embeddings dimensions: expected a 2-D matrix")
    rows, cols = matrix.shape
    if rows != n_chunks:
        raise DimensionMismatchError(
            f"Mismatch between number of embeddings ({rows}) and chunks ({n_chunks})"
        )
    if cols < 1:
        raise DimensionMismatchError("Invalid vector length: dimension must be > 0")


def _chunks_from_payload(raw: Any) -> list[FinalizedChunk]:
    if not isinstance(raw, list):
        raise SerializationError("Invalid chunk database: 'chunks' must be an array")
    chunks: list[FinalizedChunk] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise SerializationError(f"Invalid chunk database: chunks[{i}] must be an object")
        try:
            chunks.append(FinalizedChunk.from_dict(item))
        except ValueError as exc:
            raise SerializationError(f"Invalid chunk database: chunks[{i}]: {exc}") from exc
    return chunks


def _metadata_from_payload(raw: Any) -> DatabaseMetadata:
    if not isinstance(raw, dict):
        raise SerializationError("Invalid chunk database: 'metadata' must be an object")
    model = raw.get("embeddingModel")
    dimension = raw.get("dimension")
    created_at = raw.get("createdAt")
    if not isinstance(model, str) or not isinstance(created_at, str):
        raise SerializationError(
            "Invalid chunk database: metadata.embeddingModel and metadata.createdAt must be strings"
        )
    if isinstance(dimension, bool) or not isinstance(dimension, int):
        raise SerializationError("Invalid chunk database: metadata.dimension must be an integer")
    return DatabaseMetadata(embedding_model=model, dimension=dimension, created_at=created_at)
