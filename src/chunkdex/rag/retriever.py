"""Dense retriever: cosine similarity + knee-point cutoff.

Embeddings and queries are unit-normalized, so one matrix product
``query @ matrix.T`` gives the cosine similarity of the query to every chunk.

The number of results adapts to the score curve: scores are sorted
descending and treated as points ``(rank, score)``; the rank furthest
(perpendicular distance) from the chord between the first and last point is
the knee, the last result kept.

Retrieval is a pure function of ``(database, query vector)``; the database is
never mutated.
"""

from __future__ import annotations

from typing import Protocol, Sequence

import numpy as np

from chunkdex.db.database import ChunkDatabase, DimensionMismatchError
from chunkdex.db.models import ChunkWithScore


class SupportsQueryEmbed(Protocol):
    def embed_query(self, text: str) -> np.ndarray: ...


def similarity(matrix: np.ndarray, query: np.ndarray) -> np.ndarray:
    """Return the ``(N,)`` dot products of *query* with each row of *matrix*.

    Raises:
        DimensionMismatchError: If *query* is not ``(D,)`` or ``(1, D)`` with
            ``D`` equal to the matrix width.
    """
    q = np.asarray(query, dtype=np.float32)
    if q.ndim == 2 and q.shape[0] == 1:
        q = q[0]
    if q.ndim != 1 or matrix.ndim != 2 or q.shape[0] != matrix.shape[1]:
        raise DimensionMismatchError(
            f"Cannot multiply query of shape {np.shape(query)} with database of shape {matrix.shape}"
        )
    return q @ matrix.T


def perpendicular_distance(
    point: tuple[float, float],
    line_start: tuple[float, float],
    line_end: tuple[float, float],
) -> float:
    """Distance from *point* to the line through *line_start* and *line_end*."""
    (x0, y0), (x1, y1), (x2, y2) = point, line_start, line_end
    numerator = abs((x2 - x1) * (y1 - y0) - (x1 - x0) * (y2 - y1))
    denominator = float(np.hypot(x2 - x1, y2 - y1))
    return numerator / denominator


def find_knee_point(scores: Sequence[float]) -> int:
    """Return how many of the descending *scores* to keep.

    With two or fewer scores, all are kept. Otherwise the interior rank with
    the greatest distance from the first→last chord is the knee (earliest on
    ties) and results up to and including it are kept. A curve with no
    interior point off the chord keeps everything.

    >>> find_knee_point([0.9, 0.85, 0.82, 0.3, 0.25, 0.2])
    3
    """
    n = len(scores)
    if n <= 2:
        return n

    first = (0.0, float(scores[0]))
    last = (float(n - 1), float(scores[-1]))

    max_distance = 0.0
    cutoff = n
    for i in range(1, n - 1):
        distance = perpendicular_distance((float(i), float(scores[i])), first, last)
        if distance > max_distance:
            max_distance = distance
            cutoff = i + 1
    return cutoff


def find_best_results(scores: Sequence[float] | np.ndarray) -> list[tuple[int, float]]:
    """Return ``(index, score)`` pairs above the knee, sorted by score descending."""
    values = np.asarray(scores, dtype=np.float64)
    # Stable sort keeps index order among equal scores.
    order = np.argsort(-values, kind="stable")
    ranked = [(int(i), float(values[i])) for i in order]
    cutoff = find_knee_point([s for _, s in ranked])
    return ranked[:cutoff]


def rank(db: ChunkDatabase, query_vector: np.ndarray) -> list[ChunkWithScore]:
    """Score *query_vector* against every chunk and keep the results above the knee."""
    if len(db) == 0:
        return []
    scores = similarity(db.embeddings, query_vector)
    return [
        ChunkWithScore(chunk=db.chunks[index], score=score)
        for index, score in find_best_results(scores)
    ]


def search(db: ChunkDatabase, embedder: SupportsQueryEmbed, query: str) -> list[ChunkWithScore]:
    """Embed *query* and rank it against *db*."""
    return rank(db, embedder.embed_query(query))
