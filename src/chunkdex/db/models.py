"""Domain models for chunks and search results."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Work(str, Enum):
    """The works a chunk can come from. Serialized by value."""

    APPLIED_PYTHON_PROGRAMMING = "Applied Python Programming"
    THE_PYTHON_TUTORIAL = "The Python Tutorial"


def new_chunk_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class FinalizedChunk:
    """A token-bounded unit of document text, ready for embedding.

    Attributes:
        heading_path: Ancestor heading texts active where the chunk starts.
        total_tokens: Token count of ``raw_text`` (breadcrumb and overlap included).
        raw_text: Text that gets embedded: breadcrumb + overlap + content.
        markdown_text: Displayable markdown (overlap + content, no breadcrumb).
        work: Work the chunk belongs to.
        title: Title of the source document.
        id: UUID4 string, assigned once.
    """

    heading_path: tuple[str, ...]
    total_tokens: int
    raw_text: str
    markdown_text: str
    work: Work
    title: str
    id: str = field(default_factory=new_chunk_id)

    def __post_init__(self) -> None:
        # Lists are accepted for convenience but stored as tuples.
        object.__setattr__(self, "heading_path", tuple(self.heading_path))
        object.__setattr__(self, "work", Work(self.work))
        if self.total_tokens < 0:
            raise ValueError(f"total_tokens must be >= 0, got {self.total_tokens}")
        if len(self.raw_text) < self.total_tokens:
            raise ValueError(
                f"rawText.length should be >= totalTokens "
                f"({len(self.raw_text)} < {self.total_tokens})"
            )

    def to_dict(self) -> dict[str, Any]:
        """Return the camelCase JSON representation used in the database file."""
        return {
            "headingPath": list(self.heading_path),
            "totalTokens": self.total_tokens,
            "rawText": self.raw_text,
            "markdownText": self.markdown_text,
            "work": self.work.value,
            "title": self.title,
            "id": self.id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FinalizedChunk:
        """Build a chunk from its JSON representation.

        Raises:
            ValueError: If a field is missing, has the wrong type, or breaks an
                invariant (unknown work, non-UUID id, too many tokens).
        """
        try:
            heading_path = data["headingPath"]
            total_tokens = data["totalTokens"]
            raw_text = data["rawText"]
            markdown_text = data["markdownText"]
            work = data["work"]
            title = data["title"]
            chunk_id = data["id"]
        except KeyError as exc:
            raise ValueError(f"missing field {exc.args[0]!r}") from exc

        if not isinstance(heading_path, list) or not all(isinstance(h, str) for h in heading_path):
            raise ValueError("headingPath must be a list of strings")
        if isinstance(total_tokens, bool) or not isinstance(total_tokens, int):
            raise ValueError("totalTokens must be an integer")
        for name, value in (
            ("rawText", raw_text),
            ("markdownText", markdown_text),
            ("title", title),
            ("id", chunk_id),
        ):
            if not isinstance(value, str):
                raise ValueError(f"{name} must be a string")
        try:
            parsed = uuid.UUID(chunk_id)
        except ValueError as exc:
            raise ValueError(f"id is not a UUID: {chunk_id!r}") from exc
        if parsed.version != 4:
            raise ValueError(f"id is not a UUID4: {chunk_id!r}")

        return cls(
            heading_path=tuple(heading_path),
            total_tokens=total_tokens,
            raw_text=raw_text,
            markdown_text=markdown_text,
            work=Work(work),
            title=title,
            id=chunk_id,
        )


@dataclass(frozen=True)
class ChunkWithScore:
    """A chunk together with its cosine similarity to the query."""

    chunk: FinalizedChunk
    score: float
