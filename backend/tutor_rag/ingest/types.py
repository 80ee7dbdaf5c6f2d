"""Common ingestion data structures."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class Chunk:
    """Passage of a document produced by the chunker; ordered by ``index``."""

    id: str
    content: str
    document_id: str
    document_name: str
    index: int
    total_chunks: int


@dataclass(slots=True)
class IngestResult:
    """Outcome of ingesting a single document."""

    success: bool
    chunk_count: int
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"success": self.success, "chunk_count": self.chunk_count}
        if self.error is not None:
            payload["error"] = self.error
        return payload


__all__ = ["Chunk", "IngestResult"]
