"""Internal dataclasses representing indexed entities and retrieval outputs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from tutor_rag.utils.time import parse_timestamp, utc_now


@dataclass(slots=True, frozen=True)
class RecordMetadata:
    document_id: str
    document_name: str
    chunk_index: int
    created_at: datetime = field(default_factory=utc_now)
    user_id: str | None = None

    def to_blob(self) -> dict[str, Any]:
        """Metadata blob stored alongside a persisted chunk row."""
        blob: dict[str, Any] = {
            "documentName": self.document_name,
            "createdAt": self.created_at.isoformat(),
        }
        if self.user_id is not None:
            blob["userId"] = self.user_id
        return blob


@dataclass(slots=True, frozen=True)
class VectorRecord:
    id: str
    content: str
    embedding: list[float]
    metadata: RecordMetadata

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "document_id": self.metadata.document_id,
            "chunk_index": self.metadata.chunk_index,
            "content": self.content,
            "embedding": list(self.embedding),
            "metadata": self.metadata.to_blob(),
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "VectorRecord":
        blob = row.get("metadata") or {}
        return cls(
            id=row["id"],
            content=row["content"],
            embedding=[float(value) for value in row["embedding"]],
            metadata=RecordMetadata(
                document_id=row["document_id"],
                document_name=blob.get("documentName", ""),
                chunk_index=int(row["chunk_index"]),
                created_at=parse_timestamp(blob.get("createdAt")),
                user_id=blob.get("userId"),
            ),
        )


@dataclass(slots=True, frozen=True)
class SearchResult:
    record: VectorRecord
    score: float


@dataclass(slots=True, frozen=True)
class SearchFilter:
    """Restricts search candidates; unset fields match everything."""

    document_id: str | None = None
    document_name: str | None = None
    user_id: str | None = None

    def matches(self, metadata: RecordMetadata) -> bool:
        if self.document_id is not None and metadata.document_id != self.document_id:
            return False
        if self.document_name is not None and metadata.document_name != self.document_name:
            return False
        if self.user_id is not None and metadata.user_id != self.user_id:
            return False
        return True

    def fingerprint(self) -> tuple[str | None, str | None, str | None]:
        return (self.document_id, self.document_name, self.user_id)


@dataclass(slots=True)
class DocumentInfo:
    document_id: str
    document_name: str
    chunk_count: int
    created_at: datetime
    user_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "document_id": self.document_id,
            "document_name": self.document_name,
            "chunk_count": self.chunk_count,
            "user_id": self.user_id,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(slots=True)
class StoreStats:
    total_chunks: int
    total_documents: int
    similarity_metric: str
    cache_size: int
    storage_mode: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_chunks": self.total_chunks,
            "total_documents": self.total_documents,
            "similarity_metric": self.similarity_metric,
            "cache_size": self.cache_size,
            "storage_mode": self.storage_mode,
        }


@dataclass(slots=True, frozen=True)
class Source:
    document_name: str
    chunk_index: int
    score: float


@dataclass(slots=True)
class RetrievalContext:
    context: str = ""
    sources: list[Source] = field(default_factory=list)


@dataclass(slots=True)
class RetrievalLogEntry:
    """One retrieval, kept in a bounded in-memory log for the debug endpoint."""

    id: str
    query: str
    candidates: int
    returned: int
    top_score: float | None
    threshold: float
    duration_ms: float
    created_at: datetime
    error: str | None = None


__all__ = [
    "RecordMetadata",
    "VectorRecord",
    "SearchResult",
    "SearchFilter",
    "DocumentInfo",
    "StoreStats",
    "Source",
    "RetrievalContext",
    "RetrievalLogEntry",
]
