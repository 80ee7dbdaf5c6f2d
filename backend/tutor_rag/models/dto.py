"""Pydantic DTOs exposed via API."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class DocumentIngestRequest(BaseModel):
    document_id: str | None = Field(default=None, description="Stable id; generated when omitted")
    document_name: str
    text: str
    user_id: str | None = None
    chunk_size: int | None = None
    chunk_overlap: int | None = None


class DocumentIngestResponse(BaseModel):
    document_id: str
    success: bool
    chunk_count: int
    error: str | None = None


class DocumentResponse(BaseModel):
    document_id: str
    document_name: str
    chunk_count: int
    user_id: str | None = None
    created_at: datetime


class DeleteResponse(BaseModel):
    status: str = "ok"
    document_id: str


class RetrieveRequest(BaseModel):
    query: str = Field(min_length=1)
    k: int | None = Field(default=None, ge=1, le=50)
    similarity_threshold: float | None = Field(default=None, ge=-1.0, le=1.0)
    document_id: str | None = None
    document_name: str | None = None
    user_id: str | None = None


class SourceResponse(BaseModel):
    document_name: str
    chunk_index: int
    score: float


class RetrieveResponse(BaseModel):
    context: str
    sources: list[SourceResponse]


class RetrievalLogResponse(BaseModel):
    id: str
    query: str
    candidates: int
    returned: int
    top_score: float | None = None
    threshold: float
    duration_ms: float
    created_at: datetime
    error: str | None = None


class VectorStoreDebugResponse(BaseModel):
    stats: dict[str, Any]
    settings: dict[str, Any]
    retrievals: list[RetrievalLogResponse]


__all__ = [
    "DocumentIngestRequest",
    "DocumentIngestResponse",
    "DocumentResponse",
    "DeleteResponse",
    "RetrieveRequest",
    "SourceResponse",
    "RetrieveResponse",
    "RetrievalLogResponse",
    "VectorStoreDebugResponse",
]
