"""Retrieval-augmented generation orchestration."""

from __future__ import annotations

import time
from collections import deque
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict

from tutor_rag.core.config import Settings
from tutor_rag.core.errors import DimensionMismatchError, EmbeddingError
from tutor_rag.core.logging import get_logger
from tutor_rag.core.metrics import INGEST_DURATION, RETRIEVAL_LATENCY
from tutor_rag.ingest.chunker import chunk_text
from tutor_rag.ingest.embeddings import CascadingEmbedder
from tutor_rag.ingest.types import IngestResult
from tutor_rag.models.entities import (
    DocumentInfo,
    RecordMetadata,
    RetrievalContext,
    RetrievalLogEntry,
    SearchFilter,
    Source,
    StoreStats,
    VectorRecord,
)
from tutor_rag.retrieval.vector_store import VectorStore
from tutor_rag.utils.ids import new_id
from tutor_rag.utils.time import utc_now

logger = get_logger(__name__)

EMPTY_DOCUMENT_ERROR = "no extractable text found in document"
CONTEXT_DELIMITER = "\n\n---\n\n"


class RAGConfig(BaseModel):
    """Per-call chunking and retrieval knobs; unset values fall back to settings."""

    model_config = ConfigDict(frozen=True)

    chunk_size: int = 1000
    chunk_overlap: int = 100
    retrieval_k: int = 5
    similarity_threshold: float = 0.15

    @classmethod
    def from_settings(cls, settings: Settings) -> "RAGConfig":
        return cls(
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            retrieval_k=settings.retrieval_k,
            similarity_threshold=settings.similarity_threshold,
        )

    def with_overrides(self, **overrides: Any) -> "RAGConfig":
        """Copy with every non-``None`` override applied."""
        return self.model_copy(update={key: value for key, value in overrides.items() if value is not None})


class RAGPipeline:
    """Chunk, embed and index documents; retrieve cited context for queries."""

    def __init__(
        self,
        store: VectorStore,
        embedder: CascadingEmbedder,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.settings = settings or Settings()
        self.default_config = RAGConfig.from_settings(self.settings)
        self._retrieval_log: deque[RetrievalLogEntry] = deque(maxlen=self.settings.retrieval_log_size)

    async def process_document(
        self,
        document_id: str,
        document_name: str,
        text: str,
        config: RAGConfig | None = None,
        user_id: str | None = None,
    ) -> IngestResult:
        """Index a document's text.

        Invalid chunking configuration raises ``ConfigurationError``. Empty
        documents and embedding failures are reported in the result and leave
        the store untouched. Re-ingesting a document id replaces its records.
        """
        options = config or self.default_config
        start_time = time.perf_counter()
        chunks = chunk_text(
            text,
            document_id,
            document_name,
            chunk_size=options.chunk_size,
            chunk_overlap=options.chunk_overlap,
        )
        if not chunks:
            logger.warning("Document %s (%s) has no extractable text", document_id, document_name)
            INGEST_DURATION.labels(status="empty").observe(time.perf_counter() - start_time)
            return IngestResult(success=False, chunk_count=0, error=EMPTY_DOCUMENT_ERROR)

        try:
            embeddings = await self.embedder.embed([chunk.content for chunk in chunks])
        except EmbeddingError as exc:
            logger.error("Embedding document %s failed: %s", document_id, exc)
            INGEST_DURATION.labels(status="error").observe(time.perf_counter() - start_time)
            return IngestResult(success=False, chunk_count=0, error=exc.message)

        created_at = utc_now()
        records = [
            VectorRecord(
                id=chunk.id,
                content=chunk.content,
                embedding=embedding,
                metadata=RecordMetadata(
                    document_id=document_id,
                    document_name=document_name,
                    chunk_index=chunk.index,
                    created_at=created_at,
                    user_id=user_id,
                ),
            )
            for chunk, embedding in zip(chunks, embeddings, strict=True)
        ]

        try:
            await self.store.replace_document(document_id, records)
        except DimensionMismatchError as exc:
            logger.error("Embeddings for document %s do not fit the index: %s", document_id, exc)
            INGEST_DURATION.labels(status="error").observe(time.perf_counter() - start_time)
            return IngestResult(success=False, chunk_count=0, error=exc.message)

        duration = time.perf_counter() - start_time
        INGEST_DURATION.labels(status="success").observe(duration)
        logger.info(
            "Indexed %s chunks for document %s via %s embeddings in %.0fms",
            len(records),
            document_id,
            self.embedder.last_tier,
            duration * 1000,
            extra={"ctx_document_id": document_id, "ctx_chunks": len(records)},
        )
        return IngestResult(success=True, chunk_count=len(records))

    async def retrieve_context(
        self,
        query: str,
        query_embedding: Sequence[float] | None = None,
        config: RAGConfig | None = None,
        search_filter: SearchFilter | None = None,
    ) -> RetrievalContext:
        """Context string and rank-ordered sources for ``query``.

        Never raises: any failure yields an empty context so the caller can
        answer without retrieved material.
        """
        options = config or self.default_config
        start_time = time.perf_counter()
        try:
            if query_embedding is None:
                query_embedding = await self.embedder.embed_one(query)
            results = await self.store.search(query_embedding, k=options.retrieval_k, search_filter=search_filter)
        except Exception as exc:  # noqa: BLE001 - retrieval degrades to no context
            logger.exception("Retrieval failed; continuing without context: %s", exc)
            self._record(query, 0, [], options, start_time, error=str(exc))
            return RetrievalContext()

        relevant = [result for result in results if result.score >= options.similarity_threshold]
        context = CONTEXT_DELIMITER.join(result.record.content for result in relevant)
        sources = [
            Source(
                document_name=result.record.metadata.document_name,
                chunk_index=result.record.metadata.chunk_index,
                score=result.score,
            )
            for result in relevant
        ]
        self._record(query, len(results), sources, options, start_time)
        return RetrievalContext(context=context, sources=sources)

    def get_documents(self) -> list[DocumentInfo]:
        return self.store.get_documents()

    async def delete_document(self, document_id: str) -> None:
        await self.store.delete_by_document(document_id)
        logger.info("Deleted document %s", document_id)

    def get_stats(self) -> StoreStats:
        return self.store.get_stats()

    def retrieval_logs(self) -> list[RetrievalLogEntry]:
        """Most recent retrievals, newest first."""
        return list(reversed(self._retrieval_log))

    def clear_retrieval_logs(self) -> None:
        self._retrieval_log.clear()

    async def aclose(self) -> None:
        await self.embedder.aclose()
        await self.store.aclose()

    def _record(
        self,
        query: str,
        candidates: int,
        sources: list[Source],
        options: RAGConfig,
        start_time: float,
        error: str | None = None,
    ) -> None:
        duration = time.perf_counter() - start_time
        RETRIEVAL_LATENCY.observe(duration)
        self._retrieval_log.append(
            RetrievalLogEntry(
                id=new_id("ret"),
                query=query,
                candidates=candidates,
                returned=len(sources),
                top_score=sources[0].score if sources else None,
                threshold=options.similarity_threshold,
                duration_ms=duration * 1000,
                created_at=utc_now(),
                error=error,
            )
        )


__all__ = ["RAGConfig", "RAGPipeline", "EMPTY_DOCUMENT_ERROR", "CONTEXT_DELIMITER"]
