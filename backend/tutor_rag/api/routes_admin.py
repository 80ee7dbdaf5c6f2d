"""Administrative routes for the tutor RAG backend."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from tutor_rag.api.dependencies import get_app_settings, get_pipeline
from tutor_rag.core.config import Settings
from tutor_rag.core.metrics import metrics_response
from tutor_rag.models.dto import RetrievalLogResponse, VectorStoreDebugResponse
from tutor_rag.models.entities import RetrievalLogEntry
from tutor_rag.retrieval.rag import RAGPipeline

router = APIRouter()


@router.get("/debug/vector-store", response_model=VectorStoreDebugResponse, summary="Index stats and recent retrievals")
async def vector_store_debug(
    pipeline: RAGPipeline = Depends(get_pipeline),
    settings: Settings = Depends(get_app_settings),
) -> VectorStoreDebugResponse:
    return VectorStoreDebugResponse(
        stats=pipeline.get_stats().to_dict(),
        settings={
            "retrieval_k": settings.retrieval_k,
            "similarity_threshold": settings.similarity_threshold,
            "chunk_size": settings.chunk_size,
            "chunk_overlap": settings.chunk_overlap,
            "persistent_store": settings.persistent_store_configured,
        },
        retrievals=[_entry_to_response(entry) for entry in pipeline.retrieval_logs()],
    )


@router.delete("/debug/vector-store", summary="Clear the retrieval log")
async def clear_retrieval_log(pipeline: RAGPipeline = Depends(get_pipeline)) -> dict[str, str]:
    pipeline.clear_retrieval_logs()
    return {"status": "ok"}


@router.get("/metrics", summary="Prometheus metrics")
async def get_metrics():
    return metrics_response()


def _entry_to_response(entry: RetrievalLogEntry) -> RetrievalLogResponse:
    return RetrievalLogResponse(
        id=entry.id,
        query=entry.query,
        candidates=entry.candidates,
        returned=entry.returned,
        top_score=entry.top_score,
        threshold=entry.threshold,
        duration_ms=entry.duration_ms,
        created_at=entry.created_at,
        error=entry.error,
    )


__all__ = ["router"]
