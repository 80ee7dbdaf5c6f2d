"""Retrieval API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from tutor_rag.api.dependencies import get_pipeline
from tutor_rag.core.metrics import REQUEST_COUNT
from tutor_rag.models.dto import RetrieveRequest, RetrieveResponse, SourceResponse
from tutor_rag.models.entities import SearchFilter
from tutor_rag.retrieval.rag import RAGPipeline

router = APIRouter()


@router.post("/retrieve", response_model=RetrieveResponse, summary="Retrieve cited context for a query")
async def retrieve(
    request: RetrieveRequest,
    pipeline: RAGPipeline = Depends(get_pipeline),
) -> RetrieveResponse:
    config = pipeline.default_config.with_overrides(
        retrieval_k=request.k,
        similarity_threshold=request.similarity_threshold,
    )
    search_filter = None
    if request.document_id or request.document_name or request.user_id:
        search_filter = SearchFilter(
            document_id=request.document_id,
            document_name=request.document_name,
            user_id=request.user_id,
        )
    result = await pipeline.retrieve_context(request.query, config=config, search_filter=search_filter)
    REQUEST_COUNT.labels(endpoint="retrieve", method="POST", status="200").inc()
    return RetrieveResponse(
        context=result.context,
        sources=[
            SourceResponse(
                document_name=source.document_name,
                chunk_index=source.chunk_index,
                score=source.score,
            )
            for source in result.sources
        ],
    )


__all__ = ["router"]
