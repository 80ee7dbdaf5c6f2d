"""Document ingest and management routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response

from tutor_rag.api.dependencies import get_pipeline
from tutor_rag.core.errors import ConfigurationError
from tutor_rag.core.metrics import REQUEST_COUNT
from tutor_rag.models.dto import (
    DeleteResponse,
    DocumentIngestRequest,
    DocumentIngestResponse,
    DocumentResponse,
)
from tutor_rag.retrieval.rag import EMPTY_DOCUMENT_ERROR, RAGPipeline
from tutor_rag.utils.ids import new_id

router = APIRouter()


@router.post("", response_model=DocumentIngestResponse, summary="Chunk, embed and index a document")
async def ingest_document(
    request: DocumentIngestRequest,
    response: Response,
    pipeline: RAGPipeline = Depends(get_pipeline),
) -> DocumentIngestResponse:
    document_id = request.document_id or new_id("doc")
    config = pipeline.default_config.with_overrides(
        chunk_size=request.chunk_size,
        chunk_overlap=request.chunk_overlap,
    )
    try:
        result = await pipeline.process_document(
            document_id,
            request.document_name,
            request.text,
            config=config,
            user_id=request.user_id,
        )
    except ConfigurationError as exc:
        REQUEST_COUNT.labels(endpoint="documents", method="POST", status="422").inc()
        raise HTTPException(status_code=422, detail=exc.message) from exc
    if not result.success and result.error != EMPTY_DOCUMENT_ERROR:
        # embedding tiers failed or returned vectors the index cannot hold
        response.status_code = 502
    REQUEST_COUNT.labels(endpoint="documents", method="POST", status=str(response.status_code or 200)).inc()
    return DocumentIngestResponse(document_id=document_id, **result.to_dict())


@router.get("", response_model=list[DocumentResponse], summary="List indexed documents")
async def list_documents(pipeline: RAGPipeline = Depends(get_pipeline)) -> list[DocumentResponse]:
    return [DocumentResponse(**document.to_dict()) for document in pipeline.get_documents()]


@router.delete("/{document_id}", response_model=DeleteResponse, summary="Remove a document's chunks")
async def delete_document(document_id: str, pipeline: RAGPipeline = Depends(get_pipeline)) -> DeleteResponse:
    await pipeline.delete_document(document_id)
    REQUEST_COUNT.labels(endpoint="documents", method="DELETE", status="200").inc()
    return DeleteResponse(document_id=document_id)


__all__ = ["router"]
