"""Shared FastAPI dependencies."""

from __future__ import annotations

from functools import lru_cache

from tutor_rag.core.config import Settings, get_settings
from tutor_rag.ingest.embeddings import CascadingEmbedder, build_embedder
from tutor_rag.retrieval import VectorStore, create_vector_store
from tutor_rag.retrieval.rag import RAGPipeline

_EMBEDDER: CascadingEmbedder | None = None
_VECTOR_STORE: VectorStore | None = None
_PIPELINE: RAGPipeline | None = None


@lru_cache(maxsize=1)
def get_app_settings() -> Settings:
    return get_settings()


def get_embedder() -> CascadingEmbedder:
    global _EMBEDDER
    if _EMBEDDER is None:
        _EMBEDDER = build_embedder(get_app_settings())
    return _EMBEDDER


def get_vector_store() -> VectorStore:
    global _VECTOR_STORE
    if _VECTOR_STORE is None:
        _VECTOR_STORE = create_vector_store(get_app_settings())
    return _VECTOR_STORE


def get_pipeline() -> RAGPipeline:
    global _PIPELINE
    if _PIPELINE is None:
        _PIPELINE = RAGPipeline(
            store=get_vector_store(),
            embedder=get_embedder(),
            settings=get_app_settings(),
        )
    return _PIPELINE


async def shutdown_dependencies() -> None:
    """Close network clients and the durable store, then forget the singletons."""
    if _PIPELINE is not None:
        await _PIPELINE.aclose()
    else:
        if _EMBEDDER is not None:
            await _EMBEDDER.aclose()
        if _VECTOR_STORE is not None:
            await _VECTOR_STORE.aclose()
    reset_dependencies()


def reset_dependencies() -> None:
    global _EMBEDDER, _VECTOR_STORE, _PIPELINE
    _EMBEDDER = None
    _VECTOR_STORE = None
    _PIPELINE = None
    get_app_settings.cache_clear()
    get_settings.cache_clear()


__all__ = [
    "get_app_settings",
    "get_embedder",
    "get_vector_store",
    "get_pipeline",
    "shutdown_dependencies",
    "reset_dependencies",
]
