"""FastAPI application setup for the tutor RAG backend."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tutor_rag.api.dependencies import (
    get_app_settings,
    get_embedder,
    get_pipeline,
    get_vector_store,
    shutdown_dependencies,
)
from tutor_rag.api.routes_admin import router as admin_router
from tutor_rag.api.routes_documents import router as documents_router
from tutor_rag.api.routes_retrieve import router as retrieve_router
from tutor_rag.core.logging import configure_logging
from tutor_rag.retrieval import PersistentVectorStore

configure_logging()

app = FastAPI(
    title="Tutor RAG",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:3000",
        "http://localhost:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(documents_router, prefix="/documents", tags=["documents"])
app.include_router(retrieve_router, prefix="", tags=["retrieval"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_embedder()
    store = get_vector_store()
    get_pipeline()
    if isinstance(store, PersistentVectorStore):
        await store.sync()


@app.on_event("shutdown")
async def shutdown() -> None:
    await shutdown_dependencies()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
