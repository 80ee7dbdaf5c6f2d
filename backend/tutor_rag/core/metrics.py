"""Prometheus metrics instrumentation."""

from __future__ import annotations

from fastapi import Response
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

REGISTRY = CollectorRegistry()

REQUEST_COUNT = Counter(
    "trag_requests_total",
    "Total HTTP requests",
    labelnames=("endpoint", "method", "status"),
    registry=REGISTRY,
)

EMBEDDING_REQUESTS = Counter(
    "trag_embedding_requests_total",
    "Embedding calls per provider tier",
    labelnames=("tier", "outcome"),
    registry=REGISTRY,
)

INGEST_DURATION = Histogram(
    "trag_ingest_duration_seconds",
    "Document ingestion duration",
    labelnames=("status",),
    registry=REGISTRY,
)

RETRIEVAL_LATENCY = Histogram(
    "trag_retrieval_latency_seconds",
    "Latency of context retrieval",
    registry=REGISTRY,
)

QUERY_CACHE = Counter(
    "trag_query_cache_total",
    "Vector store query cache lookups",
    labelnames=("result",),
    registry=REGISTRY,
)

INDEX_SIZE = Gauge(
    "trag_index_chunks",
    "Number of chunks held in the in-memory index",
    registry=REGISTRY,
)


def metrics_response() -> Response:
    """Return Prometheus metrics as an HTTP response."""
    payload = generate_latest(REGISTRY)
    return Response(content=payload, media_type=CONTENT_TYPE_LATEST)


__all__ = [
    "REGISTRY",
    "REQUEST_COUNT",
    "EMBEDDING_REQUESTS",
    "INGEST_DURATION",
    "RETRIEVAL_LATENCY",
    "QUERY_CACHE",
    "INDEX_SIZE",
    "metrics_response",
]
