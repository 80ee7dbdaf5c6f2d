"""Retrieval components: similarity scoring and vector storage."""

from .cache import QueryCache
from .similarity import cosine_similarity, euclidean_distance, euclidean_similarity
from .vector_store import InMemoryVectorStore, PersistentVectorStore, VectorStore, create_vector_store

__all__ = [
    "QueryCache",
    "VectorStore",
    "InMemoryVectorStore",
    "PersistentVectorStore",
    "create_vector_store",
    "cosine_similarity",
    "euclidean_distance",
    "euclidean_similarity",
]
