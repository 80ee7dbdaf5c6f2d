"""Short-lived cache of vector store query results."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Hashable, Sequence

from tutor_rag.models.entities import SearchFilter, SearchResult
from tutor_rag.utils.hashing import vector_digest


@dataclass(slots=True)
class QueryCacheEntry:
    key: Hashable
    value: tuple[SearchResult, ...]
    timestamp: float


class QueryCache:
    """TTL-bounded map from query fingerprints to ranked results.

    Owners must call ``invalidate`` whenever the indexed records change.
    """

    def __init__(
        self,
        ttl: float = 300.0,
        max_entries: int = 256,
        prefix_dims: int = 16,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self.prefix_dims = prefix_dims
        self._clock = clock
        self._entries: dict[Hashable, QueryCacheEntry] = {}

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._entries)

    def fingerprint(self, query: Sequence[float], k: int, search_filter: SearchFilter | None) -> Hashable:
        prefix = tuple(float(value) for value in query[: self.prefix_dims])
        filter_key = search_filter.fingerprint() if search_filter is not None else None
        return (prefix, len(query), vector_digest(query), k, filter_key)

    def get(self, key: Hashable) -> list[SearchResult] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._expired(entry):
            del self._entries[key]
            return None
        return list(entry.value)

    def put(self, key: Hashable, results: Sequence[SearchResult]) -> None:
        if self.ttl <= 0 or self.max_entries <= 0:
            return
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_entries:
            del self._entries[next(iter(self._entries))]
        self._entries[key] = QueryCacheEntry(key=key, value=tuple(results), timestamp=self._clock())

    def invalidate(self) -> None:
        self._entries.clear()

    def _expired(self, entry: QueryCacheEntry) -> bool:
        return self._clock() - entry.timestamp >= self.ttl

    def _purge_expired(self) -> None:
        for key in [key for key, entry in self._entries.items() if self._expired(entry)]:
            del self._entries[key]


__all__ = ["QueryCache"]
