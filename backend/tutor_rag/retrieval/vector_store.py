"""Vector store abstraction with memory-only and persistent-backed implementations."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Iterable, Sequence

import httpx

from tutor_rag.core.config import Settings
from tutor_rag.core.errors import ConfigurationError, DimensionMismatchError, StoreError
from tutor_rag.core.metrics import INDEX_SIZE, QUERY_CACHE
from tutor_rag.db.repository import ChunkRepository, create_repository
from tutor_rag.models.entities import (
    DocumentInfo,
    SearchFilter,
    SearchResult,
    StoreStats,
    VectorRecord,
)
from tutor_rag.retrieval.cache import QueryCache
from tutor_rag.retrieval.similarity import score

logger = logging.getLogger(__name__)

SIMILARITY_METRICS = ("cosine", "euclidean")


class VectorStore(ABC):
    """Capability shared by every storage mode."""

    storage_mode: str = "abstract"

    @abstractmethod
    async def add(self, records: Sequence[VectorRecord]) -> None:
        """Upsert records by id."""

    @abstractmethod
    async def search(
        self,
        query: Sequence[float],
        k: int = 5,
        search_filter: SearchFilter | None = None,
    ) -> list[SearchResult]:
        """Top ``k`` records by descending score; ties keep insertion order."""

    @abstractmethod
    async def delete_by_document(self, document_id: str) -> None: ...

    @abstractmethod
    async def replace_document(self, document_id: str, records: Sequence[VectorRecord]) -> None:
        """Swap every record of ``document_id`` for ``records``.

        Raises ``DimensionMismatchError`` before touching the store when the
        new vectors cannot live next to the other documents' vectors.
        """

    @abstractmethod
    def get_documents(self) -> list[DocumentInfo]: ...

    @abstractmethod
    def get_by_document(self, document_id: str) -> list[VectorRecord]: ...

    @abstractmethod
    def get_stats(self) -> StoreStats: ...

    @abstractmethod
    async def clear(self) -> None: ...

    async def aclose(self) -> None:
        return None


class InMemoryVectorStore(VectorStore):
    """Exhaustive-scan index over records held in insertion order."""

    storage_mode = "memory"

    def __init__(self, similarity_metric: str = "cosine", query_cache: QueryCache | None = None) -> None:
        if similarity_metric not in SIMILARITY_METRICS:
            raise ConfigurationError(
                f"Unknown similarity metric: {similarity_metric}",
                {"allowed": list(SIMILARITY_METRICS)},
            )
        self.similarity_metric = similarity_metric
        self._query_cache = query_cache if query_cache is not None else QueryCache()
        self._records: dict[str, VectorRecord] = {}
        self._dim: int | None = None

    @property
    def size(self) -> int:
        return len(self._records)

    @property
    def dim(self) -> int | None:
        return self._dim

    async def add(self, records: Sequence[VectorRecord]) -> None:
        self._upsert(records)

    async def search(
        self,
        query: Sequence[float],
        k: int = 5,
        search_filter: SearchFilter | None = None,
    ) -> list[SearchResult]:
        return self._search(query, k, search_filter)

    async def delete_by_document(self, document_id: str) -> None:
        self._remove_document(document_id)

    async def replace_document(self, document_id: str, records: Sequence[VectorRecord]) -> None:
        self._swap_document(document_id, records)

    def get_documents(self) -> list[DocumentInfo]:
        documents: dict[str, DocumentInfo] = {}
        for record in self._records.values():
            meta = record.metadata
            info = documents.get(meta.document_id)
            if info is None:
                documents[meta.document_id] = DocumentInfo(
                    document_id=meta.document_id,
                    document_name=meta.document_name,
                    chunk_count=1,
                    created_at=meta.created_at,
                    user_id=meta.user_id,
                )
                continue
            info.chunk_count += 1
            if meta.created_at < info.created_at:
                info.created_at = meta.created_at
        return list(documents.values())

    def get_by_document(self, document_id: str) -> list[VectorRecord]:
        records = [record for record in self._records.values() if record.metadata.document_id == document_id]
        return sorted(records, key=lambda record: record.metadata.chunk_index)

    def get_stats(self) -> StoreStats:
        return StoreStats(
            total_chunks=len(self._records),
            total_documents=len({record.metadata.document_id for record in self._records.values()}),
            similarity_metric=self.similarity_metric,
            cache_size=len(self._query_cache),
            storage_mode=self.storage_mode,
        )

    async def clear(self) -> None:
        self._replace(())

    # Internal helpers -------------------------------------------------

    def _upsert(self, records: Iterable[VectorRecord]) -> None:
        records = list(records)
        if not records:
            return
        expected = self._dim if self._dim is not None else len(records[0].embedding)
        for record in records:
            if len(record.embedding) != expected:
                raise DimensionMismatchError(expected, len(record.embedding))
        for record in records:
            self._records[record.id] = record
        self._dim = expected
        self._changed()

    def _remove_document(self, document_id: str) -> int:
        doomed = [rid for rid, record in self._records.items() if record.metadata.document_id == document_id]
        for rid in doomed:
            del self._records[rid]
        if doomed:
            self._changed()
        return len(doomed)

    def _swap_document(self, document_id: str, records: Iterable[VectorRecord]) -> None:
        """Replace a document's records in one step, or leave the index as it was.

        Surviving chunk ids keep their position; new ids are appended.
        """
        records = list(records)
        fresh = {record.id: record for record in records}
        others = [record for record in self._records.values() if record.metadata.document_id != document_id]
        if others:
            expected: int | None = len(others[0].embedding)
        else:
            expected = len(records[0].embedding) if records else None
        for record in records:
            if len(record.embedding) != expected:
                raise DimensionMismatchError(expected, len(record.embedding))

        replacement: dict[str, VectorRecord] = {}
        for rid, record in self._records.items():
            if rid in fresh:
                replacement[rid] = fresh.pop(rid)
            elif record.metadata.document_id != document_id:
                replacement[rid] = record
        replacement.update(fresh)
        self._records = replacement
        self._dim = expected
        self._changed()

    def _replace(self, records: Iterable[VectorRecord]) -> bool:
        """Swap the whole index; returns whether anything changed."""
        replacement: dict[str, VectorRecord] = {}
        dim: int | None = None
        for record in records:
            if dim is None:
                dim = len(record.embedding)
            elif len(record.embedding) != dim:
                logger.warning(
                    "Skipping record %s with %s dimensions (index uses %s)",
                    record.id,
                    len(record.embedding),
                    dim,
                )
                continue
            replacement[record.id] = record
        if list(replacement.items()) == list(self._records.items()):
            return False
        self._records = replacement
        self._changed()
        return True

    def _changed(self) -> None:
        if not self._records:
            self._dim = None
        self._query_cache.invalidate()
        INDEX_SIZE.set(len(self._records))

    def _search(
        self,
        query: Sequence[float],
        k: int,
        search_filter: SearchFilter | None,
    ) -> list[SearchResult]:
        if k <= 0:
            return []
        key = self._query_cache.fingerprint(query, k, search_filter)
        cached = self._query_cache.get(key)
        if cached is not None:
            QUERY_CACHE.labels(result="hit").inc()
            return cached
        QUERY_CACHE.labels(result="miss").inc()

        if self._dim is not None and len(query) != self._dim:
            raise DimensionMismatchError(self._dim, len(query))
        results = [
            SearchResult(record=record, score=score(self.similarity_metric, query, record.embedding))
            for record in self._records.values()
            if search_filter is None or search_filter.matches(record.metadata)
        ]
        # list.sort is stable, so equal scores keep insertion order
        results.sort(key=lambda result: result.score, reverse=True)
        top = results[:k]
        self._query_cache.put(key, top)
        return list(top)


class PersistentVectorStore(InMemoryVectorStore):
    """In-memory index used as a warm cache of a durable chunk repository.

    Writes go to memory first, then to the repository; repository failures
    are logged and the in-memory copy stays authoritative. Records whose
    durable write failed, and documents whose durable delete failed, are
    remembered and retried on the next sync so a resync never resurrects a
    deleted document or drops a freshly ingested one.

    ``get_documents`` is an eventually consistent read: it answers from the
    in-memory index immediately and schedules a background resync that later
    reads observe.
    """

    storage_mode = "persistent"

    def __init__(
        self,
        repository: ChunkRepository,
        similarity_metric: str = "cosine",
        query_cache: QueryCache | None = None,
        resync_on_search: bool = True,
    ) -> None:
        super().__init__(similarity_metric=similarity_metric, query_cache=query_cache)
        self.repository = repository
        self.resync_on_search = resync_on_search
        self._unsynced: dict[str, VectorRecord] = {}
        self._tombstones: set[str] = set()
        self._refresh_task: asyncio.Task[bool] | None = None

    async def add(self, records: Sequence[VectorRecord]) -> None:
        records = list(records)
        self._upsert(records)
        await self._write_through(records)

    async def search(
        self,
        query: Sequence[float],
        k: int = 5,
        search_filter: SearchFilter | None = None,
    ) -> list[SearchResult]:
        if self.resync_on_search:
            await self.sync()
        return self._search(query, k, search_filter)

    async def delete_by_document(self, document_id: str) -> None:
        self._remove_document(document_id)
        self._forget_unsynced(document_id)
        self._tombstones.add(document_id)
        await self._retry_delete(document_id)

    async def replace_document(self, document_id: str, records: Sequence[VectorRecord]) -> None:
        """Swap the document in memory, then delete it durably before writing the new rows.

        The durable delete runs even when this process never saw the old rows,
        so chunks written by another instance cannot come back on resync.
        """
        records = list(records)
        self._swap_document(document_id, records)
        self._forget_unsynced(document_id)
        self._tombstones.add(document_id)
        if not records:
            await self._retry_delete(document_id)
            return
        await self._write_through(records)

    def get_documents(self) -> list[DocumentInfo]:
        self._schedule_refresh()
        return super().get_documents()

    async def clear(self) -> None:
        self._replace(())
        self._unsynced.clear()
        self._tombstones.clear()
        try:
            await self.repository.clear()
        except StoreError as exc:
            logger.error("Clearing durable store failed: %s", exc)

    async def sync(self) -> bool:
        """Reload the in-memory index from the repository; ``False`` when it could not be read."""
        await self._flush_pending()
        try:
            stored = await self.repository.fetch_all()
        except StoreError as exc:
            logger.warning("Resync from durable store failed; serving in-memory index: %s", exc)
            return False
        records = [
            record
            for record in stored
            if record.metadata.document_id not in self._tombstones and record.id not in self._unsynced
        ]
        records.extend(self._unsynced.values())
        if self._replace(records):
            logger.debug("Resynced %s records from durable store", len(records))
        return True

    async def aclose(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
        await self.repository.aclose()

    async def _write_through(self, records: list[VectorRecord]) -> None:
        for document_id in {record.metadata.document_id for record in records} & self._tombstones:
            await self._retry_delete(document_id)
        # rows of a document whose durable delete is still pending wait for it
        self._unsynced.update((record.id, record) for record in records)
        pending = [record for record in records if record.metadata.document_id not in self._tombstones]
        if not pending:
            return
        try:
            await self.repository.upsert(pending)
        except StoreError as exc:
            logger.error(
                "Persisting %s records failed; keeping in-memory copy: %s",
                len(pending),
                exc,
                extra={"ctx_repository": self.repository.name},
            )
            return
        for record in pending:
            self._unsynced.pop(record.id, None)

    async def _flush_pending(self) -> None:
        for document_id in list(self._tombstones):
            await self._retry_delete(document_id)
        pending = [record for record in self._unsynced.values() if record.metadata.document_id not in self._tombstones]
        if not pending:
            return
        try:
            await self.repository.upsert(pending)
        except StoreError as exc:
            logger.warning("Retrying %s unsynced records failed: %s", len(pending), exc)
            return
        for record in pending:
            self._unsynced.pop(record.id, None)

    def _forget_unsynced(self, document_id: str) -> None:
        for rid in [rid for rid, record in self._unsynced.items() if record.metadata.document_id == document_id]:
            del self._unsynced[rid]

    async def _retry_delete(self, document_id: str) -> None:
        try:
            await self.repository.delete_document(document_id)
        except StoreError as exc:
            logger.error("Deleting document %s from durable store failed: %s", document_id, exc)
            return
        self._tombstones.discard(document_id)

    def _schedule_refresh(self) -> None:
        if self._refresh_task is not None and not self._refresh_task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._refresh_task = loop.create_task(self.sync())
        self._refresh_task.add_done_callback(_log_refresh_failure)


def _log_refresh_failure(task: asyncio.Task[bool]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("Background vector store refresh failed: %s", exc)


def create_vector_store(
    settings: Settings,
    repository: ChunkRepository | None = None,
    client: httpx.AsyncClient | None = None,
) -> VectorStore:
    """Pick the storage mode once, from the presence of durable store configuration."""
    query_cache = QueryCache(ttl=settings.query_cache_ttl, max_entries=settings.query_cache_size)
    if repository is None:
        repository = create_repository(settings, client=client)
    if repository is None:
        logger.info("No durable store configured; using memory-only vector store")
        return InMemoryVectorStore(similarity_metric=settings.similarity_metric, query_cache=query_cache)
    logger.info("Using persistent vector store backed by %s repository", repository.name)
    return PersistentVectorStore(
        repository,
        similarity_metric=settings.similarity_metric,
        query_cache=query_cache,
        resync_on_search=settings.resync_on_search,
    )


__all__ = [
    "VectorStore",
    "InMemoryVectorStore",
    "PersistentVectorStore",
    "create_vector_store",
]
