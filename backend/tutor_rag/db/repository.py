"""Durable chunk repositories backing the persistent vector store."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from abc import ABC, abstractmethod
from array import array
from typing import Any, Sequence

import httpx
import orjson

from tutor_rag.core.config import Settings
from tutor_rag.core.errors import ConfigurationError, StoreError
from tutor_rag.db.sqlite import SQLiteDatabase
from tutor_rag.models.entities import VectorRecord
from tutor_rag.utils.time import now_ms


class ChunkRepository(ABC):
    """Row-level access to the ``document_chunks`` table."""

    name: str = "repository"

    @abstractmethod
    async def upsert(self, records: Sequence[VectorRecord]) -> None: ...

    @abstractmethod
    async def delete_document(self, document_id: str) -> None: ...

    @abstractmethod
    async def fetch_all(self) -> list[VectorRecord]:
        """Every stored record, oldest first."""
        ...

    @abstractmethod
    async def clear(self) -> None: ...

    async def aclose(self) -> None:
        return None


class SQLiteChunkRepository(ChunkRepository):
    """Chunks stored in a local SQLite file; calls run in worker threads."""

    name = "sqlite"

    def __init__(self, database: SQLiteDatabase) -> None:
        self.db = database
        self._lock = threading.Lock()
        with self._lock:
            self.db.ensure_schema()

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        if records:
            await asyncio.to_thread(self._upsert, list(records))

    async def delete_document(self, document_id: str) -> None:
        await asyncio.to_thread(self._run, "DELETE FROM document_chunks WHERE document_id = ?", [document_id])

    async def fetch_all(self) -> list[VectorRecord]:
        return await asyncio.to_thread(self._fetch_all)

    async def clear(self) -> None:
        await asyncio.to_thread(self._run, "DELETE FROM document_chunks", [])

    async def aclose(self) -> None:
        with self._lock:
            self.db.close()

    def _upsert(self, records: list[VectorRecord]) -> None:
        now = now_ms()
        rows = [
            (
                record.id,
                record.metadata.document_id,
                record.metadata.chunk_index,
                record.content,
                array("d", record.embedding).tobytes(),
                len(record.embedding),
                orjson.dumps(record.metadata.to_blob()).decode("utf-8"),
                now,
            )
            for record in records
        ]
        with self._lock:
            try:
                with self.db.transaction() as cursor:
                    cursor.executemany(
                        """
                        INSERT INTO document_chunks (
                          id, document_id, chunk_index, content, embedding, dim, metadata_json, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        ON CONFLICT(id) DO UPDATE SET
                          document_id = excluded.document_id,
                          chunk_index = excluded.chunk_index,
                          content = excluded.content,
                          embedding = excluded.embedding,
                          dim = excluded.dim,
                          metadata_json = excluded.metadata_json
                        """,
                        rows,
                    )
            except sqlite3.Error as exc:
                raise StoreError(f"SQLite upsert failed: {exc}", {"records": len(rows)}) from exc

    def _run(self, sql: str, params: list[Any]) -> None:
        with self._lock:
            try:
                with self.db.transaction() as cursor:
                    cursor.execute(sql, params)
            except sqlite3.Error as exc:
                raise StoreError(f"SQLite write failed: {exc}") from exc

    def _fetch_all(self) -> list[VectorRecord]:
        with self._lock:
            try:
                rows = self.db.query(
                    """
                    SELECT id, document_id, chunk_index, content, embedding, metadata_json
                    FROM document_chunks
                    ORDER BY rowid ASC
                    """
                )
            except sqlite3.Error as exc:
                raise StoreError(f"SQLite read failed: {exc}") from exc
        records: list[VectorRecord] = []
        for row in rows:
            floats = array("d")
            floats.frombytes(row["embedding"])
            records.append(
                VectorRecord.from_row(
                    {
                        "id": row["id"],
                        "document_id": row["document_id"],
                        "chunk_index": row["chunk_index"],
                        "content": row["content"],
                        "embedding": list(floats),
                        "metadata": orjson.loads(row["metadata_json"]) if row["metadata_json"] else {},
                    }
                )
            )
        return records


class RestChunkRepository(ChunkRepository):
    """Chunks stored in a PostgREST table (the Supabase REST API)."""

    name = "rest"

    def __init__(
        self,
        url: str,
        key: str,
        table: str = "document_chunks",
        timeout: float = 15.0,
        client: httpx.AsyncClient | None = None,
        page_size: int = 1000,
        write_batch_size: int = 500,
    ) -> None:
        self.endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self.timeout = timeout
        self.page_size = page_size
        self.write_batch_size = write_batch_size
        self._headers = {"apikey": key, "Authorization": f"Bearer {key}"}
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def upsert(self, records: Sequence[VectorRecord]) -> None:
        rows = [record.to_row() for record in records]
        for start in range(0, len(rows), self.write_batch_size):
            await self._request(
                "POST",
                json=rows[start : start + self.write_batch_size],
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            )

    async def delete_document(self, document_id: str) -> None:
        await self._request("DELETE", params={"document_id": f"eq.{document_id}"})

    async def fetch_all(self) -> list[VectorRecord]:
        records: list[VectorRecord] = []
        offset = 0
        while True:
            response = await self._request(
                "GET",
                params={
                    "select": "id,document_id,chunk_index,content,embedding,metadata",
                    "order": "created_at.asc,chunk_index.asc",
                    "limit": str(self.page_size),
                    "offset": str(offset),
                },
            )
            try:
                page = response.json()
                records.extend(VectorRecord.from_row(_decode_row(row)) for row in page)
            except (ValueError, KeyError, TypeError) as exc:
                raise StoreError(f"Malformed chunk rows from {self.endpoint}: {exc}") from exc
            if len(page) < self.page_size:
                return records
            offset += self.page_size

    async def clear(self) -> None:
        await self._request("DELETE", params={"id": "not.is.null"})

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers, **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(
                method,
                self.endpoint,
                headers=headers,
                timeout=self.timeout,
                **kwargs,
            )
        except httpx.HTTPError as exc:
            raise StoreError(f"{method} {self.endpoint} failed: {exc}") from exc
        if not response.is_success:
            raise StoreError(
                f"{method} {self.endpoint} returned {response.status_code}",
                {"status": response.status_code, "body": response.text[:500]},
            )
        return response


def _decode_row(row: dict[str, Any]) -> dict[str, Any]:
    # pgvector columns come back as "[0.1,0.2,...]" strings
    embedding = row.get("embedding")
    if isinstance(embedding, str):
        row = {**row, "embedding": orjson.loads(embedding)}
    metadata = row.get("metadata")
    if isinstance(metadata, str):
        row = {**row, "metadata": orjson.loads(metadata)}
    return row


def create_repository(settings: Settings, client: httpx.AsyncClient | None = None) -> ChunkRepository | None:
    """Repository for the configured durable store, or ``None`` for memory-only mode."""
    if not settings.persistent_store_configured:
        return None
    url = settings.store_url or ""
    if url.startswith("sqlite:"):
        return SQLiteChunkRepository(SQLiteDatabase.from_url(url))
    if url.startswith(("http://", "https://")):
        return RestChunkRepository(
            url=url,
            key=settings.store_key or "",
            table=settings.store_table,
            timeout=settings.store_timeout,
            client=client,
        )
    raise ConfigurationError(f"Unsupported store URL: {url}", {"store_url": url})


__all__ = [
    "ChunkRepository",
    "SQLiteChunkRepository",
    "RestChunkRepository",
    "create_repository",
]
