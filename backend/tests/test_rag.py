"""Tests for the ingest and retrieval orchestration."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from tutor_rag.core.config import Settings
from tutor_rag.core.errors import ConfigurationError
from tutor_rag.ingest.embeddings import CascadingEmbedder, HashedEmbeddingProvider, OpenAIEmbeddingProvider
from tutor_rag.models.entities import SearchFilter
from tutor_rag.retrieval import InMemoryVectorStore, create_vector_store
from tutor_rag.retrieval.rag import CONTEXT_DELIMITER, EMPTY_DOCUMENT_ERROR, RAGConfig, RAGPipeline

BIOLOGY = "Photosynthesis converts light energy into chemical energy in chloroplasts."
HISTORY = "The French Revolution began in 1789 with the storming of the Bastille."


def make_pipeline(settings: Settings | None = None, embedder: CascadingEmbedder | None = None) -> RAGPipeline:
    settings = settings or Settings()
    return RAGPipeline(
        store=InMemoryVectorStore(),
        embedder=embedder or CascadingEmbedder([HashedEmbeddingProvider(dim=settings.embedding_dim)]),
        settings=settings,
    )


def failing_embedder() -> CascadingEmbedder:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"error": {"message": "Rate limit exceeded"}})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CascadingEmbedder([OpenAIEmbeddingProvider(api_key="sk-test", client=client)])


@pytest.mark.asyncio
async def test_ingest_then_retrieve_cites_the_matching_document() -> None:
    pipeline = make_pipeline()
    biology = await pipeline.process_document("bio", "biology.txt", BIOLOGY, user_id="student-1")
    history = await pipeline.process_document("hist", "history.txt", HISTORY, user_id="student-1")
    assert biology.success and biology.chunk_count == 1
    assert history.success and history.chunk_count == 1

    result = await pipeline.retrieve_context("photosynthesis chloroplasts light energy")

    assert result.sources
    assert result.sources[0].document_name == "biology.txt"
    assert result.sources[0].chunk_index == 0
    assert all(source.document_name == "biology.txt" for source in result.sources)
    assert result.context == BIOLOGY
    assert pipeline.get_stats().total_documents == 2


@pytest.mark.asyncio
async def test_empty_document_is_reported_not_raised() -> None:
    pipeline = make_pipeline()
    result = await pipeline.process_document("empty", "scan.pdf", "   \n\n  ")
    assert result.success is False
    assert result.chunk_count == 0
    assert result.error == EMPTY_DOCUMENT_ERROR
    assert pipeline.get_documents() == []


@pytest.mark.asyncio
async def test_oversized_paragraph_is_split_into_bounded_chunks() -> None:
    pipeline = make_pipeline()
    paragraph = " ".join(["Cells divide through mitosis to produce identical daughter cells."] * 30)
    config = RAGConfig(chunk_size=200, chunk_overlap=20)

    result = await pipeline.process_document("cells", "cells.txt", paragraph, config=config)

    assert result.success
    assert result.chunk_count > 1
    records = pipeline.store.get_by_document("cells")
    assert len(records) == result.chunk_count
    assert all(len(record.content) <= 200 for record in records)
    assert [record.metadata.chunk_index for record in records] == list(range(result.chunk_count))


@pytest.mark.asyncio
async def test_threshold_filters_sources() -> None:
    pipeline = make_pipeline()
    await pipeline.process_document("hist", "history.txt", HISTORY)

    permissive = await pipeline.retrieve_context("enzymes", config=RAGConfig(similarity_threshold=0.0))
    strict = await pipeline.retrieve_context("enzymes", config=RAGConfig(similarity_threshold=0.99))

    assert [source.document_name for source in permissive.sources] == ["history.txt"]
    assert permissive.context == HISTORY
    assert strict.sources == []
    assert strict.context == ""


@pytest.mark.asyncio
async def test_context_joins_chunks_in_rank_order() -> None:
    pipeline = make_pipeline()
    await pipeline.process_document("bio", "biology.txt", BIOLOGY)
    await pipeline.process_document("bio2", "biology-2.txt", "Chloroplasts contain chlorophyll.")

    result = await pipeline.retrieve_context("chloroplasts", config=RAGConfig(similarity_threshold=0.0))

    assert len(result.sources) == 2
    assert result.sources[0].score >= result.sources[1].score
    assert result.context.count(CONTEXT_DELIMITER) == 1


@pytest.mark.asyncio
async def test_precomputed_query_embedding_skips_the_embedder() -> None:
    pipeline = make_pipeline(embedder=CascadingEmbedder([HashedEmbeddingProvider(dim=1536)]))
    await pipeline.process_document("bio", "biology.txt", BIOLOGY)
    query_vector = HashedEmbeddingProvider(dim=1536).vector_for(BIOLOGY)
    pipeline.embedder = failing_embedder()

    result = await pipeline.retrieve_context("ignored", query_embedding=query_vector)

    assert result.sources[0].score == pytest.approx(1.0)
    await pipeline.aclose()


@pytest.mark.asyncio
async def test_embedding_failure_writes_nothing() -> None:
    pipeline = make_pipeline(embedder=failing_embedder())
    result = await pipeline.process_document("bio", "biology.txt", BIOLOGY)
    assert result.success is False
    assert "Rate limit exceeded" in (result.error or "")
    assert pipeline.get_stats().total_chunks == 0
    await pipeline.aclose()


@pytest.mark.asyncio
async def test_retrieval_failure_degrades_to_empty_context() -> None:
    pipeline = make_pipeline()
    await pipeline.process_document("bio", "biology.txt", BIOLOGY)
    pipeline.embedder = failing_embedder()

    result = await pipeline.retrieve_context("photosynthesis")

    assert result.context == ""
    assert result.sources == []
    [entry] = pipeline.retrieval_logs()
    assert entry.error is not None
    assert entry.returned == 0
    await pipeline.aclose()


@pytest.mark.asyncio
async def test_invalid_chunking_configuration_raises() -> None:
    pipeline = make_pipeline()
    with pytest.raises(ConfigurationError):
        await pipeline.process_document("bio", "biology.txt", BIOLOGY, config=RAGConfig(chunk_size=0))


@pytest.mark.asyncio
async def test_reingesting_replaces_previous_chunks() -> None:
    pipeline = make_pipeline()
    long_text = "\n\n".join(f"Section {idx} covers a different topic entirely." for idx in range(10))
    first = await pipeline.process_document("notes", "notes.txt", long_text, config=RAGConfig(chunk_size=60))
    assert first.chunk_count > 1

    second = await pipeline.process_document("notes", "notes.txt", "Short replacement text.")

    assert second.chunk_count == 1
    records = pipeline.store.get_by_document("notes")
    assert [record.content for record in records] == ["Short replacement text."]


@pytest.mark.asyncio
async def test_dimension_change_is_reported_on_ingest() -> None:
    pipeline = make_pipeline()
    await pipeline.process_document("bio", "biology.txt", BIOLOGY)
    pipeline.embedder = CascadingEmbedder([HashedEmbeddingProvider(dim=8)])

    result = await pipeline.process_document("hist", "history.txt", HISTORY)

    assert result.success is False
    assert "dimension" in (result.error or "")
    assert [info.document_id for info in pipeline.get_documents()] == ["bio"]


@pytest.mark.asyncio
async def test_failed_reingest_keeps_previous_chunks() -> None:
    pipeline = make_pipeline(embedder=CascadingEmbedder([HashedEmbeddingProvider(dim=16)]))
    await pipeline.process_document("a", "a.txt", BIOLOGY)
    await pipeline.process_document("b", "b.txt", HISTORY)
    pipeline.embedder = CascadingEmbedder([HashedEmbeddingProvider(dim=8)])

    result = await pipeline.process_document("b", "b.txt", "A rewritten history lesson.")

    assert result.success is False
    assert result.error == "Vector dimension mismatch: expected 16, got 8"
    assert [info.document_id for info in pipeline.get_documents()] == ["a", "b"]
    assert [record.content for record in pipeline.store.get_by_document("b")] == [HISTORY]


@pytest.mark.asyncio
async def test_reingesting_the_only_document_may_change_dimension() -> None:
    pipeline = make_pipeline(embedder=CascadingEmbedder([HashedEmbeddingProvider(dim=16)]))
    await pipeline.process_document("a", "a.txt", BIOLOGY)
    pipeline.embedder = CascadingEmbedder([HashedEmbeddingProvider(dim=8)])

    result = await pipeline.process_document("a", "a.txt", BIOLOGY)

    assert result.success
    [record] = pipeline.store.get_by_document("a")
    assert len(record.embedding) == 8


@pytest.mark.asyncio
async def test_reingest_from_another_instance_replaces_durable_chunks(tmp_path: Path) -> None:
    settings = Settings(store_url=f"sqlite:///{tmp_path / 'chunks.db'}")
    long_text = "\n\n".join(f"Section {idx} covers a different topic entirely." for idx in range(10))
    first = make_pipeline(settings)
    first.store = create_vector_store(settings)
    indexed = await first.process_document("notes", "notes.txt", long_text, config=RAGConfig(chunk_size=60))
    assert indexed.chunk_count > 1

    second = make_pipeline(settings)
    second.store = create_vector_store(settings)
    replaced = await second.process_document("notes", "notes.txt", "Short replacement text.")
    await second.retrieve_context("replacement")

    assert replaced.chunk_count == 1
    assert [record.content for record in second.store.get_by_document("notes")] == ["Short replacement text."]
    await first.store.sync()
    assert [record.content for record in first.store.get_by_document("notes")] == ["Short replacement text."]
    await first.aclose()
    await second.aclose()


@pytest.mark.asyncio
async def test_filter_and_delete_document() -> None:
    pipeline = make_pipeline()
    await pipeline.process_document("bio", "biology.txt", BIOLOGY, user_id="alice")
    await pipeline.process_document("bio-b", "biology-b.txt", BIOLOGY, user_id="bob")
    only_bob = await pipeline.retrieve_context("photosynthesis", search_filter=SearchFilter(user_id="bob"))
    assert [source.document_name for source in only_bob.sources] == ["biology-b.txt"]

    await pipeline.delete_document("bio-b")
    after = await pipeline.retrieve_context("photosynthesis", search_filter=SearchFilter(user_id="bob"))
    assert after.sources == []
    assert [info.document_id for info in pipeline.get_documents()] == ["bio"]


@pytest.mark.asyncio
async def test_retrieval_log_is_bounded_and_clearable() -> None:
    pipeline = make_pipeline(Settings(retrieval_log_size=2))
    await pipeline.process_document("bio", "biology.txt", BIOLOGY)
    for query in ("one", "two", "photosynthesis"):
        await pipeline.retrieve_context(query)

    logs = pipeline.retrieval_logs()
    assert [entry.query for entry in logs] == ["photosynthesis", "two"]
    assert logs[0].returned == 1
    assert logs[0].top_score is not None

    pipeline.clear_retrieval_logs()
    assert pipeline.retrieval_logs() == []


def test_config_defaults_follow_settings() -> None:
    config = RAGConfig.from_settings(Settings(chunk_size=500, similarity_threshold=0.3))
    assert config.chunk_size == 500
    assert config.similarity_threshold == 0.3
    overridden = config.with_overrides(retrieval_k=2, chunk_overlap=None)
    assert overridden.retrieval_k == 2
    assert overridden.chunk_overlap == config.chunk_overlap
