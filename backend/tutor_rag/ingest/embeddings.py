"""Embedding providers and the tiered cascade that picks between them.

Tiers are tried in order and the first one that embeds the whole batch wins:

1. ``OpenAIEmbeddingProvider``: batched requests to an OpenAI-compatible
   ``/embeddings`` endpoint.
2. ``OllamaEmbeddingProvider``: one ``/api/embeddings`` request per text with
   bounded parallelism; a per-item timeout degrades to a zero vector.
3. ``HashedEmbeddingProvider``: deterministic local vectors for offline use.

Vectors are cached per tier in a bounded ``EmbeddingCache``.
"""

from __future__ import annotations

import asyncio
import logging
import random
import re
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Sequence

import httpx

from tutor_rag.core.config import Settings
from tutor_rag.core.errors import EmbeddingError, EmbeddingProviderError
from tutor_rag.core.metrics import EMBEDDING_REQUESTS
from tutor_rag.retrieval.similarity import l2_normalize
from tutor_rag.utils.hashing import char_code_hash, sha256_text

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")


class EmbeddingProvider(ABC):
    """Abstract interface for text -> embedding vector conversion."""

    name: str = "provider"

    @property
    def configured(self) -> bool:
        return True

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """
        Convert a batch of texts into embedding vectors, one per input text.

        Raises ``EmbeddingProviderError`` when this tier cannot serve the batch.
        """
        ...

    async def aclose(self) -> None:
        return None


class _HttpProvider(EmbeddingProvider):
    def __init__(self, timeout: float, client: httpx.AsyncClient | None = None) -> None:
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _error_from_response(self, response: httpx.Response) -> EmbeddingProviderError:
        detail: Any = response.reason_phrase
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                detail = error.get("message") or detail
            elif error:
                detail = error
        return EmbeddingProviderError(
            self.name,
            f"Embedding API error ({response.status_code}): {detail}",
            {"status": response.status_code},
        )


class OpenAIEmbeddingProvider(_HttpProvider):
    """Primary tier: OpenAI-compatible batch embeddings endpoint."""

    name = "openai"

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://api.openai.com/v1",
        model: str = "text-embedding-3-small",
        batch_size: int = 100,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.batch_size = max(1, batch_size)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            vectors.extend(await self._embed_batch(batch))
        return vectors

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        body = {"model": self.model, "input": batch}
        try:
            response = await self._client.post(
                f"{self.base_url}/embeddings",
                json=body,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as exc:
            raise EmbeddingProviderError(self.name, f"Embedding request timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise EmbeddingProviderError(self.name, f"Embedding request failed: {exc}") from exc
        if not response.is_success:
            raise self._error_from_response(response)
        try:
            data = sorted(response.json()["data"], key=lambda item: item.get("index", 0))
            vectors = [[float(value) for value in item["embedding"]] for item in data]
        except (ValueError, KeyError, TypeError) as exc:
            raise EmbeddingProviderError(self.name, f"Malformed embedding response: {exc}") from exc
        if len(vectors) != len(batch):
            raise EmbeddingProviderError(
                self.name,
                "Embedding response size does not match request",
                {"expected": len(batch), "actual": len(vectors)},
            )
        return vectors


class OllamaEmbeddingProvider(_HttpProvider):
    """Secondary tier: one request per text against an Ollama-style endpoint."""

    name = "ollama"

    def __init__(
        self,
        base_url: str | None,
        model: str = "nomic-embed-text",
        api_key: str | None = None,
        concurrency: int = 4,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(timeout=timeout, client=client)
        self.base_url = base_url.rstrip("/") if base_url else None
        self.model = model
        self.api_key = api_key
        self.concurrency = max(1, concurrency)

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    async def embed(self, texts: list[str]) -> list[list[float]]:
        semaphore = asyncio.Semaphore(self.concurrency)

        async def embed_item(text: str) -> list[float] | None:
            async with semaphore:
                return await self._embed_item(text)

        outcomes = await asyncio.gather(*(embed_item(text) for text in texts), return_exceptions=True)
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                if isinstance(outcome, EmbeddingProviderError):
                    raise outcome
                raise EmbeddingProviderError(self.name, f"Embedding request failed: {outcome}") from outcome

        vectors: list[list[float] | None] = list(outcomes)  # type: ignore[arg-type]
        produced = [vector for vector in vectors if vector is not None]
        if not produced:
            raise EmbeddingProviderError(self.name, "Every embedding request timed out", {"items": len(texts)})
        dim = len(produced[0])
        if any(len(vector) != dim for vector in produced):
            raise EmbeddingProviderError(self.name, "Provider returned vectors of differing dimensions")
        timed_out = sum(1 for vector in vectors if vector is None)
        if timed_out:
            logger.warning("%s of %s embedding requests timed out; using zero vectors", timed_out, len(texts))
        return [vector if vector is not None else [0.0] * dim for vector in vectors]

    async def _embed_item(self, text: str) -> list[float] | None:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        try:
            response = await self._client.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException:
            return None
        except httpx.HTTPError as exc:
            raise EmbeddingProviderError(self.name, f"Embedding request failed: {exc}") from exc
        if not response.is_success:
            raise self._error_from_response(response)
        try:
            vector = [float(value) for value in response.json().get("embedding") or []]
        except (ValueError, TypeError, AttributeError) as exc:
            raise EmbeddingProviderError(self.name, f"Malformed embedding response: {exc}") from exc
        if not vector:
            raise EmbeddingProviderError(self.name, "Provider returned an empty embedding")
        return vector


class HashedEmbeddingProvider(EmbeddingProvider):
    """Deterministic local fallback; identical text always yields an identical vector.

    Every token seeds a pseudo-random generator with its character-code hash;
    the generator scatters non-negative weights over a few slots of the
    vector, which is then normalized to unit length. Texts sharing words
    therefore share slots, which keeps retrieval meaningful offline.
    """

    name = "local"

    def __init__(self, dim: int = 1536, features_per_token: int = 4) -> None:
        self._dim = dim
        self.features_per_token = features_per_token

    @property
    def dim(self) -> int:
        return self._dim

    async def embed(self, texts: list[str]) -> list[list[float]]:
        return [self.vector_for(text) for text in texts]

    def vector_for(self, text: str) -> list[float]:
        vector = [0.0] * self._dim
        tokens = _tokenize(text) or ([text] if text else [])
        for token in tokens:
            rng = random.Random(char_code_hash(token))
            for _ in range(self.features_per_token):
                slot = rng.randrange(self._dim)
                vector[slot] += 0.5 + rng.random()
        l2_normalize(vector)
        return vector


@dataclass(slots=True)
class CacheEntry:
    key: tuple[str, str, str]
    value: list[float]
    timestamp: float


class EmbeddingCache:
    """Capacity-bounded vector cache keyed by tier and text; evicts oldest entries."""

    def __init__(self, capacity: int = 5000, prefix_chars: int = 64) -> None:
        self.capacity = capacity
        self.prefix_chars = prefix_chars
        self._entries: dict[tuple[str, str, str], CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def key(self, tier: str, text: str) -> tuple[str, str, str]:
        return (tier, text[: self.prefix_chars], sha256_text(text))

    def get(self, tier: str, text: str) -> list[float] | None:
        entry = self._entries.get(self.key(tier, text))
        return list(entry.value) if entry is not None else None

    def put(self, tier: str, text: str, vector: Sequence[float]) -> None:
        if self.capacity <= 0:
            return
        key = self.key(tier, text)
        if key in self._entries:
            return
        while len(self._entries) >= self.capacity:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = CacheEntry(key=key, value=list(vector), timestamp=time.time())

    def clear(self) -> None:
        self._entries.clear()


class CascadingEmbedder:
    """Try each configured provider in order until one embeds the whole batch."""

    def __init__(self, providers: Sequence[EmbeddingProvider], cache: EmbeddingCache | None = None) -> None:
        self.providers = list(providers)
        self.cache = cache if cache is not None else EmbeddingCache()
        self.last_tier: str | None = None

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        texts = list(texts)
        if not texts:
            return []
        failures: list[EmbeddingProviderError] = []
        for provider in self.providers:
            if not provider.configured:
                continue
            vectors = await self._embed_with(provider, texts, failures)
            if vectors is not None:
                self.last_tier = provider.name
                return vectors
        if failures:
            last = failures[-1]
            raise EmbeddingError(last.message, {"attempted": [failure.provider for failure in failures]})
        raise EmbeddingError("No embedding provider is configured")

    async def embed_one(self, text: str) -> list[float]:
        return (await self.embed([text]))[0]

    async def aclose(self) -> None:
        for provider in self.providers:
            await provider.aclose()

    async def _embed_with(
        self,
        provider: EmbeddingProvider,
        texts: list[str],
        failures: list[EmbeddingProviderError],
    ) -> list[list[float]] | None:
        vectors: list[list[float] | None] = [self.cache.get(provider.name, text) for text in texts]
        missing = [idx for idx, vector in enumerate(vectors) if vector is None]
        if not missing:
            EMBEDDING_REQUESTS.labels(tier=provider.name, outcome="cached").inc()
            return vectors  # type: ignore[return-value]

        try:
            fresh = await provider.embed([texts[idx] for idx in missing])
            if len(fresh) != len(missing):
                raise EmbeddingProviderError(
                    provider.name,
                    "Provider returned the wrong number of vectors",
                    {"expected": len(missing), "actual": len(fresh)},
                )
        except EmbeddingProviderError as exc:
            logger.warning("Embedding tier %s failed, falling through: %s", provider.name, exc.message)
            EMBEDDING_REQUESTS.labels(tier=provider.name, outcome="error").inc()
            failures.append(exc)
            return None

        for idx, vector in zip(missing, fresh):
            vectors[idx] = vector
            # zero vectors are timeout placeholders and must be retried next time
            if any(vector):
                self.cache.put(provider.name, texts[idx], vector)
        EMBEDDING_REQUESTS.labels(tier=provider.name, outcome="success").inc()
        return vectors  # type: ignore[return-value]


def build_embedder(
    settings: Settings,
    client: httpx.AsyncClient | None = None,
    cache: EmbeddingCache | None = None,
) -> CascadingEmbedder:
    """Assemble the default provider cascade from settings."""
    providers: list[EmbeddingProvider] = [
        OpenAIEmbeddingProvider(
            api_key=settings.primary_api_key,
            base_url=settings.primary_base_url,
            model=settings.primary_model,
            batch_size=settings.primary_batch_size,
            timeout=settings.primary_timeout,
            client=client,
        ),
        OllamaEmbeddingProvider(
            base_url=settings.secondary_base_url,
            model=settings.secondary_model,
            api_key=settings.secondary_api_key,
            concurrency=settings.secondary_concurrency,
            timeout=settings.secondary_timeout,
            client=client,
        ),
    ]
    if settings.local_fallback_enabled:
        providers.append(HashedEmbeddingProvider(dim=settings.embedding_dim))
    return CascadingEmbedder(
        providers,
        cache=cache if cache is not None else EmbeddingCache(capacity=settings.embedding_cache_size),
    )


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


__all__ = [
    "EmbeddingProvider",
    "OpenAIEmbeddingProvider",
    "OllamaEmbeddingProvider",
    "HashedEmbeddingProvider",
    "EmbeddingCache",
    "CascadingEmbedder",
    "build_embedder",
]
