"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, field_validator

ENV_PREFIX = "TRAG_"
DEFAULT_CONFIG_PATH = Path("~/.config/tutor-rag/config.yaml")

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("chunking", "chunk_size"): "chunk_size",
    ("chunking", "chunk_overlap"): "chunk_overlap",
    ("retrieval", "k"): "retrieval_k",
    ("retrieval", "similarity_threshold"): "similarity_threshold",
    ("retrieval", "similarity_metric"): "similarity_metric",
    ("retrieval", "query_cache_ttl"): "query_cache_ttl",
    ("retrieval", "query_cache_size"): "query_cache_size",
    ("retrieval", "log_size"): "retrieval_log_size",
    ("embeddings", "dim"): "embedding_dim",
    ("embeddings", "cache_size"): "embedding_cache_size",
    ("embeddings", "local_fallback"): "local_fallback_enabled",
    ("embeddings", "primary", "api_key"): "primary_api_key",
    ("embeddings", "primary", "base_url"): "primary_base_url",
    ("embeddings", "primary", "model"): "primary_model",
    ("embeddings", "primary", "batch_size"): "primary_batch_size",
    ("embeddings", "primary", "timeout"): "primary_timeout",
    ("embeddings", "secondary", "api_key"): "secondary_api_key",
    ("embeddings", "secondary", "base_url"): "secondary_base_url",
    ("embeddings", "secondary", "model"): "secondary_model",
    ("embeddings", "secondary", "timeout"): "secondary_timeout",
    ("embeddings", "secondary", "concurrency"): "secondary_concurrency",
    ("storage", "url"): "store_url",
    ("storage", "key"): "store_key",
    ("storage", "table"): "store_table",
    ("storage", "timeout"): "store_timeout",
    ("storage", "resync_on_search"): "resync_on_search",
}

# Deployment variable names carried over from the web application.
_LEGACY_ENV_MAP: Mapping[str, str] = {
    "OPENAI_API_KEY": "primary_api_key",
    "OPENAI_API_BASE_URL": "primary_base_url",
    "OPENAI_EMBEDDING_MODEL": "primary_model",
    "OLLAMA_BASE_URL": "secondary_base_url",
    "CHUNK_SIZE": "chunk_size",
    "CHUNK_OVERLAP": "chunk_overlap",
    "NEXT_PUBLIC_SUPABASE_URL": "store_url",
    "SUPABASE_URL": "store_url",
    "SUPABASE_SERVICE_ROLE_KEY": "store_key",
}

SimilarityMetric = Literal["cosine", "euclidean"]


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    chunk_size: int = 1000
    chunk_overlap: int = 100
    retrieval_k: int = 5
    similarity_threshold: float = 0.15
    similarity_metric: SimilarityMetric = "cosine"
    query_cache_ttl: float = 300.0
    query_cache_size: int = 256
    retrieval_log_size: int = 100

    embedding_dim: int = 1536
    embedding_cache_size: int = 5000
    local_fallback_enabled: bool = True

    primary_api_key: str | None = None
    primary_base_url: str = "https://api.openai.com/v1"
    primary_model: str = "text-embedding-3-small"
    primary_batch_size: int = 100
    primary_timeout: float = 30.0

    secondary_api_key: str | None = None
    secondary_base_url: str | None = None
    secondary_model: str = "nomic-embed-text"
    secondary_timeout: float = 10.0
    secondary_concurrency: int = 4

    store_url: str | None = None
    store_key: str | None = None
    store_table: str = "document_chunks"
    store_timeout: float = 15.0
    resync_on_search: bool = True

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator("chunk_size", "retrieval_k", "embedding_dim", "primary_batch_size", "secondary_concurrency")
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("chunk_overlap")
    @classmethod
    def _require_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("chunk_overlap must not be negative")
        return value

    @field_validator("primary_api_key", "secondary_api_key", "store_url", "store_key", "secondary_base_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def persistent_store_configured(self) -> bool:
        if not self.store_url:
            return False
        if self.store_url.startswith("sqlite:"):
            return True
        return bool(self.store_key)

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map legacy deployment variables, then TRAG_-prefixed ones, into Settings fields."""
    overrides: dict[str, Any] = {}
    for env_name, field_name in _LEGACY_ENV_MAP.items():
        value = os.environ.get(env_name)
        if value:
            overrides[field_name] = value
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "SimilarityMetric", "get_settings"]
