"""Exception hierarchy for the RAG pipeline."""

from __future__ import annotations

from typing import Any


class TutorRagError(Exception):
    """Base class for pipeline errors, carrying optional debugging context."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(TutorRagError, ValueError):
    """Invalid chunking, retrieval or provider configuration."""


class DimensionMismatchError(TutorRagError, ValueError):
    """Two vectors of different length were compared or stored together."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {actual}",
            {"expected": expected, "actual": actual},
        )
        self.expected = expected
        self.actual = actual


class EmbeddingProviderError(TutorRagError):
    """A single embedding tier failed for the current call."""

    def __init__(self, provider: str, message: str, details: dict[str, Any] | None = None) -> None:
        details = dict(details or {})
        details["provider"] = provider
        super().__init__(message, details)
        self.provider = provider


class EmbeddingError(TutorRagError):
    """No embedding tier produced vectors."""


class StoreError(TutorRagError):
    """The durable chunk repository could not be read or written."""


__all__ = [
    "TutorRagError",
    "ConfigurationError",
    "DimensionMismatchError",
    "EmbeddingProviderError",
    "EmbeddingError",
    "StoreError",
]
