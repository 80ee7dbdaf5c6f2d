"""Vector similarity primitives shared by the embedder and the vector store."""

from __future__ import annotations

import math
from typing import Sequence

from tutor_rag.core.errors import ConfigurationError, DimensionMismatchError


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between ``a`` and ``b``; 0.0 when either has zero norm."""
    _check_dimensions(a, b)
    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        norm_a += x * x
        norm_b += y * y
    denominator = math.sqrt(norm_a * norm_b)
    if denominator == 0:
        return 0.0
    # float rounding can push |cos| a hair past 1
    return max(-1.0, min(1.0, dot / denominator))


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    _check_dimensions(a, b)
    return math.sqrt(sum((x - y) * (x - y) for x, y in zip(a, b)))


def euclidean_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Map Euclidean distance into ``(0, 1]``; identical vectors score 1."""
    return 1.0 / (1.0 + euclidean_distance(a, b))


def score(metric: str, a: Sequence[float], b: Sequence[float]) -> float:
    if metric == "cosine":
        return cosine_similarity(a, b)
    if metric == "euclidean":
        return euclidean_similarity(a, b)
    raise ConfigurationError(f"Unknown similarity metric: {metric}", {"metric": metric})


def l2_normalize(vector: list[float]) -> None:
    """Scale ``vector`` in place to unit length; zero vectors are left alone."""
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


def _check_dimensions(a: Sequence[float], b: Sequence[float]) -> None:
    if len(a) != len(b):
        raise DimensionMismatchError(len(a), len(b))


__all__ = [
    "cosine_similarity",
    "euclidean_distance",
    "euclidean_similarity",
    "score",
    "l2_normalize",
]
