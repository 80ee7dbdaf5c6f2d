"""Tests for vector similarity primitives."""

import math

import pytest

from tutor_rag.core.errors import ConfigurationError, DimensionMismatchError
from tutor_rag.retrieval.similarity import (
    cosine_similarity,
    euclidean_distance,
    euclidean_similarity,
    l2_normalize,
    score,
)


def test_cosine_of_vector_with_itself_is_one() -> None:
    vector = [0.3, -1.7, 2.9, 0.0001]
    assert cosine_similarity(vector, vector) == 1.0


def test_cosine_bounds_and_orthogonality() -> None:
    assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0
    assert cosine_similarity([1.0, 2.0], [-1.0, -2.0]) == -1.0
    assert -1.0 <= cosine_similarity([0.2, 0.9, -0.4], [0.5, -0.1, 0.3]) <= 1.0


def test_cosine_with_zero_vector_is_zero() -> None:
    assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0


def test_dimension_mismatch_raises() -> None:
    with pytest.raises(DimensionMismatchError) as excinfo:
        cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])
    assert excinfo.value.expected == 2
    assert excinfo.value.actual == 3
    with pytest.raises(DimensionMismatchError):
        euclidean_distance([1.0], [1.0, 2.0])


def test_euclidean_similarity() -> None:
    assert euclidean_distance([0.0, 0.0], [3.0, 4.0]) == 5.0
    assert euclidean_similarity([1.0, 1.0], [1.0, 1.0]) == 1.0
    assert euclidean_similarity([0.0, 0.0], [3.0, 4.0]) == pytest.approx(1 / 6)


def test_score_dispatches_on_metric() -> None:
    assert score("cosine", [1.0, 0.0], [1.0, 0.0]) == 1.0
    assert score("euclidean", [0.0], [1.0]) == 0.5
    with pytest.raises(ConfigurationError):
        score("manhattan", [0.0], [1.0])


def test_l2_normalize_in_place() -> None:
    vector = [3.0, 4.0]
    l2_normalize(vector)
    assert vector == pytest.approx([0.6, 0.8])
    zero = [0.0, 0.0]
    l2_normalize(zero)
    assert zero == [0.0, 0.0]
    assert math.isclose(sum(value * value for value in vector), 1.0)
