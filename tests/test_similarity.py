"""Unit tests for embedding similarity primitives."""

import numpy as np
import pytest

from facegate.exceptions import (
    DimensionMismatchError,
    EmptyGalleryError,
    InvalidEmbeddingError,
)
from facegate.similarity import (
    average_embeddings,
    cosine_similarity,
    euclidean_distance,
    normalize_embedding,
    similarity_scores,
)


def test_cosine_similarity_of_vector_with_itself_is_one() -> None:
    vector = np.array([0.3, -1.2, 4.0, 0.5])
    assert cosine_similarity(vector, vector) == pytest.approx(1.0)


def test_cosine_similarity_is_symmetric() -> None:
    a = np.array([1.0, 2.0, 3.0])
    b = np.array([-2.0, 0.5, 1.0])
    assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))


def test_cosine_similarity_with_zero_vector_is_zero() -> None:
    assert cosine_similarity([0.0, 0.0, 0.0], [1.0, 2.0, 3.0]) == 0.0
    assert cosine_similarity([0.0, 0.0], [0.0, 0.0]) == 0.0


def test_cosine_similarity_of_opposite_vectors() -> None:
    assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)


def test_dimension_mismatch_raises() -> None:
    with pytest.raises(DimensionMismatchError) as excinfo:
        cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])

    assert excinfo.value.error_code == "EMB_001"
    assert excinfo.value.context["expected_dimension"] == 2
    assert excinfo.value.context["actual_dimension"] == 3


def test_non_finite_embedding_is_rejected() -> None:
    with pytest.raises(InvalidEmbeddingError):
        cosine_similarity([1.0, float("nan")], [1.0, 0.0])


def test_euclidean_distance() -> None:
    assert euclidean_distance([0.0, 0.0], [3.0, 4.0]) == pytest.approx(5.0)


def test_similarity_scores_match_pairwise_cosine() -> None:
    query = np.array([1.0, 1.0, 0.0])
    stored = [np.array([1.0, 0.0, 0.0]), np.zeros(3), np.array([0.0, 2.0, 0.0])]

    scores = similarity_scores(query, stored)

    assert scores.shape == (3,)
    assert scores[0] == pytest.approx(cosine_similarity(query, stored[0]))
    assert scores[1] == 0.0
    assert scores[2] == pytest.approx(cosine_similarity(query, stored[2]))


def test_similarity_scores_of_empty_gallery() -> None:
    assert similarity_scores([1.0, 0.0], []).size == 0


def test_normalize_embedding_has_unit_norm() -> None:
    normalized = normalize_embedding([3.0, 4.0])
    assert np.linalg.norm(normalized) == pytest.approx(1.0)
    assert normalized == pytest.approx([0.6, 0.8])


def test_normalize_zero_vector_raises() -> None:
    with pytest.raises(InvalidEmbeddingError):
        normalize_embedding([0.0, 0.0])


def test_average_embeddings_is_normalized() -> None:
    average = average_embeddings([[1.0, 0.0], [0.0, 1.0]])
    assert average == pytest.approx([np.sqrt(0.5), np.sqrt(0.5)])


def test_average_of_empty_list_raises() -> None:
    with pytest.raises(EmptyGalleryError) as excinfo:
        average_embeddings([])

    assert excinfo.value.error_code == "EMB_003"


def test_average_of_cancelling_vectors_is_zero() -> None:
    average = average_embeddings([[1.0, 0.0], [-1.0, 0.0]])
    assert average == pytest.approx([0.0, 0.0])
