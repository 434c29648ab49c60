"""
Vector similarity primitives for face embeddings.

All functions are pure and deterministic. Degenerate (zero-norm) vectors
never produce NaN: their cosine similarity to anything is defined as 0.
"""

from typing import Sequence, Union
import numpy as np
import structlog

from .exceptions import DimensionMismatchError, EmptyGalleryError, InvalidEmbeddingError

logger = structlog.get_logger(__name__)

ArrayLike = Union[np.ndarray, Sequence[float]]


def as_vector(embedding: ArrayLike, operation: str = "validation") -> np.ndarray:
    """
    Coerce an embedding to a one-dimensional float64 array.

    Parameters
    ----------
    embedding : array-like
        Candidate embedding.
    operation : str, default="validation"
        Name of the calling operation, reported in errors.

    Returns
    -------
    np.ndarray
        The embedding as a 1-D float array (no copy when already suitable).

    Raises
    ------
    InvalidEmbeddingError
        If the input is empty, not 1-D or contains non-finite values.
    """
    vector = np.asarray(embedding, dtype=np.float64)

    if vector.ndim != 1:
        raise InvalidEmbeddingError(
            f"Embedding must be 1-dimensional, got shape {vector.shape}", operation
        )

    if vector.size == 0:
        raise InvalidEmbeddingError("Embedding cannot be empty", operation)

    if not np.isfinite(vector).all():
        raise InvalidEmbeddingError("Embedding contains NaN or infinite values", operation)

    return vector


def _check_dimensions(a: np.ndarray, b: np.ndarray, operation: str) -> None:
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(a.shape[0], b.shape[0], operation=operation)


def cosine_similarity(a: ArrayLike, b: ArrayLike) -> float:
    """
    Compute the cosine similarity between two embeddings.

    Parameters
    ----------
    a, b : array-like
        Embeddings of equal length.

    Returns
    -------
    float
        ``dot(a, b) / (|a| * |b|)``, or 0.0 when either norm is zero.

    Raises
    ------
    DimensionMismatchError
        If the embeddings have different lengths.

    Examples
    --------
    >>> cosine_similarity([1.0, 0.0], [1.0, 0.0])
    1.0
    >>> cosine_similarity([0.0, 0.0], [1.0, 0.0])
    0.0
    """
    vec_a = as_vector(a, "cosine_similarity")
    vec_b = as_vector(b, "cosine_similarity")
    _check_dimensions(vec_a, vec_b, "cosine_similarity")

    norm_a = float(np.linalg.norm(vec_a))
    norm_b = float(np.linalg.norm(vec_b))

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    return float(np.dot(vec_a, vec_b) / (norm_a * norm_b))


def euclidean_distance(a: ArrayLike, b: ArrayLike) -> float:
    """
    Compute the Euclidean distance between two embeddings.

    Raises
    ------
    DimensionMismatchError
        If the embeddings have different lengths.
    """
    vec_a = as_vector(a, "euclidean_distance")
    vec_b = as_vector(b, "euclidean_distance")
    _check_dimensions(vec_a, vec_b, "euclidean_distance")

    return float(np.linalg.norm(vec_a - vec_b))


def similarity_scores(query: ArrayLike, embeddings: Sequence[ArrayLike]) -> np.ndarray:
    """
    Cosine similarity of ``query`` against each embedding in one pass.

    Zero-norm rows (or a zero-norm query) score 0.0.

    Parameters
    ----------
    query : array-like
        Query embedding.
    embeddings : sequence of array-like
        Stored embeddings, all of the query's length.

    Returns
    -------
    np.ndarray
        One similarity per stored embedding, in input order.

    Raises
    ------
    DimensionMismatchError
        If any stored embedding differs in length from the query.
    """
    query_vec = as_vector(query, "similarity_scores")

    if len(embeddings) == 0:
        return np.zeros(0, dtype=np.float64)

    rows = [as_vector(e, "similarity_scores") for e in embeddings]
    for row in rows:
        _check_dimensions(query_vec, row, "similarity_scores")

    matrix = np.vstack(rows)
    norms = np.linalg.norm(matrix, axis=1)
    query_norm = float(np.linalg.norm(query_vec))

    denominators = norms * query_norm
    dots = matrix @ query_vec

    scores = np.zeros(len(rows), dtype=np.float64)
    valid = denominators > 0.0
    scores[valid] = dots[valid] / denominators[valid]
    return scores


def normalize_embedding(embedding: ArrayLike) -> np.ndarray:
    """
    Return an L2-normalized copy of an embedding.

    Raises
    ------
    InvalidEmbeddingError
        If the embedding is invalid or has zero norm.
    """
    vector = as_vector(embedding, "normalize")
    norm = float(np.linalg.norm(vector))

    if norm == 0.0:
        raise InvalidEmbeddingError("Cannot normalize a zero-norm embedding", "normalize")

    return vector / norm


def average_embeddings(embeddings: Sequence[ArrayLike]) -> np.ndarray:
    """
    Average several embeddings of one identity into a single template.

    The element-wise mean is re-normalized to unit length. A mean that
    cancels out to the zero vector is returned as-is.

    Parameters
    ----------
    embeddings : sequence of array-like
        Embeddings of equal length.

    Returns
    -------
    np.ndarray
        Normalized average embedding.

    Raises
    ------
    EmptyGalleryError
        If no embeddings are given.
    DimensionMismatchError
        If the embeddings differ in length.
    """
    if len(embeddings) == 0:
        raise EmptyGalleryError("Cannot average an empty list of embeddings")

    vectors = [as_vector(e, "average_embeddings") for e in embeddings]
    for vector in vectors[1:]:
        _check_dimensions(vectors[0], vector, "average_embeddings")

    mean = np.mean(np.vstack(vectors), axis=0)
    norm = float(np.linalg.norm(mean))

    if norm > 0.0:
        mean = mean / norm
    else:
        logger.warning("Averaged embedding has zero norm", n_embeddings=len(vectors))

    return mean
