"""
Multi-sample face matching.

This module compares a query embedding against a gallery holding one or
more embeddings per identity. Each identity's samples are combined into a
single score with a ``MatchStrategy``; the highest score that clears the
similarity threshold wins.

Matching is a pure function of (query, gallery, threshold, strategy): it
keeps no state between calls. Cooldowns and duplicate suppression are the
caller's concern.
"""

from typing import Dict, List, Sequence
import numpy as np
import structlog

from .constants import (
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_VOTE_FRACTION,
    STRONG_MATCH_THRESHOLD,
    VERY_STRONG_MATCH_THRESHOLD,
    WEIGHTED_AVERAGE_SHARPNESS,
)
from .data_models import (
    NO_MATCH,
    GalleryEntry,
    IdentityId,
    MatchCandidate,
    MatchDecision,
    MatchStrategy,
    Matched,
)
from .similarity import as_vector, similarity_scores

logger = structlog.get_logger(__name__)


def _best_score(similarities: np.ndarray) -> float:
    return float(np.max(similarities))


def _average_score(similarities: np.ndarray) -> float:
    return float(np.mean(similarities))


def _voting_score(
    similarities: np.ndarray, threshold: float, vote_fraction: float
) -> float:
    # An identity that loses the vote cannot match, even when its plain
    # mean would clear the threshold.
    passing = similarities[similarities >= threshold]
    if passing.size == 0:
        return 0.0

    if passing.size / similarities.size < vote_fraction:
        return 0.0

    return float(np.mean(passing))


def _weighted_average_score(similarities: np.ndarray) -> float:
    weights = np.exp(WEIGHTED_AVERAGE_SHARPNESS * similarities)
    return float(np.sum(similarities * weights) / np.sum(weights))


def score_samples(
    similarities: Sequence[float],
    strategy: MatchStrategy,
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    vote_fraction: float = DEFAULT_VOTE_FRACTION,
) -> float:
    """
    Combine one identity's per-sample similarities into a single score.

    Parameters
    ----------
    similarities : sequence of float
        Similarity of the query to each of the identity's samples.
    strategy : MatchStrategy
        Combination rule.
    threshold : float
        Per-sample threshold, used by ``VOTING`` only.
    vote_fraction : float
        Share of samples that must clear ``threshold`` under ``VOTING``.

    Returns
    -------
    float
        The identity's score; 0.0 for an empty sample list.

    Examples
    --------
    >>> round(score_samples([0.82, 0.78, 0.85, 0.77, 0.81],
    ...                     MatchStrategy.VOTING, threshold=0.75), 4)
    0.8267
    """
    values = np.asarray(similarities, dtype=np.float64)
    if values.size == 0:
        return 0.0

    if strategy is MatchStrategy.BEST:
        return _best_score(values)
    if strategy is MatchStrategy.AVERAGE:
        return _average_score(values)
    if strategy is MatchStrategy.VOTING:
        return _voting_score(values, threshold, vote_fraction)
    if strategy is MatchStrategy.WEIGHTED_AVERAGE:
        return _weighted_average_score(values)

    raise ValueError(f"Unsupported match strategy: {strategy!r}")


def confidence_band(confidence: float) -> str:
    """Label a match confidence as "very_strong", "strong" or "standard"."""
    if confidence >= VERY_STRONG_MATCH_THRESHOLD:
        return "very_strong"
    if confidence >= STRONG_MATCH_THRESHOLD:
        return "strong"
    return "standard"


def group_by_identity(
    gallery: Sequence[GalleryEntry],
) -> Dict[IdentityId, List[np.ndarray]]:
    """Group ``(identity_id, embedding)`` pairs by identity, keeping order."""
    grouped: Dict[IdentityId, List[np.ndarray]] = {}
    for identity_id, embedding in gallery:
        grouped.setdefault(identity_id, []).append(embedding)
    return grouped


def _id_order(identity_id: IdentityId):
    return (type(identity_id).__name__, identity_id)


def score_identities(
    query: np.ndarray,
    gallery: Sequence[GalleryEntry],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    strategy: MatchStrategy = MatchStrategy.WEIGHTED_AVERAGE,
    vote_fraction: float = DEFAULT_VOTE_FRACTION,
) -> List[MatchCandidate]:
    """
    Score every identity in the gallery.

    Returns
    -------
    List[MatchCandidate]
        One candidate per identity, ordered by descending score and then by
        ascending identity id.

    Raises
    ------
    DimensionMismatchError
        If any stored embedding differs in length from the query.
    """
    query_vec = as_vector(query, "match")
    candidates = []

    for identity_id, embeddings in group_by_identity(gallery).items():
        similarities = similarity_scores(query_vec, embeddings)
        score = score_samples(similarities, strategy, threshold, vote_fraction)
        candidates.append(MatchCandidate(identity_id=identity_id, score=score))

    candidates.sort(key=lambda c: (-c.score, _id_order(c.identity_id)))
    return candidates


def match_face(
    query: np.ndarray,
    gallery: Sequence[GalleryEntry],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    strategy: MatchStrategy = MatchStrategy.WEIGHTED_AVERAGE,
    vote_fraction: float = DEFAULT_VOTE_FRACTION,
) -> MatchDecision:
    """
    Match a query embedding against a multi-sample gallery.

    Identities whose combined score meets ``threshold`` survive; the
    highest-scoring survivor is returned. Equal top scores resolve to the
    lowest identity id. Ids of different types are ordered by type name
    first, so a gallery may mix integer and string ids.

    Parameters
    ----------
    query : np.ndarray
        L2-normalized query embedding.
    gallery : sequence of (identity_id, embedding)
        Stored embeddings, several per identity allowed.
    threshold : float
        Minimum identity score for a match.
    strategy : MatchStrategy
        How each identity's samples are combined.
    vote_fraction : float
        Share of samples that must clear ``threshold`` under ``VOTING``.

    Returns
    -------
    MatchDecision
        ``Matched(identity_id, confidence)`` or ``NO_MATCH``. An empty
        gallery is a valid input and yields ``NO_MATCH``.

    Raises
    ------
    DimensionMismatchError
        If any stored embedding differs in length from the query.

    Examples
    --------
    >>> match_face(np.array([1.0, 0.0]), [], 0.7, MatchStrategy.BEST)
    NoMatch()
    """
    if len(gallery) == 0:
        logger.debug("Empty gallery, no match possible")
        return NO_MATCH

    candidates = score_identities(query, gallery, threshold, strategy, vote_fraction)
    survivors = [c for c in candidates if c.score >= threshold]

    if not survivors:
        logger.debug(
            "No identity cleared threshold",
            strategy=strategy.name,
            threshold=threshold,
            n_identities=len(candidates),
            best_score=candidates[0].score if candidates else None,
        )
        return NO_MATCH

    best = survivors[0]
    logger.debug(
        "Identity matched",
        identity_id=best.identity_id,
        confidence=best.score,
        band=confidence_band(best.score),
        strategy=strategy.name,
        n_survivors=len(survivors),
    )
    return Matched(identity_id=best.identity_id, confidence=best.score)


def match_single(
    query: np.ndarray,
    gallery: Sequence[GalleryEntry],
    threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
) -> MatchDecision:
    """
    Best single-embedding match, ignoring identity grouping.

    Equivalent to ``match_face`` with ``MatchStrategy.BEST``; kept for
    galleries holding one averaged template per identity.
    """
    return match_face(query, gallery, threshold, MatchStrategy.BEST)
