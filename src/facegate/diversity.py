"""
Enrollment sample diversity checks.

A candidate enrollment sample is compared with the samples already accepted
for the same identity. Near-duplicates are rejected so that enrollment does
not degenerate into several copies of one pose, which would silently weaken
the averaging and voting strategies used at match time.

After a full batch is captured, ``DiversityChecker.analyze_set`` looks at the
whole set and flags outliers (a sample dissimilar to all the others usually
means a mis-capture: wrong person or corrupted frame).
"""

from itertools import combinations
from typing import List, Optional, Sequence
import numpy as np
import structlog

from .constants import (
    MIN_DIVERSITY_THRESHOLD,
    OPTIMAL_DIVERSITY,
    OUTLIER_SIMILARITY_THRESHOLD,
)
from .data_models import DiversityResult, SetAnalysis
from .similarity import ArrayLike, cosine_similarity, similarity_scores

logger = structlog.get_logger(__name__)

TOO_SIMILAR_MESSAGE = "Too similar to previous sample - change angle or expression"

RECOMMENDED_POSES = (
    "Face camera directly with neutral expression",
    "Slight smile",
    "Turn head slightly left",
    "Turn head slightly right",
    "Tilt head slightly",
)


class DiversityChecker:
    """
    Gate enrollment samples on their distinctness from accepted samples.

    Parameters
    ----------
    min_diversity : float, default=MIN_DIVERSITY_THRESHOLD
        Minimum ``1 - max similarity`` for a candidate to be accepted.
    optimal_diversity : float, default=OPTIMAL_DIVERSITY
        Diversity at which the 0-100 score saturates.
    outlier_similarity : float, default=OUTLIER_SIMILARITY_THRESHOLD
        Average similarity to the rest of a set below which a sample is
        flagged as an outlier.
    """

    def __init__(
        self,
        min_diversity: float = MIN_DIVERSITY_THRESHOLD,
        optimal_diversity: float = OPTIMAL_DIVERSITY,
        outlier_similarity: float = OUTLIER_SIMILARITY_THRESHOLD,
    ) -> None:
        if not 0.0 <= min_diversity < optimal_diversity:
            raise ValueError("min_diversity must be >= 0 and below optimal_diversity")

        self.min_diversity = min_diversity
        self.optimal_diversity = optimal_diversity
        self.outlier_similarity = outlier_similarity

    def _score(self, diversity: float) -> float:
        if diversity < self.min_diversity:
            if self.min_diversity == 0.0:
                return 0.0
            return max(0.0, diversity / self.min_diversity * 50.0)
        if diversity < self.optimal_diversity:
            span = self.optimal_diversity - self.min_diversity
            return 50.0 + (diversity - self.min_diversity) / span * 50.0
        return 100.0

    def check(
        self, candidate: ArrayLike, existing: Sequence[ArrayLike]
    ) -> DiversityResult:
        """
        Check a candidate sample against the identity's accepted samples.

        Parameters
        ----------
        candidate : array-like
            Embedding of the new capture.
        existing : sequence of array-like
            Embeddings already accepted for the same identity.

        Returns
        -------
        DiversityResult
            Acceptance flag, 0-100 score, similarity statistics and a message.
            The first sample of an identity is always accepted.
        """
        if len(existing) == 0:
            return DiversityResult(
                is_diverse=True, diversity_score=100.0, message="First sample"
            )

        similarities = similarity_scores(candidate, existing)
        max_similarity = float(np.max(similarities))
        min_similarity = float(np.min(similarities))
        avg_similarity = float(np.mean(similarities))

        diversity = 1.0 - max_similarity
        is_diverse = diversity >= self.min_diversity
        score = self._score(diversity)

        if not is_diverse:
            message = TOO_SIMILAR_MESSAGE
        elif score >= 80.0:
            message = "Good variation!"
        elif score >= 60.0:
            message = "Acceptable variation"
        else:
            message = "Try varying your pose slightly"

        logger.debug(
            "Diversity check completed",
            diversity=round(diversity, 4),
            diversity_score=round(score, 2),
            is_diverse=is_diverse,
            n_existing=len(existing),
        )

        return DiversityResult(
            is_diverse=is_diverse,
            diversity_score=score,
            message=message,
            max_similarity=max_similarity,
            min_similarity=min_similarity,
            avg_similarity=avg_similarity,
        )

    def set_diversity(self, embeddings: Sequence[ArrayLike]) -> float:
        """
        Average pairwise diversity of a set, scaled to 0-100.

        Sets with fewer than two samples score 100.
        """
        if len(embeddings) < 2:
            return 100.0

        diversities = [
            1.0 - cosine_similarity(a, b) for a, b in combinations(embeddings, 2)
        ]
        avg_diversity = float(np.mean(diversities))

        return float(np.clip(avg_diversity / self.optimal_diversity * 100.0, 0.0, 100.0))

    def analyze_set(self, embeddings: Sequence[ArrayLike]) -> SetAnalysis:
        """
        Analyse a complete enrollment batch.

        Combines set diversity with consistency (the lowest average similarity
        of any sample to the rest) into a quality score, and flags outliers.

        Parameters
        ----------
        embeddings : sequence of array-like
            All samples captured for one identity.

        Returns
        -------
        SetAnalysis
            Scores, outlier indices and a recommendation.
        """
        if len(embeddings) < 2:
            return SetAnalysis(
                diversity_score=0.0,
                quality_score=0.0,
                recommendation="Need at least 2 samples",
                is_good_set=False,
            )

        diversity = self.set_diversity(embeddings)

        avg_similarities: List[float] = []
        for index, embedding in enumerate(embeddings):
            others = [e for i, e in enumerate(embeddings) if i != index]
            avg_similarities.append(float(np.mean(similarity_scores(embedding, others))))

        outlier_indices = tuple(
            i for i, sim in enumerate(avg_similarities) if sim < self.outlier_similarity
        )
        has_outlier = bool(outlier_indices)
        min_avg_similarity = min(avg_similarities)

        consistency = float(np.clip(min_avg_similarity * 100.0, 0.0, 100.0))
        quality = diversity * 0.6 + consistency * 0.4

        if has_outlier:
            recommendation = "One sample may be incorrect - review captures"
        elif diversity < 30.0:
            recommendation = "Samples too similar - recapture with more variation"
        elif diversity > 70.0:
            recommendation = "Samples too different - ensure same person"
        elif quality >= 70.0:
            recommendation = "Good quality embedding set"
        else:
            recommendation = "Acceptable - could be improved with better variation"

        if has_outlier:
            logger.warning(
                "Enrollment set contains outlier samples",
                outlier_indices=list(outlier_indices),
                min_avg_similarity=round(min_avg_similarity, 4),
            )

        return SetAnalysis(
            diversity_score=diversity,
            quality_score=quality,
            recommendation=recommendation,
            is_good_set=quality >= 60.0 and not has_outlier,
            has_outlier=has_outlier,
            outlier_indices=outlier_indices,
        )


def recommended_pose(sample_number: int) -> str:
    """Pose prompt for the given 0-based capture number."""
    return RECOMMENDED_POSES[sample_number % len(RECOMMENDED_POSES)]


def suggestion_for_next_capture(previous_diversity: Optional[float]) -> str:
    """Feedback for the next capture given the previous diversity score."""
    if previous_diversity is None:
        return "Capture first sample with neutral expression"
    if previous_diversity < 30.0:
        return "Change your facial expression or head angle more"
    if previous_diversity < 60.0:
        return "Good - try a slightly different angle"
    return "Excellent variation! Continue with similar diversity"
