"""Unit tests for enrollment diversity checks."""

import pytest

from facegate.diversity import (
    RECOMMENDED_POSES,
    TOO_SIMILAR_MESSAGE,
    DiversityChecker,
    recommended_pose,
    suggestion_for_next_capture,
)

from conftest import axis, with_similarity


def test_first_sample_is_always_diverse() -> None:
    result = DiversityChecker().check(axis(0), [])

    assert result.is_diverse
    assert result.diversity_score == 100.0
    assert result.message == "First sample"


def test_near_duplicate_is_rejected() -> None:
    result = DiversityChecker().check(with_similarity(0.97, 0, 1), [axis(0)])

    assert not result.is_diverse
    assert result.message == TOO_SIMILAR_MESSAGE
    assert "too similar" in result.message.lower()
    assert result.max_similarity == pytest.approx(0.97)
    assert result.diversity_score == pytest.approx(0.03 / 0.15 * 50.0)


def test_moderate_variation_is_acceptable() -> None:
    result = DiversityChecker().check(with_similarity(0.80, 0, 1), [axis(0)])

    assert result.is_diverse
    assert result.diversity_score == pytest.approx(75.0)
    assert result.message == "Acceptable variation"


def test_large_variation_is_good() -> None:
    result = DiversityChecker().check(with_similarity(0.70, 0, 1), [axis(0)])

    assert result.diversity_score == 100.0
    assert result.message == "Good variation!"


def test_candidate_is_compared_with_closest_existing_sample() -> None:
    existing = [axis(5), with_similarity(0.9, 0, 1)]

    result = DiversityChecker().check(axis(0), existing)

    assert result.max_similarity == pytest.approx(0.9)
    assert result.min_similarity == pytest.approx(0.0)
    assert result.avg_similarity == pytest.approx(0.45)


def test_invalid_thresholds_are_rejected() -> None:
    with pytest.raises(ValueError):
        DiversityChecker(min_diversity=0.3, optimal_diversity=0.2)


def test_analyze_set_needs_two_samples() -> None:
    analysis = DiversityChecker().analyze_set([axis(0)])

    assert not analysis.is_good_set
    assert analysis.recommendation == "Need at least 2 samples"


def test_analyze_set_of_consistent_samples() -> None:
    samples = [with_similarity(0.9, 0, k) for k in (1, 2, 3)]

    analysis = DiversityChecker().analyze_set(samples)

    assert analysis.diversity_score == pytest.approx(0.19 / 0.25 * 100.0)
    assert analysis.quality_score == pytest.approx(76.0 * 0.6 + 81.0 * 0.4)
    assert not analysis.has_outlier
    assert analysis.is_good_set


def test_analyze_set_flags_outlier() -> None:
    cluster = [with_similarity(0.98, 0, k) for k in (1, 2, 3, 4)]
    samples = cluster + [axis(10)]

    analysis = DiversityChecker().analyze_set(samples)

    assert analysis.has_outlier
    assert analysis.outlier_indices == (4,)
    assert not analysis.is_good_set
    assert analysis.recommendation == "One sample may be incorrect - review captures"


def test_set_diversity_of_single_sample() -> None:
    assert DiversityChecker().set_diversity([axis(0)]) == 100.0


def test_recommended_pose_cycles() -> None:
    assert recommended_pose(0) == RECOMMENDED_POSES[0]
    assert recommended_pose(len(RECOMMENDED_POSES)) == RECOMMENDED_POSES[0]


@pytest.mark.parametrize(
    "previous, expected",
    [
        (None, "Capture first sample with neutral expression"),
        (10.0, "Change your facial expression or head angle more"),
        (45.0, "Good - try a slightly different angle"),
        (90.0, "Excellent variation! Continue with similar diversity"),
    ],
)
def test_suggestion_for_next_capture(previous, expected) -> None:
    assert suggestion_for_next_capture(previous) == expected

