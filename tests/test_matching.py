"""Unit tests for multi-sample matching strategies."""

import numpy as np
import pytest

from facegate.data_models import NO_MATCH, Matched, MatchStrategy, NoMatch
from facegate.exceptions import DimensionMismatchError
from facegate.matching import (
    confidence_band,
    group_by_identity,
    match_face,
    match_single,
    score_identities,
    score_samples,
)

from conftest import axis, with_similarity


def _gallery_with(identity_id, similarities, base=0, first_axis=1):
    return [
        (identity_id, with_similarity(s, base, first_axis + i))
        for i, s in enumerate(similarities)
    ]


def test_empty_gallery_yields_no_match() -> None:
    decision = match_face(axis(0), [], 0.7, MatchStrategy.BEST)

    assert decision is NO_MATCH
    assert isinstance(decision, NoMatch)
    assert not decision.is_match
    assert decision.confidence == 0.0


def test_single_sample_best_match() -> None:
    gallery = _gallery_with("alice", [0.95])

    decision = match_face(axis(0), gallery, 0.7, MatchStrategy.BEST)

    assert isinstance(decision, Matched)
    assert decision.identity_id == "alice"
    assert decision.confidence == pytest.approx(0.95)


def test_voting_uses_mean_of_passing_samples() -> None:
    gallery = _gallery_with("alice", [0.82, 0.78, 0.85, 0.77, 0.81])

    decision = match_face(
        axis(0), gallery, 0.75, MatchStrategy.VOTING, vote_fraction=0.5
    )

    assert decision.is_match
    assert decision.confidence == pytest.approx((0.82 + 0.85 + 0.81) / 3)
    assert round(decision.confidence, 4) == 0.8267


def test_voting_fails_when_too_few_samples_pass() -> None:
    gallery = _gallery_with("alice", [0.9, 0.6, 0.6, 0.6])

    decision = match_face(
        axis(0), gallery, 0.75, MatchStrategy.VOTING, vote_fraction=0.5
    )

    assert decision is NO_MATCH


def test_voting_with_no_passing_samples_scores_zero() -> None:
    assert score_samples([0.2, 0.3], MatchStrategy.VOTING, threshold=0.75) == 0.0


def test_voting_score_cannot_increase_with_higher_vote_fraction() -> None:
    similarities = [0.82, 0.78, 0.85, 0.77, 0.81]
    scores = [
        score_samples(similarities, MatchStrategy.VOTING, 0.8, fraction)
        for fraction in np.linspace(0.0, 1.0, 11)
    ]

    assert all(later <= earlier for earlier, later in zip(scores, scores[1:]))


def test_best_and_average_scores() -> None:
    similarities = [0.9, 0.7, 0.5]

    assert score_samples(similarities, MatchStrategy.BEST) == pytest.approx(0.9)
    assert score_samples(similarities, MatchStrategy.AVERAGE) == pytest.approx(0.7)


def test_weighted_average_leans_towards_best_sample() -> None:
    similarities = [0.9, 0.5]
    weighted = score_samples(similarities, MatchStrategy.WEIGHTED_AVERAGE)

    assert 0.7 < weighted < 0.9
    expected = (0.9 * np.exp(4.5) + 0.5 * np.exp(2.5)) / (np.exp(4.5) + np.exp(2.5))
    assert weighted == pytest.approx(expected)


def test_highest_scoring_identity_wins() -> None:
    gallery = _gallery_with("alice", [0.80], first_axis=1) + _gallery_with(
        "bob", [0.92], first_axis=2
    )

    decision = match_face(axis(0), gallery, 0.7, MatchStrategy.BEST)

    assert decision.identity_id == "bob"


def test_equal_scores_resolve_to_lowest_identity_id() -> None:
    gallery = _gallery_with("bob", [0.9], first_axis=1) + _gallery_with(
        "alice", [0.9], first_axis=2
    )

    decision = match_face(axis(0), gallery, 0.7, MatchStrategy.BEST)

    assert decision.identity_id == "alice"


@pytest.mark.parametrize("strategy", list(MatchStrategy))
def test_matching_is_idempotent(strategy: MatchStrategy) -> None:
    gallery = _gallery_with("alice", [0.82, 0.78, 0.85]) + _gallery_with(
        "bob", [0.74, 0.76], first_axis=5
    )

    first = match_face(axis(0), gallery, 0.72, strategy)
    second = match_face(axis(0), gallery, 0.72, strategy)

    assert first == second


def test_below_threshold_is_no_match() -> None:
    gallery = _gallery_with("alice", [0.65, 0.6])

    assert match_face(axis(0), gallery, 0.72) is NO_MATCH


def test_match_single_uses_best_sample() -> None:
    gallery = _gallery_with("alice", [0.5, 0.9])

    decision = match_single(axis(0), gallery, 0.72)

    assert decision.confidence == pytest.approx(0.9)


def test_dimension_mismatch_in_gallery_raises() -> None:
    with pytest.raises(DimensionMismatchError):
        match_face(axis(0), [("alice", np.ones(4))], 0.7)


def test_score_identities_orders_candidates() -> None:
    gallery = _gallery_with("carol", [0.3], first_axis=1) + _gallery_with(
        "alice", [0.8], first_axis=2
    )

    candidates = score_identities(axis(0), gallery, 0.7, MatchStrategy.BEST)

    assert [c.identity_id for c in candidates] == ["alice", "carol"]


def test_group_by_identity_keeps_order() -> None:
    gallery = [("a", axis(0)), ("b", axis(1)), ("a", axis(2))]

    grouped = group_by_identity(gallery)

    assert list(grouped) == ["a", "b"]
    assert len(grouped["a"]) == 2


@pytest.mark.parametrize(
    "confidence, band", [(0.95, "very_strong"), (0.85, "strong"), (0.75, "standard")]
)
def test_confidence_band(confidence: float, band: str) -> None:
    assert confidence_band(confidence) == band


def test_mixed_identity_id_types_can_tie() -> None:
    gallery = _gallery_with("a", [0.9], first_axis=1) + _gallery_with(
        1, [0.9], first_axis=2
    )

    decision = match_face(axis(0), gallery, 0.7, MatchStrategy.BEST)

    assert decision.identity_id == 1
    assert [c.identity_id for c in score_identities(axis(0), gallery, 0.7)] == [1, "a"]
