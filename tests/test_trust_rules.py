"""Unit tests for the trust sub-score rules in escrow_reputation.services.trust.

Validates each of the six sub-score rules, the weighted total, tiers,
milestones, recommendations and the inactivity decay factor. All pure
functions; no database.
"""

from datetime import datetime, timezone

import pytest

from escrow_reputation.schemas import DisputeAggregate, EndorsementAggregate, ReviewAggregate, TrustScoreComponents
from escrow_reputation.services.trust import (
    activity_score,
    build_result,
    completion_score,
    decay_factor,
    dispute_score,
    endorsement_score,
    get_next_milestone,
    get_recommendations,
    get_trust_score_badge,
    get_trust_tier,
    review_score,
    verification_score,
    weighted_total,
)


def _components(**overrides) -> TrustScoreComponents:
    values = dict(
        review_score=100,
        completion_score=100,
        verification_score=100,
        endorsement_score=100,
        activity_score=100,
        dispute_score=100,
    )
    values.update(overrides)
    return TrustScoreComponents(**values)


class TestReviewScore:
    def test_no_reviews_scores_zero(self):
        """A user nobody has reviewed gets no review credit."""
        assert review_score(ReviewAggregate(), ReviewAggregate()) == 0

    def test_rating_and_volume(self):
        """10 reviews at 4.8: 67.2 rating points + 20 volume points rounds to 87."""
        assert review_score(ReviewAggregate(count=10, average=4.8), ReviewAggregate()) == 87

    def test_roles_are_pooled_by_count(self):
        """5 reviews at 5.0 and 5 at 3.0 pool to a 4.0 average: 56 + 20."""
        score = review_score(ReviewAggregate(count=5, average=5.0), ReviewAggregate(count=5, average=3.0))
        assert score == 76

    def test_volume_points_are_capped(self):
        """Volume saturates at 30 points, so 200 perfect reviews score exactly 100."""
        assert review_score(ReviewAggregate(count=200, average=5.0), ReviewAggregate()) == 100


class TestCompletionScore:
    def test_no_jobs_is_neutral(self):
        assert completion_score(0, 0, 0) == 50

    def test_cancellations_are_penalised(self):
        """80% completed, 10% cancelled: 80 - 2."""
        assert completion_score(10, 8, 1) == 78

    def test_never_negative(self):
        """All cancelled: 0 - 20 clamps to 0."""
        assert completion_score(4, 0, 4) == 0


class TestVerificationScore:
    def test_duplicate_badges_count_once(self):
        assert verification_score(["email", "identity", "email"]) == 45

    def test_all_badges_cap_at_100(self):
        assert verification_score(["email", "identity", "phone", "professional", "kyc"]) == 100

    def test_unknown_badge_scores_nothing(self):
        assert verification_score(["carrier_pigeon"]) == 0


class TestEndorsementScore:
    def test_no_endorsements(self):
        assert endorsement_score(EndorsementAggregate()) == 0

    def test_rating_verified_share_and_diversity(self):
        """4 endorsements at 5.0, half verified, 3 endorsers: 40 + 15 + 15."""
        aggregate = EndorsementAggregate(count=4, average_rating=5.0, verified_count=2, unique_endorsers=3)
        assert endorsement_score(aggregate) == 70


class TestActivityScore:
    def test_each_part_is_capped(self):
        assert activity_score(login_streak=10, recent_jobs=5, level=20) == 100

    def test_small_values(self):
        assert activity_score(login_streak=1, recent_jobs=0, level=1) == 8


class TestDisputeScore:
    def test_no_disputes_is_perfect(self):
        assert dispute_score(DisputeAggregate()) == 100

    def test_rounds_half_up(self):
        """2 upheld and 1 dismissed of 4: 100 - 25 + 2.5 = 77.5 rounds to 78, not 77."""
        assert dispute_score(DisputeAggregate(total=4, upheld=2, dismissed=1)) == 78

    def test_all_upheld(self):
        assert dispute_score(DisputeAggregate(total=3, upheld=3)) == 50


class TestWeightedTotal:
    def test_all_perfect(self):
        assert weighted_total(_components()) == 100

    def test_weights(self):
        """24 + 15 + 6 + 6 + 3 + 5."""
        components = _components(
            review_score=80,
            completion_score=60,
            verification_score=40,
            endorsement_score=40,
            activity_score=30,
            dispute_score=100,
        )
        assert weighted_total(components) == 59


class TestTiersAndMilestones:
    @pytest.mark.parametrize(
        "score,tier",
        [(100, "diamond"), (90, "diamond"), (89, "platinum"), (80, "platinum"), (70, "gold"), (60, "silver"), (59, "bronze"), (0, "bronze")],
    )
    def test_tier_thresholds(self, score, tier):
        assert get_trust_tier(score) == tier

    @pytest.mark.parametrize("score,milestone", [(0, 60), (60, 70), (95, 100), (100, 100)])
    def test_next_milestone_is_strictly_above(self, score, milestone):
        assert get_next_milestone(score) == milestone

    def test_badge_follows_tier(self):
        assert get_trust_score_badge(95).name == "Diamond Trust"
        assert get_trust_score_badge(10).name == "Bronze Trust"


class TestRecommendations:
    def test_none_for_strong_profile(self):
        assert get_recommendations(_components()) == []

    def test_weak_components_get_advice(self):
        advice = get_recommendations(_components(verification_score=49, activity_score=10))
        assert advice == [
            "Get verified to increase trust",
            "Stay active on the platform to maintain trust",
        ]

    def test_disputes_never_recommend(self):
        assert get_recommendations(_components(dispute_score=0)) == []


class TestDecayFactor:
    def test_grace_period(self):
        assert decay_factor(0) == 1.0
        assert decay_factor(30) == 1.0

    def test_partial_week_does_not_decay(self):
        assert decay_factor(36) == 1.0

    def test_one_point_per_full_week(self):
        assert decay_factor(37) == pytest.approx(0.99)
        assert decay_factor(100) == pytest.approx(0.90)

    def test_floor(self):
        assert decay_factor(10_000) == pytest.approx(0.7)


class TestBuildResult:
    def test_result_is_consistent(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)
        result = build_result(_components(verification_score=0), now)
        assert result.score == 85
        assert result.tier == "platinum"
        assert result.next_milestone == 90
        assert "Get verified to increase trust" in result.recommendations

    def test_serialises_camel_case(self):
        result = build_result(_components(), datetime(2026, 1, 1, tzinfo=timezone.utc))
        dumped = result.model_dump(mode="json", by_alias=True)
        assert "lastCalculated" in dumped
        assert "reviewScore" in dumped["components"]
