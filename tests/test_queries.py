"""Tests for the database-free helpers in escrow_reputation.queries."""

import pytest

from escrow_reputation.errors import ReputationError
from escrow_reputation.models import ClientReview, FreelancerReview
from escrow_reputation.queries.referrals import CODE_LENGTH, CODE_PREFIX, generate_referral_code
from escrow_reputation.queries.reviews import review_model


class TestReferralCode:
    def test_format(self):
        code = generate_referral_code()
        assert code.startswith(CODE_PREFIX)
        suffix = code[len(CODE_PREFIX):]
        assert len(suffix) == CODE_LENGTH
        assert suffix.isalnum() and suffix == suffix.upper()

    def test_codes_differ(self):
        assert len({generate_referral_code() for _ in range(50)}) == 50


class TestReviewModel:
    def test_known_types(self):
        assert review_model("freelancer") is FreelancerReview
        assert review_model("client") is ClientReview

    def test_unknown_type(self):
        with pytest.raises(ReputationError):
            review_model("employer")
