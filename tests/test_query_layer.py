"""Tests for escrow_reputation.queries against a real database.

Each test gets a fresh SQLite file built from Base.metadata. SQLite has no
row locks, so the stats test interleaves two sessions by hand to show that
update_stats re-reads the blob instead of trusting a copy already loaded
into the session.
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from escrow_reputation.errors import DisputeError, ReputationError
from escrow_reputation.models import (
    Base,
    FaqCategory,
    FaqItem,
    FreelancerReview,
    JobPosting,
    ReferralConversion,
    ReferralLink,
    User,
    UserGameData,
    VerificationBadge,
)
from escrow_reputation.queries.disputes import create_review_dispute, resolve_dispute
from escrow_reputation.queries.faq import vote_faq_helpfulness
from escrow_reputation.queries.referrals import create_referral_conversion
from escrow_reputation.queries.users import get_game_data, get_stats, update_stats
from escrow_reputation.queries.verification import get_active_badge_types, get_user_verification_badges

CLIENT_ID = 1
FREELANCER_ID = 2
OUTSIDER_ID = 3
ADMIN_ID = 4


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'escrow.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sessions(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
async def session(sessions):
    async with sessions() as session:
        users = [
            User(id=user_id, wallet_address=f"0x{user_id:040x}")
            for user_id in (CLIENT_ID, FREELANCER_ID, OUTSIDER_ID, ADMIN_ID)
        ]
        session.add_all(users)
        await session.commit()
        yield session


async def add_review(session, is_public=True) -> int:
    job = JobPosting(client_id=CLIENT_ID, freelancer_id=FREELANCER_ID, title="Logo", status="completed")
    session.add(job)
    await session.flush()
    review = FreelancerReview(
        job_id=job.id, reviewer_id=CLIENT_ID, freelancer_id=FREELANCER_ID, rating=2, is_public=is_public
    )
    session.add(review)
    await session.commit()
    return review.id


async def review_is_public(session, review_id):
    result = await session.execute(select(FreelancerReview.is_public).where(FreelancerReview.id == review_id))
    return result.scalar_one_or_none()


class TestStatsLock:
    async def test_loaded_row_does_not_hide_a_concurrent_write(self, sessions, session):
        """A writer that already holds the row still sees keys committed by another session."""
        session.add(UserGameData(user_id=FREELANCER_ID, stats={}))
        await session.commit()

        async with sessions() as first, sessions() as second:
            held = await get_game_data(first, FREELANCER_ID)
            assert held.stats == {}

            await update_stats(second, FREELANCER_ID, lambda stats: stats.update(referral={"total": 1}))
            await second.commit()

            await update_stats(first, FREELANCER_ID, lambda stats: stats.update(trustScore={"score": 70}))
            await first.commit()
            assert "referral" in held.stats

        async with sessions() as reader:
            stats = await get_stats(reader, FREELANCER_ID)
        assert stats == {"referral": {"total": 1}, "trustScore": {"score": 70}}

    async def test_mutate_result_is_returned(self, session):
        outcome = await update_stats(session, FREELANCER_ID, lambda stats: stats.setdefault("reviewStreak", 3))
        await session.commit()
        assert outcome == 3
        assert await get_stats(session, FREELANCER_ID) == {"reviewStreak": 3}


class TestReviewDisputes:
    async def test_opening_hides_the_review(self, session):
        review_id = await add_review(session)
        await create_review_dispute(session, FREELANCER_ID, review_id, "freelancer", "unfair", "Not my work")
        await session.commit()
        assert await review_is_public(session, review_id) is False

    async def test_only_parties_may_dispute(self, session):
        """Someone who neither wrote nor received the review is turned away."""
        review_id = await add_review(session)
        with pytest.raises(DisputeError):
            await create_review_dispute(session, OUTSIDER_ID, review_id, "freelancer", "unfair", "Spite")
        assert await review_is_public(session, review_id) is True

    async def test_one_dispute_per_review(self, session):
        review_id = await add_review(session)
        await create_review_dispute(session, FREELANCER_ID, review_id, "freelancer", "unfair", "First")
        await session.commit()
        with pytest.raises(DisputeError):
            await create_review_dispute(session, CLIENT_ID, review_id, "freelancer", "unfair", "Second")

    async def test_dismissed_restores_visibility(self, session):
        review_id = await add_review(session)
        dispute = await create_review_dispute(session, FREELANCER_ID, review_id, "freelancer", "unfair", "x")
        await session.commit()

        await resolve_dispute(session, dispute.id, ADMIN_ID, "dismissed", "none")
        await session.commit()

        assert await review_is_public(session, review_id) is True
        assert dispute.status == "resolved"

    async def test_upheld_removal_deletes_the_review(self, session):
        review_id = await add_review(session)
        dispute = await create_review_dispute(session, FREELANCER_ID, review_id, "freelancer", "fake", "x")
        await session.commit()

        await resolve_dispute(session, dispute.id, ADMIN_ID, "upheld", "review_removed")
        await session.commit()

        assert await review_is_public(session, review_id) is None

    async def test_upheld_hiding_keeps_the_review_private(self, session):
        review_id = await add_review(session)
        dispute = await create_review_dispute(session, FREELANCER_ID, review_id, "freelancer", "fake", "x")
        await session.commit()

        await resolve_dispute(session, dispute.id, ADMIN_ID, "upheld", "review_hidden")
        await session.commit()

        assert await review_is_public(session, review_id) is False

    async def test_unknown_resolution(self, session):
        review_id = await add_review(session)
        dispute = await create_review_dispute(session, FREELANCER_ID, review_id, "freelancer", "fake", "x")
        with pytest.raises(DisputeError):
            await resolve_dispute(session, dispute.id, ADMIN_ID, "ignored", "none")


class TestReferralConversion:
    async def add_link(self, session, code="REFABC", **fields):
        session.add(ReferralLink(user_id=CLIENT_ID, code=code, **fields))
        await session.commit()

    async def conversion_count(self, session, code="REFABC"):
        result = await session.execute(select(ReferralLink.conversion_count).where(ReferralLink.code == code))
        return result.scalar_one()

    async def test_conversion_is_recorded_and_counted(self, session):
        await self.add_link(session)
        conversion = await create_referral_conversion(session, "REFABC", FREELANCER_ID)
        await session.commit()

        assert conversion.referrer_id == CLIENT_ID
        assert conversion.referrer_reward_status == "pending"
        assert await self.conversion_count(session) == 1

    async def test_self_referral_is_rejected(self, session):
        await self.add_link(session)
        assert await create_referral_conversion(session, "REFABC", CLIENT_ID) is None
        assert await self.conversion_count(session) == 0

    async def test_referee_converts_once(self, session):
        """A second signup code for an already referred user is ignored."""
        await self.add_link(session)
        await self.add_link(session, code="REFXYZ")
        await create_referral_conversion(session, "REFABC", FREELANCER_ID)
        await session.commit()

        assert await create_referral_conversion(session, "REFXYZ", FREELANCER_ID) is None
        result = await session.execute(select(ReferralConversion).where(ReferralConversion.referee_id == FREELANCER_ID))
        assert len(result.scalars().all()) == 1
        assert await self.conversion_count(session, "REFXYZ") == 0

    async def test_inactive_link_is_rejected(self, session):
        await self.add_link(session, is_active=False)
        assert await create_referral_conversion(session, "REFABC", FREELANCER_ID) is None

    async def test_expired_link_is_rejected(self, session):
        await self.add_link(session, expires_at=datetime.now(timezone.utc) - timedelta(days=1))
        assert await create_referral_conversion(session, "REFABC", FREELANCER_ID) is None

    async def test_link_before_expiry_converts(self, session):
        await self.add_link(session, expires_at=datetime.now(timezone.utc) + timedelta(days=1))
        assert await create_referral_conversion(session, "REFABC", FREELANCER_ID) is not None

    async def test_unknown_code(self, session):
        assert await create_referral_conversion(session, "REFNOPE", FREELANCER_ID) is None


class TestFaqVotes:
    @pytest.fixture
    async def item_id(self, session):
        category = FaqCategory(name="Payments", slug="payments")
        session.add(category)
        await session.flush()
        item = FaqItem(category_id=category.id, question="When am I paid?", answer="On approval.")
        session.add(item)
        await session.commit()
        return item.id

    async def counts(self, session, item_id):
        result = await session.execute(
            select(FaqItem.helpful_count, FaqItem.not_helpful_count).where(FaqItem.id == item_id)
        )
        return tuple(result.one())

    async def test_first_vote_counts_once(self, session, item_id):
        await vote_faq_helpfulness(session, item_id, True, user_id=CLIENT_ID)
        await vote_faq_helpfulness(session, item_id, False, session_id="anon-1")
        await session.commit()
        assert await self.counts(session, item_id) == (1, 1)

    async def test_changed_vote_moves_the_count(self, session, item_id):
        await vote_faq_helpfulness(session, item_id, True, user_id=CLIENT_ID)
        await vote_faq_helpfulness(session, item_id, False, user_id=CLIENT_ID)
        await session.commit()
        assert await self.counts(session, item_id) == (0, 1)

    async def test_repeated_vote_changes_nothing(self, session, item_id):
        await vote_faq_helpfulness(session, item_id, True, session_id="anon-1")
        await vote_faq_helpfulness(session, item_id, True, session_id="anon-1")
        await session.commit()
        assert await self.counts(session, item_id) == (1, 0)

    async def test_anonymous_voter_needs_a_session(self, session, item_id):
        with pytest.raises(ReputationError):
            await vote_faq_helpfulness(session, item_id, True)


class TestActiveBadges:
    async def test_expired_and_revoked_badges_are_not_active(self, session):
        now = datetime.now(timezone.utc)
        session.add_all(
            [
                VerificationBadge(user_id=FREELANCER_ID, badge_type="email"),
                VerificationBadge(user_id=FREELANCER_ID, badge_type="kyc", expires_at=now + timedelta(days=30)),
                VerificationBadge(user_id=FREELANCER_ID, badge_type="phone", expires_at=now - timedelta(days=1)),
                VerificationBadge(user_id=FREELANCER_ID, badge_type="identity", is_active=False),
            ]
        )
        await session.commit()

        assert sorted(await get_active_badge_types(session, FREELANCER_ID)) == ["email", "kyc"]
        every_badge = await get_user_verification_badges(session, FREELANCER_ID, active_only=False)
        assert len(every_badge) == 4
