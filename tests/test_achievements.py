"""Tests for achievement triggers in escrow_reputation.services.achievements."""

import pytest

from escrow_reputation.schemas import ReviewStats
from escrow_reputation.services import achievements
from escrow_reputation.services.achievements import (
    ALL_ACHIEVEMENTS,
    TRIGGER_EVENTS,
    achievements_for_event,
    check_and_award_achievements,
)
from tests.conftest import returning

USER_ID = 3


class TestEventMapping:
    def test_unknown_event_evaluates_nothing(self):
        assert achievements_for_event("no_such_event") == []

    @pytest.mark.parametrize("event", ["trade_completed", "battle_won"])
    def test_unmapped_trigger_events_evaluate_nothing(self, event):
        assert event in TRIGGER_EVENTS
        assert achievements_for_event(event) == []

    def test_review_events_share_rules(self):
        ids = [rule.id for rule in achievements_for_event("review_submitted")]
        assert ids == [rule.id for rule in achievements_for_event("rating_milestone")]
        assert "REPUTATION_LEGEND" in ids

    @pytest.mark.parametrize("count", [5, 10, 25, 50])
    def test_referral_milestone_events(self, count):
        assert [rule.id for rule in achievements_for_event(f"referral_milestone_{count}")] == [
            f"REFERRAL_MILESTONE_{count}"
        ]

    def test_review_streak_event(self):
        assert [rule.id for rule in achievements_for_event("review_streak_7")] == ["REVIEW_STREAK_7"]

    def test_all_achievements_are_unique(self):
        ids = [rule.id for rule in ALL_ACHIEVEMENTS]
        assert len(ids) == len(set(ids))
        assert "SKILL_MASTER" in ids


@pytest.fixture
def reviewed_user(monkeypatch):
    """30 freelancer reviews averaging 4.9, no client reviews, nothing held yet."""
    held: set[str] = set()
    minted: list[str] = []

    async def user_has_achievement(db, user_id, achievement_id):
        return achievement_id in held

    async def record_achievement_mint(db, user_id, achievement_id):
        if achievement_id in held:
            return False
        held.add(achievement_id)
        minted.append(achievement_id)
        return True

    monkeypatch.setattr(achievements, "user_has_achievement", user_has_achievement)
    monkeypatch.setattr(achievements, "record_achievement_mint", record_achievement_mint)
    monkeypatch.setattr(
        achievements,
        "get_freelancer_review_stats",
        returning(ReviewStats(total_reviews=30, average_rating=4.9)),
    )
    monkeypatch.setattr(achievements, "get_client_review_stats", returning(ReviewStats()))
    return held, minted


class TestCheckAndAward:
    async def test_awards_passing_rules_in_order(self, db, reviewed_user):
        awarded = await check_and_award_achievements(db, USER_ID, "review_submitted")
        assert awarded == ["FIVE_STAR_FREELANCER", "TRUSTED_EXPERT"]

    async def test_is_idempotent(self, db, reviewed_user):
        """A second trigger for the same event mints nothing new."""
        await check_and_award_achievements(db, USER_ID, "review_submitted")
        assert await check_and_award_achievements(db, USER_ID, "review_submitted") == []
        _, minted = reviewed_user
        assert minted == ["FIVE_STAR_FREELANCER", "TRUSTED_EXPERT"]

    async def test_held_achievement_is_skipped(self, db, reviewed_user):
        held, _ = reviewed_user
        held.add("FIVE_STAR_FREELANCER")
        assert await check_and_award_achievements(db, USER_ID, "review_submitted") == ["TRUSTED_EXPERT"]

    async def test_failing_rule_does_not_block_others(self, db, reviewed_user, monkeypatch):
        async def broken(*args, **kwargs):
            raise RuntimeError("statement timeout")

        monkeypatch.setattr(achievements, "get_client_review_stats", broken)
        awarded = await check_and_award_achievements(db, USER_ID, "review_submitted")
        assert awarded == ["FIVE_STAR_FREELANCER", "TRUSTED_EXPERT"]

    async def test_lost_race_is_not_reported(self, db, reviewed_user, monkeypatch):
        """The unique constraint fired in another transaction: no award reported."""
        monkeypatch.setattr(achievements, "record_achievement_mint", returning(False))
        assert await check_and_award_achievements(db, USER_ID, "review_submitted") == []

    async def test_skill_master_counts_strong_skills(self, db, reviewed_user, monkeypatch):
        ratings = {f"skill-{i}": 4.6 for i in range(10)}
        monkeypatch.setattr(achievements, "get_skill_ratings", returning(ratings))
        assert await check_and_award_achievements(db, USER_ID, "skill_endorsed") == ["SKILL_MASTER"]

    async def test_skill_master_needs_ten(self, db, reviewed_user, monkeypatch):
        ratings = {f"skill-{i}": 4.6 for i in range(9)} | {"cobol": 3.0}
        monkeypatch.setattr(achievements, "get_skill_ratings", returning(ratings))
        assert await check_and_award_achievements(db, USER_ID, "skill_endorsed") == []

    async def test_review_streak_uses_longest(self, db, reviewed_user, monkeypatch):
        monkeypatch.setattr(
            achievements,
            "get_stats",
            returning({"reviewStreak": {"current": 0, "longest": 7}}),
        )
        assert await check_and_award_achievements(db, USER_ID, "review_streak_7") == ["REVIEW_STREAK_7"]
