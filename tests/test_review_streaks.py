"""Tests for on-time review streaks in escrow_reputation.services.review_streaks."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from escrow_reputation.schemas import ReviewStreak
from escrow_reputation.services import review_streaks
from escrow_reputation.services.review_streaks import advance_streak, streak_multiplier
from tests.conftest import returning

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)
USER_ID = 4


def _days_ago(days: int) -> datetime:
    return NOW - timedelta(days=days)


class TestMultiplier:
    def test_grows_a_quarter_per_review(self):
        assert streak_multiplier(1) == 1.25
        assert streak_multiplier(4) == 2.0

    def test_capped(self):
        assert streak_multiplier(8) == 3.0
        assert streak_multiplier(100) == 3.0


class TestAdvanceStreak:
    def test_first_on_time_review(self):
        update = advance_streak(ReviewStreak(), completed_at=_days_ago(2), reviewed_at=NOW)
        assert update.streak.current == 1
        assert update.streak.longest == 1
        assert update.streak.total_on_time == 1
        assert update.streak.last_review_date == NOW
        assert update.xp_bonus == 12
        assert not update.streak_broken

    def test_consecutive_reviews_extend(self):
        current = ReviewStreak(current=2, longest=5, last_review_date=_days_ago(10), total_on_time=9)
        update = advance_streak(current, completed_at=_days_ago(1), reviewed_at=NOW)
        assert update.streak.current == 3
        assert update.streak.longest == 5
        assert update.xp_bonus == 17
        assert update.milestone_reached

    def test_late_review_resets(self):
        current = ReviewStreak(current=4, longest=4, last_review_date=_days_ago(3), total_on_time=4)
        update = advance_streak(current, completed_at=_days_ago(8), reviewed_at=NOW)
        assert update.streak.current == 0
        assert update.streak.longest == 4
        assert update.streak.total_on_time == 4
        assert update.streak.last_review_date == _days_ago(3)
        assert update.streak_broken
        assert update.xp_bonus == 0

    def test_late_review_without_streak_is_not_a_break(self):
        update = advance_streak(ReviewStreak(), completed_at=_days_ago(30), reviewed_at=NOW)
        assert not update.streak_broken

    def test_long_gap_restarts_at_one(self):
        current = ReviewStreak(current=6, longest=6, last_review_date=_days_ago(15), total_on_time=6)
        update = advance_streak(current, completed_at=_days_ago(1), reviewed_at=NOW)
        assert update.streak.current == 1
        assert update.streak_broken
        assert update.streak.total_on_time == 7

    def test_window_boundary_is_inclusive(self):
        update = advance_streak(ReviewStreak(), completed_at=_days_ago(7), reviewed_at=NOW)
        assert update.streak.current == 1


class TestUpdateReviewStreak:
    @pytest.fixture
    def reviewer(self, monkeypatch, store):
        store.install(monkeypatch, review_streaks)
        events = []

        async def check_and_award_achievements(db, user_id, event):
            events.append(event)
            return []

        monkeypatch.setattr(review_streaks, "check_and_award_achievements", check_and_award_achievements)
        monkeypatch.setattr(review_streaks, "get_job_by_id", returning(SimpleNamespace(completed_at=_days_ago(1))))
        store.events = events
        return store

    async def test_streak_persisted_and_xp_paid(self, db, reviewer):
        update = await review_streaks.update_review_streak(db, USER_ID, job_id=1, now=NOW)
        assert update.streak.current == 1
        stored = reviewer.stats[USER_ID]["reviewStreak"]
        assert stored["current"] == 1
        assert stored["totalOnTime"] == 1
        assert reviewer.xp == [(USER_ID, 12, "review_streak")]

    async def test_milestone_pays_bonus_and_fires_event(self, db, reviewer):
        reviewer.stats[USER_ID]["reviewStreak"] = {
            "current": 2,
            "longest": 2,
            "lastReviewDate": _days_ago(4).isoformat(),
            "totalOnTime": 2,
        }
        await review_streaks.update_review_streak(db, USER_ID, job_id=1, now=NOW)
        assert reviewer.xp_total(USER_ID) == 17 + 50
        assert reviewer.events == ["review_streak_3"]

    async def test_uncompleted_job_leaves_streak(self, db, reviewer, monkeypatch):
        monkeypatch.setattr(review_streaks, "get_job_by_id", returning(SimpleNamespace(completed_at=None)))
        update = await review_streaks.update_review_streak(db, USER_ID, job_id=1, now=NOW)
        assert update.streak.current == 0
        assert reviewer.xp == []


class TestStreakAtRisk:
    @pytest.mark.parametrize("days,at_risk", [(2, False), (5, True), (13, True), (14, False)])
    async def test_risk_window(self, db, store, monkeypatch, days, at_risk):
        store.install(monkeypatch, review_streaks)
        store.stats[USER_ID]["reviewStreak"] = {"current": 3, "lastReviewDate": _days_ago(days).isoformat()}
        assert await review_streaks.check_streak_at_risk(db, USER_ID, NOW) is at_risk

    async def test_no_streak_is_never_at_risk(self, db, store, monkeypatch):
        store.install(monkeypatch, review_streaks)
        assert not await review_streaks.check_streak_at_risk(db, USER_ID, NOW)


class TestTopReviewers:
    async def test_ranked_by_streak_then_reviews(self, db, monkeypatch):
        rows = [
            (1, "Ada", 3, {"reviewStreak": {"current": 2, "longest": 4}}),
            (2, "Bo", 5, {"reviewStreak": {"current": 5, "longest": 5}}),
            (3, "Cy", 1, {"reviewStreak": {"current": 2, "longest": 2}}),
            (4, "Di", 2, {}),
        ]
        monkeypatch.setattr(review_streaks, "get_users_with_game_stats", returning(rows))
        monkeypatch.setattr(review_streaks, "count_reviews_written_by_users", returning({1: 3, 3: 9}))

        top = await review_streaks.get_top_reviewers(db, limit=3)
        assert [r["user_id"] for r in top] == [2, 3, 1]
        assert top[1]["total_reviews"] == 9
