"""Tests for escrow_reputation.services.reputation_sync."""

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from escrow_reputation.errors import UserNotFoundError
from escrow_reputation.schemas import ReviewStats
from escrow_reputation.services import reputation_sync
from escrow_reputation.services.reputation_sync import calculate_reputation_score, get_reputation_level
from tests.conftest import returning

NOW = datetime(2026, 4, 1, tzinfo=timezone.utc)
USER_ID = 9


class TestReputationScore:
    def test_new_user_with_neutral_trust(self):
        assert calculate_reputation_score(0, 0.0) == 10

    def test_maximum(self):
        assert calculate_reputation_score(50, 5.0, 100) == 100

    def test_blend(self):
        """20 volume points * .4 + 80 rating points * .4 + 70 trust * .2."""
        assert calculate_reputation_score(10, 4.0, 70) == 54

    @pytest.mark.parametrize(
        "score,level",
        [(95, "diamond"), (90, "diamond"), (75, "platinum"), (60, "gold"), (40, "silver"), (39, "bronze")],
    )
    def test_levels(self, score, level):
        assert get_reputation_level(score) == level


@pytest.fixture
def registry(monkeypatch):
    rows = []
    badges = []

    async def upsert_reputation_registry(db, user_id, **values):
        rows.append(values)

    async def record_achievement_mint(db, user_id, achievement_id):
        badges.append(achievement_id)
        return True

    monkeypatch.setattr(reputation_sync, "get_user", returning(SimpleNamespace(id=USER_ID)))
    monkeypatch.setattr(reputation_sync, "upsert_reputation_registry", upsert_reputation_registry)
    monkeypatch.setattr(reputation_sync, "record_achievement_mint", record_achievement_mint)
    monkeypatch.setattr(
        reputation_sync, "calculate_trust_score", returning(SimpleNamespace(score=80, tier="platinum"))
    )
    monkeypatch.setattr(
        reputation_sync,
        "get_freelancer_review_stats",
        returning(ReviewStats(total_reviews=50, average_rating=5.0)),
    )
    monkeypatch.setattr(reputation_sync, "get_client_review_stats", returning(ReviewStats()))
    return SimpleNamespace(rows=rows, badges=badges)


class TestSyncReputation:
    async def test_freelancer_row(self, db, registry):
        """40 + 40 + 16: diamond, so the diamond badge is recorded."""
        assert await reputation_sync.sync_reputation_from_reviews(db, USER_ID, NOW) == {"freelancer": 96}
        (row,) = registry.rows
        assert row["is_freelancer"] is True
        assert row["trust_score"] == 80
        assert row["details"] == {"trustScore": 80, "trustLevel": "platinum", "lastSynced": NOW.isoformat()}
        assert registry.badges == ["REPUTATION_DIAMOND"]

    async def test_client_row_uses_neutral_trust(self, db, registry, monkeypatch):
        monkeypatch.setattr(reputation_sync, "get_freelancer_review_stats", returning(ReviewStats()))
        monkeypatch.setattr(
            reputation_sync,
            "get_client_review_stats",
            returning(ReviewStats(total_reviews=5, average_rating=4.0)),
        )
        assert await reputation_sync.sync_reputation_from_reviews(db, USER_ID, NOW) == {"client": 46}
        (row,) = registry.rows
        assert row["is_freelancer"] is False
        assert row["trust_score"] == 50
        assert registry.badges == []

    async def test_no_reviews_writes_nothing(self, db, registry, monkeypatch):
        monkeypatch.setattr(reputation_sync, "get_freelancer_review_stats", returning(ReviewStats()))
        assert await reputation_sync.sync_reputation_from_reviews(db, USER_ID, NOW) == {}
        assert registry.rows == []

    async def test_unknown_user(self, db, registry, monkeypatch):
        monkeypatch.setattr(reputation_sync, "get_user", returning(None))
        with pytest.raises(UserNotFoundError):
            await reputation_sync.sync_reputation_from_reviews(db, USER_ID, NOW)
