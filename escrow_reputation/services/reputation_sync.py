"""Reputation registry sync.

Recomputes the denormalised reputation_registry rows for a user from their
reviews. The freelancer row blends in a freshly computed trust score; the
client row uses a neutral trust of 50. A freelancer whose reputation level
reaches silver or above is also awarded a REPUTATION_<LEVEL> record, once
per level.
"""

from datetime import datetime, timezone
from typing import Literal, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.errors import UserNotFoundError
from escrow_reputation.metrics import achievements_awarded
from escrow_reputation.queries.achievements import record_achievement_mint
from escrow_reputation.queries.reputation import upsert_reputation_registry
from escrow_reputation.queries.reviews import get_client_review_stats, get_freelancer_review_stats
from escrow_reputation.queries.users import get_user
from escrow_reputation.services.trust import calculate_trust_score

log = structlog.get_logger()

ReputationLevel = Literal["bronze", "silver", "gold", "platinum", "diamond"]

CLIENT_TRUST_SCORE = 50
MIN_BADGE_SCORE = 40


def calculate_reputation_score(total_reviews: int, average_rating: float, trust_score: int = 50) -> int:
    """Blend review volume (40%), average rating (40%) and trust (20%) into 0-100.

    Volume saturates at 50 reviews.
    """
    volume = min(total_reviews * 2, 100)
    rating = average_rating / 5 * 100
    score = int(volume * 0.4 + rating * 0.4 + trust_score * 0.2 + 0.5)
    return max(0, min(100, score))


def get_reputation_level(score: int) -> ReputationLevel:
    if score >= 90:
        return "diamond"
    if score >= 75:
        return "platinum"
    if score >= 60:
        return "gold"
    if score >= 40:
        return "silver"
    return "bronze"


async def sync_reputation_from_reviews(
    db: AsyncSession, user_id: int, now: Optional[datetime] = None
) -> dict[str, int]:
    """Rewrite the user's reputation rows from their current reviews.

    Roles with no reviews are left untouched.

    Returns:
        Reputation score per synced role, e.g. {"freelancer": 82}.

    Raises:
        UserNotFoundError: If the user does not exist.
    """
    now = now or datetime.now(timezone.utc)
    if await get_user(db, user_id) is None:
        raise UserNotFoundError(user_id)

    synced: dict[str, int] = {}

    freelancer_stats = await get_freelancer_review_stats(db, user_id)
    if freelancer_stats.total_reviews > 0:
        trust = await calculate_trust_score(db, user_id, now)
        score = calculate_reputation_score(
            freelancer_stats.total_reviews, freelancer_stats.average_rating, trust.score
        )
        await upsert_reputation_registry(
            db,
            user_id,
            is_freelancer=True,
            total_reviews=freelancer_stats.total_reviews,
            average_rating=freelancer_stats.average_rating,
            reputation_score=score,
            trust_score=trust.score,
            details={"trustScore": trust.score, "trustLevel": trust.tier, "lastSynced": now.isoformat()},
        )
        synced["freelancer"] = score

        level = get_reputation_level(score)
        if score >= MIN_BADGE_SCORE:
            badge_id = f"REPUTATION_{level.upper()}"
            if await record_achievement_mint(db, user_id, badge_id):
                achievements_awarded.labels(achievement_id=badge_id).inc()
                log.info("reputation_badge_awarded", user_id=user_id, level=level)

    client_stats = await get_client_review_stats(db, user_id)
    if client_stats.total_reviews > 0:
        score = calculate_reputation_score(
            client_stats.total_reviews, client_stats.average_rating, CLIENT_TRUST_SCORE
        )
        await upsert_reputation_registry(
            db,
            user_id,
            is_freelancer=False,
            total_reviews=client_stats.total_reviews,
            average_rating=client_stats.average_rating,
            reputation_score=score,
            trust_score=CLIENT_TRUST_SCORE,
            details={"lastSynced": now.isoformat()},
        )
        synced["client"] = score

    log.info("reputation_synced", user_id=user_id, **synced)
    return synced
