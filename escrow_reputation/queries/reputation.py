from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.models.reputation import REPUTATION_UNIQUE_CONSTRAINT, ReputationRegistry


async def upsert_reputation_registry(
    db: AsyncSession,
    user_id: int,
    is_freelancer: bool,
    total_reviews: int,
    average_rating: float,
    reputation_score: int,
    trust_score: int,
    details: Optional[dict] = None,
) -> None:
    """Insert or overwrite the (user, role) reputation row."""
    values = {
        "total_reviews": total_reviews,
        "average_rating": Decimal(str(round(average_rating, 2))),
        "reputation_score": reputation_score,
        "trust_score": trust_score,
        "metadata": details or {},
        "last_updated": func.now(),
    }
    # Keys are table column names; the metadata column is mapped as .details
    stmt = pg_insert(ReputationRegistry.__table__).values(
        user_id=user_id, is_freelancer=is_freelancer, **values
    )
    await db.execute(
        stmt.on_conflict_do_update(constraint=REPUTATION_UNIQUE_CONSTRAINT, set_=values)
    )


async def get_user_reputation(
    db: AsyncSession, user_id: int, is_freelancer: bool = True
) -> Optional[ReputationRegistry]:
    result = await db.execute(
        select(ReputationRegistry)
        .where(ReputationRegistry.user_id == user_id)
        .where(ReputationRegistry.is_freelancer.is_(is_freelancer))
    )
    return result.scalar_one_or_none()


async def get_top_reputation_users(
    db: AsyncSession, is_freelancer: bool = True, limit: int = 10
) -> list[ReputationRegistry]:
    result = await db.execute(
        select(ReputationRegistry)
        .where(ReputationRegistry.is_freelancer.is_(is_freelancer))
        .order_by(ReputationRegistry.reputation_score.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
