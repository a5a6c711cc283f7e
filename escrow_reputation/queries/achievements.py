"""Achievement record queries.

record_achievement_mint relies on ACHIEVEMENT_UNIQUE_CONSTRAINT: a second
mint of the same (user, achievement) inside a savepoint fails with an
IntegrityError, which is reported as "not minted" instead of propagating.
"""

from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.models.achievement import ACHIEVEMENT_UNIQUE_CONSTRAINT, Achievement

log = structlog.get_logger()


async def user_has_achievement(db: AsyncSession, user_id: int, achievement_id: str) -> bool:
    result = await db.execute(
        select(Achievement.id)
        .where(Achievement.user_id == user_id)
        .where(Achievement.achievement_id == achievement_id)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def record_achievement_mint(
    db: AsyncSession,
    user_id: int,
    achievement_id: str,
    token_id: Optional[str] = None,
    tx_hash: Optional[str] = None,
) -> bool:
    """Record that ``achievement_id`` was awarded to the user.

    Returns:
        True if a new record was written, False if the user already had it.
    """
    try:
        async with db.begin_nested():
            db.add(
                Achievement(
                    user_id=user_id,
                    achievement_id=achievement_id,
                    token_id=token_id,
                    tx_hash=tx_hash,
                )
            )
    except IntegrityError as exc:
        if ACHIEVEMENT_UNIQUE_CONSTRAINT in str(exc.orig):
            log.info("achievement_already_recorded", user_id=user_id, achievement_id=achievement_id)
            return False
        raise
    return True


async def get_user_achievements(db: AsyncSession, user_id: int) -> list[Achievement]:
    result = await db.execute(
        select(Achievement)
        .where(Achievement.user_id == user_id)
        .order_by(Achievement.minted_at.desc())
    )
    return list(result.scalars().all())
