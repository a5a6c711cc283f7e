"""Verification badge queries.

One badge row per (user, badge_type). Re-verifying upserts the row and
reactivates it. A badge counts as held while it is active and unexpired.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.models.reputation import BADGE_UNIQUE_CONSTRAINT, VerificationBadge


def _active_clause(now: datetime):
    return (
        VerificationBadge.is_active.is_(True),
        or_(VerificationBadge.expires_at.is_(None), VerificationBadge.expires_at > now),
    )


async def upsert_verification_badge(
    db: AsyncSession,
    user_id: int,
    badge_type: str,
    verification_level: str = "basic",
    verification_data: Optional[dict[str, Any]] = None,
    expires_at: Optional[datetime] = None,
) -> None:
    stmt = pg_insert(VerificationBadge).values(
        user_id=user_id,
        badge_type=badge_type,
        verification_level=verification_level,
        verification_data=verification_data or {},
        is_active=True,
        expires_at=expires_at,
    ).on_conflict_do_update(
        constraint=BADGE_UNIQUE_CONSTRAINT,
        set_={
            "verification_level": verification_level,
            "verification_data": verification_data or {},
            "is_active": True,
            "expires_at": expires_at,
            "verified_at": datetime.now(timezone.utc),
        },
    )
    await db.execute(stmt)


async def get_user_verification_badges(
    db: AsyncSession, user_id: int, active_only: bool = True
) -> list[VerificationBadge]:
    stmt = select(VerificationBadge).where(VerificationBadge.user_id == user_id)
    if active_only:
        stmt = stmt.where(*_active_clause(datetime.now(timezone.utc)))
    result = await db.execute(stmt.order_by(VerificationBadge.verified_at.desc()))
    return list(result.scalars().all())


async def get_active_badge_types(db: AsyncSession, user_id: int) -> list[str]:
    result = await db.execute(
        select(VerificationBadge.badge_type)
        .where(VerificationBadge.user_id == user_id)
        .where(*_active_clause(datetime.now(timezone.utc)))
    )
    return [row[0] for row in result.all()]


async def revoke_verification_badge(db: AsyncSession, user_id: int, badge_type: str) -> bool:
    result = await db.execute(
        update(VerificationBadge)
        .where(VerificationBadge.user_id == user_id)
        .where(VerificationBadge.badge_type == badge_type)
        .values(is_active=False)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def get_expiring_badges(db: AsyncSession, within_days: int = 30) -> list[VerificationBadge]:
    now = datetime.now(timezone.utc)
    cutoff = now + timedelta(days=within_days)
    result = await db.execute(
        select(VerificationBadge)
        .where(VerificationBadge.is_active.is_(True))
        .where(VerificationBadge.expires_at.is_not(None))
        .where(VerificationBadge.expires_at > now)
        .where(VerificationBadge.expires_at <= cutoff)
    )
    return list(result.scalars().all())
