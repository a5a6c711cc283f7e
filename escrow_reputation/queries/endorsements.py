from typing import Optional

from sqlalchemy import case, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.models.reputation import ENDORSEMENT_UNIQUE_CONSTRAINT, SkillEndorsement
from escrow_reputation.schemas.review import EndorsementAggregate


async def endorse_skill(
    db: AsyncSession,
    endorser_id: int,
    endorsed_user_id: int,
    skill_id: int,
    rating: int,
    verified: bool = False,
    job_id: Optional[int] = None,
    note: Optional[str] = None,
) -> None:
    """Create or replace an endorsement (one per endorser, user and skill)."""
    stmt = pg_insert(SkillEndorsement).values(
        endorser_id=endorser_id,
        endorsed_user_id=endorsed_user_id,
        skill_id=skill_id,
        rating=rating,
        verified=verified,
        job_id=job_id,
        endorsement_note=note,
    ).on_conflict_do_update(
        constraint=ENDORSEMENT_UNIQUE_CONSTRAINT,
        set_={"rating": rating, "verified": verified, "job_id": job_id, "endorsement_note": note},
    )
    await db.execute(stmt)


async def get_endorsement_aggregate(db: AsyncSession, user_id: int) -> EndorsementAggregate:
    result = await db.execute(
        select(
            func.count(),
            func.avg(SkillEndorsement.rating),
            func.count(case((SkillEndorsement.verified.is_(True), 1))),
            func.count(func.distinct(SkillEndorsement.endorser_id)),
        ).where(SkillEndorsement.endorsed_user_id == user_id)
    )
    count, average, verified, unique_endorsers = result.one()
    return EndorsementAggregate(
        count=count or 0,
        average_rating=float(average or 0),
        verified_count=verified or 0,
        unique_endorsers=unique_endorsers or 0,
    )
