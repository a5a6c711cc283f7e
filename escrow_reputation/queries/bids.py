"""Bid queries.

A freelancer bids on a job at most once (BID_UNIQUE_CONSTRAINT). Accepting
one bid is followed by bulk_update_bid_statuses to reject the others that
are still pending.
"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.errors import ReputationError
from escrow_reputation.models.job import BID_UNIQUE_CONSTRAINT, BidStatus, JobBid

ACTIVE_BID_STATUSES = (BidStatus.pending.value, BidStatus.shortlisted.value)


async def create_bid(
    db: AsyncSession,
    job_id: int,
    freelancer_id: int,
    bid_amount: Decimal,
    delivery_days: int,
    proposal_text: str,
) -> JobBid:
    bid = JobBid(
        job_id=job_id,
        freelancer_id=freelancer_id,
        bid_amount=bid_amount,
        delivery_days=delivery_days,
        proposal_text=proposal_text,
        status=BidStatus.pending.value,
    )
    try:
        async with db.begin_nested():
            db.add(bid)
    except IntegrityError as exc:
        if BID_UNIQUE_CONSTRAINT in str(exc.orig):
            raise ReputationError("Freelancer has already bid on this job") from exc
        raise
    return bid


async def get_bids_by_job(
    db: AsyncSession, job_id: int, status: Optional[str] = None
) -> list[JobBid]:
    stmt = select(JobBid).where(JobBid.job_id == job_id).order_by(JobBid.created_at.desc())
    if status is not None:
        stmt = stmt.where(JobBid.status == status)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def update_bid_status(db: AsyncSession, bid_id: int, status: str) -> None:
    await db.execute(
        update(JobBid)
        .where(JobBid.id == bid_id)
        .values(status=status)
        .execution_options(synchronize_session=False)
    )


async def has_user_bid_on_job(db: AsyncSession, freelancer_id: int, job_id: int) -> bool:
    result = await db.execute(
        select(JobBid.id)
        .where(JobBid.freelancer_id == freelancer_id)
        .where(JobBid.job_id == job_id)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_job_bid_statistics(db: AsyncSession, job_id: int) -> dict:
    result = await db.execute(
        select(
            func.count(),
            func.avg(JobBid.bid_amount),
            func.min(JobBid.bid_amount),
            func.max(JobBid.bid_amount),
            func.count(case((JobBid.status == BidStatus.shortlisted.value, 1))),
        ).where(JobBid.job_id == job_id)
    )
    total, avg_amount, min_amount, max_amount, shortlisted = result.one()
    return {
        "total_bids": total or 0,
        "avg_bid_amount": float(avg_amount or 0),
        "min_bid_amount": float(min_amount or 0),
        "max_bid_amount": float(max_amount or 0),
        "shortlisted_count": shortlisted or 0,
    }


async def get_active_bids_count(db: AsyncSession, freelancer_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(JobBid)
        .where(JobBid.freelancer_id == freelancer_id)
        .where(JobBid.status.in_(ACTIVE_BID_STATUSES))
    )
    return result.scalar_one() or 0


async def get_won_bids_count(db: AsyncSession, freelancer_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(JobBid)
        .where(JobBid.freelancer_id == freelancer_id)
        .where(JobBid.status == BidStatus.accepted.value)
    )
    return result.scalar_one() or 0


async def bulk_update_bid_statuses(
    db: AsyncSession, job_id: int, exclude_bid_id: int, status: str
) -> int:
    """Set ``status`` on every other pending bid for the job. Returns rows changed."""
    result = await db.execute(
        update(JobBid)
        .where(JobBid.job_id == job_id)
        .where(JobBid.id != exclude_bid_id)
        .where(JobBid.status == BidStatus.pending.value)
        .values(status=status)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount
