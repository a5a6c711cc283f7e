"""Job and milestone queries used by the trust score and achievement services."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.models.job import JobMilestone, JobPosting, JobStatus, MilestoneStatus


@dataclass
class JobCounts:
    total: int = 0
    completed: int = 0
    cancelled: int = 0


@dataclass
class MilestoneCompletion:
    total: int = 0
    approved: int = 0

    @property
    def all_approved(self) -> bool:
        return self.total > 0 and self.approved == self.total


async def get_job_by_id(db: AsyncSession, job_id: int) -> Optional[JobPosting]:
    result = await db.execute(select(JobPosting).where(JobPosting.id == job_id))
    return result.scalar_one_or_none()


async def get_job_counts(db: AsyncSession, user_id: int) -> JobCounts:
    """Count the user's jobs in either role, split by outcome."""
    result = await db.execute(
        select(
            func.count(),
            func.count(case((JobPosting.status == JobStatus.completed.value, 1))),
            func.count(case((JobPosting.status == JobStatus.cancelled.value, 1))),
        ).where(or_(JobPosting.client_id == user_id, JobPosting.freelancer_id == user_id))
    )
    total, completed, cancelled = result.one()
    return JobCounts(total=total or 0, completed=completed or 0, cancelled=cancelled or 0)


async def count_recent_jobs(db: AsyncSession, user_id: int, since: datetime) -> int:
    """Count jobs in either role created on or after ``since``."""
    result = await db.execute(
        select(func.count())
        .select_from(JobPosting)
        .where(or_(JobPosting.client_id == user_id, JobPosting.freelancer_id == user_id))
        .where(JobPosting.created_at >= since)
    )
    return result.scalar_one() or 0


async def count_completed_jobs(db: AsyncSession, freelancer_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(JobPosting)
        .where(JobPosting.freelancer_id == freelancer_id)
        .where(JobPosting.status == JobStatus.completed.value)
    )
    return result.scalar_one() or 0


async def count_client_completed_jobs(db: AsyncSession, client_id: int) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(JobPosting)
        .where(JobPosting.client_id == client_id)
        .where(JobPosting.status == JobStatus.completed.value)
    )
    return result.scalar_one() or 0


async def complete_job(db: AsyncSession, job_id: int, now: Optional[datetime] = None) -> None:
    """Mark a job completed. Already-completed jobs keep their original timestamp."""
    await db.execute(
        update(JobPosting)
        .where(JobPosting.id == job_id)
        .where(JobPosting.status != JobStatus.completed.value)
        .values(status=JobStatus.completed.value, completed_at=now or datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )


async def get_milestone(db: AsyncSession, milestone_id: int) -> Optional[JobMilestone]:
    result = await db.execute(select(JobMilestone).where(JobMilestone.id == milestone_id))
    return result.scalar_one_or_none()


async def get_milestone_completion(db: AsyncSession, job_id: int) -> MilestoneCompletion:
    result = await db.execute(
        select(
            func.count(),
            func.count(case((JobMilestone.status == MilestoneStatus.approved.value, 1))),
        ).where(JobMilestone.job_id == job_id)
    )
    total, approved = result.one()
    return MilestoneCompletion(total=total or 0, approved=approved or 0)
