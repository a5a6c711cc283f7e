"""Job and earnings milestone achievements.

Hooks called from the job lifecycle, plus progress reporting towards the
next job-count and earnings achievement.
"""

from collections.abc import Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.queries.achievements import user_has_achievement
from escrow_reputation.queries.earnings import get_total_earnings
from escrow_reputation.queries.jobs import count_completed_jobs, get_job_by_id, get_milestone, get_milestone_completion
from escrow_reputation.schemas.achievement import AchievementProgress
from escrow_reputation.services.achievements import (
    EARNINGS_MILESTONES,
    JOB_MILESTONES,
    check_and_award_achievements,
)

log = structlog.get_logger()


async def check_job_completion_achievements(
    db: AsyncSession, user_id: int, is_freelancer: bool = True
) -> list[str]:
    """Run the achievement checks that follow a completed job.

    The freelancer side evaluates ``job_completed``; the client side
    evaluates ``milestone_completed``.
    """
    event = "job_completed" if is_freelancer else "milestone_completed"
    awarded = await check_and_award_achievements(db, user_id, event)
    if awarded:
        log.info("job_completion_achievements_awarded", user_id=user_id, achievements=awarded)
    return awarded


async def check_milestone_completion_achievements(
    db: AsyncSession, user_id: int, milestone_id: int
) -> list[str]:
    """Run achievement checks after a milestone is approved.

    When the approval completes the job (every milestone approved), the
    job's freelancer gets the job-completion checks first. The caller then
    always gets the milestone checks.

    Returns:
        Achievement ids awarded to either user, freelancer's first.
    """
    milestone = await get_milestone(db, milestone_id)
    if milestone is None:
        return []
    job = await get_job_by_id(db, milestone.job_id)
    if job is None:
        return []

    awarded: list[str] = []
    completion = await get_milestone_completion(db, job.id)
    if completion.all_approved and job.freelancer_id is not None:
        awarded.extend(await check_job_completion_achievements(db, job.freelancer_id, True))

    awarded.extend(await check_and_award_achievements(db, user_id, "milestone_completed"))
    return awarded


async def _next_unclaimed(
    db: AsyncSession,
    user_id: int,
    current: float,
    milestones: Sequence[tuple[int, str]],
) -> AchievementProgress:
    for threshold, achievement_id in milestones:
        if current < threshold and not await user_has_achievement(db, user_id, achievement_id):
            return AchievementProgress(
                current=int(current),
                next_milestone=threshold,
                next_achievement_id=achievement_id,
                progress=round(current / threshold * 100),
            )
    return AchievementProgress(current=int(current), next_milestone=None, next_achievement_id=None, progress=100)


async def get_milestone_progress(db: AsyncSession, user_id: int) -> AchievementProgress:
    """Progress towards the next unclaimed job-count achievement.

    Falls back to "0 of FIRST_JOB" when the lookup fails.
    """
    try:
        completed = await count_completed_jobs(db, user_id)
        return await _next_unclaimed(db, user_id, completed, JOB_MILESTONES)
    except Exception:
        log.error("milestone_progress_failed", user_id=user_id, exc_info=True)
        threshold, achievement_id = JOB_MILESTONES[0]
        return AchievementProgress(current=0, next_milestone=threshold, next_achievement_id=achievement_id)


async def get_earnings_progress(db: AsyncSession, user_id: int) -> AchievementProgress:
    """Progress towards the next unclaimed earnings achievement."""
    try:
        earned = float(await get_total_earnings(db, user_id))
        return await _next_unclaimed(db, user_id, earned, EARNINGS_MILESTONES)
    except Exception:
        log.error("earnings_progress_failed", user_id=user_id, exc_info=True)
        threshold, achievement_id = EARNINGS_MILESTONES[0]
        return AchievementProgress(current=0, next_milestone=threshold, next_achievement_id=achievement_id)
