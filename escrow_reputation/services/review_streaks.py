"""On-time review streaks.

A review counts as on time when it is submitted within STREAK_WINDOW_DAYS
of the job's completion. Consecutive on-time reviews, each within twice the
window of the previous one, build a streak that multiplies a small XP bonus.
A late review resets the streak to zero. Streaks of exactly 3, 7, 14, 30, 50
and 100 pay a one-off XP bonus and fire the matching review_streak_N
achievement event.

State lives in UserGameData.stats["reviewStreak"] (see schemas.ReviewStreak).
"""

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.queries.jobs import get_job_by_id
from escrow_reputation.queries.reviews import count_reviews_written_by_users
from escrow_reputation.queries.users import add_xp, get_stats, get_users_with_game_stats, update_stats
from escrow_reputation.schemas.review import ReviewStreak
from escrow_reputation.services.achievements import check_and_award_achievements

log = structlog.get_logger()

STATS_KEY = "reviewStreak"

STREAK_WINDOW_DAYS = 7
BASE_STREAK_XP = 10
STREAK_MULTIPLIER_INCREMENT = 0.25
MAX_STREAK_MULTIPLIER = 3.0
AT_RISK_AFTER_DAYS = 5

# streak length -> XP bonus
STREAK_MILESTONES = {3: 50, 7: 100, 14: 200, 30: 500, 50: 1000, 100: 2500}


@dataclass
class StreakUpdate:
    streak: ReviewStreak
    xp_bonus: int = 0
    streak_broken: bool = False
    milestone_reached: bool = False


def streak_multiplier(streak: int) -> float:
    return min(1.0 + streak * STREAK_MULTIPLIER_INCREMENT, MAX_STREAK_MULTIPLIER)


def _days_between(earlier: datetime, later: datetime) -> int:
    return math.floor((later - earlier).total_seconds() / 86400)


def advance_streak(current: ReviewStreak, completed_at: datetime, reviewed_at: datetime) -> StreakUpdate:
    """Apply one submitted review to a streak.

    Args:
        current: Streak state before the review.
        completed_at: When the reviewed job was completed.
        reviewed_at: When the review was submitted.

    Returns:
        The new streak state, the XP bonus earned and whether an existing
        streak was broken.
    """
    on_time = _days_between(completed_at, reviewed_at) <= STREAK_WINDOW_DAYS

    if not on_time:
        return StreakUpdate(
            streak=ReviewStreak(
                current=0,
                longest=current.longest,
                last_review_date=current.last_review_date,
                total_on_time=current.total_on_time,
            ),
            streak_broken=current.current > 0,
        )

    broken = False
    if current.last_review_date is None:
        new_streak = 1
    elif _days_between(current.last_review_date, reviewed_at) <= STREAK_WINDOW_DAYS * 2:
        new_streak = current.current + 1
    else:
        new_streak = 1
        broken = True

    return StreakUpdate(
        streak=ReviewStreak(
            current=new_streak,
            longest=max(new_streak, current.longest),
            last_review_date=reviewed_at,
            total_on_time=current.total_on_time + 1,
        ),
        xp_bonus=math.floor(BASE_STREAK_XP * streak_multiplier(new_streak)),
        streak_broken=broken,
        milestone_reached=new_streak in STREAK_MILESTONES,
    )


def _load_streak(stats: dict[str, Any]) -> ReviewStreak:
    return ReviewStreak.model_validate(stats.get(STATS_KEY) or {})


async def get_review_streak(db: AsyncSession, user_id: int) -> ReviewStreak:
    return _load_streak(await get_stats(db, user_id))


async def update_review_streak(
    db: AsyncSession, user_id: int, job_id: int, now: Optional[datetime] = None
) -> StreakUpdate:
    """Record that ``user_id`` reviewed job ``job_id`` and pay any streak bonus.

    Jobs that do not exist or have no completion time leave the streak alone.
    """
    now = now or datetime.now(timezone.utc)
    job = await get_job_by_id(db, job_id)
    if job is None or job.completed_at is None:
        return StreakUpdate(streak=await get_review_streak(db, user_id))

    def apply(stats: dict[str, Any]) -> StreakUpdate:
        update = advance_streak(_load_streak(stats), job.completed_at, now)
        stats[STATS_KEY] = update.streak.model_dump(mode="json", by_alias=True)
        return update

    update = await update_stats(db, user_id, apply)

    if update.xp_bonus > 0:
        await add_xp(db, user_id, update.xp_bonus, source="review_streak")
    if update.streak_broken:
        log.info("review_streak_broken", user_id=user_id)
    if update.milestone_reached:
        length = update.streak.current
        await add_xp(db, user_id, STREAK_MILESTONES[length], source="review_streak_milestone")
        log.info("review_streak_milestone", user_id=user_id, streak=length)
        await check_and_award_achievements(db, user_id, f"review_streak_{length}")
    return update


async def get_top_reviewers(db: AsyncSession, limit: int = 10) -> list[dict[str, Any]]:
    """Rank users by current streak, then by total reviews written."""
    rows = await get_users_with_game_stats(db)
    review_counts = await count_reviews_written_by_users(db, [user_id for user_id, *_ in rows])

    reviewers = []
    for user_id, name, level, stats in rows:
        streak = _load_streak(stats)
        reviewers.append(
            {
                "user_id": user_id,
                "name": name,
                "current_streak": streak.current,
                "longest_streak": streak.longest,
                "total_reviews": review_counts.get(user_id, 0),
                "level": level,
            }
        )
    reviewers.sort(key=lambda r: (r["current_streak"], r["total_reviews"]), reverse=True)
    return reviewers[:limit]


async def check_streak_at_risk(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> bool:
    """True when a live streak has gone AT_RISK_AFTER_DAYS or more without a review but is not yet lost."""
    streak = await get_review_streak(db, user_id)
    if streak.current == 0 or streak.last_review_date is None:
        return False
    days = _days_between(streak.last_review_date, now or datetime.now(timezone.utc))
    at_risk = AT_RISK_AFTER_DAYS <= days < STREAK_WINDOW_DAYS * 2
    if at_risk:
        log.info("review_streak_at_risk", user_id=user_id, days_since_last_review=days)
    return at_risk
