"""Achievement triggers.

Marketplace events (a review submitted, a job completed, a referral
milestone reached) are mapped to groups of named predicates. For each
predicate the user does not already hold, the predicate is evaluated and,
when it passes, an achievement record is minted.

Design notes:
- Idempotency comes from two layers: user_has_achievement is checked before
  evaluation, and record_achievement_mint tolerates the unique-constraint
  violation when two triggers race.
- Each achievement is evaluated inside its own savepoint and try/except. A
  failing predicate is logged and counted, and the remaining achievements
  are still evaluated. There is no retry; the next trigger event
  re-evaluates.
- Minting is a database record only. No token or transaction hash is
  produced here.
"""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.metrics import achievement_check_errors, achievements_awarded
from escrow_reputation.queries.achievements import record_achievement_mint, user_has_achievement
from escrow_reputation.queries.earnings import get_total_earnings
from escrow_reputation.queries.jobs import count_completed_jobs
from escrow_reputation.queries.referrals import (
    count_referees_with_completed_jobs,
    get_referral_counts,
)
from escrow_reputation.queries.reviews import (
    get_client_review_stats,
    get_freelancer_review_stats,
    get_skill_ratings,
)
from escrow_reputation.queries.users import get_stats

log = structlog.get_logger()

Predicate = Callable[[AsyncSession, int], Awaitable[bool]]

TRIGGER_EVENTS = (
    "review_submitted",
    "job_completed",
    "trade_completed",
    "battle_won",
    "milestone_completed",
    "skill_endorsed",
    "rating_milestone",
    "referral_first_job",
    "referral_milestone_5",
    "referral_milestone_10",
    "referral_milestone_25",
    "referral_milestone_50",
    "review_streak_3",
    "review_streak_7",
    "review_streak_14",
    "review_streak_30",
    "review_streak_50",
    "review_streak_100",
)

JOB_MILESTONES = [(1, "FIRST_JOB"), (10, "JOB_MILESTONE_10"), (50, "JOB_MILESTONE_50"), (100, "JOB_MILESTONE_100")]
EARNINGS_MILESTONES = [
    (1_000, "EARNINGS_MILESTONE_1K"),
    (10_000, "EARNINGS_MILESTONE_10K"),
    (100_000, "EARNINGS_MILESTONE_100K"),
]
REFERRAL_MILESTONE_COUNTS = (5, 10, 25, 50)
REVIEW_STREAK_COUNTS = (3, 7, 14, 30, 50, 100)


@dataclass(frozen=True)
class AchievementRule:
    id: str
    name: str
    check: Predicate


# ── Predicates ───────────────────────────────────────────────────────────────


def _freelancer_rating_rule(min_reviews: int, min_average: float) -> Predicate:
    async def check(db: AsyncSession, user_id: int) -> bool:
        stats = await get_freelancer_review_stats(db, user_id)
        return stats.total_reviews >= min_reviews and stats.average_rating >= min_average

    return check


async def _perfect_client(db: AsyncSession, user_id: int) -> bool:
    stats = await get_client_review_stats(db, user_id)
    return stats.total_reviews >= 10 and stats.average_rating >= 4.9


async def _review_champion(db: AsyncSession, user_id: int) -> bool:
    freelancer = await get_freelancer_review_stats(db, user_id)
    client = await get_client_review_stats(db, user_id)
    return freelancer.total_reviews + client.total_reviews >= 50


async def _skill_master(db: AsyncSession, user_id: int) -> bool:
    skill_ratings = await get_skill_ratings(db, user_id)
    return sum(1 for rating in skill_ratings.values() if rating >= 4.5) >= 10


def _completed_jobs_rule(count: int) -> Predicate:
    async def check(db: AsyncSession, user_id: int) -> bool:
        return await count_completed_jobs(db, user_id) >= count

    return check


def _earnings_rule(amount: int) -> Predicate:
    async def check(db: AsyncSession, user_id: int) -> bool:
        return await get_total_earnings(db, user_id) >= amount

    return check


async def _referral_first_job(db: AsyncSession, user_id: int) -> bool:
    return await count_referees_with_completed_jobs(db, user_id) >= 1


def _active_referrals_rule(count: int) -> Predicate:
    async def check(db: AsyncSession, user_id: int) -> bool:
        counts = await get_referral_counts(db, user_id)
        return counts.active_conversions >= count

    return check


def _review_streak_rule(length: int) -> Predicate:
    async def check(db: AsyncSession, user_id: int) -> bool:
        stats = await get_stats(db, user_id)
        streak = stats.get("reviewStreak") or {}
        return int(streak.get("longest", 0)) >= length

    return check


# ── Rule groups ──────────────────────────────────────────────────────────────

REVIEW_ACHIEVEMENTS = [
    AchievementRule("FIVE_STAR_FREELANCER", "Five Star Freelancer", _freelancer_rating_rule(10, 4.8)),
    AchievementRule("PERFECT_CLIENT", "Perfect Client", _perfect_client),
    AchievementRule("REVIEW_CHAMPION", "Review Champion", _review_champion),
    AchievementRule("TRUSTED_EXPERT", "Trusted Expert", _freelancer_rating_rule(25, 4.5)),
]

SKILL_ACHIEVEMENTS = [
    AchievementRule("SKILL_MASTER", "Skill Master", _skill_master),
]

REPUTATION_ACHIEVEMENTS = [
    AchievementRule("REPUTATION_LEGEND", "Reputation Legend", _freelancer_rating_rule(100, 4.7)),
]

JOB_ACHIEVEMENTS = [
    AchievementRule(achievement_id, achievement_id.replace("_", " ").title(), _completed_jobs_rule(count))
    for count, achievement_id in JOB_MILESTONES
]

EARNINGS_ACHIEVEMENTS = [
    AchievementRule(achievement_id, achievement_id.replace("_", " ").title(), _earnings_rule(amount))
    for amount, achievement_id in EARNINGS_MILESTONES
]

REFERRAL_FIRST_JOB = AchievementRule("REFERRAL_FIRST_JOB", "First Referral Job", _referral_first_job)

REFERRAL_MILESTONE_ACHIEVEMENTS = {
    count: AchievementRule(f"REFERRAL_MILESTONE_{count}", f"{count} Referrals", _active_referrals_rule(count))
    for count in REFERRAL_MILESTONE_COUNTS
}

REVIEW_STREAK_ACHIEVEMENTS = {
    length: AchievementRule(f"REVIEW_STREAK_{length}", f"{length} Review Streak", _review_streak_rule(length))
    for length in REVIEW_STREAK_COUNTS
}

EVENT_ACHIEVEMENTS: dict[str, list[AchievementRule]] = {
    "review_submitted": REVIEW_ACHIEVEMENTS + REPUTATION_ACHIEVEMENTS,
    "rating_milestone": REVIEW_ACHIEVEMENTS + REPUTATION_ACHIEVEMENTS,
    "skill_endorsed": SKILL_ACHIEVEMENTS,
    "job_completed": REVIEW_ACHIEVEMENTS + JOB_ACHIEVEMENTS,
    "milestone_completed": JOB_ACHIEVEMENTS + EARNINGS_ACHIEVEMENTS,
    "referral_first_job": [REFERRAL_FIRST_JOB],
    **{f"referral_milestone_{count}": [rule] for count, rule in REFERRAL_MILESTONE_ACHIEVEMENTS.items()},
    **{f"review_streak_{length}": [rule] for length, rule in REVIEW_STREAK_ACHIEVEMENTS.items()},
}

ALL_ACHIEVEMENTS: list[AchievementRule] = list(
    {
        rule.id: rule
        for rule in (
            REVIEW_ACHIEVEMENTS
            + SKILL_ACHIEVEMENTS
            + REPUTATION_ACHIEVEMENTS
            + JOB_ACHIEVEMENTS
            + EARNINGS_ACHIEVEMENTS
            + [REFERRAL_FIRST_JOB]
            + list(REFERRAL_MILESTONE_ACHIEVEMENTS.values())
            + list(REVIEW_STREAK_ACHIEVEMENTS.values())
        )
    }.values()
)


def achievements_for_event(event: str) -> list[AchievementRule]:
    """Return the rules an event evaluates. Unknown or unmapped events evaluate none."""
    return EVENT_ACHIEVEMENTS.get(event, [])


# ── Evaluation ───────────────────────────────────────────────────────────────


async def _evaluate(db: AsyncSession, user_id: int, rules: list[AchievementRule]) -> list[str]:
    awarded: list[str] = []
    for rule in rules:
        try:
            # Savepoint per rule: a failed statement must not abort the outer transaction
            async with db.begin_nested():
                if await user_has_achievement(db, user_id, rule.id):
                    continue
                if not await rule.check(db, user_id):
                    continue
                minted = await record_achievement_mint(db, user_id, rule.id)
            if minted:
                awarded.append(rule.id)
                achievements_awarded.labels(achievement_id=rule.id).inc()
                log.info("achievement_awarded", user_id=user_id, achievement_id=rule.id)
        except Exception:
            achievement_check_errors.labels(achievement_id=rule.id).inc()
            log.error(
                "achievement_check_failed",
                user_id=user_id,
                achievement_id=rule.id,
                exc_info=True,
            )
    return awarded


async def check_and_award_achievements(db: AsyncSession, user_id: int, event: str) -> list[str]:
    """Evaluate the achievements mapped to ``event`` and mint those newly earned.

    Args:
        db: The async SQLAlchemy session (caller manages commit/rollback).
        user_id: The user the event happened to.
        event: One of TRIGGER_EVENTS.

    Returns:
        Ids of the achievements minted by this call, in evaluation order.
    """
    rules = achievements_for_event(event)
    if not rules:
        log.debug("achievement_event_ignored", user_id=user_id, trigger=event)
        return []
    awarded = await _evaluate(db, user_id, rules)
    if awarded:
        log.info("achievements_awarded", user_id=user_id, trigger=event, achievements=awarded)
    return awarded


async def check_all_achievements(db: AsyncSession, user_id: int) -> list[str]:
    """Evaluate every known achievement for the user."""
    return await _evaluate(db, user_id, ALL_ACHIEVEMENTS)
