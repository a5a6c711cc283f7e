"""Trust score computation, persistence and inactivity decay.

A user's trust score is a 0-100 weighted sum of six sub-scores, each itself
0-100 and each derived from one SQL aggregate:

    reviews .30, completion .25, verification .15,
    endorsements .15, activity .10, disputes .05

The scoring rules are plain functions so they can be tested without a
database. calculate_trust_score gathers the aggregates, applies the rules
and writes the result into UserGameData.stats["trustScore"] together with a
bounded history of past scores.

Design notes:
- The six aggregates are awaited one after another. A single AsyncSession
  cannot run statements concurrently.
- Rounding is half-up (_round_half_up), not Python's banker's rounding, so
  that 72.5 scores 73 everywhere.
- The blob stores ``rawScore`` (last computed, undecayed) next to ``score``
  (last persisted, possibly decayed). Decay is always applied to rawScore, so
  repeated decay passes over the same inactivity window do not compound.
- Decay rescales only the total. Stored components are left as they were,
  so after a decay pass ``score`` no longer equals the weighted components.
"""

import math
from collections.abc import Iterable
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.config import settings
from escrow_reputation.errors import UserNotFoundError
from escrow_reputation.metrics import trust_calculations, trust_decays_applied, trust_score_distribution
from escrow_reputation.queries.disputes import get_dispute_aggregate
from escrow_reputation.queries.endorsements import get_endorsement_aggregate
from escrow_reputation.queries.jobs import count_recent_jobs, get_job_counts
from escrow_reputation.queries.reviews import get_review_aggregates
from escrow_reputation.queries.users import get_game_data, get_last_activity, get_stats, update_stats
from escrow_reputation.queries.verification import get_active_badge_types
from escrow_reputation.schemas.review import DisputeAggregate, EndorsementAggregate, ReviewAggregate
from escrow_reputation.schemas.trust import (
    TrustBadge,
    TrustHistoryEntry,
    TrustScoreComponents,
    TrustScoreResult,
    TrustTier,
)

log = structlog.get_logger()

STATS_KEY = "trustScore"

TRUST_WEIGHTS = {
    "review_score": 0.30,
    "completion_score": 0.25,
    "verification_score": 0.15,
    "endorsement_score": 0.15,
    "activity_score": 0.10,
    "dispute_score": 0.05,
}

BADGE_POINTS = {
    "email": 20,
    "identity": 25,
    "phone": 15,
    "professional": 25,
    "kyc": 15,
}

TIER_THRESHOLDS: list[tuple[int, TrustTier]] = [
    (90, "diamond"),
    (80, "platinum"),
    (70, "gold"),
    (60, "silver"),
]

SCORE_MILESTONES = [60, 70, 80, 90, 100]

RECENT_ACTIVITY_DAYS = 30

# (component, threshold, advice): advice applies when the component is below threshold
RECOMMENDATION_RULES = [
    ("review_score", 70, "Improve your review ratings by delivering quality work"),
    ("completion_score", 70, "Focus on completing more jobs successfully"),
    ("verification_score", 50, "Get verified to increase trust"),
    ("endorsement_score", 50, "Request skill endorsements from colleagues"),
    ("activity_score", 50, "Stay active on the platform to maintain trust"),
]

TRUST_BADGES: dict[str, TrustBadge] = {
    "bronze": TrustBadge(
        name="Bronze Trust",
        icon="🥉",
        color="text-orange-600",
        description="Building trust in the community",
    ),
    "silver": TrustBadge(
        name="Silver Trust",
        icon="🥈",
        color="text-gray-500",
        description="Established member with good reputation",
    ),
    "gold": TrustBadge(
        name="Gold Trust",
        icon="🥇",
        color="text-yellow-500",
        description="Highly trusted community member",
    ),
    "platinum": TrustBadge(
        name="Platinum Trust",
        icon="💎",
        color="text-blue-600",
        description="Exceptional trust and reliability",
    ),
    "diamond": TrustBadge(
        name="Diamond Trust",
        icon="💠",
        color="text-purple-600",
        description="Elite trusted status",
    ),
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


# ── Sub-score rules ──────────────────────────────────────────────────────────


def review_score(as_freelancer: ReviewAggregate, as_client: ReviewAggregate) -> int:
    """Score received reviews: up to 70 for the average rating, up to 30 for volume.

    Reviews received in both roles are pooled. The pooled average is
    weighted by each role's review count.

    Args:
        as_freelancer: Reviews the user received as a freelancer.
        as_client: Reviews the user received as a client.

    Returns:
        Integer sub-score in [0, 100]; 0 when there are no reviews.
    """
    total = as_freelancer.count + as_client.count
    if total == 0:
        return 0
    average = (
        as_freelancer.average * as_freelancer.count + as_client.average * as_client.count
    ) / total
    rating_points = (average / 5) * 70
    volume_points = min(total * 2, 30)
    return int(_clamp(_round_half_up(rating_points + volume_points)))


def completion_score(total: int, completed: int, cancelled: int) -> int:
    """Reward completed jobs and penalise cancelled ones. Neutral 50 with no jobs."""
    if total == 0:
        return 50
    completion_rate = completed / total * 100
    cancellation_penalty = cancelled / total * 20
    return int(_clamp(_round_half_up(max(0.0, completion_rate - cancellation_penalty))))


def verification_score(badge_types: Iterable[str]) -> int:
    """Sum fixed points per distinct active badge type, capped at 100."""
    score = sum(BADGE_POINTS.get(badge_type, 0) for badge_type in set(badge_types))
    return min(100, score)


def endorsement_score(endorsements: EndorsementAggregate) -> int:
    """Score endorsements on average rating (40), verified share (30) and endorser diversity (30)."""
    if endorsements.count == 0:
        return 0
    rating_points = (endorsements.average_rating / 5) * 40
    verified_points = endorsements.verified_count / endorsements.count * 30
    diversity_points = min(endorsements.unique_endorsers * 5, 30)
    return int(_clamp(_round_half_up(rating_points + verified_points + diversity_points)))


def activity_score(login_streak: int, recent_jobs: int, level: int) -> int:
    """Score recent engagement: login streak (30), jobs in the last 30 days (40), level (30)."""
    streak_points = min(login_streak * 5, 30)
    job_points = min(recent_jobs * 10, 40)
    level_points = min(level * 3, 30)
    return int(_clamp(streak_points + job_points + level_points))


def dispute_score(disputes: DisputeAggregate) -> int:
    """Score the disputes a user has filed. Perfect 100 with none.

    Upheld disputes cost up to 50 points and dismissed ones add up to 10,
    clamped to [0, 100].
    """
    if disputes.total == 0:
        return 100
    upheld_ratio = disputes.upheld / disputes.total
    dismissed_ratio = disputes.dismissed / disputes.total
    return int(_clamp(_round_half_up(100 - upheld_ratio * 50 + dismissed_ratio * 10)))


# ── Aggregation helpers ──────────────────────────────────────────────────────


def weighted_total(components: TrustScoreComponents) -> int:
    total = sum(getattr(components, name) * weight for name, weight in TRUST_WEIGHTS.items())
    return int(_clamp(_round_half_up(total)))


def get_trust_tier(score: int) -> TrustTier:
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return "bronze"


def get_next_milestone(score: int) -> int:
    return next((milestone for milestone in SCORE_MILESTONES if milestone > score), 100)


def get_recommendations(components: TrustScoreComponents) -> list[str]:
    return [
        advice
        for name, threshold, advice in RECOMMENDATION_RULES
        if getattr(components, name) < threshold
    ]


def get_trust_score_badge(score: int) -> TrustBadge:
    """Return the display badge for the tier a score falls in."""
    return TRUST_BADGES[get_trust_tier(score)]


def decay_factor(days_inactive: int) -> float:
    """Multiplier for a score after ``days_inactive`` days without activity.

    1.0 within the grace period. After it, one percentage point is lost per
    full week, bottoming out at settings.trust_decay_floor.
    """
    if days_inactive <= settings.trust_decay_grace_days:
        return 1.0
    weeks_inactive = (days_inactive - settings.trust_decay_grace_days) // 7
    return max(
        settings.trust_decay_floor,
        1 - weeks_inactive * settings.trust_decay_weekly_rate,
    )


def build_result(components: TrustScoreComponents, calculated_at: datetime) -> TrustScoreResult:
    score = weighted_total(components)
    return TrustScoreResult(
        score=score,
        tier=get_trust_tier(score),
        components=components,
        last_calculated=calculated_at,
        next_milestone=get_next_milestone(score),
        recommendations=get_recommendations(components),
    )


# ── Persistence ──────────────────────────────────────────────────────────────


async def _store_trust_score(
    db: AsyncSession,
    user_id: int,
    score: int,
    raw_score: int,
    components: TrustScoreComponents,
    calculated_at: datetime,
) -> None:
    """Overwrite the trustScore blob and append to its bounded history."""
    timestamp = calculated_at.isoformat()
    components_json = components.model_dump(mode="json", by_alias=True)

    def mutate(stats: dict[str, Any]) -> None:
        previous = stats.get(STATS_KEY) or {}
        history = list(previous.get("history") or [])
        history.append({"score": score, "timestamp": timestamp})
        stats[STATS_KEY] = {
            "score": score,
            "rawScore": raw_score,
            "components": components_json,
            "lastCalculated": timestamp,
            "history": history[-settings.trust_history_size:],
        }

    await update_stats(db, user_id, mutate)


# ── Service operations ───────────────────────────────────────────────────────


async def calculate_trust_components(
    db: AsyncSession, user_id: int, now: Optional[datetime] = None
) -> TrustScoreComponents:
    """Gather the six aggregates for a user and score each one."""
    now = now or datetime.now(timezone.utc)

    as_freelancer, as_client = await get_review_aggregates(db, user_id)
    jobs = await get_job_counts(db, user_id)
    badge_types = await get_active_badge_types(db, user_id)
    endorsements = await get_endorsement_aggregate(db, user_id)

    game_data = await get_game_data(db, user_id)
    if game_data is None:
        activity = 0
    else:
        recent_jobs = await count_recent_jobs(db, user_id, now - timedelta(days=RECENT_ACTIVITY_DAYS))
        activity = activity_score(game_data.login_streak, recent_jobs, game_data.level)

    disputes = await get_dispute_aggregate(db, user_id)

    return TrustScoreComponents(
        review_score=review_score(as_freelancer, as_client),
        completion_score=completion_score(jobs.total, jobs.completed, jobs.cancelled),
        verification_score=verification_score(badge_types),
        endorsement_score=endorsement_score(endorsements),
        activity_score=activity,
        dispute_score=dispute_score(disputes),
    )


async def calculate_trust_score(
    db: AsyncSession, user_id: int, now: Optional[datetime] = None
) -> TrustScoreResult:
    """Compute the user's trust score, persist it and return it.

    Every call overwrites the stored score and appends one history entry.

    Args:
        db: The async SQLAlchemy session (caller manages commit/rollback).
        user_id: The user to score.
        now: Calculation time; defaults to the current UTC time.

    Returns:
        The freshly computed TrustScoreResult.

    Raises:
        UserNotFoundError: If the user does not exist.
    """
    now = now or datetime.now(timezone.utc)
    try:
        components = await calculate_trust_components(db, user_id, now)
        result = build_result(components, now)
        await _store_trust_score(db, user_id, result.score, result.score, components, now)
    except Exception:
        trust_calculations.labels(status="error").inc()
        log.error("trust_score_calculation_failed", user_id=user_id, exc_info=True)
        raise

    trust_calculations.labels(status="success").inc()
    trust_score_distribution.observe(result.score)
    log.info("trust_score_calculated", user_id=user_id, score=result.score, tier=result.tier)
    return result


async def get_stored_trust_score(db: AsyncSession, user_id: int) -> Optional[dict[str, Any]]:
    """Return the raw trustScore blob, or None if the user was never scored."""
    stats = await get_stats(db, user_id)
    return stats.get(STATS_KEY)


async def get_trust_score_history(db: AsyncSession, user_id: int) -> list[TrustHistoryEntry]:
    """Return stored history entries, oldest first. Empty when never scored."""
    blob = await get_stored_trust_score(db, user_id) or {}
    return [TrustHistoryEntry.model_validate(entry) for entry in blob.get("history") or []]


async def apply_decay(db: AsyncSession, user_id: int, now: Optional[datetime] = None) -> int:
    """Decay the user's last computed trust score for inactivity.

    Activity is read before anything is written, so the decay pass itself
    never counts as activity. The last computed score is used when one is
    stored; only a never-scored user is computed first.

    Returns:
        The decayed score when the user has been inactive past the grace
        period (also persisted), otherwise the last computed score.

    Raises:
        UserNotFoundError: If the user does not exist.
    """
    now = now or datetime.now(timezone.utc)
    last_activity = await get_last_activity(db, user_id)
    if last_activity is None:
        raise UserNotFoundError(user_id)

    stored = await get_stored_trust_score(db, user_id)
    if stored is None:
        result = await calculate_trust_score(db, user_id, now)
        raw_score, components = result.score, result.components
    else:
        raw_score = int(stored.get("rawScore", stored.get("score", 0)))
        components = TrustScoreComponents.model_validate(stored.get("components") or {})

    days_inactive = (now - last_activity).days
    if days_inactive <= settings.trust_decay_grace_days:
        trust_decays_applied.labels(outcome="active").inc()
        return raw_score

    factor = decay_factor(days_inactive)
    decayed = int(_clamp(_round_half_up(raw_score * factor)))
    await _store_trust_score(db, user_id, decayed, raw_score, components, now)

    trust_decays_applied.labels(outcome="decayed").inc()
    log.info(
        "trust_score_decayed",
        user_id=user_id,
        raw_score=raw_score,
        decayed_score=decayed,
        days_inactive=days_inactive,
        factor=factor,
    )
    return decayed
