"""Referral programme: links, signup attribution, XP rewards, milestones and tiers.

Referral state that has no table of its own lives in UserGameData.stats:

- referee side, ``referredBy``: {"userId", "code", "joinedAt"}
- referrer side, ``referral``::

      {
        "referrals": [
          {"userId": 42, "joinedAt": "...", "status": "pending" | "active",
           "rewards": {"signup": {"claimed": true, "amount": 100}, ...}},
        ],
        "pendingRewards": 0,          # sum of unclaimed reward amounts
        "totalRewardsEarned": 300,    # sum of claimed reward amounts
        "milestonesPaid": [5],
      }

Design notes:
- Each reward type is granted at most once per referee. A reward is first
  recorded unclaimed, then claimed in the same transaction, which credits
  the XP. claim_referral_rewards also sweeps up anything left unclaimed.
- A referral becomes active when the referee verifies their email. That is
  also when the conversion row's referrer reward status becomes ``paid``.
- Milestones pay once each, whenever the active count is at or above the
  threshold and the threshold is not in ``milestonesPaid``. A referrer who
  jumps from 4 to 6 active referrals still gets the 5-referral payout.
- Tiers and the distance to the next tier come from one threshold table,
  settings.referral_tier_thresholds.
"""

from datetime import datetime, timezone
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.config import settings
from escrow_reputation.metrics import referral_rewards
from escrow_reputation.queries.referrals import (
    create_referral_conversion,
    generate_referral_link,
    get_active_referral_link,
    get_referral_counts,
    get_referral_leaderboard,
    mark_referrer_reward_paid,
    track_referral_click,
)
from escrow_reputation.queries.users import add_xp, get_stats, update_stats
from escrow_reputation.schemas.referral import (
    ReferralDashboard,
    ReferralStats,
    ReferralTier,
    TierBenefits,
)
from escrow_reputation.services.achievements import check_and_award_achievements

log = structlog.get_logger()

REFERRAL_KEY = "referral"
REFERRED_BY_KEY = "referredBy"

REWARD_SIGNUP = "signup"
REWARD_EMAIL_VERIFIED = "emailVerified"
REWARD_FIRST_JOB = "firstJob"
REWARD_FIRST_REVIEW = "firstReview"

REFERRAL_REWARDS = {
    REWARD_SIGNUP: 100,
    REWARD_EMAIL_VERIFIED: 50,
    REWARD_FIRST_JOB: 200,
    REWARD_FIRST_REVIEW: 150,
}

# active referrals -> XP bonus
MILESTONE_REWARDS = {5: 500, 10: 1000, 25: 2500, 50: 5000}

TIER_ORDER: list[ReferralTier] = ["bronze", "silver", "gold", "platinum"]

TIER_BENEFITS: dict[str, TierBenefits] = {
    "bronze": TierBenefits(bonus_percent=0, perks="Base rewards"),
    "silver": TierBenefits(bonus_percent=10, perks="Priority support"),
    "gold": TierBenefits(bonus_percent=20, perks="Premium features"),
    "platinum": TierBenefits(bonus_percent=30, perks="VIP treatment"),
}

LEADERBOARD_SIZE = 5


# ── Pure rules ───────────────────────────────────────────────────────────────


def calculate_pending_rewards(referrals: list[dict[str, Any]]) -> int:
    return sum(
        reward.get("amount", 0)
        for referral in referrals
        for reward in (referral.get("rewards") or {}).values()
        if not reward.get("claimed")
    )


def get_tier_floor(tier: str, thresholds: Optional[dict[str, int]] = None) -> int:
    thresholds = thresholds or settings.referral_tier_thresholds
    return 0 if tier == "bronze" else thresholds[tier]


def get_referral_tier(active_referrals: int, thresholds: Optional[dict[str, int]] = None) -> ReferralTier:
    """Highest tier whose floor ``active_referrals`` reaches."""
    current: ReferralTier = "bronze"
    for tier in TIER_ORDER[1:]:
        if active_referrals >= get_tier_floor(tier, thresholds):
            current = tier
    return current


def get_next_tier(tier: str) -> Optional[ReferralTier]:
    index = TIER_ORDER.index(tier)
    return TIER_ORDER[index + 1] if index < len(TIER_ORDER) - 1 else None


def get_referrals_to_next_tier(
    active_referrals: int, thresholds: Optional[dict[str, int]] = None
) -> int:
    """Active referrals still needed for the next tier; 0 at the top tier."""
    next_tier = get_next_tier(get_referral_tier(active_referrals, thresholds))
    if next_tier is None:
        return 0
    return max(0, get_tier_floor(next_tier, thresholds) - active_referrals)


def get_next_tier_progress(
    active_referrals: int, thresholds: Optional[dict[str, int]] = None
) -> int:
    """Percent of the way from the current tier's floor to the next tier's floor."""
    tier = get_referral_tier(active_referrals, thresholds)
    next_tier = get_next_tier(tier)
    if next_tier is None:
        return 100
    floor = get_tier_floor(tier, thresholds)
    span = get_tier_floor(next_tier, thresholds) - floor
    return int(min(100, max(0, (active_referrals - floor) / span * 100)))


def due_milestones(active_referrals: int, paid: list[int]) -> list[int]:
    """Milestone counts reached but not yet paid, smallest first."""
    return [count for count in sorted(MILESTONE_REWARDS) if active_referrals >= count and count not in paid]


def _referral_entry(referral_stats: dict[str, Any], referee_id: int) -> Optional[dict[str, Any]]:
    for entry in referral_stats.get("referrals") or []:
        if entry.get("userId") == referee_id:
            return entry
    return None


# ── Links and signup ─────────────────────────────────────────────────────────


def build_referral_url(code: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}/signup?ref={code}"


async def create_referral_link(db: AsyncSession, user_id: int) -> str:
    """Return the user's shareable signup URL, creating a link on first use."""
    link = await get_active_referral_link(db, user_id)
    if link is None:
        link = await generate_referral_link(db, user_id, campaign_source="signup")
    return build_referral_url(link.code)


async def get_referrer_id(db: AsyncSession, user_id: int) -> Optional[int]:
    stats = await get_stats(db, user_id)
    referred_by = stats.get(REFERRED_BY_KEY) or {}
    return referred_by.get("userId")


async def process_referral_signup(db: AsyncSession, code: str, new_user_id: int) -> Optional[int]:
    """Attribute a new signup to the owner of ``code`` and pay the signup bonus.

    Returns:
        The referrer's user id, or None when the signup could not be
        attributed (unknown or inactive code, self-referral, or a referee who
        was already referred).
    """
    await track_referral_click(db, code)
    conversion = await create_referral_conversion(db, code, new_user_id)
    if conversion is None:
        log.info("referral_signup_not_attributed", code=code, referee_id=new_user_id)
        return None

    referrer_id = conversion.referrer_id
    joined_at = datetime.now(timezone.utc).isoformat()

    def mark_referee(stats: dict[str, Any]) -> None:
        stats[REFERRED_BY_KEY] = {"userId": referrer_id, "code": code, "joinedAt": joined_at}

    def add_referee(stats: dict[str, Any]) -> None:
        referral_stats = stats.setdefault(REFERRAL_KEY, {})
        referrals = referral_stats.setdefault("referrals", [])
        if _referral_entry(referral_stats, new_user_id) is None:
            referrals.append(
                {"userId": new_user_id, "joinedAt": joined_at, "status": "pending", "rewards": {}}
            )

    await update_stats(db, new_user_id, mark_referee)
    await update_stats(db, referrer_id, add_referee)
    log.info("referral_signup_attributed", referrer_id=referrer_id, referee_id=new_user_id)

    await add_referral_reward(db, referrer_id, new_user_id, REWARD_SIGNUP)
    await check_referral_milestones(db, referrer_id)
    return referrer_id


# ── Rewards ──────────────────────────────────────────────────────────────────


async def claim_referral_rewards(db: AsyncSession, user_id: int) -> int:
    """Claim every unclaimed referral reward of the user and credit the XP.

    Returns:
        The XP credited by this call.
    """

    def claim(stats: dict[str, Any]) -> list[tuple[str, int]]:
        referral_stats = stats.get(REFERRAL_KEY)
        if not referral_stats:
            return []
        claimed: list[tuple[str, int]] = []
        for entry in referral_stats.get("referrals") or []:
            for reward_type, reward in (entry.get("rewards") or {}).items():
                if not reward.get("claimed"):
                    reward["claimed"] = True
                    claimed.append((reward_type, int(reward.get("amount", 0))))
        referral_stats["pendingRewards"] = calculate_pending_rewards(referral_stats.get("referrals") or [])
        referral_stats["totalRewardsEarned"] = int(referral_stats.get("totalRewardsEarned", 0)) + sum(
            amount for _, amount in claimed
        )
        return claimed

    claimed = await update_stats(db, user_id, claim)
    for reward_type, amount in claimed:
        await add_xp(db, user_id, amount, source=f"referral_{reward_type}")
        referral_rewards.labels(reward_type=reward_type).inc()
    return sum(amount for _, amount in claimed)


async def add_referral_reward(
    db: AsyncSession, referrer_id: int, referee_id: int, reward_type: str
) -> bool:
    """Grant ``reward_type`` for ``referee_id`` to the referrer and auto-claim it.

    Returns:
        True if the reward was granted, False if the referee is not one of
        the referrer's referrals or the reward was already granted.
    """
    amount = REFERRAL_REWARDS[reward_type]

    def record(stats: dict[str, Any]) -> bool:
        referral_stats = stats.get(REFERRAL_KEY) or {}
        entry = _referral_entry(referral_stats, referee_id)
        if entry is None:
            return False
        rewards = entry.setdefault("rewards", {})
        if reward_type in rewards:
            return False
        rewards[reward_type] = {"claimed": False, "amount": amount}
        referral_stats["pendingRewards"] = calculate_pending_rewards(referral_stats["referrals"])
        return True

    granted = await update_stats(db, referrer_id, record)
    if not granted:
        log.info(
            "referral_reward_skipped",
            referrer_id=referrer_id,
            referee_id=referee_id,
            reward_type=reward_type,
        )
        return False

    await claim_referral_rewards(db, referrer_id)
    log.info(
        "referral_reward_granted",
        referrer_id=referrer_id,
        referee_id=referee_id,
        reward_type=reward_type,
        amount=amount,
    )
    return True


async def on_user_email_verified(db: AsyncSession, user_id: int) -> None:
    """Referee verified their email: 50 XP to the referrer and the referral becomes active."""
    referrer_id = await get_referrer_id(db, user_id)
    if referrer_id is None:
        return

    await add_referral_reward(db, referrer_id, user_id, REWARD_EMAIL_VERIFIED)
    await mark_referrer_reward_paid(db, user_id)

    def activate(stats: dict[str, Any]) -> None:
        entry = _referral_entry(stats.get(REFERRAL_KEY) or {}, user_id)
        if entry is not None:
            entry["status"] = "active"

    await update_stats(db, referrer_id, activate)
    await check_referral_milestones(db, referrer_id)


async def on_user_first_job(db: AsyncSession, user_id: int) -> None:
    """Referee completed their first job: 200 XP and the referral_first_job event."""
    referrer_id = await get_referrer_id(db, user_id)
    if referrer_id is None:
        return
    await add_referral_reward(db, referrer_id, user_id, REWARD_FIRST_JOB)
    await check_and_award_achievements(db, referrer_id, "referral_first_job")


async def on_user_first_review(db: AsyncSession, user_id: int) -> None:
    """Referee submitted their first review: 150 XP to the referrer."""
    referrer_id = await get_referrer_id(db, user_id)
    if referrer_id is None:
        return
    await add_referral_reward(db, referrer_id, user_id, REWARD_FIRST_REVIEW)


async def check_referral_milestones(db: AsyncSession, user_id: int) -> list[int]:
    """Pay every active-referral milestone the user has reached but not been paid for.

    Returns:
        The milestone counts paid by this call.
    """
    counts = await get_referral_counts(db, user_id)

    def reserve(stats: dict[str, Any]) -> list[int]:
        referral_stats = stats.setdefault(REFERRAL_KEY, {})
        paid = list(referral_stats.get("milestonesPaid") or [])
        due = due_milestones(counts.active_conversions, paid)
        if due:
            referral_stats["milestonesPaid"] = sorted(paid + due)
        return due

    due = await update_stats(db, user_id, reserve)
    for count in due:
        xp = MILESTONE_REWARDS[count]
        await add_xp(db, user_id, xp, source="referral_milestone")
        referral_rewards.labels(reward_type=f"milestone_{count}").inc()
        log.info("referral_milestone_reached", user_id=user_id, milestone=count, xp=xp)
        await check_and_award_achievements(db, user_id, f"referral_milestone_{count}")
    return due


# ── Reporting ────────────────────────────────────────────────────────────────


async def get_referral_stats(db: AsyncSession, user_id: int) -> ReferralStats:
    counts = await get_referral_counts(db, user_id)
    stats = await get_stats(db, user_id)
    referral_stats = stats.get(REFERRAL_KEY) or {}

    active = counts.active_conversions
    conversion_rate = (
        counts.total_conversions / counts.total_clicks * 100 if counts.total_clicks else 0.0
    )
    return ReferralStats(
        total_referrals=counts.total_conversions,
        active_referrals=active,
        total_clicks=counts.total_clicks,
        conversion_rate=round(conversion_rate, 2),
        pending_rewards=int(referral_stats.get("pendingRewards", 0)),
        total_rewards_earned=int(referral_stats.get("totalRewardsEarned", 0)),
        tier=get_referral_tier(active),
        next_tier_progress=get_next_tier_progress(active),
    )


async def get_referral_dashboard(db: AsyncSession, user_id: int) -> ReferralDashboard:
    """Everything the referral dashboard shows for one user."""
    stats = await get_referral_stats(db, user_id)
    leaderboard = await get_referral_leaderboard(db, LEADERBOARD_SIZE)
    referral_link = await create_referral_link(db, user_id)
    return ReferralDashboard(
        stats=stats,
        referral_link=referral_link,
        leaderboard=leaderboard,
        tier_benefits=TIER_BENEFITS[stats.tier],
        next_tier=get_next_tier(stats.tier),
        referrals_to_next_tier=get_referrals_to_next_tier(stats.active_referrals),
    )
