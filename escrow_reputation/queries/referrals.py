"""Referral link and conversion queries.

Codes are ``REF`` followed by ten random uppercase alphanumerics, or a
caller-chosen slug. Uniqueness is enforced by the database: an INSERT that
collides on the code is retried with a fresh random code inside its own
savepoint, up to settings.referral_code_max_attempts times.
"""

import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.config import settings
from escrow_reputation.errors import ReferralCodeError
from escrow_reputation.models.job import JobPosting, JobStatus
from escrow_reputation.models.referral import ReferralConversion, ReferralLink, RewardStatus
from escrow_reputation.models.user import User
from escrow_reputation.schemas.referral import LeaderboardEntry

log = structlog.get_logger()

CODE_PREFIX = "REF"
CODE_LENGTH = 10
_CODE_ALPHABET = string.ascii_uppercase + string.digits


@dataclass
class ReferralCounts:
    total_clicks: int = 0
    total_conversions: int = 0
    active_conversions: int = 0


def generate_referral_code() -> str:
    return CODE_PREFIX + "".join(secrets.choice(_CODE_ALPHABET) for _ in range(CODE_LENGTH))


async def generate_referral_link(
    db: AsyncSession,
    user_id: int,
    campaign_source: Optional[str] = None,
    custom_slug: Optional[str] = None,
) -> ReferralLink:
    """Create a new referral link for the user.

    A taken custom slug falls back to a random code rather than failing.

    Raises:
        ReferralCodeError: No free code was found within the attempt budget.
    """
    candidate = custom_slug or generate_referral_code()
    for attempt in range(settings.referral_code_max_attempts):
        link = ReferralLink(
            user_id=user_id,
            code=candidate,
            custom_alias=custom_slug if candidate == custom_slug else None,
            click_count=0,
            conversion_count=0,
            details={"source": campaign_source},
            is_active=True,
        )
        try:
            async with db.begin_nested():
                db.add(link)
        except IntegrityError:
            log.info("referral_code_collision", user_id=user_id, attempt=attempt + 1)
            candidate = generate_referral_code()
            continue
        log.info("referral_link_created", user_id=user_id, code=link.code)
        return link
    raise ReferralCodeError(f"Could not allocate a unique referral code for user {user_id}")


def _usable_link_clause(now: datetime):
    return (
        ReferralLink.is_active.is_(True),
        or_(ReferralLink.expires_at.is_(None), ReferralLink.expires_at > now),
    )


async def get_referral_link(db: AsyncSession, code: str) -> Optional[ReferralLink]:
    result = await db.execute(select(ReferralLink).where(ReferralLink.code == code))
    return result.scalar_one_or_none()


async def get_active_referral_link(db: AsyncSession, user_id: int) -> Optional[ReferralLink]:
    """Return the user's newest usable link, if any."""
    now = datetime.now(timezone.utc)
    result = await db.execute(
        select(ReferralLink)
        .where(ReferralLink.user_id == user_id)
        .where(*_usable_link_clause(now))
        .order_by(ReferralLink.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def get_referral_links(db: AsyncSession, user_id: int) -> list[ReferralLink]:
    result = await db.execute(
        select(ReferralLink)
        .where(ReferralLink.user_id == user_id)
        .order_by(ReferralLink.created_at.desc())
    )
    return list(result.scalars().all())


async def track_referral_click(db: AsyncSession, code: str) -> bool:
    """Atomically count one click on the link. Returns False for unknown codes."""
    result = await db.execute(
        update(ReferralLink)
        .where(ReferralLink.code == code)
        .values(click_count=ReferralLink.click_count + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


async def get_conversion_for_referee(
    db: AsyncSession, referee_id: int
) -> Optional[ReferralConversion]:
    result = await db.execute(
        select(ReferralConversion).where(ReferralConversion.referee_id == referee_id)
    )
    return result.scalar_one_or_none()


async def create_referral_conversion(
    db: AsyncSession, code: str, referee_id: int
) -> Optional[ReferralConversion]:
    """Record that ``referee_id`` signed up through ``code``.

    Returns None when the link is unknown, inactive or expired, when the
    referee is the link owner, or when the referee was already referred.
    """
    result = await db.execute(
        select(ReferralLink)
        .where(ReferralLink.code == code)
        .where(*_usable_link_clause(datetime.now(timezone.utc)))
    )
    link = result.scalar_one_or_none()
    if link is None:
        return None
    if link.user_id == referee_id:
        return None
    if await get_conversion_for_referee(db, referee_id) is not None:
        return None

    conversion = ReferralConversion(
        referral_link_id=link.id,
        referrer_id=link.user_id,
        referee_id=referee_id,
        conversion_type="signup",
        referrer_reward_status=RewardStatus.pending.value,
        referee_reward_status=RewardStatus.pending.value,
    )
    try:
        async with db.begin_nested():
            db.add(conversion)
    except IntegrityError:
        # A concurrent signup for the same referee won the race
        return None

    await db.execute(
        update(ReferralLink)
        .where(ReferralLink.id == link.id)
        .values(conversion_count=ReferralLink.conversion_count + 1)
        .execution_options(synchronize_session=False)
    )
    return conversion


async def mark_referrer_reward_paid(db: AsyncSession, referee_id: int) -> Optional[int]:
    """Flip the referee's conversion to paid. Returns the referrer id if it changed."""
    result = await db.execute(
        update(ReferralConversion)
        .where(ReferralConversion.referee_id == referee_id)
        .where(ReferralConversion.referrer_reward_status != RewardStatus.paid.value)
        .values(referrer_reward_status=RewardStatus.paid.value)
        .returning(ReferralConversion.referrer_id)
        .execution_options(synchronize_session=False)
    )
    return result.scalar_one_or_none()


async def get_referral_counts(db: AsyncSession, user_id: int) -> ReferralCounts:
    clicks = await db.execute(
        select(
            func.coalesce(func.sum(ReferralLink.click_count), 0),
            func.coalesce(func.sum(ReferralLink.conversion_count), 0),
        ).where(ReferralLink.user_id == user_id)
    )
    total_clicks, total_conversions = clicks.one()

    active = await db.execute(
        select(
            func.count(
                case((ReferralConversion.referrer_reward_status == RewardStatus.paid.value, 1))
            )
        ).where(ReferralConversion.referrer_id == user_id)
    )
    return ReferralCounts(
        total_clicks=int(total_clicks),
        total_conversions=int(total_conversions),
        active_conversions=active.scalar_one() or 0,
    )


async def get_referred_users(db: AsyncSession, user_id: int) -> list[dict]:
    result = await db.execute(
        select(
            ReferralConversion.id,
            ReferralConversion.referee_id,
            User.wallet_address,
            ReferralConversion.referrer_reward_status,
            ReferralConversion.created_at,
        )
        .join(User, User.id == ReferralConversion.referee_id)
        .where(ReferralConversion.referrer_id == user_id)
        .order_by(ReferralConversion.created_at.desc())
    )
    return [
        {
            "id": row.id,
            "referee_id": row.referee_id,
            "wallet_address": row.wallet_address,
            "status": row.referrer_reward_status,
            "joined_at": row.created_at,
        }
        for row in result.all()
    ]


async def get_referral_leaderboard(db: AsyncSession, limit: int = 10) -> list[LeaderboardEntry]:
    """Rank referrers by active (paid) conversions."""
    referral_count = func.count().label("referral_count")
    result = await db.execute(
        select(ReferralConversion.referrer_id, User.name, referral_count)
        .join(User, User.id == ReferralConversion.referrer_id)
        .where(ReferralConversion.referrer_reward_status == RewardStatus.paid.value)
        .group_by(ReferralConversion.referrer_id, User.name)
        .order_by(referral_count.desc(), ReferralConversion.referrer_id)
        .limit(limit)
    )
    return [
        LeaderboardEntry(
            rank=index + 1,
            user_id=row.referrer_id,
            name=row.name or f"User {row.referrer_id}",
            referral_count=row.referral_count,
        )
        for index, row in enumerate(result.all())
    ]


async def count_referees_with_completed_jobs(db: AsyncSession, referrer_id: int) -> int:
    """Count the referrer's referees who have completed at least one job in either role."""
    completed_job = (
        select(JobPosting.id)
        .where(JobPosting.status == JobStatus.completed.value)
        .where(
            or_(
                JobPosting.client_id == ReferralConversion.referee_id,
                JobPosting.freelancer_id == ReferralConversion.referee_id,
            )
        )
        .exists()
    )
    result = await db.execute(
        select(func.count())
        .select_from(ReferralConversion)
        .where(ReferralConversion.referrer_id == referrer_id)
        .where(completed_job)
    )
    return result.scalar_one() or 0
