"""Review dispute queries.

Opening a dispute hides the review. Resolving it either applies the upheld
action (delete or keep hidden) or restores the review when dismissed.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.errors import DisputeError, ReviewNotFoundError
from escrow_reputation.models.review import (
    DisputeResolution,
    DisputeStatus,
    FreelancerReview,
    ReviewDispute,
)
from escrow_reputation.queries.reviews import get_review, review_model, set_review_visibility
from escrow_reputation.schemas.review import DisputeAggregate

log = structlog.get_logger()

ACTION_REVIEW_REMOVED = "review_removed"
ACTION_REVIEW_HIDDEN = "review_hidden"


async def check_dispute_exists(db: AsyncSession, review_id: int, review_type: str) -> bool:
    result = await db.execute(
        select(ReviewDispute.id)
        .where(ReviewDispute.review_id == review_id)
        .where(ReviewDispute.review_type == review_type)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_dispute_by_id(db: AsyncSession, dispute_id: int) -> Optional[ReviewDispute]:
    result = await db.execute(select(ReviewDispute).where(ReviewDispute.id == dispute_id))
    return result.scalar_one_or_none()


async def create_review_dispute(
    db: AsyncSession,
    disputed_by: int,
    review_id: int,
    review_type: str,
    reason: str,
    description: str,
    evidence: Optional[list[str]] = None,
) -> ReviewDispute:
    """Open a dispute against a review and hide the review meanwhile.

    Raises:
        ReviewNotFoundError: The review does not exist.
        DisputeError: The disputer is neither the reviewer nor the subject,
            or the review already has a dispute.
    """
    review = await get_review(db, review_id, review_type)
    if review is None:
        raise ReviewNotFoundError(review_id, review_type)

    subject_id = review.freelancer_id if isinstance(review, FreelancerReview) else review.client_id
    if disputed_by not in (subject_id, review.reviewer_id):
        raise DisputeError("You are not authorized to dispute this review")

    if await check_dispute_exists(db, review_id, review_type):
        raise DisputeError("A dispute already exists for this review")

    dispute = ReviewDispute(
        review_id=review_id,
        review_type=review_type,
        disputed_by=disputed_by,
        reason=reason,
        description=description,
        evidence=evidence or [],
        status=DisputeStatus.pending.value,
    )
    db.add(dispute)
    await set_review_visibility(db, review_id, review_type, is_public=False)
    await db.flush()
    log.info("review_dispute_created", dispute_id=dispute.id, review_id=review_id, review_type=review_type)
    return dispute


async def resolve_dispute(
    db: AsyncSession,
    dispute_id: int,
    resolved_by: int,
    resolution: str,
    action_taken: str,
    admin_note: str = "",
    now: Optional[datetime] = None,
) -> ReviewDispute:
    """Close a dispute and apply its outcome to the review.

    Upheld with ``review_removed`` deletes the review; upheld with
    ``review_hidden`` keeps it private. Dismissed makes it public again.
    ``modified`` leaves the review as it is.
    """
    dispute = await get_dispute_by_id(db, dispute_id)
    if dispute is None:
        raise DisputeError(f"Dispute {dispute_id} not found")
    if resolution not in {r.value for r in DisputeResolution}:
        raise DisputeError(f"Unknown resolution: {resolution}")

    dispute.status = DisputeStatus.resolved.value
    dispute.resolution = resolution
    dispute.action_taken = action_taken
    dispute.admin_note = admin_note
    dispute.resolved_by = resolved_by
    dispute.resolved_at = now or datetime.now(timezone.utc)

    if resolution == DisputeResolution.upheld.value:
        if action_taken == ACTION_REVIEW_REMOVED:
            model = review_model(dispute.review_type)
            await db.execute(delete(model).where(model.id == dispute.review_id))
        elif action_taken == ACTION_REVIEW_HIDDEN:
            await set_review_visibility(db, dispute.review_id, dispute.review_type, is_public=False)
    elif resolution == DisputeResolution.dismissed.value:
        await set_review_visibility(db, dispute.review_id, dispute.review_type, is_public=True)

    await db.flush()
    log.info(
        "review_dispute_resolved",
        dispute_id=dispute_id,
        resolution=resolution,
        action_taken=action_taken,
    )
    return dispute


async def update_dispute_status(db: AsyncSession, dispute_id: int, status: str) -> None:
    await db.execute(
        update(ReviewDispute)
        .where(ReviewDispute.id == dispute_id)
        .values(status=status)
        .execution_options(synchronize_session=False)
    )


async def get_disputes_by_user(db: AsyncSession, user_id: int) -> list[ReviewDispute]:
    result = await db.execute(
        select(ReviewDispute)
        .where(ReviewDispute.disputed_by == user_id)
        .order_by(ReviewDispute.created_at.desc())
    )
    return list(result.scalars().all())


async def get_pending_disputes(db: AsyncSession) -> list[ReviewDispute]:
    result = await db.execute(
        select(ReviewDispute)
        .where(ReviewDispute.status == DisputeStatus.pending.value)
        .order_by(ReviewDispute.created_at.desc())
    )
    return list(result.scalars().all())


async def get_dispute_aggregate(db: AsyncSession, user_id: int) -> DisputeAggregate:
    """Count the disputes a user has filed, split by resolution."""
    result = await db.execute(
        select(
            func.count(),
            func.count(case((ReviewDispute.resolution == DisputeResolution.upheld.value, 1))),
            func.count(case((ReviewDispute.resolution == DisputeResolution.dismissed.value, 1))),
        ).where(ReviewDispute.disputed_by == user_id)
    )
    total, upheld, dismissed = result.one()
    return DisputeAggregate(total=total or 0, upheld=upheld or 0, dismissed=dismissed or 0)


async def get_dispute_stats(db: AsyncSession) -> dict:
    """Platform-wide dispute counts and mean resolution time in days."""
    result = await db.execute(
        select(
            func.count(),
            func.count(case((ReviewDispute.status == DisputeStatus.pending.value, 1))),
            func.count(case((ReviewDispute.status == DisputeStatus.resolved.value, 1))),
        )
    )
    total, pending, resolved = result.one()

    durations = await db.execute(
        select(ReviewDispute.created_at, ReviewDispute.resolved_at)
        .where(ReviewDispute.status == DisputeStatus.resolved.value)
        .where(ReviewDispute.resolved_at.is_not(None))
    )
    days = [(resolved_at - created_at).total_seconds() / 86400 for created_at, resolved_at in durations.all()]
    avg_days = round(sum(days) / len(days), 1) if days else 0.0

    return {
        "total": total or 0,
        "pending": pending or 0,
        "resolved": resolved or 0,
        "avg_resolution_days": avg_days,
    }
