"""Help-centre FAQ queries."""

from typing import Optional

from sqlalchemy import case, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.errors import ReputationError
from escrow_reputation.models.faq import FaqCategory, FaqItem, FaqVote


async def get_faq_categories(db: AsyncSession, include_inactive: bool = False) -> list[FaqCategory]:
    stmt = select(FaqCategory).order_by(FaqCategory.display_order)
    if not include_inactive:
        stmt = stmt.where(FaqCategory.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_faq_category_by_slug(db: AsyncSession, slug: str) -> Optional[FaqCategory]:
    result = await db.execute(select(FaqCategory).where(FaqCategory.slug == slug))
    return result.scalar_one_or_none()


async def get_faq_items_by_category(db: AsyncSession, category_id: int) -> list[FaqItem]:
    result = await db.execute(
        select(FaqItem)
        .where(FaqItem.category_id == category_id)
        .where(FaqItem.is_published.is_(True))
        .order_by(FaqItem.display_order)
    )
    return list(result.scalars().all())


async def search_faq_items(db: AsyncSession, query: str, limit: int = 20) -> list[FaqItem]:
    """Case-insensitive substring search; question matches rank above answer matches."""
    pattern = f"%{query}%"
    relevance = case(
        (FaqItem.question.ilike(pattern), 2),
        else_=1,
    )
    result = await db.execute(
        select(FaqItem)
        .where(FaqItem.is_published.is_(True))
        .where(or_(FaqItem.question.ilike(pattern), FaqItem.answer.ilike(pattern)))
        .order_by(relevance.desc(), FaqItem.helpful_count.desc(), FaqItem.view_count.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def vote_faq_helpfulness(
    db: AsyncSession,
    faq_item_id: int,
    is_helpful: bool,
    user_id: Optional[int] = None,
    session_id: Optional[str] = None,
    feedback: Optional[str] = None,
) -> FaqVote:
    """Record or change a helpfulness vote and keep the item counters in step.

    A first vote increments one counter. Changing an existing vote moves one
    count from the old column to the new one; repeating the same vote leaves
    the counters alone.
    """
    if user_id is None and session_id is None:
        raise ReputationError("A FAQ vote needs a user_id or a session_id")

    voter = FaqVote.user_id == user_id if user_id is not None else FaqVote.session_id == session_id
    result = await db.execute(
        select(FaqVote).where(FaqVote.faq_item_id == faq_item_id).where(voter).limit(1)
    )
    vote = result.scalar_one_or_none()

    if vote is None:
        vote = FaqVote(
            faq_item_id=faq_item_id,
            user_id=user_id,
            session_id=session_id,
            is_helpful=is_helpful,
            feedback=feedback,
        )
        db.add(vote)
        values = (
            {"helpful_count": FaqItem.helpful_count + 1}
            if is_helpful
            else {"not_helpful_count": FaqItem.not_helpful_count + 1}
        )
    else:
        changed = vote.is_helpful != is_helpful
        vote.is_helpful = is_helpful
        vote.feedback = feedback
        if not changed:
            await db.flush()
            return vote
        delta = 1 if is_helpful else -1
        values = {
            "helpful_count": FaqItem.helpful_count + delta,
            "not_helpful_count": FaqItem.not_helpful_count - delta,
        }

    await db.execute(
        update(FaqItem)
        .where(FaqItem.id == faq_item_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    return vote
