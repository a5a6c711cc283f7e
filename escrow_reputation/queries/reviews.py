"""Freelancer and client review queries.

Freelancer and client reviews live in separate tables with the same shape.
_REVIEW_TABLES maps a review type to its model and subject column so the
shared queries below can be written once.
"""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.errors import ReputationError
from escrow_reputation.models.review import (
    CLIENT_REVIEW_UNIQUE_CONSTRAINT,
    FREELANCER_REVIEW_UNIQUE_CONSTRAINT,
    ClientReview,
    FreelancerReview,
    ReviewType,
)
from escrow_reputation.schemas.review import ReviewAggregate, ReviewStats

_REVIEW_TABLES = {
    ReviewType.freelancer.value: (FreelancerReview, FreelancerReview.freelancer_id),
    ReviewType.client.value: (ClientReview, ClientReview.client_id),
}

_DETAILED_RATINGS = {
    ReviewType.freelancer.value: ("communication_rating", "quality_rating", "deadline_rating"),
    ReviewType.client.value: ("payment_rating", "communication_rating", "clarity_rating"),
}


@dataclass
class ReviewFilter:
    is_public: Optional[bool] = None
    min_rating: Optional[int] = None
    has_response: Optional[bool] = None
    sort_by: str = "date"  # date | rating
    order: str = "desc"
    page: int = 1
    limit: int = 20


def review_model(review_type: str):
    """Return the ORM model for ``review_type`` ("freelancer" or "client")."""
    try:
        return _REVIEW_TABLES[review_type][0]
    except KeyError:
        raise ReputationError(f"Unknown review type: {review_type}") from None


async def _insert_review(db: AsyncSession, review, constraint: str):
    try:
        async with db.begin_nested():
            db.add(review)
    except IntegrityError as exc:
        if constraint in str(exc.orig):
            raise ReputationError("A review for this job already exists") from exc
        raise
    return review


async def create_freelancer_review(db: AsyncSession, **values: Any) -> FreelancerReview:
    return await _insert_review(
        db, FreelancerReview(**values), FREELANCER_REVIEW_UNIQUE_CONSTRAINT
    )


async def create_client_review(db: AsyncSession, **values: Any) -> ClientReview:
    return await _insert_review(db, ClientReview(**values), CLIENT_REVIEW_UNIQUE_CONSTRAINT)


async def get_review(db: AsyncSession, review_id: int, review_type: str):
    model = review_model(review_type)
    result = await db.execute(select(model).where(model.id == review_id))
    return result.scalar_one_or_none()


async def get_review_for_job(db: AsyncSession, job_id: int, reviewer_id: int, review_type: str):
    model = review_model(review_type)
    result = await db.execute(
        select(model).where(model.job_id == job_id).where(model.reviewer_id == reviewer_id).limit(1)
    )
    return result.scalar_one_or_none()


async def check_review_exists(
    db: AsyncSession, job_id: int, reviewer_id: int, review_type: str
) -> bool:
    return await get_review_for_job(db, job_id, reviewer_id, review_type) is not None


async def add_review_response(
    db: AsyncSession, review_id: int, review_type: str, response: str
) -> None:
    model = review_model(review_type)
    responded_column = "response_at" if model is FreelancerReview else "responded_at"
    await db.execute(
        update(model)
        .where(model.id == review_id)
        .values({"response": response, responded_column: func.now()})
        .execution_options(synchronize_session=False)
    )


async def _list_reviews(
    db: AsyncSession, review_type: str, subject_id: int, filters: Optional[ReviewFilter]
) -> tuple[list, int]:
    model, subject = _REVIEW_TABLES[review_type]
    filters = filters or ReviewFilter()

    conditions = [subject == subject_id]
    if filters.is_public is not None:
        conditions.append(model.is_public.is_(filters.is_public))
    if filters.min_rating:
        conditions.append(model.rating >= filters.min_rating)
    if filters.has_response is True:
        conditions.append(model.response.is_not(None))
    elif filters.has_response is False:
        conditions.append(model.response.is_(None))

    sort_column = model.rating if filters.sort_by == "rating" else model.created_at
    order_by = sort_column.asc() if filters.order == "asc" else sort_column.desc()
    offset = (max(filters.page, 1) - 1) * filters.limit

    rows = await db.execute(
        select(model).where(*conditions).order_by(order_by).limit(filters.limit).offset(offset)
    )
    total = await db.execute(select(func.count()).select_from(model).where(*conditions))
    return list(rows.scalars().all()), total.scalar_one() or 0


async def get_freelancer_reviews(
    db: AsyncSession, freelancer_id: int, filters: Optional[ReviewFilter] = None
) -> tuple[list[FreelancerReview], int]:
    """Return one page of reviews about a freelancer and the total match count."""
    return await _list_reviews(db, ReviewType.freelancer.value, freelancer_id, filters)


async def get_client_reviews(
    db: AsyncSession, client_id: int, filters: Optional[ReviewFilter] = None
) -> tuple[list[ClientReview], int]:
    return await _list_reviews(db, ReviewType.client.value, client_id, filters)


async def _review_stats(db: AsyncSession, review_type: str, subject_id: int) -> ReviewStats:
    model, subject = _REVIEW_TABLES[review_type]
    detailed = _DETAILED_RATINGS[review_type]
    result = await db.execute(
        select(
            func.count(),
            func.avg(model.rating),
            *[func.count(case((model.rating == stars, 1))) for stars in range(1, 6)],
            *[func.avg(getattr(model, column)) for column in detailed],
            func.count(model.response),
        ).where(subject == subject_id)
    )
    row = result.one()
    total = row[0] or 0
    breakdown = {stars: row[1 + stars] or 0 for stars in range(1, 6)}
    detailed_ratings = {
        column.removesuffix("_rating"): float(row[7 + i] or 0) for i, column in enumerate(detailed)
    }
    responded = row[7 + len(detailed)] or 0
    return ReviewStats(
        total_reviews=total,
        average_rating=float(row[1] or 0),
        rating_breakdown=breakdown,
        detailed_ratings=detailed_ratings,
        response_rate=(responded * 100.0 / total) if total else 0.0,
    )


async def get_freelancer_review_stats(db: AsyncSession, freelancer_id: int) -> ReviewStats:
    return await _review_stats(db, ReviewType.freelancer.value, freelancer_id)


async def get_client_review_stats(db: AsyncSession, client_id: int) -> ReviewStats:
    return await _review_stats(db, ReviewType.client.value, client_id)


async def get_review_aggregates(
    db: AsyncSession, user_id: int
) -> tuple[ReviewAggregate, ReviewAggregate]:
    """Return (as-freelancer, as-client) review count and average for a user."""
    aggregates = []
    for review_type in (ReviewType.freelancer.value, ReviewType.client.value):
        model, subject = _REVIEW_TABLES[review_type]
        result = await db.execute(
            select(func.count(), func.avg(model.rating)).where(subject == user_id)
        )
        count, average = result.one()
        aggregates.append(ReviewAggregate(count=count or 0, average=float(average or 0)))
    return aggregates[0], aggregates[1]


async def get_skill_ratings(db: AsyncSession, freelancer_id: int) -> dict[str, float]:
    """Average each skill's rating across all reviews of the freelancer.

    ``skills_rating`` is a {skill_id: rating} object per review; entries that
    are not numeric are ignored.
    """
    result = await db.execute(
        select(FreelancerReview.skills_rating).where(FreelancerReview.freelancer_id == freelancer_id)
    )
    totals: dict[str, list[float]] = defaultdict(list)
    for (skills,) in result.all():
        for skill_id, rating in (skills or {}).items():
            if isinstance(rating, (int, float)) and not isinstance(rating, bool):
                totals[str(skill_id)].append(float(rating))
    return {skill_id: sum(values) / len(values) for skill_id, values in totals.items()}


async def count_reviews_written(db: AsyncSession, reviewer_id: int) -> int:
    total = 0
    for model in (FreelancerReview, ClientReview):
        result = await db.execute(
            select(func.count()).select_from(model).where(model.reviewer_id == reviewer_id)
        )
        total += result.scalar_one() or 0
    return total


async def set_review_visibility(
    db: AsyncSession, review_id: int, review_type: str, is_public: bool
) -> None:
    model = review_model(review_type)
    await db.execute(
        update(model)
        .where(model.id == review_id)
        .values(is_public=is_public)
        .execution_options(synchronize_session=False)
    )


async def count_reviews_written_by_users(db: AsyncSession, reviewer_ids: list[int]) -> dict[int, int]:
    """Reviews written per reviewer across both review tables."""
    counts: dict[int, int] = defaultdict(int)
    if not reviewer_ids:
        return counts
    for model in (FreelancerReview, ClientReview):
        result = await db.execute(
            select(model.reviewer_id, func.count())
            .where(model.reviewer_id.in_(reviewer_ids))
            .group_by(model.reviewer_id)
        )
        for reviewer_id, count in result.all():
            counts[reviewer_id] += count
    return counts
