"""Review and review dispute ORM models.

Freelancer reviews are written by clients about the hired freelancer; client
reviews are written by freelancers about the client. Both feed the review
sub-score of the trust score, pooled across roles.

A review under dispute is hidden (is_public = False) until the dispute is
resolved. Disputes reference reviews by (review_id, review_type) without a
foreign key, because an upheld dispute may delete the review it targets.
"""

import enum
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType

FREELANCER_REVIEW_UNIQUE_CONSTRAINT = "uq_freelancer_reviews_job_reviewer_freelancer"
CLIENT_REVIEW_UNIQUE_CONSTRAINT = "uq_client_reviews_job_reviewer_client"
DISPUTE_UNIQUE_CONSTRAINT = "uq_review_disputes_review"


class ReviewType(str, enum.Enum):
    freelancer = "freelancer"
    client = "client"


class DisputeStatus(str, enum.Enum):
    pending = "pending"
    under_review = "under_review"
    resolved = "resolved"


class DisputeResolution(str, enum.Enum):
    upheld = "upheld"
    dismissed = "dismissed"
    modified = "modified"


class FreelancerReview(Base):
    __tablename__ = "freelancer_reviews"

    __table_args__ = (
        UniqueConstraint(
            "job_id", "reviewer_id", "freelancer_id", name=FREELANCER_REVIEW_UNIQUE_CONSTRAINT
        ),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_freelancer_reviews_rating"),
        Index("ix_freelancer_reviews_freelancer_id", "freelancer_id"),
        Index("ix_freelancer_reviews_reviewer_id", "reviewer_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("job_postings.id", name="fk_freelancer_reviews_job_id"), nullable=False
    )
    reviewer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_freelancer_reviews_reviewer_id"), nullable=False
    )
    freelancer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_freelancer_reviews_freelancer_id"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    review_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    communication_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    quality_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    deadline_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    skills_rating: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    would_hire_again: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    response_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class ClientReview(Base):
    __tablename__ = "client_reviews"

    __table_args__ = (
        UniqueConstraint("job_id", "reviewer_id", "client_id", name=CLIENT_REVIEW_UNIQUE_CONSTRAINT),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_client_reviews_rating"),
        Index("ix_client_reviews_client_id", "client_id"),
        Index("ix_client_reviews_reviewer_id", "reviewer_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("job_postings.id", name="fk_client_reviews_job_id"), nullable=False
    )
    reviewer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_client_reviews_reviewer_id"), nullable=False
    )
    client_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_client_reviews_client_id"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    review_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    payment_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    communication_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    clarity_rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    would_work_again: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class ReviewDispute(Base):
    __tablename__ = "review_disputes"

    __table_args__ = (
        UniqueConstraint("review_id", "review_type", name=DISPUTE_UNIQUE_CONSTRAINT),
        Index("ix_review_disputes_disputed_by", "disputed_by"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    review_id: Mapped[int] = mapped_column(Integer, nullable=False)
    review_type: Mapped[str] = mapped_column(String(20), nullable=False)
    disputed_by: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_review_disputes_disputed_by"), nullable=False
    )
    reason: Mapped[str] = mapped_column(String(50), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    evidence: Mapped[list[str]] = mapped_column(JSONType, default=list, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=DisputeStatus.pending.value, nullable=False
    )
    resolution: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    admin_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    action_taken: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    resolved_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_review_disputes_resolved_by"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
