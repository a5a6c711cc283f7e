"""Job posting, milestone and bid ORM models.

A job has one client, at most one hired freelancer and an ordered list of
milestones. The job is complete once every milestone reaches ``approved``.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

BID_UNIQUE_CONSTRAINT = "uq_job_bids_job_freelancer"


class JobStatus(str, enum.Enum):
    draft = "draft"
    open = "open"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"
    closed = "closed"


class MilestoneStatus(str, enum.Enum):
    pending = "pending"
    in_progress = "in_progress"
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"


class BidStatus(str, enum.Enum):
    pending = "pending"
    shortlisted = "shortlisted"
    accepted = "accepted"
    rejected = "rejected"
    withdrawn = "withdrawn"


class JobPosting(Base):
    __tablename__ = "job_postings"

    __table_args__ = (
        Index("ix_job_postings_client_id", "client_id"),
        Index("ix_job_postings_freelancer_id", "freelancer_id"),
        Index("ix_job_postings_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    client_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_job_postings_client_id_users"), nullable=False
    )
    freelancer_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_job_postings_freelancer_id_users"), nullable=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=JobStatus.draft.value, nullable=False)
    total_budget: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    milestones: Mapped[list["JobMilestone"]] = relationship(
        "JobMilestone", back_populates="job", lazy="raise", order_by="JobMilestone.order_index"
    )


class JobMilestone(Base):
    __tablename__ = "job_milestones"

    __table_args__ = (Index("ix_job_milestones_job_id", "job_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("job_postings.id", ondelete="CASCADE", name="fk_job_milestones_job_id_job_postings"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=MilestoneStatus.pending.value, nullable=False
    )
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    job: Mapped["JobPosting"] = relationship("JobPosting", back_populates="milestones", lazy="raise")


class JobBid(Base):
    __tablename__ = "job_bids"

    __table_args__ = (
        UniqueConstraint("job_id", "freelancer_id", name=BID_UNIQUE_CONSTRAINT),
        Index("ix_job_bids_freelancer_id", "freelancer_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("job_postings.id", ondelete="CASCADE", name="fk_job_bids_job_id_job_postings"),
        nullable=False,
    )
    freelancer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_job_bids_freelancer_id_users"), nullable=False
    )
    bid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    delivery_days: Mapped[int] = mapped_column(Integer, nullable=False)
    proposal_text: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=BidStatus.pending.value, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
