"""Endorsement, verification badge and reputation registry ORM models.

ReputationRegistry keeps one denormalised row per (user, role) so that
leaderboards do not have to aggregate reviews on every read. Upserts should
reference REPUTATION_UNIQUE_CONSTRAINT rather than hardcode the name.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    Boolean,
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
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType

ENDORSEMENT_UNIQUE_CONSTRAINT = "uq_skill_endorsements_endorser_endorsed_skill"
BADGE_UNIQUE_CONSTRAINT = "uq_verification_badges_user_type"
REPUTATION_UNIQUE_CONSTRAINT = "uq_reputation_registry_user_role"


class BadgeType(str, enum.Enum):
    email = "email"
    identity = "identity"
    phone = "phone"
    professional = "professional"
    kyc = "kyc"


class SkillEndorsement(Base):
    __tablename__ = "skill_endorsements"

    __table_args__ = (
        UniqueConstraint(
            "endorser_id", "endorsed_user_id", "skill_id", name=ENDORSEMENT_UNIQUE_CONSTRAINT
        ),
        Index("ix_skill_endorsements_endorsed_user_id", "endorsed_user_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    endorser_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_skill_endorsements_endorser_id"), nullable=False
    )
    endorsed_user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_skill_endorsements_endorsed_user_id"), nullable=False
    )
    skill_id: Mapped[int] = mapped_column(Integer, nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    relationship_type: Mapped[Optional[str]] = mapped_column("relationship", String(50), nullable=True)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    job_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    endorsement_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class VerificationBadge(Base):
    __tablename__ = "verification_badges"

    __table_args__ = (UniqueConstraint("user_id", "badge_type", name=BADGE_UNIQUE_CONSTRAINT),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE", name="fk_verification_badges_user_id"),
        nullable=False,
    )
    badge_type: Mapped[str] = mapped_column(String(50), nullable=False)
    verification_level: Mapped[str] = mapped_column(String(20), default="basic", nullable=False)
    verification_data: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    verified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class ReputationRegistry(Base):
    __tablename__ = "reputation_registry"

    __table_args__ = (
        UniqueConstraint("user_id", "is_freelancer", name=REPUTATION_UNIQUE_CONSTRAINT),
        Index("ix_reputation_registry_score", "reputation_score"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE", name="fk_reputation_registry_user_id"),
        nullable=False,
    )
    is_freelancer: Mapped[bool] = mapped_column(Boolean, nullable=False)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    average_rating: Mapped[Decimal] = mapped_column(Numeric(3, 2), default=0, nullable=False)
    reputation_score: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    trust_score: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )
