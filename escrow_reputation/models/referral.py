"""Referral link and conversion ORM models.

A conversion is created when a referee signs up through a link. Each referee
converts at most once (unique referee_id). referrer_reward_status moves from
``pending`` to ``paid`` when the referee verifies their email; a paid
conversion is what counts as an active referral.
"""

import enum
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONType


class RewardStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"


class ReferralLink(Base):
    __tablename__ = "referral_links"

    __table_args__ = (Index("ix_referral_links_user_id", "user_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE", name="fk_referral_links_user_id"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    custom_alias: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    click_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    conversion_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, default=dict, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


class ReferralConversion(Base):
    __tablename__ = "referral_conversions"

    __table_args__ = (Index("ix_referral_conversions_referrer_id", "referrer_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    referral_link_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("referral_links.id", name="fk_referral_conversions_link_id"),
        nullable=False,
    )
    referrer_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", name="fk_referral_conversions_referrer_id"), nullable=False
    )
    referee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", name="fk_referral_conversions_referee_id"),
        unique=True,
        nullable=False,
    )
    conversion_type: Mapped[str] = mapped_column(String(20), default="signup", nullable=False)
    referrer_reward_status: Mapped[str] = mapped_column(
        String(20), default=RewardStatus.pending.value, nullable=False
    )
    referee_reward_status: Mapped[str] = mapped_column(
        String(20), default=RewardStatus.pending.value, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
