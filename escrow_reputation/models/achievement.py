"""Achievement ORM model.

One row per (user, achievement_id). The unique constraint is what makes
minting idempotent: concurrent triggers for the same user race on the
INSERT and exactly one wins.
"""

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .user import User

ACHIEVEMENT_UNIQUE_CONSTRAINT = "uq_achievements_user_achievement"


class Achievement(Base):
    __tablename__ = "achievements"

    __table_args__ = (
        UniqueConstraint("user_id", "achievement_id", name=ACHIEVEMENT_UNIQUE_CONSTRAINT),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE", name="fk_achievements_user_id"),
        nullable=False,
    )
    achievement_id: Mapped[str] = mapped_column(String(50), nullable=False)
    token_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tx_hash: Mapped[Optional[str]] = mapped_column(String(66), nullable=True)
    minted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    user: Mapped["User"] = relationship("User", back_populates="achievements", lazy="raise")
