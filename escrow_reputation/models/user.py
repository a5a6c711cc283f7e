"""User and UserGameData ORM models.

UserGameData holds the gamification counters (xp, level, login streak) and a
free-form ``stats`` JSON blob. The blob is the persistence point for derived
state that has no table of its own:

- ``trustScore``: latest trust score, components and a bounded history
- ``referral``: referrer-side referral bookkeeping and per-referee rewards
- ``referredBy``: referee-side pointer back to the referrer
- ``reviewStreak``: on-time review streak counters

Writers must go through queries.users.update_stats, which locks the row
before the read-modify-write.
"""

from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, JSONType

if TYPE_CHECKING:
    from .achievement import Achievement


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    wallet_address: Mapped[str] = mapped_column(String(42), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    role: Mapped[str] = mapped_column(String(20), default="user", nullable=False)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    # lazy="raise": no implicit loading in async context
    game_data: Mapped[Optional["UserGameData"]] = relationship(
        "UserGameData", back_populates="user", uselist=False, lazy="raise"
    )
    achievements: Mapped[list["Achievement"]] = relationship(
        "Achievement", back_populates="user", lazy="raise"
    )


class UserGameData(Base):
    __tablename__ = "user_game_data"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE", name="fk_user_game_data_user_id_users"),
        unique=True,
        nullable=False,
    )
    xp: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    level: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    login_streak: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_login_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    total_logins: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    stats: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    user: Mapped["User"] = relationship("User", back_populates="game_data", lazy="raise")
