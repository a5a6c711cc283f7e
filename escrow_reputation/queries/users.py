"""User and game-data queries.

The ``stats`` JSON blob on UserGameData is shared by several services
(trust score, referrals, review streaks). update_stats serialises writers
by locking the row with SELECT ... FOR UPDATE for the rest of the caller's
transaction, so two services appending to the blob cannot lose each other's
changes. XP is never read-modify-written: add_xp uses a column expression.
"""

import copy
from datetime import date, datetime
from typing import Any, Callable, Optional, TypeVar

import structlog
from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.errors import UserNotFoundError
from escrow_reputation.metrics import xp_awarded
from escrow_reputation.models.user import User, UserGameData

log = structlog.get_logger()

T = TypeVar("T")


async def get_user(db: AsyncSession, user_id: int) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_game_data(db: AsyncSession, user_id: int) -> Optional[UserGameData]:
    result = await db.execute(select(UserGameData).where(UserGameData.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_game_data(
    db: AsyncSession, user_id: int, *, for_update: bool = False
) -> UserGameData:
    """Return the user's game-data row, inserting an empty one if missing.

    Args:
        db: Async SQLAlchemy session (caller manages commit).
        user_id: The user the row belongs to.
        for_update: Lock the row until the end of the transaction.

    Raises:
        UserNotFoundError: If the user itself does not exist.
    """
    stmt = select(UserGameData).where(UserGameData.user_id == user_id)
    if for_update:
        # populate_existing: a row already in the identity map is refreshed from the locked read
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    result = await db.execute(stmt)
    game_data = result.scalar_one_or_none()
    if game_data is not None:
        return game_data

    if await get_user(db, user_id) is None:
        raise UserNotFoundError(user_id)

    game_data = UserGameData(user_id=user_id, xp=0, level=1, login_streak=0, total_logins=0, stats={})
    db.add(game_data)
    await db.flush()
    log.info("game_data_created", user_id=user_id)
    return game_data


async def get_stats(db: AsyncSession, user_id: int) -> dict[str, Any]:
    """Return a copy of the user's stats blob ({} when there is no row)."""
    result = await db.execute(select(UserGameData.stats).where(UserGameData.user_id == user_id))
    stats = result.scalar_one_or_none()
    return copy.deepcopy(stats) if stats else {}


async def update_stats(
    db: AsyncSession, user_id: int, mutate: Callable[[dict[str, Any]], T]
) -> T:
    """Lock the stats blob, apply ``mutate`` to a copy and write it back.

    ``mutate`` receives a deep copy of the current blob and edits it in
    place. Its return value is passed through to the caller. Assigning a
    new dict (rather than mutating the loaded one) is what makes SQLAlchemy
    see the JSON column as dirty.
    """
    game_data = await get_or_create_game_data(db, user_id, for_update=True)
    stats = copy.deepcopy(game_data.stats or {})
    outcome = mutate(stats)
    game_data.stats = stats
    await db.flush()
    return outcome


async def add_xp(db: AsyncSession, user_id: int, amount: int, source: str) -> None:
    """Atomically credit ``amount`` XP to the user.

    Args:
        db: Async SQLAlchemy session (caller manages commit).
        user_id: Recipient.
        amount: XP to add; non-positive amounts are ignored.
        source: Short label for logs and metrics (e.g. "referral_signup").
    """
    if amount <= 0:
        return
    await get_or_create_game_data(db, user_id)
    await db.execute(
        update(UserGameData)
        .where(UserGameData.user_id == user_id)
        .values(xp=UserGameData.xp + amount)
        .execution_options(synchronize_session=False)
    )
    xp_awarded.labels(source=source).inc(amount)
    log.info("xp_awarded", user_id=user_id, amount=amount, source=source)


async def record_login(db: AsyncSession, user_id: int, today: Optional[date] = None) -> int:
    """Record a login and return the resulting login streak.

    Consecutive calendar days extend the streak, a repeat login on the same
    day leaves it unchanged, and any gap restarts it at 1.
    """
    today = today or date.today()
    game_data = await get_or_create_game_data(db, user_id, for_update=True)
    last = game_data.last_login_date
    if last == today:
        return game_data.login_streak
    if last is not None and (today - last).days == 1:
        game_data.login_streak += 1
    else:
        game_data.login_streak = 1
    game_data.last_login_date = today
    game_data.total_logins += 1
    await db.flush()
    return game_data.login_streak


async def get_last_activity(db: AsyncSession, user_id: int) -> Optional[datetime]:
    """Return when the user was last active.

    Uses the last login date, falling back to the account creation time.
    UserGameData.updated_at is not activity: it moves every time a score is
    written back to the stats blob.
    """
    result = await db.execute(
        select(UserGameData.last_login_date, User.created_at)
        .select_from(User)
        .outerjoin(UserGameData, UserGameData.user_id == User.id)
        .where(User.id == user_id)
    )
    row = result.one_or_none()
    if row is None:
        return None
    last_login, created_at = row
    if last_login is not None:
        return datetime.combine(last_login, datetime.min.time(), tzinfo=created_at.tzinfo)
    return created_at


async def get_inactive_user_ids(
    db: AsyncSession, before: datetime, limit: int = 500, after_id: int = 0
) -> list[int]:
    """Return ids of users with no login since ``before``, in id order.

    Keyset-paginated on user id so the decay worker can walk the table in
    batches.
    """
    result = await db.execute(
        select(User.id)
        .outerjoin(UserGameData, UserGameData.user_id == User.id)
        .where(User.id > after_id)
        .where(
            or_(
                UserGameData.last_login_date < before.date(),
                and_(UserGameData.last_login_date.is_(None), User.created_at < before),
            )
        )
        .order_by(User.id)
        .limit(limit)
    )
    return [row[0] for row in result.all()]


async def get_users_with_game_stats(db: AsyncSession) -> list[tuple[int, Optional[str], int, dict[str, Any]]]:
    """Return (user_id, name, level, stats) for every user that has game data."""
    result = await db.execute(
        select(User.id, User.name, UserGameData.level, UserGameData.stats).join(
            UserGameData, UserGameData.user_id == User.id
        )
    )
    return [(row.id, row.name, row.level, row.stats or {}) for row in result.all()]
