from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from escrow_reputation.models.earnings import Earning, Withdrawal


@dataclass
class EarningsSummary:
    total_earnings: Decimal = Decimal(0)
    available_balance: Decimal = Decimal(0)
    pending_earnings: Decimal = Decimal(0)
    withdrawn_amount: Decimal = Decimal(0)
    platform_fees: Decimal = Decimal(0)
    net_earnings: Decimal = Decimal(0)


async def get_total_earnings(db: AsyncSession, freelancer_id: int) -> Decimal:
    result = await db.execute(
        select(func.coalesce(func.sum(Earning.amount), 0)).where(
            Earning.freelancer_id == freelancer_id
        )
    )
    return Decimal(result.scalar_one())


async def get_freelancer_earnings_summary(
    db: AsyncSession, freelancer_id: int
) -> EarningsSummary:
    """Summarise a freelancer's earnings.

    The available balance is net earnings already released (status
    ``available`` and available_at in the past) minus completed withdrawals.
    """
    now = datetime.now(timezone.utc)
    totals = await db.execute(
        select(
            func.coalesce(func.sum(Earning.amount), 0),
            func.coalesce(func.sum(Earning.platform_fee), 0),
            func.coalesce(func.sum(Earning.net_amount), 0),
        ).where(Earning.freelancer_id == freelancer_id)
    )
    total, fees, net = totals.one()

    available = await db.execute(
        select(func.coalesce(func.sum(Earning.net_amount), 0))
        .where(Earning.freelancer_id == freelancer_id)
        .where(Earning.status == "available")
        .where(Earning.available_at <= now)
    )
    pending = await db.execute(
        select(func.coalesce(func.sum(Earning.net_amount), 0))
        .where(Earning.freelancer_id == freelancer_id)
        .where(Earning.status == "pending")
    )
    withdrawn = await db.execute(
        select(func.coalesce(func.sum(Withdrawal.amount), 0))
        .where(Withdrawal.freelancer_id == freelancer_id)
        .where(Withdrawal.status == "completed")
    )
    withdrawn_amount = Decimal(withdrawn.scalar_one())

    return EarningsSummary(
        total_earnings=Decimal(total),
        available_balance=Decimal(available.scalar_one()) - withdrawn_amount,
        pending_earnings=Decimal(pending.scalar_one()),
        withdrawn_amount=withdrawn_amount,
        platform_fees=Decimal(fees),
        net_earnings=Decimal(net),
    )
