"""Trust score decay worker.

Runs periodically and applies inactivity decay to every user whose last
login is older than the grace period (settings.trust_decay_grace_days).

Each user is decayed in its own session and transaction. One user's failure
is logged and counted and the cycle moves on to the next user. Users are
walked in id order in batches of settings.decay_batch_size.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from prometheus_client import start_http_server

from escrow_reputation.config import settings
from escrow_reputation.database import async_session_factory
from escrow_reputation.logging_config import configure_logging
from escrow_reputation.metrics import trust_decays_applied
from escrow_reputation.queries.users import get_inactive_user_ids
from escrow_reputation.services.trust import apply_decay

log = structlog.get_logger()


async def _decay_user(user_id: int, now: datetime) -> int:
    async with async_session_factory() as session:
        score = await apply_decay(session, user_id, now)
        await session.commit()
        return score


async def run_decay_cycle(now: Optional[datetime] = None) -> dict:
    """Apply decay to every inactive user once.

    Returns:
        Stats dict with the number of users processed and failed.
    """
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=settings.trust_decay_grace_days)
    stats = {"processed": 0, "failed": 0}
    after_id = 0

    while True:
        async with async_session_factory() as session:
            user_ids = await get_inactive_user_ids(
                session, cutoff, limit=settings.decay_batch_size, after_id=after_id
            )
        if not user_ids:
            break

        for user_id in user_ids:
            try:
                await _decay_user(user_id, now)
                stats["processed"] += 1
            except Exception:
                trust_decays_applied.labels(outcome="error").inc()
                log.error("trust_decay_failed", user_id=user_id, exc_info=True)
                stats["failed"] += 1
        after_id = user_ids[-1]

    if stats["failed"]:
        log.warning("decay_cycle_partial", **stats)
    else:
        log.info("decay_cycle_completed", **stats)
    return stats


async def decay_worker_loop():
    """Background loop that runs a decay cycle on a configurable interval."""
    interval = settings.decay_interval_hours * 3600
    log.info("decay_worker_started", interval_hours=settings.decay_interval_hours)

    while True:
        try:
            await run_decay_cycle()
        except Exception:
            log.error("decay_worker_error", exc_info=True)
        await asyncio.sleep(interval)


def main() -> None:
    configure_logging()
    start_http_server(settings.metrics_port)
    asyncio.run(decay_worker_loop())


if __name__ == "__main__":
    main()
