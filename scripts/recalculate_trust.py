"""Recalculate (or decay) trust scores for specific users.

Each user is processed in its own transaction. A failure for one user is
reported and the script moves on; the exit code is non-zero if any user
failed.

Usage:
    # Fresh score for one user:
    DATABASE_URL="postgresql+asyncpg://..." python scripts/recalculate_trust.py --user-id 42

    # Several users, applying inactivity decay instead of recalculating:
    python scripts/recalculate_trust.py --user-id 42 --user-id 43 --decay
"""
import argparse
import asyncio
import sys

from escrow_reputation.database import async_session_factory, engine
from escrow_reputation.errors import ReputationError
from escrow_reputation.logging_config import configure_logging
from escrow_reputation.services.trust import apply_decay, calculate_trust_score


async def recalculate(user_id: int, decay: bool) -> str:
    async with async_session_factory() as session:
        if decay:
            score = await apply_decay(session, user_id)
            line = f"user {user_id}: score={score} (decay pass)"
        else:
            result = await calculate_trust_score(session, user_id)
            line = f"user {user_id}: score={result.score} tier={result.tier}"
        await session.commit()
        return line


async def main(user_ids: list[int], decay: bool) -> int:
    failures = 0
    try:
        for user_id in user_ids:
            try:
                print(await recalculate(user_id, decay))
            except ReputationError as exc:
                failures += 1
                print(f"user {user_id}: {exc}", file=sys.stderr)
    finally:
        await engine.dispose()

    print(f"\nDone: {len(user_ids) - failures} updated, {failures} failed.")
    return 1 if failures else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Recalculate trust scores for users")
    parser.add_argument(
        "--user-id",
        type=int,
        action="append",
        required=True,
        dest="user_ids",
        help="User to process (repeatable)",
    )
    parser.add_argument(
        "--decay",
        action="store_true",
        help="Apply inactivity decay to the stored score instead of recalculating",
    )
    args = parser.parse_args()
    configure_logging()
    sys.exit(asyncio.run(main(args.user_ids, args.decay)))
