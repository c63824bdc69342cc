#!/usr/bin/env python3
"""Rebuild cached rewards balances from the ledger.

Usage:
    python tooling/rebuild_rewards_cache.py [--user-id UUID]

Every account (or the one given) is refolded; drifted rows are repaired and
reported. Exits non-zero when any repair was needed so it can gate deploys.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rebox_api.core.settings import settings
from rebox_api.models.rewards import RewardsAccount
from rebox_api.services.rewards import RewardsAggregateView


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="ReBox rewards cache rebuild")
    parser.add_argument("--user-id", type=UUID, default=None, help="Only refold this user.")
    return parser.parse_args()


async def rebuild(session: AsyncSession, user_ids: list[UUID]) -> int:
    view = RewardsAggregateView(session)
    repaired = 0
    for user_id in user_ids:
        aggregate = await view.refold(user_id)
        if aggregate.repaired:
            repaired += 1
            print(
                f"repaired {user_id}: available={aggregate.available_points} "
                f"lifetime={aggregate.lifetime_points} entries={aggregate.entry_count} level={aggregate.level.name}"
            )
    return repaired


async def main() -> int:
    args = parse_args()
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            if args.user_id:
                user_ids = [args.user_id]
            else:
                user_ids = list((await session.execute(select(RewardsAccount.user_id))).scalars().all())
            repaired = await rebuild(session, user_ids)
        print(f"Refolded {len(user_ids)} accounts, repaired {repaired}")
        return 1 if repaired else 0
    finally:
        await engine.dispose()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
