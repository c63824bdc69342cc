"""Seed demo members with rewards activity into the API database."""

from __future__ import annotations

import asyncio
from decimal import Decimal
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from rebox_api.core.settings import settings
from rebox_api.models.user import User
from rebox_api.services.notifications import InMemoryRealtimeRelay
from rebox_api.services.rewards import RewardsService


class SeedMember(TypedDict):
    email: str
    display_name: str
    city: str
    state: str
    pickups: list[tuple[str, Decimal, int]]


DEMO_MEMBERS: list[SeedMember] = [
    {
        "email": "maya@rebox.dev",
        "display_name": "Maya R.",
        "city": "Portland",
        "state": "OR",
        "pickups": [("DEMO-PU-1", Decimal("84.50"), 6), ("DEMO-PU-2", Decimal("40.00"), 3)],
    },
    {
        "email": "devon@rebox.dev",
        "display_name": "Devon K.",
        "city": "Austin",
        "state": "TX",
        "pickups": [("DEMO-PU-3", Decimal("310.00"), 12), ("DEMO-PU-4", Decimal("215.75"), 9)],
    },
    {
        "email": "sam@rebox.dev",
        "display_name": "Sam P.",
        "city": "Denver",
        "state": "CO",
        "pickups": [("DEMO-PU-5", Decimal("12.00"), 2)],
    },
]


async def seed_members(session: AsyncSession) -> None:
    service = RewardsService(session, relay=InMemoryRealtimeRelay())
    for member in DEMO_MEMBERS:
        existing = await session.execute(select(User).where(User.email == member["email"]))
        user = existing.scalar_one_or_none()
        if user is None:
            user = User(
                email=member["email"],
                display_name=member["display_name"],
                city=member["city"],
                state=member["state"],
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)

        for reference, total_value, item_count in member["pickups"]:
            await service.award_pickup(user.id, reference, total_value, item_count)


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            await seed_members(session)
            board = await RewardsService(session).top_n(len(DEMO_MEMBERS))
        for row in board:
            print(f"{row.rank}. {row.name:<10} {row.level:<9} {row.lifetime_points:>6} pts")
        print("Demo rewards members ready")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
