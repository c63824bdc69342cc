from datetime import datetime, timezone

import pytest

from rebox_api.models.rewards import LedgerEntryType
from rebox_api.services.rewards import LeaderboardProjector, PointsLedger


@pytest.mark.asyncio
async def test_top_n_orders_by_lifetime_points(session_factory, make_user) -> None:
    alice = await make_user("alice@example.com", display_name="Alice", city="Austin", state="TX")
    bob = await make_user("bob@example.com", display_name="Bob")
    carol = await make_user("carol@example.com")

    async with session_factory() as session:
        ledger = PointsLedger(session)
        await ledger.append(alice.id, LedgerEntryType.EARN, 1500, "Pickup completed")
        await ledger.append(bob.id, LedgerEntryType.EARN, 6000, "Pickup completed")
        await ledger.append(bob.id, LedgerEntryType.SPEND, -5000, "Redeemed 5000 points")

        rows = await LeaderboardProjector(session).top_n(10)

    assert [row.user_id for row in rows] == [bob.id, alice.id, carol.id]
    assert [row.rank for row in rows] == [1, 2, 3]
    assert rows[0].lifetime_points == 6000
    assert rows[0].level == "Gold"
    assert rows[1].location == "Austin, TX"
    assert rows[2].name == "carol"
    assert rows[2].level == "Bronze"


@pytest.mark.asyncio
async def test_ties_break_by_signup_then_id(session_factory, make_user) -> None:
    early = await make_user("early@example.com", created_at=datetime(2024, 1, 1, tzinfo=timezone.utc))
    late = await make_user("late@example.com", created_at=datetime(2024, 6, 1, tzinfo=timezone.utc))

    async with session_factory() as session:
        ledger = PointsLedger(session)
        await ledger.append(late.id, LedgerEntryType.EARN, 300, "Pickup completed")
        await ledger.append(early.id, LedgerEntryType.EARN, 300, "Pickup completed")

        projector = LeaderboardProjector(session)
        first = await projector.top_n(5)
        second = await projector.top_n(5)

    assert [row.user_id for row in first] == [early.id, late.id]
    assert first == second


@pytest.mark.asyncio
async def test_top_n_is_bounded(session_factory, make_user) -> None:
    for index in range(3):
        await make_user(f"member{index}@example.com")

    async with session_factory() as session:
        projector = LeaderboardProjector(session)
        assert len(await projector.top_n(2)) == 2
        assert len(await projector.top_n(0)) == 1
        assert len(await projector.top_n(500)) == 3
