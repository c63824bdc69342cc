from types import SimpleNamespace

import pytest
from sqlalchemy import select, update

from rebox_api.models.rewards import LedgerEntryType, RewardsAccount
from rebox_api.services.rewards import PointsLedger, RewardsAggregateView, fold


def test_fold_sums_available_and_positive_lifetime() -> None:
    assert fold([]) == (0, 0)
    assert fold([500, -200, 30, -30]) == (300, 530)
    entries = [SimpleNamespace(points=100), SimpleNamespace(points=-40)]
    assert fold(entries) == (60, 100)


@pytest.mark.asyncio
async def test_aggregate_for_creates_zero_account(session_factory, make_user) -> None:
    user = await make_user("fresh@example.com")

    async with session_factory() as session:
        aggregate = await RewardsAggregateView(session).aggregate_for(user.id)

        assert aggregate.available_points == 0
        assert aggregate.lifetime_points == 0
        assert aggregate.level.name == "Bronze"
        assert aggregate.next_level.name == "Silver"
        assert aggregate.points_to_next_level == 1000
        assert aggregate.progress_to_next == 0.0

        accounts = (await session.execute(select(RewardsAccount))).scalars().all()
        assert len(accounts) == 1


@pytest.mark.asyncio
async def test_aggregate_matches_fold_of_ledger(session_factory, make_user) -> None:
    user = await make_user("consistent@example.com")

    async with session_factory() as session:
        ledger = PointsLedger(session)
        for points, entry_type in [
            (850, LedgerEntryType.EARN),
            (200, LedgerEntryType.EARN),
            (-500, LedgerEntryType.SPEND),
            (-25, LedgerEntryType.ADJUSTMENT),
        ]:
            await ledger.append(user.id, entry_type, points, "Activity")

        aggregate = await RewardsAggregateView(session, ledger=ledger).aggregate_for(user.id)
        entries = await ledger.entries_for(user.id)

    assert (aggregate.available_points, aggregate.lifetime_points) == fold(entries)
    assert aggregate.available_points == 525
    assert aggregate.lifetime_points == 1050
    assert aggregate.level.name == "Silver"
    assert 0 <= aggregate.available_points <= aggregate.lifetime_points


@pytest.mark.asyncio
async def test_refold_repairs_drifted_cache(session_factory, make_user) -> None:
    user = await make_user("drift@example.com")

    async with session_factory() as session:
        ledger = PointsLedger(session)
        await ledger.append(user.id, LedgerEntryType.EARN, 1200, "Pickup completed")
        await ledger.append(user.id, LedgerEntryType.SPEND, -200, "Redeemed 200 points")

        await session.execute(
            update(RewardsAccount)
            .where(RewardsAccount.user_id == user.id)
            .values(available_points=5, lifetime_points=10, level="Bronze")
        )
        await session.commit()

    async with session_factory() as session:
        aggregate = await RewardsAggregateView(session).refold(user.id)

        assert aggregate.available_points == 1000
        assert aggregate.lifetime_points == 1200
        assert aggregate.level.name == "Silver"
        assert aggregate.entry_count == 2
        assert aggregate.repaired

    async with session_factory() as session:
        account = (
            await session.execute(select(RewardsAccount).where(RewardsAccount.user_id == user.id))
        ).scalar_one()
        assert account.available_points == 1000
        assert account.lifetime_points == 1200
        assert account.level == "Silver"


@pytest.mark.asyncio
async def test_refold_reports_level_and_sequence_drift(session_factory, make_user) -> None:
    user = await make_user("stale-level@example.com")

    async with session_factory() as session:
        await PointsLedger(session).append(user.id, LedgerEntryType.EARN, 1500, "Pickup completed")
        await session.execute(
            update(RewardsAccount).where(RewardsAccount.user_id == user.id).values(level="Bronze", entry_count=7)
        )
        await session.commit()

    async with session_factory() as session:
        view = RewardsAggregateView(session)
        repaired = await view.refold(user.id)
        assert repaired.repaired
        assert repaired.available_points == 1500
        assert repaired.level.name == "Silver"
        assert repaired.entry_count == 1

        clean = await view.refold(user.id)
        assert not clean.repaired
