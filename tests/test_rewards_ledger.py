import gc
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from rebox_api.models.rewards import LedgerEntryType, PointsLedgerEntry, RewardsAccount
from rebox_api.observability.rewards import get_rewards_store
from rebox_api.services.rewards import (
    IdempotencyConflictError,
    InsufficientPointsError,
    InvalidAmountError,
    PointsLedger,
    RewardsAccountNotFoundError,
    StorageUnavailableError,
)
from rebox_api.services.rewards.ledger import UserLockRegistry


@pytest.mark.asyncio
async def test_append_updates_account_and_assigns_sequence(session_factory, make_user) -> None:
    user = await make_user("ledger@example.com")

    async with session_factory() as session:
        ledger = PointsLedger(session)
        first = await ledger.append(user.id, LedgerEntryType.EARN, 400, "Pickup completed")
        second = await ledger.append(user.id, LedgerEntryType.SPEND, -100, "Redeemed 100 points")
        third = await ledger.append(user.id, LedgerEntryType.ADJUSTMENT, 50, "Goodwill credit")

        assert [first.sequence, second.sequence, third.sequence] == [1, 2, 3]

        account = (
            await session.execute(select(RewardsAccount).where(RewardsAccount.user_id == user.id))
        ).scalar_one()
        assert account.available_points == 350
        assert account.lifetime_points == 450
        assert account.entry_count == 3
        assert account.level == "Bronze"

    snapshot = get_rewards_store().snapshot()
    assert snapshot.ledger == {"EARN": 1, "SPEND": 1, "ADJUSTMENT": 1}
    assert snapshot.points == {"credited": 450, "debited": 100}


@pytest.mark.asyncio
async def test_append_recomputes_level(session_factory, make_user) -> None:
    user = await make_user("levels@example.com")

    async with session_factory() as session:
        ledger = PointsLedger(session)
        await ledger.append(user.id, LedgerEntryType.EARN, 850, "Pickup completed")
        result = await ledger.record(user.id, LedgerEntryType.EARN, 200, "Pickup completed")

    assert result.account.level == "Silver"
    assert result.previous_level == "Bronze"
    assert result.level_changed
    assert get_rewards_store().snapshot().level_ups == {"Silver": 1}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("entry_type", "points"),
    [
        (LedgerEntryType.EARN, 0),
        (LedgerEntryType.EARN, -10),
        (LedgerEntryType.SPEND, 10),
        (LedgerEntryType.ADJUSTMENT, 1.5),
        (LedgerEntryType.EARN, True),
    ],
)
async def test_append_rejects_invalid_amounts(session_factory, make_user, entry_type, points) -> None:
    user = await make_user(f"invalid-{uuid4().hex[:8]}@example.com")

    async with session_factory() as session:
        with pytest.raises(InvalidAmountError):
            await PointsLedger(session).append(user.id, entry_type, points, "Bad entry")

        entries = (await session.execute(select(PointsLedgerEntry))).scalars().all()
        assert entries == []


@pytest.mark.asyncio
async def test_append_never_overdraws_cached_balance(session_factory, make_user) -> None:
    user = await make_user("overdraw@example.com")

    async with session_factory() as session:
        ledger = PointsLedger(session)
        await ledger.append(user.id, LedgerEntryType.EARN, 100, "Pickup completed")
        with pytest.raises(InsufficientPointsError) as excinfo:
            await ledger.append(user.id, LedgerEntryType.ADJUSTMENT, -150, "Clawback")

    assert excinfo.value.available == 100

    async with session_factory() as session:
        account = (
            await session.execute(select(RewardsAccount).where(RewardsAccount.user_id == user.id))
        ).scalar_one()
        assert account.available_points == 100
        assert account.entry_count == 1


@pytest.mark.asyncio
async def test_append_for_unknown_user(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(RewardsAccountNotFoundError):
            await PointsLedger(session).append(uuid4(), LedgerEntryType.EARN, 10, "Pickup completed")


@pytest.mark.asyncio
async def test_idempotency_key_replays_and_detects_conflicts(session_factory, make_user) -> None:
    user = await make_user("idempotent@example.com")

    async with session_factory() as session:
        ledger = PointsLedger(session)
        original = await ledger.record(
            user.id, LedgerEntryType.EARN, 120, "Pickup completed", idempotency_key="pickup:abc"
        )
        replay = await ledger.record(
            user.id, LedgerEntryType.EARN, 120, "Pickup completed", idempotency_key="pickup:abc"
        )

        assert replay.replayed
        assert replay.entry.id == original.entry.id
        assert replay.account.available_points == 120

        with pytest.raises(IdempotencyConflictError):
            await ledger.record(
                user.id, LedgerEntryType.EARN, 999, "Pickup completed", idempotency_key="pickup:abc"
            )

        entries = (await session.execute(select(PointsLedgerEntry))).scalars().all()
        assert len(entries) == 1


@pytest.mark.asyncio
async def test_transactions_are_paginated_newest_first(session_factory, make_user) -> None:
    user = await make_user("history@example.com")

    async with session_factory() as session:
        ledger = PointsLedger(session)
        for index in range(1, 6):
            await ledger.append(user.id, LedgerEntryType.EARN, index * 10, f"Pickup {index}")
        await ledger.append(user.id, LedgerEntryType.SPEND, -20, "Redeemed 20 points")

        page, total = await ledger.transactions_for(user.id, limit=2, offset=0)
        assert total == 6
        assert [entry.sequence for entry in page] == [6, 5]

        page, _ = await ledger.transactions_for(user.id, limit=2, offset=2)
        assert [entry.sequence for entry in page] == [4, 3]

        spends, spend_total = await ledger.transactions_for(user.id, limit=10, entry_type=LedgerEntryType.SPEND)
        assert spend_total == 1
        assert spends[0].points == -20

        clamped, _ = await ledger.transactions_for(user.id, limit=1000)
        assert len(clamped) == 6


@pytest.mark.asyncio
async def test_storage_failures_are_wrapped(session_factory, make_user, monkeypatch) -> None:
    user = await make_user("outage@example.com")

    async with session_factory() as session:
        async def broken_execute(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(AsyncSession, "execute", broken_execute)

        with pytest.raises(StorageUnavailableError):
            await PointsLedger(session).transactions_for(user.id)
        with pytest.raises(StorageUnavailableError):
            await PointsLedger(session).append(user.id, LedgerEntryType.EARN, 10, "Pickup completed")


@pytest.mark.asyncio
async def test_user_locks_are_released_once_idle() -> None:
    registry = UserLockRegistry()
    user_id = uuid4()

    lock = registry.lock_for(user_id)
    async with lock:
        assert registry.lock_for(user_id) is lock
        assert registry.tracked_count() == 1

    del lock
    gc.collect()
    assert registry.tracked_count() == 0

    for _ in range(50):
        async with registry.lock_for(uuid4()):
            pass
    gc.collect()
    assert registry.tracked_count() == 0
