from decimal import Decimal

import pytest
from sqlalchemy import func, select

from rebox_api.models.notification import Notification
from rebox_api.models.rewards import LedgerEntryType, PointsLedgerEntry
from rebox_api.observability.rewards import get_rewards_store
from rebox_api.services.notifications import InMemoryRealtimeRelay, dispatcher
from rebox_api.services.notifications.templates import RenderedNotification
from rebox_api.services.rewards import (
    InsufficientPointsError,
    InvalidAmountError,
    PointsLedger,
    RewardsService,
    pickup_base_points,
)


def test_pickup_base_points() -> None:
    assert pickup_base_points(Decimal("12.34"), 3) == 123 + 15
    assert pickup_base_points(0, 4) == 20
    assert pickup_base_points("9.99", 0) == 99
    with pytest.raises(InvalidAmountError):
        pickup_base_points(-1, 1)
    with pytest.raises(InvalidAmountError):
        pickup_base_points(10, -1)


@pytest.mark.asyncio
async def test_award_pickup_applies_current_level_multiplier(session_factory, make_user) -> None:
    user = await make_user("pickup@example.com")

    async with session_factory() as session:
        await PointsLedger(session).append(user.id, LedgerEntryType.EARN, 1000, "Welcome bonus")

        service = RewardsService(session, relay=InMemoryRealtimeRelay())
        result = await service.award_pickup(user.id, "PU-1001", Decimal("10.00"), 2)

    assert result.entry.points == 137
    metadata = result.entry.metadata_json
    assert metadata["basePoints"] == 110
    assert metadata["multiplier"] == 1.25
    assert metadata["level"] == "Silver"
    assert metadata["levelScheduleVersion"] == "2024.1"
    assert result.account.lifetime_points == 1137


@pytest.mark.asyncio
async def test_award_pickup_is_idempotent_per_pickup(session_factory, make_user) -> None:
    user = await make_user("repeat@example.com")

    async with session_factory() as session:
        service = RewardsService(session, relay=InMemoryRealtimeRelay())
        first = await service.award_pickup(user.id, "PU-1", Decimal("5"), 1)
        second = await service.award_pickup(user.id, "PU-1", Decimal("5"), 1)
        aggregate = await service.get_rewards(user.id)

    assert second.replayed
    assert second.entry.id == first.entry.id
    assert aggregate.available_points == 55


@pytest.mark.asyncio
async def test_award_buyback_bonus(session_factory, make_user) -> None:
    user = await make_user("buyback@example.com")

    async with session_factory() as session:
        service = RewardsService(session, relay=InMemoryRealtimeRelay())
        result = await service.award_buyback(user.id, "OFFER-9", Decimal("25.50"), "Patagonia")

    assert result.entry.points == 255
    assert result.entry.description == "Buyback bonus - Patagonia"
    assert result.entry.metadata_json["source"] == "buyback"


@pytest.mark.asyncio
async def test_adjustments_are_not_multiplied_and_cannot_overdraw(session_factory, make_user) -> None:
    user = await make_user("adjust@example.com")

    async with session_factory() as session:
        service = RewardsService(session, relay=InMemoryRealtimeRelay())
        await PointsLedger(session).append(user.id, LedgerEntryType.EARN, 5000, "Welcome bonus")

        credit = await service.adjust(user.id, 100, "Missed pickup credit", actor_id="ops-1")
        assert credit.entry.points == 100
        assert credit.entry.entry_type == LedgerEntryType.ADJUSTMENT
        assert credit.entry.metadata_json == {"reason": "Missed pickup credit", "actorId": "ops-1"}

        debit = await service.adjust(user.id, -50, "Duplicate award")
        assert debit.account.available_points == 5050

        with pytest.raises(InsufficientPointsError):
            await service.adjust(user.id, -6000, "Fraud reversal")
        with pytest.raises(InvalidAmountError):
            await service.adjust(user.id, 10, "  ")


@pytest.mark.asyncio
async def test_bronze_to_silver_then_redeem(session_factory, make_user) -> None:
    user = await make_user("journey@example.com")
    relay = InMemoryRealtimeRelay()

    async with session_factory() as session:
        service = RewardsService(session, relay=relay)
        await service.ledger.append(user.id, LedgerEntryType.EARN, 850, "Pickup completed")
        before = await service.get_rewards(user.id)
        assert before.level.name == "Bronze"

        await service.ledger.append(user.id, LedgerEntryType.EARN, 200, "Pickup completed")
        after_earn = await service.get_rewards(user.id)
        assert after_earn.level.name == "Silver"
        assert after_earn.next_level.name == "Gold"
        assert after_earn.points_to_next_level == 3950

        await service.redeem(user.id, 500, "CASH")
        final = await service.get_rewards(user.id)

    assert final.available_points == 550
    assert final.lifetime_points == 1050
    assert final.level.name == "Silver"
    assert [event.event_type for event in relay.published] == [
        "reward:earned",
        "reward:earned",
        "reward:level_up",
        "reward:redeemed",
    ]


@pytest.mark.asyncio
async def test_summary_reports_program_totals(session_factory, make_user) -> None:
    first = await make_user("one@example.com")
    second = await make_user("two@example.com")

    async with session_factory() as session:
        service = RewardsService(session, relay=InMemoryRealtimeRelay())
        await service.ledger.append(first.id, LedgerEntryType.EARN, 1200, "Pickup completed")
        await service.ledger.append(second.id, LedgerEntryType.EARN, 300, "Pickup completed")
        await service.redeem(first.id, 200, "DONATION")

        summary = await service.summary()

    assert summary.total_points_issued == 1500
    assert summary.outstanding_points == 1300
    assert summary.points_redeemed == 200
    assert summary.member_count == 2
    assert summary.members_by_level["Silver"] == 1
    assert summary.members_by_level["Bronze"] == 1
    assert summary.members_by_level["Diamond"] == 0


@pytest.mark.asyncio
async def test_awards_survive_notification_persist_failure(session_factory, make_user, monkeypatch) -> None:
    user = await make_user("quiet@example.com")
    relay = InMemoryRealtimeRelay()
    monkeypatch.setattr(
        dispatcher,
        "render_reward_event",
        lambda event_type, payload: RenderedNotification(title=None, message="unrenderable"),
    )

    async with session_factory() as session:
        service = RewardsService(session, relay=relay)
        bonus = await service.adjust(user.id, 1200, "Launch bonus")
        assert bonus.account.available_points == 1200
        assert bonus.account.level == "Silver"
        assert bonus.level_changed

        pickup = await service.award_pickup(user.id, "PU-2002", Decimal("10.00"), 2)
        assert pickup.entry.points == 137
        assert pickup.account.available_points == 1337

    async with session_factory() as session:
        entries = (await session.execute(select(func.count()).select_from(PointsLedgerEntry))).scalar_one()
        stored = (await session.execute(select(func.count()).select_from(Notification))).scalar_one()
    assert entries == 2
    assert stored == 0
    assert [event.event_type for event in relay.published] == [
        "reward:earned",
        "reward:level_up",
        "reward:earned",
    ]
    assert get_rewards_store().snapshot().notifications["persist_failed"] == 3
