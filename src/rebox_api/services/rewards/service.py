"""Service layer composing the ledger, aggregate, redemption and leaderboard."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Any, Optional, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rebox_api.models.rewards import LedgerEntryType, PointsLedgerEntry, RewardsAccount
from rebox_api.services.notifications import RealtimeRelay, RewardEventDispatcher

from .aggregate import RewardsAggregate, RewardsAggregateView
from .errors import InsufficientPointsError, InvalidAmountError
from .leaderboard import LeaderboardProjector, LeaderboardRow
from .ledger import LedgerAppendResult, PointsLedger
from .levels import LevelSchedule, apply_multiplier, get_level_schedule
from .redemption import RedemptionProcessor, RedemptionResult

PICKUP_POINTS_PER_DOLLAR = 10
PICKUP_POINTS_PER_ITEM = 5
BUYBACK_POINTS_PER_DOLLAR = 10


def _to_decimal(value: Any, field_name: str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidAmountError(f"{field_name} must be numeric") from exc
    if not amount.is_finite() or amount < 0:
        raise InvalidAmountError(f"{field_name} must be a non-negative number")
    return amount


def pickup_base_points(total_value: Any, item_count: int) -> int:
    """Points for a completed pickup before the level multiplier."""

    value = _to_decimal(total_value, "total_value")
    if isinstance(item_count, bool) or not isinstance(item_count, int) or item_count < 0:
        raise InvalidAmountError("item_count must be a non-negative integer")
    value_points = int((value * PICKUP_POINTS_PER_DOLLAR).to_integral_value(rounding=ROUND_FLOOR))
    return value_points + PICKUP_POINTS_PER_ITEM * item_count


def buyback_base_points(offered_price: Any) -> int:
    price = _to_decimal(offered_price, "offered_price")
    return int((price * BUYBACK_POINTS_PER_DOLLAR).to_integral_value(rounding=ROUND_FLOOR))


@dataclass
class RewardsSummary:
    total_points_issued: int
    outstanding_points: int
    points_redeemed: int
    member_count: int
    members_by_level: dict[str, int] = field(default_factory=dict)


class RewardsService:
    """Entry point used by the API for every rewards operation."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        schedule: LevelSchedule | None = None,
        relay: RealtimeRelay | None = None,
    ) -> None:
        self._db = db_session
        self._schedule = schedule or get_level_schedule()
        self._dispatcher = RewardEventDispatcher(db_session, relay)
        self.ledger = PointsLedger(db_session, schedule=self._schedule, dispatcher=self._dispatcher)
        self.aggregates = RewardsAggregateView(db_session, ledger=self.ledger)
        self.redemptions = RedemptionProcessor(db_session, ledger=self.ledger, dispatcher=self._dispatcher)
        self.leaderboard = LeaderboardProjector(db_session, schedule=self._schedule)

    @property
    def schedule(self) -> LevelSchedule:
        return self._schedule

    async def get_rewards(self, user_id: UUID) -> RewardsAggregate:
        return await self.aggregates.aggregate_for(user_id)

    async def list_transactions(
        self,
        user_id: UUID,
        *,
        limit: int = 20,
        offset: int = 0,
        entry_type: LedgerEntryType | None = None,
    ) -> tuple[Sequence[PointsLedgerEntry], int]:
        await self.ledger.ensure_account(user_id)
        return await self.ledger.transactions_for(user_id, limit, offset, entry_type)

    async def redeem(
        self,
        user_id: UUID,
        points: int,
        reward_type: str,
        *,
        idempotency_key: str | None = None,
        details: Optional[dict[str, Any]] = None,
    ) -> RedemptionResult:
        return await self.redemptions.redeem(
            user_id,
            points,
            reward_type,
            idempotency_key=idempotency_key,
            details=details,
        )

    async def top_n(self, n: int = 10) -> list[LeaderboardRow]:
        return await self.leaderboard.top_n(n)

    async def refold(self, user_id: UUID) -> RewardsAggregate:
        return await self.aggregates.refold(user_id)

    async def award_pickup(
        self,
        user_id: UUID,
        pickup_reference: str,
        total_value: Any,
        item_count: int,
    ) -> LedgerAppendResult:
        """Credit a completed pickup; repeat calls for the same pickup are replays."""

        base_points = pickup_base_points(total_value, item_count)
        return await self._award(
            user_id,
            base_points,
            description=f"Pickup completed - {item_count} items",
            idempotency_key=f"pickup:{pickup_reference}",
            metadata={
                "source": "pickup",
                "pickupReference": pickup_reference,
                "totalValue": str(total_value),
                "itemCount": item_count,
            },
        )

    async def award_buyback(
        self,
        user_id: UUID,
        offer_reference: str,
        offered_price: Any,
        brand_name: str | None = None,
    ) -> LedgerAppendResult:
        """Credit the bonus for an accepted buyback offer."""

        base_points = buyback_base_points(offered_price)
        label = brand_name or "item"
        return await self._award(
            user_id,
            base_points,
            description=f"Buyback bonus - {label}",
            idempotency_key=f"buyback:{offer_reference}",
            metadata={
                "source": "buyback",
                "offerReference": offer_reference,
                "offeredPrice": str(offered_price),
                "brandName": brand_name,
            },
        )

    async def _award(
        self,
        user_id: UUID,
        base_points: int,
        *,
        description: str,
        idempotency_key: str,
        metadata: dict[str, Any],
    ) -> LedgerAppendResult:
        if base_points <= 0:
            raise InvalidAmountError("Award would credit no points")

        async with self.ledger.lock_for(user_id):
            existing = await self.ledger.find_by_idempotency_key(user_id, idempotency_key)
            if existing is not None:
                return await self.ledger.record(
                    user_id,
                    LedgerEntryType.EARN,
                    existing.points,
                    description,
                    idempotency_key=idempotency_key,
                    acquire_lock=False,
                )

            account = await self.ledger.ensure_account(user_id)
            level = self._schedule.level_for(account.lifetime_points)
            points = apply_multiplier(base_points, level)
            result = await self.ledger.record(
                user_id,
                LedgerEntryType.EARN,
                points,
                description,
                metadata={
                    **metadata,
                    "basePoints": base_points,
                    "multiplier": level.multiplier,
                    "level": level.name,
                    "levelScheduleVersion": self._schedule.version,
                },
                idempotency_key=idempotency_key,
                acquire_lock=False,
            )
        return result

    async def adjust(
        self,
        user_id: UUID,
        points: int,
        reason: str,
        actor_id: str | None = None,
        *,
        idempotency_key: str | None = None,
    ) -> LedgerAppendResult:
        """Record an operator correction; never multiplied."""

        if not reason or not reason.strip():
            raise InvalidAmountError("Adjustments require a reason")

        async with self.ledger.lock_for(user_id):
            if isinstance(points, int) and not isinstance(points, bool) and points < 0:
                account = await self.ledger.ensure_account(user_id)
                if -points > account.available_points:
                    raise InsufficientPointsError(-points, account.available_points)
            result = await self.ledger.record(
                user_id,
                LedgerEntryType.ADJUSTMENT,
                points,
                f"Adjustment: {reason.strip()}",
                metadata={"reason": reason.strip(), "actorId": actor_id},
                idempotency_key=idempotency_key,
                acquire_lock=False,
            )
        logger.info("Applied rewards adjustment", user_id=str(user_id), points=points, actor_id=actor_id)
        return result

    async def summary(self) -> RewardsSummary:
        """Program-wide totals for operators."""

        totals_stmt = select(
            func.coalesce(func.sum(RewardsAccount.lifetime_points), 0),
            func.coalesce(func.sum(RewardsAccount.available_points), 0),
            func.count(RewardsAccount.id),
        )
        issued, outstanding, members = (await self._db.execute(totals_stmt)).one()

        redeemed_stmt = select(
            func.coalesce(
                func.sum(case((PointsLedgerEntry.entry_type == LedgerEntryType.SPEND, -PointsLedgerEntry.points), else_=0)),
                0,
            )
        )
        redeemed = (await self._db.execute(redeemed_stmt)).scalar_one()

        levels_stmt = select(RewardsAccount.level, func.count(RewardsAccount.id)).group_by(RewardsAccount.level)
        counts = {level: int(count) for level, count in (await self._db.execute(levels_stmt)).all()}
        members_by_level = {level.name: counts.get(level.name, 0) for level in self._schedule.levels}
        for name, count in counts.items():
            members_by_level.setdefault(name, count)

        return RewardsSummary(
            total_points_issued=int(issued),
            outstanding_points=int(outstanding),
            points_redeemed=int(redeemed),
            member_count=int(members),
            members_by_level=members_by_level,
        )


__all__ = [
    "RewardsService",
    "RewardsSummary",
    "buyback_base_points",
    "pickup_base_points",
]
