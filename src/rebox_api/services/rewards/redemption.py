"""Convert available points into cash, gift cards or donations."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Optional, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from rebox_api.core.settings import settings
from rebox_api.models.rewards import LedgerEntryType, PointsLedgerEntry, RewardType
from rebox_api.observability.rewards import get_rewards_store
from rebox_api.observability.tracing import get_tracer
from rebox_api.services.notifications import REWARD_REDEEMED, RewardEventDispatcher

from .errors import InsufficientPointsError, InvalidAmountError, InvalidRewardTypeError, RewardsError
from .ledger import LedgerAppendResult, PointsLedger


@dataclass
class RedemptionResult:
    entry: PointsLedgerEntry
    cash_value: Decimal
    reward_type: str
    available_points: int
    replayed: bool = False

    @property
    def points_redeemed(self) -> int:
        return -self.entry.points


class RedemptionProcessor:
    """Validate and record redemptions; one at a time per user."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        ledger: PointsLedger | None = None,
        dispatcher: RewardEventDispatcher | None = None,
        unit: int | None = None,
        points_per_dollar: int | None = None,
        reward_types: Sequence[str] | None = None,
    ) -> None:
        self._db = db_session
        self._ledger = ledger or PointsLedger(db_session)
        self._dispatcher = dispatcher
        self._unit = unit or settings.reward_redemption_unit
        self._points_per_dollar = points_per_dollar or settings.reward_points_per_dollar
        self._reward_types = list(reward_types or settings.reward_types or [item.value for item in RewardType])

    @property
    def allowed_reward_types(self) -> list[str]:
        return list(self._reward_types)

    def cash_value_for(self, points: int) -> Decimal:
        value = Decimal(points) / Decimal(self._points_per_dollar)
        return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    def validate_amount(self, points: Any) -> int:
        if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
            raise InvalidAmountError("Redemption points must be a positive integer")
        if points % self._unit != 0:
            raise InvalidAmountError(f"Points must be redeemed in multiples of {self._unit}")
        return points

    def validate_reward_type(self, reward_type: Any) -> str:
        value = reward_type.value if isinstance(reward_type, RewardType) else reward_type
        if not isinstance(value, str) or value not in self._reward_types:
            raise InvalidRewardTypeError(reward_type, self._reward_types)
        return value

    async def redeem(
        self,
        user_id: UUID,
        points: int,
        reward_type: RewardType | str,
        *,
        idempotency_key: str | None = None,
        details: Optional[dict[str, Any]] = None,
    ) -> RedemptionResult:
        store = get_rewards_store()
        try:
            points = self.validate_amount(points)
            normalized_type = self.validate_reward_type(reward_type)
        except RewardsError as exc:
            store.record_redemption(f"rejected:{exc.code}")
            raise

        cash_value = self.cash_value_for(points)
        tracer = get_tracer()
        async with self._ledger.lock_for(user_id):
            with tracer.start_as_current_span(
                "rewards.redeem",
                attributes={"rewards.user_id": str(user_id), "rewards.points": points},
            ):
                result = await self._redeem_locked(
                    user_id, points, normalized_type, cash_value, idempotency_key, details
                )

        if result.replayed:
            metadata = result.entry.metadata_json or {}
            return RedemptionResult(
                entry=result.entry,
                cash_value=Decimal(str(metadata.get("cashValue", cash_value))),
                reward_type=str(metadata.get("rewardType", normalized_type)),
                available_points=result.account.available_points,
                replayed=True,
            )

        store.record_redemption("succeeded", normalized_type)
        logger.info(
            "Processed rewards redemption",
            user_id=str(user_id),
            points=points,
            reward_type=normalized_type,
            cash_value=str(cash_value),
            available_points=result.account.available_points,
        )
        if self._dispatcher is not None:
            await self._dispatcher.emit(
                user_id,
                REWARD_REDEEMED,
                {
                    "entryId": str(result.entry.id),
                    "points": points,
                    "rewardType": normalized_type,
                    "cashValue": str(cash_value),
                    "availablePoints": result.account.available_points,
                },
            )
        return RedemptionResult(
            entry=result.entry,
            cash_value=cash_value,
            reward_type=normalized_type,
            available_points=result.account.available_points,
        )

    async def _redeem_locked(
        self,
        user_id: UUID,
        points: int,
        reward_type: str,
        cash_value: Decimal,
        idempotency_key: str | None,
        details: Optional[dict[str, Any]],
    ) -> LedgerAppendResult:
        description = f"Redeemed {points} points for {reward_type} (${cash_value:.2f})"
        metadata = {
            "rewardType": reward_type,
            "cashValue": str(cash_value),
            "details": details or {},
        }

        replay = idempotency_key is not None and (
            await self._ledger.find_by_idempotency_key(user_id, idempotency_key)
        ) is not None
        if not replay:
            account = await self._ledger.ensure_account(user_id)
            if points > account.available_points:
                get_rewards_store().record_redemption(f"rejected:{InsufficientPointsError.code}")
                raise InsufficientPointsError(points, account.available_points)

        try:
            return await self._ledger.record(
                user_id,
                LedgerEntryType.SPEND,
                -points,
                description,
                metadata=metadata,
                idempotency_key=idempotency_key,
                acquire_lock=False,
            )
        except InsufficientPointsError:
            get_rewards_store().record_redemption(f"rejected:{InsufficientPointsError.code}")
            raise


__all__ = ["RedemptionProcessor", "RedemptionResult"]
