"""Per-user rewards aggregate: cached read path and ledger refold."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Union
from uuid import UUID

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from rebox_api.models.rewards import PointsLedgerEntry, RewardsAccount

from .ledger import PointsLedger
from .levels import LevelConfig, LevelSchedule


@dataclass(frozen=True)
class RewardsAggregate:
    """Snapshot of a user's balances with derived level fields."""

    user_id: UUID
    available_points: int
    lifetime_points: int
    level: LevelConfig
    next_level: LevelConfig | None
    points_to_next_level: int
    progress_to_next: float
    entry_count: int
    repaired: bool = False

    @property
    def current_level_config(self) -> LevelConfig:
        return self.level

    @property
    def next_level_config(self) -> LevelConfig | None:
        return self.next_level


def fold(entries: Iterable[Union[PointsLedgerEntry, int]]) -> tuple[int, int]:
    """Return ``(available, lifetime)`` for a sequence of entries or raw point values."""

    available = 0
    lifetime = 0
    for entry in entries:
        points = entry if isinstance(entry, int) else entry.points
        available += points
        if points > 0:
            lifetime += points
    return available, lifetime


def build_aggregate(
    user_id: UUID,
    available_points: int,
    lifetime_points: int,
    schedule: LevelSchedule,
    *,
    entry_count: int = 0,
    repaired: bool = False,
) -> RewardsAggregate:
    level = schedule.level_for(lifetime_points)
    return RewardsAggregate(
        user_id=user_id,
        available_points=available_points,
        lifetime_points=lifetime_points,
        level=level,
        next_level=schedule.next_level_for(lifetime_points),
        points_to_next_level=schedule.points_to_next_level(lifetime_points),
        progress_to_next=schedule.progress_to_next(lifetime_points),
        entry_count=entry_count,
        repaired=repaired,
    )


def aggregate_from_account(account: RewardsAccount, schedule: LevelSchedule) -> RewardsAggregate:
    return build_aggregate(
        account.user_id,
        account.available_points,
        account.lifetime_points,
        schedule,
        entry_count=account.entry_count,
    )


class RewardsAggregateView:
    """Read balances from the account cache and rebuild it from the ledger on demand."""

    def __init__(self, db_session: AsyncSession, *, ledger: PointsLedger | None = None) -> None:
        self._db = db_session
        self._ledger = ledger or PointsLedger(db_session)

    async def aggregate_for(self, user_id: UUID) -> RewardsAggregate:
        account = await self._ledger.ensure_account(user_id)
        return aggregate_from_account(account, self._ledger.schedule)

    async def refold(self, user_id: UUID) -> RewardsAggregate:
        """Recompute balances from the full ledger and repair drift in the cache."""

        schedule = self._ledger.schedule
        async with self._ledger.lock_for(user_id):
            account = await self._ledger.ensure_account(user_id)
            entries = await self._ledger.entries_for(user_id)
            available, lifetime = fold(entries)
            entry_count = entries[-1].sequence if entries else 0
            level = schedule.level_for(lifetime).name

            cached = (account.available_points, account.lifetime_points, account.entry_count, account.level)
            rebuilt = (available, lifetime, entry_count, level)
            repaired = cached != rebuilt
            if repaired:
                logger.warning(
                    "Repaired drifted rewards account",
                    user_id=str(user_id),
                    cached_available=cached[0],
                    cached_lifetime=cached[1],
                    available_points=available,
                    lifetime_points=lifetime,
                )
                account.available_points = available
                account.lifetime_points = lifetime
                account.entry_count = entry_count
                account.level = level
                await self._db.commit()
                await self._db.refresh(account)
            else:
                logger.debug("Rewards account matches ledger", user_id=str(user_id), entries=len(entries))

        return build_aggregate(
            user_id, available, lifetime, schedule, entry_count=entry_count, repaired=repaired
        )


__all__ = [
    "RewardsAggregate",
    "RewardsAggregateView",
    "aggregate_from_account",
    "build_aggregate",
    "fold",
]
