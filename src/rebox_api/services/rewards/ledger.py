"""Append-only points ledger with an incrementally maintained account cache."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Sequence
from uuid import UUID
from weakref import WeakKeyDictionary, WeakValueDictionary

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from rebox_api.models.rewards import LedgerEntryType, PointsLedgerEntry, RewardsAccount
from rebox_api.models.user import User
from rebox_api.observability.rewards import get_rewards_store
from rebox_api.observability.tracing import get_tracer
from rebox_api.services.notifications import REWARD_EARNED, REWARD_LEVEL_UP, RewardEventDispatcher

from .errors import (
    IdempotencyConflictError,
    InsufficientPointsError,
    InvalidAmountError,
    RewardsAccountNotFoundError,
    StorageUnavailableError,
)
from .levels import LevelSchedule, get_level_schedule

MAX_PAGE_SIZE = 100


class UserLockRegistry:
    """Per-user ``asyncio.Lock`` instances, scoped to the running event loop.

    A lock lives only while some coroutine holds or awaits it, so idle users
    do not accumulate.
    """

    def __init__(self) -> None:
        self._locks: WeakKeyDictionary[
            asyncio.AbstractEventLoop, WeakValueDictionary[UUID, asyncio.Lock]
        ] = WeakKeyDictionary()

    def lock_for(self, user_id: UUID) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        locks = self._locks.get(loop)
        if locks is None:
            locks = WeakValueDictionary()
            self._locks[loop] = locks
        lock = locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            locks[user_id] = lock
        return lock

    def tracked_count(self) -> int:
        locks = self._locks.get(asyncio.get_running_loop())
        return len(locks) if locks is not None else 0


_USER_LOCKS = UserLockRegistry()


def get_user_locks() -> UserLockRegistry:
    return _USER_LOCKS


@dataclass
class LedgerAppendResult:
    """Outcome of a ledger append, including the refreshed account row."""

    entry: PointsLedgerEntry
    account: RewardsAccount
    previous_level: str
    replayed: bool = False

    @property
    def level_changed(self) -> bool:
        return not self.replayed and self.account.level != self.previous_level


def validate_entry_points(entry_type: LedgerEntryType, points: Any) -> int:
    """Reject zero, non-integer and wrongly signed point quantities."""

    if isinstance(points, bool) or not isinstance(points, int):
        raise InvalidAmountError("Points must be an integer")
    if points == 0:
        raise InvalidAmountError("Ledger entries require a non-zero amount")
    if entry_type == LedgerEntryType.EARN and points < 0:
        raise InvalidAmountError("Earn entries must be positive")
    if entry_type == LedgerEntryType.SPEND and points > 0:
        raise InvalidAmountError("Spend entries must be negative")
    return points


class PointsLedger:
    """Record point-affecting events and keep ``rewards_accounts`` in step."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        schedule: LevelSchedule | None = None,
        dispatcher: RewardEventDispatcher | None = None,
        locks: UserLockRegistry | None = None,
    ) -> None:
        self._db = db_session
        self._schedule = schedule or get_level_schedule()
        self._dispatcher = dispatcher
        self._locks = locks or get_user_locks()

    @property
    def schedule(self) -> LevelSchedule:
        return self._schedule

    def lock_for(self, user_id: UUID) -> asyncio.Lock:
        return self._locks.lock_for(user_id)

    async def append(
        self,
        user_id: UUID,
        entry_type: LedgerEntryType,
        points: int,
        description: str,
        *,
        metadata: Optional[dict[str, Any]] = None,
        idempotency_key: str | None = None,
    ) -> PointsLedgerEntry:
        """Append an entry and return it."""

        result = await self.record(
            user_id,
            entry_type,
            points,
            description,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        return result.entry

    async def record(
        self,
        user_id: UUID,
        entry_type: LedgerEntryType,
        points: int,
        description: str,
        *,
        metadata: Optional[dict[str, Any]] = None,
        idempotency_key: str | None = None,
        acquire_lock: bool = True,
    ) -> LedgerAppendResult:
        """Append an entry, update the account cache and commit.

        Callers already holding the user's lock pass ``acquire_lock=False``.
        """

        validate_entry_points(entry_type, points)
        if not description or not description.strip():
            raise InvalidAmountError("Ledger entries require a description")

        if acquire_lock:
            async with self.lock_for(user_id):
                result = await self._record_guarded(
                    user_id, entry_type, points, description, metadata, idempotency_key
                )
        else:
            result = await self._record_guarded(user_id, entry_type, points, description, metadata, idempotency_key)

        if not result.replayed:
            await self._emit_events(result)
        return result

    async def _record_guarded(
        self,
        user_id: UUID,
        entry_type: LedgerEntryType,
        points: int,
        description: str,
        metadata: Optional[dict[str, Any]],
        idempotency_key: str | None,
    ) -> LedgerAppendResult:
        tracer = get_tracer()
        with tracer.start_as_current_span(
            "rewards.ledger.append",
            attributes={"rewards.user_id": str(user_id), "rewards.entry_type": entry_type.value},
        ):
            try:
                return await self._record_unlocked(
                    user_id, entry_type, points, description, metadata, idempotency_key
                )
            except (OperationalError, InterfaceError) as exc:
                await self._db.rollback()
                logger.opt(exception=exc).error("Rewards storage unavailable", user_id=str(user_id))
                raise StorageUnavailableError("Rewards storage is temporarily unavailable") from exc

    async def _record_unlocked(
        self,
        user_id: UUID,
        entry_type: LedgerEntryType,
        points: int,
        description: str,
        metadata: Optional[dict[str, Any]],
        idempotency_key: str | None,
    ) -> LedgerAppendResult:
        if idempotency_key:
            existing = await self.find_by_idempotency_key(user_id, idempotency_key)
            if existing is not None:
                return await self._replay(existing, entry_type, points)

        account = await self.ensure_account(user_id)
        previous_level = account.level
        available_before = account.available_points

        if points < 0:
            stmt = (
                update(RewardsAccount)
                .where(
                    RewardsAccount.user_id == user_id,
                    RewardsAccount.available_points >= -points,
                )
                .values(
                    available_points=RewardsAccount.available_points + points,
                    entry_count=RewardsAccount.entry_count + 1,
                )
            )
        else:
            stmt = (
                update(RewardsAccount)
                .where(RewardsAccount.user_id == user_id)
                .values(
                    available_points=RewardsAccount.available_points + points,
                    lifetime_points=RewardsAccount.lifetime_points + points,
                    entry_count=RewardsAccount.entry_count + 1,
                )
            )
        outcome = await self._db.execute(stmt.execution_options(synchronize_session=False))
        if outcome.rowcount == 0:
            await self._db.rollback()
            raise InsufficientPointsError(-points, available_before)

        await self._db.refresh(account)
        new_level = self._schedule.level_for(account.lifetime_points).name
        if new_level != account.level:
            account.level = new_level

        entry = PointsLedgerEntry(
            user_id=user_id,
            entry_type=entry_type,
            points=points,
            description=description.strip(),
            metadata_json=metadata or {},
            idempotency_key=idempotency_key,
            sequence=account.entry_count,
        )
        self._db.add(entry)
        try:
            await self._db.commit()
        except IntegrityError as exc:
            await self._db.rollback()
            if idempotency_key:
                existing = await self.find_by_idempotency_key(user_id, idempotency_key)
                if existing is not None:
                    logger.warning(
                        "Detected race on rewards idempotency key",
                        user_id=str(user_id),
                        idempotency_key=idempotency_key,
                    )
                    return await self._replay(existing, entry_type, points)
            raise StorageUnavailableError("Concurrent ledger write detected; retry the request") from exc

        await self._db.refresh(entry)
        await self._db.refresh(account)

        get_rewards_store().record_ledger_append(entry_type.value, points)
        logger.info(
            "Recorded rewards ledger entry",
            user_id=str(user_id),
            entry_id=str(entry.id),
            entry_type=entry_type.value,
            points=points,
            sequence=entry.sequence,
            available_points=account.available_points,
            lifetime_points=account.lifetime_points,
        )
        return LedgerAppendResult(entry=entry, account=account, previous_level=previous_level)

    async def _replay(
        self,
        existing: PointsLedgerEntry,
        entry_type: LedgerEntryType,
        points: int,
    ) -> LedgerAppendResult:
        if existing.entry_type != entry_type or existing.points != points:
            raise IdempotencyConflictError("Idempotency key was already used for a different request")
        account = await self.ensure_account(existing.user_id)
        if entry_type == LedgerEntryType.SPEND:
            get_rewards_store().record_redemption("replayed")
        logger.info(
            "Replayed rewards ledger entry",
            user_id=str(existing.user_id),
            entry_id=str(existing.id),
            idempotency_key=existing.idempotency_key,
        )
        return LedgerAppendResult(entry=existing, account=account, previous_level=account.level, replayed=True)

    async def _emit_events(self, result: LedgerAppendResult) -> None:
        if result.level_changed:
            get_rewards_store().record_level_up(result.account.level)
        if self._dispatcher is None:
            return

        entry = result.entry
        if entry.points > 0:
            await self._dispatcher.emit(
                entry.user_id,
                REWARD_EARNED,
                {
                    "entryId": str(entry.id),
                    "entryType": entry.entry_type.value,
                    "points": entry.points,
                    "description": entry.description,
                    "availablePoints": result.account.available_points,
                    "lifetimePoints": result.account.lifetime_points,
                },
            )
        if result.level_changed:
            await self._dispatcher.emit(
                entry.user_id,
                REWARD_LEVEL_UP,
                {
                    "level": result.account.level,
                    "previousLevel": result.previous_level,
                    "lifetimePoints": result.account.lifetime_points,
                },
            )

    async def ensure_account(self, user_id: UUID) -> RewardsAccount:
        """Fetch the cached account, creating a zero balance on first access."""

        stmt = select(RewardsAccount).where(RewardsAccount.user_id == user_id)
        account = (await self._db.execute(stmt)).scalar_one_or_none()
        if account is not None:
            return account

        user = await self._db.get(User, user_id)
        if user is None:
            raise RewardsAccountNotFoundError(user_id)

        account = RewardsAccount(
            user_id=user_id,
            available_points=0,
            lifetime_points=0,
            level=self._schedule.lowest.name,
            entry_count=0,
        )
        self._db.add(account)
        try:
            await self._db.commit()
        except IntegrityError:
            await self._db.rollback()
            logger.warning("Detected race when creating rewards account", user_id=str(user_id))
            return await self.ensure_account(user_id)

        await self._db.refresh(account)
        logger.info("Created rewards account", user_id=str(user_id), account_id=str(account.id))
        return account

    async def find_by_idempotency_key(self, user_id: UUID, idempotency_key: str) -> PointsLedgerEntry | None:
        stmt = select(PointsLedgerEntry).where(
            PointsLedgerEntry.user_id == user_id,
            PointsLedgerEntry.idempotency_key == idempotency_key,
        )
        return (await self._db.execute(stmt)).scalar_one_or_none()

    async def transactions_for(
        self,
        user_id: UUID,
        limit: int = 20,
        offset: int = 0,
        entry_type: LedgerEntryType | None = None,
    ) -> tuple[Sequence[PointsLedgerEntry], int]:
        """Return a page of entries (newest first) and the total count."""

        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)

        filters = [PointsLedgerEntry.user_id == user_id]
        if entry_type is not None:
            filters.append(PointsLedgerEntry.entry_type == entry_type)

        stmt = (
            select(PointsLedgerEntry)
            .where(*filters)
            .order_by(PointsLedgerEntry.sequence.desc())
            .limit(limit)
            .offset(offset)
        )
        total_stmt = select(func.count()).select_from(PointsLedgerEntry).where(*filters)
        try:
            entries = list((await self._db.execute(stmt)).scalars().all())
            total = (await self._db.execute(total_stmt)).scalar_one()
        except (OperationalError, InterfaceError) as exc:
            raise StorageUnavailableError("Rewards storage is temporarily unavailable") from exc
        logger.debug("Fetched rewards transactions", user_id=str(user_id), count=len(entries), total=total)
        return entries, int(total)

    async def entries_for(self, user_id: UUID) -> list[PointsLedgerEntry]:
        """Every entry for ``user_id`` in sequence order."""

        stmt = (
            select(PointsLedgerEntry)
            .where(PointsLedgerEntry.user_id == user_id)
            .order_by(PointsLedgerEntry.sequence.asc())
        )
        return list((await self._db.execute(stmt)).scalars().all())


__all__ = [
    "LedgerAppendResult",
    "PointsLedger",
    "UserLockRegistry",
    "get_user_locks",
    "validate_entry_points",
]
