"""Persist reward notifications and forward them to the realtime relay."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Sequence
from uuid import UUID

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from rebox_api.core.settings import settings
from rebox_api.models.notification import Notification, NotificationCategoryEnum
from rebox_api.observability.rewards import get_rewards_store

from .relay import InMemoryRealtimeRelay, RealtimeEvent, RealtimeRelay
from .templates import render_reward_event

_DEFAULT_RELAY = InMemoryRealtimeRelay(queue_size=settings.realtime_queue_size)


def get_realtime_relay() -> InMemoryRealtimeRelay:
    return _DEFAULT_RELAY


class RewardEventDispatcher:
    """Fire-and-forget delivery of reward events.

    Each event is stored as an in-app notification and then pushed to the
    relay. Failures are logged and counted; callers never see them.
    """

    def __init__(self, db_session: AsyncSession, relay: RealtimeRelay | None = None) -> None:
        self._db = db_session
        self._relay = relay or get_realtime_relay()

    async def emit(self, user_id: UUID, event_type: str, payload: dict[str, Any]) -> Notification | None:
        store = get_rewards_store()
        notification: Notification | None = None
        try:
            rendered = render_reward_event(event_type, payload)
            notification = Notification(
                user_id=user_id,
                category=NotificationCategoryEnum.REWARD.value,
                event_type=event_type,
                title=rendered.title,
                message=rendered.message,
                payload=payload,
            )
            # A failed insert only unwinds the savepoint; rows the caller
            # already committed stay loaded on this session.
            async with self._db.begin_nested():
                self._db.add(notification)
            await self._db.commit()
            store.record_notification("persisted")
        except (SQLAlchemyError, ValueError) as exc:
            notification = None
            store.record_notification("persist_failed")
            logger.opt(exception=exc).error(
                "Failed to persist reward notification",
                user_id=str(user_id),
                event_type=event_type,
            )

        try:
            await self._relay.publish(RealtimeEvent(user_id=user_id, event_type=event_type, payload=payload))
            store.record_notification("relayed")
        except Exception as exc:  # pragma: no cover - relay implementations vary
            store.record_notification("relay_failed")
            logger.opt(exception=exc).error(
                "Failed to relay reward event",
                user_id=str(user_id),
                event_type=event_type,
            )

        logger.debug("Dispatched reward event", user_id=str(user_id), event_type=event_type)
        return notification


class NotificationInbox:
    """Read side for a user's persisted notifications."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def list_for_user(
        self,
        user_id: UUID,
        *,
        limit: int = 20,
        offset: int = 0,
        unread_only: bool = False,
    ) -> tuple[Sequence[Notification], int]:
        filters = [Notification.user_id == user_id]
        if unread_only:
            filters.append(Notification.is_read.is_(False))

        stmt = (
            select(Notification)
            .where(*filters)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .offset(offset)
        )
        total_stmt = select(func.count()).select_from(Notification).where(*filters)
        result = await self._db.execute(stmt)
        total = (await self._db.execute(total_stmt)).scalar_one()
        return list(result.scalars().all()), int(total)

    async def mark_read(self, user_id: UUID, notification_id: UUID) -> Notification | None:
        stmt = select(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id,
        )
        notification = (await self._db.execute(stmt)).scalar_one_or_none()
        if notification is None:
            return None
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            await self._db.commit()
            await self._db.refresh(notification)
        return notification


__all__ = ["NotificationInbox", "RewardEventDispatcher", "get_realtime_relay"]
