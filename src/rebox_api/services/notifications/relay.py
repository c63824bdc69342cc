"""Realtime relay implementations for reward events."""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, Protocol
from uuid import UUID

from loguru import logger


@dataclass(slots=True)
class RealtimeEvent:
    """Event pushed to connected clients of a user."""

    user_id: UUID
    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)


class RealtimeRelay(Protocol):
    """Protocol for realtime transports (socket gateways, pub/sub bridges)."""

    async def publish(self, event: RealtimeEvent) -> None:
        ...


class InMemoryRealtimeRelay:
    """Fan events out to per-user subscriber queues held in process memory."""

    def __init__(self, *, queue_size: int = 100, history_size: int = 500) -> None:
        self._queue_size = queue_size
        self._subscribers: Dict[UUID, list[asyncio.Queue[RealtimeEvent]]] = defaultdict(list)
        self.published: Deque[RealtimeEvent] = deque(maxlen=history_size)

    @property
    def queue_size(self) -> int:
        return self._queue_size

    def subscribe(self, user_id: UUID) -> asyncio.Queue[RealtimeEvent]:
        queue: asyncio.Queue[RealtimeEvent] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers[user_id].append(queue)
        return queue

    def unsubscribe(self, user_id: UUID, queue: asyncio.Queue[RealtimeEvent]) -> None:
        queues = self._subscribers.get(user_id)
        if not queues:
            return
        if queue in queues:
            queues.remove(queue)
        if not queues:
            self._subscribers.pop(user_id, None)

    def subscriber_count(self, user_id: UUID) -> int:
        return len(self._subscribers.get(user_id, ()))

    async def publish(self, event: RealtimeEvent) -> None:
        self.published.append(event)
        for queue in list(self._subscribers.get(event.user_id, ())):
            if queue.full():
                # Slow consumers lose their oldest event.
                queue.get_nowait()
                logger.warning(
                    "Dropped realtime event for slow subscriber",
                    user_id=str(event.user_id),
                    event_type=event.event_type,
                )
            queue.put_nowait(event)


__all__ = ["InMemoryRealtimeRelay", "RealtimeEvent", "RealtimeRelay"]
