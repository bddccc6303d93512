from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Protocol

from loguru import logger

from opera.models.events import SSEEvent


class EventSink(Protocol):
    def emit(self, event: SSEEvent) -> None: ...


class NullSink:
    """Discards every event."""

    def emit(self, event: SSEEvent) -> None:
        return None


@dataclass(eq=False)
class Subscription:
    project_id: str | None = None
    user_id: str | None = None
    queue: asyncio.Queue[SSEEvent] = field(default_factory=lambda: asyncio.Queue(maxsize=256))
    dropped: int = 0

    def wants(self, event: SSEEvent) -> bool:
        # Unscoped events go to everyone; scoped events go to the matching room or user.
        if event.project_id is None and event.user_id is None:
            return True
        if event.user_id is not None and event.user_id == self.user_id:
            return True
        return event.project_id is not None and event.project_id == self.project_id


class EventBus:
    """In-process fan-out of pipeline events to SSE subscribers.

    ``emit`` never blocks: a subscriber whose queue is full misses the event.
    """

    def __init__(self, *, max_queue_size: int = 256):
        self.max_queue_size = max_queue_size
        self._subscriptions: set[Subscription] = set()

    def subscribe(self, *, project_id: str | None = None, user_id: str | None = None) -> Subscription:
        sub = Subscription(
            project_id=project_id,
            user_id=user_id,
            queue=asyncio.Queue(maxsize=self.max_queue_size),
        )
        self._subscriptions.add(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._subscriptions.discard(sub)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def emit(self, event: SSEEvent) -> None:
        for sub in list(self._subscriptions):
            if not sub.wants(event):
                continue
            try:
                sub.queue.put_nowait(event)
            except asyncio.QueueFull:
                sub.dropped += 1
                logger.warning(
                    f"Dropping {event.event.value} for slow subscriber "
                    f"(project={sub.project_id}, dropped={sub.dropped})"
                )

    async def listen(self, sub: Subscription) -> AsyncIterator[SSEEvent]:
        try:
            while True:
                yield await sub.queue.get()
        finally:
            self.unsubscribe(sub)
