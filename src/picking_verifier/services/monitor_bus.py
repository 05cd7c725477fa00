"""Monitor Bus — in-memory fan-out of session events to live subscribers.

Each subscriber owns a bounded asyncio.Queue. ``publish`` never awaits: it
walks a snapshot of the registry and uses ``put_nowait``, dropping the event
for any subscriber whose buffer is full. A slow or abandoned subscriber
therefore never blocks the workflow or the other subscribers, and
subscribers may come and go while a fan-out is in progress.

Usage:
    bus = MonitorBus()
    sub = bus.subscribe()            # CONNECTED is already queued
    bus.publish(MonitorEvent.create(EventKind.LOADED, pedido=500))
    event = await sub.get()
    bus.unsubscribe(sub)
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from picking_verifier.domain.enums import EventKind
from picking_verifier.logging_config import get_logger

logger = get_logger(__name__)


def _clock() -> str:
    return datetime.now().strftime("%H:%M:%S")


@dataclass(frozen=True)
class MonitorEvent:
    """A timestamped event record as delivered to subscribers."""

    kind: EventKind
    hora: str
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def create(cls, kind: EventKind, **payload: Any) -> MonitorEvent:
        return cls(kind=kind, hora=_clock(), payload=payload)

    def to_dict(self) -> dict[str, Any]:
        return {"evento": self.kind.value, "hora": self.hora, **self.payload}


class Subscription:
    """Handle returned by ``MonitorBus.subscribe``."""

    def __init__(self, subscriber_id: int, maxsize: int) -> None:
        self.id = subscriber_id
        self.queue: asyncio.Queue[MonitorEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    async def get(self) -> MonitorEvent:
        return await self.queue.get()

    def offer(self, event: MonitorEvent) -> bool:
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            return False
        return True


class MonitorBus:
    """Registry of live subscribers with best-effort, non-blocking publish."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._subscribers: dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        """Register a subscriber and queue its connection acknowledgement."""
        sub = Subscription(next(self._ids), self._queue_size)
        self._subscribers[sub.id] = sub
        sub.offer(MonitorEvent.create(EventKind.CONNECTED))
        logger.info("monitor.subscribed", subscriber=sub.id, total=len(self._subscribers))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Remove a subscriber; repeated calls are no-ops."""
        if self._subscribers.pop(sub.id, None) is not None:
            logger.info(
                "monitor.unsubscribed",
                subscriber=sub.id,
                dropped=sub.dropped,
                total=len(self._subscribers),
            )

    def publish(self, event: MonitorEvent) -> int:
        """Deliver ``event`` to every current subscriber.

        Returns:
            The number of subscribers that accepted the event.
        """
        delivered = 0
        for sub in list(self._subscribers.values()):
            if sub.offer(event):
                delivered += 1
            else:
                logger.warning(
                    "monitor.event_dropped",
                    subscriber=sub.id,
                    kind=event.kind.value,
                )
        logger.debug("monitor.published", kind=event.kind.value, delivered=delivered)
        return delivered

    def emit(self, kind: EventKind, **payload: Any) -> MonitorEvent:
        """Build and publish an event in one call."""
        event = MonitorEvent.create(kind, **payload)
        self.publish(event)
        return event
