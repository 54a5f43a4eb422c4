"""Subscriber notifications.

Fan-out of CoreEvent to any number of asyncio.Queue subscribers (CLI
watcher, UI bridge, tests). Publishing is synchronous and never blocks:
event handlers call it while running to completion.

Each subscriber sees events in publish order. Queues are unbounded by
default; a bounded queue that fills up drops the event with a warning.
"""

from __future__ import annotations

__all__ = ["Notifier"]

import asyncio
import logging
from typing import Any

from frpc_manager.constants import APP_NAME
from frpc_manager.events import CoreEvent, CoreEventType, EventSeverity

_logger = logging.getLogger(f"{APP_NAME}.core.notifier")


class Notifier:
    """Broadcast CoreEvents to subscriber queues."""

    def __init__(self) -> None:
        self._subscribers: list[asyncio.Queue[CoreEvent]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, maxsize: int = 0, *, seed: CoreEvent | None = None) -> asyncio.Queue[CoreEvent]:
        """Register a new subscriber queue.

        Args:
            maxsize: Queue bound (0 = unbounded).
            seed: Event placed first in the queue, before any later publish.

        Returns:
            Queue that receives every subsequent event.
        """
        queue: asyncio.Queue[CoreEvent] = asyncio.Queue(maxsize=maxsize)
        if seed is not None:
            queue.put_nowait(seed)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[CoreEvent]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event_type: CoreEventType, data: dict[str, Any] | None = None) -> CoreEvent:
        """Deliver one event to every subscriber."""
        event = CoreEvent(type=event_type, data=data or {})
        for queue in tuple(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                _logger.warning(
                    {
                        "event": "subscriber_queue_full",
                        "message": f"Subscriber queue full, dropping '{event_type.value}' event",
                        "details": {"subscriber_count": len(self._subscribers)},
                    }
                )
        return event

    def notify(self, severity: EventSeverity, message: str, **extra: Any) -> CoreEvent:
        """Publish a point-in-time user notification (toast)."""
        return self.publish(
            CoreEventType.NOTIFICATION,
            {"severity": severity, "message": message, **extra},
        )
