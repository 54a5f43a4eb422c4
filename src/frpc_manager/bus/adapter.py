"""Scoped subscriptions on an event source.

The adapter owns every listener handle it creates. Handles go into a
teardown list that detach() drains in one step, so each handle is
released exactly once even across rapid detach/attach cycles (e.g. a
consumer re-attaching after navigation).

Release never raises: a channel that is already closed is logged at debug
level and otherwise ignored, so teardown always succeeds.
"""

from __future__ import annotations

__all__ = [
    "EventBusAdapter",
    "Subscription",
]

import logging
from collections.abc import Iterable, Mapping

from frpc_manager.bus.source import EventSource, Handler, Unlisten
from frpc_manager.constants import APP_NAME
from frpc_manager.events import EventTopic

_logger = logging.getLogger(f"{APP_NAME}.bus.adapter")


class Subscription:
    """Handle for one listener registration.

    Attributes:
        topic: Topic the handler listens on.
    """

    def __init__(self, topic: EventTopic, unlisten: Unlisten) -> None:
        self.topic = topic
        self._unlisten = unlisten
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Release the listener. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        try:
            self._unlisten()
        except Exception as e:
            _logger.debug(
                {
                    "event": "unsubscribe_failed",
                    "message": f"Ignoring failure while releasing '{self.topic.value}' listener: {e}",
                    "error_type": type(e).__name__,
                }
            )

    def __repr__(self) -> str:
        return f"Subscription(topic={self.topic.value!r}, released={self._released})"


class EventBusAdapter:
    """Attach/detach a set of topic handlers to an event source.

    Usage:
        adapter = EventBusAdapter(source)
        await adapter.attach({EventTopic.PROCESS_EXIT: supervisor.handle_exit})
        ...
        adapter.detach()
    """

    def __init__(self, source: EventSource) -> None:
        self._source = source
        self._teardown: list[Subscription] = []
        self._listening = False
        # Bumped by detach(); lets attach() spot a detach that raced its awaits
        self._generation = 0

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def subscription_count(self) -> int:
        return len(self._teardown)

    async def subscribe(self, topic: EventTopic, handler: Handler) -> Subscription:
        """Listen on one topic and track the handle for teardown."""
        unlisten = await self._source.listen(topic, handler)
        subscription = Subscription(topic, unlisten)
        self._teardown.append(subscription)
        return subscription

    @staticmethod
    def unsubscribe_all(handles: Iterable[Subscription]) -> None:
        """Release every handle; already-released handles are skipped."""
        for handle in handles:
            handle.release()

    async def attach(self, bindings: Mapping[EventTopic, Handler]) -> bool:
        """Subscribe all bindings unless already listening.

        Args:
            bindings: Handler per topic.

        Returns:
            True if listeners were attached, False if already listening.
        """
        if self._listening:
            return False
        # Set before the first await so a concurrent attach() is a no-op
        self._listening = True
        generation = self._generation

        try:
            for topic, handler in bindings.items():
                unlisten = await self._source.listen(topic, handler)
                subscription = Subscription(topic, unlisten)
                if generation != self._generation:
                    # detach() ran while we were awaiting; do not leak this listener
                    subscription.release()
                    continue
                self._teardown.append(subscription)
        except BaseException:
            if generation == self._generation:
                self.detach()
            raise

        if generation == self._generation:
            _logger.debug(
                {
                    "event": "listeners_attached",
                    "message": f"Attached {len(bindings)} listeners",
                    "details": {"topics": [topic.value for topic in bindings]},
                }
            )
        return True

    def detach(self) -> None:
        """Release every tracked handle and reset the listening flag."""
        handles, self._teardown = self._teardown, []
        self._generation += 1
        self._listening = False
        self.unsubscribe_all(handles)
