"""Event sources: where backend events enter the process.

An EventSource delivers typed backend events to handlers registered per
topic. Registration is asynchronous (it may cross a process boundary) and
returns an unlisten callable owned by the caller.

Implementations:
- InProcessEventSource: publish() from the same event loop (local runner, tests)
- StreamEventSource: pumps NDJSON envelopes from an async line iterator
  (e.g. the HTTP backend's /events stream) into an InProcessEventSource

Ordering: handlers for one topic are called in publish order, synchronously,
and run to completion before the next event of that topic is dispatched.
"""

from __future__ import annotations

__all__ = [
    "EventSource",
    "Handler",
    "InProcessEventSource",
    "StreamEventSource",
    "Unlisten",
]

import asyncio
import logging
from collections.abc import AsyncIterable, Callable
from typing import Any, Protocol

from frpc_manager.bus.protocol import decode_envelope
from frpc_manager.constants import APP_NAME
from frpc_manager.events import EventTopic, parse_event
from frpc_manager.exceptions import EventDeliveryError, EventParseError, FrpcManagerError

_logger = logging.getLogger(f"{APP_NAME}.bus.source")

Handler = Callable[[Any], None]
Unlisten = Callable[[], None]


class EventSource(Protocol):
    """Anything handlers can listen on for backend events."""

    async def listen(self, topic: EventTopic, handler: Handler) -> Unlisten:
        """Register handler for topic and return its unlisten callable."""
        ...


class InProcessEventSource:
    """Event source fed by publish() calls on the running event loop.

    Payloads are validated once here; invalid payloads are logged and
    dropped before any handler sees them.
    """

    def __init__(self) -> None:
        self._handlers: dict[EventTopic, list[Handler]] = {topic: [] for topic in EventTopic}
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def handler_count(self, topic: EventTopic) -> int:
        """Return the number of handlers registered for topic."""
        return len(self._handlers[topic])

    async def listen(self, topic: EventTopic, handler: Handler) -> Unlisten:
        """Register a handler for topic.

        Returns:
            Callable that removes the handler. Raises EventDeliveryError if
            the source is closed or the handler was already removed.

        Raises:
            EventDeliveryError: If the source is already closed.
        """
        if self._closed:
            raise EventDeliveryError(f"event source closed, cannot listen on '{topic.value}'")

        # Wrap so the same handler can be registered twice and removed independently
        def _registered(event: Any) -> None:
            handler(event)

        self._handlers[topic].append(_registered)

        def unlisten() -> None:
            if self._closed:
                raise EventDeliveryError(f"event source closed, '{topic.value}' listener already gone")
            try:
                self._handlers[topic].remove(_registered)
            except ValueError:
                raise EventDeliveryError(f"listener for '{topic.value}' already removed") from None

        return unlisten

    def publish(self, topic: str, payload: Any) -> bool:
        """Validate a raw payload and dispatch it to the topic's handlers.

        Args:
            topic: Topic name, e.g. "download-progress".
            payload: Raw decoded payload.

        Returns:
            True if the event was valid and dispatched, False if dropped.
        """
        if self._closed:
            return False
        try:
            event = parse_event(topic, payload)
        except EventParseError as e:
            _logger.warning(
                {
                    "event": "backend_event_invalid",
                    "message": e.message,
                    "error_type": type(e).__name__,
                    "details": {"topic": topic},
                }
            )
            return False

        # Snapshot so handlers may unlisten while being dispatched
        for handler in tuple(self._handlers[event.topic]):
            try:
                handler(event)
            except Exception as e:
                _logger.error(
                    {
                        "event": "event_handler_failed",
                        "message": f"Handler for '{event.topic.value}' raised: {e}",
                        "error_type": type(e).__name__,
                        "error_message": str(e),
                    },
                    exc_info=True,
                )
        return True

    def close(self) -> None:
        """Close the source; later publish() calls are dropped."""
        self._closed = True
        for handlers in self._handlers.values():
            handlers.clear()


class StreamEventSource:
    """Event source fed by an async iterable of NDJSON lines.

    Usage:
        source = StreamEventSource(facade.stream_events())
        task = asyncio.create_task(source.run())
        ...
        await source.aclose()
    """

    def __init__(self, lines: AsyncIterable[bytes | str]) -> None:
        self._lines = lines
        self._inner = InProcessEventSource()
        self._task: asyncio.Task[None] | None = None

    @property
    def closed(self) -> bool:
        return self._inner.closed

    async def listen(self, topic: EventTopic, handler: Handler) -> Unlisten:
        return await self._inner.listen(topic, handler)

    def start(self) -> asyncio.Task[None]:
        """Start pumping lines in a background task (idempotent)."""
        if self._task is None:
            self._task = asyncio.create_task(self.run())
        return self._task

    async def run(self) -> None:
        """Pump lines until the stream ends, then close the source."""
        try:
            async for line in self._lines:
                decoded = decode_envelope(line)
                if decoded is None:
                    _logger.debug(
                        {
                            "event": "event_stream_line_ignored",
                            "message": "Ignoring non-envelope line on event stream",
                        }
                    )
                    continue
                topic, payload = decoded
                self._inner.publish(topic, payload)
        except FrpcManagerError as e:
            # Nobody awaits the pump task; a broken stream ends it like EOF
            _logger.warning(
                {
                    "event": "event_stream_failed",
                    "message": f"Backend event stream failed: {e.message}",
                    "error_type": type(e).__name__,
                    "error_message": e.message,
                }
            )
        finally:
            _logger.info(
                {
                    "event": "event_stream_closed",
                    "message": "Backend event stream ended",
                }
            )
            self._inner.close()

    async def aclose(self) -> None:
        """Stop the pump task and close the source."""
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._inner.close()
