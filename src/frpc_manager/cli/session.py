"""Run core operations from synchronous click commands.

Each command opens a short-lived FrpcCore against the HTTP backend,
hydrates it, runs one coroutine and tears everything down. Core errors
become click exceptions so the process exits non-zero with the backend's
message.
"""

from __future__ import annotations

__all__ = ["CoreCommandError", "is_event", "open_core", "run_with_core", "wait_for_event"]

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, TypeVar

import click

from frpc_manager.backend.http_client import HttpCommandFacade
from frpc_manager.bus.source import EventSource, InProcessEventSource, StreamEventSource
from frpc_manager.config import CoreSettings
from frpc_manager.core.app import FrpcCore, set_core
from frpc_manager.events import CoreEvent, CoreEventType
from frpc_manager.exceptions import FrpcManagerError

T = TypeVar("T")


class CoreCommandError(click.ClickException):
    """A core operation failed (local rejection or backend error)."""

    def __init__(self, error: FrpcManagerError) -> None:
        super().__init__(error.message)
        self.error = error


@asynccontextmanager
async def open_core(settings: CoreSettings, *, listen: bool = False) -> AsyncIterator[FrpcCore]:
    """Open a hydrated core.

    Args:
        settings: Backend location and core tuning.
        listen: Consume the backend event stream (needed to wait for
            download completion or activation confirmation).
    """
    facade = HttpCommandFacade(
        settings.backend_url,
        socket_path=settings.backend_socket,
        timeout=settings.request_timeout_seconds,
    )
    stream: StreamEventSource | None = None
    events: EventSource
    if listen:
        stream = StreamEventSource(facade.stream_events())
        events = stream
    else:
        events = InProcessEventSource()

    core = FrpcCore(facade, events, settings)
    set_core(core)
    try:
        if stream is not None:
            stream.start()
        await core.hydrate()
        yield core
    finally:
        core.close()
        set_core(None)
        if stream is not None:
            await stream.aclose()
        await facade.aclose()


def run_with_core(
    settings: CoreSettings,
    action: Callable[[FrpcCore], Awaitable[T]],
    *,
    listen: bool = False,
) -> T:
    """Run action against a fresh core and return its result.

    Raises:
        CoreCommandError: If the core raised a FrpcManagerError.
    """

    async def _main() -> T:
        async with open_core(settings, listen=listen) as core:
            return await action(core)

    try:
        return asyncio.run(_main())
    except FrpcManagerError as e:
        raise CoreCommandError(e) from e


async def wait_for_event(
    queue: asyncio.Queue[CoreEvent],
    predicate: Callable[[CoreEvent], bool],
    *,
    timeout: float,
    on_event: Callable[[CoreEvent], Any] | None = None,
) -> CoreEvent:
    """Consume queue until predicate matches.

    Raises:
        click.ClickException: If nothing matches within timeout.
    """

    async def _wait() -> CoreEvent:
        while True:
            event = await queue.get()
            if on_event is not None:
                on_event(event)
            if predicate(event):
                return event

    try:
        return await asyncio.wait_for(_wait(), timeout=timeout)
    except asyncio.TimeoutError:
        raise click.ClickException(f"Timed out after {timeout:g}s waiting for the backend") from None


def is_event(event: CoreEvent, event_type: CoreEventType, name: str) -> bool:
    return event.type is event_type and event.data.get("name") == name
