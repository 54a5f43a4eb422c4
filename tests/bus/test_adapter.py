"""Tests for EventBusAdapter and Subscription.

Handles are released exactly once, attach is idempotent while listening,
and a detach racing an attach never leaks a listener.
"""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock

import pytest

from frpc_manager.bus.adapter import EventBusAdapter, Subscription
from frpc_manager.bus.source import Handler, InProcessEventSource, Unlisten
from frpc_manager.events import EventTopic
from frpc_manager.exceptions import EventDeliveryError


@pytest.fixture
def adapter(events: InProcessEventSource) -> EventBusAdapter:
    return EventBusAdapter(events)


def _noop(event: object) -> None:
    pass


class TestSubscription:
    def test_release_runs_unlisten_once(self) -> None:
        unlisten = MagicMock()
        subscription = Subscription(EventTopic.PROCESS_EXIT, unlisten)

        subscription.release()
        subscription.release()

        unlisten.assert_called_once_with()
        assert subscription.released is True

    def test_release_swallows_channel_errors(self) -> None:
        unlisten = MagicMock(side_effect=EventDeliveryError("channel gone"))
        subscription = Subscription(EventTopic.PROCESS_EXIT, unlisten)

        subscription.release()

        assert subscription.released is True

    def test_release_swallows_any_unlisten_error(self) -> None:
        subscription = Subscription(EventTopic.PROCESS_EXIT, MagicMock(side_effect=OSError("pipe closed")))

        subscription.release()

        assert subscription.released is True


class TestAttachDetach:
    async def test_attach_subscribes_every_binding(
        self, adapter: EventBusAdapter, events: InProcessEventSource
    ) -> None:
        attached = await adapter.attach({EventTopic.PROCESS_EXIT: _noop, EventTopic.PROCESS_STDOUT: _noop})

        assert attached is True
        assert adapter.listening is True
        assert adapter.subscription_count == 2
        assert events.handler_count(EventTopic.PROCESS_EXIT) == 1

    async def test_second_attach_is_a_noop(self, adapter: EventBusAdapter, events: InProcessEventSource) -> None:
        await adapter.attach({EventTopic.PROCESS_EXIT: _noop})

        attached = await adapter.attach({EventTopic.PROCESS_EXIT: _noop})

        assert attached is False
        assert events.handler_count(EventTopic.PROCESS_EXIT) == 1

    async def test_detach_releases_everything(self, adapter: EventBusAdapter, events: InProcessEventSource) -> None:
        await adapter.attach({EventTopic.PROCESS_EXIT: _noop, EventTopic.ACTIVATION_STATUS: _noop})

        adapter.detach()

        assert adapter.listening is False
        assert adapter.subscription_count == 0
        assert events.handler_count(EventTopic.PROCESS_EXIT) == 0
        assert events.handler_count(EventTopic.ACTIVATION_STATUS) == 0

    async def test_reattach_after_detach(self, adapter: EventBusAdapter, events: InProcessEventSource) -> None:
        received: list[object] = []
        await adapter.attach({EventTopic.PROCESS_EXIT: received.append})
        adapter.detach()

        assert await adapter.attach({EventTopic.PROCESS_EXIT: received.append}) is True
        events.publish("process-exit", {"code": 0})

        assert len(received) == 1

    async def test_detach_after_source_closed_is_silent(
        self, adapter: EventBusAdapter, events: InProcessEventSource
    ) -> None:
        await adapter.attach({EventTopic.PROCESS_EXIT: _noop})
        events.close()

        adapter.detach()

        assert adapter.subscription_count == 0

    async def test_double_detach_is_a_noop(self, adapter: EventBusAdapter) -> None:
        await adapter.attach({EventTopic.PROCESS_EXIT: _noop})

        adapter.detach()
        adapter.detach()

        assert adapter.listening is False

    async def test_unsubscribe_all_skips_released_handles(self, adapter: EventBusAdapter) -> None:
        first = await adapter.subscribe(EventTopic.PROCESS_EXIT, _noop)
        second = await adapter.subscribe(EventTopic.PROCESS_STDERR, _noop)
        first.release()

        EventBusAdapter.unsubscribe_all([first, second])

        assert first.released and second.released


class _SlowSource:
    """Source whose listen() suspends until released by the test."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.inner = InProcessEventSource()

    async def listen(self, topic: EventTopic, handler: Handler) -> Unlisten:
        await self.gate.wait()
        return await self.inner.listen(topic, handler)


class _FailingSource:
    def __init__(self, fail_on: EventTopic) -> None:
        self.fail_on = fail_on
        self.inner = InProcessEventSource()

    async def listen(self, topic: EventTopic, handler: Handler) -> Unlisten:
        if topic is self.fail_on:
            raise EventDeliveryError("listen failed")
        return await self.inner.listen(topic, handler)


class TestAttachRaces:
    async def test_detach_during_attach_leaks_no_listener(self) -> None:
        """Given detach() runs while attach() awaits setup, late handles are released."""
        source = _SlowSource()
        adapter = EventBusAdapter(source)

        attach_task = asyncio.create_task(adapter.attach({EventTopic.PROCESS_EXIT: _noop}))
        await asyncio.sleep(0)
        adapter.detach()
        source.gate.set()
        await attach_task

        assert source.inner.handler_count(EventTopic.PROCESS_EXIT) == 0
        assert adapter.subscription_count == 0
        assert adapter.listening is False

    async def test_concurrent_attach_subscribes_once(self) -> None:
        source = _SlowSource()
        adapter = EventBusAdapter(source)

        first = asyncio.create_task(adapter.attach({EventTopic.PROCESS_EXIT: _noop}))
        second = asyncio.create_task(adapter.attach({EventTopic.PROCESS_EXIT: _noop}))
        await asyncio.sleep(0)
        source.gate.set()

        assert sorted([await first, await second]) == [False, True]
        assert source.inner.handler_count(EventTopic.PROCESS_EXIT) == 1

    async def test_failed_attach_rolls_back(self) -> None:
        source = _FailingSource(fail_on=EventTopic.PROCESS_EXIT)
        adapter = EventBusAdapter(source)

        with pytest.raises(EventDeliveryError):
            await adapter.attach({EventTopic.PROCESS_STDOUT: _noop, EventTopic.PROCESS_EXIT: _noop})

        assert adapter.listening is False
        assert source.inner.handler_count(EventTopic.PROCESS_STDOUT) == 0
