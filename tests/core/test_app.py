"""Tests for FrpcCore wiring: hydration, subscribers and the agent lifecycle."""

from __future__ import annotations

import pytest

from conftest import FIXED_TIME, FakeFacade, drain_queue
from frpc_manager.bus.source import InProcessEventSource
from frpc_manager.config import CoreSettings
from frpc_manager.core.app import FrpcCore, get_core, set_core
from frpc_manager.events import CoreEventType
from frpc_manager.exceptions import (
    AlreadyInFlightError,
    AlreadyRunningError,
    BackendError,
    InvalidRequestError,
)
from frpc_manager.models import ActiveVersion, ProcessState

A = "frp_0.61.0_linux_amd64.tar.gz"
B = "frp_0.60.0_linux_amd64.tar.gz"
C = "frp_0.59.0_linux_amd64.tar.gz"


@pytest.fixture
async def core(facade: FakeFacade, events: InProcessEventSource) -> FrpcCore:
    core = FrpcCore(facade, events, CoreSettings(download_grace_seconds=0), clock=lambda: FIXED_TIME)
    await core.hydrate()
    yield core
    core.close()


class TestHydrate:
    async def test_hydrate_loads_catalog_and_listens(self, core: FrpcCore, facade: FakeFacade) -> None:
        assert len(core.catalog) == 3
        assert core.adapter.listening is True
        assert [name for name, _ in facade.calls[:2]] == ["frpc_status", "get_versions"]

    async def test_hydrate_adopts_running_agent(self, facade: FakeFacade, events: InProcessEventSource) -> None:
        facade.running = True
        core = FrpcCore(facade, events)

        await core.hydrate()

        assert core.supervisor.state is ProcessState.RUNNING
        core.close()

    async def test_refresh_keeps_in_flight_download(self, core: FrpcCore, facade: FakeFacade) -> None:
        await core.download(C)
        facade.versions = [v for v in facade.versions if v.name != C]

        await core.refresh_versions()

        assert C in core.catalog


class TestEventsEndToEnd:
    async def test_backend_events_reach_components(
        self, core: FrpcCore, events: InProcessEventSource
    ) -> None:
        await core.download(C)

        for value in (30, 70, 100):
            events.publish("download-progress", {"name": C, "progress": value})
        await core.downloads.drain()

        assert core.catalog.get(C).installed is True

    async def test_activation_confirmed_through_bus(
        self, core: FrpcCore, events: InProcessEventSource
    ) -> None:
        await core.activate(B)

        events.publish("activation-status", {"status": True})

        assert core.catalog.active is not None
        assert core.catalog.active.name == B

    async def test_invalid_payload_is_dropped(self, core: FrpcCore, events: InProcessEventSource) -> None:
        events.publish("download-progress", {"name": C, "progress": 250})

        assert core.downloads.progress == {}

    async def test_agent_output_publishes_log_entries(
        self, core: FrpcCore, events: InProcessEventSource
    ) -> None:
        await core.start_agent("/opt/frp/frpc", "/tmp/frpc.toml")
        queue = core.notifier.subscribe()

        events.publish("process-stdout", {"text": "start proxy success\n"})

        (event,) = [e for e in drain_queue(queue) if e.type is CoreEventType.NEW_LOG_ENTRIES]
        assert event.data["entries"][0]["text"] == "start proxy success"


class TestSubscribe:
    async def test_subscriber_starts_with_snapshot(self, core: FrpcCore) -> None:
        queue = core.subscribe()
        core.clear_logs()

        snapshot, cleared = drain_queue(queue)
        assert snapshot.type is CoreEventType.SNAPSHOT
        assert snapshot.data["active"] == A
        assert [v["name"] for v in snapshot.data["versions"]] == [A, B, C]
        assert snapshot.data["process"]["state"] == "stopped"
        assert cleared.type is CoreEventType.LOG_CLEARED

    async def test_unsubscribe(self, core: FrpcCore) -> None:
        queue = core.subscribe()

        core.unsubscribe(queue)

        assert core.notifier.subscriber_count == 0


class TestVersions:
    async def test_download_defaults_to_source_url(self, core: FrpcCore, facade: FakeFacade) -> None:
        await core.download(C)

        (name, url) = facade.called("download_version")[0]
        assert name == C
        assert url.endswith(f"/{C}")

    async def test_download_without_url(self, core: FrpcCore) -> None:
        core.catalog.upsert(core.catalog.get(C).model_copy(update={"source_url": ""}))

        with pytest.raises(InvalidRequestError, match="No download URL"):
            await core.download(C)

    async def test_delete_version_keeps_record(self, core: FrpcCore, facade: FakeFacade) -> None:
        record = await core.delete_version(B)

        assert record.installed is False
        assert B in core.catalog
        assert facade.called("delete_version") == [(B,)]

    async def test_redownload_from_elsewhere_after_delete(
        self, core: FrpcCore, events: InProcessEventSource
    ) -> None:
        events.publish("download-progress", {"name": C, "progress": 100})
        await core.downloads.drain()

        await core.delete_version(C)
        for value in (40, 100):
            events.publish("download-progress", {"name": C, "progress": value})
        await core.downloads.drain()

        assert core.catalog.get(C).installed is True
        assert core.downloads.progress == {}

    async def test_delete_while_downloading(self, core: FrpcCore, facade: FakeFacade) -> None:
        await core.download(C)

        with pytest.raises(AlreadyInFlightError):
            await core.delete_version(C)

        assert facade.called("delete_version") == []

    async def test_failed_delete_leaves_catalog(self, core: FrpcCore, facade: FakeFacade) -> None:
        facade.failures["delete_version"] = BackendError("file in use")

        with pytest.raises(BackendError):
            await core.delete_version(B)

        assert core.catalog.get(B).installed is True


class TestAgent:
    async def test_start_agent_uses_active_version_and_exported_config(
        self, core: FrpcCore, facade: FakeFacade
    ) -> None:
        facade.active_version = ActiveVersion(name=A, exe_path="/opt/frp/frp_0.61.0_linux_amd64/frpc")

        pid = await core.start_agent()

        assert pid == 4242
        assert facade.called("start_frpc") == [("/opt/frp/frp_0.61.0_linux_amd64/frpc", facade.toml_path)]

    async def test_start_agent_without_active_version(self, core: FrpcCore, facade: FakeFacade) -> None:
        with pytest.raises(InvalidRequestError, match="No active frpc version"):
            await core.start_agent()

        assert facade.called("start_frpc") == []

    async def test_start_agent_twice(self, core: FrpcCore) -> None:
        await core.start_agent("/opt/frp/frpc", "/tmp/frpc.toml")

        with pytest.raises(AlreadyRunningError):
            await core.start_agent("/opt/frp/frpc", "/tmp/frpc.toml")

    async def test_export_config(self, core: FrpcCore, facade: FakeFacade) -> None:
        assert await core.export_config() == facade.toml
        assert await core.export_config_file() == facade.toml_path


class TestGlobalCore:
    def test_get_core_before_set(self) -> None:
        set_core(None)

        with pytest.raises(RuntimeError):
            get_core()

    async def test_set_and_get(self, core: FrpcCore) -> None:
        set_core(core)
        try:
            assert get_core() is core
        finally:
            set_core(None)
