"""Shared fixtures: an in-memory backend and sample catalog records."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable
from datetime import datetime, timezone
from typing import Any

import pytest

from frpc_manager.bus.source import InProcessEventSource
from frpc_manager.core.catalog import VersionCatalog
from frpc_manager.core.log_sink import LogSink
from frpc_manager.core.notifier import Notifier
from frpc_manager.exceptions import BackendError
from frpc_manager.models import ActiveVersion, FrpcConfig, Proxy, ProxyType, VersionRecord

FIXED_TIME = datetime(2026, 3, 2, 10, 48, 37, tzinfo=timezone.utc)


class FakeFacade:
    """In-memory CommandFacade.

    - calls: every command as (name, args)
    - failures: command name -> BackendError raised after recording the call
    - gates: command name -> asyncio.Event the call waits on before returning
    """

    def __init__(self, versions: list[VersionRecord] | None = None) -> None:
        self.versions = list(versions or [])
        self.active_version: ActiveVersion | None = None
        self.config = FrpcConfig()
        self.proxies: list[Proxy] = []
        self.settings: dict[str, Any] = {}
        self.toml = 'serverAddr = "127.0.0.1"\nserverPort = 7000\n'
        self.toml_path = "/tmp/frpc-manager/frpc.toml"
        self.running = False
        self.next_pid = 4242
        self.stream_lines: list[str] = []
        self.closed = False

        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.failures: dict[str, BackendError] = {}
        self.gates: dict[str, asyncio.Event] = {}

    def called(self, command: str) -> list[tuple[Any, ...]]:
        return [args for name, args in self.calls if name == command]

    async def _call(self, command: str, *args: Any) -> None:
        self.calls.append((command, args))
        gate = self.gates.get(command)
        if gate is not None:
            await gate.wait()
        error = self.failures.get(command)
        if error is not None:
            raise error

    # ConfigCommands
    async def load_config(self) -> FrpcConfig:
        await self._call("load_config")
        return self.config

    async def save_server(self, partial: FrpcConfig) -> None:
        await self._call("save_server", partial)
        self.config = partial

    async def save_now(self) -> None:
        await self._call("save_now")

    async def load_proxies(self) -> list[Proxy]:
        await self._call("load_proxies")
        return list(self.proxies)

    async def save_proxy(self, proxy: Proxy) -> None:
        await self._call("save_proxy", proxy)
        self.proxies = [p for p in self.proxies if p.id != proxy.id] + [proxy]

    async def remove_proxy(self, name: str, proxy_type: ProxyType | None = None) -> bool:
        await self._call("remove_proxy", name, proxy_type)
        before = len(self.proxies)
        self.proxies = [
            p for p in self.proxies if not (p.name == name and (proxy_type is None or p.type == proxy_type))
        ]
        return len(self.proxies) != before

    async def get_setting(self, key: str) -> Any | None:
        await self._call("get_setting", key)
        return self.settings.get(key)

    async def set_setting(self, key: str, value: Any) -> bool:
        await self._call("set_setting", key, value)
        self.settings[key] = value
        return True

    async def export_toml(self) -> str:
        await self._call("export_toml")
        return self.toml

    async def export_toml_to_file(self) -> str:
        await self._call("export_toml_to_file")
        return self.toml_path

    # VersionCommands
    async def get_versions(self) -> list[VersionRecord]:
        await self._call("get_versions")
        return list(self.versions)

    async def download_version(self, name: str, url: str) -> None:
        await self._call("download_version", name, url)

    async def delete_version(self, name: str) -> None:
        await self._call("delete_version", name)

    async def activate_version(self, name: str) -> None:
        await self._call("activate_version", name)

    async def deactivate_version(self, name: str) -> None:
        await self._call("deactivate_version", name)

    async def get_active_version(self) -> ActiveVersion | None:
        await self._call("get_active_version")
        return self.active_version

    # ProcessCommands
    async def start_frpc(self, exe_path: str, cfg_path: str) -> int:
        await self._call("start_frpc", exe_path, cfg_path)
        self.running = True
        return self.next_pid

    async def stop_frpc(self) -> None:
        await self._call("stop_frpc")

    async def frpc_status(self) -> bool:
        await self._call("frpc_status")
        return self.running

    # HTTP facade extras used by the CLI session
    async def stream_events(self) -> AsyncIterator[str]:
        for line in self.stream_lines:
            yield line

    async def aclose(self) -> None:
        self.closed = True


def make_record(name: str, **overrides: Any) -> VersionRecord:
    """VersionRecord with realistic defaults."""
    fields: dict[str, Any] = {
        "name": name,
        "display_version": "v0.61.0",
        "size_bytes": 12_582_912,
        "created_at": datetime(2025, 1, 6, 8, 0, tzinfo=timezone.utc),
        "usage_count": 1200,
        "source_url": f"https://github.com/fatedier/frp/releases/download/v0.61.0/{name}",
    }
    fields.update(overrides)
    return VersionRecord(**fields)


@pytest.fixture
def record_factory() -> Callable[..., VersionRecord]:
    return make_record


@pytest.fixture
def sample_records() -> list[VersionRecord]:
    """Three versions: A installed+active, B installed, C available."""
    return [
        make_record("frp_0.61.0_linux_amd64.tar.gz", installed=True, active=True),
        make_record("frp_0.60.0_linux_amd64.tar.gz", display_version="v0.60.0", installed=True),
        make_record("frp_0.59.0_linux_amd64.tar.gz", display_version="v0.59.0"),
    ]


@pytest.fixture
def facade(sample_records: list[VersionRecord]) -> FakeFacade:
    return FakeFacade(sample_records)


@pytest.fixture
def events() -> InProcessEventSource:
    return InProcessEventSource()


@pytest.fixture
def notifier() -> Notifier:
    return Notifier()


@pytest.fixture
def catalog(facade: FakeFacade, notifier: Notifier, sample_records: list[VersionRecord]) -> VersionCatalog:
    """Catalog pre-loaded with sample_records."""
    catalog = VersionCatalog(facade, notifier)
    catalog.replace(sample_records)
    return catalog


@pytest.fixture
def log_sink() -> LogSink:
    return LogSink(clock=lambda: FIXED_TIME)


def drain_queue(queue: asyncio.Queue) -> list[Any]:
    """Pop everything currently in a queue."""
    items = []
    while not queue.empty():
        items.append(queue.get_nowait())
    return items
