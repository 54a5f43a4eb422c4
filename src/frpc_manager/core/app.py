"""Core wiring: one object that owns every component.

FrpcCore builds the catalog, download coordinator, activation state
machine, process supervisor and log sink around one command facade and
one event source, and is the single entry point for frontends (CLI, UI
bridge).

Lifecycle:
    core = FrpcCore(facade, events, settings)
    await core.hydrate()       # process status, listeners, catalog
    queue = core.subscribe()   # snapshot first, then deltas
    ...
    core.close()
"""

from __future__ import annotations

__all__ = ["FrpcCore", "get_core", "set_core"]

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

from frpc_manager.backend.facade import CommandFacade
from frpc_manager.bus.adapter import EventBusAdapter
from frpc_manager.bus.source import EventSource, Handler
from frpc_manager.config import CoreSettings
from frpc_manager.constants import AGENT_NAME, APP_NAME
from frpc_manager.core.activation import ActivationStateMachine
from frpc_manager.core.catalog import VersionCatalog
from frpc_manager.core.downloads import DownloadCoordinator
from frpc_manager.core.log_sink import Clock, LogSink, utc_now
from frpc_manager.core.notifier import Notifier
from frpc_manager.core.stores import ConfigStore, ProxyStore
from frpc_manager.core.supervisor import ProcessSupervisor
from frpc_manager.events import CoreEvent, CoreEventType, EventTopic
from frpc_manager.exceptions import AlreadyInFlightError, AlreadyRunningError, InvalidRequestError
from frpc_manager.models import LogEntry, ProcessState, VersionRecord

_logger = logging.getLogger(f"{APP_NAME}.core.app")


class FrpcCore:
    """State reconciliation core for one agent installation."""

    def __init__(
        self,
        facade: CommandFacade,
        events: EventSource,
        settings: CoreSettings | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        settings = settings or CoreSettings()
        self._facade = facade
        self.settings = settings

        self.notifier = Notifier()
        self.catalog = VersionCatalog(facade, self.notifier)
        self.downloads = DownloadCoordinator(
            facade,
            self.catalog,
            self.notifier,
            grace_delay=settings.download_grace_seconds,
        )
        self.activation = ActivationStateMachine(facade, self.catalog, self.notifier)
        self.log_sink = LogSink(settings.max_log_entries, clock=clock)
        self.log_sink.set_listener(self._on_log_entries)
        self.supervisor = ProcessSupervisor(facade, self.log_sink, self.notifier)
        self.config_store = ConfigStore(facade)
        self.proxy_store = ProxyStore(facade)
        self.adapter = EventBusAdapter(events)

    # --- listeners ---------------------------------------------------------

    def bindings(self) -> Mapping[EventTopic, Handler]:
        return {
            **self.downloads.bindings(),
            **self.activation.bindings(),
            **self.supervisor.bindings(),
        }

    async def attach(self) -> bool:
        """Start listening to backend events (no-op if already listening)."""
        return await self.adapter.attach(self.bindings())

    def detach(self) -> None:
        self.adapter.detach()

    async def hydrate(self) -> None:
        """Bring local state in line with the backend.

        Order: process status first (so output is not dropped), then
        listeners, then the catalog snapshot.
        """
        await self.supervisor.status()
        await self.attach()
        await self.refresh_versions()
        _logger.info(
            {
                "event": "core_hydrated",
                "message": f"Hydrated: {len(self.catalog)} versions, {AGENT_NAME} {self.supervisor.state.value}",
            }
        )

    # --- subscribers -------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        """Full current state, JSON-serializable."""
        active = self.catalog.active
        intent = self.activation.intent
        return {
            "versions": [record.to_dict() for record in self.catalog.records()],
            "active": active.name if active is not None else None,
            "downloads": self.downloads.snapshot(),
            "activation": {"pending": intent.pending, "target": intent.target},
            "process": self.supervisor.to_dict(),
            "logs": [entry.to_dict() for entry in self.log_sink.entries()],
        }

    def subscribe(self) -> asyncio.Queue[CoreEvent]:
        """New subscriber queue, seeded with a snapshot event."""
        seed = CoreEvent(type=CoreEventType.SNAPSHOT, data=self.snapshot())
        return self.notifier.subscribe(seed=seed)

    def unsubscribe(self, queue: asyncio.Queue[CoreEvent]) -> None:
        self.notifier.unsubscribe(queue)

    def _on_log_entries(self, batch: list[LogEntry]) -> None:
        self.notifier.publish(CoreEventType.NEW_LOG_ENTRIES, {"entries": [entry.to_dict() for entry in batch]})

    def clear_logs(self) -> None:
        self.log_sink.clear()
        self.notifier.publish(CoreEventType.LOG_CLEARED)

    # --- versions ----------------------------------------------------------

    async def refresh_versions(self) -> list[VersionRecord]:
        """Replace the catalog with a backend snapshot, keeping in-flight downloads."""
        return await self.catalog.refresh(retain=self.downloads.in_flight)

    async def download(self, name: str, url: str | None = None) -> None:
        """Download a catalogued version (URL defaults to its source_url).

        Raises:
            UnknownVersionError: If name is not catalogued and no url is given.
            InvalidRequestError: If no download URL is known.
            AlreadyInFlightError: If the version is already downloading.
            BackendError: If the backend rejects the download.
        """
        if url is None:
            url = self.catalog.get(name).source_url
            if not url:
                raise InvalidRequestError(f"No download URL known for {name}")
        await self.downloads.start_download(name, url)

    async def activate(self, name: str) -> None:
        await self.activation.activate(name)

    async def deactivate(self, name: str) -> None:
        await self.activation.deactivate(name)

    async def delete_version(self, name: str) -> VersionRecord:
        """Delete a version's local files; the record stays listed.

        Raises:
            AlreadyInFlightError: If the version is downloading.
            UnknownVersionError: If name is not catalogued.
            BackendError: If the backend delete fails (catalog unchanged).
        """
        if self.downloads.is_downloading(name):
            raise AlreadyInFlightError(name)
        self.catalog.get(name)

        await self._facade.delete_version(name)
        record = self.catalog.mark_removed(name)
        self.downloads.forget(name)
        _logger.info(
            {
                "event": "version_deleted",
                "message": f"Deleted {name}",
                "version_name": name,
            }
        )
        self.notifier.notify("success", f"Deleted {name}", name=name)
        return record

    # --- configuration -----------------------------------------------------

    async def export_config(self) -> str:
        """Agent configuration rendered as TOML."""
        return await self._facade.export_toml()

    async def export_config_file(self) -> str:
        """Write the agent configuration file; returns its path."""
        return await self._facade.export_toml_to_file()

    # --- agent process -----------------------------------------------------

    async def start_agent(self, exe_path: str | None = None, config_path: str | None = None) -> int:
        """Start the agent.

        Defaults: the active version's executable and a freshly exported
        configuration file.

        Raises:
            AlreadyRunningError: If the agent is not stopped.
            InvalidRequestError: If no exe_path is given and none is active.
            BackendError: If a backend call fails.
        """
        if self.supervisor.state is not ProcessState.STOPPED:
            raise AlreadyRunningError(self.supervisor.state.value)
        if exe_path is None:
            active = await self._facade.get_active_version()
            if active is None:
                raise InvalidRequestError(f"No active {AGENT_NAME} version; activate one first")
            exe_path = active.exe_path
        if config_path is None:
            config_path = await self.export_config_file()
        return await self.supervisor.start(exe_path, config_path)

    async def stop_agent(self) -> None:
        await self.supervisor.stop()

    def close(self) -> None:
        """Cancel timers and release listeners. The facade is owned by the caller."""
        self.downloads.close()
        self.detach()


_core: FrpcCore | None = None


def get_core() -> FrpcCore:
    """Get the process-wide core.

    Raises:
        RuntimeError: If set_core() has not been called.
    """
    if _core is None:
        raise RuntimeError("FrpcCore not initialized; call set_core() first")
    return _core


def set_core(core: FrpcCore | None) -> None:
    """Install (or clear, with None) the process-wide core."""
    global _core
    _core = core
