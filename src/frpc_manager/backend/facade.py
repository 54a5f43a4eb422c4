"""Command facade: request/response contract with the backend.

The backend owns the filesystem, network and process-spawning work. The
core depends only on these protocols, split by concern so each component
asks for the narrowest one it needs:

- ConfigCommands: agent configuration, proxies, key/value settings, export
- VersionCommands: catalog snapshot, download, delete, (de)activate
- ProcessCommands: start/stop/status of the agent process

Every failed call raises BackendError with a single human-readable message.
"""

from __future__ import annotations

__all__ = [
    "CommandFacade",
    "ConfigCommands",
    "ProcessCommands",
    "VersionCommands",
]

from typing import Any, Protocol

from frpc_manager.models import ActiveVersion, FrpcConfig, Proxy, ProxyType, VersionRecord


class ConfigCommands(Protocol):
    async def load_config(self) -> FrpcConfig: ...

    async def save_server(self, partial: FrpcConfig) -> None: ...

    async def save_now(self) -> None: ...

    async def load_proxies(self) -> list[Proxy]: ...

    async def save_proxy(self, proxy: Proxy) -> None: ...

    async def remove_proxy(self, name: str, proxy_type: ProxyType | None = None) -> bool: ...

    async def get_setting(self, key: str) -> Any | None: ...

    async def set_setting(self, key: str, value: Any) -> bool: ...

    async def export_toml(self) -> str: ...

    async def export_toml_to_file(self) -> str: ...


class VersionCommands(Protocol):
    async def get_versions(self) -> list[VersionRecord]: ...

    async def download_version(self, name: str, url: str) -> None: ...

    async def delete_version(self, name: str) -> None: ...

    async def activate_version(self, name: str) -> None: ...

    async def deactivate_version(self, name: str) -> None: ...

    async def get_active_version(self) -> ActiveVersion | None: ...


class ProcessCommands(Protocol):
    async def start_frpc(self, exe_path: str, cfg_path: str) -> int: ...

    async def stop_frpc(self) -> None: ...

    async def frpc_status(self) -> bool: ...


class CommandFacade(ConfigCommands, VersionCommands, ProcessCommands, Protocol):
    """The full backend command surface."""
