"""Cached views of the agent configuration and its proxies.

The backend owns persistence; these stores only keep the last accepted
state so callers can read it without a round trip.

- ConfigStore.save() updates the cache only after the backend accepted it
- ProxyStore mutations always re-fetch the list (the backend may assign ids)
"""

from __future__ import annotations

__all__ = ["ConfigStore", "ProxyStore"]

from frpc_manager.backend.facade import ConfigCommands
from frpc_manager.models import FrpcConfig, Proxy, ProxyType


class ConfigStore:
    def __init__(self, facade: ConfigCommands) -> None:
        self._facade = facade
        self._config: FrpcConfig | None = None
        self._loading = False

    @property
    def config(self) -> FrpcConfig | None:
        return self._config

    @property
    def loading(self) -> bool:
        return self._loading

    async def fetch(self) -> FrpcConfig:
        self._loading = True
        try:
            self._config = await self._facade.load_config()
        finally:
            self._loading = False
        return self._config

    async def save(self, config: FrpcConfig) -> None:
        """Send server settings to the backend, then cache them.

        Raises:
            BackendError: If the backend rejects them (cache unchanged).
        """
        await self._facade.save_server(config)
        self._config = config


class ProxyStore:
    def __init__(self, facade: ConfigCommands) -> None:
        self._facade = facade
        self._proxies: list[Proxy] = []

    @property
    def proxies(self) -> list[Proxy]:
        return list(self._proxies)

    async def fetch(self) -> list[Proxy]:
        self._proxies = await self._facade.load_proxies()
        return self.proxies

    async def add_or_update(self, proxy: Proxy) -> list[Proxy]:
        await self._facade.save_proxy(proxy)
        return await self.fetch()

    async def remove(self, name: str, proxy_type: ProxyType | None = None) -> bool:
        """Remove a proxy by name (and type, when names repeat across types).

        Returns:
            Whether the backend removed anything.
        """
        removed = await self._facade.remove_proxy(name, proxy_type)
        await self.fetch()
        return removed
