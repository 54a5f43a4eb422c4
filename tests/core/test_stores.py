"""Tests for ConfigStore and ProxyStore."""

from __future__ import annotations

import pytest

from conftest import FakeFacade
from frpc_manager.core.stores import ConfigStore, ProxyStore
from frpc_manager.exceptions import BackendError
from frpc_manager.models import FrpcConfig, Proxy, ProxyType


class TestConfigStore:
    async def test_fetch_caches_config(self, facade: FakeFacade) -> None:
        facade.config = FrpcConfig(server_addr="frp.example.com", server_port=7001)
        store = ConfigStore(facade)

        config = await store.fetch()

        assert config.server_addr == "frp.example.com"
        assert store.config is config
        assert store.loading is False

    async def test_fetch_failure_resets_loading(self, facade: FakeFacade) -> None:
        facade.failures["load_config"] = BackendError("backend unavailable")
        store = ConfigStore(facade)

        with pytest.raises(BackendError):
            await store.fetch()

        assert store.loading is False
        assert store.config is None

    async def test_save_updates_cache_after_backend_accepts(self, facade: FakeFacade) -> None:
        store = ConfigStore(facade)
        config = FrpcConfig(server_addr="10.0.0.5")

        await store.save(config)

        assert store.config == config
        assert facade.called("save_server") == [(config,)]

    async def test_rejected_save_keeps_cache(self, facade: FakeFacade) -> None:
        store = ConfigStore(facade)
        await store.fetch()
        facade.failures["save_server"] = BackendError("invalid port")

        with pytest.raises(BackendError):
            await store.save(FrpcConfig(server_addr="10.0.0.5"))

        assert store.config is not None
        assert store.config.server_addr == "127.0.0.1"


class TestProxyStore:
    async def test_add_refetches(self, facade: FakeFacade) -> None:
        store = ProxyStore(facade)

        proxies = await store.add_or_update(Proxy(name="web", local_port=8080))

        assert [proxy.name for proxy in proxies] == ["web"]
        assert facade.called("load_proxies") == [()]

    async def test_update_replaces_by_id(self, facade: FakeFacade) -> None:
        store = ProxyStore(facade)
        proxy = Proxy(name="web", local_port=8080)
        await store.add_or_update(proxy)

        updated = proxy.model_copy(update={"local_port": 9090})
        proxies = await store.add_or_update(updated)

        assert [(p.name, p.local_port) for p in proxies] == [("web", 9090)]

    async def test_remove_by_name_and_type(self, facade: FakeFacade) -> None:
        facade.proxies = [
            Proxy(name="ssh", type=ProxyType.TCP, local_port=22),
            Proxy(name="ssh", type=ProxyType.STCP, local_port=22),
        ]
        store = ProxyStore(facade)

        removed = await store.remove("ssh", ProxyType.STCP)

        assert removed is True
        assert [p.type for p in store.proxies] == [ProxyType.TCP]

    async def test_remove_missing(self, facade: FakeFacade) -> None:
        store = ProxyStore(facade)

        assert await store.remove("nope") is False
