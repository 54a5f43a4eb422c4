"""Tests for DownloadCoordinator.

Covers the download lifecycle, completion-once under replays, stale
events after completion, and backend failures.
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import FakeFacade, drain_queue
from frpc_manager.core.catalog import VersionCatalog
from frpc_manager.core.downloads import DownloadCoordinator
from frpc_manager.core.notifier import Notifier
from frpc_manager.events import CoreEventType, DownloadProgress
from frpc_manager.exceptions import AlreadyInFlightError, BackendError

C = "frp_0.59.0_linux_amd64.tar.gz"
URL = f"https://github.com/fatedier/frp/releases/download/v0.59.0/{C}"


@pytest.fixture
def downloads(facade: FakeFacade, catalog: VersionCatalog, notifier: Notifier) -> DownloadCoordinator:
    return DownloadCoordinator(facade, catalog, notifier, grace_delay=0)


def _progress(value: int, name: str = C) -> DownloadProgress:
    return DownloadProgress(name=name, progress=value)


def _success_notifications(events: list) -> list:
    return [
        event
        for event in events
        if event.type is CoreEventType.NOTIFICATION and event.data["severity"] == "success"
    ]


class TestStartDownload:
    async def test_reserves_entry_and_calls_backend(
        self, downloads: DownloadCoordinator, facade: FakeFacade
    ) -> None:
        await downloads.start_download(C, URL)

        assert downloads.progress == {C: 0}
        assert facade.called("download_version") == [(C, URL)]

    async def test_second_request_rejected_without_backend_call(
        self, downloads: DownloadCoordinator, facade: FakeFacade
    ) -> None:
        await downloads.start_download(C, URL)

        with pytest.raises(AlreadyInFlightError):
            await downloads.start_download(C, URL)

        assert len(facade.called("download_version")) == 1

    async def test_backend_error_drops_reservation(
        self, downloads: DownloadCoordinator, facade: FakeFacade, notifier: Notifier
    ) -> None:
        facade.failures["download_version"] = BackendError("network unreachable")
        queue = notifier.subscribe()

        with pytest.raises(BackendError, match="network unreachable"):
            await downloads.start_download(C, URL)

        assert downloads.is_downloading(C) is False
        errors = [e for e in drain_queue(queue) if e.type is CoreEventType.NOTIFICATION]
        assert errors[-1].data["severity"] == "error"

    async def test_backend_error_after_completion_scheduled_keeps_completion(
        self, downloads: DownloadCoordinator, facade: FakeFacade, catalog: VersionCatalog
    ) -> None:
        facade.gates["download_version"] = asyncio.Event()
        facade.failures["download_version"] = BackendError("late failure")
        task = asyncio.create_task(downloads.start_download(C, URL))
        await asyncio.sleep(0)

        downloads.handle_progress(_progress(100))
        facade.gates["download_version"].set()
        with pytest.raises(BackendError):
            await task
        await downloads.drain()

        assert catalog.get(C).installed is True


class TestProgress:
    async def test_progress_overwrites(self, downloads: DownloadCoordinator) -> None:
        await downloads.start_download(C, URL)

        downloads.handle_progress(_progress(30))
        downloads.handle_progress(_progress(70))

        assert downloads.progress[C] == 70

    async def test_download_lifecycle(
        self, downloads: DownloadCoordinator, catalog: VersionCatalog, notifier: Notifier
    ) -> None:
        """Given progress 0, 30, 70, 100, the version ends installed with one success notification."""
        queue = notifier.subscribe()
        await downloads.start_download(C, URL)

        for value in (0, 30, 70, 100):
            downloads.handle_progress(_progress(value))
        assert downloads.progress[C] == 100
        await downloads.drain()

        assert catalog.get(C).installed is True
        assert C not in downloads.progress
        assert len(_success_notifications(drain_queue(queue))) == 1

    async def test_completion_fires_once_under_replays(
        self, downloads: DownloadCoordinator, catalog: VersionCatalog, notifier: Notifier
    ) -> None:
        queue = notifier.subscribe()
        await downloads.start_download(C, URL)

        for value in (30, 100, 100, 30, 100):
            downloads.handle_progress(_progress(value))
        await downloads.drain()
        downloads.handle_progress(_progress(100))
        await downloads.drain()

        events = drain_queue(queue)
        completed = [e for e in events if e.type is CoreEventType.DOWNLOAD_COMPLETED]
        assert len(completed) == 1
        assert len(_success_notifications(events)) == 1
        assert downloads.progress == {}

    async def test_lower_value_after_100_does_not_regress(self, downloads: DownloadCoordinator) -> None:
        downloads.handle_progress(_progress(100))

        downloads.handle_progress(_progress(40))

        assert downloads.progress[C] == 100
        await downloads.drain()

    async def test_completion_waits_for_grace_delay(
        self, facade: FakeFacade, catalog: VersionCatalog, notifier: Notifier
    ) -> None:
        downloads = DownloadCoordinator(facade, catalog, notifier, grace_delay=60)
        downloads.handle_progress(_progress(100))
        await asyncio.sleep(0)

        assert catalog.get(C).installed is False
        assert downloads.progress == {C: 100}
        downloads.close()

    async def test_new_session_after_completion(
        self, downloads: DownloadCoordinator, catalog: VersionCatalog
    ) -> None:
        await downloads.start_download(C, URL)
        downloads.handle_progress(_progress(100))
        await downloads.drain()
        catalog.mark_removed(C)

        await downloads.start_download(C, URL)
        downloads.handle_progress(_progress(100))
        await downloads.drain()

        assert catalog.get(C).installed is True

    async def test_external_download_after_forget(
        self, downloads: DownloadCoordinator, catalog: VersionCatalog
    ) -> None:
        downloads.handle_progress(_progress(100))
        await downloads.drain()
        catalog.mark_removed(C)

        downloads.forget(C)
        downloads.handle_progress(_progress(40))
        downloads.handle_progress(_progress(100))
        await downloads.drain()

        assert catalog.get(C).installed is True
        assert downloads.progress == {}

    async def test_stale_progress_dropped_until_forget(
        self, downloads: DownloadCoordinator, catalog: VersionCatalog
    ) -> None:
        downloads.handle_progress(_progress(100))
        await downloads.drain()

        downloads.handle_progress(_progress(40))

        assert downloads.progress == {}

    async def test_external_download_is_tracked(self, downloads: DownloadCoordinator) -> None:
        """Progress for a download started elsewhere still shows up."""
        downloads.handle_progress(_progress(10))

        assert downloads.is_downloading(C)

    async def test_completion_for_uncatalogued_name(
        self, downloads: DownloadCoordinator, catalog: VersionCatalog
    ) -> None:
        downloads.handle_progress(_progress(100, name="frp_custom_build.tar.gz"))
        await downloads.drain()

        assert downloads.progress == {}
        assert "frp_custom_build.tar.gz" not in catalog


class TestClose:
    async def test_close_cancels_pending_completions(
        self, facade: FakeFacade, catalog: VersionCatalog
    ) -> None:
        downloads = DownloadCoordinator(facade, catalog, grace_delay=60)
        downloads.handle_progress(_progress(100))

        downloads.close()
        await downloads.drain()
        await asyncio.sleep(0)

        assert catalog.get(C).installed is False
