"""Download coordinator.

Tracks per-version progress and turns the backend's at-least-once
progress stream into exactly one completion per download session.

Session lifecycle for one name:
    start_download  -> entry reserved at 0%
    progress p<100  -> entry overwritten
    progress 100    -> entry set to 100%, completion scheduled (once)
    grace delay     -> installed=True, entry removed, success notification

After completion, further events for the name are ignored until the next
start_download opens a new session.
"""

from __future__ import annotations

__all__ = ["DownloadCoordinator"]

import asyncio
import logging
from collections.abc import Mapping

from frpc_manager.backend.facade import VersionCommands
from frpc_manager.bus.source import Handler
from frpc_manager.constants import APP_NAME, DEFAULT_DOWNLOAD_GRACE_SECONDS, PROGRESS_COMPLETE
from frpc_manager.core.catalog import VersionCatalog
from frpc_manager.core.notifier import Notifier
from frpc_manager.events import CoreEventType, DownloadProgress, EventTopic
from frpc_manager.exceptions import AlreadyInFlightError, BackendError, UnknownVersionError

_logger = logging.getLogger(f"{APP_NAME}.core.downloads")


class DownloadCoordinator:
    """Owns the progress map and the completion timers."""

    def __init__(
        self,
        facade: VersionCommands,
        catalog: VersionCatalog,
        notifier: Notifier | None = None,
        *,
        grace_delay: float = DEFAULT_DOWNLOAD_GRACE_SECONDS,
    ) -> None:
        self._facade = facade
        self._catalog = catalog
        self._notifier = notifier
        self._grace_delay = grace_delay
        self._progress: dict[str, int] = {}
        self._completions: dict[str, asyncio.Task[None]] = {}
        # Names whose session already completed; stale replays are dropped
        self._finished: set[str] = set()

    @property
    def progress(self) -> dict[str, int]:
        """Copy of the progress map (name -> percent)."""
        return dict(self._progress)

    def snapshot(self) -> dict[str, int]:
        return dict(self._progress)

    @property
    def in_flight(self) -> set[str]:
        return set(self._progress)

    def is_downloading(self, name: str) -> bool:
        return name in self._progress

    def bindings(self) -> Mapping[EventTopic, Handler]:
        return {EventTopic.DOWNLOAD_PROGRESS: self.handle_progress}

    async def start_download(self, name: str, url: str) -> None:
        """Ask the backend to download a version.

        Returns once the backend call returns; completion is driven by
        progress events.

        Raises:
            AlreadyInFlightError: If a progress entry exists for name.
            BackendError: If the backend rejects the download.
        """
        if name in self._progress:
            raise AlreadyInFlightError(name)

        self._finished.discard(name)
        self._progress[name] = 0
        self._publish_progress(name, 0)
        _logger.info(
            {
                "event": "download_started",
                "message": f"Downloading {name}",
                "version_name": name,
                "details": {"url": url},
            }
        )

        try:
            await self._facade.download_version(name, url)
        except BackendError as e:
            # A 100% event may already have arrived; that completion stands
            if name not in self._completions:
                self._progress.pop(name, None)
                self._publish(CoreEventType.DOWNLOAD_PROGRESS, {"name": name, "progress": None})
            _logger.warning(
                {
                    "event": "download_failed",
                    "message": f"Download of {name} failed: {e.message}",
                    "version_name": name,
                    "error_type": type(e).__name__,
                    "error_message": e.message,
                }
            )
            if self._notifier is not None:
                self._notifier.notify("error", f"Download failed: {e.message}", name=name)
            raise

    def handle_progress(self, event: DownloadProgress) -> None:
        """Apply one progress event (replays are harmless)."""
        name = event.name
        if name in self._finished:
            _logger.debug(
                {
                    "event": "download_progress_stale",
                    "message": f"Ignoring progress {event.progress}% for completed download {name}",
                    "version_name": name,
                }
            )
            return

        if event.progress < PROGRESS_COMPLETE:
            if name in self._completions:
                # Completion already scheduled; a late lower value must not regress it
                return
            if self._progress.get(name) == event.progress:
                return
            self._progress[name] = event.progress
            self._publish_progress(name, event.progress)
            return

        self._progress[name] = PROGRESS_COMPLETE
        if name in self._completions:
            return
        self._publish_progress(name, PROGRESS_COMPLETE)
        self._completions[name] = asyncio.get_running_loop().create_task(self._complete(name))

    async def _complete(self, name: str) -> None:
        await asyncio.sleep(self._grace_delay)

        self._finished.add(name)
        self._completions.pop(name, None)
        try:
            self._catalog.set_installed(name, True)
        except UnknownVersionError:
            _logger.warning(
                {
                    "event": "download_completed_unknown",
                    "message": f"Download of {name} completed but it is not catalogued",
                    "version_name": name,
                }
            )
        self._progress.pop(name, None)

        _logger.info(
            {
                "event": "download_completed",
                "message": f"Downloaded {name}",
                "version_name": name,
            }
        )
        self._publish(CoreEventType.DOWNLOAD_COMPLETED, {"name": name})
        if self._notifier is not None:
            self._notifier.notify("success", f"Downloaded {name}", name=name)

    def forget(self, name: str) -> None:
        """Accept progress for name again once its files are gone."""
        self._finished.discard(name)

    async def drain(self) -> None:
        """Wait for every scheduled completion to run."""
        while self._completions:
            await asyncio.gather(*tuple(self._completions.values()))

    def close(self) -> None:
        """Cancel pending completions (shutdown)."""
        completions, self._completions = self._completions, {}
        for task in completions.values():
            task.cancel()

    def _publish_progress(self, name: str, progress: int) -> None:
        self._publish(CoreEventType.DOWNLOAD_PROGRESS, {"name": name, "progress": progress})

    def _publish(self, event_type: CoreEventType, data: dict) -> None:
        if self._notifier is not None:
            self._notifier.publish(event_type, data)
