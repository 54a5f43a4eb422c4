"""Version catalog: the authoritative index of known agent versions.

Invariant: at most one record is active. Every mutation builds a complete
new index and swaps it in with a single assignment, so a reader never
observes an intermediate state (e.g. two active records during a switch).

Ownership of the flags:
- installed: flipped by the download coordinator (completion) and by
  mark_removed (deletion)
- active: flipped only by the activation state machine
  (set_active_exclusive / clear_active) or by a backend snapshot
"""

from __future__ import annotations

__all__ = ["VersionCatalog"]

import logging
from collections.abc import Iterable

from frpc_manager.backend.facade import VersionCommands
from frpc_manager.constants import APP_NAME
from frpc_manager.core.notifier import Notifier
from frpc_manager.events import CoreEventType
from frpc_manager.exceptions import UnknownVersionError
from frpc_manager.models import VersionRecord

_logger = logging.getLogger(f"{APP_NAME}.core.catalog")


class VersionCatalog:
    """Name-keyed index of VersionRecord.

    Args:
        source: Backend to fetch snapshots from (required for refresh()).
        notifier: Receives catalog_refreshed / version_updated events.
    """

    def __init__(self, source: VersionCommands | None = None, notifier: Notifier | None = None) -> None:
        self._source = source
        self._notifier = notifier
        self._index: dict[str, VersionRecord] = {}

    # --- reads -------------------------------------------------------------

    def records(self) -> list[VersionRecord]:
        """Return all records in catalog order."""
        return list(self._index.values())

    def get(self, name: str) -> VersionRecord:
        """Return the record for name.

        Raises:
            UnknownVersionError: If name is not catalogued.
        """
        try:
            return self._index[name]
        except KeyError:
            raise UnknownVersionError(name) from None

    def find(self, name: str) -> VersionRecord | None:
        return self._index.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def __len__(self) -> int:
        return len(self._index)

    @property
    def active(self) -> VersionRecord | None:
        """The active record, or None."""
        for record in self._index.values():
            if record.active:
                return record
        return None

    # --- snapshot ----------------------------------------------------------

    async def refresh(self, retain: Iterable[str] = ()) -> list[VersionRecord]:
        """Fetch a backend snapshot and replace the index with it.

        Args:
            retain: Names to keep even if the snapshot omits them
                (downloads still in flight).

        Raises:
            BackendError: If the backend call fails (index unchanged).
        """
        if self._source is None:
            raise RuntimeError("VersionCatalog has no source to refresh from")
        records = await self._source.get_versions()
        self.replace(records, retain=retain)
        return self.records()

    def replace(self, records: Iterable[VersionRecord], retain: Iterable[str] = ()) -> None:
        """Replace the whole index with a snapshot.

        A snapshot with more than one active record is normalized to none
        active; the next confirmed activation restores a single one.
        """
        index: dict[str, VersionRecord] = {}
        for record in records:
            if record.name in index:
                _logger.warning(
                    {
                        "event": "catalog_duplicate_name",
                        "message": f"Duplicate version '{record.name}' in snapshot, keeping the last one",
                        "version_name": record.name,
                    }
                )
            index[record.name] = record

        for name in retain:
            if name not in index and name in self._index:
                index[name] = self._index[name]

        active_names = [name for name, record in index.items() if record.active]
        if len(active_names) > 1:
            _logger.warning(
                {
                    "event": "catalog_multiple_active",
                    "message": f"Snapshot marks {len(active_names)} versions active, clearing all",
                    "details": {"active": active_names},
                }
            )
            for name in active_names:
                index[name] = index[name].model_copy(update={"active": False})

        self._index = index
        self._publish(CoreEventType.CATALOG_REFRESHED, {"versions": [r.to_dict() for r in index.values()]})

    # --- mutations ---------------------------------------------------------

    def upsert(self, record: VersionRecord) -> VersionRecord:
        """Insert or update one record.

        The active flag is never changed here: an existing record keeps
        its flag and a new record is inserted inactive.
        """
        existing = self._index.get(record.name)
        active = existing.active if existing is not None else False
        if record.active != active:
            record = record.model_copy(update={"active": active})
        self._swap(record)
        return record

    def set_installed(self, name: str, installed: bool) -> VersionRecord:
        record = self.get(name)
        if record.installed == installed:
            return record
        updated = record.model_copy(update={"installed": installed})
        self._swap(updated)
        return updated

    def set_active_exclusive(self, name: str) -> VersionRecord:
        """Mark name active and every other record inactive, atomically.

        Raises:
            UnknownVersionError: If name is not catalogued (index unchanged).
        """
        self.get(name)
        index = {
            key: (
                record
                if record.active == (key == name)
                else record.model_copy(update={"active": key == name})
            )
            for key, record in self._index.items()
        }
        self._index = index
        _logger.info(
            {
                "event": "version_activated",
                "message": f"Active version is now '{name}'",
                "version_name": name,
            }
        )
        self._publish(CoreEventType.CATALOG_REFRESHED, {"versions": [r.to_dict() for r in index.values()]})
        return index[name]

    def clear_active(self, name: str) -> bool:
        """Clear the active flag of name.

        Returns:
            True if the record was active.
        """
        record = self.get(name)
        if not record.active:
            return False
        self._swap(record.model_copy(update={"active": False}))
        return True

    def mark_removed(self, name: str) -> VersionRecord:
        """Record a deletion: not installed, not active, still listed."""
        record = self.get(name)
        updated = record.model_copy(update={"installed": False, "active": False})
        self._swap(updated)
        return updated

    def _swap(self, record: VersionRecord) -> None:
        index = dict(self._index)
        index[record.name] = record
        self._index = index
        self._publish(CoreEventType.VERSION_UPDATED, {"version": record.to_dict()})

    def _publish(self, event_type: CoreEventType, data: dict) -> None:
        if self._notifier is not None:
            self._notifier.publish(event_type, data)
