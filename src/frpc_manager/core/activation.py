"""Activation state machine.

    idle --activate(name)--> pending(name) --activation-status--> idle

At most one activation is pending; a second request is rejected with
BusyError before the backend is contacted. The backend confirms
asynchronously. Only a positive confirmation for the pending target
changes the catalog, via VersionCatalog.set_active_exclusive().

Confirmations that carry a name are matched on it; a confirmation for a
different name leaves the intent pending. Confirmations without a name
are attributed to the pending target.

Deactivation is optimistic: the active flag is cleared locally before the
backend call and restored if the call fails.
"""

from __future__ import annotations

__all__ = ["ActivationStateMachine"]

import logging
from collections.abc import Mapping

from frpc_manager.backend.facade import VersionCommands
from frpc_manager.bus.source import Handler
from frpc_manager.constants import APP_NAME
from frpc_manager.core.catalog import VersionCatalog
from frpc_manager.core.notifier import Notifier
from frpc_manager.events import ActivationStatus, CoreEventType, EventSeverity, EventTopic
from frpc_manager.exceptions import BackendError, BusyError, UnknownVersionError
from frpc_manager.models import ActivationIntent

_logger = logging.getLogger(f"{APP_NAME}.core.activation")

_IDLE = ActivationIntent()


class ActivationStateMachine:
    def __init__(
        self,
        facade: VersionCommands,
        catalog: VersionCatalog,
        notifier: Notifier | None = None,
    ) -> None:
        self._facade = facade
        self._catalog = catalog
        self._notifier = notifier
        self._intent = _IDLE

    @property
    def intent(self) -> ActivationIntent:
        return self._intent

    @property
    def pending(self) -> bool:
        return self._intent.pending

    def bindings(self) -> Mapping[EventTopic, Handler]:
        return {EventTopic.ACTIVATION_STATUS: self.handle_status}

    async def activate(self, name: str) -> None:
        """Request activation of name; returns before confirmation.

        Raises:
            BusyError: If another activation is pending.
            UnknownVersionError: If name is not catalogued.
            BackendError: If the backend rejects the request (intent reset).
        """
        if self._intent.pending:
            raise BusyError(self._intent.target)
        self._catalog.get(name)

        self._intent = ActivationIntent(pending=True, target=name)
        self._publish(CoreEventType.ACTIVATION_PENDING, {"name": name})
        _logger.info(
            {
                "event": "activation_requested",
                "message": f"Activating {name}",
                "version_name": name,
            }
        )

        try:
            await self._facade.activate_version(name)
        except BackendError as e:
            # A confirmation may have raced the error; only reset our own intent
            if self._intent.pending and self._intent.target == name:
                self._intent = _IDLE
            _logger.warning(
                {
                    "event": "activation_request_failed",
                    "message": f"Activation of {name} failed: {e.message}",
                    "version_name": name,
                    "error_type": type(e).__name__,
                    "error_message": e.message,
                }
            )
            self._publish(CoreEventType.ACTIVATION_FAILED, {"name": name, "error": e.message})
            self._notify("error", f"Activation failed: {e.message}", name)
            raise

    def handle_status(self, event: ActivationStatus) -> None:
        """Apply one activation confirmation."""
        intent = self._intent
        if not intent.pending:
            _logger.debug(
                {
                    "event": "activation_status_ignored",
                    "message": "Ignoring activation status with no pending activation",
                    "details": {"status": event.status, "name": event.name},
                }
            )
            return
        if event.name is not None and event.name != intent.target:
            _logger.warning(
                {
                    "event": "activation_status_mismatch",
                    "message": f"Ignoring activation status for '{event.name}', pending '{intent.target}'",
                    "version_name": event.name,
                }
            )
            return

        self._intent = _IDLE
        target = intent.target

        if not event.status:
            _logger.warning(
                {
                    "event": "activation_rejected",
                    "message": f"Backend reported activation of {target} failed",
                    "version_name": target,
                }
            )
            self._publish(CoreEventType.ACTIVATION_FAILED, {"name": target})
            self._notify("error", f"Activation failed: {target}", target)
            return

        try:
            self._catalog.set_active_exclusive(target)
        except UnknownVersionError:
            _logger.warning(
                {
                    "event": "activation_target_missing",
                    "message": f"Activated {target} is no longer catalogued",
                    "version_name": target,
                }
            )
            return
        self._publish(CoreEventType.ACTIVATION_CONFIRMED, {"name": target})
        self._notify("success", f"Activated {target}", target)

    async def deactivate(self, name: str) -> None:
        """Deactivate name, optimistically.

        Raises:
            BusyError: If an activation is pending.
            UnknownVersionError: If name is not catalogued.
            BackendError: If the backend rejects it (local change reverted).
        """
        if self._intent.pending:
            raise BusyError(self._intent.target)

        was_active = self._catalog.clear_active(name)
        self._publish(CoreEventType.VERSION_DEACTIVATED, {"name": name})

        try:
            await self._facade.deactivate_version(name)
        except BackendError as e:
            reverted = False
            if was_active and self._catalog.active is None and name in self._catalog:
                self._catalog.set_active_exclusive(name)
                reverted = True
            _logger.warning(
                {
                    "event": "deactivation_failed",
                    "message": f"Deactivation of {name} failed: {e.message}",
                    "version_name": name,
                    "error_type": type(e).__name__,
                    "error_message": e.message,
                    "details": {"reverted": reverted},
                }
            )
            self._notify("error", f"Deactivation failed: {e.message}", name)
            raise

        _logger.info(
            {
                "event": "version_deactivated",
                "message": f"Deactivated {name}",
                "version_name": name,
            }
        )

    def _publish(self, event_type: CoreEventType, data: dict) -> None:
        if self._notifier is not None:
            self._notifier.publish(event_type, data)

    def _notify(self, severity: EventSeverity, message: str, name: str) -> None:
        if self._notifier is not None:
            self._notifier.notify(severity, message, name=name)
