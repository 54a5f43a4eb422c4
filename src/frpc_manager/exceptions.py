"""Custom exceptions for frpc-manager.

Exceptions are organized into three categories:

Invalid Requests (rejected locally, backend never contacted):
    - InvalidRequestError: Base for synchronous local rejections
    - AlreadyInFlightError: Download already in progress for a version
    - BusyError: Another activation is still pending
    - AlreadyRunningError: The agent is already running or starting
    - NotRunningError: Stop requested while the agent is not running
    - UnknownVersionError: Version name not present in the catalog

Backend Failures (the external call itself failed):
    - BackendError: Single human-readable message, no structured codes

Event Delivery (never propagated to callers):
    - EventDeliveryError: Unsubscribe on an already torn-down channel
    - EventParseError: Payload failed validation at the bus boundary

Usage:
    from frpc_manager.exceptions import BusyError, BackendError
"""

from __future__ import annotations

__all__ = [
    "AlreadyInFlightError",
    "AlreadyRunningError",
    "BackendError",
    "BusyError",
    "ConfigurationError",
    "EventDeliveryError",
    "EventParseError",
    "FrpcManagerError",
    "InvalidRequestError",
    "NotRunningError",
    "UnknownVersionError",
]


class FrpcManagerError(Exception):
    """Base class for all frpc-manager errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# =============================================================================
# Invalid Requests
# =============================================================================


class InvalidRequestError(FrpcManagerError):
    """Request rejected locally without contacting the backend."""


class AlreadyInFlightError(InvalidRequestError):
    """A download for this version is already in progress.

    Attributes:
        name: Version name with an active progress entry.
    """

    def __init__(self, name: str) -> None:
        super().__init__(f"Download already in progress: {name}")
        self.name = name


class BusyError(InvalidRequestError):
    """An activation is pending; new activation requests are rejected.

    Attributes:
        target: Version name of the pending activation.
    """

    def __init__(self, target: str) -> None:
        super().__init__(f"Activation of '{target}' is still pending")
        self.target = target


class AlreadyRunningError(InvalidRequestError):
    """The agent process is already running or starting."""

    def __init__(self, state: str) -> None:
        super().__init__(f"frpc is already running (state={state})")
        self.state = state


class NotRunningError(InvalidRequestError):
    """Stop requested while the agent is not running."""

    def __init__(self, state: str) -> None:
        super().__init__(f"frpc is not running (state={state})")
        self.state = state


class UnknownVersionError(InvalidRequestError):
    """Version name is not present in the catalog."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown version: {name}")
        self.name = name


# =============================================================================
# Backend Failures
# =============================================================================


class BackendError(FrpcManagerError):
    """A backend command failed.

    Carries only a human-readable message; callers never receive
    structured error codes from the backend.
    """


# =============================================================================
# Event Delivery
# =============================================================================


class EventDeliveryError(FrpcManagerError):
    """Unsubscribe or delivery on a channel that is already closed."""


class EventParseError(FrpcManagerError, ValueError):
    """Event payload failed validation at the bus boundary.

    Attributes:
        topic: Topic the payload arrived on.
    """

    def __init__(self, topic: str, message: str) -> None:
        super().__init__(f"Invalid '{topic}' event: {message}")
        self.topic = topic


# =============================================================================
# Configuration
# =============================================================================


class ConfigurationError(FrpcManagerError):
    """Settings file is missing or invalid (strict loading only)."""
