"""Event types crossing the backend boundary and the subscriber boundary.

Backend events (inbound, at-least-once from the backend):
- download-progress: {name, progress: 0..100}
- activation-status: {status: bool, name?: str}
- process-stdout / process-stderr: {text} (a bare string is accepted)
- process-exit: {code: int | null}

Payloads are validated exactly once by parse_event() into a closed
tagged union (BackendEvent). Handlers downstream never see raw dicts.

Core events (outbound, to subscribers):
- snapshot: full state, sent first to every new subscriber
- catalog_*, download_*, activation_*, process_*: state deltas
- new_log_entries: batch of log lines appended by the log sink
- notification: point-in-time user-visible message
"""

from __future__ import annotations

__all__ = [
    "ActivationStatus",
    "BackendEvent",
    "CoreEvent",
    "CoreEventType",
    "DownloadProgress",
    "EventSeverity",
    "EventTopic",
    "ProcessExit",
    "ProcessOutput",
    "parse_event",
]

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from frpc_manager.exceptions import EventParseError
from frpc_manager.models import LogStream


class EventTopic(str, Enum):
    """Named topics published by the backend."""

    DOWNLOAD_PROGRESS = "download-progress"
    ACTIVATION_STATUS = "activation-status"
    PROCESS_STDOUT = "process-stdout"
    PROCESS_STDERR = "process-stderr"
    PROCESS_EXIT = "process-exit"


# =============================================================================
# Backend events (tagged union)
# =============================================================================


class _BackendEventBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class DownloadProgress(_BackendEventBase):
    """Download progress for one version."""

    topic: Literal[EventTopic.DOWNLOAD_PROGRESS] = EventTopic.DOWNLOAD_PROGRESS
    name: str = Field(min_length=1)
    progress: int = Field(ge=0, le=100)


class ActivationStatus(_BackendEventBase):
    """Activation confirmation.

    ``status`` must be true when the activation succeeded; a backend that
    reports false after a successful activation leaves every version
    inactive. ``name`` is optional; when the backend reports it, the
    activation state machine matches on it instead of trusting the
    pending target.
    """

    topic: Literal[EventTopic.ACTIVATION_STATUS] = EventTopic.ACTIVATION_STATUS
    status: bool
    name: Optional[str] = None


class ProcessOutput(_BackendEventBase):
    """Raw chunk of agent stdout or stderr."""

    topic: Literal[EventTopic.PROCESS_STDOUT, EventTopic.PROCESS_STDERR]
    text: str

    @property
    def stream(self) -> LogStream:
        if self.topic == EventTopic.PROCESS_STDERR:
            return LogStream.STDERR
        return LogStream.STDOUT


class ProcessExit(_BackendEventBase):
    """Agent process exited."""

    topic: Literal[EventTopic.PROCESS_EXIT] = EventTopic.PROCESS_EXIT
    code: Optional[int] = None


BackendEvent = Annotated[
    Union[DownloadProgress, ActivationStatus, ProcessOutput, ProcessExit],
    Field(discriminator="topic"),
]

_BACKEND_EVENT_ADAPTER: TypeAdapter[Any] = TypeAdapter(BackendEvent)


def parse_event(topic: str, payload: Any) -> DownloadProgress | ActivationStatus | ProcessOutput | ProcessExit:
    """Validate a raw backend payload into its typed event.

    Args:
        topic: Topic name the payload arrived on.
        payload: Decoded JSON payload. Output topics also accept a bare string.

    Returns:
        The typed event.

    Raises:
        EventParseError: If the topic is unknown or the payload is invalid.
    """
    try:
        event_topic = EventTopic(topic)
    except ValueError:
        raise EventParseError(topic, "unknown topic") from None

    if event_topic in (EventTopic.PROCESS_STDOUT, EventTopic.PROCESS_STDERR) and isinstance(payload, str):
        payload = {"text": payload}
    if payload is None and event_topic is EventTopic.PROCESS_EXIT:
        payload = {}
    if not isinstance(payload, dict):
        raise EventParseError(topic, f"expected object payload, got {type(payload).__name__}")

    try:
        event = _BACKEND_EVENT_ADAPTER.validate_python({**payload, "topic": event_topic})
    except ValidationError as e:
        raise EventParseError(topic, str(e)) from e
    return event  # type: ignore[no-any-return]


# =============================================================================
# Core events (to subscribers)
# =============================================================================


class CoreEventType(str, Enum):
    """Event types delivered to subscribers.

    Events are grouped by domain:
    - snapshot: initial full state for a new subscriber
    - catalog_*: version catalog changes
    - download_*: download progress lifecycle
    - activation_*: activation lifecycle
    - process_*: agent process lifecycle
    - new_log_entries: log sink appends
    - notification: user-visible toast
    """

    SNAPSHOT = "snapshot"

    # Catalog
    CATALOG_REFRESHED = "catalog_refreshed"
    VERSION_UPDATED = "version_updated"

    # Downloads
    DOWNLOAD_PROGRESS = "download_progress"
    DOWNLOAD_COMPLETED = "download_completed"

    # Activation
    ACTIVATION_PENDING = "activation_pending"
    ACTIVATION_CONFIRMED = "activation_confirmed"
    ACTIVATION_FAILED = "activation_failed"
    VERSION_DEACTIVATED = "version_deactivated"

    # Process
    PROCESS_STATE_CHANGED = "process_state_changed"
    PROCESS_EXITED = "process_exited"

    # Logs
    NEW_LOG_ENTRIES = "new_log_entries"
    LOG_CLEARED = "log_cleared"

    NOTIFICATION = "notification"


# Severity type for toast styling in a UI
EventSeverity = Literal["success", "warning", "error", "info"]


class CoreEvent(BaseModel):
    """One event delivered to a subscriber queue.

    Attributes:
        type: Event type.
        data: JSON-serializable payload.
        timestamp: When the event was published (UTC).
    """

    model_config = ConfigDict(frozen=True)

    type: CoreEventType
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
