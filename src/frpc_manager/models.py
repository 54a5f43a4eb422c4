"""Pydantic models for frpc-manager.

This module contains three categories of models:

Core State Models (FrozenModel-based):
- FrozenModel: Base class for immutable models
- VersionRecord: One catalogued agent version
- ActiveVersion: Backend record of the activated version
- ActivationIntent: Pending activation, if any
- LogEntry: One normalized agent output line

Agent Configuration Models (wire format of the backend):
- FrpcConfig, AuthSettings, WebServerSettings, Switches
- Proxy, HttpSwitch

Logging Models:
- SystemEvent: System log entries for frpc-manager
"""

from __future__ import annotations

__all__ = [
    # Core state
    "ActivationIntent",
    "ActiveVersion",
    "FrozenModel",
    "LogEntry",
    "LogStream",
    "ProcessState",
    "VersionRecord",
    # Agent configuration
    "AuthMethod",
    "AuthSettings",
    "DomainType",
    "FrpcConfig",
    "HttpSwitch",
    "Proxy",
    "ProxyType",
    "Switches",
    "WebServerSettings",
    # Logging
    "SystemEvent",
]

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# =============================================================================
# Core State Models
# =============================================================================


class FrozenModel(BaseModel):
    """Base class for immutable Pydantic models.

    Fields use camelCase aliases on the wire; Python code uses
    snake_case names (populate_by_name).
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class VersionRecord(FrozenModel):
    """One known agent version.

    Attributes:
        name: Unique key (release asset file name).
        display_version: Human-facing release name, e.g. "v0.61.0".
        size_bytes: Asset size in bytes.
        created_at: When the release asset was published.
        usage_count: Download count reported by the release source.
        source_url: Where the asset is downloaded from.
        installed: Whether the asset is present locally.
        active: Whether this version is the one wired up to run.
    """

    name: str = Field(min_length=1)
    display_version: str = ""
    size_bytes: int = Field(default=0, ge=0)
    created_at: Optional[datetime] = None
    usage_count: int = Field(default=0, ge=0)
    source_url: str = ""
    installed: bool = False
    active: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for subscribers."""
        return self.model_dump(mode="json", by_alias=True)


class ActiveVersion(FrozenModel):
    """Backend record of the activated version.

    Attributes:
        name: Activated asset name.
        archive_path: Absolute path to the downloaded archive.
        unpack_dir: Absolute path to the unpacked directory.
        exe_path: Absolute path to the agent executable.
        activated_at: When the version was activated.
    """

    name: str
    archive_path: str = ""
    unpack_dir: str = ""
    exe_path: str
    activated_at: Optional[datetime] = None


class ActivationIntent(FrozenModel):
    """Activation request awaiting backend confirmation.

    Attributes:
        pending: True while a confirmation is outstanding.
        target: Version being activated (empty when idle).
    """

    pending: bool = False
    target: str = ""


class LogStream(str, Enum):
    """Origin of a log entry."""

    STDOUT = "stdout"
    STDERR = "stderr"
    SYSTEM = "system"


class LogEntry(FrozenModel):
    """One line of agent output, normalized by the log sink.

    Attributes:
        sequence_id: Monotonically increasing, never reset by clear().
        timestamp: Ingestion time.
        stream: stdout, stderr, or system (synthetic entries).
        text: Single line without trailing separator.
    """

    sequence_id: int
    timestamp: datetime
    stream: LogStream
    text: str

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict for subscribers."""
        return self.model_dump(mode="json", by_alias=True)


class ProcessState(str, Enum):
    """Lifecycle of the supervised agent process."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


# =============================================================================
# Agent Configuration Models
# =============================================================================


class AuthMethod(str, Enum):
    TOKEN = "token"
    OIDC = "oidc"


class ProxyType(str, Enum):
    TCP = "tcp"
    UDP = "udp"
    HTTP = "http"
    HTTPS = "https"
    STCP = "stcp"
    SUDP = "sudp"
    XTCP = "xtcp"


class DomainType(str, Enum):
    SUB = "sub"
    CUSTOM = "custom"


class _WireModel(BaseModel):
    """Mutable camelCase wire model (configuration is edited in place by callers)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class AuthSettings(_WireModel):
    method: AuthMethod = AuthMethod.TOKEN
    token: str = ""


class WebServerSettings(_WireModel):
    addr: str = "127.0.0.1"
    port: int = Field(default=7400, ge=0, le=65535)
    user: str = ""
    password: str = ""


class Switches(_WireModel):
    auth: bool = False
    web_server: bool = False


class HttpSwitch(_WireModel):
    domain: DomainType = DomainType.SUB
    auth: bool = False


class Proxy(_WireModel):
    """One proxy entry of the agent configuration.

    HTTP-only fields are ignored by the backend for other proxy types.
    An empty or missing id is replaced with a fresh UUID.
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    type: ProxyType = ProxyType.HTTP
    enable: bool = True
    local_ip: str = Field(default="127.0.0.1", alias="localIP")
    local_port: int = Field(default=0, ge=0, le=65535)
    subdomain: str = ""
    custom_domains: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)
    http_user: str = ""
    http_password: str = ""
    switch: HttpSwitch = Field(default_factory=HttpSwitch)

    @field_validator("id", mode="before")
    @classmethod
    def _default_blank_id(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return str(uuid.uuid4())
        return value


class FrpcConfig(_WireModel):
    """Agent configuration as exchanged with the backend."""

    server_addr: str = "127.0.0.1"
    server_port: int = Field(default=7000, ge=0, le=65535)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    web_server: WebServerSettings = Field(default_factory=WebServerSettings)
    proxies: list[Proxy] = Field(default_factory=list)
    switch: Switches = Field(default_factory=Switches)


# =============================================================================
# Logging Models
# =============================================================================


class SystemEvent(BaseModel):
    """One frpc-manager system log entry (<log_dir>/system.jsonl).

    Used for INFO, WARNING, ERROR, and CRITICAL events related to
    catalog, download, activation, and process supervision.

    Note: 'time' is None when created, populated by ISO8601Formatter during logging.
    """

    # --- core ---
    time: Optional[str] = Field(
        None,
        description="ISO 8601 timestamp (UTC), added by formatter during serialization",
    )
    event: Optional[str] = Field(
        None,
        description="Machine-friendly event name, e.g. 'download_completed', 'agent_exited'",
    )
    message: str = Field(description="Human-readable log message")

    # --- domain context ---
    version_name: Optional[str] = Field(
        None,
        description="Version the event refers to, e.g. 'frp_0.61.0_linux_amd64.tar.gz'",
    )
    pid: Optional[int] = Field(
        None,
        description="Agent process ID",
    )
    exit_code: Optional[int] = Field(
        None,
        description="Agent exit code (process events)",
    )

    # --- error details ---
    error_type: Optional[str] = Field(
        None,
        description="Exception class name, e.g. 'BackendError'",
    )
    error_message: Optional[str] = Field(
        None,
        description="Short error text from exception",
    )

    # --- additional structured details ---
    details: Optional[Dict[str, Any]] = Field(
        None,
        description="Additional context as key-value pairs",
    )

    model_config = ConfigDict(extra="allow")
