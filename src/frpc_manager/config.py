"""Settings for frpc-manager.

Settings are stored as JSON at the OS-appropriate config location
(platformdirs user_config_dir). Every field has a default, so a missing
file is valid.

Example usage:
    settings = load_settings()
    settings = settings.model_copy(update={"max_log_entries": 10000})
    save_settings(settings)
"""

from __future__ import annotations

__all__ = [
    "CoreSettings",
    "get_settings_path",
    "get_system_log_path",
    "load_settings",
    "load_settings_strict",
    "save_settings",
]

import json
import logging
from pathlib import Path
from typing import Literal

from platformdirs import user_config_dir, user_log_dir
from pydantic import BaseModel, Field, ValidationError

from frpc_manager.constants import (
    APP_NAME,
    DEFAULT_BACKEND_URL,
    DEFAULT_DOWNLOAD_GRACE_SECONDS,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    DEFAULT_MAX_LOG_ENTRIES,
    MAX_HTTP_TIMEOUT_SECONDS,
    MIN_HTTP_TIMEOUT_SECONDS,
)
from frpc_manager.exceptions import ConfigurationError

_logger = logging.getLogger(f"{APP_NAME}.config")

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class CoreSettings(BaseModel):
    """Per-installation settings.

    Attributes:
        backend_url: Base URL of the backend HTTP API.
        backend_socket: Unix socket path; when set, used instead of TCP.
        request_timeout_seconds: Timeout for one backend command.
        max_log_entries: Capacity of the agent log ring buffer.
        download_grace_seconds: Delay between 100% progress and completion.
        log_dir: Directory for frpc-manager's own system log.
        log_level: Console log level.
    """

    backend_url: str = Field(default=DEFAULT_BACKEND_URL, min_length=1)
    backend_socket: str | None = None
    request_timeout_seconds: float = Field(
        default=DEFAULT_HTTP_TIMEOUT_SECONDS,
        ge=MIN_HTTP_TIMEOUT_SECONDS,
        le=MAX_HTTP_TIMEOUT_SECONDS,
    )
    max_log_entries: int = Field(default=DEFAULT_MAX_LOG_ENTRIES, ge=1)
    download_grace_seconds: float = Field(default=DEFAULT_DOWNLOAD_GRACE_SECONDS, ge=0)
    log_dir: str = Field(default_factory=lambda: user_log_dir(APP_NAME), min_length=1)
    log_level: LogLevel = "INFO"

    model_config = {"extra": "ignore"}  # Ignore unknown fields for forward compat


def get_settings_path() -> Path:
    """Get the full path to the settings file (<config_dir>/settings.json)."""
    return Path(user_config_dir(APP_NAME)) / "settings.json"


def get_system_log_path(settings: CoreSettings) -> Path:
    """Get the full path to the system log file (<log_dir>/system.jsonl)."""
    return Path(settings.log_dir).expanduser() / "system.jsonl"


def load_settings(path: Path | None = None) -> CoreSettings:
    """Load settings from file.

    A missing file yields defaults. Invalid JSON, invalid values and read
    errors also yield defaults, with a warning.
    """
    settings_path = path or get_settings_path()

    if not settings_path.exists():
        return CoreSettings()

    try:
        with settings_path.open(encoding="utf-8") as f:
            data = json.load(f)
        return CoreSettings.model_validate(data)
    except json.JSONDecodeError as e:
        _logger.warning(
            {
                "event": "settings_invalid_json",
                "message": f"Invalid JSON in settings, using defaults: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
                "details": {"settings_path": str(settings_path)},
            }
        )
        return CoreSettings()
    except ValidationError as e:
        _logger.warning(
            {
                "event": "settings_validation_failed",
                "message": f"Invalid settings values, using defaults: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
                "details": {"settings_path": str(settings_path)},
            }
        )
        return CoreSettings()
    except OSError as e:
        _logger.warning(
            {
                "event": "settings_read_failed",
                "message": f"Failed to read settings file, using defaults: {e}",
                "error_type": type(e).__name__,
                "error_message": str(e),
                "details": {"settings_path": str(settings_path)},
            }
        )
        return CoreSettings()


def load_settings_strict(path: Path | None = None) -> CoreSettings:
    """Load settings, raising on any error.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid.
    """
    settings_path = path or get_settings_path()

    if not settings_path.exists():
        raise ConfigurationError(f"Settings file not found: {settings_path}")

    try:
        with settings_path.open(encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {settings_path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {settings_path}: {e}") from e

    try:
        return CoreSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid settings in {settings_path}: {e}") from e


def save_settings(settings: CoreSettings, path: Path | None = None) -> Path:
    """Save settings, creating the config directory if needed.

    Raises:
        OSError: If unable to write the file.
    """
    settings_path = path or get_settings_path()
    settings_path.parent.mkdir(parents=True, exist_ok=True)

    with settings_path.open("w", encoding="utf-8") as f:
        json.dump(settings.model_dump(), f, indent=2)
        f.write("\n")  # Trailing newline

    return settings_path
