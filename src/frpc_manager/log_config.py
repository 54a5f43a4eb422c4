"""Logging configuration.

Owns the `frpc-manager` logger configuration (handlers, formatters).
Modules get their own child logger via:
    _logger = logging.getLogger(f"{APP_NAME}.core.catalog")

and log structured dicts ({"event": ..., "message": ..., ...}). This module
owns the handlers; everything else just logs.
"""

from __future__ import annotations

__all__ = [
    "configure_logging",
    "log_event",
]

import logging
import sys

from frpc_manager.config import CoreSettings, get_system_log_path
from frpc_manager.constants import APP_NAME
from frpc_manager.models import SystemEvent
from frpc_manager.utils.logging.iso_formatter import ISO8601Formatter

_logger = logging.getLogger(APP_NAME)

_configured: bool = False


class _ConsoleFormatter(logging.Formatter):
    """Human-readable formatter for console output."""

    def format(self, record: logging.LogRecord) -> str:
        if isinstance(record.msg, dict):
            msg = record.msg.get("message") or record.msg.get("event", "")
            return f"{record.levelname}: {msg}"
        return f"{record.levelname}: {record.getMessage()}"


def configure_logging(settings: CoreSettings, *, force: bool = False) -> None:
    """Install console and file handlers.

    Sets up:
    - stderr handler at settings.log_level
    - file handler (<log_dir>/system.jsonl): WARNING+ only

    Args:
        settings: Settings with log directory and level.
        force: Reconfigure even if already configured.
    """
    global _configured

    if _configured and not force:
        return

    for handler in _logger.handlers:
        handler.close()
    _logger.handlers.clear()

    console_level = logging.getLevelName(settings.log_level)
    _logger.setLevel(min(console_level, logging.WARNING))
    _logger.propagate = False

    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(console_level)
    stderr_handler.setFormatter(_ConsoleFormatter())
    _logger.addHandler(stderr_handler)
    _configured = True

    log_path = get_system_log_path(settings)
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        if sys.platform != "win32":
            log_path.parent.chmod(0o700)
    except OSError:
        pass  # stderr will still work

    try:
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    except OSError as e:
        log_event(
            logging.WARNING,
            SystemEvent(
                event="file_logging_failed",
                message=f"Failed to configure file logging at {log_path}",
                error_type=type(e).__name__,
                error_message=str(e),
            ),
        )
        return
    file_handler.setLevel(logging.WARNING)
    file_handler.setFormatter(ISO8601Formatter())
    _logger.addHandler(file_handler)


def log_event(level: int, event: SystemEvent) -> None:
    """Log a SystemEvent at the given level (None fields omitted).

    The ISO8601Formatter adds the timestamp during serialization.
    """
    _logger.log(level, event.model_dump(exclude_none=True))
