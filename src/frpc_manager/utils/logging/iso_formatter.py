"""JSONL formatting for the system log.

One JSON object per line, with an ISO 8601 UTC `time` field first.
"""

from __future__ import annotations

__all__ = ["ISO8601Formatter"]

import json
import logging
from datetime import datetime, timezone
from typing import Any


class ISO8601Formatter(logging.Formatter):
    """Formatter producing JSONL with ISO 8601 timestamps (UTC).

    Format: YYYY-MM-DDTHH:MM:SS.sssZ
    Example: 2026-03-02T10:48:37.123Z

    Dict messages (structured logging) are emitted as-is; any other message
    becomes {"message": ...}. Values that are not JSON-native (enums,
    datetimes, paths) are written via str().
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = (
            datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z")
        )

        log_data: dict[str, Any]
        if isinstance(record.msg, dict):
            log_data = dict(record.msg)
        else:
            log_data = {"message": record.getMessage()}
        log_data.setdefault("level", record.levelname)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps({"time": timestamp, **log_data}, default=str, ensure_ascii=False)
