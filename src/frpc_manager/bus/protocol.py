"""NDJSON envelope used by the backend event stream.

Protocol format:
- One JSON object per line, compact form (no spaces)
- Each line is terminated by a newline character
- Encoding: UTF-8

Envelope:
    {"topic":"download-progress","payload":{"name":"frp_0.61.0_linux_amd64.tar.gz","progress":30}}\\n
    {"topic":"process-stdout","payload":{"text":"login to server success"}}\\n
    {"topic":"process-exit","payload":{"code":1}}\\n

Lines that are not valid JSON objects with a string "topic" are ignored
(forward compatibility). Payload validation happens in parse_event().
"""

from __future__ import annotations

__all__ = [
    "decode_envelope",
    "decode_ndjson",
    "encode_envelope",
    "encode_ndjson",
]

import json
from typing import Any


def encode_ndjson(msg: dict[str, Any]) -> bytes:
    """Encode a message for NDJSON transmission.

    Uses compact JSON (no spaces after separators) with newline delimiter.

    Args:
        msg: Dictionary to encode.

    Returns:
        UTF-8 encoded bytes with trailing newline.

    Example:
        >>> encode_ndjson({"topic": "process-exit", "payload": {}})
        b'{"topic":"process-exit","payload":{}}\\n'
    """
    return (json.dumps(msg, separators=(",", ":"), ensure_ascii=False) + "\n").encode("utf-8")


def decode_ndjson(line: bytes | str) -> dict[str, Any] | None:
    """Decode an NDJSON message.

    Args:
        line: UTF-8 bytes or text (with or without trailing newline).

    Returns:
        Decoded dictionary, or None if line is empty, not JSON, or not an object.
    """
    if not line:
        return None
    try:
        text = line.decode("utf-8") if isinstance(line, bytes) else line
        if not text.strip():
            return None
        result = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if not isinstance(result, dict):
        return None
    return result


def encode_envelope(topic: str, payload: Any) -> bytes:
    """Encode one backend event as an NDJSON line."""
    return encode_ndjson({"topic": topic, "payload": payload})


def decode_envelope(line: bytes | str) -> tuple[str, Any] | None:
    """Decode one NDJSON line into (topic, raw payload).

    Returns:
        Tuple of topic and payload, or None if the line is not an envelope.
    """
    msg = decode_ndjson(line)
    if msg is None:
        return None
    topic = msg.get("topic")
    if not isinstance(topic, str):
        return None
    return topic, msg.get("payload")
