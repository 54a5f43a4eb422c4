"""Bounded, ordered log of agent output.

Raw stdout/stderr chunks are split into lines (\\r\\n, \\n or \\r), empty
fragments dropped, ANSI escape sequences stripped, and each line stored as
an immutable LogEntry with a monotonically increasing sequence_id.

The buffer is a ring: past max_entries the oldest entries are evicted.
clear() empties the buffer but keeps the counter, so sequence ids are
never reused within one sink.
"""

from __future__ import annotations

__all__ = ["LogSink"]

import re
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone

from frpc_manager.constants import DEFAULT_MAX_LOG_ENTRIES
from frpc_manager.models import LogEntry, LogStream

# CSI sequences (colors, cursor movement) and OSC sequences (window titles)
_ANSI_RE = re.compile(r"\x1b\[[0-?]*[ -/]*[@-~]|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)|\x1b[@-Z\\-_]")
_LINE_SPLIT_RE = re.compile(r"\r\n|\r|\n")

Clock = Callable[[], datetime]
EntriesListener = Callable[[list[LogEntry]], None]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def strip_ansi(text: str) -> str:
    """Remove terminal escape sequences from text."""
    return _ANSI_RE.sub("", text)


class LogSink:
    """Ring buffer of LogEntry.

    Single writer: all methods are called from the event loop thread.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_LOG_ENTRIES,
        *,
        clock: Clock = utc_now,
    ) -> None:
        if max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {max_entries}")
        self._entries: deque[LogEntry] = deque(maxlen=max_entries)
        self._clock = clock
        self._next_id = 1
        self._listener: EntriesListener | None = None

    @property
    def max_entries(self) -> int:
        return self._entries.maxlen or 0

    @property
    def last_sequence_id(self) -> int:
        """Highest sequence id ever assigned (0 if none)."""
        return self._next_id - 1

    def set_listener(self, listener: EntriesListener | None) -> None:
        """Receive every batch of newly appended entries (one call per ingest)."""
        self._listener = listener

    def _append(self, lines: list[str], stream: LogStream) -> list[LogEntry]:
        if not lines:
            return []
        now = self._clock()
        batch = []
        for text in lines:
            entry = LogEntry(sequence_id=self._next_id, timestamp=now, stream=stream, text=text)
            self._next_id += 1
            batch.append(entry)
        # deque(maxlen) evicts from the head
        self._entries.extend(batch)
        if self._listener is not None:
            self._listener(batch)
        return batch

    def ingest(self, raw: str, stream: LogStream) -> list[LogEntry]:
        """Append the non-empty lines of a raw output chunk.

        Args:
            raw: Output chunk, possibly several lines or none.
            stream: Where the chunk came from.

        Returns:
            The entries appended, in order.
        """
        if stream is not LogStream.SYSTEM:
            raw = strip_ansi(raw)
        lines = [line for line in _LINE_SPLIT_RE.split(raw) if line]
        return self._append(lines, stream)

    def append_system(self, text: str) -> LogEntry | None:
        """Append one synthetic system line (e.g. process exit)."""
        batch = self.ingest(text, LogStream.SYSTEM)
        return batch[-1] if batch else None

    def clear(self) -> None:
        self._entries.clear()

    def entries(self) -> list[LogEntry]:
        """Return all buffered entries, oldest first."""
        return list(self._entries)

    def tail(self, n: int) -> list[LogEntry]:
        """Return the newest n entries, oldest first."""
        if n <= 0:
            return []
        return list(self._entries)[-n:]

    def since(self, sequence_id: int) -> list[LogEntry]:
        """Return buffered entries with a sequence id greater than sequence_id."""
        return [entry for entry in self._entries if entry.sequence_id > sequence_id]

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def format_entry(entry: LogEntry) -> str:
        return f"[{entry.timestamp.strftime('%H:%M:%S')}] {entry.stream.value.upper()} {entry.text}"

    def render_text(self) -> str:
        """Render the buffer as plain text, one "[HH:MM:SS] STREAM text" line per entry."""
        return "\n".join(self.format_entry(entry) for entry in self._entries)
