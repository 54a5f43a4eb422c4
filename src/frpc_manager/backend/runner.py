"""Local agent runner.

Implements ProcessCommands in-process for setups without a separate
backend (the `run` CLI command, tests):

- start_frpc spawns `<exe> -c <cfg>` with stdin closed and stdout/stderr
  piped (no console window on Windows)
- every output line (any length) is published on process-stdout / process-stderr
- process-exit {code} is published once both streams are drained
- stop_frpc terminates, waits up to stop_timeout, then kills

Only one agent process exists at a time; a second start is rejected with
BackendError("frpc is already running"), matching the remote backend.
"""

from __future__ import annotations

__all__ = ["AgentRunner"]

import asyncio
import logging
import subprocess
import sys
from typing import Any

from frpc_manager.bus.source import InProcessEventSource
from frpc_manager.constants import APP_NAME, RUNNER_STOP_TIMEOUT_SECONDS
from frpc_manager.events import EventTopic
from frpc_manager.exceptions import BackendError

_logger = logging.getLogger(f"{APP_NAME}.backend.runner")

_READ_CHUNK_BYTES = 64 * 1024


class AgentRunner:
    """Spawn and supervise the agent binary on the local machine.

    Usage:
        events = InProcessEventSource()
        runner = AgentRunner(events)
        pid = await runner.start_frpc("/opt/frp/frpc", "/etc/frp/frpc.toml")
    """

    def __init__(
        self,
        events: InProcessEventSource,
        *,
        stop_timeout: float = RUNNER_STOP_TIMEOUT_SECONDS,
    ) -> None:
        self._events = events
        self._stop_timeout = stop_timeout
        self._process: asyncio.subprocess.Process | None = None
        self._watch_task: asyncio.Task[None] | None = None

    @property
    def pid(self) -> int | None:
        return self._process.pid if self._process is not None else None

    async def start_frpc(self, exe_path: str, cfg_path: str) -> int:
        """Spawn the agent.

        Returns:
            PID of the spawned process.

        Raises:
            BackendError: If an agent is already running or spawning fails.
        """
        if self._process is not None:
            raise BackendError("frpc is already running")

        kwargs: dict[str, Any] = {}
        if sys.platform == "win32":
            kwargs["creationflags"] = subprocess.CREATE_NO_WINDOW

        try:
            process = await asyncio.create_subprocess_exec(
                exe_path,
                "-c",
                cfg_path,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                **kwargs,
            )
        except OSError as e:
            _logger.warning(
                {
                    "event": "agent_spawn_failed",
                    "message": f"Failed to spawn {exe_path}: {e}",
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
            )
            raise BackendError(f"failed to spawn frpc: {e}") from e

        self._process = process
        self._watch_task = asyncio.create_task(self._watch(process))
        _logger.info(
            {
                "event": "agent_spawned",
                "message": f"Spawned {exe_path} (pid={process.pid})",
                "pid": process.pid,
                "details": {"exe_path": exe_path, "cfg_path": cfg_path},
            }
        )
        return process.pid

    def _publish_line(self, topic: EventTopic, line: bytes) -> None:
        text = line.decode("utf-8", errors="replace").rstrip("\r")
        self._events.publish(topic.value, {"text": text})

    async def _pump(self, stream: asyncio.StreamReader | None, topic: EventTopic) -> None:
        """Publish every line of stream until EOF.

        Reads fixed-size chunks and splits them here, so a line longer
        than the reader's buffer limit is still delivered whole.
        """
        if stream is None:
            return
        pending = b""
        while True:
            chunk = await stream.read(_READ_CHUNK_BYTES)
            if not chunk:
                break
            pending += chunk
            *lines, pending = pending.split(b"\n")
            for line in lines:
                self._publish_line(topic, line)
        if pending:
            self._publish_line(topic, pending)

    async def _watch(self, process: asyncio.subprocess.Process) -> None:
        """Forward output, then publish the exit once both streams hit EOF.

        A failing pump is logged; the exit is still awaited and published.
        """
        try:
            results = await asyncio.gather(
                self._pump(process.stdout, EventTopic.PROCESS_STDOUT),
                self._pump(process.stderr, EventTopic.PROCESS_STDERR),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, Exception):
                    _logger.warning(
                        {
                            "event": "agent_output_failed",
                            "message": f"Reading frpc output failed: {result}",
                            "pid": process.pid,
                            "error_type": type(result).__name__,
                            "error_message": str(result),
                        }
                    )
            code = await process.wait()
        finally:
            if self._process is process:
                self._process = None

        _logger.info(
            {
                "event": "agent_exited",
                "message": f"frpc exited (pid={process.pid}, code={code})",
                "pid": process.pid,
                "exit_code": code,
            }
        )
        self._events.publish(EventTopic.PROCESS_EXIT.value, {"code": code})

    async def stop_frpc(self) -> None:
        """Terminate the agent and wait until its exit has been published.

        Raises:
            BackendError: If no agent is running.
        """
        process = self._process
        if process is None:
            raise BackendError("frpc is not running")

        try:
            process.terminate()
        except ProcessLookupError:
            pass  # Already exited; the watcher publishes the exit
        try:
            await asyncio.wait_for(process.wait(), timeout=self._stop_timeout)
        except asyncio.TimeoutError:
            _logger.warning(
                {
                    "event": "agent_kill",
                    "message": f"frpc did not exit within {self._stop_timeout}s, killing",
                    "pid": process.pid,
                }
            )
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()

        if self._watch_task is not None:
            await self._watch_task

    async def frpc_status(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def aclose(self) -> None:
        """Stop the agent if it is still running."""
        if self._process is not None:
            await self.stop_frpc()
