"""Process supervisor for the agent.

State machine (one agent instance at most):

    stopped --start--> starting --pid--> running --stop--> stopping
       ^                   |                |                  |
       +---BackendError----+                +---process-exit---+
       +------------------------process-exit-------------------+

The process-exit event is the only way into `stopped` once a launch has
been confirmed; stop() merely asks the backend and moves to `stopping`.
Output events are forwarded to the log sink whenever the state is not
`stopped`.
"""

from __future__ import annotations

__all__ = ["ProcessSupervisor", "format_exit_line"]

import asyncio
import logging
from collections.abc import Mapping

from frpc_manager.backend.facade import ProcessCommands
from frpc_manager.bus.source import Handler
from frpc_manager.constants import AGENT_NAME, APP_NAME
from frpc_manager.core.log_sink import LogSink
from frpc_manager.core.notifier import Notifier
from frpc_manager.events import CoreEventType, EventTopic, ProcessExit, ProcessOutput
from frpc_manager.exceptions import AlreadyRunningError, BackendError, NotRunningError
from frpc_manager.models import ProcessState

_logger = logging.getLogger(f"{APP_NAME}.core.supervisor")


def format_exit_line(code: int | None) -> str:
    """Terminal system log line for an agent exit."""
    return f"[{AGENT_NAME}] exited code={'null' if code is None else code}"


class ProcessSupervisor:
    """Owns the agent process state and routes its output to the log sink."""

    def __init__(
        self,
        facade: ProcessCommands,
        log_sink: LogSink,
        notifier: Notifier | None = None,
    ) -> None:
        self._facade = facade
        self._log_sink = log_sink
        self._notifier = notifier
        self._state = ProcessState.STOPPED
        self._pid: int | None = None
        self._exit_code: int | None = None
        self._stopped = asyncio.Event()
        self._stopped.set()

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def pid(self) -> int | None:
        return self._pid

    @property
    def exit_code(self) -> int | None:
        """Exit code of the last run (None while running or if unknown)."""
        return self._exit_code

    @property
    def running(self) -> bool:
        return self._state is ProcessState.RUNNING

    def bindings(self) -> Mapping[EventTopic, Handler]:
        return {
            EventTopic.PROCESS_STDOUT: self.handle_output,
            EventTopic.PROCESS_STDERR: self.handle_output,
            EventTopic.PROCESS_EXIT: self.handle_exit,
        }

    def to_dict(self) -> dict:
        return {"state": self._state.value, "pid": self._pid, "exitCode": self._exit_code}

    def _set_state(self, state: ProcessState) -> None:
        if state is self._state:
            return
        self._state = state
        if state is ProcessState.STOPPED:
            self._stopped.set()
        else:
            self._stopped.clear()
        if self._notifier is not None:
            self._notifier.publish(CoreEventType.PROCESS_STATE_CHANGED, self.to_dict())

    async def start(self, exe_path: str, config_path: str) -> int:
        """Launch the agent.

        Returns:
            PID reported by the backend.

        Raises:
            AlreadyRunningError: If the agent is starting, running or stopping.
            BackendError: If the launch fails (state back to stopped).
        """
        if self._state is not ProcessState.STOPPED:
            raise AlreadyRunningError(self._state.value)

        self._exit_code = None
        self._set_state(ProcessState.STARTING)
        try:
            pid = await self._facade.start_frpc(exe_path, config_path)
        except BackendError as e:
            if self._state is ProcessState.STARTING:
                self._set_state(ProcessState.STOPPED)
            _logger.warning(
                {
                    "event": "agent_start_failed",
                    "message": f"Failed to start {AGENT_NAME}: {e.message}",
                    "error_type": type(e).__name__,
                    "error_message": e.message,
                    "details": {"exe_path": exe_path, "config_path": config_path},
                }
            )
            if self._notifier is not None:
                self._notifier.notify("error", f"Failed to start {AGENT_NAME}: {e.message}")
            raise

        # An immediate crash may already have delivered the exit event
        if self._state is ProcessState.STARTING:
            self._pid = pid
            self._set_state(ProcessState.RUNNING)
            _logger.info(
                {
                    "event": "agent_started",
                    "message": f"{AGENT_NAME} started (pid={pid})",
                    "pid": pid,
                }
            )
        return pid

    async def stop(self) -> None:
        """Ask the backend to stop the agent.

        Returns once the backend accepted the request; the exit event
        completes the transition (see wait_stopped()).

        Raises:
            NotRunningError: Unless the agent is running.
            BackendError: If the backend call fails (state back to running).
        """
        if self._state is not ProcessState.RUNNING:
            raise NotRunningError(self._state.value)

        self._set_state(ProcessState.STOPPING)
        try:
            await self._facade.stop_frpc()
        except BackendError as e:
            if self._state is ProcessState.STOPPING:
                self._set_state(ProcessState.RUNNING)
            _logger.warning(
                {
                    "event": "agent_stop_failed",
                    "message": f"Failed to stop {AGENT_NAME}: {e.message}",
                    "pid": self._pid,
                    "error_type": type(e).__name__,
                    "error_message": e.message,
                }
            )
            raise

    async def status(self) -> bool:
        """Query the backend and reconcile the cached state.

        The cached state is left alone during starting/stopping; the
        pending transition owns it.
        """
        alive = await self._facade.frpc_status()
        if self._state is ProcessState.STOPPED and alive:
            _logger.info(
                {
                    "event": "agent_state_reconciled",
                    "message": f"{AGENT_NAME} is running (reported by backend)",
                }
            )
            self._set_state(ProcessState.RUNNING)
        elif self._state is ProcessState.RUNNING and not alive:
            _logger.info(
                {
                    "event": "agent_state_reconciled",
                    "message": f"{AGENT_NAME} is no longer running (reported by backend)",
                    "pid": self._pid,
                }
            )
            self._pid = None
            self._set_state(ProcessState.STOPPED)
        return alive

    def handle_output(self, event: ProcessOutput) -> None:
        if self._state is ProcessState.STOPPED:
            _logger.debug(
                {
                    "event": "agent_output_dropped",
                    "message": f"Dropping {event.stream.value} output while stopped",
                }
            )
            return
        self._log_sink.ingest(event.text, event.stream)

    def handle_exit(self, event: ProcessExit) -> None:
        if self._state is ProcessState.STOPPED:
            _logger.debug(
                {
                    "event": "agent_exit_duplicate",
                    "message": "Ignoring exit event while already stopped",
                    "exit_code": event.code,
                }
            )
            return

        pid = self._pid
        self._log_sink.append_system(format_exit_line(event.code))
        self._exit_code = event.code
        self._pid = None
        self._set_state(ProcessState.STOPPED)

        _logger.info(
            {
                "event": "agent_exited",
                "message": f"{AGENT_NAME} exited (code={event.code})",
                "pid": pid,
                "exit_code": event.code,
            }
        )
        if self._notifier is not None:
            self._notifier.publish(CoreEventType.PROCESS_EXITED, {"pid": pid, "code": event.code})

    async def wait_stopped(self) -> None:
        """Wait until the state is stopped."""
        await self._stopped.wait()
