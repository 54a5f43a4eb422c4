"""Run command: supervise frpc locally and stream its output.

No backend needed: the process is spawned by AgentRunner and its events
flow through an in-process event source into the same supervisor and log
sink the core uses.
"""

from __future__ import annotations

__all__ = ["run"]

import asyncio
import logging
from pathlib import Path

import click

from frpc_manager.backend.runner import AgentRunner
from frpc_manager.bus.adapter import EventBusAdapter
from frpc_manager.bus.source import InProcessEventSource
from frpc_manager.cli.session import CoreCommandError
from frpc_manager.config import CoreSettings
from frpc_manager.core.log_sink import LogSink
from frpc_manager.core.supervisor import ProcessSupervisor
from frpc_manager.exceptions import FrpcManagerError
from frpc_manager.log_config import log_event
from frpc_manager.models import LogEntry, LogStream, SystemEvent

_STREAM_COLORS = {LogStream.STDERR: "red", LogStream.SYSTEM: "cyan"}


def _echo_entries(batch: list[LogEntry]) -> None:
    for entry in batch:
        line = LogSink.format_entry(entry)
        color = _STREAM_COLORS.get(entry.stream)
        click.echo(click.style(line, fg=color) if color else line)


async def _supervise(exe: str, config: str, max_entries: int) -> int | None:
    events = InProcessEventSource()
    runner = AgentRunner(events)
    log_sink = LogSink(max_entries)
    log_sink.set_listener(_echo_entries)
    supervisor = ProcessSupervisor(runner, log_sink)
    adapter = EventBusAdapter(events)

    await adapter.attach(supervisor.bindings())
    try:
        await supervisor.start(exe, config)
        await supervisor.wait_stopped()
    finally:
        # Ctrl-C cancels the wait; the agent must not outlive the command
        await runner.aclose()
        adapter.detach()
        events.close()
    return supervisor.exit_code


@click.command()
@click.option(
    "--exe",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to the frpc executable",
)
@click.option(
    "--config",
    "config_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to the frpc configuration file",
)
@click.pass_obj
def run(settings: CoreSettings, exe: Path, config_path: Path) -> None:
    """Run frpc in the foreground and print its output.

    Stops frpc on Ctrl-C. Exits with frpc's exit code.

    Examples:
        frpc-manager run --exe ./frpc --config ./frpc.toml
    """
    try:
        code = asyncio.run(_supervise(str(exe), str(config_path), settings.max_log_entries))
    except FrpcManagerError as e:
        raise CoreCommandError(e) from e
    except KeyboardInterrupt:
        click.echo("Interrupted, frpc stopped")
        return

    if code:
        log_event(
            logging.WARNING,
            SystemEvent(
                event="agent_exit_nonzero",
                message=f"frpc exited with code {code}",
                exit_code=code,
                details={"exe": str(exe), "config": str(config_path)},
            ),
        )
        raise SystemExit(code)
