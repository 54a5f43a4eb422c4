"""Main CLI entry point for frpc-manager.

Defines the CLI group and registers all subcommands.

Commands:
    export    - Print the frpc configuration as TOML
    run       - Run frpc locally in the foreground
    status    - Show frpc process and version status
    versions  - Version management (list, download, activate, deactivate, delete)

Subcommand help:
    frpc-manager COMMAND -h    Show help for a specific command
"""

from __future__ import annotations

__all__ = ["cli"]

import sys
from pathlib import Path

import click

from frpc_manager import __version__
from frpc_manager.config import load_settings
from frpc_manager.log_config import configure_logging

from .commands.export import export
from .commands.run import run
from .commands.status import status
from .commands.versions import versions


@click.group(
    invoke_without_command=True,
    context_settings={"help_option_names": ["-h", "--help"]},
)
@click.option("--version", "-v", is_flag=True, help="Show version")
@click.option("--backend-url", envvar="FRPC_MANAGER_BACKEND_URL", help="Backend base URL")
@click.option(
    "--socket",
    "backend_socket",
    envvar="FRPC_MANAGER_BACKEND_SOCKET",
    help="Backend Unix socket path (overrides --backend-url)",
)
@click.option(
    "--settings",
    "settings_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Settings file (default: OS config dir)",
)
@click.option("--debug", is_flag=True, help="Log debug output to stderr")
@click.pass_context
def cli(
    ctx: click.Context,
    version: bool,
    backend_url: str | None,
    backend_socket: str | None,
    settings_path: Path | None,
    debug: bool,
) -> None:
    """frpc-manager: download, activate and supervise the frp client."""
    if version:
        click.echo(f"frpc-manager {__version__}")
        sys.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        return

    settings = load_settings(settings_path)
    overrides: dict[str, object] = {}
    if backend_url:
        overrides["backend_url"] = backend_url
    if backend_socket:
        overrides["backend_socket"] = backend_socket
    if debug:
        overrides["log_level"] = "DEBUG"
    if overrides:
        settings = settings.model_copy(update=overrides)

    configure_logging(settings)
    ctx.obj = settings


cli.add_command(export)
cli.add_command(run)
cli.add_command(status)
cli.add_command(versions)


def main() -> None:
    """CLI entry point."""
    cli()
