"""Export command: render the agent configuration as TOML."""

from __future__ import annotations

__all__ = ["export"]

import click

from frpc_manager.cli.session import run_with_core
from frpc_manager.cli.styling import style_success
from frpc_manager.config import CoreSettings
from frpc_manager.core.app import FrpcCore


@click.command()
@click.option("--file", "to_file", is_flag=True, help="Write the backend's config file and print its path")
@click.pass_obj
def export(settings: CoreSettings, to_file: bool) -> None:
    """Export the frpc configuration (TOML) to stdout."""

    async def _export(core: FrpcCore) -> str:
        if to_file:
            return await core.export_config_file()
        return await core.export_config()

    output = run_with_core(settings, _export)
    if to_file:
        click.echo(style_success(f"Wrote {output}"))
    else:
        click.echo(output, nl=not output.endswith("\n"))
