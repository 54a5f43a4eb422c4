"""Status command: agent process, active version, downloads."""

from __future__ import annotations

__all__ = ["status"]

import json
from typing import Any

import click

from frpc_manager.cli.session import run_with_core
from frpc_manager.cli.styling import style_dim, style_label, style_state
from frpc_manager.config import CoreSettings
from frpc_manager.core.app import FrpcCore
from frpc_manager.models import ProcessState


@click.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def status(settings: CoreSettings, as_json: bool) -> None:
    """Show frpc status.

    Examples:
        frpc-manager status
        frpc-manager status --json
    """

    async def _status(core: FrpcCore) -> dict[str, Any]:
        snapshot = core.snapshot()
        snapshot.pop("logs", None)
        return snapshot

    result = run_with_core(settings, _status)

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    process = result["process"]
    click.echo(f"{style_label('Process')} {style_state(ProcessState(process['state']))}")
    if process.get("pid") is not None:
        click.echo(f"  PID: {process['pid']}")

    active = result.get("active")
    click.echo(f"{style_label('Active version')} {active or style_dim('none')}")

    installed = sum(1 for version in result["versions"] if version.get("installed"))
    click.echo(f"{style_label('Versions')} {len(result['versions'])} known, {installed} installed")

    downloads = result.get("downloads") or {}
    if downloads:
        click.echo(style_label("Downloads"))
        for name, progress in sorted(downloads.items()):
            click.echo(f"  {name:40} {progress:3d}%")
