"""Version commands: list, download, activate, deactivate, delete."""

from __future__ import annotations

__all__ = ["versions"]

import json

import click

from frpc_manager.cli.session import is_event, run_with_core, wait_for_event
from frpc_manager.cli.styling import style_dim, style_error, style_success
from frpc_manager.config import CoreSettings
from frpc_manager.core.app import FrpcCore
from frpc_manager.events import CoreEvent, CoreEventType
from frpc_manager.models import VersionRecord

BYTES_PER_MIB = 1024 * 1024


def _format_size(size_bytes: int) -> str:
    if not size_bytes:
        return "-"
    return f"{size_bytes / BYTES_PER_MIB:.1f} MiB"


def _format_flags(record: VersionRecord) -> str:
    if record.active:
        return click.style("active", fg="green", bold=True)
    if record.installed:
        return click.style("installed", fg="cyan")
    return style_dim("available")


@click.group()
def versions() -> None:
    """Manage frpc versions."""


@versions.command("list")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.option("--installed", "installed_only", is_flag=True, help="Only installed versions")
@click.pass_obj
def list_versions(settings: CoreSettings, as_json: bool, installed_only: bool) -> None:
    """List catalogued versions."""

    async def _list(core: FrpcCore) -> list[VersionRecord]:
        return core.catalog.records()

    records = run_with_core(settings, _list)
    if installed_only:
        records = [record for record in records if record.installed]

    if as_json:
        click.echo(json.dumps([record.to_dict() for record in records], indent=2))
        return

    if not records:
        click.echo(style_dim("No versions found."))
        return

    for record in records:
        click.echo(
            f"  {record.name:40} {record.display_version:10} "
            f"{_format_size(record.size_bytes):>10}  {_format_flags(record)}"
        )


@versions.command()
@click.argument("name")
@click.option("--url", help="Download URL (defaults to the catalogued source URL)")
@click.option("--wait/--no-wait", default=True, show_default=True, help="Wait for completion")
@click.option("--timeout", type=float, default=600.0, show_default=True, help="Seconds to wait")
@click.pass_obj
def download(settings: CoreSettings, name: str, url: str | None, wait: bool, timeout: float) -> None:
    """Download a version.

    Examples:
        frpc-manager versions download frp_0.61.0_linux_amd64.tar.gz
    """

    def _show_progress(event: CoreEvent) -> None:
        if event.type is CoreEventType.DOWNLOAD_PROGRESS and event.data.get("name") == name:
            progress = event.data.get("progress")
            if progress is not None:
                click.echo(f"  {progress:3d}%")

    async def _download(core: FrpcCore) -> None:
        queue = core.subscribe()
        try:
            await core.download(name, url)
            if wait:
                await wait_for_event(
                    queue,
                    lambda event: is_event(event, CoreEventType.DOWNLOAD_COMPLETED, name),
                    timeout=timeout,
                    on_event=_show_progress,
                )
        finally:
            core.unsubscribe(queue)

    run_with_core(settings, _download, listen=wait)
    if wait:
        click.echo(style_success(f"Downloaded {name}"))
    else:
        click.echo(f"Download of {name} started")


@versions.command()
@click.argument("name")
@click.option("--wait/--no-wait", default=True, show_default=True, help="Wait for confirmation")
@click.option("--timeout", type=float, default=60.0, show_default=True, help="Seconds to wait")
@click.pass_obj
def activate(settings: CoreSettings, name: str, wait: bool, timeout: float) -> None:
    """Activate an installed version."""

    async def _activate(core: FrpcCore) -> bool:
        queue = core.subscribe()
        try:
            await core.activate(name)
            if not wait:
                return True
            event = await wait_for_event(
                queue,
                lambda event: is_event(event, CoreEventType.ACTIVATION_CONFIRMED, name)
                or is_event(event, CoreEventType.ACTIVATION_FAILED, name),
                timeout=timeout,
            )
            return event.type is CoreEventType.ACTIVATION_CONFIRMED
        finally:
            core.unsubscribe(queue)

    confirmed = run_with_core(settings, _activate, listen=wait)
    if not wait:
        click.echo(f"Activation of {name} requested")
    elif confirmed:
        click.echo(style_success(f"Activated {name}"))
    else:
        click.echo(style_error(f"Backend rejected activation of {name}"), err=True)
        raise SystemExit(1)


@versions.command()
@click.argument("name")
@click.pass_obj
def deactivate(settings: CoreSettings, name: str) -> None:
    """Deactivate a version."""

    async def _deactivate(core: FrpcCore) -> None:
        await core.deactivate(name)

    run_with_core(settings, _deactivate)
    click.echo(style_success(f"Deactivated {name}"))


@versions.command()
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_obj
def delete(settings: CoreSettings, name: str, yes: bool) -> None:
    """Delete a downloaded version (stops frpc if it is the active one)."""
    if not yes:
        click.confirm(f"Delete {name}?", abort=True)

    async def _delete(core: FrpcCore) -> None:
        await core.delete_version(name)

    run_with_core(settings, _delete)
    click.echo(style_success(f"Deleted {name}"))
