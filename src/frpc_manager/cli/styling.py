"""CLI output styling.

- Cyan bold for labels
- Green for success (checkmark), red for errors (cross)
- Dim for neutral/empty states
"""

from __future__ import annotations

__all__ = [
    "style_dim",
    "style_error",
    "style_label",
    "style_state",
    "style_success",
]

import click

from frpc_manager.models import ProcessState

_STATE_COLORS = {
    ProcessState.RUNNING: "green",
    ProcessState.STARTING: "yellow",
    ProcessState.STOPPING: "yellow",
    ProcessState.STOPPED: "red",
}


def style_label(label: str) -> str:
    """Cyan bold label with colon suffix, e.g. "Process:"."""
    return click.style(f"{label}:", fg="cyan", bold=True)


def style_success(message: str) -> str:
    return click.style(f"✓ {message}", fg="green")


def style_error(message: str) -> str:
    return click.style(f"✗ {message}", fg="red")


def style_dim(message: str) -> str:
    return click.style(message, dim=True)


def style_state(state: ProcessState) -> str:
    """Process state colored by health."""
    return click.style(state.value, fg=_STATE_COLORS[state])
