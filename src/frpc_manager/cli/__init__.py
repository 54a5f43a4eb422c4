"""Command-line interface for frpc-manager.

Provides commands for inspecting status, managing versions, exporting the
agent configuration and running the agent in the foreground.
"""

from .main import cli, main

__all__ = ["cli", "main"]
