"""Backend access: command facade protocols and their implementations."""

from .facade import CommandFacade, ConfigCommands, ProcessCommands, VersionCommands
from .http_client import HttpCommandFacade
from .runner import AgentRunner

__all__ = [
    "AgentRunner",
    "CommandFacade",
    "ConfigCommands",
    "HttpCommandFacade",
    "ProcessCommands",
    "VersionCommands",
]
