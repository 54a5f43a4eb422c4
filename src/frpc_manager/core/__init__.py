"""State reconciliation core: catalog, downloads, activation, process, logs."""

from .activation import ActivationStateMachine
from .app import FrpcCore, get_core, set_core
from .catalog import VersionCatalog
from .downloads import DownloadCoordinator
from .log_sink import LogSink
from .notifier import Notifier
from .stores import ConfigStore, ProxyStore
from .supervisor import ProcessSupervisor

__all__ = [
    "ActivationStateMachine",
    "ConfigStore",
    "DownloadCoordinator",
    "FrpcCore",
    "LogSink",
    "Notifier",
    "ProcessSupervisor",
    "ProxyStore",
    "VersionCatalog",
    "get_core",
    "set_core",
]
