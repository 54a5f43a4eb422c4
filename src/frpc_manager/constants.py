"""Application-wide constants for frpc-manager.

Constants that define application behavior.
For user-configurable settings per installation, see config.py.
"""

__all__ = [
    # Application identity
    "APP_NAME",
    "AGENT_NAME",
    # Log sink
    "DEFAULT_MAX_LOG_ENTRIES",
    # Downloads
    "DEFAULT_DOWNLOAD_GRACE_SECONDS",
    "PROGRESS_COMPLETE",
    # Backend
    "DEFAULT_BACKEND_URL",
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "MIN_HTTP_TIMEOUT_SECONDS",
    "MAX_HTTP_TIMEOUT_SECONDS",
    "INVOKE_PATH_PREFIX",
    "EVENTS_PATH",
    # Local runner
    "RUNNER_STOP_TIMEOUT_SECONDS",
]

# ============================================================================
# Application Identity
# ============================================================================

# Application name used for directory names, logger names, etc.
APP_NAME: str = "frpc-manager"

# The supervised agent (log lines, messages)
AGENT_NAME: str = "frpc"

# ============================================================================
# Log Sink
# ============================================================================

# Ring buffer capacity; oldest entries are evicted past this size
DEFAULT_MAX_LOG_ENTRIES: int = 5000

# ============================================================================
# Downloads
# ============================================================================

# Delay between the 100% event and its side effects (installed flag,
# progress entry removal, notification) so observers can render completion
DEFAULT_DOWNLOAD_GRACE_SECONDS: float = 0.5

PROGRESS_COMPLETE: int = 100

# ============================================================================
# Backend
# ============================================================================

DEFAULT_BACKEND_URL: str = "http://127.0.0.1:7410"

DEFAULT_HTTP_TIMEOUT_SECONDS: float = 30.0

# Timeout validation range (seconds)
MIN_HTTP_TIMEOUT_SECONDS: float = 1.0
MAX_HTTP_TIMEOUT_SECONDS: float = 300.0

# Commands are posted to {INVOKE_PATH_PREFIX}/{command}
INVOKE_PATH_PREFIX: str = "/invoke"

# NDJSON event stream ({"topic": ..., "payload": ...} per line)
EVENTS_PATH: str = "/events"

# ============================================================================
# Local Runner
# ============================================================================

# Grace period between terminate() and kill() when stopping the agent
RUNNER_STOP_TIMEOUT_SECONDS: float = 5.0
