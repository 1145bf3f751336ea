"""Core module - Shared configuration, errors and types."""

from csynctrigger.core.config import (
    DEFAULT_CSYNC_BINARY,
    DEFAULT_CSYNC_CONFIG,
    ServerOptions,
    SyncGroupConfig,
    ThresholdConfig,
    load_sync_config,
    parse_sync_config,
    split_server_options,
)
from csynctrigger.core.errors import (
    ConfigError,
    QuiescenceTimeoutError,
    SyncServerError,
    SyncTriggerError,
)
from csynctrigger.core.types import SyncRunState

__all__ = [
    # Config
    "DEFAULT_CSYNC_BINARY",
    "DEFAULT_CSYNC_CONFIG",
    "ServerOptions",
    "SyncGroupConfig",
    "ThresholdConfig",
    "load_sync_config",
    "parse_sync_config",
    "split_server_options",
    # Errors
    "ConfigError",
    "QuiescenceTimeoutError",
    "SyncServerError",
    "SyncTriggerError",
    # Types
    "SyncRunState",
]
