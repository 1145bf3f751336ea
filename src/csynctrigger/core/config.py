"""Configuration classes and parsers for csynctrigger.

This module provides:
- ThresholdConfig: Process-lifetime tuning of the coordinator
- SyncGroupConfig: Includes, excludes and peers read from csync2.cfg
- ServerOptions: csync2 server options extracted from passthrough arguments
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from csynctrigger.core.errors import ConfigError

# Defaults of the long-running controller
DEFAULT_CHECK_INTERVAL = 0.5  # seconds, fractions allowed
DEFAULT_FULL_SYNC_INTERVAL = 60 * 60  # seconds, 0 disables
DEFAULT_RESET_LINE_COUNT = 200_000
DEFAULT_BATCH_SIZE_THRESHOLD = 15_000
DEFAULT_QUIET_TIMEOUT = 60 * 60  # seconds, 0 waits forever
DEFAULT_SERVER_STARTUP_DELAY = 0.5

DEFAULT_CSYNC_CONFIG = Path("/etc/csync2/csync2.cfg")
DEFAULT_CSYNC_BINARY = "csync2"


@dataclass(frozen=True)
class ThresholdConfig:
    """Tuning knobs for the coordinator loop.

    Attributes:
        check_interval: Seconds between queue reads (also the poll period
            of the quiescence monitor).
        full_sync_interval: Seconds between periodic full syncs (0 = off).
        reset_line_count: Queue lines read before the queue is reset.
        batch_size_threshold: Distinct paths in one batch that trigger a
            reset and full sync instead of an incremental sync.
        parallel_updates: Update each peer in its own csync2 process.
        quiet_timeout: Maximum seconds to wait for the server to go quiet
            (0 = wait forever).
        collapse_nested: Drop batch entries below another queued directory.
        server_startup_delay: Seconds to wait before checking the server
            process is still alive.
    """

    check_interval: float = DEFAULT_CHECK_INTERVAL
    full_sync_interval: float = DEFAULT_FULL_SYNC_INTERVAL
    reset_line_count: int = DEFAULT_RESET_LINE_COUNT
    batch_size_threshold: int = DEFAULT_BATCH_SIZE_THRESHOLD
    parallel_updates: bool = True
    quiet_timeout: float = DEFAULT_QUIET_TIMEOUT
    collapse_nested: bool = False
    server_startup_delay: float = DEFAULT_SERVER_STARTUP_DELAY

    def __post_init__(self) -> None:
        """Validate values."""
        if self.check_interval <= 0:
            raise ConfigError(f"check_interval must be positive, got {self.check_interval}")
        for name in (
            "full_sync_interval",
            "reset_line_count",
            "batch_size_threshold",
            "quiet_timeout",
            "server_startup_delay",
        ):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative, got {getattr(self, name)}")

    @classmethod
    def field_names(cls) -> frozenset[str]:
        """Names of all configurable fields."""
        return frozenset(f.name for f in fields(cls))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ThresholdConfig:
        """Build a config from a mapping, ignoring unrelated keys.

        Args:
            data: Settings mapping (e.g. a loaded settings file). Values set
                to None are treated as absent.

        Raises:
            ConfigError: If a value has the wrong type or is out of range.
        """
        known = {
            key: value
            for key, value in data.items()
            if key in cls.field_names() and value is not None
        }
        try:
            return cls(**known)
        except TypeError as e:
            raise ConfigError(f"Invalid threshold settings: {e}") from e


@dataclass
class SyncGroupConfig:
    """Locations and peers read from a csync2 configuration file."""

    includes: list[str] = field(default_factory=list)
    excludes: list[str] = field(default_factory=list)
    peers: list[str] = field(default_factory=list)

    def require_includes(self) -> None:
        """Raise ConfigError when there is nothing to watch."""
        if not self.includes:
            raise ConfigError("No include locations found")


def _strip_value(value: str) -> str:
    """Strip whitespace and the trailing ';' from a config value."""
    value = value.strip()
    if value.endswith(";"):
        value = value[:-1]
    return value.strip()


def parse_sync_config(
    lines: Iterable[str],
    this_node: str | None = None,
) -> SyncGroupConfig:
    """Parse csync2 ``key value;`` lines.

    The first whitespace-separated token is the key and the rest of the line
    is the value. Comment lines (key starting with '#') and blank lines are
    ignored, as are keys other than include, exclude and host.

    Args:
        lines: Lines of the configuration file.
        this_node: Name of this node; host entries starting with it are not
            peers.

    Returns:
        Parsed includes, excludes and peers, in file order.
    """
    config = SyncGroupConfig()

    for raw in lines:
        parts = raw.strip().split(None, 1)
        if not parts or parts[0].startswith("#"):
            continue

        key = parts[0]
        value = _strip_value(parts[1]) if len(parts) > 1 else ""
        if not value:
            continue

        if key == "include":
            config.includes.append(value)
        elif key == "exclude":
            config.excludes.append(value)
        elif key == "host":
            for name in value.split():
                if this_node and name.startswith(this_node):
                    continue
                config.peers.append(name)

    return config


def load_sync_config(path: Path, this_node: str | None = None) -> SyncGroupConfig:
    """Read and parse a csync2 configuration file.

    Raises:
        ConfigError: If the file cannot be read.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read csync2 config {path}: {e}") from e
    return parse_sync_config(text.splitlines(), this_node=this_node)


@dataclass(frozen=True)
class ServerOptions:
    """csync2 server options found in the passthrough arguments.

    Attributes:
        node: Hostname given with -N, if any.
        database: Database path given with -D, if any.
    """

    node: str | None = None
    database: str | None = None

    @property
    def server_args(self) -> list[str]:
        """Arguments for starting the csync2 server."""
        args: list[str] = []
        if self.node:
            args += ["-N", self.node]
        if self.database:
            args += ["-D", self.database]
        return args


def _option_value(args: list[str], flag: str) -> str | None:
    """Find the value of a short option given as '-X value' or '-Xvalue'."""
    for i, arg in enumerate(args):
        if arg == flag:
            if i + 1 < len(args):
                return args[i + 1]
            return None
        if arg.startswith(flag) and len(arg) > len(flag):
            return arg[len(flag):]
    return None


def split_server_options(args: Iterable[str]) -> ServerOptions:
    """Extract the hostname (-N) and database (-D) options.

    The arguments themselves are left untouched: they are still forwarded
    verbatim to every csync2 command.
    """
    arg_list = list(args)
    return ServerOptions(
        node=_option_value(arg_list, "-N"),
        database=_option_value(arg_list, "-D"),
    )
