"""Configuration utilities for the csynctrigger CLI.

Settings are resolved in this order (first wins):
1. Command-line options
2. CSYNCTRIGGER_* environment variables (handled by click)
3. The JSON settings file (~/.csynctrigger/settings.json by default)
4. Built-in defaults
"""

from __future__ import annotations

import json
import logging
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from csynctrigger.core.config import (
    DEFAULT_CSYNC_BINARY,
    DEFAULT_CSYNC_CONFIG,
    ThresholdConfig,
)
from csynctrigger.core.errors import ConfigError
from csynctrigger.sync.watcher import DEFAULT_EVENT_KINDS, ChangeKind, parse_event_kinds

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Settings file keys that are not thresholds
PATH_KEYS = ("csync_config", "queue_file", "status_log", "csync_binary", "event_kinds")


def get_config_dir() -> Path:
    """Get the configuration directory for csynctrigger.

    Returns:
        Path to ~/.csynctrigger.
    """
    return Path.home() / ".csynctrigger"


def get_settings_file() -> Path:
    """Get the path to the settings file."""
    return get_config_dir() / "settings.json"


def load_settings(path: Path | None = None) -> dict[str, Any]:
    """Load settings from a JSON file.

    Args:
        path: Settings file (default: get_settings_file()). A missing file
            yields no settings.

    Raises:
        ConfigError: If the file is not a JSON object or has unknown keys.
    """
    settings_file = path or get_settings_file()
    if not settings_file.exists():
        return {}

    try:
        data = json.loads(settings_file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Cannot read settings file {settings_file}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Settings file {settings_file} must contain a JSON object")

    unknown = set(data) - ThresholdConfig.field_names() - set(PATH_KEYS)
    if unknown:
        raise ConfigError(f"Unknown settings in {settings_file}: {', '.join(sorted(unknown))}")
    return dict(data)


@dataclass
class Settings:
    """Effective settings of a controller run."""

    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    csync_config: Path = DEFAULT_CSYNC_CONFIG
    queue_file: Path = field(default_factory=lambda: get_config_dir() / "queue.log")
    status_log: Path = field(default_factory=lambda: get_config_dir() / "csync_server.log")
    csync_binary: str = DEFAULT_CSYNC_BINARY
    event_kinds: frozenset[ChangeKind] = DEFAULT_EVENT_KINDS


def build_settings(
    overrides: Mapping[str, Any],
    settings_file: Path | None = None,
) -> Settings:
    """Merge command-line values over the settings file.

    Args:
        overrides: Values from click; None means "not given".
        settings_file: Settings file to read.

    Raises:
        ConfigError: On invalid settings.
    """
    merged: dict[str, Any] = load_settings(settings_file)
    merged.update({k: v for k, v in overrides.items() if v is not None})

    settings = Settings(thresholds=ThresholdConfig.from_mapping(merged))
    if merged.get("csync_config"):
        settings.csync_config = Path(merged["csync_config"]).expanduser()
    if merged.get("queue_file"):
        settings.queue_file = Path(merged["queue_file"]).expanduser()
    if merged.get("status_log"):
        settings.status_log = Path(merged["status_log"]).expanduser()
    if merged.get("csync_binary"):
        settings.csync_binary = str(merged["csync_binary"])
    if merged.get("event_kinds"):
        try:
            settings.event_kinds = parse_event_kinds(merged["event_kinds"])
        except ValueError as e:
            raise ConfigError(str(e)) from e

    if settings.queue_file.resolve() == settings.status_log.resolve():
        raise ConfigError("Queue file and status log must be different files")
    return settings


def setup_logging(log_path: Path | None = None, verbose: bool = False) -> None:
    """Configure logging to stdout and optionally to a file.

    Args:
        log_path: Optional log file.
        verbose: Log DEBUG messages too.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    root_logger = logging.getLogger("csynctrigger")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setFormatter(formatter)
    root_logger.addHandler(stdout_handler)

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
