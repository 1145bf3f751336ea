"""Shared click options for csynctrigger commands.

csync2 flags such as -c or -v are passed through to csync2, so options
defined here have no short forms.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import click

F = TypeVar("F", bound=Callable[..., Any])

# Commands taking csync2 passthrough arguments
PASSTHROUGH_CONTEXT = {"ignore_unknown_options": True, "allow_interspersed_args": False}


def _apply(func: F, options: list[Callable[[F], F]]) -> F:
    for option in reversed(options):
        func = option(func)
    return func


def source_options(func: F) -> F:
    """Options locating the csync2 config and the queue."""
    return _apply(func, [
        click.option(
            "--settings",
            "settings_file",
            type=click.Path(dir_okay=False),
            envvar="CSYNCTRIGGER_SETTINGS",
            default=None,
            help="JSON settings file (default: ~/.csynctrigger/settings.json).",
        ),
        click.option(
            "--csync-config",
            type=click.Path(dir_okay=False),
            envvar="CSYNCTRIGGER_CSYNC_CONFIG",
            default=None,
            help="csync2 configuration file (default: /etc/csync2/csync2.cfg).",
        ),
        click.option(
            "--queue-file",
            type=click.Path(dir_okay=False),
            envvar="CSYNCTRIGGER_QUEUE_FILE",
            default=None,
            help="Event queue file.",
        ),
        click.option(
            "--events",
            "event_kinds",
            envvar="CSYNCTRIGGER_EVENTS",
            default=None,
            help="Comma separated event kinds (created,modified,deleted,moved,closed).",
        ),
    ])


def threshold_options(func: F) -> F:
    """Options for the coordinator thresholds and the csync2 server."""
    return _apply(func, [
        click.option(
            "--status-log",
            type=click.Path(dir_okay=False),
            envvar="CSYNCTRIGGER_STATUS_LOG",
            default=None,
            help="File receiving the csync2 server output.",
        ),
        click.option(
            "--csync-binary",
            envvar="CSYNCTRIGGER_CSYNC_BINARY",
            default=None,
            help="csync2 executable (default: csync2).",
        ),
        click.option(
            "--check-interval",
            type=float,
            envvar="CSYNCTRIGGER_CHECK_INTERVAL",
            default=None,
            help="Seconds between queue checks (default: 0.5).",
        ),
        click.option(
            "--full-sync-interval",
            type=float,
            envvar="CSYNCTRIGGER_FULL_SYNC_INTERVAL",
            default=None,
            help="Seconds between regular full syncs, 0 disables (default: 3600).",
        ),
        click.option(
            "--reset-line-count",
            type=int,
            envvar="CSYNCTRIGGER_RESET_LINE_COUNT",
            default=None,
            help="Reset the queue after reading this many lines (default: 200000).",
        ),
        click.option(
            "--batch-size-threshold",
            type=int,
            envvar="CSYNCTRIGGER_BATCH_SIZE_THRESHOLD",
            default=None,
            help="Changed files in one batch that trigger a full sync (default: 15000).",
        ),
        click.option(
            "--parallel-updates/--sequential-updates",
            default=None,
            envvar="CSYNCTRIGGER_PARALLEL_UPDATES",
            help="Update peers in parallel (default) or in sequence.",
        ),
        click.option(
            "--quiet-timeout",
            type=float,
            envvar="CSYNCTRIGGER_QUIET_TIMEOUT",
            default=None,
            help="Seconds to wait for the csync2 server to go quiet, 0 waits forever (default: 3600).",
        ),
        click.option(
            "--collapse-nested/--no-collapse-nested",
            default=None,
            envvar="CSYNCTRIGGER_COLLAPSE_NESTED",
            help="Drop queued paths below another queued directory.",
        ),
    ])


def logging_options(func: F) -> F:
    """Options for log output."""
    return _apply(func, [
        click.option(
            "--log-file",
            type=click.Path(dir_okay=False),
            envvar="CSYNCTRIGGER_LOG_FILE",
            default=None,
            help="Also write logs to this file.",
        ),
        click.option("--verbose", is_flag=True, help="Show debug messages."),
    ])
