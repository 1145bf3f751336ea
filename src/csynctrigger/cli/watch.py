"""Watch command for the csynctrigger CLI.

Commands:
- watch: Run the event source alone and print (or queue) changed paths
"""

from __future__ import annotations

import contextlib
import sys
import threading
from pathlib import Path
from typing import Any

import click

from csynctrigger.cli.config import build_settings, setup_logging
from csynctrigger.cli.options import PASSTHROUGH_CONTEXT, logging_options, source_options
from csynctrigger.core.config import load_sync_config, split_server_options
from csynctrigger.core.errors import ConfigError
from csynctrigger.sync import EventQueue, ExclusionFilter, FileWatcher


@click.command(context_settings=PASSTHROUGH_CONTEXT)
@source_options
@logging_options
@click.option(
    "--append/--no-append",
    default=False,
    help="Append accepted paths to the queue file for a separate controller.",
)
@click.option("--show-excluded", is_flag=True, help="Also print excluded paths.")
@click.argument("csync_args", nargs=-1, type=click.UNPROCESSED)
def watch(
    csync_args: tuple[str, ...],
    append: bool,
    show_excluded: bool,
    log_file: str | None,
    verbose: bool,
    settings_file: str | None,
    **options: Any,
) -> None:
    """Watch the csync2 include locations and print changed paths.

    Useful to check which events a csync2 configuration produces. With
    --append the paths are also written to the queue file, so the event
    source can run as a process of its own.
    """
    setup_logging(Path(log_file) if log_file else None, verbose)

    try:
        settings = build_settings(options, Path(settings_file) if settings_file else None)
        server_options = split_server_options(csync_args)
        group = load_sync_config(settings.csync_config, this_node=server_options.node)
        group.require_includes()
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f" INC: {' '.join(group.includes)}")
    click.echo(f" EXC: {' '.join(group.excludes)}")

    def on_path(path: str, accepted: bool) -> None:
        if accepted:
            click.echo(path)
        elif show_excluded:
            click.echo(f"EXCLUDED: {path}")

    queue = EventQueue(settings.queue_file) if append else None
    try:
        with contextlib.ExitStack() as stack:
            if queue is not None:
                stack.enter_context(queue)
            stack.enter_context(
                FileWatcher(
                    group.includes,
                    queue,
                    ExclusionFilter(group.excludes),
                    kinds=settings.event_kinds,
                    on_path=on_path,
                )
            )
            threading.Event().wait()
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
