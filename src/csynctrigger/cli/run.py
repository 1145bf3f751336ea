"""Controller commands for the csynctrigger CLI.

Commands:
- run: Start the csync2 server, watch for changes and trigger syncs
- show-config: Print the effective configuration
"""

from __future__ import annotations

import contextlib
import logging
import signal
import socket
import sys
from pathlib import Path
from typing import Any

import click

from csynctrigger.cli.config import Settings, build_settings, setup_logging
from csynctrigger.cli.options import (
    PASSTHROUGH_CONTEXT,
    logging_options,
    source_options,
    threshold_options,
)
from csynctrigger.core.config import (
    ServerOptions,
    SyncGroupConfig,
    load_sync_config,
    split_server_options,
)
from csynctrigger.core.errors import ConfigError, SyncServerError
from csynctrigger.sync import (
    BatchAggregator,
    CoordinatorContext,
    CsyncEngine,
    CsyncServer,
    EventQueue,
    ExclusionFilter,
    FileWatcher,
    QuiescenceMonitor,
    SyncCoordinator,
    SyncTrigger,
)

logger = logging.getLogger(__name__)


def _settings_from_options(options: dict[str, Any]) -> Settings:
    settings_file = options.pop("settings_file", None)
    return build_settings(options, Path(settings_file) if settings_file else None)


def _load_group(settings: Settings, server_options: ServerOptions) -> SyncGroupConfig:
    # csync2 falls back to the local hostname when -N is not given
    this_node = server_options.node or socket.gethostname()
    return load_sync_config(settings.csync_config, this_node=this_node)


def echo_configuration(
    settings: Settings,
    csync_args: tuple[str, ...],
    server_options: ServerOptions,
    group: SyncGroupConfig | None = None,
) -> None:
    """Print the settings banner."""
    t = settings.thresholds
    click.echo(f"Passed options: {' '.join(csync_args)}")
    click.echo()
    click.echo("* SETTINGS")
    click.echo(f"  check_interval       = {t.check_interval}s")
    click.echo(f"  full_sync_interval   = {t.full_sync_interval}s")
    click.echo(f"  reset_line_count     = {t.reset_line_count}")
    click.echo(f"  batch_size_threshold = {t.batch_size_threshold}")
    click.echo(f"  parallel_updates     = {t.parallel_updates}")
    click.echo(f"  quiet_timeout        = {t.quiet_timeout}s")
    click.echo(f"  collapse_nested      = {t.collapse_nested}")
    click.echo(f"  events               = {','.join(sorted(k.value for k in settings.event_kinds))}")
    click.echo(f"  queue_file           = {settings.queue_file}")
    click.echo(f"  status_log           = {settings.status_log}")
    click.echo()
    click.echo("* SERVER")
    click.echo(f"  Options: {' '.join(server_options.server_args)}")
    if group is not None:
        click.echo()
        click.echo("* CONFIG")
        click.echo(f"  Peers:    {' '.join(group.peers)}")
        click.echo(f"  Includes: {' '.join(group.includes)}")
        click.echo(f"  Excludes: {' '.join(group.excludes)}")


@click.command(context_settings=PASSTHROUGH_CONTEXT)
@source_options
@threshold_options
@logging_options
@click.argument("csync_args", nargs=-1, type=click.UNPROCESSED)
def run(
    csync_args: tuple[str, ...],
    log_file: str | None,
    verbose: bool,
    **options: Any,
) -> None:
    """Watch csync2 directories and sync changes via csync2.

    CSYNC_ARGS are passed to every csync2 command. The hostname (-N) and
    database (-D) options are also given to the csync2 server.

    Example:

        csynctrigger run --check-interval 1 -- -N node1 -D /var/lib/csync2
    """
    setup_logging(Path(log_file) if log_file else None, verbose)

    try:
        settings = _settings_from_options(options)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    server_options = split_server_options(csync_args)
    if not server_options.node:
        logger.warning("No hostname specified, csync2 will use %s", socket.gethostname())

    try:
        group = _load_group(settings, server_options)
        echo_configuration(settings, csync_args, server_options, group)
        group.require_includes()
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    click.echo()

    thresholds = settings.thresholds
    queue = EventQueue(settings.queue_file)
    context = CoordinatorContext()
    monitor = QuiescenceMonitor(
        settings.status_log,
        poll_interval=thresholds.check_interval,
        timeout=thresholds.quiet_timeout,
    )
    engine = CsyncEngine(csync_args, binary=settings.csync_binary)
    trigger = SyncTrigger(
        engine,
        monitor,
        queue,
        context.cursor,
        peers=group.peers,
        parallel_updates=thresholds.parallel_updates,
    )
    coordinator = SyncCoordinator(
        queue,
        trigger,
        BatchAggregator(thresholds.batch_size_threshold, collapse=thresholds.collapse_nested),
        thresholds,
        context,
    )

    # SIGTERM tears everything down like Ctrl+C
    previous_handler = signal.signal(signal.SIGTERM, signal.default_int_handler)
    try:
        with contextlib.ExitStack() as stack:
            stack.enter_context(
                CsyncServer(
                    server_options.server_args,
                    settings.status_log,
                    binary=settings.csync_binary,
                    startup_delay=thresholds.server_startup_delay,
                )
            )
            stack.enter_context(queue)
            stack.enter_context(
                FileWatcher(
                    group.includes,
                    queue,
                    ExclusionFilter(group.excludes),
                    kinds=settings.event_kinds,
                )
            )

            # Full sync after the watcher started so no change is missed
            coordinator.start_up()
            click.echo("Watching for changes... (Ctrl+C to stop)")
            coordinator.run()
    except (ConfigError, SyncServerError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nStopping...")
    finally:
        signal.signal(signal.SIGTERM, previous_handler)


@click.command("show-config", context_settings=PASSTHROUGH_CONTEXT)
@source_options
@threshold_options
@click.argument("csync_args", nargs=-1, type=click.UNPROCESSED)
def show_config(csync_args: tuple[str, ...], **options: Any) -> None:
    """Show the effective settings, peers and locations.

    Exits with status 1 if no include locations are configured.
    """
    try:
        settings = _settings_from_options(options)
        server_options = split_server_options(csync_args)
        group = _load_group(settings, server_options)
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    echo_configuration(settings, csync_args, server_options, group)

    try:
        group.require_includes()
    except ConfigError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
