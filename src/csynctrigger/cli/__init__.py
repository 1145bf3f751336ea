"""Command-line interface for csynctrigger.

This module provides the main CLI entry point and assembles all commands.

Commands:
- run: Start the csync2 server, watch for changes and trigger syncs
- watch: Run the event source alone
- show-config: Print the effective configuration
"""

from __future__ import annotations

import click

from csynctrigger.cli.config import (
    Settings,
    build_settings,
    get_config_dir,
    get_settings_file,
    load_settings,
    setup_logging,
)
from csynctrigger.cli.run import run, show_config
from csynctrigger.cli.watch import watch


@click.group()
@click.version_option(package_name="csynctrigger")
def cli() -> None:
    """csynctrigger - Trigger csync2 syncs from filesystem events."""


cli.add_command(run)
cli.add_command(watch)
cli.add_command(show_config)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "Settings",
    "build_settings",
    "get_config_dir",
    "get_settings_file",
    "load_settings",
    "setup_logging",
]
