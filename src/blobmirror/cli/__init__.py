"""Command-line interface for blobmirror.

This module provides the main CLI entry point and assembles all commands.

Commands:
- sync: Mirror a remote container onto a local directory
- config: Show or change the defaults of the sync command
"""

from __future__ import annotations

import click

from blobmirror.cli.config import (
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from blobmirror.cli.sync import sync

# Keys of config.json understood by the sync command
CONFIG_KEYS = (
    "path",
    "container",
    "source_type",
    "source_root",
    "endpoint_url",
    "access_key",
    "secret_key",
    "region",
    "downloads",
)


@click.group()
@click.version_option(package_name="blobmirror")
def cli() -> None:
    """blobmirror - Incremental mirror of an object store container."""


@cli.group()
def config() -> None:
    """Show or change sync defaults."""


@config.command("show")
def config_show() -> None:
    """Print the stored defaults."""
    values = load_config()
    if not values:
        click.echo(f"No defaults stored in {get_config_file()}")
        return
    for key in sorted(values):
        shown = "********" if key == "secret_key" else values[key]
        click.echo(f"{key} = {shown}")


@config.command("set")
@click.argument("key", type=click.Choice(CONFIG_KEYS))
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Store a default for the sync command."""
    values = load_config()
    values[key] = value
    save_config(values)
    click.echo(f"Saved {key} to {get_config_file()}")


cli.add_command(sync)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
]
