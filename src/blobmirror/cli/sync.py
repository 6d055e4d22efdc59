"""Sync command for the blobmirror CLI.

Commands:
- sync: Mirror a remote container onto a local directory
"""

from __future__ import annotations

import logging
import sys
from datetime import timedelta
from pathlib import Path
from typing import Any

import click

from blobmirror.cli.config import load_config
from blobmirror.core.config import DEFAULT_MAX_TRANSFERS

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure the blobmirror logger.

    Warnings go to stderr (everything with --verbose); --log-file receives
    INFO and above.

    Args:
        verbose: Log DEBUG messages to the console.
        log_file: Optional file receiving the log as well.
    """
    formatter = logging.Formatter(LOG_FORMAT)

    blobmirror_logger = logging.getLogger("blobmirror")
    for handler in blobmirror_logger.handlers[:]:
        blobmirror_logger.removeHandler(handler)
        handler.close()
    blobmirror_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    blobmirror_logger.propagate = False

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    blobmirror_logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        blobmirror_logger.addHandler(file_handler)


def format_elapsed(seconds: float) -> str:
    """Format a duration as H:MM:SS."""
    return str(timedelta(seconds=int(seconds)))


@click.command()
@click.option(
    "--path", "-p", "local_path",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="BLOBMIRROR_PATH",
    help="Local directory where the mirror is stored.",
)
@click.option(
    "--container", "-c",
    envvar="BLOBMIRROR_CONTAINER",
    help="Remote container (bucket) to mirror.",
)
@click.option(
    "--source-type",
    type=click.Choice(["local", "s3"]),
    envvar="BLOBMIRROR_SOURCE_TYPE",
    help="Kind of remote store (default: local).",
)
@click.option(
    "--source-root",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="BLOBMIRROR_SOURCE_ROOT",
    help="Directory holding the containers of a local source.",
)
@click.option("--endpoint-url", envvar="BLOBMIRROR_S3_ENDPOINT", help="S3 endpoint URL.")
@click.option("--access-key", envvar="BLOBMIRROR_S3_ACCESS_KEY", help="S3 access key ID.")
@click.option("--secret-key", envvar="BLOBMIRROR_S3_SECRET_KEY", help="S3 secret access key.")
@click.option("--region", envvar="BLOBMIRROR_S3_REGION", help="S3 region.")
@click.option(
    "--downloads", "-d",
    type=click.IntRange(min=1),
    envvar="BLOBMIRROR_DOWNLOADS",
    help=f"Number of files to download simultaneously (default: {DEFAULT_MAX_TRANSFERS}).",
)
@click.option(
    "--ignore-after",
    type=click.DateTime(),
    help="Skip remote items modified after this UTC date.",
)
@click.option(
    "--index-path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="SQLite index file (default: <path>/.blobmirror/<container>.sqlite).",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug messages.")
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Also write the log to this file.",
)
@click.option("--no-progress", is_flag=True, help="Disable progress output.")
def sync(
    local_path: Path | None,
    container: str | None,
    source_type: str | None,
    source_root: Path | None,
    endpoint_url: str | None,
    access_key: str | None,
    secret_key: str | None,
    region: str | None,
    downloads: int | None,
    ignore_after: Any,
    index_path: Path | None,
    verbose: bool,
    log_file: Path | None,
    no_progress: bool,
) -> None:
    """Mirror a remote container onto a local directory.

    New and modified objects are downloaded; superseded local copies are kept
    with a [MODIFIED ...] marker and objects deleted remotely are tombstoned
    with a [DELETED ...] marker.
    """
    from blobmirror.cli.progress import ProgressPrinter
    from blobmirror.core.config import MirrorConfig
    from blobmirror.core.timestamps import ensure_utc
    from blobmirror.remote import create_source
    from blobmirror.sync import MirrorEngine

    config = load_config()
    setup_logging(verbose, log_file)

    local_path = local_path or (Path(config["path"]) if config.get("path") else None)
    container = container or config.get("container")
    if local_path is None or not container:
        click.echo("Error: --path and --container are required.", err=True)
        sys.exit(1)

    source_config = {
        "type": source_type or config.get("source_type") or "local",
        "root": source_root or config.get("source_root"),
        "endpoint_url": endpoint_url or config.get("endpoint_url"),
        "access_key": access_key or config.get("access_key"),
        "secret_key": secret_key or config.get("secret_key"),
        "region": region or config.get("region"),
    }

    try:
        mirror_config = MirrorConfig(
            local_root=local_path,
            container=container,
            max_transfers=downloads or int(config.get("downloads") or DEFAULT_MAX_TRANSFERS),
            ignore_modified_after=ensure_utc(ignore_after) if ignore_after else None,
            index_path=index_path,
        )
        source = create_source(source_config)
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    engine = MirrorEngine(mirror_config, source)
    printer = ProgressPrinter(engine)

    click.echo(f"Mirroring {mirror_config.container} from {source.location}")
    click.echo(f"Local folder: {mirror_config.local_root}")
    click.echo("Scanning and processing remote items")

    if not no_progress:
        printer.start()
    try:
        result = engine.run()
    finally:
        if not no_progress:
            printer.stop()

    if no_progress:
        click.echo(result.stats.summary())
    if result.fatal_error:
        click.echo(click.style(f"\nListing failed: {result.fatal_error}", fg="red"), err=True)
    elif result.stats.total.count == 0:
        click.echo(click.style("\nNothing listed, no deletion check was done", fg="yellow"))
    elif not result.deletions_checked:
        click.echo(click.style("\nErrors during scan, no deletion check was done", fg="yellow"))

    click.echo(f"\nDone in {format_elapsed(result.elapsed)}")
    sys.exit(result.exit_code)
