"""Run configuration for blobmirror.

This module defines the run-level parameters shared by the engine and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

# Run defaults
DEFAULT_MAX_TRANSFERS = 40
DEFAULT_CLASSIFY_WORKERS = 8
DEFAULT_FORCE_MISSING_WINDOW = timedelta(days=30)
DEFAULT_RECENT_MODIFIED_THRESHOLD = timedelta(hours=24)

INDEX_DIR_NAME = ".blobmirror"


@dataclass
class MirrorConfig:
    """Configuration for one mirror run.

    Attributes:
        local_root: Directory that receives the mirrored container.
        container: Remote container (bucket) identifier.
        max_transfers: Ceiling on concurrently running transfer jobs.
        classify_workers: Threads used to classify one listing batch.
        force_missing_window: Recently modified remote items whose local copy
            vanished are downloaded again when within this window.
        recent_modified_threshold: Local files written more recently than this
            are deleted instead of archived when superseded.
        ignore_modified_after: Remote items modified after this instant are
            skipped for this run.
        index_path: SQLite file of the index store (derived when None).
    """

    local_root: Path
    container: str
    max_transfers: int = DEFAULT_MAX_TRANSFERS
    classify_workers: int = DEFAULT_CLASSIFY_WORKERS
    force_missing_window: timedelta = DEFAULT_FORCE_MISSING_WINDOW
    recent_modified_threshold: timedelta = DEFAULT_RECENT_MODIFIED_THRESHOLD
    ignore_modified_after: datetime | None = None
    index_path: Path | None = None

    def __post_init__(self) -> None:
        """Normalize paths and validate limits."""
        self.local_root = Path(self.local_root).expanduser().resolve()
        if not self.container or "/" in self.container.strip("/"):
            raise ValueError(f"Invalid container name: {self.container!r}")
        self.container = self.container.strip("/")
        if self.max_transfers < 1:
            raise ValueError("max_transfers must be at least 1")
        if self.classify_workers < 1:
            raise ValueError("classify_workers must be at least 1")
        if self.index_path is None:
            self.index_path = self.local_root / INDEX_DIR_NAME / f"{self.container}.sqlite"
        else:
            self.index_path = Path(self.index_path).expanduser().resolve()
