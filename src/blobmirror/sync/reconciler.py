"""Deletion reconciliation.

This module provides:
- DeletionReconciler: Tombstones local files whose remote object is gone

Two independent passes run after a complete listing:
    index pass  every live index record not listed in this run is stamped
                delete_detected and its file renamed with a DELETED marker
                (or an .empty placeholder is created when the file is gone)
    disk pass   every unmarked file under the container directory that was
                not listed in this run is renamed with a DELETED marker

Files may vanish concurrently (transfer workers still run); a missing file
means nothing to do.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import TYPE_CHECKING

from blobmirror.core.naming import (
    EMPTY_PLACEHOLDER_SUFFIX,
    TEMP_SUFFIX,
    deleted_marker,
    has_marker,
)
from blobmirror.core.timestamps import utc_now
from blobmirror.sync.stats import RunStatistics
from blobmirror.sync.types import (
    ACTIVITY_DISK_DELETE,
    ACTIVITY_INDEX_DELETE,
    ActivityBuffer,
    ExpectedNames,
)

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

    from blobmirror.state import IndexRecord, IndexStore

logger = logging.getLogger(__name__)


class DeletionReconciler:
    """Detects and tombstones files deleted remotely.

    Usage:
        reconciler = DeletionReconciler(index, local_root, container, expected)
        reconciler.run()
    """

    def __init__(
        self,
        index: IndexStore,
        local_root: Path,
        container: str,
        expected: ExpectedNames,
        stats: RunStatistics | None = None,
        *,
        activity: ActivityBuffer | None = None,
        workers: int = 8,
    ) -> None:
        """Initialize the reconciler.

        Args:
            index: Index store of prior runs.
            local_root: Mirror root directory.
            container: Container whose directory the disk pass walks.
            expected: Local names listed during this run.
            stats: Run counters.
            activity: Receives progress characters.
            workers: Threads used by each pass.
        """
        self._index = index
        self._local_root = Path(local_root)
        self._container = container
        self._expected = expected
        self._stats = stats or RunStatistics()
        self._activity = activity or ActivityBuffer()
        self._workers = workers

    def run(self, now: datetime | None = None) -> None:
        """Run the index pass, then the disk pass, with one timestamp."""
        now = now or utc_now()
        logger.info("Tombstoning files known in the index but not listed remotely")
        self.reconcile_index(now)
        logger.info("Tombstoning local files not listed remotely")
        self.reconcile_disk(now)

    # === Index pass ===

    def reconcile_index(self, now: datetime) -> int:
        """Tombstone live records missing from the listing.

        Returns:
            Number of records tombstoned.
        """
        missing = [
            record for record in self._index.list_all(exclude_deleted=True)
            if record.local_name not in self._expected
        ]
        with ThreadPoolExecutor(max_workers=self._workers) as executor:
            list(executor.map(lambda r: self._tombstone_record(r, now), missing))
        return len(missing)

    def _tombstone_record(self, record: IndexRecord, now: datetime) -> None:
        self._activity.mark(ACTIVITY_INDEX_DELETE)
        record.delete_detected = now
        self._index.update(record)

        path = self._local_root / record.local_name
        marker = path.with_name(deleted_marker(path.name, now))
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            size = None

        try:
            if size is not None:
                os.replace(path, marker)
                self._stats.deleted.add(size)
                logger.debug(f"Tombstoned {record.local_name}")
            elif path.parent.is_dir():
                placeholder = marker.with_name(marker.name + EMPTY_PLACEHOLDER_SUFFIX)
                placeholder.touch()
                self._stats.deleted.add(0)
                logger.debug(f"Created placeholder for missing {record.local_name}")
        except FileNotFoundError:
            logger.debug(f"Nothing to tombstone for {record.local_name}")
        except OSError as e:
            self._stats.exceptions.increment()
            logger.warning(f"Could not tombstone {path}: {e}")

    # === Disk pass ===

    def reconcile_disk(self, now: datetime) -> int:
        """Tombstone unmarked local files missing from the listing.

        Returns:
            Number of files tombstoned.
        """
        container_root = self._local_root / self._container
        if not container_root.is_dir():
            return 0
        with ThreadPoolExecutor(max_workers=self._workers) as executor:
            results = executor.map(
                lambda p: self._check_local_file(p, now),
                self._walk(container_root),
            )
            return sum(1 for tombstoned in results if tombstoned)

    @staticmethod
    def _walk(root: Path) -> Iterator[Path]:
        for dirpath, _dirnames, filenames in os.walk(root):
            for filename in filenames:
                if has_marker(filename) or filename.endswith(TEMP_SUFFIX):
                    continue
                yield Path(dirpath) / filename

    def _check_local_file(self, path: Path, now: datetime) -> bool:
        try:
            size = path.stat().st_size
        except FileNotFoundError:
            return False
        self._stats.local.add(size)

        local_name = path.relative_to(self._local_root).as_posix()
        if local_name in self._expected:
            return False

        self._activity.mark(ACTIVITY_DISK_DELETE)
        try:
            os.replace(path, path.with_name(deleted_marker(path.name, now)))
        except FileNotFoundError:
            return False
        except OSError as e:
            self._stats.exceptions.increment()
            logger.warning(f"Could not tombstone {path}: {e}")
            return False
        self._stats.deleted.add(size)
        logger.debug(f"Tombstoned unknown local file {local_name}")
        return True
