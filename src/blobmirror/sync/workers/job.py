"""Execution of one transfer job.

This module provides:
- DirectoryCache: Lock-guarded set of directories known to exist
- JobRunner: Runs the per-item transfer state machine (New / Modified)

Error handling:
    ObjectNotFoundError  object vanished after listing: logged, counted, job fails
    OSError              local filesystem race: logged, counted, cache cleared
    anything else        counted, zero-byte leftovers removed, re-raised

Re-raised errors are isolated by the worker pool; they never stop other jobs.
"""

from __future__ import annotations

import contextlib
import logging
import os
import threading
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING

from blobmirror.core.config import DEFAULT_RECENT_MODIFIED_THRESHOLD
from blobmirror.core.errors import ObjectNotFoundError
from blobmirror.core.naming import modified_marker
from blobmirror.core.timestamps import utc_now
from blobmirror.sync.probe import DiskFileState, diff_string
from blobmirror.sync.stats import RunStatistics
from blobmirror.sync.types import (
    ACTIVITY_MODIFIED,
    ACTIVITY_NEW,
    ActivityBuffer,
    JobType,
    SyncJob,
)
from blobmirror.sync.wellknown import WELL_KNOWN_CONTENT, WellKnownEntry, is_well_known

if TYPE_CHECKING:
    from blobmirror.remote import RemoteItem, RemoteSource
    from blobmirror.state import IndexStore

logger = logging.getLogger(__name__)


class DirectoryCache:
    """Directories already created during this run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._dirs: set[Path] = set()

    def ensure(self, directory: Path) -> bool:
        """Create a directory (with parents) unless known to exist.

        Returns:
            True if mkdir was called.
        """
        with self._lock:
            if directory in self._dirs:
                return False
            directory.mkdir(parents=True, exist_ok=True)
            self._dirs.add(directory)
            return True

    def clear(self) -> None:
        """Forget all directories (one may have vanished)."""
        with self._lock:
            self._dirs.clear()

    def __contains__(self, directory: object) -> bool:
        with self._lock:
            return directory in self._dirs

    def __len__(self) -> int:
        with self._lock:
            return len(self._dirs)


class JobRunner:
    """Runs sync jobs against a remote source and the index store.

    One runner is shared by all worker threads; its caches are lock-guarded
    and passed in by the owner so they can be inspected in isolation.
    """

    def __init__(
        self,
        source: RemoteSource,
        index: IndexStore,
        stats: RunStatistics | None = None,
        *,
        directories: DirectoryCache | None = None,
        activity: ActivityBuffer | None = None,
        recent_modified_threshold: timedelta = DEFAULT_RECENT_MODIFIED_THRESHOLD,
        well_known: tuple[WellKnownEntry, ...] = WELL_KNOWN_CONTENT,
    ) -> None:
        """Initialize the runner.

        Args:
            source: Remote source to download from.
            index: Index store persisting job results.
            stats: Run counters (a private set is created when None).
            directories: Shared directory-existence cache.
            activity: Receives progress characters.
            recent_modified_threshold: Superseded local files newer than this
                are deleted instead of archived.
            well_known: Trivial content table.
        """
        self._source = source
        self._index = index
        self._stats = stats or RunStatistics()
        self._directories = directories if directories is not None else DirectoryCache()
        self._activity = activity or ActivityBuffer()
        self._recent_threshold = recent_modified_threshold
        self._well_known = well_known

    @property
    def stats(self) -> RunStatistics:
        return self._stats

    @property
    def directories(self) -> DirectoryCache:
        return self._directories

    def run(self, job: SyncJob) -> bool:
        """Execute a job.

        Args:
            job: Classified job.

        Returns:
            True if the local file and the index now match the remote item.

        Raises:
            Exception: Any error other than a vanished object or a local
                filesystem error, after cleanup.
        """
        if job.job_type == JobType.NONE:
            return True

        local = DiskFileState(job.local_path)
        try:
            if job.job_type == JobType.MODIFIED:
                self._activity.mark(ACTIVITY_MODIFIED)
                if self._is_transfer_avoidable(job, local):
                    self._fix_in_place(job, local)
                    return True
                self._set_aside(job, local)
            else:
                self._activity.mark(ACTIVITY_NEW)
            return self._materialize(job, local)

        except ObjectNotFoundError as e:
            self._stats.exceptions.increment()
            logger.warning(f"Swallowed error for {job.local_path}: {e}")
        except OSError as e:
            self._directories.clear()
            self._stats.exceptions.increment()
            logger.warning(f"Swallowed error for {job.local_path}: {e}")
        except Exception:
            self._stats.exceptions.increment()
            self._remove_if_empty(local)
            logger.exception(f"Job failed for {job.local_path}")
            raise
        return False

    def _is_transfer_avoidable(self, job: SyncJob, local: DiskFileState) -> bool:
        """Check if only metadata changed since the last synchronization."""
        item, record = job.item, job.record
        if record.size != item.size or record.content_hash != item.content_hash:
            return False
        if not local.exists:
            return True
        return self._holds(local, item)

    def _fix_in_place(self, job: SyncJob, local: DiskFileState) -> None:
        """Correct the local mtime and persist the record without a transfer."""
        if local.exists:
            local.set_last_modified(job.item.last_modified)
        job.record.update_from_remote(job.item)
        self._index.update(job.record)
        logger.debug(f"Metadata-only change for {job.local_path}")

    def _set_aside(self, job: SyncJob, local: DiskFileState) -> None:
        """Move a superseded local file out of the way.

        Empty and recently written files are deleted; others are archived
        next to the original with a MODIFIED marker.
        """
        if not local.exists:
            return
        try:
            recent_since = utc_now() - self._recent_threshold
            if local.size <= 0 or local.last_modified > recent_since:
                local.delete()
                logger.debug(f"Deleted superseded file {job.local_path}")
            else:
                target = job.local_path.with_name(
                    modified_marker(job.local_path.name, job.item.last_modified)
                )
                os.replace(job.local_path, target)
                logger.info(f"Archived {job.local_path} as {target.name}")
            local.refresh()
        except OSError as e:
            self._stats.exceptions.increment()
            logger.warning(f"Could not set aside {job.local_path}: {e}")

    def _materialize(self, job: SyncJob, local: DiskFileState) -> bool:
        """Bring the remote content to the destination and persist the record."""
        item, record = job.item, job.record

        if is_well_known(item, self._well_known):
            record.mark_downloaded(item)
            self._index.update(record)
            return True

        self._directories.ensure(job.local_path.parent)

        if self._holds(local, item):
            local.set_last_modified(item.last_modified)
            record.mark_downloaded(item)
            self._index.update(record)
            logger.debug(f"Adopted existing file {job.local_path}")
            return True

        self._source.download(item, job.local_path)
        self._stats.downloaded.add(item.size)

        local.refresh()
        local.set_last_modified(item.last_modified)
        if not self._holds(local, item):
            self._remove_if_empty(local)
            self._stats.failed_downloads.increment()
            logger.warning(
                f"Download mismatch {diff_string(local, item)} for {job.local_path} "
                "(changed during run?)"
            )
            return False

        record.mark_downloaded(item)
        self._index.update(record)
        return True

    def _holds(self, local: DiskFileState, item: RemoteItem) -> bool:
        """Check if a local file has the size and hash of an item.

        The hash comes from the source, which knows how the item was hashed
        (plain MD5 or multipart ETag).
        """
        if not local.exists or local.size != item.size:
            return False
        return self._source.local_hash(item, local.path) == item.content_hash

    @staticmethod
    def _remove_if_empty(local: DiskFileState) -> None:
        with contextlib.suppress(OSError):
            local.refresh()
            if local.exists and local.size == 0:
                local.delete()
