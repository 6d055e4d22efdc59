"""Classification of remote items against prior-run state.

This module provides:
- Classifier: Decides Unchanged / New / Modified for each remote item

Decision rules (first match wins):
    1. No index record, never downloaded, or forced re-download -> NEW
       (well-known trivial content is finalized in place instead)
    2. Index record differs from the remote item -> MODIFIED
    3. Otherwise -> unchanged, counted and never queued

Every method is safe to call from several threads at once: counters are
atomic and the index store serializes its own statements.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from blobmirror.core.config import DEFAULT_FORCE_MISSING_WINDOW
from blobmirror.core.timestamps import utc_now
from blobmirror.state import IndexRecord
from blobmirror.sync.probe import DiskFileState, FileState, is_same
from blobmirror.sync.stats import RunStatistics
from blobmirror.sync.types import (
    ACTIVITY_SCAN,
    NOTE_CUTOFF,
    NOTE_FORCED_MISSING,
    NOTE_UP_TO_DATE,
    NOTE_WELL_KNOWN,
    ActivityBuffer,
    Classification,
    ExpectedNames,
    JobType,
    SyncJob,
)
from blobmirror.sync.wellknown import WELL_KNOWN_CONTENT, WellKnownEntry, is_well_known

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

    from blobmirror.remote import RemoteItem
    from blobmirror.state import IndexStore
    from blobmirror.sync.queue import WorkQueue

logger = logging.getLogger(__name__)

# A scan milestone is shown every this many listed items
SCAN_MILESTONE = 5000


class Classifier:
    """Classifies remote items and queues the ones needing a transfer.

    Usage:
        classifier = Classifier(index, stats)
        result = classifier.classify(item, record, DiskFileState(path))

        # Or, inside a run: look up the record, classify and queue
        classifier.process(item)
    """

    def __init__(
        self,
        index: IndexStore,
        stats: RunStatistics | None = None,
        *,
        local_root: Path | None = None,
        queue: WorkQueue[SyncJob] | None = None,
        expected: ExpectedNames | None = None,
        activity: ActivityBuffer | None = None,
        force_missing_window: timedelta = DEFAULT_FORCE_MISSING_WINDOW,
        ignore_modified_after: datetime | None = None,
        well_known: tuple[WellKnownEntry, ...] = WELL_KNOWN_CONTENT,
    ) -> None:
        """Initialize the classifier.

        Args:
            index: Index store holding prior-run records.
            stats: Run counters (a private set is created when None).
            local_root: Mirror root, required by process().
            queue: Destination of NEW and MODIFIED jobs, required by process().
            expected: Collects the local names listed during this run.
            activity: Receives progress characters.
            force_missing_window: Recency window of the forced re-download.
            ignore_modified_after: Items modified later are skipped.
            well_known: Trivial content table.
        """
        self._index = index
        self._stats = stats or RunStatistics()
        self._local_root = local_root
        self._queue = queue
        self._expected = expected if expected is not None else ExpectedNames()
        self._activity = activity or ActivityBuffer()
        self._force_from = utc_now() - force_missing_window
        self._ignore_after = ignore_modified_after
        self._well_known = well_known

    @property
    def stats(self) -> RunStatistics:
        return self._stats

    @property
    def expected(self) -> ExpectedNames:
        return self._expected

    def process(self, item: RemoteItem) -> Classification:
        """Count, record and classify one listed item, queueing it if needed.

        Args:
            item: Item from the remote listing.

        Returns:
            The classification of the item.
        """
        if self._local_root is None or self._queue is None:
            raise RuntimeError("process() requires local_root and queue")

        count, _ = self._stats.total.add(item.size)
        if count % SCAN_MILESTONE == 0:
            self._activity.mark(ACTIVITY_SCAN)

        local_name = item.local_name
        self._expected.add(local_name)

        if self._ignore_after is not None and item.last_modified > self._ignore_after:
            self._stats.ignored.add(item.size)
            return Classification(JobType.NONE, (NOTE_CUTOFF,))

        record = self._index.get_or_create(item, local_name)
        local = DiskFileState(self._local_root / local_name)
        result = self.classify(item, record, local)

        if result.needs_transfer:
            self._queue.add(SyncJob(
                item=item,
                local_path=local.path,
                record=record,
                job_type=result.job_type,
            ))
        return result

    def classify(
        self,
        item: RemoteItem,
        record: IndexRecord | None,
        local: FileState | None = None,
    ) -> Classification:
        """Classify a remote item against its index record and local file.

        Args:
            item: Remote snapshot.
            record: Prior-run record (None when the local name is new).
            local: Probe of the destination file, used by the forced
                re-download check.

        Returns:
            Classification with the job type and notes.
        """
        if record is None:
            record = IndexRecord.from_remote(item)
            self._index.insert_if_absent(record)

        if not record.exists:
            return self._classify_new(item, record)

        if self.force_download_missing(item, record, local):
            return self._classify_new(item, record, NOTE_FORCED_MISSING)

        if not is_same(record, item):
            self._stats.modified.add(item.size)
            return Classification(JobType.MODIFIED)

        self._stats.up_to_date.add(item.size)
        return Classification(JobType.NONE, (NOTE_UP_TO_DATE,))

    def force_download_missing(
        self,
        item: RemoteItem,
        record: IndexRecord,
        local: FileState | None,
    ) -> bool:
        """Check if a recently synced file vanished locally and must be fetched again.

        Applies only when the remote size and hash still match the record, so
        a remote-side change is never mistaken for a local accident.
        """
        if local is None:
            return False
        if record.size != item.size or record.content_hash != item.content_hash:
            return False
        if local.exists or item.last_modified <= self._force_from:
            return False
        if is_well_known(item, self._well_known):
            return False
        logger.info(f"Forcing download of missing file {record.local_name}")
        return True

    def handle_well_known(self, item: RemoteItem, record: IndexRecord) -> bool:
        """Finalize trivial content without a transfer.

        Returns:
            True if the item is well-known and its record was stamped.
        """
        if not is_well_known(item, self._well_known):
            return False
        record.mark_downloaded(item)
        self._index.update(record)
        return True

    def _classify_new(
        self, item: RemoteItem, record: IndexRecord, *notes: str
    ) -> Classification:
        if self.handle_well_known(item, record):
            self._stats.ignored.add(item.size)
            return Classification(JobType.NONE, (*notes, NOTE_WELL_KNOWN))
        self._stats.new.add(item.size)
        return Classification(JobType.NEW, notes)
