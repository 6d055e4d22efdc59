"""Mirror engine: runs one complete synchronization.

This module provides:
- MirrorEngine: Wires listing, classification, transfers and deletion checks

Flow:
    1. The worker pool starts draining the work queue
    2. Each listing batch is classified in parallel inside one index batch;
       NEW and MODIFIED jobs go to the work queue
    3. The work queue is completed, even after a listing failure
    4. Without any error, and only if something was listed, the deletion
       reconciler runs while transfers finish
    5. The pool is joined and the index closed

A failure of one item sets the error flag; a failure of the listing itself
is fatal. Either one disables the deletion reconciler for the run, but jobs
already queued are still transferred. An empty listing disables it as well.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from blobmirror.core.errors import EnumerationError
from blobmirror.state import IndexStore
from blobmirror.sync.classifier import Classifier
from blobmirror.sync.queue import WorkQueue
from blobmirror.sync.reconciler import DeletionReconciler
from blobmirror.sync.stats import RunStatistics
from blobmirror.sync.types import ActivityBuffer, ExpectedNames, RunResult, SyncJob
from blobmirror.sync.workers.job import DirectoryCache, JobRunner
from blobmirror.sync.workers.pool import WorkerPool

if TYPE_CHECKING:
    from blobmirror.core.config import MirrorConfig
    from blobmirror.remote import RemoteItem, RemoteSource

logger = logging.getLogger(__name__)


class MirrorEngine:
    """Mirrors one remote container onto the local root.

    Usage:
        engine = MirrorEngine(config, source)
        result = engine.run()
        print(result.stats.summary())
    """

    def __init__(
        self,
        config: MirrorConfig,
        source: RemoteSource,
        index: IndexStore | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Run configuration.
            source: Remote source to mirror from.
            index: Index store (opened at config.index_path when None). The
                engine closes the index at the end of run().
        """
        self._config = config
        self._source = source
        self._index = index or IndexStore(config.index_path)

        self.stats = RunStatistics()
        self.activity = ActivityBuffer()
        self.expected = ExpectedNames()
        self.directories = DirectoryCache()
        self.queue: WorkQueue[SyncJob] = WorkQueue()

        self._had_errors = threading.Event()
        self._lock = threading.Lock()
        self._errors: list[str] = []

        self.classifier = Classifier(
            self._index,
            self.stats,
            local_root=config.local_root,
            queue=self.queue,
            expected=self.expected,
            activity=self.activity,
            force_missing_window=config.force_missing_window,
            ignore_modified_after=config.ignore_modified_after,
        )
        self.runner = JobRunner(
            source,
            self._index,
            self.stats,
            directories=self.directories,
            activity=self.activity,
            recent_modified_threshold=config.recent_modified_threshold,
        )
        self.pool: WorkerPool[SyncJob] = WorkerPool(
            self.runner.run,
            max_workers=config.max_transfers,
            on_error=self._on_job_error,
        )
        self.reconciler = DeletionReconciler(
            self._index,
            config.local_root,
            config.container,
            self.expected,
            self.stats,
            activity=self.activity,
            workers=config.classify_workers,
        )

    @property
    def index(self) -> IndexStore:
        return self._index

    def run(self) -> RunResult:
        """Run the synchronization to completion.

        Returns:
            RunResult with statistics and the exit status.
        """
        started = time.monotonic()
        result = RunResult(stats=self.stats)
        logger.info(
            f"Mirroring {self._config.container} from {self._source.location} "
            f"to {self._config.local_root}"
        )

        self.pool.start(self.queue)
        try:
            try:
                batches = self._enumerate()
                result.enumeration_ok = batches > 0 and not self._had_errors.is_set()
                if batches == 0:
                    logger.warning(f"Listing of {self._config.container} returned no items")
            except EnumerationError as e:
                self.stats.exceptions.increment()
                result.fatal_error = str(e)
                logger.error(f"Listing of {self._config.container} failed: {e}")
            finally:
                self._index.end_batch()
                self.queue.complete()
                logger.info(f"Listing done, {self.stats.total} items scanned")

            if result.enumeration_ok:
                self.reconciler.run()
                result.deletions_checked = True
            else:
                logger.warning("Due to errors or an empty listing, no deletion check will be done")
        finally:
            self.pool.join()
            self._index.close()

        result.elapsed = time.monotonic() - started
        with self._lock:
            result.errors = list(self._errors)
        logger.info(f"Run finished in {result.elapsed:.1f}s")
        return result

    def _enumerate(self) -> int:
        """Classify every listing batch.

        Returns:
            Number of non-empty batches listed.

        Raises:
            EnumerationError: If the listing itself fails.
        """
        batches = 0
        try:
            with ThreadPoolExecutor(
                max_workers=self._config.classify_workers,
                thread_name_prefix="Classifier",
            ) as executor:
                for batch in self._source.enumerate(self._config.container):
                    if not batch:
                        continue
                    batches += 1
                    self._index.begin_batch()
                    try:
                        list(executor.map(self._classify_item, batch))
                    finally:
                        self._index.end_batch()
        except Exception as e:
            raise EnumerationError(str(e), scanned=self.stats.total.count) from e
        return batches

    def _classify_item(self, item: RemoteItem) -> None:
        try:
            self.classifier.process(item)
        except Exception as e:
            self._had_errors.set()
            self.stats.exceptions.increment()
            self._record_error(f"{item.path}: {e}")
            logger.exception(
                f"Error while scanning {self._config.container}. Item: {item.path} "
                f"Scanned: {self.stats.total}"
            )

    def _on_job_error(self, job: SyncJob, error: Exception) -> None:
        self.stats.failed_jobs.increment()
        self._record_error(f"{job.item.path}: {error}")

    def _record_error(self, message: str) -> None:
        with self._lock:
            self._errors.append(message)
