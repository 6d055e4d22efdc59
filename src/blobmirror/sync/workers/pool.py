"""Bounded worker pool draining a work queue.

This module provides:
- PoolState: Lifecycle of the pool
- WorkerPool: Runs queued jobs with at most max_workers in flight

A dispatcher thread pulls jobs from the queue (blocking while it is empty),
waits while max_workers jobs are in flight, then hands the job to a thread
pool. The pool finishes only once the queue is drained and every in-flight
job has completed; no job is dropped.
"""

from __future__ import annotations

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum, auto
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from blobmirror.sync.queue import WorkQueue

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PoolState(Enum):
    """State of the worker pool."""

    STOPPED = auto()
    RUNNING = auto()
    STOPPING = auto()  # Queue drained, waiting for in-flight jobs


class WorkerPool(Generic[T]):
    """Pool of worker threads with backpressure.

    The handler returns True on success and False on a handled failure; an
    exception counts as an error and is reported to on_error, the remaining
    jobs keep running.

    Usage:
        pool = WorkerPool(runner.run, max_workers=40)
        pool.start(queue)
        ...
        queue.complete()
        pool.join()
    """

    def __init__(
        self,
        handler: Callable[[T], bool],
        max_workers: int,
        on_error: Callable[[T, Exception], None] | None = None,
    ) -> None:
        """Initialize the worker pool.

        Args:
            handler: Called once per job in a worker thread.
            max_workers: Maximum number of jobs in flight.
            on_error: Called when the handler raises.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._handler = handler
        self._max_workers = max_workers
        self._on_error = on_error

        self._pool_state = PoolState.STOPPED
        self._lock = threading.Lock()
        self._slot_free = threading.Condition(self._lock)

        # In-flight jobs by admission number
        self._active_tasks: dict[int, T] = {}
        self._task_ids = itertools.count(1)

        self._dispatcher: threading.Thread | None = None
        self._done = threading.Event()

        # Statistics
        self._submitted_count = 0
        self._completed_count = 0
        self._failed_count = 0
        self._error_count = 0
        self._peak_active = 0

    @property
    def state(self) -> PoolState:
        """Get current pool state."""
        return self._pool_state

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def active_count(self) -> int:
        """Get number of in-flight jobs."""
        with self._lock:
            return len(self._active_tasks)

    @property
    def peak_active(self) -> int:
        """Get the highest number of jobs ever in flight at once."""
        with self._lock:
            return self._peak_active

    @property
    def submitted_count(self) -> int:
        return self._submitted_count

    @property
    def completed_count(self) -> int:
        """Get number of jobs whose handler returned True."""
        return self._completed_count

    @property
    def failed_count(self) -> int:
        """Get number of jobs whose handler returned False."""
        return self._failed_count

    @property
    def error_count(self) -> int:
        """Get number of jobs whose handler raised."""
        return self._error_count

    def start(self, queue: WorkQueue[T]) -> None:
        """Start draining a queue in the background.

        Args:
            queue: Queue to drain; the pool stops once it is drained.
        """
        with self._lock:
            if self._pool_state != PoolState.STOPPED:
                raise RuntimeError("Worker pool already running")
            self._pool_state = PoolState.RUNNING
            self._done.clear()
            self._dispatcher = threading.Thread(
                target=self._dispatch_loop,
                args=(queue,),
                name="WorkerPool-dispatcher",
                daemon=True,
            )
            self._dispatcher.start()
        logger.info(f"Worker pool started with {self._max_workers} workers")

    def join(self, timeout: float | None = None) -> bool:
        """Wait until the queue is drained and all jobs completed.

        Returns:
            True if the pool finished within the timeout.
        """
        return self._done.wait(timeout)

    def run(self, queue: WorkQueue[T]) -> None:
        """Drain a queue in the calling thread's lifetime (start + join)."""
        self.start(queue)
        self.join()

    def _dispatch_loop(self, queue: WorkQueue[T]) -> None:
        """Admit queued jobs while respecting the in-flight ceiling."""
        try:
            with ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="WorkerPool",
            ) as executor:
                for task in queue.drain():
                    task_id = self._admit(task)
                    executor.submit(self._process_task, task_id, task)
                self._pool_state = PoolState.STOPPING
                logger.debug("Work queue drained, waiting for in-flight jobs")
        except Exception:
            logger.exception("Unexpected error in worker pool dispatcher")
        finally:
            with self._lock:
                self._pool_state = PoolState.STOPPED
            logger.info(
                f"Worker pool stopped: {self._completed_count} completed, "
                f"{self._failed_count} failed, {self._error_count} errors"
            )
            self._done.set()

    def _admit(self, task: T) -> int:
        """Block until a slot is free, then register the job as in flight."""
        with self._slot_free:
            while len(self._active_tasks) >= self._max_workers:
                self._slot_free.wait()
            task_id = next(self._task_ids)
            self._active_tasks[task_id] = task
            self._submitted_count += 1
            self._peak_active = max(self._peak_active, len(self._active_tasks))
            return task_id

    def _process_task(self, task_id: int, task: T) -> None:
        """Run one job and release its slot."""
        try:
            success = self._handler(task)
            with self._lock:
                if success:
                    self._completed_count += 1
                else:
                    self._failed_count += 1
        except Exception as e:
            with self._lock:
                self._error_count += 1
            logger.exception(f"Task error: {task!r}")
            if self._on_error:
                self._on_error(task, e)
        finally:
            with self._slot_free:
                self._active_tasks.pop(task_id, None)
                self._slot_free.notify()
