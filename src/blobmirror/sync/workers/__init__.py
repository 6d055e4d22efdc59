"""Workers for transfer jobs.

This package provides:
- JobRunner: Executes one job (download, archive, verify, persist)
- DirectoryCache: Directories known to exist, shared by all jobs
- WorkerPool: Runs queued jobs with at most max_workers in flight

Usage:
    from blobmirror.sync.workers import JobRunner, WorkerPool

    runner = JobRunner(source, index, stats)
    pool = WorkerPool(runner.run, max_workers=40)
    pool.start(queue)
    queue.complete()
    pool.join()
"""

from blobmirror.sync.workers.job import DirectoryCache, JobRunner
from blobmirror.sync.workers.pool import PoolState, WorkerPool

__all__ = [
    # Job execution
    "DirectoryCache",
    "JobRunner",
    # Pool
    "PoolState",
    "WorkerPool",
]
