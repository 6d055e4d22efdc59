"""Mirror engine: classification, queueing, transfers and deletion checks.

Architecture:
    RemoteSource → Classifier → WorkQueue → WorkerPool → JobRunner
                        ↓
                  ExpectedNames → DeletionReconciler

Components:
- **Classifier**: Compares each remote item with the index and the disk
- **WorkQueue**: Producer/consumer channel with end-of-production signaling
- **WorkerPool**: Runs queued jobs with bounded concurrency
- **JobRunner**: Per-item transfer state machine
- **DeletionReconciler**: Index-driven and disk-driven tombstoning
- **MirrorEngine**: Runs all of the above for one container
"""

from blobmirror.sync.classifier import Classifier
from blobmirror.sync.engine import MirrorEngine
from blobmirror.sync.probe import DiskFileState, FileState, diff_string, is_same
from blobmirror.sync.queue import QueueClosedError, QueueState, WorkQueue
from blobmirror.sync.reconciler import DeletionReconciler
from blobmirror.sync.stats import Counter, ItemCountSize, RunStatistics
from blobmirror.sync.types import (
    ActivityBuffer,
    Classification,
    ExpectedNames,
    JobType,
    RunResult,
    SyncJob,
)
from blobmirror.sync.wellknown import (
    WELL_KNOWN_CONTENT,
    WellKnownEntry,
    find_well_known,
    is_well_known,
)
from blobmirror.sync.workers import DirectoryCache, JobRunner, PoolState, WorkerPool

__all__ = [
    # Engine
    "MirrorEngine",
    # Classification
    "Classification",
    "Classifier",
    "JobType",
    "SyncJob",
    # Probes
    "DiskFileState",
    "FileState",
    "diff_string",
    "is_same",
    # Queue
    "QueueClosedError",
    "QueueState",
    "WorkQueue",
    # Workers
    "DirectoryCache",
    "JobRunner",
    "PoolState",
    "WorkerPool",
    # Deletion
    "DeletionReconciler",
    "ExpectedNames",
    # Well-known content
    "WELL_KNOWN_CONTENT",
    "WellKnownEntry",
    "find_well_known",
    "is_well_known",
    # Statistics
    "ActivityBuffer",
    "Counter",
    "ItemCountSize",
    "RunResult",
    "RunStatistics",
]
