"""Shared types for the mirror engine.

This module provides:
- JobType: Classification of a remote item against prior-run state
- Classification: Result of classifying one item
- SyncJob: Transient unit of transfer work
- ExpectedNames: Local names seen in this run's listing
- ActivityBuffer: Recently touched job kinds, for progress display
- RunResult: Outcome of a whole run
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from blobmirror.remote import RemoteItem
    from blobmirror.state import IndexRecord
    from blobmirror.sync.stats import RunStatistics


class JobType(IntEnum):
    """Work needed for one remote item."""

    NONE = 0  # Up to date, or finalized without transfer
    NEW = 1  # Never materialized locally
    MODIFIED = 2  # Remote differs from the last synchronized state


# Classification notes
NOTE_UP_TO_DATE = "up-to-date"
NOTE_WELL_KNOWN = "well-known-content"
NOTE_FORCED_MISSING = "force-download-missing"
NOTE_CUTOFF = "modified-after-cutoff"

# Activity characters shown by the console
ACTIVITY_SCAN = "."
ACTIVITY_NEW = "N"
ACTIVITY_MODIFIED = "m"
ACTIVITY_INDEX_DELETE = "d"
ACTIVITY_DISK_DELETE = "D"


@dataclass(frozen=True)
class Classification:
    """Result of classifying a remote item.

    Attributes:
        job_type: Work needed (NONE items are never queued).
        notes: Side effects and reasons, e.g. NOTE_WELL_KNOWN.
    """

    job_type: JobType
    notes: tuple[str, ...] = ()

    @property
    def needs_transfer(self) -> bool:
        return self.job_type != JobType.NONE


@dataclass
class SyncJob:
    """A unit of transfer work.

    Lifecycle: classified -> (transferred | short-circuited | failed) ->
    index persisted. A failed job is never requeued in the same run.

    Attributes:
        item: Remote item to materialize.
        local_path: Absolute destination path.
        record: Index record of the destination.
        job_type: Classification of the item.
    """

    item: RemoteItem
    local_path: Path
    record: IndexRecord
    job_type: JobType = JobType.NONE

    def __repr__(self) -> str:
        return f"SyncJob({self.job_type.name}, path={self.item.path!r})"


class ExpectedNames:
    """Thread-safe set of local names listed remotely during this run."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._names: set[str] = set()

    def add(self, local_name: str) -> None:
        with self._lock:
            self._names.add(local_name)

    def __contains__(self, local_name: object) -> bool:
        with self._lock:
            return local_name in self._names

    def __len__(self) -> int:
        with self._lock:
            return len(self._names)


class ActivityBuffer:
    """Set of activity characters recorded since the last drain."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._chars: dict[str, None] = {}

    def mark(self, char: str) -> bool:
        """Record an activity.

        Returns:
            True if the character was not yet buffered.
        """
        with self._lock:
            if char in self._chars:
                return False
            self._chars[char] = None
            return True

    def drain(self) -> str:
        """Return and clear the buffered characters."""
        with self._lock:
            chars = "".join(self._chars)
            self._chars.clear()
            return chars


@dataclass
class RunResult:
    """Outcome of a mirror run.

    Attributes:
        stats: Counters of the run.
        elapsed: Wall-clock duration in seconds.
        enumeration_ok: Listing completed without any failure.
        fatal_error: Message of a fatal listing failure, if any.
        deletions_checked: Whether the deletion reconciler ran.
    """

    stats: RunStatistics
    elapsed: float = 0.0
    enumeration_ok: bool = False
    fatal_error: str | None = None
    deletions_checked: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        """Process exit status: non-zero on fatal enumeration failure."""
        return 1 if self.fatal_error else 0
