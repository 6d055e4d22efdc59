"""Run statistics.

This module provides:
- ItemCountSize: Thread-safe item count plus byte total
- Counter: Thread-safe plain count
- RunStatistics: All counters of one mirror run
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from blobmirror.core.formatting import format_count, format_size


class ItemCountSize:
    """Count of items and their total size, safe to update from any thread."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._count = 0
        self._size = 0

    def add(self, size: int) -> tuple[int, int]:
        """Count one item of the given size.

        Returns:
            The (count, size) totals after the update.
        """
        with self._lock:
            self._count += 1
            self._size += max(size, 0)
            return self._count, self._size

    @property
    def count(self) -> int:
        return self._count

    @property
    def size(self) -> int:
        return self._size

    def __str__(self) -> str:
        return f"{format_count(self._count)} ({format_size(self._size)})"


class Counter:
    """Plain thread-safe counter."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> int:
        """Add one and return the new value."""
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        return self._value

    def __str__(self) -> str:
        return format_count(self._value)


@dataclass
class RunStatistics:
    """Counters of one mirror run, shared by all worker threads."""

    total: ItemCountSize = field(default_factory=ItemCountSize)
    ignored: ItemCountSize = field(default_factory=ItemCountSize)
    up_to_date: ItemCountSize = field(default_factory=ItemCountSize)
    new: ItemCountSize = field(default_factory=ItemCountSize)
    modified: ItemCountSize = field(default_factory=ItemCountSize)
    downloaded: ItemCountSize = field(default_factory=ItemCountSize)
    local: ItemCountSize = field(default_factory=ItemCountSize)
    deleted: ItemCountSize = field(default_factory=ItemCountSize)
    exceptions: Counter = field(default_factory=Counter)
    failed_downloads: Counter = field(default_factory=Counter)
    failed_jobs: Counter = field(default_factory=Counter)

    def summary_lines(self) -> list[str]:
        """Render the statistics report, one line per category."""
        return [
            f"{self.total} remote items scanned and found:",
            f"{self.new} new",
            f"{self.modified} modified",
            f"{self.downloaded} downloaded",
            f"{self.up_to_date} up to date",
            f"{self.ignored} ignored, {self.failed_downloads} failed, "
            f"{self.exceptions} exceptions, {self.failed_jobs} failed jobs",
            f"{self.local} local",
            f"{self.deleted} local files deleted (or moved)",
        ]

    def summary(self) -> str:
        return "\n".join(self.summary_lines())
