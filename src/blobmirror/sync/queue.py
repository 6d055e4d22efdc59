"""Work queue between classification and transfer execution.

This module provides:
- WorkQueue: Thread-safe FIFO channel with explicit end-of-production

States:
    OPEN (initial) -> CLOSED (complete() called) -> DRAINED (closed and empty)

Producers add() while the queue is open. Consumers iterate drain(), which
blocks while the queue is empty and open, keeps yielding after the queue
is closed until it is empty, then ends. Any number of producers and
consumers may run concurrently; each item is yielded to exactly one
consumer.

Usage:
    queue = WorkQueue()
    # producer thread
    queue.add(job)
    queue.complete()
    # consumer thread(s)
    for job in queue.drain():
        run(job)
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from enum import Enum, auto
from typing import TYPE_CHECKING, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QueueState(Enum):
    """State of a work queue."""

    OPEN = auto()
    CLOSED = auto()
    DRAINED = auto()


class QueueClosedError(RuntimeError):
    """Raised on add() or complete() after complete()."""


class WorkQueue(Generic[T]):
    """Thread-safe FIFO queue with completion signaling.

    Attributes:
        total_added: Number of items ever added.
        last_added: Item most recently added (diagnostics).
    """

    def __init__(self) -> None:
        """Initialize an open, empty queue."""
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._items: deque[T] = deque()
        self._closed = False
        self._total_added = 0
        self._last_added: T | None = None

    def add(self, item: T) -> None:
        """Append an item.

        Args:
            item: Item to queue.

        Raises:
            QueueClosedError: If complete() was already called.
        """
        with self._lock:
            if self._closed:
                raise QueueClosedError("Cannot add after the queue was completed")
            self._items.append(item)
            self._total_added += 1
            self._last_added = item
            self._not_empty.notify()

    def complete(self) -> None:
        """Signal that no more items will be added.

        Raises:
            QueueClosedError: If called more than once.
        """
        with self._lock:
            if self._closed:
                raise QueueClosedError("Queue already completed")
            self._closed = True
            self._not_empty.notify_all()
        logger.debug(f"Work queue completed after {self._total_added} items")

    def get(self, timeout: float | None = None) -> T | None:
        """Take the next item, blocking while the queue is open and empty.

        Args:
            timeout: Maximum seconds to wait (None = wait until an item
                arrives or the queue is closed).

        Returns:
            The next item, or None if the queue is drained or the wait timed out.
        """
        with self._not_empty:
            if not self._not_empty.wait_for(
                lambda: self._items or self._closed, timeout=timeout
            ):
                return None
            if not self._items:
                return None
            return self._items.popleft()

    def drain(self) -> Iterator[T]:
        """Yield items until the queue is closed and empty.

        Each call returns a fresh generator; concurrent drainers share the
        items without duplication.
        """
        while True:
            with self._not_empty:
                while not self._items and not self._closed:
                    self._not_empty.wait()
                if not self._items:
                    return
                item = self._items.popleft()
            yield item

    @property
    def state(self) -> QueueState:
        with self._lock:
            if not self._closed:
                return QueueState.OPEN
            return QueueState.CLOSED if self._items else QueueState.DRAINED

    @property
    def is_complete(self) -> bool:
        """Check if complete() was called."""
        return self._closed

    @property
    def is_drained(self) -> bool:
        """Check if the queue is closed and empty."""
        return self.state == QueueState.DRAINED

    @property
    def total_added(self) -> int:
        return self._total_added

    @property
    def last_added(self) -> T | None:
        return self._last_added

    def __len__(self) -> int:
        """Get number of pending items."""
        with self._lock:
            return len(self._items)
