"""Console progress for the sync command.

This module provides:
- ProgressPrinter: Background thread printing activity, status and statistics

Output cadence:
    activity characters (". N m d D")   at most every 10 seconds
    --MARK-- status line                 every 30 seconds
    full statistics                      every 2 minutes
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import click

from blobmirror.core.formatting import format_count
from blobmirror.core.timestamps import utc_now

if TYPE_CHECKING:
    from blobmirror.sync.engine import MirrorEngine

CHAR_INTERVAL = 10.0
MARK_INTERVAL = 30.0
STATS_INTERVAL = 120.0


class ProgressPrinter:
    """Periodically reports the progress of a running engine."""

    def __init__(
        self,
        engine: MirrorEngine,
        echo: Callable[..., None] = click.echo,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 1.0,
    ) -> None:
        self._engine = engine
        self._echo = echo
        self._clock = clock
        self._poll_interval = poll_interval

        now = clock()
        self._last_chars = now
        self._last_mark = now
        self._last_stats = now

        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start printing in a background thread."""
        self._thread = threading.Thread(target=self._loop, name="ProgressPrinter", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the background thread and print the final statistics."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self.check(force_full=True)

    def _loop(self) -> None:
        while not self._stop.wait(self._poll_interval):
            self.check()

    def check(self, force_full: bool = False) -> bool:
        """Print whatever is due.

        Args:
            force_full: Print the status line and statistics now.

        Returns:
            True if anything was printed.
        """
        now = self._clock()
        printed = False

        if now - self._last_chars >= CHAR_INTERVAL or force_full:
            chars = self._engine.activity.drain()
            if chars:
                self._last_chars = now
                self._echo(chars, nl=False)
                printed = True

        if force_full or now - self._last_mark >= MARK_INTERVAL:
            self._last_mark = now
            self._echo(self.mark_line())
            if force_full or now - self._last_stats >= STATS_INTERVAL:
                self._last_stats = now
                self.print_stats()
            printed = True

        return printed

    def mark_line(self) -> str:
        engine = self._engine
        return (
            f"\n --MARK-- {utc_now():%Y-%m-%d %H:%M:%S} - Currently {engine.stats.total} scanned, "
            f"{format_count(engine.pool.active_count)} tasks, "
            f"{format_count(len(engine.queue))} waiting jobs"
        )

    def print_stats(self) -> None:
        for line in self._engine.stats.summary_lines():
            self._echo(f" {line}")
