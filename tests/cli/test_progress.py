"""Tests for the console progress printer."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from blobmirror.cli.progress import ProgressPrinter
from blobmirror.sync.queue import WorkQueue
from blobmirror.sync.stats import RunStatistics
from blobmirror.sync.types import ActivityBuffer


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def engine() -> SimpleNamespace:
    """Minimal stand-in exposing what the printer reads."""
    return SimpleNamespace(
        stats=RunStatistics(),
        activity=ActivityBuffer(),
        queue=WorkQueue(),
        pool=SimpleNamespace(active_count=3),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def output() -> list[str]:
    return []


@pytest.fixture
def printer(engine, clock: FakeClock, output: list[str]) -> ProgressPrinter:
    def echo(message: str = "", nl: bool = True) -> None:
        output.append(message)

    return ProgressPrinter(engine, echo=echo, clock=clock)


class TestCheck:
    """Tests for the output cadence."""

    def test_nothing_due(self, printer: ProgressPrinter, engine, output: list[str]) -> None:
        engine.activity.mark("N")
        assert printer.check() is False
        assert output == []

    def test_activity_after_ten_seconds(
        self, printer: ProgressPrinter, engine, clock: FakeClock, output: list[str]
    ) -> None:
        engine.activity.mark("N")
        engine.activity.mark("m")
        clock.now = 10.0

        assert printer.check() is True
        assert output == ["Nm"]

    def test_mark_line_every_thirty_seconds(
        self, printer: ProgressPrinter, engine, clock: FakeClock, output: list[str]
    ) -> None:
        engine.queue.add("job")
        clock.now = 30.0

        printer.check()

        assert len(output) == 1
        assert "--MARK--" in output[0]
        assert "3 tasks, 1 waiting jobs" in output[0]

    def test_statistics_every_two_minutes(
        self, printer: ProgressPrinter, clock: FakeClock, output: list[str]
    ) -> None:
        clock.now = 60.0
        printer.check()
        assert len(output) == 1

        clock.now = 120.0
        printer.check()

        assert any("remote items scanned" in line for line in output)

    def test_force_full(self, printer: ProgressPrinter, engine, output: list[str]) -> None:
        """A forced check flushes activity, status and statistics at once."""
        engine.activity.mark("D")

        assert printer.check(force_full=True) is True

        assert output[0] == "D"
        assert "--MARK--" in output[1]
        assert "local files deleted" in output[-1]


class TestThread:
    def test_start_stop(self, printer: ProgressPrinter, output: list[str]) -> None:
        printer.start()
        printer.stop()
        assert any("--MARK--" in line for line in output)
