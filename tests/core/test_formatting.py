"""Tests for size and count formatting."""

from __future__ import annotations

import pytest

from blobmirror.core.formatting import format_count, format_size


class TestFormatSize:
    """Tests for format_size."""

    @pytest.mark.parametrize(
        ("size", "expected"),
        [
            (0, "0 B"),
            (1, "1 B"),
            (1000, "1,000 B"),
            (1023, "1,023 B"),
            (1024, "1 KB"),
            (1536, "1.5 KB"),
            (1024 * 1024, "1 MB"),
            (int(2.25 * 1024**3), "2.25 GB"),
            (1024**8, "1 YB"),
            (1024**9, "1,024 YB"),
        ],
    )
    def test_format_size(self, size: int, expected: str) -> None:
        assert format_size(size) == expected

    def test_rounds_to_two_decimals(self) -> None:
        assert format_size(1024 + 1) == "1 KB"
        assert format_size(1024 + 100) == "1.1 KB"


class TestFormatCount:
    def test_thousands_separator(self) -> None:
        assert format_count(1234567) == "1,234,567"

    def test_small(self) -> None:
        assert format_count(7) == "7"
