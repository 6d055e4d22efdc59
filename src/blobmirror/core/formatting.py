"""Human-readable formatting of sizes and counts."""

from __future__ import annotations

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB")


def format_size(size: float) -> str:
    """Format a byte count using binary units.

    Args:
        size: Number of bytes.

    Returns:
        String such as "1.5 KB" (at most two decimals, trailing zeros dropped).
    """
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    text = f"{value:,.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[unit]}"


def format_count(value: int) -> str:
    """Format an integer with thousands separators."""
    return f"{value:,}"
