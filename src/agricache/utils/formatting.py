"""Human-readable formatting for cache statistics."""

from __future__ import annotations

from datetime import datetime, timezone

_UNITS = ["Bytes", "KB", "MB", "GB", "TB"]


def format_bytes(size: int, decimals: int = 2) -> str:
    """Format a byte count with a binary unit.

    Args:
        size: Size in bytes.
        decimals: Maximum decimal places.

    Returns:
        String such as "0 Bytes", "512 Bytes" or "1.5 MB".
    """
    if size <= 0:
        return "0 Bytes"

    value = float(size)
    exponent = 0
    while value >= 1024 and exponent < len(_UNITS) - 1:
        value /= 1024
        exponent += 1

    text = f"{value:.{max(decimals, 0)}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {_UNITS[exponent]}"


def format_timestamp(ts: float) -> str:
    """Format epoch seconds as UTC ISO-8601, or "-" for zero."""
    if not ts:
        return "-"
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat(timespec="seconds")
