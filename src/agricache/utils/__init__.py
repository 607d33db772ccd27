"""Utility modules for the content cache."""

from agricache.utils.formatting import format_bytes, format_timestamp

__all__ = ["format_bytes", "format_timestamp"]
