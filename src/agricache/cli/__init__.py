"""Command-line interface for cache maintenance."""
