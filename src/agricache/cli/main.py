"""
CLI for the content cache.

Commands:
    agricache stats - Show cache statistics
    agricache clear - Remove every cached entry
    agricache clear-expired - Remove expired entries
    agricache put KEY JSON - Store a JSON value
    agricache get KEY - Print a cached value
    agricache fetch URL - Download and cache a blob
    agricache config - Show current configuration
    agricache version - Print version
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Any, Awaitable, Callable, Optional, TypeVar

import orjson
import typer
from rich.console import Console
from rich.table import Table

from agricache import __version__
from agricache.cache.service import ContentCache
from agricache.config import Settings, clear_settings_cache, get_settings
from agricache.logging import setup_logging
from agricache.utils.formatting import format_bytes, format_timestamp

app = typer.Typer(
    name="agricache",
    help="AgriConnect content cache - inspect and maintain the local cache",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

T = TypeVar("T")


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValueError:
        return None


def _load_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'agricache config' to see what's wrong."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL)
    settings.ensure_directories()
    return settings


def _run(settings: Settings, action: Callable[[ContentCache], Awaitable[T]]) -> T:
    """Open the cache, run one action against it, and close it."""

    async def runner() -> T:
        cache = ContentCache.from_settings(settings)
        await cache.init()
        try:
            return await action(cache)
        finally:
            await cache.close()

    return asyncio.run(runner())


@app.command()
def stats() -> None:
    """Show cache statistics."""
    settings = _load_settings()
    result = _run(settings, lambda cache: cache.get_cache_stats())

    table = Table(title="Cache Statistics", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Total size", format_bytes(result.total_size_bytes))
    table.add_row(
        "Size limit",
        format_bytes(settings.CACHE_SIZE_LIMIT_BYTES),
    )
    table.add_row("Entries", str(result.entry_count))
    table.add_row("Data entries", str(result.data_entries))
    table.add_row("Blob entries", str(result.blob_entries))
    table.add_row("Oldest entry", format_timestamp(result.oldest_entry_timestamp))
    table.add_row("Newest entry", format_timestamp(result.newest_entry_timestamp))

    console.print(table)


@app.command()
def clear(
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Do not ask for confirmation"),
    ] = False,
) -> None:
    """Remove every cached entry and blob file."""
    settings = _load_settings()
    if not yes:
        typer.confirm(f"Clear the cache in {settings.CACHE_DIR}?", abort=True)

    _run(settings, lambda cache: cache.clear_cache())
    console.print("[green]Cache cleared.[/green]")


@app.command("clear-expired")
def clear_expired() -> None:
    """Remove entries whose TTL has elapsed."""
    settings = _load_settings()
    removed = _run(settings, lambda cache: cache.clear_expired_cache())
    console.print(f"Removed [bold]{removed}[/bold] expired entries.")


@app.command()
def put(
    key: Annotated[str, typer.Argument(help="Logical cache key")],
    value: Annotated[str, typer.Argument(help="JSON value to store")],
    ttl: Annotated[
        Optional[float],
        typer.Option("--ttl", "-t", help="Time to live in seconds"),
    ] = None,
) -> None:
    """Store a JSON value under KEY."""
    try:
        data: Any = orjson.loads(value)
    except orjson.JSONDecodeError:
        error_console.print("[red]Error:[/red] VALUE must be valid JSON.")
        raise typer.Exit(2)

    settings = _load_settings()
    _run(settings, lambda cache: cache.put(key, data, ttl=ttl))
    console.print(f"Stored [cyan]{key}[/cyan].")


@app.command()
def get(
    key: Annotated[str, typer.Argument(help="Logical cache key")],
) -> None:
    """Print the cached value for KEY. Exits 1 on a miss."""
    settings = _load_settings()
    data = _run(settings, lambda cache: cache.get(key))
    if data is None:
        error_console.print(f"[yellow]Cache miss:[/yellow] {key}")
        raise typer.Exit(1)
    console.print_json(orjson.dumps(data).decode("utf-8"))


@app.command()
def fetch(
    url: Annotated[str, typer.Argument(help="URL of the asset to cache")],
    ttl: Annotated[
        Optional[float],
        typer.Option("--ttl", "-t", help="Time to live in seconds"),
    ] = None,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Download even if a live copy exists"),
    ] = False,
) -> None:
    """Download URL into the blob cache and print its local path."""
    settings = _load_settings()
    path = _run(
        settings,
        lambda cache: cache.get_or_fetch(url, ttl=ttl, force_refresh=force),
    )
    if path is None:
        error_console.print(f"[red]Error:[/red] could not fetch {url}")
        raise typer.Exit(1)
    console.print(path, markup=False, highlight=False, soft_wrap=True)


@app.command()
def config() -> None:
    """Show current configuration."""
    settings = _get_settings_safe()
    if settings is None:
        error_console.print("[red]Configuration is invalid.[/red]")
        error_console.print("Check the CACHE_* and *_TTL_SECONDS environment variables.")
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.display().items():
        table.add_row(key, str(value))

    console.print(table)


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"agricache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
