"""Inspect commands -- report on the contents of the cache directory.

Both commands are read-only; removing entries is left to ordinary file
tools since each entry is a plain file.
"""

from __future__ import annotations

from datetime import datetime, timezone

import typer

from fetchcache.cache import CacheStore
from fetchcache.commands import resolve_from_context
from fetchcache.exceptions import FetchCacheError
from fetchcache.output import error, format_response, print_table


def stats_command(ctx: typer.Context) -> None:
    """Show the cache directory, entry count, and total size.

    Example::

        fetchcache stats
        fetchcache --json stats
    """
    config = resolve_from_context(ctx)
    try:
        stats = CacheStore(config.cache_directory).stats()
    except FetchCacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    expiration = config.expiration
    stats["expiration_seconds"] = None if expiration is None else expiration.total_seconds()
    stats["serve_stale_on_error"] = config.serve_stale_on_error
    format_response(stats)


def list_command(ctx: typer.Context) -> None:
    """List cached entries with their size and last write time."""
    config = resolve_from_context(ctx)
    try:
        entries = CacheStore(config.cache_directory).entries()
    except FetchCacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    rows = [
        [
            e.name,
            str(e.size),
            datetime.fromtimestamp(e.last_write_time, tz=timezone.utc).isoformat(timespec="seconds"),
        ]
        for e in entries
    ]
    print_table(["name", "size", "last_write"], rows, title="Cache entries")
