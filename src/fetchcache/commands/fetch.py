"""Fetch commands -- load a resource through the cache.

``fetchcache get URL`` prints the payload to stdout (or the ``-o`` file),
using the cached copy when it is fresh.  ``fetchcache key URL`` prints the
file name the URL is cached under, which helps when inspecting the cache
directory by hand.
"""

from __future__ import annotations

from typing import Optional

import typer

from fetchcache.cache import map_to_storage_name
from fetchcache.client import HttpFetcher
from fetchcache.commands import resolve_from_context
from fetchcache.exceptions import FetchCacheError
from fetchcache.loader import Loader
from fetchcache.output import error, get_output


def get_command(
    ctx: typer.Context,
    key: str = typer.Argument(help="URL of the resource to load."),
    refresh: bool = typer.Option(
        False, "--refresh", "-r", help="Download even if a fresh copy is cached."
    ),
    output_file: Optional[str] = typer.Option(
        None, "-o", "--output", help="Write the payload to this file instead of stdout."
    ),
) -> None:
    """Print a resource, downloading it only when the cached copy is missing or stale.

    Example::

        fetchcache get https://example.com/tl.xml > tl.xml
        fetchcache --expiration 3600 get https://example.com/tl.xml -r
        fetchcache get https://example.com/tl.xml -o tl.xml
    """
    config = resolve_from_context(ctx)
    try:
        with Loader(config, HttpFetcher(config.request)) as loader:
            data = loader.get(key, refresh=refresh)
    except FetchCacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    get_output().write_bytes(data, output_file)


def key_command(
    key: str = typer.Argument(help="URL to map."),
) -> None:
    """Print the file name a URL is cached under."""
    get_output().print_data(map_to_storage_name(key))
