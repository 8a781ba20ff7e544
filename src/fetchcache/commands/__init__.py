"""Built-in CLI commands for fetchcache.

Each sub-module defines Typer command functions that are registered on the
root application in :mod:`fetchcache.app`.

Sub-modules:
    fetch: ``get`` and ``key`` -- load a resource, show its storage name.
    inspect: ``stats`` and ``list`` -- report on the cache directory.
    config: ``config show`` and ``config save`` -- view and persist settings.
"""

from __future__ import annotations

import typer

from fetchcache.config import resolve_config
from fetchcache.exceptions import FetchCacheError
from fetchcache.models import CacheConfig
from fetchcache.output import error


def resolve_from_context(ctx: typer.Context) -> CacheConfig:
    """Resolve the effective config from the root options stored in ``ctx.obj``.

    Exits with the error's code when the configuration is invalid.
    """
    opts = ctx.obj or {}
    try:
        return resolve_config(
            cli_cache_dir=opts.get("cache_dir"),
            cli_expiration=opts.get("expiration"),
            cli_serve_stale=opts.get("serve_stale"),
        )
    except FetchCacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
