"""Config commands -- view and persist the effective configuration.

``fetchcache config show`` prints the configuration every other command
would use, after CLI flags, environment, config file and defaults are
merged.  ``fetchcache config save`` writes that same configuration to the
config file, so options given once on the command line become the
defaults for later runs.
"""

from __future__ import annotations

import typer

from fetchcache.commands import resolve_from_context
from fetchcache.config import config_file_path, save_config
from fetchcache.exceptions import FetchCacheError
from fetchcache.output import error, format_response, info, success


config_app = typer.Typer(no_args_is_help=True)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Show the effective configuration.

    Example::

        fetchcache config show
        fetchcache --json --expiration 3600 config show
    """
    config = resolve_from_context(ctx)
    info(f"Config file: {config_file_path()}")
    format_response(config.model_dump(mode="json"))


@config_app.command("save")
def config_save(ctx: typer.Context) -> None:
    """Save the effective configuration to the config file.

    Example::

        fetchcache --cache-dir /var/cache/tl --expiration 21600 config save
    """
    config = resolve_from_context(ctx)
    try:
        path = save_config(config)
    except FetchCacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    success(f"Saved configuration to {path}")
