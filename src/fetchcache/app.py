"""Typer application and CLI entry point for fetchcache.

This module wires together the root Typer application and registers the
built-in commands (``get``, ``key``, ``stats``, ``list``, ``config``).  The CLI is a
thin shell over :class:`~fetchcache.loader.Loader`; cache options given on
the root command apply to every sub-command.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``.  Unhandled exceptions are written to a crash log under
the data directory.

See Also:
    :mod:`fetchcache.config`: Configuration resolution used by the commands.
    :mod:`fetchcache.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from fetchcache import __version__
from fetchcache.commands.config import config_app
from fetchcache.commands.fetch import get_command, key_command
from fetchcache.commands.inspect import list_command, stats_command
from fetchcache.exit_codes import EXIT_GENERIC_FAILURE


app = typer.Typer(
    name="fetchcache",
    help="Load remote resources through a local file cache.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

app.command("get")(get_command)
app.command("key")(key_command)
app.command("stats")(stats_command)
app.command("list")(list_command)
app.add_typer(config_app, name="config", help="Show or save the effective configuration.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"fetchcache {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    cache_dir: Optional[str] = typer.Option(
        None, "--cache-dir", "-d", help="Cache directory."
    ),
    expiration: Optional[str] = typer.Option(
        None,
        "--expiration",
        "-e",
        help="Maximum age of a reusable entry in seconds ('never' to disable).",
    ),
    serve_stale: Optional[bool] = typer.Option(
        None,
        "--serve-stale/--no-serve-stale",
        help="Return the cached copy when a refresh fails.",
    ),
    json_output: bool = typer.Option(
        False, "--json", help="JSON output format."
    ),
    plain_output: bool = typer.Option(
        False, "--plain", help="Plain text output."
    ),
    no_color: bool = typer.Option(
        False, "--no-color", help="Disable color output."
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~fetchcache.output.OutputManager` from CLI
    flags and stores the cache options in ``ctx.obj`` for the sub-commands.
    """
    from fetchcache.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(
        format=fmt,
        no_color=no_color,
        quiet=quiet,
        verbose=verbose,
    )
    set_output(output)

    ctx.ensure_object(dict)
    ctx.obj["cache_dir"] = cache_dir
    ctx.obj["expiration"] = expiration
    ctx.obj["serve_stale"] = serve_stale


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from fetchcache.config import get_data_dir

    logs_dir = get_data_dir()
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``fetchcache`` console script.

    Unhandled :class:`~fetchcache.exceptions.FetchCacheError` instances
    cause a clean exit with the error's ``exit_code``.  All other exceptions
    produce a crash log and a generic failure exit.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from fetchcache.exceptions import FetchCacheError
        from fetchcache.output import error

        if isinstance(exc, FetchCacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
