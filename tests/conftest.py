"""Shared test fixtures for fetchcache.

Provides config isolation, output state management, a scripted fetcher,
and a CLI runner.  These fixtures are discovered by pytest and available
to all test modules without explicit imports.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Optional, Union

import pytest

from fetchcache.models import CacheConfig
from fetchcache.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time; CliRunner swaps those streams, so a stale manager would
    write to closed files.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Fetcher double
# ---------------------------------------------------------------------------


Response = Union[bytes, Exception, Callable[[str], bytes]]


class ScriptedFetcher:
    """Fetcher that returns scripted payloads and records every call.

    ``responses`` is consumed in order; once exhausted the last item is
    repeated.  Items may be bytes, an exception instance to raise, or a
    callable receiving the key.
    """

    def __init__(self, *responses: Response) -> None:
        self._responses = list(responses) or [b"payload"]
        self.calls: list[str] = []
        self.closed = False
        self._lock = threading.Lock()

    def fetch(self, key: str) -> bytes:
        with self._lock:
            self.calls.append(key)
            index = min(len(self.calls), len(self._responses)) - 1
            item = self._responses[index]
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(key)
        return item

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fetcher() -> ScriptedFetcher:
    """A fetcher that always returns ``b"payload"``."""
    return ScriptedFetcher()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """An empty directory path for the cache (created by the store on first write)."""
    return tmp_path / "fetchcache"


@pytest.fixture
def make_config(cache_dir: Path) -> Callable[..., CacheConfig]:
    """Factory for a CacheConfig rooted at :func:`cache_dir`."""

    def _make(expiration: Optional[float] = None, **kwargs) -> CacheConfig:
        return CacheConfig(cache_directory=cache_dir, expiration=expiration, **kwargs)

    return _make


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME to
    subdirectories of tmp_path and clears all FETCHCACHE_* variables.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("fetchcache.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in [
        "FETCHCACHE_CONFIG",
        "FETCHCACHE_CACHE_DIR",
        "FETCHCACHE_EXPIRATION",
        "FETCHCACHE_SERVE_STALE",
        "NO_COLOR",
    ]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def verbose_output() -> OutputManager:
    """Install a plain, uncoloured, verbose output manager."""
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
