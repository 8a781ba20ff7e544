"""Exception hierarchy for fetchcache.

All exceptions inherit from :class:`FetchCacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`fetchcache.exit_codes`.
The top-level error handler in :func:`fetchcache.app.main` catches
``FetchCacheError`` and exits with the appropriate code.

Subclass hierarchy::

    FetchCacheError (exit 1)
    +-- ConfigError       (exit 2)
    +-- CacheError        (exit 3)
    |   +-- EntryNotFound
    |   +-- ReadFailure
    |   +-- WriteFailure
    +-- StorageFailure    (exit 3)
    +-- FetchFailure      (exit 4)

:class:`CacheError` subclasses are raised by
:class:`~fetchcache.cache.CacheStore`.  The :class:`~fetchcache.loader.Loader`
never lets them escape directly: ``EntryNotFound`` is treated as a cache
miss, and read/write failures are re-raised as :class:`StorageFailure`.
"""

from __future__ import annotations

from typing import Optional

from fetchcache.exit_codes import (
    EXIT_CONFIG_ERROR,
    EXIT_FETCH_FAILURE,
    EXIT_GENERIC_FAILURE,
    EXIT_STORAGE_FAILURE,
)


class FetchCacheError(Exception):
    """Base exception for all fetchcache errors.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigError(FetchCacheError):
    """Raised for configuration problems (bad JSON, invalid durations, unusable paths)."""

    exit_code = EXIT_CONFIG_ERROR


class CacheError(FetchCacheError):
    """Base class for errors raised by the cache store.

    Args:
        message: Human-readable error description.
        name: Storage name of the entry involved.
    """

    exit_code = EXIT_STORAGE_FAILURE

    def __init__(self, message: str, name: str | None = None):
        super().__init__(message)
        self.name = name


class EntryNotFound(CacheError):
    """Raised when a storage name has no entry in the cache directory."""


class ReadFailure(CacheError):
    """Raised when an existing entry cannot be read (permissions, I/O error)."""


class WriteFailure(CacheError):
    """Raised when an entry cannot be written (disk full, permission denied)."""


class StorageFailure(FetchCacheError):
    """Raised by the loader when the cache store fails to read or write.

    The original :class:`CacheError` is available as ``__cause__``.
    """

    exit_code = EXIT_STORAGE_FAILURE


class FetchFailure(FetchCacheError):
    """Raised when the remote resource could not be fetched.

    Args:
        message: Human-readable error description.
        key: The cache key (URL) that was being fetched.
        status_code: HTTP status code when the server answered with an
            error response, ``None`` for network-level failures.
    """

    exit_code = EXIT_FETCH_FAILURE

    def __init__(
        self,
        message: str,
        key: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.key = key
        self.status_code = status_code
