"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~fetchcache.exceptions.FetchCacheError` subclass.
Shell wrappers can inspect the exit code to tell a broken cache directory
apart from an unreachable resource without parsing stderr.

Example::

    $ fetchcache get https://example.com/tl.xml > tl.xml
    $ echo $?
    4   # EXIT_FETCH_FAILURE -- the resource could not be downloaded
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_CONFIG_ERROR = 2
"""The configuration (flags, environment, or config file) is invalid."""

EXIT_STORAGE_FAILURE = 3
"""The cache directory could not be read or written."""

EXIT_FETCH_FAILURE = 4
"""The remote resource could not be fetched and no usable copy was cached."""
