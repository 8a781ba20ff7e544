"""Read-through loader: serve fresh cached copies, fetch and store otherwise.

:class:`Loader` is the public entry point of fetchcache.  For each key it

1. maps the key to a storage name (:func:`~fetchcache.cache.map_to_storage_name`),
2. reuses the cached entry when :func:`~fetchcache.cache.is_fresh` allows it,
3. otherwise fetches the resource, writes it atomically through the
   :class:`~fetchcache.cache.CacheStore`, and returns the fetched bytes.

Concurrent ``get`` calls for the same key are serialised inside a loader,
so a burst of callers on a cold or expired entry causes a single fetch.
Calls for different keys never wait on each other.

Storage errors are surfaced as :class:`~fetchcache.exceptions.StorageFailure`
rather than treated as misses: an unreadable cache directory is a
configuration problem.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional

from fetchcache.cache import CacheStore, age, is_fresh, map_to_storage_name
from fetchcache.client import Fetcher
from fetchcache.exceptions import (
    EntryNotFound,
    FetchFailure,
    ReadFailure,
    StorageFailure,
    WriteFailure,
)
from fetchcache.models import CacheConfig
from fetchcache.output import debug, warning


@dataclass
class _KeyLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class Loader:
    """File-cached loader for remote byte payloads.

    Each loader owns its configuration; several loaders with different
    directories or expirations can be used side by side.

    Args:
        config: Cache directory, expiration, stale fallback, ignored keys.
        fetcher: The capability used to download missing or stale entries.
        clock: Returns the current time in epoch seconds.  Entry ages are
            measured against file modification times, so this must be on
            the same scale as :func:`time.time`.

    Example::

        config = CacheConfig(cache_directory=tmp, expiration=timedelta(minutes=5))
        with Loader(config, HttpFetcher(config.request)) as loader:
            xml = loader.get("https://example.com/tl.xml")
    """

    def __init__(
        self,
        config: CacheConfig,
        fetcher: Fetcher,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._fetcher = fetcher
        self._clock = clock
        self._store = CacheStore(config.cache_directory)
        self._ignored = frozenset(config.ignored_keys)
        self._locks: dict[str, _KeyLock] = {}
        self._locks_guard = threading.Lock()

    def __enter__(self) -> Loader:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def config(self) -> CacheConfig:
        """The configuration this loader was created with."""
        return self._config

    @property
    def store(self) -> CacheStore:
        """The store backing this loader."""
        return self._store

    def close(self) -> None:
        """Close the fetcher if it holds resources."""
        close = getattr(self._fetcher, "close", None)
        if callable(close):
            close()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    def get(self, key: str, *, refresh: bool = False) -> bytes:
        """Return the payload for *key*, from the cache when fresh enough.

        Args:
            key: The resource identifier, usually a URL.
            refresh: Fetch even if a fresh entry exists.

        Returns:
            The complete payload.

        Raises:
            FetchFailure: If a fetch was needed and failed, and no stale
                fallback was allowed or available.
            StorageFailure: If the cache directory could not be read or
                written.
        """
        if key in self._ignored:
            debug(f"Cache bypass: {key}")
            return self._fetch(key)

        name = map_to_storage_name(key)
        with self._key_lock(name):
            return self._load(key, name, refresh)

    def get_many(self, keys: Iterable[str], *, refresh: bool = False) -> dict[str, bytes]:
        """Call :meth:`get` for each key, in order.  The first failure propagates."""
        return {key: self.get(key, refresh=refresh) for key in keys}

    def storage_name(self, key: str) -> str:
        """Return the file name *key* is cached under."""
        return map_to_storage_name(key)

    def is_cached(self, key: str) -> bool:
        """Return ``True`` if an entry for *key* exists, fresh or not."""
        return self._store.exists(map_to_storage_name(key))

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _load(self, key: str, name: str, refresh: bool) -> bytes:
        last_write = self._last_write_time(name)

        if last_write is not None and not refresh:
            if is_fresh(last_write, self._clock(), self._config.expiration):
                data = self._read(name)
                if data is not None:
                    debug(f"Cache hit: {key}")
                    return data
            else:
                debug(f"Cache expired: {key}")
        elif last_write is None:
            debug(f"Cache miss: {key}")

        try:
            data = self._fetch(key)
        except FetchFailure as exc:
            if last_write is not None and self._config.serve_stale_on_error:
                stale = self._read(name)
                if stale is not None:
                    warning(
                        f"Refreshing {key} failed ({exc}); serving cached copy "
                        f"{age(last_write, self._clock()):.0f}s old"
                    )
                    return stale
            raise

        if not data:
            debug(f"Empty payload for {key}, not cached")
            return data

        self._write(name, data)
        debug(f"Cached {len(data)} bytes for {key} as {name}")
        return data

    def _fetch(self, key: str) -> bytes:
        try:
            return bytes(self._fetcher.fetch(key))
        except FetchFailure:
            raise
        except Exception as exc:
            raise FetchFailure(f"Fetching {key} failed: {exc}", key=key) from exc

    def _last_write_time(self, name: str) -> Optional[float]:
        try:
            return self._store.last_write_time(name)
        except EntryNotFound:
            return None
        except ReadFailure as exc:
            raise StorageFailure(str(exc)) from exc

    def _read(self, name: str) -> Optional[bytes]:
        try:
            return self._store.read(name)
        except EntryNotFound:
            # Removed between the freshness check and the read.
            return None
        except ReadFailure as exc:
            raise StorageFailure(str(exc)) from exc

    def _write(self, name: str, data: bytes) -> None:
        try:
            self._store.write_atomic(name, data)
        except WriteFailure as exc:
            raise StorageFailure(str(exc)) from exc

    @contextmanager
    def _key_lock(self, name: str) -> Iterator[None]:
        """Hold the per-name lock; the registry entry is dropped when unused."""
        with self._locks_guard:
            key_lock = self._locks.get(name)
            if key_lock is None:
                key_lock = self._locks[name] = _KeyLock()
            key_lock.users += 1
        try:
            with key_lock.lock:
                yield
        finally:
            with self._locks_guard:
                key_lock.users -= 1
                if key_lock.users == 0:
                    del self._locks[name]
