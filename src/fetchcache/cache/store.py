"""Directory-backed storage of cached payloads.

One file per storage name holds the exact bytes last fetched.  The file's
modification time is the freshness metadata; there is no index or
manifest, so the directory can be inspected or pruned with ordinary tools.

Writes go to a temporary file in the same directory and are moved into
place with :func:`os.replace`, so a concurrent reader sees either the
previous payload or the new one in full.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from fetchcache.exceptions import EntryNotFound, ReadFailure, WriteFailure
from fetchcache.models import CacheEntry

_TMP_SUFFIX = ".tmp"


class CacheStore:
    """Keyed byte storage in a single directory.

    The directory is created lazily on the first write, so constructing a
    store never touches the filesystem.

    Args:
        directory: Directory holding the cache entries.

    Example::

        store = CacheStore("/tmp/cache")
        store.write_atomic("https___example_com_a", b"payload")
        assert store.read("https___example_com_a") == b"payload"
    """

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        """The directory holding the cache entries."""
        return self._directory

    def path_for(self, name: str) -> Path:
        """Return the file path of the entry called *name*.

        Raises:
            ValueError: If *name* is not a plain file name.
        """
        if not name or name in (".", "..") or "/" in name or os.sep in name:
            raise ValueError(f"Invalid storage name: {name!r}")
        return self._directory / name

    # ------------------------------------------------------------------ #
    # Core operations
    # ------------------------------------------------------------------ #

    def exists(self, name: str) -> bool:
        """Return ``True`` if an entry called *name* is present."""
        return self.path_for(name).is_file()

    def last_write_time(self, name: str) -> float:
        """Return the entry's modification time in epoch seconds.

        Raises:
            EntryNotFound: If the entry does not exist.
            ReadFailure: If the entry's metadata cannot be read.
        """
        path = self.path_for(name)
        try:
            return path.stat().st_mtime
        except FileNotFoundError as exc:
            raise EntryNotFound(f"No cache entry '{name}'", name=name) from exc
        except OSError as exc:
            raise ReadFailure(f"Cannot stat cache entry {path}: {exc}", name=name) from exc

    def read(self, name: str) -> bytes:
        """Return the full payload of the entry called *name*.

        Raises:
            EntryNotFound: If the entry does not exist.
            ReadFailure: On any other I/O error.
        """
        path = self.path_for(name)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise EntryNotFound(f"No cache entry '{name}'", name=name) from exc
        except OSError as exc:
            raise ReadFailure(f"Cannot read cache entry {path}: {exc}", name=name) from exc

    def write_atomic(self, name: str, data: bytes) -> float:
        """Write *data* as the entry called *name*, replacing any previous payload.

        The temporary file is created in the cache directory itself so that
        ``os.replace`` is an atomic rename.  On failure the temporary file
        is removed and the previous entry, if any, is left untouched.

        Returns:
            The entry's modification time after the write completed.

        Raises:
            WriteFailure: If the directory cannot be created or the payload
                cannot be written (disk full, permission denied, ...).
        """
        path = self.path_for(name)

        fd = None
        tmp_path: Optional[str] = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd = tempfile.NamedTemporaryFile(
                mode="wb",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=_TMP_SUFFIX,
                delete=False,
            )
            tmp_path = fd.name
            fd.write(data)
            fd.flush()
            os.fsync(fd.fileno())
            fd.close()
            fd = None
            os.replace(tmp_path, path)
            tmp_path = None
            return path.stat().st_mtime
        except OSError as exc:
            raise WriteFailure(f"Cannot write cache entry {path}: {exc}", name=name) from exc
        finally:
            if fd is not None:
                fd.close()
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass

    # ------------------------------------------------------------------ #
    # Inspection
    # ------------------------------------------------------------------ #

    def entry(self, name: str) -> CacheEntry:
        """Return a :class:`~fetchcache.models.CacheEntry` snapshot for *name*.

        Raises:
            EntryNotFound: If the entry does not exist.
            ReadFailure: If the entry's metadata cannot be read.
        """
        path = self.path_for(name)
        try:
            st = path.stat()
        except FileNotFoundError as exc:
            raise EntryNotFound(f"No cache entry '{name}'", name=name) from exc
        except OSError as exc:
            raise ReadFailure(f"Cannot stat cache entry {path}: {exc}", name=name) from exc
        return CacheEntry(name=name, path=path, size=st.st_size, last_write_time=st.st_mtime)

    def entries(self) -> list[CacheEntry]:
        """Return all entries, sorted by name.  In-flight temp files are skipped."""
        if not self._directory.is_dir():
            return []
        result: list[CacheEntry] = []
        try:
            paths = sorted(self._directory.iterdir())
        except OSError as exc:
            raise ReadFailure(f"Cannot list cache directory {self._directory}: {exc}") from exc
        for path in paths:
            if path.name.startswith(".") and path.name.endswith(_TMP_SUFFIX):
                continue
            if not path.is_file():
                continue
            try:
                result.append(self.entry(path.name))
            except EntryNotFound:
                # Replaced or removed while listing.
                continue
        return result

    def stats(self) -> dict[str, Any]:
        """Return cache statistics.

        Returns:
            A ``dict`` with ``directory`` (str path), ``entries`` (count),
            and ``total_bytes`` (sum of payload sizes).
        """
        entries = self.entries()
        return {
            "directory": str(self._directory),
            "entries": len(entries),
            "total_bytes": sum(e.size for e in entries),
        }
