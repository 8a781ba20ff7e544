"""Mapping of cache keys (URLs) to file names inside the cache directory.

Every character outside ``[A-Za-z0-9_]`` becomes ``_``, so
``https://example.com/tl.xml`` is stored as ``https___example_com_tl_xml``.
The mapping is a pure function of the key: no hashing salt, no clock.

Two keys that differ only in punctuation (``a/b`` and ``a.b``) share a
storage name.  This is a known limitation of the flat layout.
"""

from __future__ import annotations

import hashlib
import re

MAX_NAME_LENGTH = 200
"""Longest storage name produced; well under the common 255-byte limit."""

_DIGEST_LENGTH = 16
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_]")


def map_to_storage_name(key: str) -> str:
    """Return the filesystem-safe storage name for *key*.

    Names that would exceed :data:`MAX_NAME_LENGTH` are truncated and
    suffixed with a SHA-256 digest prefix of the full key, so long URLs
    sharing a prefix still map to distinct names.

    Args:
        key: The cache key, usually a URL.

    Returns:
        A non-empty name containing only ``[A-Za-z0-9_-]``.
    """
    name = _UNSAFE_CHARS.sub("_", key) or "_"
    if len(name) <= MAX_NAME_LENGTH:
        return name
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]
    head = name[: MAX_NAME_LENGTH - _DIGEST_LENGTH - 1]
    return f"{head}-{digest}"
