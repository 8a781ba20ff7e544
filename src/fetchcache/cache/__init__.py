"""File-backed cache storage for fetchcache.

This package holds the three building blocks the
:class:`~fetchcache.loader.Loader` orchestrates:

* :func:`map_to_storage_name` -- URL to file name.
* :class:`CacheStore` -- atomic writes and read-back in one directory.
* :func:`is_fresh` -- the expiration decision.
"""

from fetchcache.cache.keys import map_to_storage_name
from fetchcache.cache.policy import age, is_fresh
from fetchcache.cache.store import CacheStore

__all__ = ["CacheStore", "age", "is_fresh", "map_to_storage_name"]
