"""Fetch capability for fetchcache.

Classes:
    :class:`Fetcher` -- the ``fetch(key) -> bytes`` protocol the loader uses.
    :class:`HttpFetcher` -- blocking implementation backed by :mod:`httpx`.
"""

from fetchcache.client.fetcher import Fetcher, HttpFetcher

__all__ = ["Fetcher", "HttpFetcher"]
