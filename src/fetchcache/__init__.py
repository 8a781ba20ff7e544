"""fetchcache -- a file-backed cache for remote byte payloads.

Answers "do I already have a sufficiently fresh copy of this resource?"
before making a network call.  Each URL maps to one file in a cache
directory; the file's modification time is the only freshness signal.

Typical use::

    from fetchcache import CacheConfig, HttpFetcher, Loader

    config = CacheConfig(cache_directory="/tmp/tl-cache", expiration=3600)
    with Loader(config, HttpFetcher(config.request)) as loader:
        data = loader.get("https://example.com/trusted-list.xml")

Modules:
    loader: :class:`Loader`, the public entry point.
    cache: Storage names, the on-disk store, and the freshness policy.
    client: The :class:`Fetcher` protocol and its httpx implementation.
    models: Pydantic configuration models.
    config: XDG-aware configuration resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    output: stderr diagnostics with Rich support.
"""

__version__ = "0.1.0"

from fetchcache.client import Fetcher, HttpFetcher  # noqa: E402
from fetchcache.exceptions import (  # noqa: E402
    FetchCacheError,
    FetchFailure,
    StorageFailure,
)
from fetchcache.loader import Loader  # noqa: E402
from fetchcache.models import CacheConfig, RequestConfig  # noqa: E402

__all__ = [
    "CacheConfig",
    "FetchCacheError",
    "FetchFailure",
    "Fetcher",
    "HttpFetcher",
    "Loader",
    "RequestConfig",
    "StorageFailure",
    "__version__",
]
