"""Fetch capability used by the loader to download missing or stale entries.

:class:`Fetcher` is the structural interface the
:class:`~fetchcache.loader.Loader` depends on: any object with a
``fetch(key) -> bytes`` method will do.  :class:`HttpFetcher` is the
default implementation, wrapping :class:`httpx.Client` with:

- **Retry with backoff** -- retries on 5xx, connection and timeout errors
  with exponential delay (1 s, 2 s, 4 s, ...).  Other transport errors
  (unsupported scheme, redirect loops) fail at once.
- **Error mapping** -- any non-2xx answer or exhausted retry becomes a
  :class:`~fetchcache.exceptions.FetchFailure`.
- **Local resources** -- ``file://`` URLs are read straight from disk.
"""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable
from urllib.parse import urlparse
from urllib.request import url2pathname

import httpx

from fetchcache.exceptions import FetchFailure
from fetchcache.models import RequestConfig
from fetchcache.output import get_output


@runtime_checkable
class Fetcher(Protocol):
    """Anything that can turn a cache key into a byte payload."""

    def fetch(self, key: str) -> bytes:
        """Return the payload for *key*, raising on failure."""
        ...


class HttpFetcher:
    """Blocking HTTP(S) fetcher backed by :class:`httpx.Client`.

    The underlying client is created lazily on the first fetch (or on
    ``__enter__``) and reused until :meth:`close`.

    Args:
        config: Timeout, TLS verification, retry count, and User-Agent.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`.

    Example::

        with HttpFetcher(RequestConfig(timeout=10)) as fetcher:
            data = fetcher.fetch("https://example.com/tl.xml")
    """

    def __init__(
        self,
        config: Optional[RequestConfig] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config or RequestConfig()
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._client_lock = threading.Lock()

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> HttpFetcher:
        self._ensure_client()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying :class:`httpx.Client`, if open."""
        with self._client_lock:
            if self._client:
                self._client.close()
                self._client = None

    # ------------------------------------------------------------------ #
    # Fetching
    # ------------------------------------------------------------------ #

    def fetch(self, key: str) -> bytes:
        """Download *key* and return the response body.

        Raises:
            FetchFailure: On a non-2xx response, on network errors after
                all retries, or when a ``file://`` resource is unreadable.
        """
        if urlparse(key).scheme == "file":
            return self._read_local(key)

        response = self._execute_with_retry(key)
        if not response.is_success:
            raise FetchFailure(
                f"HTTP {response.status_code} for {key}",
                key=key,
                status_code=response.status_code,
            )
        return response.content

    def _ensure_client(self) -> httpx.Client:
        with self._client_lock:
            if self._client is None:
                self._client = httpx.Client(
                    timeout=self._config.timeout,
                    verify=self._config.verify_ssl,
                    follow_redirects=True,
                    headers={"User-Agent": self._config.user_agent},
                    transport=self._transport,
                )
            return self._client

    def _execute_with_retry(self, url: str) -> httpx.Response:
        """GET *url* with exponential-backoff retry.

        Retries on 5xx status codes and connection / timeout errors up to
        ``max_retries`` times.  The delay doubles each attempt: 1 s, 2 s, 4 s, ...
        """
        client = self._ensure_client()
        max_retries = self._config.max_retries
        output = get_output()

        for attempt in range(max_retries + 1):
            try:
                response = client.get(url)
            except (httpx.ConnectError, httpx.TimeoutException, httpx.NetworkError) as exc:
                if attempt < max_retries:
                    delay = 2 ** attempt
                    output.debug(
                        f"Connection error: {exc}, retrying in {delay}s "
                        f"(attempt {attempt + 1}/{max_retries})"
                    )
                    time.sleep(delay)
                    continue
                raise FetchFailure(
                    f"Fetching {url} failed after {max_retries + 1} attempts: {exc}",
                    key=url,
                ) from exc
            except httpx.HTTPError as exc:
                raise FetchFailure(f"Fetching {url} failed: {exc}", key=url) from exc

            if response.status_code >= 500 and attempt < max_retries:
                delay = 2 ** attempt
                output.debug(
                    f"Server error {response.status_code}, retrying in {delay}s "
                    f"(attempt {attempt + 1}/{max_retries})"
                )
                time.sleep(delay)
                continue

            return response

        raise FetchFailure(f"Fetching {url} failed after all retries", key=url)  # pragma: no cover

    @staticmethod
    def _read_local(url: str) -> bytes:
        path = Path(url2pathname(urlparse(url).path))
        try:
            return path.read_bytes()
        except OSError as exc:
            raise FetchFailure(f"Cannot read {path}: {exc}", key=url) from exc
