"""Canonical Pydantic models shared across all fetchcache modules.

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`RequestConfig` and :class:`CacheConfig`.

**Inspection models** -- produced by the cache store for diagnostics:
    :class:`CacheEntry`.

All models use Pydantic v2.  Durations are stored as
:class:`~datetime.timedelta` and accept plain numbers of seconds on input,
so ``{"expiration": 3600}`` in a config file means one hour.
"""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from fetchcache import __version__


# --- Request Config ---


class RequestConfig(BaseModel):
    """HTTP settings used by :class:`~fetchcache.client.HttpFetcher`."""

    timeout: int = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(default=3, ge=0, description="Max retry attempts")
    user_agent: str = Field(
        default=f"fetchcache/{__version__}",
        description="User-Agent header sent with every request",
    )


# --- Cache Config ---


class CacheConfig(BaseModel):
    """Configuration held by a single :class:`~fetchcache.loader.Loader`.

    ``expiration`` of ``None`` means cached entries never go stale once
    written.  A zero expiration makes every entry stale immediately, so
    each call re-fetches.

    Example::

        CacheConfig(
            cache_directory=Path("/var/cache/tl"),
            expiration=timedelta(hours=6),
            serve_stale_on_error=True,
        )
    """

    cache_directory: Path = Field(description="Directory holding one file per cached key")
    expiration: Optional[timedelta] = Field(
        default=None,
        description="Maximum age of a reusable entry (None = never expires)",
    )
    serve_stale_on_error: bool = Field(
        default=False,
        description="Return a stale cached copy when a refresh fetch fails",
    )
    ignored_keys: list[str] = Field(
        default_factory=list,
        description="Keys that always bypass the cache",
    )
    request: RequestConfig = Field(default_factory=RequestConfig)

    @field_validator("expiration")
    @classmethod
    def _non_negative_expiration(cls, value: Optional[timedelta]) -> Optional[timedelta]:
        if value is not None and value < timedelta(0):
            raise ValueError("expiration must not be negative")
        return value


# --- Inspection ---


class CacheEntry(BaseModel):
    """Snapshot of one entry on disk, as reported by the cache store."""

    name: str
    path: Path
    size: int
    last_write_time: float = Field(description="Modification time in epoch seconds")
