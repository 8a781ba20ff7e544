"""Freshness decision for cached entries.

Pure functions of their arguments; the caller supplies ``now`` so the
policy can be exercised without a real clock.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional


def age(last_write_time: float, now: float) -> float:
    """Seconds elapsed between the entry's last write and *now*."""
    return now - last_write_time


def is_fresh(last_write_time: float, now: float, expiration: Optional[timedelta]) -> bool:
    """Decide whether an entry written at *last_write_time* may be reused.

    Args:
        last_write_time: Entry modification time in epoch seconds.
        now: Current time in epoch seconds.
        expiration: Maximum age, or ``None`` for entries that never expire.

    Returns:
        ``True`` when *expiration* is ``None`` or the entry is strictly
        younger than *expiration*.  An entry whose age equals the
        expiration is stale, and a zero expiration is always stale.
    """
    if expiration is None:
        return True
    return age(last_write_time, now) < expiration.total_seconds()
