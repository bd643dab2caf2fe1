"""Simple in-memory rate limiter with per-key quotas."""
from __future__ import annotations

import datetime as dt
from dataclasses import dataclass

import anyio

from shortlink.core.config import get_settings


@dataclass
class _RateLimitEntry:
    count: int
    expires_at: dt.datetime


class RateLimiter:
    """Track attempts per key with TTL-based eviction."""

    def __init__(self, *, limit: int, interval: dt.timedelta) -> None:
        self._limit = limit
        self._interval = interval
        self._entries: dict[str, _RateLimitEntry] = {}
        self._lock = anyio.Lock()

    async def check(self, key: str) -> tuple[bool, float]:
        """Register an attempt and return whether it is permitted."""

        now = dt.datetime.now(dt.timezone.utc)
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expires_at <= now:
                self._entries[key] = _RateLimitEntry(count=1, expires_at=now + self._interval)
                return True, 0.0

            if entry.count >= self._limit:
                retry_after = (entry.expires_at - now).total_seconds()
                return False, max(retry_after, 0.0)

            entry.count += 1
            return True, 0.0

    async def reset(self, key: str) -> None:
        """Reset the attempt counter for the given key."""

        async with self._lock:
            self._entries.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()


_settings = get_settings()

# Confirm, cancel and preview accept a bearer of the deletion token; throttle guessing.
token_attempt_limiter = RateLimiter(
    limit=_settings.token_attempt_limit,
    interval=dt.timedelta(minutes=_settings.token_attempt_window_minutes),
)

__all__ = ["RateLimiter", "token_attempt_limiter"]
