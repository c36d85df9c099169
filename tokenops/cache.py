"""
Explicit refreshable cache for values fetched from the network.

A cached value is data (``value + fetched_at``), not a module-level
variable. Owners inject a ``RefreshingCache`` and call ``refresh(now)``;
the cache re-fetches only when the held value is older than its TTL.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class CachedValue(Generic[T]):
    """A value and the monotonic time it was fetched."""

    value: T
    fetched_at: float

    def age(self, now: float) -> float:
        return now - self.fetched_at


class RefreshingCache(Generic[T]):
    """Holds one value, re-fetched when older than ``ttl`` seconds.

    Args:
        fetch: Coroutine function producing a fresh value.
        ttl: Maximum age in seconds before a refresh fetches again.

    Concurrent refreshers share a lock so a stale value triggers one
    fetch, not one per caller.
    """

    def __init__(self, fetch: Callable[[], Awaitable[T]], ttl: float) -> None:
        if ttl < 0:
            raise ValueError("ttl must be non-negative")
        self._fetch = fetch
        self._ttl = ttl
        self._current: CachedValue[T] | None = None
        self._lock = asyncio.Lock()

    @property
    def current(self) -> CachedValue[T] | None:
        return self._current

    def is_fresh(self, now: float) -> bool:
        return self._current is not None and self._current.age(now) < self._ttl

    async def refresh(self, now: float) -> T:
        """Return the cached value, fetching first if it is stale or absent."""
        async with self._lock:
            if self._current is not None and self._current.age(now) < self._ttl:
                return self._current.value
            value = await self._fetch()
            self._current = CachedValue(value=value, fetched_at=now)
            return value

    def invalidate(self) -> None:
        self._current = None
