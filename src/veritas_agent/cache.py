"""
In-process caching for the Veritas investigator.

Two pieces:

1. ``TTLCache`` – a bounded, time-expiring map.  Used both as the result
   cache (finished investigations, minutes) and as the evidence cache
   (collector outcomes, seconds).
2. ``RequestDeduplicator`` – single-flight wrapper over a ``TTLCache``.
   Concurrent callers asking for the same key share one in-flight task, so
   the fast and full lanes never issue the same outbound call twice.

Nothing here is persisted; a restart starts cold.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Optional, Protocol

logger = logging.getLogger(__name__)


def normalize_subject(raw: Optional[str]) -> str:
    """Trim whitespace; case is preserved since base58 is case-sensitive."""
    return (raw or "").strip()


class CacheService(Protocol):
    """Interface the investigator depends on (swap in a test double)."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None: ...

    def delete(self, key: str) -> None: ...


class TTLCache:
    """Size-bounded TTL cache backed by an ``OrderedDict``.

    Insertion order doubles as age order, so eviction drops expired entries
    first and then the oldest ones.  Not designed for multi-process use;
    single event loop only.
    """

    def __init__(
        self,
        default_ttl: float = 300,
        max_entries: int = 10_000,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store: OrderedDict[str, tuple[float, Any]] = OrderedDict()
        self._default_ttl = default_ttl
        self._max_entries = max_entries
        self._clock = clock

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value or ``None`` if missing / expired."""
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store *value* under *key* with the given TTL in seconds."""
        actual_ttl = ttl if ttl is not None else self._default_ttl
        # Re-inserting moves the key to the young end
        self._store.pop(key, None)
        self._store[key] = (self._clock() + actual_ttl, value)
        if len(self._store) > self._max_entries:
            self._purge_expired()
            while len(self._store) > self._max_entries:
                evicted, _ = self._store.popitem(last=False)
                logger.debug("TTLCache evicted %s", evicted)

    def delete(self, key: str) -> None:
        """Remove a specific key."""
        self._store.pop(key, None)

    invalidate = delete

    def clear(self) -> None:
        """Drop all cached entries."""
        self._store.clear()

    def _purge_expired(self) -> None:
        now = self._clock()
        expired = [k for k, (exp, _) in self._store.items() if now >= exp]
        for k in expired:
            del self._store[k]

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        self._purge_expired()
        return len(self._store)


class RequestDeduplicator:
    """Memoise async calls by key and collapse concurrent duplicates.

    Parameters
    ----------
    cache:
        Where completed values are kept between calls.
    ttl:
        Lifetime of memoised values; ``None`` uses the cache default.
    """

    def __init__(self, cache: CacheService, *, ttl: Optional[float] = None) -> None:
        self._cache = cache
        self._ttl = ttl
        self._inflight: dict[str, asyncio.Task] = {}

    @property
    def cache(self) -> CacheService:
        return self._cache

    @property
    def inflight_count(self) -> int:
        return len(self._inflight)

    async def run(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        *,
        cache_if: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """Return the value for *key*, computing it at most once at a time.

        Values rejected by *cache_if* are handed to current waiters but not
        memoised.  Exceptions reach every waiter and are never memoised.
        """
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fill(key, factory, cache_if))
            self._inflight[key] = task
            task.add_done_callback(lambda t, k=key: self._settle(k, t))
        else:
            logger.debug("joined in-flight request for %s", key)
        # Shield so one waiter's cancellation does not cancel the others
        return await asyncio.shield(task)

    async def _fill(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        cache_if: Optional[Callable[[Any], bool]],
    ) -> Any:
        value = await factory()
        if value is not None and (cache_if is None or cache_if(value)):
            self._cache.set(key, value, self._ttl)
        return value

    def _settle(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        # Mark the exception retrieved; waiters still receive it
        if not task.cancelled():
            task.exception()
