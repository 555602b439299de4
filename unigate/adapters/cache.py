"""In-memory response cache shared by the chat and embedding orchestrators.

Entries hold serialized JSON text with an absolute expiry.  Expiry is checked
on read; an expired entry is dropped and never returned.
"""

import asyncio
import logging
import time
from typing import Callable, Dict, Optional, Tuple

from unigate.core.errors import CacheError

__all__ = ["CacheService"]

logger = logging.getLogger(__name__)


class CacheService:
    """asyncio-safe TTL cache for cache key → serialized response."""

    def __init__(self, max_size: int = 4096, clock: Callable[[], float] = time.monotonic) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._max_size = max_size
        self._clock = clock
        self._store: Dict[str, Tuple[float, str]] = {}
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def try_get(self, key: str) -> Tuple[bool, Optional[str]]:
        async with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return False, None
            expires_at, value = entry
            if self._clock() >= expires_at:
                # expired
                del self._store[key]
                return False, None
            return True, value

    async def set(self, key: str, value: str, ttl: float) -> None:
        if not key:
            raise CacheError("Cache key must not be empty")
        if not isinstance(value, str):
            raise CacheError(f"Cache values must be serialized text, got {type(value).__name__}")
        if ttl <= 0:
            return
        async with self._lock:
            if key not in self._store and len(self._store) >= self._max_size:
                self._evict_locked()
            self._store[key] = (self._clock() + ttl, value)

    async def invalidate_by_prefix(self, prefix: str) -> int:
        """Drop every entry whose key starts with *prefix*; returns the count."""
        if not prefix:
            raise CacheError("Invalidation prefix must not be empty")
        async with self._lock:
            doomed = [key for key in self._store if key.startswith(prefix)]
            for key in doomed:
                del self._store[key]
        if doomed:
            logger.debug(f"Invalidated {len(doomed)} cache entries under '{prefix}'")
        return len(doomed)

    async def clear(self) -> None:
        async with self._lock:
            self._store.clear()

    def __len__(self) -> int:
        return len(self._store)

    # ------------------------------------------------------------------
    def _evict_locked(self) -> None:
        now = self._clock()
        expired = [key for key, (expires_at, _) in self._store.items() if expires_at <= now]
        for key in expired:
            del self._store[key]
        if len(self._store) >= self._max_size:
            # Evict the entry closest to expiry
            soonest = min(self._store.items(), key=lambda kv: kv[1][0])[0]
            self._store.pop(soonest, None)
