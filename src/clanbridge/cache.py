"""Summary: Short-lived read-through cache for single-entity reads.

Importance: Absorbs bursts of identical reads (the same user looked up many times per request).
Alternatives: Cache in Redis shared across processes.
"""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """Summary: Cached value with the monotonic time it was fetched.

    Importance: Age is computed from fetched_at on every lookup.
    Alternatives: Store an absolute expiry instead.
    """

    value: Any
    fetched_at: float


class EntityCache:
    """Summary: TTL cache keyed by entity identifier.

    Importance: Read accelerator only; writers must call invalidate for read-your-writes.
    Alternatives: Memoize fetchers with functools.lru_cache.

    Entries are local to the process. Two tasks missing the same key at once may both fetch;
    the later store wins. A fetch that overlaps invalidate returns its value but does not store it.
    """

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        max_entries: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._generations: dict[str, int] = {}

    async def get_or_fetch(self, key: str, fetcher: Callable[[], Awaitable[Any]]) -> Any:
        """Summary: Return a fresh cached value or call fetcher and cache its result.

        Importance: Fetcher errors propagate and leave the cache untouched.
        Alternatives: Serve stale values when the fetcher fails.
        """

        entry = self._entries.get(key)
        if entry is not None and self._clock() - entry.fetched_at < self._ttl:
            logger.debug("Cache hit for %s.", key)
            return entry.value
        generation = self._generations.get(key, 0)
        value = await fetcher()
        if self._generations.get(key, 0) == generation:
            self._store(key, value)
        else:
            logger.debug("Discarded fetch for %s invalidated mid-flight.", key)
        return value

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)
        self._generations[key] = self._generations.get(key, 0) + 1

    def clear(self) -> None:
        self._entries.clear()
        for key in self._generations:
            self._generations[key] += 1

    def __len__(self) -> int:
        return len(self._entries)

    def _store(self, key: str, value: Any) -> None:
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(value=value, fetched_at=self._clock())
        if self._max_entries is not None:
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted %s from cache.", evicted)
