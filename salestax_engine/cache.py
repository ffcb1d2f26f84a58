"""
TTL cache in front of the rate store.

Entries are keyed by the resolved jurisdiction codes, the tax category and
the as-of day. Concurrent misses on one key share a single store query
(single-flight): the first caller starts the load and later callers await
the same task. Waiters are shielded, so a caller that times out or is
cancelled never cancels a load other callers still depend on.

Invalidation is immediate. It drops matching entries and detaches matching
in-flight loads so their results are never stored.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import date
from fnmatch import fnmatchcase
from functools import partial
from typing import Any, Awaitable, Callable, NamedTuple, Optional, TypeVar

from salestax_engine.exceptions import TransientStoreError
from salestax_engine.logging_config import get_logger

logger = get_logger("cache")

CACHE_VERSION = "v1"
KEY_PREFIX = f"tax-rate:{CACHE_VERSION}"

T = TypeVar("T")


class RateCacheKey(NamedTuple):
    codes: tuple[str, ...]  # federal, state, county, city
    category: str
    day: date

    def render(self) -> str:
        segments = [code or "-" for code in self.codes]
        return ":".join(
            [KEY_PREFIX, *segments, self.category, self.day.isoformat()]
        )


@dataclass(frozen=True)
class CacheStats:
    hits: int
    misses: int
    writes: int
    deletes: int
    coalesced: int
    size: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total) * 100 if total else 0.0


class _InFlight:
    __slots__ = ("task", "stale")

    def __init__(self, task: "asyncio.Future[Any]") -> None:
        self.task = task
        self.stale = False


def _escape_glob(text: str) -> str:
    return "".join(f"[{c}]" if c in "*?[]" else c for c in text)


class RateCache:
    """In-process TTL cache with single-flight loading."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 4096,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[Any, float]] = {}
        self._inflight: dict[str, _InFlight] = {}
        self._hits = 0
        self._misses = 0
        self._writes = 0
        self._deletes = 0
        self._coalesced = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: RateCacheKey) -> bool:
        return self._live(key.render()) is not None

    def _live(self, rendered: str) -> Optional[tuple[Any, float]]:
        entry = self._entries.get(rendered)
        if entry is None:
            return None
        if entry[1] <= self._clock():
            del self._entries[rendered]
            return None
        return entry

    def get(self, key: RateCacheKey) -> Optional[Any]:
        entry = self._live(key.render())
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return entry[0]

    def put(self, key: RateCacheKey, value: Any) -> None:
        if len(self._entries) >= self.max_entries:
            for k in list(self._entries)[: max(1, self.max_entries // 4)]:
                self._entries.pop(k, None)
        self._entries[key.render()] = (value, self._clock() + self.ttl)
        self._writes += 1

    async def get_or_load(
        self,
        key: RateCacheKey,
        loader: Callable[[], Awaitable[T]],
        timeout: Optional[float] = None,
    ) -> T:
        """
        Return the cached value for ``key``, loading it at most once.

        Raises TransientStoreError if this caller's wait exceeds ``timeout``;
        the shared load keeps running for any other waiters.
        """
        rendered = key.render()
        entry = self._live(rendered)
        if entry is not None:
            self._hits += 1
            logger.debug("Cache HIT for %s", rendered)
            return entry[0]

        flight = self._inflight.get(rendered)
        if flight is None:
            self._misses += 1
            logger.debug("Cache MISS for %s", rendered)
            flight = _InFlight(asyncio.ensure_future(loader()))
            self._inflight[rendered] = flight
            flight.task.add_done_callback(
                partial(self._complete, key, rendered, flight)
            )
        else:
            self._coalesced += 1
            logger.debug("Joining in-flight load for %s", rendered)

        try:
            return await asyncio.wait_for(asyncio.shield(flight.task), timeout)
        except asyncio.TimeoutError as exc:
            raise TransientStoreError(
                f"Rate lookup for {rendered} timed out after {timeout}s"
            ) from exc

    def _complete(
        self,
        key: RateCacheKey,
        rendered: str,
        flight: _InFlight,
        task: "asyncio.Future[Any]",
    ) -> None:
        if self._inflight.get(rendered) is flight:
            del self._inflight[rendered]
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Load failed for %s: %s", rendered, exc)
            return
        if flight.stale:
            logger.debug("Discarding load invalidated in flight: %s", rendered)
            return
        self.put(key, task.result())

    # -- invalidation ----------------------------------------------------

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """Drop every entry whose rendered key matches the glob pattern."""
        search = pattern or f"{KEY_PREFIX}:*"
        doomed = [k for k in self._entries if fnmatchcase(k, search)]
        for k in doomed:
            del self._entries[k]
        for k in [k for k in self._inflight if fnmatchcase(k, search)]:
            self._inflight.pop(k).stale = True
        self._deletes += len(doomed)
        if doomed:
            logger.info(
                "Invalidated %d cache entries matching pattern: %s",
                len(doomed),
                search,
            )
        return len(doomed)

    def invalidate_jurisdiction(self, jurisdiction_code: str) -> int:
        """Drop every entry whose key includes the jurisdiction code."""
        if not jurisdiction_code:
            return 0
        return self.invalidate(f"{KEY_PREFIX}*:{_escape_glob(jurisdiction_code)}:*")

    def clear(self) -> int:
        return self.invalidate()

    def stats(self) -> CacheStats:
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            writes=self._writes,
            deletes=self._deletes,
            coalesced=self._coalesced,
            size=len(self._entries),
        )
