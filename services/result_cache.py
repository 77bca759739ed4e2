"""
In-process, tag-keyed TTL cache for expensive pipeline results.

Reads and loader runs take no lock, so two concurrent misses may both compute.
Only the store step is serialised per tag: a result computed by a run that
started before the currently stored entry was created is discarded in favour
of that entry, so callers converge on one value. A result whose run started
before the last `invalidate()` of its tag is returned to its caller but never
stored.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Generic, List, MutableMapping, Optional, TypeVar

from app.core.logging import get_logger

logger = get_logger().bind(module="result_cache")

ANALYSIS_TAG = "exchange-rate-analysis"
EXCHANGE_RATE_TAG = "exchange-rate"

T = TypeVar("T")


@dataclass(frozen=True)
class CacheEntry:
    value: Any
    created_at: float
    expires_at: float


@dataclass(frozen=True)
class CacheLookup(Generic[T]):
    value: T
    cached: bool
    created_at: datetime


@dataclass(frozen=True)
class _Registration:
    loader: Callable[[], Awaitable[Any]]
    ttl_s: float


class ResultCache:
    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        storage: Optional[MutableMapping[str, CacheEntry]] = None,
    ) -> None:
        self._clock = clock
        self._storage: MutableMapping[str, CacheEntry] = storage if storage is not None else {}
        self._registrations: Dict[str, _Registration] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        # Bumped by invalidate(); runs that started under an older generation never store.
        self._generations: Dict[str, int] = {}

    def register(self, tag: str, loader: Callable[[], Awaitable[Any]], ttl_s: float) -> None:
        if ttl_s <= 0:
            raise ValueError("ttl_s must be positive")
        self._registrations[tag] = _Registration(loader=loader, ttl_s=float(ttl_s))
        self._locks.setdefault(tag, asyncio.Lock())

    @property
    def tags(self) -> List[str]:
        return list(self._registrations)

    def _registration(self, tag: str) -> _Registration:
        try:
            return self._registrations[tag]
        except KeyError:
            raise KeyError(f"No loader registered for cache tag '{tag}'") from None

    def _fresh_entry(self, tag: str, now: float) -> Optional[CacheEntry]:
        entry = self._storage.get(tag)
        if entry is not None and now < entry.expires_at:
            return entry
        return None

    @staticmethod
    def _lookup(entry: CacheEntry, cached: bool) -> CacheLookup:
        return CacheLookup(
            value=entry.value,
            cached=cached,
            created_at=datetime.fromtimestamp(entry.created_at, tz=timezone.utc),
        )

    async def _compute_and_store(self, tag: str, *, keep_newer: bool) -> CacheLookup:
        registration = self._registration(tag)
        started_at = self._clock()
        generation = self._generations.get(tag, 0)
        # Loader errors propagate; nothing is stored.
        value = await registration.loader()

        async with self._locks[tag]:
            now = self._clock()
            if generation != self._generations.get(tag, 0):
                logger.info("cache_store_discarded_invalidated", tag=tag)
                return CacheLookup(
                    value=value,
                    cached=False,
                    created_at=datetime.fromtimestamp(now, tz=timezone.utc),
                )
            if keep_newer:
                current = self._fresh_entry(tag, now)
                if current is not None and current.created_at >= started_at:
                    logger.info("cache_store_superseded", tag=tag)
                    return self._lookup(current, cached=True)
            entry = CacheEntry(value=value, created_at=now, expires_at=now + registration.ttl_s)
            self._storage[tag] = entry

        logger.info(
            "cache_stored",
            tag=tag,
            ttl_s=registration.ttl_s,
            compute_ms=int((now - started_at) * 1000),
        )
        return self._lookup(entry, cached=False)

    async def get(self, tag: str) -> CacheLookup:
        self._registration(tag)
        entry = self._fresh_entry(tag, self._clock())
        if entry is not None:
            logger.debug("cache_hit", tag=tag)
            return self._lookup(entry, cached=True)
        logger.info("cache_miss", tag=tag)
        return await self._compute_and_store(tag, keep_newer=True)

    async def get_force_fresh(self, tag: str) -> CacheLookup:
        logger.info("cache_force_refresh", tag=tag)
        return await self._compute_and_store(tag, keep_newer=False)

    def invalidate(self, tag: Optional[str] = None) -> List[str]:
        """
        Expire one tag (or every registered tag) immediately and return the tag names.

        An unregistered tag is echoed back like a registered one; nothing is
        stored under it, so there is nothing to drop.
        """
        if tag is None:
            targets = self.tags
        else:
            if tag not in self._registrations:
                logger.warning("cache_invalidate_unknown_tag", tag=tag)
            targets = [tag]
        for name in targets:
            self._storage.pop(name, None)
            self._generations[name] = self._generations.get(name, 0) + 1
        logger.info("cache_invalidated", tags=targets)
        return targets
