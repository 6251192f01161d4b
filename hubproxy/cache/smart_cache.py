"""TTL cache with LRU eviction for Docker Hub responses.

Each entry carries its own time-to-live, picked per call site from a
TTLStrategy so that stable metadata lives for an hour while search results
expire after fifteen minutes. When the store is full, inserting a new key
evicts the entry with the oldest access stamp.

The cache is meant to be used from a single event loop. Mutations never
await, so no lock is taken around the internal maps.
"""

import asyncio
import json
import re
import time
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Pattern,
    Tuple,
    Union,
)

from hubproxy.cache.models import (
    DEFAULT_TTLS,
    CacheEntry,
    CacheStats,
    PreloadReport,
    TTLStrategy,
)
from hubproxy.logging_config import configure_module_logging

logger = configure_module_logging("cache")

# Approximate bookkeeping cost of one entry, in bytes
ENTRY_OVERHEAD = 64

FetchFn = Callable[[], Awaitable[Any]]
PreloadItem = Tuple[str, FetchFn, TTLStrategy]


class SmartCache:
    """In-memory TTL/LRU cache with stale fallback on fetch failure."""

    def __init__(
        self,
        max_size: int = 2000,
        default_ttl: float = 1800,
        cleanup_interval: float = 300,
        ttl_overrides: Optional[Mapping[TTLStrategy, float]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            max_size: Maximum number of entries, must be positive
            default_ttl: Lifetime in seconds when no strategy is given
            cleanup_interval: Seconds between background expiry sweeps
            ttl_overrides: Per-strategy lifetimes replacing the defaults
            clock: Time source, injectable for tests
        """
        if max_size <= 0:
            raise ValueError("max_size must be greater than 0")
        if default_ttl <= 0:
            raise ValueError("default_ttl must be greater than 0")

        self.max_size = max_size
        self.default_ttl = default_ttl
        self.cleanup_interval = cleanup_interval
        self.ttl_strategies: Dict[TTLStrategy, float] = dict(DEFAULT_TTLS)
        if ttl_overrides:
            self.ttl_strategies.update(ttl_overrides)

        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._access_order: Dict[str, int] = {}
        self._request_counter = 0
        self._total_requests = 0
        self._hits = 0
        self._misses = 0
        self._cleanup_task: Optional[asyncio.Task] = None

    @staticmethod
    def generate_key(operation: str, params: Mapping[str, Any]) -> str:
        """Build a cache key that ignores parameter order."""
        return f"{operation}:{json.dumps(dict(params), sort_keys=True, default=str)}"

    def resolve_ttl(
        self, strategy: Optional[TTLStrategy] = None, ttl: Optional[float] = None
    ) -> float:
        """Pick the lifetime: explicit ttl, then strategy, then the default."""
        if ttl:
            return ttl
        if strategy is not None:
            return self.ttl_strategies.get(strategy, self.default_ttl)
        return self.default_ttl

    async def get(
        self,
        key: str,
        fetch: FetchFn,
        strategy: Optional[TTLStrategy] = None,
        ttl: Optional[float] = None,
    ) -> Any:
        """
        Return the cached value for key, or fetch and store it.

        Args:
            key: Cache key, usually from generate_key()
            fetch: Zero-argument coroutine function producing the value
            strategy: Named lifetime for a freshly fetched value
            ttl: Explicit lifetime in seconds, wins over strategy

        Returns:
            The fresh cached value, the fetched value, or the stale value
            when fetch fails and an expired entry is still held

        Raises:
            Whatever fetch raises when there is nothing stale to fall back on
        """
        self._total_requests += 1
        self._request_counter += 1

        now = self._clock()
        cached = self._entries.get(key)

        if cached is not None and cached.is_fresh(now):
            cached.hits += 1
            self._hits += 1
            self._access_order[key] = self._request_counter
            logger.debug(
                f"Cache HIT key={key} age={now - cached.created_at:.1f}s hits={cached.hits}"
            )
            return cached.value

        self._misses += 1
        logger.debug(
            f"Cache MISS key={key} reason={'expired' if cached else 'not found'}"
        )

        try:
            value = await fetch()
        except Exception as e:
            # Only what is still stored counts: clear, delete and invalidation
            # may have removed the entry while fetch was pending
            stale = self._entries.get(key)
            if stale is None:
                raise
            logger.warning(f"Returning stale data for {key} after fetch error: {e}")
            stale.hits += 1
            self._access_order[key] = self._request_counter
            return stale.value

        resolved = self.resolve_ttl(strategy, ttl)
        self.set(key, value, resolved)
        logger.debug(f"Cache STORE key={key} ttl={resolved}s")
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store value under key, evicting the LRU entry if a new key needs room."""
        if key not in self._entries and len(self._entries) >= self.max_size:
            self._evict_lru()

        self._request_counter += 1
        self._entries[key] = CacheEntry(
            value=value,
            created_at=self._clock(),
            ttl=ttl or self.default_ttl,
        )
        self._access_order[key] = self._request_counter

    def peek(self, key: str) -> Optional[Any]:
        """Return the fresh value for key without fetching, or None."""
        if not self.has(key):
            return None
        return self._entries[key].value

    def has(self, key: str) -> bool:
        """Check that key exists and has not expired."""
        cached = self._entries.get(key)
        if cached is None:
            return False
        if not cached.is_fresh(self._clock()):
            self._remove(key)
            return False
        return True

    def delete(self, key: str) -> bool:
        """Delete key. Returns True if it was present."""
        existed = key in self._entries
        self._remove(key)
        return existed

    def clear(self) -> None:
        """Remove every entry."""
        self._entries.clear()
        self._access_order.clear()
        logger.info("Cache cleared")

    def invalidate_pattern(self, pattern: Union[str, Pattern[str]]) -> int:
        """Remove every key matching the regular expression.

        Returns:
            Number of entries removed
        """
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        matched = [key for key in self._entries if regex.search(key)]
        for key in matched:
            self._remove(key)

        logger.info(
            f"Pattern invalidation pattern={regex.pattern} invalidated={len(matched)}"
        )
        return len(matched)

    async def preload(self, items: Iterable[PreloadItem]) -> PreloadReport:
        """Warm the cache concurrently; one failure never aborts the others."""
        items = list(items)
        logger.info(f"Starting cache preload functions={len(items)}")
        report = PreloadReport()

        async def _load(key: str, fetch: FetchFn, strategy: TTLStrategy) -> None:
            try:
                value = await fetch()
            except Exception as e:
                logger.warning(f"Preload failed key={key}: {e}")
                report.failed[key] = str(e)
                return
            self.set(key, value, self.resolve_ttl(strategy))
            report.successful.append(key)

        await asyncio.gather(*(_load(key, fetch, strategy) for key, fetch, strategy in items))

        logger.info(
            f"Cache preload completed successful={len(report.successful)} total={report.total}"
        )
        return report

    def cleanup(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if not entry.is_fresh(now)]
        for key in expired:
            self._remove(key)

        if expired:
            logger.debug(
                f"Cleanup completed cleaned={len(expired)} remaining={len(self._entries)}"
            )
        return len(expired)

    def start(self) -> None:
        """Start the periodic expiry sweep on the running event loop."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.get_running_loop().create_task(
                self._cleanup_loop()
            )

    async def stop(self) -> None:
        """Stop the periodic sweep."""
        if self._cleanup_task is None:
            return
        self._cleanup_task.cancel()
        try:
            await self._cleanup_task
        except asyncio.CancelledError:
            pass
        self._cleanup_task = None

    @property
    def running(self) -> bool:
        return self._cleanup_task is not None and not self._cleanup_task.done()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            self.cleanup()

    def stats(self) -> CacheStats:
        """Current counters."""
        hit_rate = (
            self._hits / self._total_requests * 100 if self._total_requests else 0.0
        )
        return CacheStats(
            total_requests=self._total_requests,
            cache_hits=self._hits,
            cache_misses=self._misses,
            hit_rate=hit_rate,
            entries=len(self._entries),
            memory_usage=self.estimate_memory_usage(),
        )

    def info(self) -> Dict[str, Any]:
        """Configuration, counters and a per-entry summary."""
        now = self._clock()
        return {
            "config": {
                "max_size": self.max_size,
                "default_ttl": self.default_ttl,
                "cleanup_interval": self.cleanup_interval,
                "ttl_strategies": {s.value: t for s, t in self.ttl_strategies.items()},
            },
            "stats": self.stats().model_dump(),
            "entries": [
                {
                    "key": key,
                    "age": now - entry.created_at,
                    "ttl": entry.ttl,
                    "hits": entry.hits,
                    "expired": not entry.is_fresh(now),
                }
                for key, entry in self._entries.items()
            ],
            "memory_usage": self.estimate_memory_usage(),
        }

    def estimate_memory_usage(self) -> int:
        """Rough size in bytes: serialized key and value plus fixed overhead."""
        size = 0
        for key, entry in self._entries.items():
            size += len(key) * 2
            size += len(json.dumps(entry.value, default=str)) * 2
            size += ENTRY_OVERHEAD
        return size

    def values(self) -> List[Any]:
        """Values of the entries that have not expired."""
        now = self._clock()
        return [entry.value for entry in self._entries.values() if entry.is_fresh(now)]

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def _evict_lru(self) -> None:
        if not self._access_order:
            return
        oldest_key = min(self._access_order, key=self._access_order.__getitem__)
        self._remove(oldest_key)
        logger.debug(f"LRU eviction key={oldest_key}")

    def _remove(self, key: str) -> None:
        self._entries.pop(key, None)
        self._access_order.pop(key, None)
