"""Data structures for the response cache."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel


class TTLStrategy(str, Enum):
    """Named cache lifetimes, chosen by how volatile the cached data is."""

    # Stable data
    IMAGE_METADATA = "image_metadata"
    REPOSITORY_INFO = "repository_info"
    TAGS = "tags"

    # Semi-stable data
    SEARCH_RESULTS = "search_results"
    DOWNLOAD_STATS = "download_stats"
    VULNERABILITIES = "vulnerabilities"

    # Tied to a manifest that can be re-pushed
    MANIFEST = "manifest"
    LAYERS = "layers"
    DOCKERFILE = "dockerfile"

    # Very dynamic data
    BEARER_TOKENS = "bearer_tokens"
    RATE_LIMIT = "rate_limit"


# Seconds
DEFAULT_TTLS: Dict[TTLStrategy, float] = {
    TTLStrategy.IMAGE_METADATA: 3600,
    TTLStrategy.REPOSITORY_INFO: 3600,
    TTLStrategy.TAGS: 1800,
    TTLStrategy.SEARCH_RESULTS: 900,
    TTLStrategy.DOWNLOAD_STATS: 1800,
    TTLStrategy.VULNERABILITIES: 7200,
    TTLStrategy.MANIFEST: 600,
    TTLStrategy.LAYERS: 600,
    TTLStrategy.DOCKERFILE: 3600,
    TTLStrategy.BEARER_TOKENS: 270,  # registry tokens expire after 300s
    TTLStrategy.RATE_LIMIT: 60,
}


@dataclass
class CacheEntry:
    """A cached value with its lifetime and hit counter."""

    value: Any
    created_at: float
    ttl: float
    hits: int = 0

    def expires_at(self) -> float:
        return self.created_at + self.ttl

    def is_fresh(self, now: float) -> bool:
        return now < self.created_at + self.ttl


class CacheStats(BaseModel):
    """Counters exposed by SmartCache.stats()"""

    total_requests: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    hit_rate: float = 0.0
    entries: int = 0
    memory_usage: int = 0


@dataclass
class PreloadReport:
    """Outcome of SmartCache.preload()"""

    successful: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.successful) + len(self.failed)
