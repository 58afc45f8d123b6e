"""
In-memory TTL cache for GitHub REST responses.

Keys have the form "<type>:<owner>/<repo>" so everything cached for a
repository can be invalidated at once.
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class CacheEntry:
    """Cache entry with data and metadata"""
    data: Any
    timestamp: float
    size_bytes: int

    def is_expired(self, ttl_seconds: float) -> bool:
        """Check if entry has expired."""
        return (time.time() - self.timestamp) > ttl_seconds


class MemoryCache:
    """
    In-memory cache for per-repository REST results.

    Entries expire after ttl_seconds. When the total size would exceed
    max_size_mb the oldest entries are evicted first.
    """

    def __init__(self, ttl_seconds: float = 300, max_size_mb: int = 50):
        """
        Initialize cache.

        Args:
            ttl_seconds: Time-to-live for cache entries (default: 5 minutes)
            max_size_mb: Maximum cache size in megabytes
        """
        self.ttl_seconds = ttl_seconds
        self.max_size_bytes = max_size_mb * 1024 * 1024
        self._cache: Dict[str, CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    @staticmethod
    def make_key(data_type: str, owner: str, repo: str) -> str:
        """Generate cache key."""
        return f"{data_type}:{owner}/{repo}"

    def _estimate_size(self, data: Any) -> int:
        """Estimate size of data in bytes."""
        try:
            return len(json.dumps(data, default=str).encode("utf-8"))
        except (TypeError, ValueError):
            return 0

    def _get_total_size(self) -> int:
        return sum(entry.size_bytes for entry in self._cache.values())

    def _evict_if_needed(self, new_size: int):
        """Evict oldest entries if cache would exceed max size."""
        current_size = self._get_total_size()

        if current_size + new_size <= self.max_size_bytes:
            return

        sorted_entries = sorted(self._cache.items(), key=lambda x: x[1].timestamp)

        for key, entry in sorted_entries:
            if current_size + new_size <= self.max_size_bytes:
                break
            current_size -= entry.size_bytes
            del self._cache[key]

    def get(self, key: str) -> Optional[Any]:
        """
        Get cached data.

        Returns:
            Cached data or None if not found/expired
        """
        entry = self._cache.get(key)

        if entry is None:
            self._misses += 1
            return None

        if entry.is_expired(self.ttl_seconds):
            del self._cache[key]
            self._misses += 1
            return None

        self._hits += 1
        return entry.data

    def set(self, key: str, data: Any):
        """Store data in cache."""
        size = self._estimate_size(data)
        self._evict_if_needed(size)
        self._cache[key] = CacheEntry(data=data, timestamp=time.time(), size_bytes=size)

    def invalidate(self, owner: str, repo: str):
        """Invalidate every entry cached for a repository."""
        suffix = f":{owner}/{repo}"
        for key in [k for k in self._cache if k.endswith(suffix)]:
            del self._cache[key]

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics.

        Returns:
            Dictionary with cache stats
        """
        total_requests = self._hits + self._misses
        hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0

        return {
            "entries": len(self._cache),
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate_percent": round(hit_rate, 2),
            "size_bytes": self._get_total_size(),
            "ttl_seconds": self.ttl_seconds,
        }
