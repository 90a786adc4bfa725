import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Hashable, Optional


class TTLCache:
    """Small in-memory cache for read-mostly API responses.

    Entries expire ``ttl_seconds`` after insertion. When the cache is full the
    oldest entry is evicted first.
    """

    def __init__(self, ttl_seconds: float = 300, max_size: int = 100):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self._entries: "OrderedDict[Hashable, tuple[float, Any]]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def _expired(self, stored_at: float, now: float) -> bool:
        return now - stored_at >= self.ttl_seconds

    def get(self, key: Hashable) -> Optional[Any]:
        now = time.monotonic()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._expired(entry[0], now):
                if entry is not None:
                    del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry[1]

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                self._entries.popitem(last=False)
            self._entries[key] = (time.monotonic(), value)

    def cleanup(self) -> int:
        now = time.monotonic()
        with self._lock:
            expired = [key for key, (stored_at, _) in self._entries.items() if self._expired(stored_at, now)]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def clear(self) -> int:
        with self._lock:
            size = len(self._entries)
            self._entries.clear()
        return size

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            total = self.hits + self.misses
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": f"{(self.hits / total * 100) if total else 0:.0f}%",
            }


CACHE_PRESETS = {
    "short": {"ttl_seconds": 60, "max_size": 50},
    "medium": {"ttl_seconds": 300, "max_size": 100},
    "stats": {"ttl_seconds": 600, "max_size": 20},
}

leaderboard_cache = TTLCache(**CACHE_PRESETS["short"])
statistics_cache = TTLCache(**CACHE_PRESETS["stats"])

CLEANUP_INTERVAL_SECONDS = 600


def cleanup_caches() -> int:
    """Drop expired entries from every shared cache."""
    return leaderboard_cache.cleanup() + statistics_cache.cleanup()
