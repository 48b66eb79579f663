"""
DDI Evidence Mining Engine - Document Cache
Sprint 2: Read-through cache for repository lookups
"""
import logging
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_MISSING = object()


class TTLCache:
    """
    Time-expiring cache for search results, metadata and full text.

    Constructed per process (or per run) and injected into extractors.
    Only completed fetches are stored, so an aborted run leaves no partial
    entries behind.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return default
            stored_at, value = entry
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._entries[key]
                self.misses += 1
                return default
            self.hits += 1
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.info("Document cache cleared")

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._entries),
            "max_age_seconds": self.ttl_seconds,
            "hits": self.hits,
            "misses": self.misses,
        }
