"""Short-lived in-process cache for map payloads."""

import hashlib
import json
import logging
import threading
import time
from typing import Any, Dict, Optional

from geosearch.domain import Bounds, SearchFilters


logger = logging.getLogger(__name__)


class TTLCache:
    """Simple TTL cache with max size limit."""

    def __init__(self, maxsize: int = 512, ttl: float = 30, timer=time.monotonic):
        self._cache = {}
        self._timer = timer
        self._maxsize = maxsize
        self._ttl = ttl
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            if key in self._cache:
                value, timestamp = self._cache[key]
                if self._timer() - timestamp < self._ttl:
                    self._hits += 1
                    return value
                del self._cache[key]
            self._misses += 1
            return None

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            # Evict oldest entry when full
            if key not in self._cache and len(self._cache) >= self._maxsize:
                oldest_key = min(self._cache.keys(), key=lambda k: self._cache[k][1])
                del self._cache[oldest_key]
                logger.debug("Map cache full, evicted %s", oldest_key)
            self._cache[key] = (value, self._timer())

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def stats(self) -> Dict[str, Any]:
        return {
            "size": len(self._cache),
            "maxsize": self._maxsize,
            "ttl": self._ttl,
            "hits": self._hits,
            "misses": self._misses,
        }


def build_map_cache_key(
    bounds: Bounds,
    zoom: int,
    mode: str,
    precision: Optional[int],
    filters: SearchFilters,
    bucket: Optional[tuple] = None,
) -> str:
    """
    Stable key for a map payload.

    Bounds are rounded so sub-metre pans share an entry; filters are
    serialized with sorted keys so dict order never changes the key.
    """
    parts = {
        "bounds": bounds.rounded(5),
        "zoom": zoom,
        "mode": mode,
        "precision": precision,
        "filters": filters.as_dict(),
        "bucket": list(bucket) if bucket else None,
    }
    raw = json.dumps(parts, sort_keys=True, default=str)
    return f"map:{hashlib.md5(raw.encode()).hexdigest()}"
