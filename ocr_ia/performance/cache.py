"""
Result Cache

Content-addressed cache for stage results. Keys are stable hashes of the
operation name and its inputs. Entries expire after their TTL (checked on
read) and the least recently used quarter is evicted once the byte ceiling
is exceeded.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..errors import CacheOverflow

logger = logging.getLogger(__name__)

EVICTION_FRACTION = 0.25


def _jsonable(value: Any) -> Any:
    if hasattr(value, 'to_dict'):
        return value.to_dict()
    return str(value)


def estimate_size(payload: Any) -> int:
    """Approximate in-memory size: two bytes per serialized character."""
    return len(json.dumps(payload, default=_jsonable, ensure_ascii=False)) * 2


def make_cache_key(operation: str, *parts: Any) -> str:
    """Stable key for an operation and its inputs."""
    serialized = json.dumps([operation, *parts], sort_keys=True, default=_jsonable, ensure_ascii=False)
    return f"{operation}:{hashlib.sha256(serialized.encode('utf-8')).hexdigest()[:32]}"


def file_fingerprint(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


@dataclass
class CacheEntry:
    """One cached payload."""
    key: str
    payload: Any
    timestamp: float
    size: int
    ttl: Optional[float] = None
    access_count: int = 0

    def is_expired(self, now: float) -> bool:
        return self.ttl is not None and now - self.timestamp > self.ttl

    def to_dict(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'timestamp': self.timestamp,
            'size': self.size,
            'ttl': self.ttl,
            'access_count': self.access_count,
        }


class ResultCache:
    """
    LRU + TTL cache bounded in bytes.

    Usage:
        cache = ResultCache(max_mb=100, default_ttl=1800)
        key = make_cache_key('extract_document', fingerprint)
        document = cache.get(key)
        if document is None:
            document = extract(...)
            cache.set(key, document)
    """

    def __init__(
        self,
        max_mb: float = 100.0,
        default_ttl: Optional[float] = 1800.0,
        clock: Callable[[], float] = time.time,
    ):
        self.max_bytes = int(max_mb * 1024 * 1024)
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: 'OrderedDict[str, CacheEntry]' = OrderedDict()
        self._size = 0
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.is_expired(self._clock()):
                self._remove(key)
                self._expirations += 1
                self._misses += 1
                return None
            entry.access_count += 1
            self._entries.move_to_end(key)
            self._hits += 1
            return entry.payload

    def set(self, key: str, payload: Any, ttl: Optional[float] = None) -> bool:
        """
        Store a payload.

        Returns:
            False when the payload alone is larger than the cache
        """
        size = estimate_size(payload)
        if size > self.max_bytes:
            error = CacheOverflow(
                f"Entry '{key}' ({size} bytes) exceeds cache size ({self.max_bytes} bytes)",
                {'key': key, 'size': size},
            )
            logger.warning(str(error))
            return False

        with self._lock:
            if key in self._entries:
                self._remove(key)
            self._entries[key] = CacheEntry(
                key=key,
                payload=payload,
                timestamp=self._clock(),
                size=size,
                ttl=ttl if ttl is not None else self.default_ttl,
            )
            self._size += size
            while self._size > self.max_bytes:
                self._evict_lru()
        return True

    def delete(self, key: str) -> bool:
        with self._lock:
            if key not in self._entries:
                return False
            self._remove(key)
            return True

    def __contains__(self, key: str) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def size_bytes(self) -> int:
        return self._size

    @property
    def size_mb(self) -> float:
        return self._size / (1024 * 1024)

    @property
    def keys(self) -> List[str]:
        """Keys from least to most recently used."""
        with self._lock:
            return list(self._entries)

    def cleanup(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                self._remove(key)
            self._expirations += len(expired)
        if expired:
            logger.debug(f"Removed {len(expired)} expired cache entries")
        return len(expired)

    def shrink(self) -> int:
        """Forced eviction of the least recently used quarter."""
        with self._lock:
            return self._evict_lru()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._size = 0
        logger.info("Cache cleared")

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key)
        self._size -= entry.size

    def _evict_lru(self) -> int:
        count = max(1, int(len(self._entries) * EVICTION_FRACTION))
        victims = list(self._entries)[:count]
        for key in victims:
            self._remove(key)
        self._evictions += len(victims)
        logger.debug(f"Evicted {len(victims)} cache entries")
        return len(victims)

    def get_statistics(self) -> Dict[str, Any]:
        lookups = self._hits + self._misses
        return {
            'entries': len(self._entries),
            'size_mb': round(self.size_mb, 3),
            'max_mb': round(self.max_bytes / (1024 * 1024), 3),
            'hits': self._hits,
            'misses': self._misses,
            'hit_ratio': self._hits / lookups if lookups else 0.0,
            'evictions': self._evictions,
            'expirations': self._expirations,
        }
