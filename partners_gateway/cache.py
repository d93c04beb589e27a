"""
Read-through response caching for the gateway.

This module provides the cache protocol, an in-memory TTL backend, the
response cache the request handlers talk to, and cache key derivation.

Usage:
    from partners_gateway.cache import ResponseCache, TTLCache, make_cache_key

    cache = ResponseCache(TTLCache(maxsize=1024, ttl_seconds=300))

    key = make_cache_key("search", keyword, limit)
    entry = await cache.get(key)
    if entry is None:
        envelope = build_envelope()
        await cache.put(key, envelope)
    else:
        envelope = entry.envelope()  # cached=True

Semantics:
    - Keys are NOT canonicalized for case or whitespace; callers normalize
      parameters first. Two queries differing only in formatting are
      distinct entries.
    - There is no single-flight: concurrent misses on one key may both go
      upstream and both write (last write wins).
    - A hit reproduces the stored envelope with only ``cached`` flipped to
      True; the stored bytes are never modified.
"""

from __future__ import annotations

import hashlib
import json
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Protocol, TypeVar, runtime_checkable
from urllib.parse import quote

from partners_gateway.exceptions import CacheError, CacheKeyError
from partners_gateway.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

SEARCH_TTL_SECONDS = 300
DEFAULT_MAXSIZE = 1024
MAX_KEY_LENGTH = 250

# =============================================================================
# Cache Protocol
# =============================================================================


@runtime_checkable
class CacheBackend(Protocol[T]):
    """Protocol defining the interface for cache backends.

    ResponseCache accepts anything conforming to this protocol, which keeps
    the in-memory backend swappable for a test double.
    """

    def get(self, key: str) -> T | None:
        """Get a value from cache if not expired."""
        ...

    def set(self, key: str, value: T, ttl_seconds: float | None = None) -> None:
        """Store a value, optionally with a per-entry TTL."""
        ...

    def invalidate(self, key: str) -> bool:
        """Invalidate a specific key; True if it was present."""
        ...

    def clear(self) -> int:
        """Clear all entries; returns the number cleared."""
        ...

    @property
    def stats(self) -> dict[str, Any]:
        """Size, maxsize, ttl_seconds, hits, misses and hit_rate."""
        ...


# =============================================================================
# In-memory backend
# =============================================================================


class TTLCache:
    """Thread-safe in-memory LRU cache with per-entry TTL expiry."""

    def __init__(
        self,
        maxsize: int = DEFAULT_MAXSIZE,
        ttl_seconds: float = SEARCH_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if maxsize < 1:
            raise ValueError("maxsize must be at least 1")
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self.maxsize = maxsize
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._data: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)

    def get(self, key: str) -> Any | None:
        now = self._clock()
        with self._lock:
            item = self._data.get(key)
            if item is None:
                self._misses += 1
                return None
            value, expires_at = item
            if now >= expires_at:
                del self._data[key]
                self._misses += 1
                return None
            self._data.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        expires_at = self._clock() + ttl
        with self._lock:
            self._data[key] = (value, expires_at)
            self._data.move_to_end(key)
            while len(self._data) > self.maxsize:
                self._data.popitem(last=False)
                self._evictions += 1

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def clear(self) -> int:
        with self._lock:
            count = len(self._data)
            self._data.clear()
            return count

    @property
    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._data),
                "maxsize": self.maxsize,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 4) if total else 0.0,
                "evictions": self._evictions,
            }


# =============================================================================
# Response cache
# =============================================================================


@dataclass(frozen=True)
class CacheEntry:
    """A stored response envelope.

    ``body`` holds the serialized envelope exactly as written.
    """

    key: str
    body: bytes
    stored_at: float
    ttl: float

    def is_expired(self, now: float | None = None) -> bool:
        return (time.time() if now is None else now) >= self.stored_at + self.ttl

    def envelope(self) -> dict[str, Any]:
        """Decode a fresh copy of the stored envelope with ``cached`` set."""
        data = json.loads(self.body)
        data["cached"] = True
        return data


def serialize_envelope(envelope: dict[str, Any]) -> bytes:
    return json.dumps(envelope, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


class ResponseCache:
    """Read-through cache of serialized response envelopes.

    Args:
        backend: Storage backend; defaults to an in-memory TTLCache.
        default_ttl: TTL applied by ``put`` when none is given.
    """

    def __init__(self, backend: CacheBackend | None = None, default_ttl: float = SEARCH_TTL_SECONDS):
        self.backend = backend if backend is not None else TTLCache(ttl_seconds=default_ttl)
        self.default_ttl = default_ttl

    async def get(self, key: str) -> CacheEntry | None:
        """Look up ``key``; None means a miss (absent or expired)."""
        entry = self.backend.get(key)
        if entry is None:
            logger.debug("Cache miss", cache_key=key)
            return None
        if entry.is_expired():
            self.backend.invalidate(key)
            logger.debug("Cache entry expired", cache_key=key)
            return None
        logger.debug("Cache hit", cache_key=key)
        return entry

    async def put(self, key: str, envelope: dict[str, Any], ttl: float | None = None) -> CacheEntry:
        """Serialize and store ``envelope`` under ``key``."""
        ttl = self.default_ttl if ttl is None else ttl
        try:
            body = serialize_envelope(envelope)
        except (TypeError, ValueError) as e:
            raise CacheError(f"Envelope for '{key}' is not JSON serializable: {e}") from e
        entry = CacheEntry(key=key, body=body, stored_at=time.time(), ttl=ttl)
        self.backend.set(key, entry, ttl_seconds=ttl)
        logger.debug("Cache write", cache_key=key, ttl=ttl, size_bytes=len(body))
        return entry

    def invalidate(self, key: str) -> bool:
        return self.backend.invalidate(key)

    def clear(self) -> int:
        return self.backend.clear()

    @property
    def stats(self) -> dict[str, Any]:
        return self.backend.stats


# =============================================================================
# Cache Key Utilities
# =============================================================================


def make_cache_key(operation: str, *parts: Any, separator: str = ":", max_length: int = MAX_KEY_LENGTH) -> str:
    """Generate a collision-free cache key from an operation and its parameters.

    Each part is percent-encoded, so a separator inside a parameter cannot
    merge two different parameter lists into the same key. ``None`` parts are
    dropped. Keys longer than ``max_length`` are replaced by a SHA-256 digest
    of the full key, keeping the operation as a readable prefix.

    Example:
        >>> make_cache_key("search", "laptop", 2)
        'search:laptop:2'
        >>> make_cache_key("search", "a:b", 10)
        'search:a%3Ab:10'
    """
    operation = str(operation).strip() if operation is not None else ""
    if not operation:
        raise CacheKeyError(str(operation), "operation name is required")

    encoded = [quote(str(p), safe="") for p in parts if p is not None]
    key = separator.join([operation, *encoded])

    if len(key) > max_length:
        content_hash = hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]
        key = f"{operation}{separator}hash_{content_hash}"

    return key


def search_cache_key(keyword: str, limit: int, sub_id: str = "") -> str:
    """Key for a search envelope; sub_id is included since it changes the links."""
    if sub_id:
        return make_cache_key("search", keyword, limit, sub_id)
    return make_cache_key("search", keyword, limit)


__all__ = [
    "SEARCH_TTL_SECONDS",
    "DEFAULT_MAXSIZE",
    "CacheBackend",
    "TTLCache",
    "CacheEntry",
    "ResponseCache",
    "serialize_envelope",
    "make_cache_key",
    "search_cache_key",
]
