"""
Per-process request cache.

Maps a normalized request key to a previously accepted result. Entries expire
after their TTL; once the store grows past its capacity threshold, a sweep
removes expired entries. Live entries are never evicted early.
"""

import copy
import hashlib
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Protocol, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0
DEFAULT_MAX_ENTRIES = 1000
DEFAULT_KEY_PREFIX_CHARS = 200


def make_cache_key(
    prompt: str,
    model: str,
    temperature: float,
    prefix_chars: int = DEFAULT_KEY_PREFIX_CHARS
) -> str:
    """Derive a deterministic cache key.

    The prompt is lowercased, stripped and cut to prefix_chars before
    hashing, so key generation stays cheap for very large prompts.
    """
    key_data = {
        "prompt": prompt.lower().strip()[:prefix_chars],
        "model": model,
        "temperature": temperature,
    }
    encoded = json.dumps(key_data, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    """One stored result with its expiry metadata."""
    key: str
    value: Any
    created_at: float
    ttl: float
    hit_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


@dataclass(frozen=True)
class CacheStats:
    """Point-in-time cache statistics."""
    size: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class RequestCache(Protocol):
    """Cache contract used by the gateway."""

    def get(self, key: str) -> Tuple[Any, bool]: ...

    def set(self, key: str, value: Any, ttl: float) -> None: ...

    def stats(self) -> CacheStats: ...

    def clear(self) -> None: ...


class InMemoryRequestCache:
    """Lock-guarded dict cache with per-entry TTL."""

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic
    ):
        if max_entries <= 0:
            raise ValueError("max_entries must be > 0")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Tuple[Any, bool]:
        """Return (value, True) for a live entry, (None, False) otherwise.

        An expired entry is removed as part of the lookup.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None, False
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._misses += 1
                return None, False
            entry.hit_count += 1
            self._hits += 1
            value = entry.value
        return copy.deepcopy(value), True

    def set(self, key: str, value: Any, ttl: float = DEFAULT_TTL_SECONDS) -> None:
        """Insert or overwrite an entry."""
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        stored = copy.deepcopy(value)
        with self._lock:
            self._entries[key] = CacheEntry(
                key=key,
                value=stored,
                created_at=self._clock(),
                ttl=ttl,
            )
            if len(self._entries) > self.max_entries:
                self._sweep_expired()

    def _sweep_expired(self) -> None:
        # Caller holds the lock
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.is_expired(now)]
        for key in expired:
            del self._entries[key]
        logger.debug(
            "Cache sweep removed %d expired entries, %d remain",
            len(expired), len(self._entries)
        )

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
            )

    def clear(self) -> None:
        """Remove every entry and reset counters."""
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

