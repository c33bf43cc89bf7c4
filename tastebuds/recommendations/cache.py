from __future__ import annotations

import copy
import fnmatch
import threading
import time
from collections.abc import Callable
from typing import Any

from .config import CacheConfig, DEFAULT_RECOMMENDATION_CONFIG


def collaborative_key(user_id: int, limit: int, config: CacheConfig = DEFAULT_RECOMMENDATION_CONFIG.cache) -> str:
    return f"{config.collaborative_prefix}:{user_id}:{limit}"


def social_key(user_id: int, limit: int, config: CacheConfig = DEFAULT_RECOMMENDATION_CONFIG.cache) -> str:
    return f"{config.social_prefix}:{user_id}:{limit}"


def hybrid_key(
    strategy: str, user_id: int, limit: int, config: CacheConfig = DEFAULT_RECOMMENDATION_CONFIG.cache,
) -> str:
    return f"{config.hybrid_prefix}:{strategy}:{user_id}:{limit}"


def user_key_patterns(user_id: int, config: CacheConfig = DEFAULT_RECOMMENDATION_CONFIG.cache) -> list[str]:
    """Glob patterns matching every cached result list for ``user_id``."""
    return [
        f"{config.collaborative_prefix}:{user_id}:*",
        f"{config.social_prefix}:{user_id}:*",
        f"{config.hybrid_prefix}:*:{user_id}:*",
    ]


class ResultCache:
    """
    In-process TTL cache for ranked result lists.

    Values are deep-copied on ``set`` and ``get``. ``get_or_compute`` runs
    ``compute`` at most once per key while a value is live, even under
    concurrent callers.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._entries: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}
        self._clock = clock
        self._hits = 0
        self._misses = 0

    def _lookup(self, key: str) -> Any | None:
        # Caller holds self._lock; stats are left untouched
        entry = self._entries.get(key)
        if entry and self._clock() < entry[1]:
            return copy.deepcopy(entry[0])
        if entry:
            del self._entries[key]
        return None

    def get(self, key: str) -> Any | None:
        with self._lock:
            value = self._lookup(key)
            if value is None:
                self._misses += 1
            else:
                self._hits += 1
            return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        expires_at = self._clock() + ttl_seconds
        stored = copy.deepcopy(value)
        with self._lock:
            self._entries[key] = (stored, expires_at)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def delete_matching(self, *patterns: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if any(fnmatch.fnmatchcase(k, p) for p in patterns)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            doomed = [k for k, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def get_or_compute(self, key: str, ttl_seconds: float, compute: Callable[[], Any]) -> tuple[Any, bool]:
        """Return ``(value, cache_hit)``; only one caller per key runs ``compute``."""
        cached = self.get(key)
        if cached is not None:
            return cached, True

        with self._lock:
            key_lock = self._key_locks.setdefault(key, threading.Lock())
        with key_lock:
            # Another caller may have filled the key while we waited
            with self._lock:
                cached = self._lookup(key)
                if cached is not None:
                    # Count this call once, as the hit it turned out to be
                    self._misses -= 1
                    self._hits += 1
            if cached is not None:
                return cached, True
            value = compute()
            self.set(key, value, ttl_seconds)
        with self._lock:
            if not key_lock.locked():
                self._key_locks.pop(key, None)
        return value, False

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
            }

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._key_locks.clear()
            self._hits = 0
            self._misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
