"""
Read-side TTL cache service.

Provides a thin cache wrapper with:
  - per-entry expiry (milliseconds)
  - prefix-pattern eviction so one call clears a whole key family
  - cache-aside ``cached_query``
  - typed invalidation scopes mapped to concrete keys

Uses Redis when CACHE_URL is a redis:// URL, otherwise an in-process dict.
One CacheService instance is built per app (see ``init_cache``) and injected
into the workflow engine; nothing here is a module-level singleton.

Key families:
    activities_by_dept_<dept>          pending list per department   (~5s)
    completed_activities_dept_<dept>   completion history per dept   (~10s)
    activity_stats                     aggregate counters            (~5s)
    user_notifications_<user_id>       notification feed per user    (~2s)
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import redis

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 5000


# ── Typed invalidation scopes ────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class DepartmentList:
    """Pending activities visible to one department."""

    department: str

    @property
    def key(self) -> str:
        return f"activities_by_dept_{self.department}"


@dataclass(frozen=True, slots=True)
class CompletedList:
    """Activities that passed through one department."""

    department: str

    @property
    def key(self) -> str:
        return f"completed_activities_dept_{self.department}"


@dataclass(frozen=True, slots=True)
class Stats:
    @property
    def key(self) -> str:
        return "activity_stats"


@dataclass(frozen=True, slots=True)
class UserNotifications:
    user_id: int

    @property
    def key(self) -> str:
        return f"user_notifications_{self.user_id}"


@dataclass(frozen=True, slots=True)
class AllDepartmentLists:
    """Every per-department pending list (used when the blast radius is unknown)."""

    @property
    def prefix(self) -> str:
        return "activities_by_dept_"


@dataclass(frozen=True, slots=True)
class AllCompletedLists:
    @property
    def prefix(self) -> str:
        return "completed_activities_dept_"


CacheScope = (
    DepartmentList | CompletedList | Stats | UserNotifications
    | AllDepartmentLists | AllCompletedLists
)


# ── Backends ─────────────────────────────────────────────────────────────


class MemoryBackend:
    """Dict-backed store for single-process deployments and tests.

    Map-level operations hold a lock; there is no cross-process coordination.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._store: dict[str, tuple[str, float]] = {}  # key → (value_json, expires_at)
        self._lock = threading.Lock()
        self._clock = clock or time.monotonic

    def get(self, key):
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            val, expires = entry
            if self._clock() >= expires:
                self._store.pop(key, None)
                return None
            return val

    def psetex(self, key, ttl_ms, value):
        with self._lock:
            self._store[key] = (value, self._clock() + ttl_ms / 1000.0)

    def delete(self, *keys):
        with self._lock:
            return sum(1 for k in keys if self._store.pop(k, None) is not None)

    def scan_iter(self, match=None):
        """Simple glob matching for 'prefix*' patterns."""
        with self._lock:
            keys = list(self._store)
        if match is None:
            return keys
        if match.endswith("*"):
            prefix = match[:-1]
            return [k for k in keys if k.startswith(prefix)]
        return [k for k in keys if k == match]

    def flushdb(self):
        with self._lock:
            self._store.clear()

    def ping(self):
        return True

    def close(self):
        self.flushdb()


def _build_backend(url: str | None):
    """Connect to Redis for redis:// URLs, otherwise use memory."""
    if url and not url.startswith("memory://"):
        try:
            backend = redis.from_url(url, decode_responses=True)
            backend.ping()
            logger.info("Cache: using Redis at %s", url.split("@")[-1])
            return backend
        except redis.RedisError as exc:
            logger.warning("Redis unavailable (%s) - falling back to memory cache", exc)
    return MemoryBackend()


# ── Service ──────────────────────────────────────────────────────────────


class CacheService:
    """Keyed store with per-entry TTL, prefix eviction and cache-aside reads."""

    def __init__(self, backend=None, url: str | None = None) -> None:
        self._backend = backend if backend is not None else _build_backend(url)

    @property
    def backend_type(self) -> str:
        return "memory" if isinstance(self._backend, MemoryBackend) else "redis"

    def get(self, key: str) -> Any:
        """Return the cached value, or None on miss or expiry."""
        raw = self._backend.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding undecodable cache entry", extra={"cache_key": key})
            self._backend.delete(key)
            return None

    def set(self, key: str, value: Any, ttl_ms: int = DEFAULT_TTL_MS) -> None:
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        self._backend.psetex(key, int(ttl_ms), json.dumps(value, default=str))

    def delete(self, key: str) -> None:
        self._backend.delete(key)

    def invalidate_pattern(self, prefix: str) -> int:
        """Remove every key starting with *prefix*. Returns the number removed."""
        keys = list(self._backend.scan_iter(match=f"{prefix}*"))
        if not keys:
            return 0
        self._backend.delete(*keys)
        logger.debug("Cache: invalidated %d key(s) with prefix %s", len(keys), prefix)
        return len(keys)

    def invalidate(self, *scopes: CacheScope) -> None:
        """Evict the keys behind each typed scope."""
        exact = []
        for scope in scopes:
            if isinstance(scope, (AllDepartmentLists, AllCompletedLists)):
                self.invalidate_pattern(scope.prefix)
            else:
                exact.append(scope.key)
        if exact:
            self._backend.delete(*exact)

    def cached_query(
        self,
        key: str,
        compute_fn: Callable[[], Any],
        ttl_ms: int = DEFAULT_TTL_MS,
    ) -> Any:
        """Cache-aside read.

        Returns the cached value if unexpired; otherwise calls *compute_fn*,
        stores the result for *ttl_ms* and returns it. If *compute_fn* raises,
        the exception propagates and nothing is stored.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = compute_fn()
        if value is not None:
            self.set(key, value, ttl_ms)
        return value

    def clear(self) -> None:
        """Flush the entire cache (mainly for testing)."""
        self._backend.flushdb()

    def health_check(self) -> dict:
        try:
            self._backend.ping()
            return {"status": "ok", "backend": self.backend_type}
        except redis.RedisError as exc:
            return {"status": "error", "backend": self.backend_type, "detail": str(exc)}

    def close(self) -> None:
        self._backend.close()


def init_cache(app) -> CacheService:
    """Build the app's CacheService from CACHE_URL and register it on the app."""
    cache = CacheService(url=app.config.get("CACHE_URL", "memory://"))
    app.extensions["cache_service"] = cache
    return cache
