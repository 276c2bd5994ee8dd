"""
Caching utilities for the MedPro practitioner client.

Each service client owns a CacheManager. Entries are grouped by namespace
(the kind of lookup) and scope (the signed-in practitioner), so one login
never reads what another cached and a logout can drop everything at once.
"""

import json
import time
from collections import Counter
from functools import wraps
from threading import Lock
from typing import Any, Dict, NamedTuple, Optional, Tuple

from .config import settings

CacheKey = Tuple[str, str, str]


class _Entry(NamedTuple):
    value: Any
    expires_at: float


def make_key(*args, **kwargs) -> str:
    """Stable key for lookup arguments."""
    return json.dumps([args, sorted(kwargs.items())], sort_keys=True, default=str)


class CacheManager:
    """Thread-safe TTL cache partitioned by namespace and practitioner scope."""

    def __init__(self, enabled: Optional[bool] = None, ttl: Optional[float] = None):
        self._entries: Dict[CacheKey, _Entry] = {}
        self._lock = Lock()
        self.enabled = settings.enable_caching if enabled is None else enabled
        self.ttl = settings.cache_ttl if ttl is None else ttl

    def get(self, namespace: str, key: str, scope: str = "") -> Optional[Any]:
        if not self.enabled:
            return None

        with self._lock:
            entry = self._entries.get((namespace, scope, key))
            if entry is None:
                return None
            if time.time() > entry.expires_at:
                del self._entries[(namespace, scope, key)]
                return None
            return entry.value

    def set(
        self,
        namespace: str,
        key: str,
        value: Any,
        scope: str = "",
        ttl: Optional[float] = None,
    ) -> None:
        if not self.enabled:
            return

        with self._lock:
            self._entries[(namespace, scope, key)] = _Entry(
                value, time.time() + (ttl or self.ttl)
            )

    def invalidate(self, namespace: Optional[str] = None, scope: Optional[str] = None) -> int:
        """Drop entries matching the namespace and/or scope; no filter drops everything."""
        with self._lock:
            doomed = [
                cache_key
                for cache_key in self._entries
                if (namespace is None or cache_key[0] == namespace)
                and (scope is None or cache_key[1] == scope)
            ]
            for cache_key in doomed:
                del self._entries[cache_key]
            return len(doomed)

    def clear(self) -> int:
        return self.invalidate()

    def get_stats(self) -> Dict[str, Any]:
        now = time.time()
        with self._lock:
            expired = sum(1 for entry in self._entries.values() if now > entry.expires_at)
            namespaces = Counter(cache_key[0] for cache_key in self._entries)
            return {
                "total_entries": len(self._entries),
                "active_entries": len(self._entries) - expired,
                "expired_entries": expired,
                "namespaces": dict(namespaces),
                "enabled": self.enabled,
                "ttl_seconds": self.ttl,
            }


def cached_lookup(namespace: str, ttl: Optional[float] = None):
    """
    Cache an async service method in ``self.cache``.

    The key is built from the call arguments (never from ``self``) and the
    entry is scoped to ``self.cache_scope``. ``None`` results are not stored.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs):
            key = make_key(*args, **kwargs)
            scope = self.cache_scope

            hit = self.cache.get(namespace, key, scope=scope)
            if hit is not None:
                return hit

            result = await func(self, *args, **kwargs)
            if result is not None:
                self.cache.set(namespace, key, result, scope=scope, ttl=ttl)
            return result

        return wrapper

    return decorator
