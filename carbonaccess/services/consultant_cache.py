"""
Consultant Scope Cache — tenant id → owning consultant_admin id.

Small read-through cache used when stamping audit rows, so a burst of
events for one tenant does one ownership lookup instead of one per event.

  - per-entry TTL, removed by its own expiry timer (no global sweep)
  - concurrent misses may both populate; last writer wins
  - loader failures are logged, return None and are not cached

Constructed once by the app factory and passed to callers explicitly:

    cache = ConsultantScopeCache(directory_service.get_consultant_admin_id, ttl_seconds=300)
    cache.get(tenant_id)
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

from carbonaccess.services.identity import normalize_id

logger = logging.getLogger(__name__)

DEFAULT_TTL = 300  # 5 minutes

_MISSING = object()


class ConsultantScopeCache:
    def __init__(self, loader: Callable[[object], object], ttl_seconds: float = DEFAULT_TTL):
        self._loader = loader
        self._ttl = ttl_seconds
        self._entries: dict[str, object] = {}
        self._timers: dict[str, threading.Timer] = {}

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tenant_id) -> bool:
        return normalize_id(tenant_id) in self._entries

    def get(self, tenant_id):
        """Cached owner id, loading it on a miss. None when unknown."""
        key = normalize_id(tenant_id)
        if not key:
            return None
        value = self._entries.get(key, _MISSING)
        if value is not _MISSING:
            return value
        try:
            value = self._loader(tenant_id)
        except Exception:
            logger.warning("consultant_cache_load_failed tenant_id=%s", key, exc_info=True)
            return None
        self._store(key, value)
        return value

    def _store(self, key: str, value) -> None:
        timer = threading.Timer(self._ttl, self._expire, args=(key,))
        timer.daemon = True
        previous = self._timers.get(key)
        self._entries[key] = value
        self._timers[key] = timer
        if previous is not None:
            previous.cancel()
        timer.start()

    def _expire(self, key: str) -> None:
        # Runs on the timer thread; a replaced entry has a newer timer.
        if self._timers.get(key) is threading.current_thread():
            self._entries.pop(key, None)
            self._timers.pop(key, None)

    def invalidate(self, tenant_id) -> None:
        key = normalize_id(tenant_id)
        self._entries.pop(key, None)
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def clear(self) -> None:
        for timer in list(self._timers.values()):
            timer.cancel()
        self._entries.clear()
        self._timers.clear()
