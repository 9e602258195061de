"""
Session Cache.

Keeps session artifacts (cookies, storage state) returned by the remote
automation step so that the next call, in this run or a later one, can
skip logging in again. Entries expire explicitly.
"""

import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Dict, Optional

from slot_booker.config import settings
from slot_booker.infrastructure.logging import get_logger


logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """A cached artifact and its expiry time."""
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class SessionCache:
    """
    Thread-safe key/value cache with per-entry expiry.

    Keys identify an account on a site, see session_key().
    """

    def __init__(self, ttl_seconds: Optional[int] = None) -> None:
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.session_cache.ttl_seconds
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = Lock()

    def get(self, key: str) -> Optional[Any]:
        """Get a live artifact, or None if missing or expired."""
        now = time.time()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if entry.is_expired(now):
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store an artifact for ttl_seconds (defaults to the cache TTL)."""
        ttl = self._ttl if ttl_seconds is None else ttl_seconds
        if ttl <= 0 or value is None:
            self.delete(key)
            return
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=time.time() + ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def cleanup_expired(self) -> int:
        """Remove expired entries. Returns how many were removed."""
        now = time.time()
        removed = 0

        with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if entry.is_expired(now)
            ]
            for key in expired:
                del self._entries[key]
                removed += 1

        if removed:
            logger.debug(
                f"Removed {removed} expired session(s)",
                extra={"extra_fields": {"removed": removed}}
            )
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def session_key(username: str, target_url: str) -> str:
    """Build the cache key for an account on a booking site."""
    return f"{username.lower()}|{target_url.split('?', 1)[0]}"


# Global session cache instance
_session_cache: Optional[SessionCache] = None


def get_session_cache() -> SessionCache:
    """Get global session cache instance."""
    global _session_cache
    if _session_cache is None:
        _session_cache = SessionCache()
    return _session_cache
