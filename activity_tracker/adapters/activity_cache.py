"""TTL cache for aggregated activity results.

The cache is an explicit object owned by the caller and passed into the
aggregation entry points. Storage is delegated to a ``CacheStoreProtocol``
backend; this layer owns expiry, key hashing and failure isolation.

Failure policy: a store error never propagates. Reads degrade to a miss and
writes to a no-op, both logged.
"""

import hashlib
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import pytz

from activity_tracker.config.logging_config import get_logger
from activity_tracker.domain.exceptions import CacheError
from activity_tracker.domain.models import CacheEntry
from activity_tracker.domain.protocols import CacheStoreProtocol

__all__ = ["ActivityCache", "make_cache_key", "storage_id_for"]

logger = get_logger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(tz=pytz.UTC)


def make_cache_key(*parts: Any) -> str:
    """Join logical key parts with ``:``; list parts are comma-joined.

    Example:
        >>> make_cache_key("activities", "alice", 30, ["acme", "umbrella"])
        'activities:alice:30:acme,umbrella'
    """
    rendered: list[str] = []
    for part in parts:
        if isinstance(part, list | tuple | set | frozenset):
            rendered.append(",".join(str(item) for item in part))
        else:
            rendered.append(str(part))
    return ":".join(rendered)


def storage_id_for(key: str) -> str:
    """Bounded, filesystem-safe storage identifier (SHA1 hex of the key)."""
    return hashlib.sha1(key.encode("utf-8")).hexdigest()


class ActivityCache:
    """Keyed TTL cache over a pluggable store."""

    def __init__(self, store: CacheStoreProtocol, clock: Clock | None = None) -> None:
        """Initialize cache.

        Args:
            store: Storage backend
            clock: Returns the current aware instant (injectable for tests)
        """
        self._store = store
        self._clock = clock or _utc_now

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None when absent, expired or unreadable.

        Expired entries are evicted on read.

        Args:
            key: Logical cache key

        Returns:
            Stored value or None
        """
        storage_id = storage_id_for(key)
        try:
            entry = self._store.read(storage_id)
        except CacheError as exc:
            logger.warning("activity_cache_read_failed", key=key, error=str(exc))
            self._evict(storage_id, key)
            return None

        if entry is None:
            logger.debug("activity_cache_miss", key=key)
            return None

        if entry.is_expired(self._clock()):
            logger.debug("activity_cache_expired", key=key)
            self._evict(storage_id, key)
            return None

        logger.debug("activity_cache_hit", key=key)
        return entry.value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        """Store a value; a falsy TTL stores it without expiry.

        Args:
            key: Logical cache key
            value: JSON-compatible payload
            ttl_seconds: Lifetime in seconds (None or 0 = no expiry)
        """
        now = self._clock()
        entry = CacheEntry(
            key=key,
            value=value,
            created=now,
            expiry=now + timedelta(seconds=ttl_seconds) if ttl_seconds else None,
        )
        try:
            self._store.write(storage_id_for(key), entry)
        except CacheError as exc:
            logger.warning("activity_cache_write_failed", key=key, error=str(exc))
            return
        logger.debug("activity_cache_stored", key=key, ttl_seconds=ttl_seconds)

    def delete(self, key: str) -> None:
        """Remove one entry (no-op when absent)."""
        self._evict(storage_id_for(key), key)

    def clear(self) -> None:
        """Remove every entry."""
        try:
            self._store.remove_all()
        except CacheError as exc:
            logger.warning("activity_cache_clear_failed", error=str(exc))
            return
        logger.info("activity_cache_cleared")

    def _evict(self, storage_id: str, key: str) -> None:
        try:
            self._store.remove(storage_id)
        except CacheError as exc:
            logger.warning("activity_cache_evict_failed", key=key, error=str(exc))
