"""In-process cache store backed by a dict."""

import threading

from activity_tracker.domain.models import CacheEntry

__all__ = ["MemoryCacheStore"]


class MemoryCacheStore:
    """Volatile cache store; entries live as long as the store object."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def read(self, storage_id: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(storage_id)

    def write(self, storage_id: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[storage_id] = entry

    def remove(self, storage_id: str) -> None:
        with self._lock:
            self._entries.pop(storage_id, None)

    def remove_all(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
