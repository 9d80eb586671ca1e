"""File-backed cache store: one JSON document per entry.

Layout under ``cache_dir``::

    <storage_id>.json  ->  {"key": ..., "value": ..., "created": ..., "expiry": ...}
"""

import json
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from activity_tracker.config.logging_config import get_logger
from activity_tracker.domain.exceptions import CacheError
from activity_tracker.domain.models import CacheEntry

__all__ = ["FileCacheStore"]

logger = get_logger(__name__)

CACHE_FILE_SUFFIX = ".json"


class FileCacheStore:
    """Cache store persisting entries as JSON files in a directory."""

    def __init__(self, cache_dir: str | Path) -> None:
        """Initialize store.

        Args:
            cache_dir: Directory holding cache files (created lazily on write)
        """
        self.cache_dir = Path(cache_dir)

    def _path(self, storage_id: str) -> Path:
        return self.cache_dir / f"{storage_id}{CACHE_FILE_SUFFIX}"

    def read(self, storage_id: str) -> CacheEntry | None:
        """Load an entry, None when the file does not exist.

        Raises:
            CacheError: On I/O errors or unreadable content
        """
        path = self._path(storage_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise CacheError(f"Failed to read cache file {path}: {exc}") from exc

        try:
            return CacheEntry.model_validate(json.loads(raw))
        except (json.JSONDecodeError, PydanticValidationError) as exc:
            raise CacheError(f"Corrupt cache file {path}: {exc}") from exc

    def write(self, storage_id: str, entry: CacheEntry) -> None:
        """Write an entry atomically (temp file + rename).

        Raises:
            CacheError: On I/O or serialization errors
        """
        path = self._path(storage_id)
        tmp_path = path.with_suffix(".tmp")
        try:
            serialized = json.dumps(entry.model_dump(mode="json"), separators=(",", ":"))
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(serialized, encoding="utf-8")
            tmp_path.replace(path)
        except (OSError, TypeError, ValueError) as exc:
            raise CacheError(f"Failed to write cache file {path}: {exc}") from exc

    def remove(self, storage_id: str) -> None:
        try:
            self._path(storage_id).unlink(missing_ok=True)
        except OSError as exc:
            raise CacheError(f"Failed to remove cache entry {storage_id}: {exc}") from exc

    def remove_all(self) -> None:
        if not self.cache_dir.exists():
            return
        removed = 0
        try:
            for path in self.cache_dir.glob(f"*{CACHE_FILE_SUFFIX}"):
                path.unlink(missing_ok=True)
                removed += 1
        except OSError as exc:
            raise CacheError(f"Failed to clear cache dir {self.cache_dir}: {exc}") from exc
        logger.debug("file_cache_cleared", cache_dir=str(self.cache_dir), removed=removed)
