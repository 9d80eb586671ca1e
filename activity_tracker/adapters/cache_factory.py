"""Factory for creating the activity cache from settings."""

from activity_tracker.adapters.activity_cache import ActivityCache
from activity_tracker.adapters.file_cache_store import FileCacheStore
from activity_tracker.adapters.memory_cache_store import MemoryCacheStore
from activity_tracker.adapters.sqlite_cache_store import (
    SqliteCacheStore,
    sqlite_connection_factory,
)
from activity_tracker.config.logging_config import get_logger
from activity_tracker.config.settings import Settings
from activity_tracker.domain.exceptions import CacheError, ConfigurationError
from activity_tracker.domain.protocols import CacheStoreProtocol

logger = get_logger(__name__)


def create_cache_store(settings: Settings) -> CacheStoreProtocol:
    """Create the storage backend selected by ``settings.cache_backend``.

    Args:
        settings: Application settings

    Returns:
        Cache store instance (memory, file or SQLite)

    Raises:
        ConfigurationError: If the backend is unsupported
    """
    if settings.cache_backend == "memory":
        logger.info("cache_memory_selected")
        return MemoryCacheStore()

    if settings.cache_backend == "file":
        logger.info("cache_file_selected", cache_dir=settings.cache_dir)
        return FileCacheStore(settings.cache_dir)

    if settings.cache_backend == "sqlite":
        logger.info("cache_sqlite_selected", path=settings.cache_db_path)
        try:
            return SqliteCacheStore(sqlite_connection_factory(settings.cache_db_path))
        except (CacheError, OSError) as exc:
            logger.warning(
                "cache_sqlite_unavailable",
                path=settings.cache_db_path,
                error=str(exc),
            )
            return MemoryCacheStore()

    raise ConfigurationError(
        f"Unsupported cache backend: {settings.cache_backend}. "
        f"Must be 'memory', 'file' or 'sqlite'"
    )


def create_cache(settings: Settings) -> ActivityCache:
    """Create the activity cache used by the aggregation use cases."""
    return ActivityCache(create_cache_store(settings))
