"""SQLite-backed cache store (single ``activity_cache`` table)."""

from __future__ import annotations

import json
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager, contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, cast

from activity_tracker.config.logging_config import get_logger
from activity_tracker.domain.exceptions import CacheError
from activity_tracker.domain.models import CacheEntry

__all__ = ["SqliteCacheStore", "sqlite_connection_factory"]

logger = get_logger(__name__)

GetConnCallable = Callable[[], AbstractContextManager[sqlite3.Connection]]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS activity_cache (
    storage_id TEXT PRIMARY KEY,
    cache_key TEXT NOT NULL,
    value_json TEXT NOT NULL,
    created_at TEXT NOT NULL,
    expires_at TEXT
)
"""


def sqlite_connection_factory(db_path: str | Path) -> GetConnCallable:
    """Build a ``get_conn`` callable opening a fresh connection per use.

    ``":memory:"`` databases live only as long as their connection, so that
    path gets one shared connection which is never closed.

    Args:
        db_path: SQLite database path (parent directory is created)

    Returns:
        Zero-argument callable returning a connection context manager
    """
    if str(db_path) == ":memory:":
        shared = sqlite3.connect(":memory:", check_same_thread=False)
        lock = threading.Lock()

        @contextmanager
        def _shared_connection() -> Iterator[sqlite3.Connection]:
            with lock:
                yield shared

        return _shared_connection

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _connection() -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(path))
        try:
            yield conn
        finally:
            conn.close()

    return _connection


class SqliteCacheStore:
    """Cache store persisting entries in SQLite."""

    def __init__(self, get_conn: GetConnCallable) -> None:
        """Initialize store with a connection provider and ensure the schema."""
        self._get_conn = get_conn
        self._run(lambda conn: conn.execute(_SCHEMA), "schema")

    def _run(self, operation: Callable[[sqlite3.Connection], Any], action: str) -> Any:
        try:
            with self._get_conn() as conn:
                result = operation(conn)
                conn.commit()
                return result
        except sqlite3.Error as exc:
            raise CacheError(f"SQLite cache {action} failed: {exc}") from exc

    def read(self, storage_id: str) -> CacheEntry | None:
        def _select(conn: sqlite3.Connection) -> tuple[Any, ...] | None:
            cursor = conn.execute(
                "SELECT cache_key, value_json, created_at, expires_at "
                "FROM activity_cache WHERE storage_id = ?",
                (storage_id,),
            )
            return cast(tuple[Any, ...] | None, cursor.fetchone())

        row = self._run(_select, "read")
        if not row:
            return None

        cache_key, value_json, created_at, expires_at = row
        try:
            return CacheEntry(
                key=cache_key,
                value=json.loads(value_json),
                created=datetime.fromisoformat(created_at),
                expiry=datetime.fromisoformat(expires_at) if expires_at else None,
            )
        except (json.JSONDecodeError, ValueError) as exc:
            raise CacheError(f"Corrupt cache row {storage_id}: {exc}") from exc

    def write(self, storage_id: str, entry: CacheEntry) -> None:
        try:
            value_json = json.dumps(entry.value, separators=(",", ":"))
        except (TypeError, ValueError) as exc:
            raise CacheError(f"Cache value for {entry.key} is not JSON: {exc}") from exc

        params = (
            storage_id,
            entry.key,
            value_json,
            entry.created.isoformat(),
            entry.expiry.isoformat() if entry.expiry else None,
        )
        self._run(
            lambda conn: conn.execute(
                """
                INSERT INTO activity_cache
                    (storage_id, cache_key, value_json, created_at, expires_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(storage_id) DO UPDATE SET
                    cache_key = excluded.cache_key,
                    value_json = excluded.value_json,
                    created_at = excluded.created_at,
                    expires_at = excluded.expires_at
                """,
                params,
            ),
            "write",
        )

    def remove(self, storage_id: str) -> None:
        self._run(
            lambda conn: conn.execute(
                "DELETE FROM activity_cache WHERE storage_id = ?", (storage_id,)
            ),
            "delete",
        )

    def remove_all(self) -> None:
        self._run(lambda conn: conn.execute("DELETE FROM activity_cache"), "clear")
        logger.debug("sqlite_cache_cleared")
