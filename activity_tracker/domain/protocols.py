"""Protocol definitions for dependency inversion.

These abstract interfaces define contracts that adapters must implement.
"""

from datetime import datetime
from typing import Any, Protocol

from activity_tracker.domain.models import CacheEntry


class GitHubClientProtocol(Protocol):
    """Protocol for the hosting-platform client feeding the aggregation core.

    Every method returns raw upstream records (plain dicts). Implementations
    raise ``RateLimitError`` when the rate limit is exhausted and
    ``GitHubAPIError`` for any other communication failure.
    """

    def get_authenticated_login(self) -> str:
        """Return the login of the tracked user."""
        ...

    def list_user_events(self, username: str) -> list[dict[str, Any]]:
        """Events performed by the user (primary feed)."""
        ...

    def list_received_events(self, username: str) -> list[dict[str, Any]]:
        """Events received by the user (watched repos, followed users)."""
        ...

    def list_org_events(self, org: str) -> list[dict[str, Any]]:
        """Public events of an organization."""
        ...

    def list_repo_events(self, owner: str, repo: str) -> list[dict[str, Any]]:
        """Events of a single repository."""
        ...

    def list_user_repositories(self) -> list[dict[str, Any]]:
        """Repositories of the authenticated user, most recently pushed first."""
        ...

    def list_repo_commits(
        self, owner: str, repo: str, *, author: str, since: datetime
    ) -> list[dict[str, Any]]:
        """Commits authored by ``author`` since ``since``."""
        ...

    def list_repo_pulls(self, owner: str, repo: str) -> list[dict[str, Any]]:
        """Recently updated pull requests (all states)."""
        ...

    def list_repo_issues(self, owner: str, repo: str) -> list[dict[str, Any]]:
        """Recently updated issues (all states, may include PRs)."""
        ...


class CacheStoreProtocol(Protocol):
    """Storage backend behind ``ActivityCache``.

    Stores deal in already-hashed storage ids and raise ``CacheError`` on any
    I/O failure; expiry policy lives in the cache, not in the store.
    """

    def read(self, storage_id: str) -> CacheEntry | None:
        """Return the stored entry or None when absent."""
        ...

    def write(self, storage_id: str, entry: CacheEntry) -> None:
        """Create or replace an entry."""
        ...

    def remove(self, storage_id: str) -> None:
        """Remove an entry (no-op when absent)."""
        ...

    def remove_all(self) -> None:
        """Remove every entry."""
        ...
