"""GitHub REST API client adapter."""

import time
from collections.abc import Callable
from datetime import datetime
from typing import Any, Final, cast

import pytz
import requests

from activity_tracker.config.logging_config import get_logger
from activity_tracker.domain.exceptions import (
    ConfigurationError,
    GitHubAPIError,
    RateLimitError,
)

logger = get_logger(__name__)


DEFAULT_GITHUB_API_URL: Final[str] = "https://api.github.com"
DEFAULT_GITHUB_PAGE_SIZE: Final[int] = 100
DEFAULT_GITHUB_MAX_PAGES: Final[int] = 3
DEFAULT_GITHUB_TIMEOUT_SECONDS: Final[float] = 30.0
DEFAULT_GITHUB_MAX_RETRIES: Final[int] = 3
REPO_ITEMS_PAGE_SIZE: Final[int] = 20
"""Commits, pull requests and issues fetched per repository for pseudo-events."""
USER_REPOS_PAGE_SIZE: Final[int] = 50
API_VERSION: Final[str] = "2022-11-28"
USER_AGENT: Final[str] = "activity-tracker"

_RATE_LIMIT_STATUSES: Final[frozenset[int]] = frozenset({403, 429})


class GitHubClient:
    """GitHub REST client with pagination, retries and rate-limit detection."""

    def __init__(
        self,
        token: str | None,
        *,
        username: str | None = None,
        base_url: str = DEFAULT_GITHUB_API_URL,
        per_page: int = DEFAULT_GITHUB_PAGE_SIZE,
        max_pages: int = DEFAULT_GITHUB_MAX_PAGES,
        timeout_seconds: float = DEFAULT_GITHUB_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_GITHUB_MAX_RETRIES,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize GitHub client.

        Args:
            token: Personal access token (None = unauthenticated, 60 req/h)
            username: Tracked login; resolved from the token when omitted
            base_url: REST API base URL
            per_page: Page size for event feeds (max 100)
            max_pages: Maximum pages fetched per feed
            timeout_seconds: Per-request timeout
            max_retries: Retry attempts for timeouts, connection errors and 5xx
            session: Optional pre-configured requests session
            sleep: Sleep function used for backoff (injectable for tests)
        """
        if per_page <= 0 or per_page > 100:
            raise ValueError("GitHub per_page must be between 1 and 100")
        if max_pages <= 0:
            raise ValueError("GitHub max_pages must be positive")

        self._token = token
        self._username = username
        self._base_url = base_url.rstrip("/")
        self._per_page = per_page
        self._max_pages = max_pages
        self._timeout = timeout_seconds
        self._max_retries = max(max_retries, 1)
        self._session = session or requests.Session()
        self._sleep = sleep

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": API_VERSION,
            "User-Agent": USER_AGENT,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _rate_limit_error(response: requests.Response) -> RateLimitError | None:
        """Build a RateLimitError when the response signals an exhausted limit."""
        headers = response.headers
        retry_after_header = headers.get("Retry-After")
        remaining = headers.get("X-RateLimit-Remaining")
        if response.status_code not in _RATE_LIMIT_STATUSES:
            return None
        if remaining != "0" and retry_after_header is None:
            return None

        reset_at: datetime | None = None
        reset_header = headers.get("X-RateLimit-Reset")
        if reset_header and reset_header.isdigit():
            reset_at = datetime.fromtimestamp(int(reset_header), tz=pytz.UTC)

        retry_after: int | None = None
        if retry_after_header and retry_after_header.isdigit():
            retry_after = int(retry_after_header)
        elif reset_at is not None:
            delta = (reset_at - datetime.now(tz=pytz.UTC)).total_seconds()
            retry_after = max(int(delta), 0)

        return RateLimitError(retry_after=retry_after, reset_at=reset_at)

    def _request(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Execute a GET request with retry handling and decode JSON.

        Raises:
            RateLimitError: When the rate limit is exhausted (never retried)
            GitHubAPIError: On any other failure after retries
        """
        url = f"{self._base_url}{path}"
        attempt = 0
        while True:
            attempt += 1
            try:
                response = self._session.get(
                    url, headers=self._headers(), params=params, timeout=self._timeout
                )
            except (requests.Timeout, requests.ConnectionError) as error:
                if attempt >= self._max_retries:
                    raise GitHubAPIError(
                        f"GET {path} failed after {self._max_retries} attempts: {error}"
                    ) from error
                self._backoff(path, attempt, error=str(error))
                continue

            rate_limited = self._rate_limit_error(response)
            if rate_limited is not None:
                logger.warning(
                    "github_rate_limited",
                    path=path,
                    status_code=response.status_code,
                    retry_after_seconds=rate_limited.retry_after,
                )
                raise rate_limited

            if response.status_code >= 500:
                if attempt >= self._max_retries:
                    raise GitHubAPIError(
                        f"GET {path} failed after {self._max_retries} attempts: "
                        f"HTTP {response.status_code}",
                        status_code=response.status_code,
                    )
                self._backoff(path, attempt, status_code=response.status_code)
                continue

            if response.status_code >= 400:
                raise GitHubAPIError(
                    f"GET {path} failed: HTTP {response.status_code} "
                    f"{_error_message(response)}",
                    status_code=response.status_code,
                )

            try:
                return response.json()
            except ValueError as error:
                raise GitHubAPIError(
                    f"GET {path} returned invalid JSON", status_code=response.status_code
                ) from error

    def _backoff(self, path: str, attempt: int, **fields: Any) -> None:
        backoff_seconds = 2**attempt
        logger.warning(
            "github_api_retry",
            path=path,
            attempt=attempt,
            max_retries=self._max_retries,
            backoff_seconds=backoff_seconds,
            **fields,
        )
        self._sleep(backoff_seconds)

    def _paginate(
        self,
        path: str,
        params: dict[str, Any] | None = None,
        *,
        per_page: int | None = None,
        max_pages: int | None = None,
    ) -> list[dict[str, Any]]:
        """Collect list results page by page until a short page or the cap."""
        page_size = per_page or self._per_page
        page_cap = max_pages or self._max_pages
        aggregated: list[dict[str, Any]] = []

        for page in range(1, page_cap + 1):
            data = self._request(path, {**(params or {}), "per_page": page_size, "page": page})
            if not isinstance(data, list):
                raise GitHubAPIError(f"GET {path} returned {type(data).__name__}, expected list")

            aggregated.extend(item for item in data if isinstance(item, dict))
            if len(data) < page_size:
                break

        logger.debug("github_pages_fetched", path=path, items=len(aggregated))
        return aggregated

    def get_authenticated_login(self) -> str:
        """Return the tracked login, resolving it from the token if needed.

        Raises:
            ConfigurationError: If neither a username nor a token is configured
        """
        if self._username:
            return self._username
        if not self._token:
            raise ConfigurationError(
                "GITHUB_USERNAME or GITHUB_TOKEN must be set to resolve the tracked user"
            )

        user = self._request("/user")
        login = user.get("login") if isinstance(user, dict) else None
        if not isinstance(login, str) or not login:
            raise GitHubAPIError("GET /user returned no login")
        self._username = login
        return login

    def list_user_events(self, username: str) -> list[dict[str, Any]]:
        return self._paginate(f"/users/{username}/events")

    def list_received_events(self, username: str) -> list[dict[str, Any]]:
        return self._paginate(f"/users/{username}/received_events")

    def list_org_events(self, org: str) -> list[dict[str, Any]]:
        return self._paginate(f"/orgs/{org}/events")

    def list_repo_events(self, owner: str, repo: str) -> list[dict[str, Any]]:
        return self._paginate(f"/repos/{owner}/{repo}/events")

    def list_user_repositories(self) -> list[dict[str, Any]]:
        """Most recently pushed repositories of the tracked user (one page)."""
        params = {"sort": "pushed", "direction": "desc"}
        if self._token:
            path = "/user/repos"
            params["type"] = "all"
        else:
            path = f"/users/{self.get_authenticated_login()}/repos"
        return self._paginate(path, params, per_page=USER_REPOS_PAGE_SIZE, max_pages=1)

    def list_repo_commits(
        self, owner: str, repo: str, *, author: str, since: datetime
    ) -> list[dict[str, Any]]:
        params = {"author": author, "since": since.astimezone(pytz.UTC).isoformat()}
        try:
            return self._paginate(
                f"/repos/{owner}/{repo}/commits",
                params,
                per_page=REPO_ITEMS_PAGE_SIZE,
                max_pages=1,
            )
        except GitHubAPIError as error:
            # 409: repository has no commits yet
            if error.status_code == 409:
                return []
            raise

    def list_repo_pulls(self, owner: str, repo: str) -> list[dict[str, Any]]:
        params = {"state": "all", "sort": "updated", "direction": "desc"}
        return self._paginate(
            f"/repos/{owner}/{repo}/pulls",
            params,
            per_page=REPO_ITEMS_PAGE_SIZE,
            max_pages=1,
        )

    def list_repo_issues(self, owner: str, repo: str) -> list[dict[str, Any]]:
        params = {"state": "all", "sort": "updated", "direction": "desc"}
        return self._paginate(
            f"/repos/{owner}/{repo}/issues",
            params,
            per_page=REPO_ITEMS_PAGE_SIZE,
            max_pages=1,
        )

    def get_rate_limit(self) -> dict[str, Any]:
        """Return the core rate-limit bucket (limit, remaining, reset)."""
        data = self._request("/rate_limit")
        resources = data.get("resources") if isinstance(data, dict) else None
        core = resources.get("core") if isinstance(resources, dict) else None
        return cast(dict[str, Any], core) if isinstance(core, dict) else {}


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return ""
    if isinstance(body, dict) and isinstance(body.get("message"), str):
        return body["message"]
    return ""
