"""Custom exception hierarchy for the activity tracker.

Following error taxonomy: retryable, non-retryable, validation, rate-limit.
"""

from datetime import datetime


class ActivityTrackerError(Exception):
    """Base exception for all application errors."""

    pass


class RetryableError(ActivityTrackerError):
    """Errors that can be retried (network issues, temporary failures)."""

    pass


class NonRetryableError(ActivityTrackerError):
    """Errors that should not be retried (validation, auth, logic errors)."""

    pass


class ValidationError(NonRetryableError):
    """Data validation errors."""

    pass


class ConfigurationError(NonRetryableError):
    """Missing or invalid configuration (token, username, config files)."""

    pass


class RateLimitError(RetryableError):
    """API rate limit exhausted.

    The only error that halts a fetch cycle early: continuing to fetch would
    only push the reset further away.
    """

    def __init__(
        self, retry_after: int | None = None, reset_at: datetime | None = None
    ) -> None:
        """Initialize with optional retry_after seconds and reset instant."""
        self.retry_after = retry_after
        self.reset_at = reset_at
        super().__init__(f"Rate limit exceeded. Retry after: {retry_after}s")


class GitHubAPIError(RetryableError):
    """GitHub API communication errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class CacheError(RetryableError):
    """Cache storage read/write errors."""

    pass
