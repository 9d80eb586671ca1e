"""Business rules and constants for activity aggregation.

Windows, caps and ranking sizes used by the merge engine, the statistics
aggregator and the cache are centralized here so that settings defaults and
service defaults never drift apart.
"""

from typing import Final

# Summary window
DEFAULT_SUMMARY_WINDOW_DAYS: Final[int] = 7
"""Trailing window (days) covered by the basic activity summary.

Business rule: an activity contributes to the summary when its timestamp lies
in ``[now - window_days, now]``. Activities outside the window are ignored by
every counter, including ``total_activities``.
"""

RECENT_ACTIVITIES_LIMIT: Final[int] = 20
"""Number of most recent activities echoed back in the summary."""

# Pseudo-event synthesis
PSEUDO_EVENT_WINDOW_DAYS: Final[int] = 7
"""Only commits/PRs/issues newer than this many days become pseudo-events.

Business rule: the primary event feed already supplies older history; pseudo
events only fill gaps that feed pagination leaves in the recent past.

Example:
    - Today: 2024-01-10
    - Commit authored 2024-01-08, absent from the feed → synthesized
    - Commit authored 2024-01-01 → ignored (outside the 7 day window)
"""

PSEUDO_EVENT_COMMIT_REPO_LIMIT: Final[int] = 15
"""Most recently pushed repositories scanned for commits."""

PSEUDO_EVENT_ITEM_REPO_LIMIT: Final[int] = 10
"""Most recently pushed repositories scanned for pull requests and issues."""

# Merge output
DEFAULT_MAX_ACTIVITIES: Final[int] = 500
"""Maximum activities kept after merge (most recent first)."""

# Normalization
COMMENT_PREVIEW_LENGTH: Final[int] = 100
"""Characters of a comment body kept as ``details.comment_preview``."""

BRANCH_REF_PREFIX: Final[str] = "refs/heads/"

# Rankings
TOP_REPOS_BASIC: Final[int] = 5
TOP_REPOS_EXTENDED: Final[int] = 15
TOP_COLLABORATORS: Final[int] = 20
TOP_LANGUAGES: Final[int] = 10
"""Ranking sizes. Ties are broken by first-seen order (stable sort)."""

COMMIT_MESSAGES_LIMIT: Final[int] = 100
"""Maximum commit messages collected by the extended statistics."""

MONTHLY_TREND_MONTHS: Final[int] = 12
WEEKLY_TREND_DAYS: Final[int] = 7

# Cache
DEFAULT_CACHE_TTL_SECONDS: Final[int] = 300
"""Aggregated activities are reused for five minutes."""

WEEKDAY_NAMES: Final[tuple[str, ...]] = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)
