"""Domain models for the activity tracker.

All models use Pydantic v2 for validation and serialization.
"""

from datetime import datetime
from enum import Enum
from typing import Any

import pytz
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from activity_tracker.domain.aggregation_constants import DEFAULT_SUMMARY_WINDOW_DAYS


def as_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=pytz.UTC)
    return value.astimezone(pytz.UTC)


class EventKind(str, Enum):
    """Known upstream event type tags.

    ``UNKNOWN`` covers every tag outside the known vocabulary; the raw tag is
    kept on ``Activity.type``.
    """

    PUSH = "PushEvent"
    PULL_REQUEST = "PullRequestEvent"
    ISSUES = "IssuesEvent"
    ISSUE_COMMENT = "IssueCommentEvent"
    CREATE = "CreateEvent"
    DELETE = "DeleteEvent"
    FORK = "ForkEvent"
    WATCH = "WatchEvent"
    RELEASE = "ReleaseEvent"
    PULL_REQUEST_REVIEW = "PullRequestReviewEvent"
    PULL_REQUEST_REVIEW_COMMENT = "PullRequestReviewCommentEvent"
    UNKNOWN = "unknown"

    @classmethod
    def from_tag(cls, tag: str) -> "EventKind":
        """Map a raw type tag to a kind without ever raising."""
        try:
            kind = cls(tag)
        except ValueError:
            return cls.UNKNOWN
        return kind


class ActivitySource(str, Enum):
    """Event sources in merge order (later sources win on id collisions)."""

    USER_EVENTS = "user_events"
    RECEIVED_EVENTS = "received_events"
    ORG_EVENTS = "org_events"
    REPO_EVENTS = "repo_events"
    PSEUDO_EVENTS = "pseudo_events"


class Actor(BaseModel):
    """Event actor."""

    model_config = ConfigDict(extra="ignore")

    login: str = Field(..., min_length=1, description="Actor login")
    avatar_url: str | None = Field(default=None, description="Avatar URL")


class RepoRef(BaseModel):
    """Repository reference embedded in events."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, description="Repository full name")
    url: str | None = Field(default=None, description="API URL")


class RawEvent(BaseModel):
    """Raw upstream event before normalization."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1, description="Upstream event ID")
    type: str = Field(..., min_length=1, description="Event type tag")
    actor: Actor
    repo: RepoRef
    created_at: datetime = Field(..., description="Event creation time (UTC)")
    payload: dict[str, Any] = Field(
        default_factory=dict, description="Type-specific payload"
    )
    public: bool = Field(default=True, description="Public event flag")
    org: dict[str, Any] | None = Field(default=None, description="Organization")

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        """Upstream ids arrive as strings, synthesized ones may be ints."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("payload", mode="before")
    @classmethod
    def default_payload(cls, v: Any) -> Any:
        """Treat a null payload as empty."""
        return {} if v is None else v

    @field_validator("created_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Ensure created_at is timezone-aware UTC."""
        return as_utc(v)


class Activity(BaseModel):
    """Canonical, immutable activity record produced by the normalizer."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Event ID (dedup identity)")
    type: str = Field(..., description="Raw event type tag")
    kind: EventKind = Field(default=EventKind.UNKNOWN, description="Known kind")
    action: str = Field(..., min_length=1, description="Normalized verb")
    repo: str = Field(..., min_length=1, description="Owning repository")
    actor: str | None = Field(default=None, description="Actor login")
    timestamp: datetime = Field(..., description="Event time (UTC)")
    description: str = Field(default="", description="Human readable summary")
    url: str | None = Field(default=None, description="HTML URL if known")
    details: dict[str, Any] = Field(
        default_factory=dict, description="Type-specific extracted fields"
    )
    is_public: bool = Field(default=True, description="Public event flag")

    @model_validator(mode="before")
    @classmethod
    def derive_kind(cls, data: Any) -> Any:
        """Derive ``kind`` from the raw type tag when not given."""
        if isinstance(data, dict) and data.get("kind") is None and "type" in data:
            return {**data, "kind": EventKind.from_tag(str(data["type"]))}
        return data

    @field_validator("timestamp")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """Ensure timestamp is timezone-aware UTC."""
        return as_utc(v)


class PullRequestFunnel(BaseModel):
    """Pull request opened/closed/merged/reviewed counters."""

    opened: int = 0
    closed: int = 0
    merged: int = 0
    reviewed: int = 0


class IssueFunnel(BaseModel):
    """Issue opened/closed/commented counters."""

    opened: int = 0
    closed: int = 0
    commented: int = 0


class CommitAggregate(BaseModel):
    """Commit totals across push activities."""

    total: int = 0
    repos: list[str] = Field(default_factory=list)


class ActivitySummary(BaseModel):
    """Aggregates over a bounded trailing window."""

    window_days: int = Field(default=DEFAULT_SUMMARY_WINDOW_DAYS)
    generated_at: datetime | None = Field(default=None)
    total_activities: int = 0
    by_type: dict[str, int] = Field(default_factory=dict)
    by_repo: dict[str, int] = Field(default_factory=dict)
    by_day: dict[str, int] = Field(default_factory=dict)
    recent_activities: list[Activity] = Field(default_factory=list)
    pull_requests: PullRequestFunnel = Field(default_factory=PullRequestFunnel)
    issues: IssueFunnel = Field(default_factory=IssueFunnel)
    commits: CommitAggregate = Field(default_factory=CommitAggregate)


class PullRequestStats(PullRequestFunnel):
    """Extended pull request metrics."""

    pending_review: int = 0
    avg_hours_to_merge: float | None = None


class IssueStats(IssueFunnel):
    """Extended issue metrics."""

    avg_hours_to_close: float | None = None
    label_distribution: dict[str, int] = Field(default_factory=dict)


class CommitStats(BaseModel):
    """Extended commit metrics."""

    total: int = 0
    additions: int = 0
    deletions: int = 0
    files_changed: int = 0
    by_branch: dict[str, int] = Field(default_factory=dict)
    commit_messages: list[str] = Field(default_factory=list)


class RankedCount(BaseModel):
    """Single entry of a top-N ranking."""

    name: str
    count: int


class RepositoryRanking(BaseModel):
    """Per-repository activity breakdown used by the extended ranking."""

    name: str
    count: int = 0
    commits: int = 0
    prs: int = 0
    issues: int = 0
    last_activity: datetime | None = None
    stars: int | None = None
    forks: int | None = None
    language: str | None = None


class TrendPoint(BaseModel):
    """Bucket of a weekly or monthly trend series."""

    label: str
    count: int = 0


class LanguageActivity(BaseModel):
    """Commit/PR activity attributed to a language."""

    commits: int = 0
    prs: int = 0


class ExtendedStats(BaseModel):
    """Extended statistics computed over the full activity history."""

    generated_at: datetime | None = None
    total_activities: int = 0

    activities_last_24h: int = 0
    activities_last_7d: int = 0
    activities_last_30d: int = 0

    pull_requests: PullRequestStats = Field(default_factory=PullRequestStats)
    issues: IssueStats = Field(default_factory=IssueStats)
    commits: CommitStats = Field(default_factory=CommitStats)

    top_repos: list[RankedCount] = Field(default_factory=list)
    top_repositories: list[RepositoryRanking] = Field(default_factory=list)
    total_repos_active: int = 0

    collaborators: dict[str, int] = Field(default_factory=dict)
    top_collaborators: list[RankedCount] = Field(default_factory=list)
    team_members: list[str] = Field(default_factory=list)
    mentions_received: int = 0
    reviews_given: int = 0
    reviews_received: int = 0

    hourly_distribution: list[int] = Field(default_factory=lambda: [0] * 24)
    daily_distribution: list[int] = Field(default_factory=lambda: [0] * 7)
    weekly_trend: list[TrendPoint] = Field(default_factory=list)
    monthly_trend: list[TrendPoint] = Field(default_factory=list)

    language_breakdown: dict[str, int] = Field(default_factory=dict)
    top_languages: list[RankedCount] = Field(default_factory=list)
    language_activity: dict[str, LanguageActivity] = Field(default_factory=dict)

    streak_days: int = 0
    longest_streak: int = 0
    most_productive_day: str | None = None
    most_productive_hour: int | None = None
    busiest_date: str | None = None
    avg_daily_activities: int = 0

    event_type_distribution: dict[str, int] = Field(default_factory=dict)


class RepositoryInfo(BaseModel):
    """Repository metadata (language, stars) used for stats and synthesis."""

    model_config = ConfigDict(extra="ignore")

    id: int | None = None
    full_name: str = Field(..., min_length=1)
    name: str = ""
    owner: str = ""
    language: str | None = None
    stargazers_count: int = 0
    forks_count: int = 0
    private: bool = False
    default_branch: str = "main"
    html_url: str | None = None
    pushed_at: datetime | None = None

    @field_validator("owner", mode="before")
    @classmethod
    def flatten_owner(cls, v: Any) -> Any:
        """Accept the upstream ``{"login": ...}`` owner object."""
        if isinstance(v, dict):
            return v.get("login") or ""
        return "" if v is None else v

    @field_validator("default_branch", mode="before")
    @classmethod
    def default_branch_fallback(cls, v: Any) -> Any:
        return v or "main"


class CacheEntry(BaseModel):
    """Stored cache value with creation and expiry instants."""

    key: str
    value: Any = None
    created: datetime
    expiry: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        """Return True when the entry has an expiry at or before ``now``."""
        return self.expiry is not None and self.expiry <= now


class DateRange(str, Enum):
    """Predefined date ranges for activity narrowing."""

    TODAY = "today"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"
    YEAR = "year"
    ALL = "all"


class FilterOptions(BaseModel):
    """User-facing narrowing options applied after relevance filtering."""

    date_range: DateRange = Field(default=DateRange.ALL)
    start: datetime | None = Field(default=None, description="Explicit start")
    end: datetime | None = Field(default=None, description="Explicit end")
    activity_types: set[str] = Field(
        default_factory=set, description="Event types to keep (empty = all)"
    )
    repositories: set[str] = Field(
        default_factory=set, description="Repositories to keep (empty = all)"
    )
    search_query: str = Field(default="", description="Free text search")
    collaborator: str | None = Field(default=None, description="Actor login")
    language: str | None = Field(default=None, description="Repository language")
    show_private: bool = Field(default=True, description="Keep private activity")

    @field_validator("start", "end")
    @classmethod
    def ensure_utc(cls, v: datetime | None) -> datetime | None:
        return as_utc(v) if v is not None else None


class AggregationResult(BaseModel):
    """Outcome of one fetch → normalize → filter → merge cycle."""

    username: str
    activities: list[Activity] = Field(default_factory=list)
    repositories: list[RepositoryInfo] = Field(default_factory=list)
    pull_requests: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Trimmed pull request records (state, requested reviewers)",
    )
    source_errors: list[str] = Field(default_factory=list)
    from_cache: bool = False
    fetched_at: datetime


class ActivityReport(BaseModel):
    """Activities plus derived statistics returned to renderers."""

    username: str
    activities: list[Activity] = Field(default_factory=list)
    summary: ActivitySummary
    extended: ExtendedStats | None = None
    available_repositories: list[str] = Field(
        default_factory=list, description="Distinct repositories before narrowing"
    )
    available_types: list[str] = Field(
        default_factory=list, description="Distinct event types before narrowing"
    )
    source_errors: list[str] = Field(default_factory=list)
    from_cache: bool = False
    generated_at: datetime
