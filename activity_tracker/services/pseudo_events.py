"""Pseudo-event synthesis for gaps in the primary event feed.

The user event feed is paginated and capped upstream, so recent commits, pull
requests and issues can be missing from it. Scanning the user's most recently
pushed repositories recovers them as synthesized raw events:

- commits      -> ``PushEvent``   with id ``commit-<sha>``
- pull requests -> ``PullRequestEvent`` with id ``pr-<id>``
- issues       -> ``IssuesEvent`` with id ``issue-<id>``

A record is synthesized only when it belongs to the tracked user, is strictly
newer than ``now - window_days`` and has no counterpart (same natural key) in
the primary feed.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from activity_tracker.domain.aggregation_constants import (
    BRANCH_REF_PREFIX,
    PSEUDO_EVENT_WINDOW_DAYS,
)
from activity_tracker.domain.models import EventKind, RawEvent, RepositoryInfo, as_utc


@dataclass(frozen=True)
class PrimaryFeedKeys:
    """Natural keys already present in the primary (user) event feed."""

    commit_shas: frozenset[str] = field(default_factory=frozenset)
    pull_request_ids: frozenset[int] = field(default_factory=frozenset)
    issue_ids: frozenset[int] = field(default_factory=frozenset)


def collect_primary_keys(user_events: Iterable[RawEvent]) -> PrimaryFeedKeys:
    """Index commit SHAs, PR ids and issue ids seen in the primary feed.

    Args:
        user_events: Raw events of the user's own feed

    Returns:
        Natural key index used to suppress duplicate pseudo-events
    """
    shas: set[str] = set()
    pr_ids: set[int] = set()
    issue_ids: set[int] = set()

    for event in user_events:
        kind = EventKind.from_tag(event.type)
        if kind is EventKind.PUSH:
            for commit in event.payload.get("commits") or []:
                if isinstance(commit, dict) and isinstance(commit.get("sha"), str):
                    shas.add(commit["sha"])
        elif kind is EventKind.PULL_REQUEST:
            pr = event.payload.get("pull_request")
            if isinstance(pr, dict) and isinstance(pr.get("id"), int):
                pr_ids.add(pr["id"])
        elif kind is EventKind.ISSUES:
            issue = event.payload.get("issue")
            if isinstance(issue, dict) and isinstance(issue.get("id"), int):
                issue_ids.add(issue["id"])

    return PrimaryFeedKeys(
        commit_shas=frozenset(shas),
        pull_request_ids=frozenset(pr_ids),
        issue_ids=frozenset(issue_ids),
    )


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO 8601 timestamp into aware UTC, None when unparseable.

    Example:
        >>> parse_timestamp("2024-01-05T10:00:00Z")
        datetime.datetime(2024, 1, 5, 10, 0, tzinfo=<UTC>)
    """
    if isinstance(value, datetime):
        return as_utc(value)
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return as_utc(parsed)


def _login(user: Any) -> str:
    if isinstance(user, dict) and isinstance(user.get("login"), str):
        return user["login"]
    return ""


def _event(
    event_id: str,
    kind: EventKind,
    timestamp: datetime,
    repository: RepositoryInfo,
    username: str,
    payload: dict[str, Any],
    avatar_url: str | None,
) -> RawEvent:
    return RawEvent(
        id=event_id,
        type=kind.value,
        actor={"login": username, "avatar_url": avatar_url},
        repo={"name": repository.full_name, "url": repository.html_url},
        created_at=timestamp,
        payload=payload,
        public=not repository.private,
    )


def synthesize_commit_events(
    repository: RepositoryInfo,
    commits: Iterable[dict[str, Any]],
    *,
    username: str,
    known: PrimaryFeedKeys,
    now: datetime,
    window_days: int = PSEUDO_EVENT_WINDOW_DAYS,
    avatar_url: str | None = None,
) -> list[RawEvent]:
    """Turn recent commits absent from the feed into single-commit push events.

    Args:
        repository: Repository the commits belong to
        commits: Raw commit records (REST ``/repos/{o}/{r}/commits`` shape)
        username: Tracked user login
        known: Natural keys of the primary feed
        now: Reference instant
        window_days: Trailing window in days
        avatar_url: Avatar to stamp on the synthesized actor

    Returns:
        Synthesized PushEvents, one per qualifying commit

    Example:
        >>> events = synthesize_commit_events(repo, commits, username="alice",
        ...                                   known=keys, now=now)
        >>> events[0].id
        'commit-9f8e7d'
    """
    login = username.lower()
    cutoff = now - timedelta(days=window_days)
    events: list[RawEvent] = []

    for record in commits:
        sha = record.get("sha")
        if not isinstance(sha, str) or not sha or sha in known.commit_shas:
            continue

        author_login = _login(record.get("author"))
        if author_login and author_login.lower() != login:
            continue

        commit = record.get("commit") if isinstance(record.get("commit"), dict) else {}
        git_author = commit.get("author") if isinstance(commit.get("author"), dict) else {}
        git_committer = (
            commit.get("committer") if isinstance(commit.get("committer"), dict) else {}
        )
        timestamp = parse_timestamp(git_author.get("date")) or parse_timestamp(
            git_committer.get("date")
        )
        if timestamp is None or timestamp <= cutoff:
            continue

        push_commit: dict[str, Any] = {
            "sha": sha,
            "message": commit.get("message") or "",
            "author": git_author,
            "url": record.get("html_url"),
            "distinct": True,
        }
        if isinstance(record.get("stats"), dict):
            push_commit["stats"] = record["stats"]
        payload = {
            "ref": f"{BRANCH_REF_PREFIX}{repository.default_branch}",
            "commits": [push_commit],
            "size": 1,
            "distinct_size": 1,
            "head": sha,
        }
        events.append(
            _event(
                f"commit-{sha}",
                EventKind.PUSH,
                timestamp,
                repository,
                username,
                payload,
                avatar_url,
            )
        )

    return events


def synthesize_pull_request_events(
    repository: RepositoryInfo,
    pulls: Iterable[dict[str, Any]],
    *,
    username: str,
    known: PrimaryFeedKeys,
    now: datetime,
    window_days: int = PSEUDO_EVENT_WINDOW_DAYS,
    avatar_url: str | None = None,
) -> list[RawEvent]:
    """Turn the user's recent pull requests absent from the feed into events.

    Open PRs become ``opened``; closed PRs with ``merged_at`` become ``closed``
    with ``merged=true`` (so funnels count them as merged); other closed PRs
    become ``closed``. The event time is ``updated_at`` falling back to
    ``created_at``.

    Args:
        repository: Repository the pull requests belong to
        pulls: Raw pull request records
        username: Tracked user login
        known: Natural keys of the primary feed
        now: Reference instant
        window_days: Trailing window in days
        avatar_url: Avatar to stamp on the synthesized actor

    Returns:
        Synthesized PullRequestEvents
    """
    login = username.lower()
    cutoff = now - timedelta(days=window_days)
    events: list[RawEvent] = []

    for pr in pulls:
        pr_id = pr.get("id")
        if not isinstance(pr_id, int) or pr_id in known.pull_request_ids:
            continue
        if _login(pr.get("user")).lower() != login:
            continue

        timestamp = parse_timestamp(pr.get("updated_at")) or parse_timestamp(
            pr.get("created_at")
        )
        if timestamp is None or timestamp <= cutoff:
            continue

        merged = bool(pr.get("merged_at")) or pr.get("merged") is True
        action = "opened" if pr.get("state") == "open" else "closed"
        payload = {
            "action": action,
            "number": pr.get("number"),
            "pull_request": {**pr, "merged": merged and action == "closed"},
        }
        events.append(
            _event(
                f"pr-{pr_id}",
                EventKind.PULL_REQUEST,
                timestamp,
                repository,
                username,
                payload,
                avatar_url,
            )
        )

    return events


def synthesize_issue_events(
    repository: RepositoryInfo,
    issues: Iterable[dict[str, Any]],
    *,
    username: str,
    known: PrimaryFeedKeys,
    now: datetime,
    window_days: int = PSEUDO_EVENT_WINDOW_DAYS,
    avatar_url: str | None = None,
) -> list[RawEvent]:
    """Turn the user's recent issues absent from the feed into events.

    Records carrying a ``pull_request`` key are pull requests listed by the
    issues endpoint and are skipped.
    """
    login = username.lower()
    cutoff = now - timedelta(days=window_days)
    events: list[RawEvent] = []

    for issue in issues:
        if issue.get("pull_request"):
            continue
        issue_id = issue.get("id")
        if not isinstance(issue_id, int) or issue_id in known.issue_ids:
            continue
        if _login(issue.get("user")).lower() != login:
            continue

        timestamp = parse_timestamp(issue.get("updated_at")) or parse_timestamp(
            issue.get("created_at")
        )
        if timestamp is None or timestamp <= cutoff:
            continue

        payload = {
            "action": "opened" if issue.get("state") == "open" else "closed",
            "issue": issue,
        }
        events.append(
            _event(
                f"issue-{issue_id}",
                EventKind.ISSUES,
                timestamp,
                repository,
                username,
                payload,
                avatar_url,
            )
        )

    return events
