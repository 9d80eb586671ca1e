"""Relevance filtering and user-facing narrowing of activities.

Two independent stages:
1. Ownership relevance (hard allow-list) applied to raw events of broad feeds
   (received events, organization events) before normalization
2. ``FilterOptions`` narrowing applied to canonical activities on request
"""

import json
from collections.abc import Iterable, Mapping
from datetime import datetime, time, timedelta, tzinfo
from typing import Any

import pytz

from activity_tracker.domain.models import (
    Activity,
    DateRange,
    EventKind,
    FilterOptions,
    RawEvent,
)
from activity_tracker.services.event_normalizer import extract_mentions

_COMMENT_KINDS = frozenset(
    {EventKind.ISSUE_COMMENT, EventKind.PULL_REQUEST_REVIEW_COMMENT}
)

_RANGE_DAYS: dict[DateRange, int] = {
    DateRange.LAST_7_DAYS: 7,
    DateRange.LAST_30_DAYS: 30,
    DateRange.LAST_90_DAYS: 90,
    DateRange.YEAR: 365,
}


def localize(naive: datetime, tz: tzinfo) -> datetime:
    """Attach ``tz`` to a naive wall-clock datetime (pytz zones need ``localize``)."""
    if hasattr(tz, "localize"):
        return tz.localize(naive)
    return naive.replace(tzinfo=tz)


def _logins(*values: Any) -> set[str]:
    """Collect lowercased logins from user objects or lists of user objects."""
    logins: set[str] = set()
    for value in values:
        users = value if isinstance(value, list) else [value]
        for user in users:
            if isinstance(user, dict) and isinstance(user.get("login"), str):
                logins.add(user["login"].lower())
    return logins


def _pull_request_participants(payload: Mapping[str, Any]) -> set[str]:
    pr = payload.get("pull_request")
    if not isinstance(pr, dict):
        return set()
    return _logins(
        pr.get("user"),
        pr.get("assignee"),
        pr.get("assignees"),
        pr.get("requested_reviewers"),
    )


def _issue_participants(payload: Mapping[str, Any]) -> set[str]:
    issue = payload.get("issue")
    if not isinstance(issue, dict):
        return set()
    return _logins(issue.get("user"), issue.get("assignee"), issue.get("assignees"))


def _mentions_user(payload: Mapping[str, Any], login: str) -> bool:
    comment = payload.get("comment")
    if not isinstance(comment, dict):
        return False
    return login in {m.lower() for m in extract_mentions(comment.get("body"))}


def is_relevant_event(raw: RawEvent, username: str) -> bool:
    """Decide whether an event from a broad feed concerns the tracked user.

    Retained when ANY of:
    - the actor is the user
    - the repository is owned by the user (``<username>/`` prefix)
    - a comment body @-mentions the user
    - a pull request is authored by, assigned to or awaiting review from the user
    - an issue is authored by or assigned to the user

    Login comparison is case-insensitive.

    Args:
        raw: Raw event from a received or organization feed
        username: Tracked user login

    Returns:
        True if the event should be kept

    Example:
        >>> is_relevant_event(watch_by_bob_on("alice/proj"), "alice")
        True
        >>> is_relevant_event(watch_by_bob_on("carol/other"), "alice")
        False
    """
    login = username.lower()
    if not login:
        return False

    if raw.actor.login.lower() == login:
        return True

    if raw.repo.name.lower().startswith(f"{login}/"):
        return True

    kind = EventKind.from_tag(raw.type)
    if kind in _COMMENT_KINDS:
        return _mentions_user(raw.payload, login)
    if kind is EventKind.PULL_REQUEST:
        return login in _pull_request_participants(raw.payload)
    if kind is EventKind.ISSUES:
        return login in _issue_participants(raw.payload)

    return False


def filter_relevant_events(raws: Iterable[RawEvent], username: str) -> list[RawEvent]:
    """Keep only events relevant to the user, preserving order."""
    return [raw for raw in raws if is_relevant_event(raw, username)]


def filter_events_by_actor(raws: Iterable[RawEvent], username: str) -> list[RawEvent]:
    """Keep only events performed by the user (tracked repository feeds)."""
    login = username.lower()
    return [raw for raw in raws if raw.actor.login.lower() == login]


def resolve_date_bounds(
    options: FilterOptions, now: datetime, tz: tzinfo = pytz.UTC
) -> tuple[datetime | None, datetime | None]:
    """Resolve the inclusive ``[start, end]`` interval for a filter.

    Explicit ``start``/``end`` override the predefined range. Without an explicit
    end the interval closes at the end of the current day in ``tz``. ``ALL``
    without explicit bounds means no date restriction.

    Args:
        options: Filter options
        now: Reference instant (aware)
        tz: Timezone defining calendar days

    Returns:
        (start, end) tuple, None meaning unbounded
    """
    if options.date_range is DateRange.ALL and options.start is None and options.end is None:
        return None, None

    local_today = now.astimezone(tz).date()
    start_of_today = localize(datetime.combine(local_today, time.min), tz)
    end_of_today = localize(datetime.combine(local_today, time.max), tz)

    end = options.end or end_of_today

    if options.start is not None:
        start: datetime | None = options.start
    elif options.date_range is DateRange.TODAY:
        start = start_of_today
    elif options.date_range in _RANGE_DAYS:
        start = now - timedelta(days=_RANGE_DAYS[options.date_range])
    else:
        start = None

    return start, end


def _searchable_text(activity: Activity) -> str:
    details = json.dumps(activity.details, default=str, sort_keys=True)
    return " ".join(
        [
            activity.type,
            activity.repo,
            activity.actor or "",
            activity.description,
            details,
        ]
    ).lower()


def apply_filter_options(
    activities: Iterable[Activity],
    options: FilterOptions,
    *,
    now: datetime | None = None,
    repository_languages: Mapping[str, str | None] | None = None,
    tz: tzinfo = pytz.UTC,
) -> list[Activity]:
    """Narrow activities by user-facing filter options.

    Stages run in order: date range, types, repositories, free text search,
    collaborator, language, privacy. Empty sets and empty strings impose no
    restriction. Order of the input is preserved.

    Args:
        activities: Canonical activities (already relevance-filtered)
        options: Narrowing options
        now: Reference instant (defaults to current UTC time)
        repository_languages: Repository full name to primary language
        tz: Timezone defining "today"

    Returns:
        Activities matching every active criterion

    Example:
        >>> opts = FilterOptions(date_range=DateRange.LAST_7_DAYS, search_query="fix")
        >>> apply_filter_options(activities, opts, now=now)
        [Activity(description='opened PR #3: Fix login', ...)]
    """
    current = now or datetime.now(tz=pytz.UTC)
    start, end = resolve_date_bounds(options, current, tz)
    query = options.search_query.strip().lower()
    collaborator = (options.collaborator or "").lower()
    language = (options.language or "").lower()
    languages = repository_languages or {}

    filtered: list[Activity] = []
    for activity in activities:
        if start is not None and activity.timestamp < start:
            continue
        if end is not None and activity.timestamp > end:
            continue
        if options.activity_types and activity.type not in options.activity_types:
            continue
        if options.repositories and activity.repo not in options.repositories:
            continue
        if query and query not in _searchable_text(activity):
            continue
        if collaborator and (activity.actor or "").lower() != collaborator:
            continue
        if language and (languages.get(activity.repo) or "").lower() != language:
            continue
        if not options.show_private and not activity.is_public:
            continue
        filtered.append(activity)

    return filtered


def unique_repositories(activities: Iterable[Activity]) -> list[str]:
    """Sorted distinct repository names."""
    return sorted({activity.repo for activity in activities})


def unique_activity_types(activities: Iterable[Activity]) -> list[str]:
    """Sorted distinct raw event types."""
    return sorted({activity.type for activity in activities})
