"""Aggregate activities use case.

Fetches every configured event source concurrently, normalizes and filters the
raw events, fills feed gaps with pseudo-events and merges everything into one
deduplicated, recency-ordered activity stream.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timedelta
from time import perf_counter
from typing import Any

import pytz
from pydantic import ValidationError as PydanticValidationError

from activity_tracker.adapters.activity_cache import ActivityCache, make_cache_key
from activity_tracker.config.logging_config import get_logger
from activity_tracker.config.settings import Settings
from activity_tracker.domain.exceptions import RateLimitError
from activity_tracker.domain.models import (
    Activity,
    ActivitySource,
    AggregationResult,
    RawEvent,
    RepositoryInfo,
)
from activity_tracker.domain.protocols import GitHubClientProtocol
from activity_tracker.observability.tracing import correlation_scope, timed_stage
from activity_tracker.services.activity_merger import merge_activity_sources
from activity_tracker.services.event_normalizer import normalize_events, parse_raw_events
from activity_tracker.services.pseudo_events import (
    collect_primary_keys,
    synthesize_commit_events,
    synthesize_issue_events,
    synthesize_pull_request_events,
)
from activity_tracker.services.relevance_filter import (
    filter_events_by_actor,
    filter_relevant_events,
)

logger = get_logger(__name__)

CACHE_NAMESPACE = "activities"
REPOSITORIES_TASK = "repositories"


@dataclass(frozen=True)
class FetchTask:
    """One independent upstream request executed by the fetch pool."""

    name: str
    fetch: Callable[[], list[dict[str, Any]]]
    source: ActivitySource | None = None


@dataclass
class BatchOutcome:
    """Results of a fetch batch keyed by task name, in task order."""

    results: dict[str, list[dict[str, Any]]]
    errors: list[str]


def aggregation_cache_key(
    username: str,
    days_back: int,
    orgs: Sequence[str],
    tracked_repos: Sequence[str],
) -> str:
    """Logical cache key for one aggregation configuration.

    Example:
        >>> aggregation_cache_key("Alice", 30, ["umbrella", "acme"], [])
        'activities:alice:30:acme,umbrella:'
    """
    return make_cache_key(
        CACHE_NAMESPACE,
        username.lower(),
        days_back,
        sorted(orgs),
        sorted(tracked_repos),
    )


def run_fetch_batch(tasks: Sequence[FetchTask], max_workers: int) -> BatchOutcome:
    """Run fetch tasks concurrently with per-task fault isolation.

    A failing task is recorded in ``errors`` and leaves no result; the other
    tasks still complete. ``RateLimitError`` cancels the tasks that have not
    started yet and propagates, since every further request would fail too.

    Args:
        tasks: Independent fetch tasks
        max_workers: Upper bound on concurrent requests

    Returns:
        Successful results assembled in task order, plus error descriptions

    Raises:
        RateLimitError: If any task hits the upstream rate limit
    """
    if not tasks:
        return BatchOutcome(results={}, errors=[])

    completed: dict[str, list[dict[str, Any]]] = {}
    errors: list[str] = []
    executor = ThreadPoolExecutor(
        max_workers=max(1, min(max_workers, len(tasks))),
        thread_name_prefix="github-fetch",
    )
    try:
        futures: dict[Future[list[dict[str, Any]]], FetchTask] = {
            executor.submit(task.fetch): task for task in tasks
        }
        for future in as_completed(futures):
            task = futures[future]
            try:
                completed[task.name] = future.result()
            except RateLimitError:
                for pending in futures:
                    pending.cancel()
                raise
            except Exception as exc:  # noqa: BLE001
                errors.append(f"{task.name}: {exc}")
                logger.warning(
                    "activity_source_fetch_failed",
                    source=task.name,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
    finally:
        executor.shutdown(wait=True, cancel_futures=True)

    ordered = {task.name: completed[task.name] for task in tasks if task.name in completed}
    return BatchOutcome(results=ordered, errors=errors)


def _split_full_name(full_name: str) -> tuple[str, str]:
    owner, _, name = full_name.partition("/")
    return owner, name


def _event_tasks(
    client: GitHubClientProtocol, username: str, settings: Settings
) -> list[FetchTask]:
    tasks = [
        FetchTask(
            name=ActivitySource.USER_EVENTS.value,
            fetch=lambda: client.list_user_events(username),
            source=ActivitySource.USER_EVENTS,
        ),
        FetchTask(
            name=ActivitySource.RECEIVED_EVENTS.value,
            fetch=lambda: client.list_received_events(username),
            source=ActivitySource.RECEIVED_EVENTS,
        ),
    ]
    for org in settings.github_orgs:
        tasks.append(
            FetchTask(
                name=f"{ActivitySource.ORG_EVENTS.value}:{org}",
                fetch=lambda org=org: client.list_org_events(org),
                source=ActivitySource.ORG_EVENTS,
            )
        )
    for full_name in settings.tracked_repos:
        owner, name = _split_full_name(full_name)
        tasks.append(
            FetchTask(
                name=f"{ActivitySource.REPO_EVENTS.value}:{full_name}",
                fetch=lambda owner=owner, name=name: client.list_repo_events(owner, name),
                source=ActivitySource.REPO_EVENTS,
            )
        )
    tasks.append(FetchTask(name=REPOSITORIES_TASK, fetch=client.list_user_repositories))
    return tasks


def _pseudo_tasks(
    client: GitHubClientProtocol,
    username: str,
    repositories: Sequence[RepositoryInfo],
    settings: Settings,
    since: datetime,
) -> list[FetchTask]:
    tasks: list[FetchTask] = []
    for repository in repositories[: settings.pseudo_event_commit_repo_limit]:
        owner, name = _split_full_name(repository.full_name)
        tasks.append(
            FetchTask(
                name=f"commits:{repository.full_name}",
                fetch=lambda owner=owner, name=name: client.list_repo_commits(
                    owner, name, author=username, since=since
                ),
            )
        )
    for repository in repositories[: settings.pseudo_event_item_repo_limit]:
        owner, name = _split_full_name(repository.full_name)
        tasks.append(
            FetchTask(
                name=f"pulls:{repository.full_name}",
                fetch=lambda owner=owner, name=name: client.list_repo_pulls(owner, name),
            )
        )
        tasks.append(
            FetchTask(
                name=f"issues:{repository.full_name}",
                fetch=lambda owner=owner, name=name: client.list_repo_issues(owner, name),
            )
        )
    return tasks


def parse_repositories(records: Sequence[dict[str, Any]]) -> list[RepositoryInfo]:
    """Validate repository records, dropping malformed ones."""
    repositories: list[RepositoryInfo] = []
    for record in records:
        try:
            repositories.append(RepositoryInfo.model_validate(record))
        except PydanticValidationError as exc:
            logger.warning(
                "repository_record_invalid",
                full_name=record.get("full_name"),
                error_count=exc.error_count(),
            )
    return repositories


def _source_raw_events(
    task: FetchTask, records: list[dict[str, Any]], username: str
) -> list[RawEvent]:
    raws = parse_raw_events(records, source=task.name)
    if task.source in (ActivitySource.RECEIVED_EVENTS, ActivitySource.ORG_EVENTS):
        return filter_relevant_events(raws, username)
    if task.source is ActivitySource.REPO_EVENTS:
        return filter_events_by_actor(raws, username)
    return raws


def _requested_reviewer_logins(pr: dict[str, Any]) -> list[str]:
    reviewers = pr.get("requested_reviewers")
    if not isinstance(reviewers, list):
        return []
    return [
        reviewer["login"]
        for reviewer in reviewers
        if isinstance(reviewer, dict) and isinstance(reviewer.get("login"), str)
    ]


def trim_pull_request(repository: str, pr: dict[str, Any]) -> dict[str, Any]:
    """Keep the pull request fields used by the extended statistics."""
    return {
        "id": pr.get("id"),
        "number": pr.get("number"),
        "repository": repository,
        "state": pr.get("state"),
        "requested_reviewers": _requested_reviewer_logins(pr),
        "html_url": pr.get("html_url"),
    }


def _synthesize_pseudo_activities(
    client: GitHubClientProtocol,
    username: str,
    user_raws: Sequence[RawEvent],
    repositories: Sequence[RepositoryInfo],
    settings: Settings,
    now: datetime,
) -> tuple[list[Activity], list[dict[str, Any]], list[str]]:
    since = now - timedelta(days=settings.pseudo_event_window_days)
    tasks = _pseudo_tasks(client, username, repositories, settings, since)
    with timed_stage("fetch_pseudo_sources", tasks=len(tasks)):
        outcome = run_fetch_batch(tasks, settings.max_workers)

    known = collect_primary_keys(user_raws)
    avatar_url = next(
        (raw.actor.avatar_url for raw in user_raws if raw.actor.avatar_url), None
    )
    synth_kwargs: dict[str, Any] = {
        "username": username,
        "known": known,
        "now": now,
        "window_days": settings.pseudo_event_window_days,
        "avatar_url": avatar_url,
    }

    pseudo_raws: list[RawEvent] = []
    pull_requests: list[dict[str, Any]] = []
    for repository in repositories:
        full_name = repository.full_name
        commits = outcome.results.get(f"commits:{full_name}", [])
        pulls = outcome.results.get(f"pulls:{full_name}", [])
        issues = outcome.results.get(f"issues:{full_name}", [])

        pseudo_raws.extend(synthesize_commit_events(repository, commits, **synth_kwargs))
        pseudo_raws.extend(synthesize_pull_request_events(repository, pulls, **synth_kwargs))
        pseudo_raws.extend(synthesize_issue_events(repository, issues, **synth_kwargs))
        pull_requests.extend(trim_pull_request(full_name, pr) for pr in pulls)

    logger.info(
        "pseudo_events_synthesized",
        repositories=len(repositories),
        pseudo_events=len(pseudo_raws),
        errors=len(outcome.errors),
    )
    return normalize_events(pseudo_raws), pull_requests, outcome.errors


def aggregate_activities_use_case(
    client: GitHubClientProtocol,
    cache: ActivityCache,
    settings: Settings,
    *,
    now: datetime | None = None,
    use_cache: bool = True,
    correlation_id: str | None = None,
) -> AggregationResult:
    """Aggregate the tracked user's activity from every configured source.

    1. Resolve the tracked login (configured username or token owner)
    2. Return the cached result for this configuration when fresh
    3. Fetch user, received, organization and tracked repository events plus
       the user's repositories concurrently (one failing source never aborts
       the others)
    4. Validate raw events; keep received/organization events relevant to the
       user and tracked repository events performed by the user
    5. Synthesize pseudo-events for recent commits, pull requests and issues
       missing from the user feed
    6. Merge (last occurrence wins), drop activities older than ``days_back``
       and cap at ``max_activities``
    7. Cache the result when every source succeeded

    Args:
        client: GitHub client
        cache: Activity cache
        settings: Application settings
        now: Reference instant (defaults to current UTC time)
        use_cache: Whether to read and write the cache
        correlation_id: Optional correlation id for log entries

    Returns:
        AggregationResult with merged activities and per-source errors

    Raises:
        RateLimitError: If the upstream rate limit is exhausted
        ConfigurationError: If the tracked user cannot be resolved

    Example:
        >>> result = aggregate_activities_use_case(client, cache, settings)
        >>> result.activities[0].timestamp >= result.activities[-1].timestamp
        True
    """
    current = now or datetime.now(tz=pytz.UTC)

    with correlation_scope(correlation_id) as bound_correlation_id:
        stage_start = perf_counter()
        username = settings.github_username or client.get_authenticated_login()
        cache_key = aggregation_cache_key(
            username, settings.days_back, settings.github_orgs, settings.tracked_repos
        )

        if use_cache:
            cached = cache.get(cache_key)
            if cached is not None:
                try:
                    result = AggregationResult.model_validate(cached)
                except PydanticValidationError as exc:
                    logger.warning(
                        "activity_cache_payload_invalid",
                        key=cache_key,
                        error_count=exc.error_count(),
                    )
                    cache.delete(cache_key)
                else:
                    logger.info(
                        "activity_aggregation_cache_hit",
                        correlation_id=bound_correlation_id,
                        username=username,
                        activities=len(result.activities),
                    )
                    return result.model_copy(update={"from_cache": True})

        logger.info(
            "activity_aggregation_started",
            correlation_id=bound_correlation_id,
            username=username,
            orgs=len(settings.github_orgs),
            tracked_repos=len(settings.tracked_repos),
        )

        tasks = _event_tasks(client, username, settings)
        with timed_stage("fetch_event_sources", tasks=len(tasks)):
            outcome = run_fetch_batch(tasks, settings.max_workers)
        source_errors = list(outcome.errors)

        user_raws: list[RawEvent] = []
        sources: list[list[Activity]] = []
        for task in tasks:
            if task.source is None or task.name not in outcome.results:
                continue
            raws = _source_raw_events(task, outcome.results[task.name], username)
            if task.source is ActivitySource.USER_EVENTS:
                user_raws = raws
            sources.append(normalize_events(raws))

        repositories = parse_repositories(outcome.results.get(REPOSITORIES_TASK, []))

        pull_requests: list[dict[str, Any]] = []
        if settings.synthesize_pseudo_events and repositories:
            pseudo_activities, pull_requests, pseudo_errors = _synthesize_pseudo_activities(
                client, username, user_raws, repositories, settings, current
            )
            sources.append(pseudo_activities)
            source_errors.extend(pseudo_errors)

        cutoff = current - timedelta(days=settings.days_back)
        merged = [
            activity
            for activity in merge_activity_sources(sources)
            if activity.timestamp >= cutoff
        ][: settings.max_activities]

        result = AggregationResult(
            username=username,
            activities=merged,
            repositories=repositories,
            pull_requests=pull_requests,
            source_errors=source_errors,
            fetched_at=current,
        )

        if use_cache and not source_errors:
            cache.set(
                cache_key,
                result.model_dump(mode="json"),
                ttl_seconds=settings.cache_ttl_seconds,
            )

        logger.info(
            "activity_aggregation_completed",
            correlation_id=bound_correlation_id,
            username=username,
            activities=len(merged),
            repositories=len(repositories),
            source_errors=len(source_errors),
            duration_seconds=round(perf_counter() - stage_start, 3),
        )
        return result


__all__ = [
    "BatchOutcome",
    "FetchTask",
    "aggregate_activities_use_case",
    "aggregation_cache_key",
    "parse_repositories",
    "run_fetch_batch",
    "trim_pull_request",
]
