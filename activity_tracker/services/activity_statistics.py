"""Activity statistics aggregation.

Two entry points:
- ``summarize_activities``: counters and funnels over a trailing window
- ``compute_extended_stats``: full-history metrics (time windows, streaks,
  histograms, trends, rankings, collaboration and language breakdowns)

Funnel rules (shared by both):
- PullRequestEvent ``opened`` -> opened; ``closed`` -> merged when
  ``details.merged`` is true, else closed; other actions are not counted
- PullRequestReviewEvent -> reviewed (independent of the PR tally)
- IssuesEvent ``opened``/``closed`` -> opened/closed
- IssueCommentEvent -> commented

Aggregation is total: a malformed ``details`` value contributes zero to the
metric that reads it and never aborts the pass.
"""

from collections import Counter, defaultdict
from collections.abc import Iterable, Mapping, Sequence
from datetime import date, datetime, timedelta, tzinfo
from typing import Any

import pytz

from activity_tracker.domain.aggregation_constants import (
    COMMIT_MESSAGES_LIMIT,
    DEFAULT_SUMMARY_WINDOW_DAYS,
    MONTHLY_TREND_MONTHS,
    RECENT_ACTIVITIES_LIMIT,
    TOP_COLLABORATORS,
    TOP_LANGUAGES,
    TOP_REPOS_BASIC,
    TOP_REPOS_EXTENDED,
    WEEKDAY_NAMES,
    WEEKLY_TREND_DAYS,
)
from activity_tracker.domain.models import (
    Activity,
    ActivitySummary,
    CommitAggregate,
    CommitStats,
    EventKind,
    ExtendedStats,
    IssueFunnel,
    IssueStats,
    LanguageActivity,
    PullRequestFunnel,
    PullRequestStats,
    RankedCount,
    RepositoryInfo,
    RepositoryRanking,
    TrendPoint,
)
from activity_tracker.services.activity_merger import sort_by_recency
from activity_tracker.services.pseudo_events import parse_timestamp


def _count(value: Any) -> int:
    """Non-negative integer from a details field, 0 when malformed."""
    if isinstance(value, int) and not isinstance(value, bool) and value >= 0:
        return value
    return 0


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _hours_between(start: Any, end: datetime) -> float | None:
    started = parse_timestamp(start)
    if started is None:
        return None
    return (end - started).total_seconds() / 3600


def _mean(values: Sequence[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


def _same_login(left: str | None, right: str | None) -> bool:
    if not left or not right:
        return False
    return left.lower() == right.lower()


def rank_counts(counts: Mapping[str, int], limit: int) -> list[RankedCount]:
    """Rank entries by count descending, ties broken by first-seen order.

    Args:
        counts: Insertion-ordered mapping of name to count
        limit: Maximum entries returned

    Returns:
        Top entries

    Example:
        >>> rank_counts({"b": 1, "a": 3, "c": 1}, 2)
        [RankedCount(name='a', count=3), RankedCount(name='b', count=1)]
    """
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [RankedCount(name=name, count=count) for name, count in ranked[:limit]]


def calculate_streaks(day_keys: Iterable[date], today: date) -> tuple[int, int]:
    """Compute the current and longest streak of consecutive active days.

    Current streak: walk backward from today counting active days. A quiet
    today does not end the streak (counting then starts at yesterday); the
    first quiet day before that ends it.

    Longest streak: maximum run of consecutive active days over the whole
    history.

    Args:
        day_keys: Calendar days with at least one activity (duplicates allowed)
        today: Current calendar day

    Returns:
        (current_streak, longest_streak)

    Example:
        >>> d = date(2024, 1, 5)
        >>> calculate_streaks([d, date(2024, 1, 4), date(2024, 1, 3)], d)
        (3, 3)
        >>> calculate_streaks([d, date(2024, 1, 1)], d)
        (1, 1)
    """
    days = set(day_keys)
    if not days:
        return 0, 0

    one_day = timedelta(days=1)
    cursor = today if today in days else today - one_day
    current = 0
    while cursor in days:
        current += 1
        cursor -= one_day

    longest = 0
    run = 0
    previous: date | None = None
    for day in sorted(days):
        run = run + 1 if previous is not None and day - previous == one_day else 1
        longest = max(longest, run)
        previous = day

    return current, longest


def _apply_pull_request(funnel: PullRequestFunnel, activity: Activity) -> bool:
    """Update the PR funnel; returns True when the activity was a merge."""
    if activity.action == "opened":
        funnel.opened += 1
    elif activity.action == "closed":
        if activity.details.get("merged") is True:
            funnel.merged += 1
            return True
        funnel.closed += 1
    return False


def _apply_issue(funnel: IssueFunnel, activity: Activity) -> None:
    if activity.action == "opened":
        funnel.opened += 1
    elif activity.action == "closed":
        funnel.closed += 1


def summarize_activities(
    activities: Sequence[Activity],
    window_days: int = DEFAULT_SUMMARY_WINDOW_DAYS,
    *,
    now: datetime | None = None,
    tz: tzinfo = pytz.UTC,
    recent_limit: int = RECENT_ACTIVITIES_LIMIT,
) -> ActivitySummary:
    """Summarize activities inside the trailing window ``[now - window_days, now]``.

    Every activity inside the window lands in exactly one ``by_type``,
    ``by_repo`` and ``by_day`` bucket; activities outside it are ignored.

    Args:
        activities: Canonical activities (any order)
        window_days: Trailing window size in days
        now: Reference instant (defaults to current UTC time)
        tz: Timezone defining calendar days for ``by_day``
        recent_limit: Number of most recent activities echoed back

    Returns:
        Window summary (zero-valued for empty input)

    Example:
        >>> summary = summarize_activities([push_3_commits_r1, merged_pr_r1], now=now)
        >>> summary.commits.total, summary.pull_requests.merged, summary.by_repo
        (3, 1, {'r1': 2})
    """
    current = now or datetime.now(tz=pytz.UTC)
    window_start = current - timedelta(days=window_days)
    in_window = [a for a in activities if window_start <= a.timestamp <= current]

    by_type: Counter[str] = Counter()
    by_repo: Counter[str] = Counter()
    by_day: Counter[str] = Counter()
    pull_requests = PullRequestFunnel()
    issues = IssueFunnel()
    commit_total = 0
    commit_repos: dict[str, None] = {}

    for activity in in_window:
        by_type[activity.type] += 1
        by_repo[activity.repo] += 1
        by_day[activity.timestamp.astimezone(tz).date().isoformat()] += 1

        if activity.kind is EventKind.PULL_REQUEST:
            _apply_pull_request(pull_requests, activity)
        elif activity.kind is EventKind.PULL_REQUEST_REVIEW:
            pull_requests.reviewed += 1
        elif activity.kind is EventKind.ISSUES:
            _apply_issue(issues, activity)
        elif activity.kind is EventKind.ISSUE_COMMENT:
            issues.commented += 1
        elif activity.kind is EventKind.PUSH:
            commit_total += _count(activity.details.get("commits"))
            commit_repos.setdefault(activity.repo, None)

    return ActivitySummary(
        window_days=window_days,
        generated_at=current,
        total_activities=len(in_window),
        by_type=dict(by_type),
        by_repo=dict(by_repo),
        by_day=dict(by_day),
        recent_activities=sort_by_recency(in_window)[: max(recent_limit, 0)],
        pull_requests=pull_requests,
        issues=issues,
        commits=CommitAggregate(total=commit_total, repos=list(commit_repos)),
    )


def _month_keys(today: date, months: int) -> list[str]:
    """Last ``months`` calendar months ending with the current one, oldest first."""
    keys: list[str] = []
    year, month = today.year, today.month
    for _ in range(months):
        keys.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            year, month = year - 1, 12
    return list(reversed(keys))


def _argmax(values: Sequence[int]) -> int | None:
    if not values or max(values) == 0:
        return None
    return values.index(max(values))


def compute_extended_stats(
    activities: Sequence[Activity],
    *,
    repositories: Iterable[RepositoryInfo] = (),
    pull_requests: Iterable[Mapping[str, Any]] = (),
    user_login: str | None = None,
    now: datetime | None = None,
    tz: tzinfo = pytz.UTC,
) -> ExtendedStats:
    """Compute extended metrics over the full activity history.

    Time windows (24h/7d/30d) are independent trailing counts against ``now``.
    Calendar quantities (histograms, streaks, trends) use ``tz``.

    Args:
        activities: Canonical activities (any order)
        repositories: Repository metadata (language, stars, forks)
        pull_requests: Raw pull request records (pending review detection)
        user_login: Tracked user; separates own actions from collaborators
        now: Reference instant (defaults to current UTC time)
        tz: Timezone defining calendar days and hours

    Returns:
        Extended statistics (zero-valued for empty input)
    """
    current = now or datetime.now(tz=pytz.UTC)
    today = current.astimezone(tz).date()
    last_24h = current - timedelta(days=1)
    last_7d = current - timedelta(days=7)
    last_30d = current - timedelta(days=30)

    repo_meta = {repo.full_name: repo for repo in repositories}

    stats = ExtendedStats(generated_at=current, total_activities=len(activities))
    pr_stats = PullRequestStats()
    issue_stats = IssueStats()
    commit_stats = CommitStats()
    merge_hours: list[float] = []
    close_hours: list[float] = []
    label_counts: Counter[str] = Counter()
    branch_counts: Counter[str] = Counter()

    repo_rankings: dict[str, RepositoryRanking] = {}
    collaborators: Counter[str] = Counter()
    daily: Counter[str] = Counter()
    monthly: Counter[str] = Counter()
    event_types: Counter[str] = Counter()
    hourly = [0] * 24
    weekday = [0] * 7
    language_activity: defaultdict[str, LanguageActivity] = defaultdict(LanguageActivity)

    for activity in activities:
        timestamp = activity.timestamp
        local = timestamp.astimezone(tz)
        details = activity.details

        if timestamp > last_24h:
            stats.activities_last_24h += 1
        if timestamp > last_7d:
            stats.activities_last_7d += 1
        if timestamp > last_30d:
            stats.activities_last_30d += 1

        hourly[local.hour] += 1
        weekday[local.weekday()] += 1
        daily[local.date().isoformat()] += 1
        monthly[f"{local.year:04d}-{local.month:02d}"] += 1
        event_types[activity.type] += 1

        ranking = repo_rankings.setdefault(activity.repo, RepositoryRanking(name=activity.repo))
        ranking.count += 1
        if ranking.last_activity is None or timestamp > ranking.last_activity:
            ranking.last_activity = timestamp

        language = repo_meta[activity.repo].language if activity.repo in repo_meta else None
        own_action = user_login is None or _same_login(activity.actor, user_login)

        if activity.kind is EventKind.PULL_REQUEST:
            ranking.prs += 1
            if _apply_pull_request(pr_stats, activity):
                hours = _hours_between(details.get("created_at"), timestamp)
                if hours is not None and hours >= 0:
                    merge_hours.append(hours)
            label_counts.update(_str_list(details.get("labels")))
            if language:
                language_activity[language].prs += 1

        elif activity.kind is EventKind.PULL_REQUEST_REVIEW:
            pr_stats.reviewed += 1
            if own_action:
                stats.reviews_given += 1
            else:
                stats.reviews_received += 1

        elif activity.kind is EventKind.PULL_REQUEST_REVIEW_COMMENT:
            if not _same_login(activity.actor, user_login):
                stats.reviews_received += 1

        elif activity.kind is EventKind.ISSUES:
            ranking.issues += 1
            _apply_issue(issue_stats, activity)
            label_counts.update(_str_list(details.get("labels")))
            if activity.action == "closed":
                hours = _hours_between(details.get("created_at"), timestamp)
                if hours is not None and hours >= 0:
                    close_hours.append(hours)

        elif activity.kind is EventKind.ISSUE_COMMENT:
            issue_stats.commented += 1

        elif activity.kind is EventKind.PUSH:
            commits = _count(details.get("commits"))
            commit_stats.total += commits
            commit_stats.additions += _count(details.get("additions"))
            commit_stats.deletions += _count(details.get("deletions"))
            commit_stats.files_changed += _count(details.get("files_changed"))
            ranking.commits += commits
            branch = details.get("branch")
            branch_counts[branch if isinstance(branch, str) and branch else "main"] += commits
            for message in _str_list(details.get("messages")):
                if message and len(commit_stats.commit_messages) < COMMIT_MESSAGES_LIMIT:
                    commit_stats.commit_messages.append(message)
            if language:
                language_activity[language].commits += commits

        if activity.kind in (EventKind.ISSUE_COMMENT, EventKind.PULL_REQUEST_REVIEW_COMMENT):
            mentions = _str_list(details.get("mentions"))
            if user_login is None:
                stats.mentions_received += len(mentions)
            else:
                stats.mentions_received += sum(1 for m in mentions if _same_login(m, user_login))

        if activity.actor and not _same_login(activity.actor, user_login):
            collaborators[activity.actor] += 1

    for raw_pr in pull_requests:
        reviewers = raw_pr.get("requested_reviewers")
        if raw_pr.get("state") == "open" and isinstance(reviewers, list) and reviewers:
            pr_stats.pending_review += 1

    pr_stats.avg_hours_to_merge = _mean(merge_hours)
    issue_stats.avg_hours_to_close = _mean(close_hours)
    issue_stats.label_distribution = dict(label_counts)
    commit_stats.by_branch = dict(branch_counts)

    language_breakdown: Counter[str] = Counter()
    for repo in repo_meta.values():
        if repo.language:
            language_breakdown[repo.language] += 1
        if repo.full_name in repo_rankings:
            ranking = repo_rankings[repo.full_name]
            ranking.stars = repo.stargazers_count
            ranking.forks = repo.forks_count
            ranking.language = repo.language

    ranked_repos = sorted(repo_rankings.values(), key=lambda r: r.count, reverse=True)

    current_streak, longest_streak = calculate_streaks(
        (date.fromisoformat(key) for key in daily), today
    )
    busiest_date: str | None = None
    for day_key, count in daily.items():
        if busiest_date is None or count > daily[busiest_date]:
            busiest_date = day_key
    busiest_weekday = _argmax(weekday)

    stats.pull_requests = pr_stats
    stats.issues = issue_stats
    stats.commits = commit_stats
    stats.top_repositories = ranked_repos[:TOP_REPOS_EXTENDED]
    stats.top_repos = [
        RankedCount(name=r.name, count=r.count) for r in ranked_repos[:TOP_REPOS_BASIC]
    ]
    stats.total_repos_active = len(repo_rankings)
    stats.collaborators = dict(collaborators)
    stats.top_collaborators = rank_counts(collaborators, TOP_COLLABORATORS)
    stats.team_members = list(collaborators)
    stats.hourly_distribution = hourly
    stats.daily_distribution = weekday
    stats.weekly_trend = [
        TrendPoint(label=key, count=daily.get(key, 0))
        for key in (
            (today - timedelta(days=offset)).isoformat()
            for offset in range(WEEKLY_TREND_DAYS - 1, -1, -1)
        )
    ]
    stats.monthly_trend = [
        TrendPoint(label=key, count=monthly.get(key, 0))
        for key in _month_keys(today, MONTHLY_TREND_MONTHS)
    ]
    stats.language_breakdown = dict(language_breakdown)
    stats.top_languages = rank_counts(language_breakdown, TOP_LANGUAGES)
    stats.language_activity = dict(language_activity)
    stats.streak_days = current_streak
    stats.longest_streak = longest_streak
    stats.most_productive_day = (
        WEEKDAY_NAMES[busiest_weekday] if busiest_weekday is not None else None
    )
    stats.most_productive_hour = _argmax(hourly)
    stats.busiest_date = busiest_date
    stats.avg_daily_activities = round(len(activities) / len(daily)) if daily else 0
    stats.event_type_distribution = dict(event_types)

    return stats
