"""Tests for activity summary and extended statistics."""

from datetime import date, timedelta

import pytz

from activity_tracker.domain.models import Activity, RepositoryInfo
from activity_tracker.services.activity_statistics import (
    calculate_streaks,
    compute_extended_stats,
    rank_counts,
    summarize_activities,
)
from tests.conftest import NOW, days_ago, make_activity, pull_request_payload, push_payload


def test_summary_push_and_merged_pull_request() -> None:
    activities = [
        make_activity("1", "PushEvent", repo="r1", payload=push_payload(3), created_at=days_ago(1)),
        make_activity(
            "2",
            "PullRequestEvent",
            repo="r1",
            payload=pull_request_payload("closed", merged=True),
            created_at=days_ago(2),
        ),
    ]

    summary = summarize_activities(activities, now=NOW)

    assert summary.commits.total == 3
    assert summary.commits.repos == ["r1"]
    assert summary.pull_requests.merged == 1
    assert summary.pull_requests.closed == 0
    assert summary.total_activities == 2
    assert summary.by_repo == {"r1": 2}
    assert summary.by_type == {"PushEvent": 1, "PullRequestEvent": 1}
    assert summary.by_day == {"2024-01-09": 1, "2024-01-08": 1}
    assert [a.id for a in summary.recent_activities] == ["1", "2"]


def test_summary_ignores_activities_outside_window() -> None:
    activities = [
        make_activity("in", "WatchEvent", created_at=days_ago(6)),
        make_activity("out", "WatchEvent", created_at=days_ago(8)),
        make_activity("future", "WatchEvent", created_at=NOW + timedelta(hours=1)),
    ]

    summary = summarize_activities(activities, window_days=7, now=NOW)

    assert summary.total_activities == 1
    assert [a.id for a in summary.recent_activities] == ["in"]


def test_summary_funnel_conservation() -> None:
    actions = [("opened", False), ("closed", True), ("closed", False), ("reopened", False)]
    activities = [
        make_activity(
            str(index),
            "PullRequestEvent",
            payload=pull_request_payload(action, index, merged=merged),
            created_at=days_ago(1),
        )
        for index, (action, merged) in enumerate(actions)
    ]

    funnel = summarize_activities(activities, now=NOW).pull_requests

    counted = sum(1 for a in activities if a.action in {"opened", "closed"})
    assert funnel.opened + funnel.closed + funnel.merged == counted == 3


def test_summary_issue_funnel_and_reviews() -> None:
    activities = [
        make_activity("1", "IssuesEvent", payload={"action": "opened", "issue": {}}, created_at=days_ago(1)),
        make_activity("2", "IssuesEvent", payload={"action": "closed", "issue": {}}, created_at=days_ago(1)),
        make_activity("3", "IssueCommentEvent", payload={}, created_at=days_ago(1)),
        make_activity("4", "PullRequestReviewEvent", payload={}, created_at=days_ago(1)),
    ]

    summary = summarize_activities(activities, now=NOW)

    assert (summary.issues.opened, summary.issues.closed, summary.issues.commented) == (1, 1, 1)
    assert summary.pull_requests.reviewed == 1


def test_summary_empty_input() -> None:
    summary = summarize_activities([], now=NOW)

    assert summary.total_activities == 0
    assert summary.by_type == {}
    assert summary.commits.total == 0
    assert summary.recent_activities == []


def test_summary_by_day_uses_timezone() -> None:
    late_evening_utc = NOW.replace(hour=2)
    activities = [make_activity("1", "WatchEvent", created_at=late_evening_utc)]

    summary = summarize_activities(activities, now=NOW, tz=pytz.timezone("America/Los_Angeles"))

    assert summary.by_day == {"2024-01-09": 1}


def test_streak_three_consecutive_days() -> None:
    today = date(2024, 1, 5)

    assert calculate_streaks([today, date(2024, 1, 4), date(2024, 1, 3)], today) == (3, 3)


def test_streak_broken_by_gap() -> None:
    today = date(2024, 1, 5)

    assert calculate_streaks([today, date(2024, 1, 1)], today) == (1, 1)


def test_streak_quiet_today_counts_from_yesterday() -> None:
    today = date(2024, 1, 5)
    days = [date(2024, 1, 4), date(2024, 1, 3), date(2023, 12, 1), date(2023, 12, 2)]

    assert calculate_streaks(days, today) == (2, 2)


def test_streak_ended_two_days_ago() -> None:
    today = date(2024, 1, 5)

    assert calculate_streaks([date(2024, 1, 3), date(2024, 1, 2)], today) == (0, 2)
    assert calculate_streaks([], today) == (0, 0)


def test_rank_counts_ties_keep_first_seen_order() -> None:
    ranked = rank_counts({"b": 1, "a": 3, "c": 1}, 2)

    assert [(r.name, r.count) for r in ranked] == [("a", 3), ("b", 1)]


def test_extended_stats() -> None:
    activities = [
        make_activity(
            "push",
            "PushEvent",
            repo="alice/py",
            payload=push_payload(2, branch="dev"),
            created_at=NOW - timedelta(hours=2),
        ),
        make_activity(
            "merge",
            "PullRequestEvent",
            repo="alice/py",
            payload=pull_request_payload("closed", merged=True, created_at=days_ago(3)),
            created_at=days_ago(1),
        ),
        make_activity(
            "review-by-bob",
            "PullRequestReviewEvent",
            actor="bob",
            repo="alice/py",
            payload={"pull_request": {"number": 1}, "review": {"state": "approved"}},
            created_at=days_ago(2),
        ),
        make_activity(
            "comment",
            "IssueCommentEvent",
            actor="carol",
            repo="alice/go",
            payload={"issue": {"number": 2}, "comment": {"body": "@alice @dan ptal"}},
            created_at=days_ago(10),
        ),
    ]
    repositories = [
        RepositoryInfo(full_name="alice/py", language="Python", stargazers_count=5),
        RepositoryInfo(full_name="alice/go", language="Go"),
        RepositoryInfo(full_name="alice/docs"),
    ]
    pull_requests = [
        {"state": "open", "requested_reviewers": ["bob"]},
        {"state": "open", "requested_reviewers": []},
        {"state": "closed", "requested_reviewers": ["bob"]},
    ]

    stats = compute_extended_stats(
        activities,
        repositories=repositories,
        pull_requests=pull_requests,
        user_login="alice",
        now=NOW,
    )

    assert stats.total_activities == 4
    assert (stats.activities_last_24h, stats.activities_last_7d, stats.activities_last_30d) == (1, 3, 4)
    assert stats.commits.total == 2
    assert stats.commits.by_branch == {"dev": 2}
    assert stats.commits.commit_messages == ["commit 0", "commit 1"]
    assert stats.pull_requests.merged == 1
    assert stats.pull_requests.avg_hours_to_merge == 48.0
    assert stats.pull_requests.pending_review == 1
    assert stats.reviews_received == 1
    assert stats.reviews_given == 0
    assert stats.mentions_received == 1
    assert stats.collaborators == {"bob": 1, "carol": 1}
    assert stats.team_members == ["bob", "carol"]
    assert stats.top_repos[0].name == "alice/py"
    assert stats.top_repositories[0].stars == 5
    assert stats.top_repositories[0].commits == 2
    assert stats.total_repos_active == 2
    assert stats.language_breakdown == {"Python": 1, "Go": 1}
    assert stats.language_activity["Python"].commits == 2
    assert stats.language_activity["Python"].prs == 1
    assert sum(stats.hourly_distribution) == 4
    assert sum(stats.daily_distribution) == 4
    assert [p.label for p in stats.weekly_trend][-1] == "2024-01-10"
    assert len(stats.weekly_trend) == 7
    assert len(stats.monthly_trend) == 12
    assert stats.monthly_trend[-1].label == "2024-01"
    assert stats.monthly_trend[-1].count == 3
    assert stats.monthly_trend[-2].label == "2023-12"
    assert stats.monthly_trend[-2].count == 1
    assert stats.streak_days == 3
    assert stats.event_type_distribution["PushEvent"] == 1
    assert stats.avg_daily_activities == 1


def test_extended_stats_empty() -> None:
    stats = compute_extended_stats([], now=NOW)

    assert stats.total_activities == 0
    assert stats.streak_days == 0
    assert stats.most_productive_day is None
    assert stats.most_productive_hour is None
    assert stats.busiest_date is None
    assert stats.hourly_distribution == [0] * 24


def _raw_activity(event_id: str, event_type: str, action: str, details: dict) -> Activity:
    return Activity(
        id=event_id,
        type=event_type,
        action=action,
        repo="alice/proj",
        actor="bob",
        timestamp=days_ago(1),
        details=details,
    )


def test_malformed_details_contribute_zero() -> None:
    activities = [
        _raw_activity("push", "PushEvent", "pushed", {"commits": "3", "additions": "9"}),
        _raw_activity("pr", "PullRequestEvent", "closed", {"merged": "yes"}),
        _raw_activity("issue", "IssuesEvent", "closed", {"labels": 5, "created_at": 9}),
        _raw_activity("comment", "IssueCommentEvent", "commented", {"mentions": "alice"}),
    ]

    summary = summarize_activities(activities, now=NOW)

    assert summary.total_activities == 4
    assert sum(summary.by_type.values()) == 4
    assert summary.commits.total == 0
    assert summary.commits.repos == ["alice/proj"]
    assert summary.pull_requests.closed == 1
    assert summary.pull_requests.merged == 0
    assert summary.issues.closed == 1
    assert summary.issues.commented == 1

    stats = compute_extended_stats(activities, user_login="alice", now=NOW)

    assert stats.total_activities == 4
    assert stats.commits.total == 0
    assert stats.commits.additions == 0
    assert stats.pull_requests.closed == 1
    assert stats.pull_requests.merged == 0
    assert stats.pull_requests.avg_hours_to_merge is None
    assert stats.issues.avg_hours_to_close is None
    assert stats.issues.label_distribution == {}
    assert stats.mentions_received == 0


def test_extended_stats_sum_commit_line_stats() -> None:
    payload = push_payload(2)
    payload["commits"][0]["stats"] = {"additions": 10, "deletions": 4, "total": 14}
    payload["commits"][1]["stats"] = {"additions": 1, "deletions": 0, "total": 1}
    activities = [
        make_activity("p1", "PushEvent", payload=payload, created_at=days_ago(1)),
        make_activity("p2", "PushEvent", payload=push_payload(1), created_at=days_ago(2)),
    ]

    stats = compute_extended_stats(activities, user_login="alice", now=NOW)

    assert stats.commits.total == 3
    assert stats.commits.additions == 11
    assert stats.commits.deletions == 4
    assert stats.commits.files_changed == 15
