"""Tests for the activity report use case."""

from activity_tracker.adapters.activity_cache import ActivityCache
from activity_tracker.config.settings import Settings
from activity_tracker.domain.models import DateRange, FilterOptions
from activity_tracker.use_cases.build_activity_report import build_activity_report_use_case
from tests.conftest import (
    NOW,
    StubGitHubClient,
    days_ago,
    make_raw_event,
    pull_request_payload,
    push_payload,
)


def _client() -> StubGitHubClient:
    return StubGitHubClient(
        user_events=[
            make_raw_event("1", "PushEvent", repo="alice/r1", payload=push_payload(3), created_at=days_ago(1)),
            make_raw_event(
                "2",
                "PullRequestEvent",
                repo="alice/r1",
                payload=pull_request_payload("closed", merged=True),
                created_at=days_ago(2),
            ),
            make_raw_event("3", "WatchEvent", repo="alice/r2", created_at=days_ago(20)),
        ],
        repositories=[{"full_name": "alice/r1", "language": "Python"}],
    )


def test_report_summary_and_activities(settings: Settings, memory_cache: ActivityCache) -> None:
    report = build_activity_report_use_case(_client(), memory_cache, settings, now=NOW)

    assert report.username == "alice"
    assert [a.id for a in report.activities] == ["1", "2", "3"]
    assert report.summary.total_activities == 2
    assert report.summary.commits.total == 3
    assert report.summary.commits.repos == ["alice/r1"]
    assert report.summary.pull_requests.merged == 1
    assert report.summary.by_repo == {"alice/r1": 2}
    assert report.extended is None
    assert report.generated_at == NOW


def test_report_applies_filters(settings: Settings, memory_cache: ActivityCache) -> None:
    filters = FilterOptions(date_range=DateRange.LAST_30_DAYS, activity_types={"WatchEvent"})

    report = build_activity_report_use_case(
        _client(), memory_cache, settings, filters=filters, now=NOW
    )

    assert [a.id for a in report.activities] == ["3"]
    assert report.summary.total_activities == 0


def test_report_language_filter_uses_repository_metadata(
    settings: Settings, memory_cache: ActivityCache
) -> None:
    report = build_activity_report_use_case(
        _client(), memory_cache, settings, filters=FilterOptions(language="python"), now=NOW
    )

    assert {a.repo for a in report.activities} == {"alice/r1"}


def test_report_extended_stats(settings: Settings, memory_cache: ActivityCache) -> None:
    report = build_activity_report_use_case(
        _client(), memory_cache, settings, extended=True, now=NOW
    )

    assert report.extended is not None
    assert report.extended.total_activities == 3
    assert report.extended.commits.total == 3
    assert report.extended.language_breakdown == {"Python": 1}
    assert report.extended.activities_last_7d == 2


def test_report_marks_cached_aggregation(settings: Settings, memory_cache: ActivityCache) -> None:
    build_activity_report_use_case(_client(), memory_cache, settings, now=NOW)

    report = build_activity_report_use_case(_client(), memory_cache, settings, now=NOW)

    assert report.from_cache is True


def test_report_lists_filter_choices_before_narrowing(
    settings: Settings, memory_cache: ActivityCache
) -> None:
    filters = FilterOptions(activity_types={"WatchEvent"})

    report = build_activity_report_use_case(
        _client(), memory_cache, settings, filters=filters, now=NOW
    )

    assert [a.id for a in report.activities] == ["3"]
    assert report.available_repositories == ["alice/r1", "alice/r2"]
    assert report.available_types == ["PullRequestEvent", "PushEvent", "WatchEvent"]
