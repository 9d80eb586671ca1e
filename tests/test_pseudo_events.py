"""Tests for pseudo-event synthesis."""

from typing import Any

from activity_tracker.domain.models import EventKind, RawEvent, RepositoryInfo
from activity_tracker.services.event_normalizer import normalize_event
from activity_tracker.services.pseudo_events import (
    PrimaryFeedKeys,
    collect_primary_keys,
    parse_timestamp,
    synthesize_commit_events,
    synthesize_issue_events,
    synthesize_pull_request_events,
)
from tests.conftest import NOW, days_ago, iso, make_raw_event, pull_request_payload, push_payload

REPO = RepositoryInfo(full_name="alice/proj", default_branch="develop", private=True)


def _commit(sha: str, *, login: str | None = "alice", days: float = 1) -> dict[str, Any]:
    return {
        "sha": sha,
        "html_url": f"https://github.test/commit/{sha}",
        "author": {"login": login} if login else None,
        "commit": {
            "message": f"message {sha}",
            "author": {"name": "Alice", "date": iso(days_ago(days))},
        },
    }


def _pull(pr_id: int, *, state: str = "open", login: str = "alice", merged_at: str | None = None, days: float = 1) -> dict[str, Any]:
    return {
        "id": pr_id,
        "number": pr_id - 100,
        "title": f"PR {pr_id}",
        "state": state,
        "merged_at": merged_at,
        "user": {"login": login},
        "created_at": iso(days_ago(days + 1)),
        "updated_at": iso(days_ago(days)),
        "html_url": f"https://github.test/pull/{pr_id}",
    }


def test_collect_primary_keys() -> None:
    raws = [
        RawEvent.model_validate(make_raw_event("1", "PushEvent", payload=push_payload(2))),
        RawEvent.model_validate(
            make_raw_event("2", "PullRequestEvent", payload=pull_request_payload("opened", 5, pr_id=77))
        ),
        RawEvent.model_validate(
            make_raw_event("3", "IssuesEvent", payload={"action": "opened", "issue": {"id": 9}})
        ),
    ]

    keys = collect_primary_keys(raws)

    assert keys.commit_shas == frozenset({"sha0", "sha1"})
    assert keys.pull_request_ids == frozenset({77})
    assert keys.issue_ids == frozenset({9})


def test_commit_pseudo_events_skip_known_old_and_foreign() -> None:
    commits = [
        _commit("new1"),
        _commit("known"),
        _commit("old", days=8),
        _commit("foreign", login="bob"),
        _commit("unlinked", login=None),
    ]
    known = PrimaryFeedKeys(commit_shas=frozenset({"known"}))

    events = synthesize_commit_events(REPO, commits, username="Alice", known=known, now=NOW)

    assert [e.id for e in events] == ["commit-new1", "commit-unlinked"]
    event = events[0]
    assert event.type == EventKind.PUSH.value
    assert event.public is False
    assert event.payload["ref"] == "refs/heads/develop"
    assert event.actor.login == "Alice"

    activity = normalize_event(event)
    assert activity.details["commits"] == 1
    assert activity.details["branch"] == "develop"
    assert activity.description == "Pushed 1 commit(s) to develop"


def test_commit_exactly_at_cutoff_is_excluded() -> None:
    events = synthesize_commit_events(
        REPO, [_commit("edge", days=7)], username="alice", known=PrimaryFeedKeys(), now=NOW
    )

    assert events == []


def test_pull_request_pseudo_events_map_state() -> None:
    pulls = [
        _pull(101),
        _pull(102, state="closed", merged_at=iso(days_ago(1))),
        _pull(103, state="closed"),
        _pull(104, login="bob"),
        _pull(105, days=10),
    ]

    events = synthesize_pull_request_events(
        REPO, pulls, username="alice", known=PrimaryFeedKeys(pull_request_ids=frozenset()), now=NOW
    )

    activities = {a.id: a for a in map(normalize_event, events)}
    assert list(activities) == ["pr-101", "pr-102", "pr-103"]
    assert activities["pr-101"].action == "opened"
    assert activities["pr-102"].action == "closed"
    assert activities["pr-102"].details["merged"] is True
    assert activities["pr-103"].details["merged"] is False


def test_pull_request_known_in_feed_is_not_synthesized() -> None:
    events = synthesize_pull_request_events(
        REPO,
        [_pull(101)],
        username="alice",
        known=PrimaryFeedKeys(pull_request_ids=frozenset({101})),
        now=NOW,
    )

    assert events == []


def test_issue_pseudo_events_skip_pull_requests() -> None:
    issues = [
        {
            "id": 1,
            "number": 1,
            "title": "Bug",
            "state": "closed",
            "user": {"login": "alice"},
            "updated_at": iso(days_ago(2)),
        },
        {
            "id": 2,
            "number": 2,
            "state": "open",
            "user": {"login": "alice"},
            "pull_request": {"url": "https://api.github.test/pulls/2"},
            "updated_at": iso(days_ago(2)),
        },
    ]

    events = synthesize_issue_events(
        REPO, issues, username="alice", known=PrimaryFeedKeys(), now=NOW, avatar_url="a.png"
    )

    assert [e.id for e in events] == ["issue-1"]
    assert events[0].payload["action"] == "closed"
    assert events[0].actor.avatar_url == "a.png"


def test_parse_timestamp() -> None:
    assert parse_timestamp("2024-01-05T10:00:00Z") == NOW.replace(day=5, hour=10)
    assert parse_timestamp("garbage") is None
    assert parse_timestamp(None) is None


def test_commit_pseudo_event_carries_line_stats() -> None:
    commit = _commit("withstats")
    commit["stats"] = {"additions": 12, "deletions": 3, "total": 15}

    events = synthesize_commit_events(
        REPO, [commit], username="alice", known=PrimaryFeedKeys(), now=NOW
    )

    activity = normalize_event(events[0])
    assert activity.details["additions"] == 12
    assert activity.details["deletions"] == 3
    assert activity.details["files_changed"] == 15
