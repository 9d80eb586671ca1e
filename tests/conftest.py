"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

import pytest
import pytz

from activity_tracker.adapters.activity_cache import ActivityCache
from activity_tracker.adapters.memory_cache_store import MemoryCacheStore
from activity_tracker.config.settings import Settings
from activity_tracker.domain.models import Activity, RawEvent
from activity_tracker.services.event_normalizer import normalize_event

NOW = datetime(2024, 1, 10, 12, 0, tzinfo=pytz.UTC)


class StubLogger:
    """Capture structured logging calls."""

    def __init__(self) -> None:
        self.debug_calls: list[tuple[str, dict[str, Any]]] = []
        self.info_calls: list[tuple[str, dict[str, Any]]] = []
        self.warning_calls: list[tuple[str, dict[str, Any]]] = []
        self.error_calls: list[tuple[str, dict[str, Any]]] = []
        self.exception_calls: list[tuple[str, dict[str, Any]]] = []

    def debug(self, event: str, **kwargs: Any) -> None:
        self.debug_calls.append((event, kwargs))

    def info(self, event: str, **kwargs: Any) -> None:
        self.info_calls.append((event, kwargs))

    def warning(self, event: str, **kwargs: Any) -> None:
        self.warning_calls.append((event, kwargs))

    def error(self, event: str, **kwargs: Any) -> None:
        self.error_calls.append((event, kwargs))

    def exception(self, event: str, **kwargs: Any) -> None:
        self.exception_calls.append((event, kwargs))


def iso(value: datetime) -> str:
    return value.astimezone(pytz.UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def make_raw_event(
    event_id: str,
    event_type: str,
    *,
    actor: str = "alice",
    repo: str = "alice/proj",
    created_at: datetime = NOW,
    payload: dict[str, Any] | None = None,
    public: bool = True,
) -> dict[str, Any]:
    """Helper to create an upstream event dict."""
    return {
        "id": event_id,
        "type": event_type,
        "actor": {"login": actor, "avatar_url": f"https://avatars.test/{actor}"},
        "repo": {"name": repo, "url": f"https://api.github.test/repos/{repo}"},
        "created_at": iso(created_at),
        "payload": payload if payload is not None else {},
        "public": public,
    }


def push_payload(commit_count: int, branch: str = "main") -> dict[str, Any]:
    commits = [
        {"sha": f"sha{index}", "message": f"commit {index}"}
        for index in range(commit_count)
    ]
    return {"ref": f"refs/heads/{branch}", "size": commit_count, "commits": commits}


def pull_request_payload(
    action: str,
    number: int = 1,
    *,
    title: str = "Add feature",
    merged: bool = False,
    author: str = "alice",
    pr_id: int | None = None,
    created_at: datetime | None = None,
) -> dict[str, Any]:
    return {
        "action": action,
        "number": number,
        "pull_request": {
            "id": pr_id if pr_id is not None else 1000 + number,
            "number": number,
            "title": title,
            "state": "open" if action == "opened" else "closed",
            "merged": merged,
            "html_url": f"https://github.test/pr/{number}",
            "user": {"login": author},
            "created_at": iso(created_at) if created_at else None,
            "labels": [],
        },
    }


def make_activity(
    event_id: str,
    event_type: str,
    *,
    actor: str = "alice",
    repo: str = "alice/proj",
    created_at: datetime = NOW,
    payload: dict[str, Any] | None = None,
    public: bool = True,
) -> Activity:
    """Helper to create a normalized activity through the real normalizer."""
    raw = RawEvent.model_validate(
        make_raw_event(
            event_id,
            event_type,
            actor=actor,
            repo=repo,
            created_at=created_at,
            payload=payload,
            public=public,
        )
    )
    return normalize_event(raw)


def days_ago(days: float, *, now: datetime = NOW) -> datetime:
    return now - timedelta(days=days)


class StubGitHubClient:
    """In-memory implementation of GitHubClientProtocol."""

    def __init__(
        self,
        *,
        login: str = "alice",
        user_events: list[dict[str, Any]] | None = None,
        received_events: list[dict[str, Any]] | None = None,
        org_events: dict[str, list[dict[str, Any]]] | None = None,
        repo_events: dict[str, list[dict[str, Any]]] | None = None,
        repositories: list[dict[str, Any]] | None = None,
        commits: dict[str, list[dict[str, Any]]] | None = None,
        pulls: dict[str, list[dict[str, Any]]] | None = None,
        issues: dict[str, list[dict[str, Any]]] | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.login = login
        self.user_events = user_events or []
        self.received_events = received_events or []
        self.org_events = org_events or {}
        self.repo_events = repo_events or {}
        self.repositories = repositories or []
        self.commits = commits or {}
        self.pulls = pulls or {}
        self.issues = issues or {}
        self.failures = failures or {}
        self.calls: list[str] = []

    def _call(self, name: str) -> None:
        self.calls.append(name)
        if name in self.failures:
            raise self.failures[name]

    def get_authenticated_login(self) -> str:
        self._call("login")
        return self.login

    def list_user_events(self, username: str) -> list[dict[str, Any]]:
        self._call("user_events")
        return list(self.user_events)

    def list_received_events(self, username: str) -> list[dict[str, Any]]:
        self._call("received_events")
        return list(self.received_events)

    def list_org_events(self, org: str) -> list[dict[str, Any]]:
        self._call(f"org_events:{org}")
        return list(self.org_events.get(org, []))

    def list_repo_events(self, owner: str, repo: str) -> list[dict[str, Any]]:
        self._call(f"repo_events:{owner}/{repo}")
        return list(self.repo_events.get(f"{owner}/{repo}", []))

    def list_user_repositories(self) -> list[dict[str, Any]]:
        self._call("repositories")
        return list(self.repositories)

    def list_repo_commits(
        self, owner: str, repo: str, *, author: str, since: datetime
    ) -> list[dict[str, Any]]:
        self._call(f"commits:{owner}/{repo}")
        return list(self.commits.get(f"{owner}/{repo}", []))

    def list_repo_pulls(self, owner: str, repo: str) -> list[dict[str, Any]]:
        self._call(f"pulls:{owner}/{repo}")
        return list(self.pulls.get(f"{owner}/{repo}", []))

    def list_repo_issues(self, owner: str, repo: str) -> list[dict[str, Any]]:
        self._call(f"issues:{owner}/{repo}")
        return list(self.issues.get(f"{owner}/{repo}", []))


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def settings() -> Settings:
    """Settings isolated from YAML and environment for use case tests."""
    return Settings(
        github_token=None,
        github_username="alice",
        github_orgs=[],
        tracked_repos=[],
        days_back=30,
        cache_backend="memory",
        cache_ttl_seconds=300,
        max_workers=4,
        max_activities=500,
        summary_window_days=7,
        recent_activities_limit=20,
        synthesize_pseudo_events=True,
        pseudo_event_window_days=7,
        pseudo_event_commit_repo_limit=15,
        pseudo_event_item_repo_limit=10,
        timezone="UTC",
        log_level="INFO",
    )


@pytest.fixture
def memory_cache() -> ActivityCache:
    return ActivityCache(MemoryCacheStore(), clock=lambda: NOW)
