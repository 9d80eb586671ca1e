"""Event normalization service.

Maps one raw upstream event to one canonical ``Activity``:
- Dispatch on ``EventKind`` (unknown tags fall back to a generic record)
- Per-type extraction of action, description, URL and details
- Missing or malformed payload fields degrade to defaults, never to errors
"""

import re
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from activity_tracker.config.logging_config import get_logger
from activity_tracker.domain.aggregation_constants import (
    BRANCH_REF_PREFIX,
    COMMENT_PREVIEW_LENGTH,
)
from activity_tracker.domain.models import Activity, EventKind, RawEvent

logger = get_logger(__name__)

MENTION_PATTERN = re.compile(r"(?<![\w@])@([A-Za-z0-9](?:[A-Za-z0-9-]*[A-Za-z0-9])?)")

# (action, description, url, details)
_Extracted = tuple[str, str, str | None, dict[str, Any]]


def _as_dict(value: Any) -> dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> list[Any]:
    return value if isinstance(value, list) else []


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _login(user: Any) -> str | None:
    login = _as_dict(user).get("login")
    return login if isinstance(login, str) and login else None


def _number_label(number: Any) -> str:
    return str(number) if number is not None else "?"


def _label_names(item: Mapping[str, Any]) -> list[str]:
    names: list[str] = []
    for label in _as_list(item.get("labels")):
        if isinstance(label, dict) and isinstance(label.get("name"), str):
            names.append(label["name"])
        elif isinstance(label, str):
            names.append(label)
    return names


def branch_from_ref(ref: Any) -> str:
    """Strip the ``refs/heads/`` prefix from a git ref.

    Example:
        >>> branch_from_ref("refs/heads/main")
        'main'
    """
    ref_str = _as_str(ref)
    if ref_str.startswith(BRANCH_REF_PREFIX):
        return ref_str[len(BRANCH_REF_PREFIX) :]
    return ref_str


def extract_mentions(text: Any) -> list[str]:
    """Return logins @-mentioned in text, in order of first appearance.

    Example:
        >>> extract_mentions("cc @alice and @bob, thanks @alice")
        ['alice', 'bob']
    """
    seen: dict[str, None] = {}
    for match in MENTION_PATTERN.finditer(_as_str(text)):
        seen.setdefault(match.group(1), None)
    return list(seen)


def fallback_action(event_type: str) -> str:
    """Generic verb for unrecognized types: tag minus ``Event``, lowercased.

    Example:
        >>> fallback_action("GollumEvent")
        'gollum'
    """
    action = event_type.removesuffix("Event").lower()
    return action or event_type.lower() or "unknown"


def _payload_action(raw: RawEvent) -> str:
    action = _as_str(raw.payload.get("action")).strip()
    return action or fallback_action(raw.type)


def commit_line_stats(commits: Iterable[Mapping[str, Any]]) -> dict[str, int]:
    """Sum per-commit ``stats`` blocks where upstream provides them.

    ``files_changed`` takes the commit's ``stats.total``. Non-integer
    values count as zero.

    Example:
        >>> commit_line_stats([{"stats": {"additions": 5, "deletions": 2, "total": 7}}])
        {'additions': 5, 'deletions': 2, 'files_changed': 7}
    """
    totals = {"additions": 0, "deletions": 0, "files_changed": 0}
    for commit in commits:
        stats = _as_dict(commit.get("stats"))
        for field, source in (
            ("additions", "additions"),
            ("deletions", "deletions"),
            ("files_changed", "total"),
        ):
            value = stats.get(source)
            if isinstance(value, int) and not isinstance(value, bool) and value > 0:
                totals[field] += value
    return totals


def _push(raw: RawEvent) -> _Extracted:
    payload = raw.payload
    commits = [c for c in _as_list(payload.get("commits")) if isinstance(c, dict)]
    size = payload.get("size")
    if commits:
        commit_count = len(commits)
    elif isinstance(size, int) and not isinstance(size, bool):
        commit_count = max(size, 0)
    else:
        commit_count = 0
    branch = branch_from_ref(payload.get("ref"))

    return (
        "pushed",
        f"Pushed {commit_count} commit(s) to {branch}",
        None,
        {
            "branch": branch,
            "commits": commit_count,
            "messages": [_as_str(c.get("message")) for c in commits],
            "shas": [c["sha"] for c in commits if isinstance(c.get("sha"), str)],
            **commit_line_stats(commits),
        },
    )


def _pull_request(raw: RawEvent) -> _Extracted:
    action = _payload_action(raw)
    pr = _as_dict(raw.payload.get("pull_request"))
    number = pr.get("number", raw.payload.get("number"))
    title = _as_str(pr.get("title"))

    return (
        action,
        f"{action} PR #{_number_label(number)}: {title}",
        pr.get("html_url"),
        {
            "pr_number": number,
            "pr_title": title,
            "pr_state": pr.get("state"),
            "merged": bool(pr.get("merged")),
            "pr_id": pr.get("id"),
            "labels": _label_names(pr),
            "author": _login(pr.get("user")),
            "created_at": pr.get("created_at"),
        },
    )


def _issues(raw: RawEvent) -> _Extracted:
    action = _payload_action(raw)
    issue = _as_dict(raw.payload.get("issue"))
    number = issue.get("number")
    title = _as_str(issue.get("title"))

    return (
        action,
        f"{action} issue #{_number_label(number)}: {title}",
        issue.get("html_url"),
        {
            "issue_number": number,
            "issue_title": title,
            "issue_state": issue.get("state"),
            "issue_id": issue.get("id"),
            "labels": _label_names(issue),
            "author": _login(issue.get("user")),
            "created_at": issue.get("created_at"),
        },
    )


def _issue_comment(raw: RawEvent) -> _Extracted:
    issue = _as_dict(raw.payload.get("issue"))
    comment = _as_dict(raw.payload.get("comment"))
    number = issue.get("number")
    title = _as_str(issue.get("title"))
    body = _as_str(comment.get("body"))

    return (
        "commented",
        f"Commented on issue #{_number_label(number)}: {title}",
        comment.get("html_url"),
        {
            "issue_number": number,
            "issue_title": title,
            "comment_preview": body[:COMMENT_PREVIEW_LENGTH],
            "mentions": extract_mentions(body),
        },
    )


def _create(raw: RawEvent) -> _Extracted:
    ref_type = _as_str(raw.payload.get("ref_type"))
    ref = raw.payload.get("ref")
    ref_label = ref if isinstance(ref, str) else ""
    return (
        "created",
        f"Created {ref_type} {ref_label}".rstrip(),
        None,
        {"ref_type": ref_type, "ref": ref},
    )


def _delete(raw: RawEvent) -> _Extracted:
    ref_type = _as_str(raw.payload.get("ref_type"))
    ref = raw.payload.get("ref")
    ref_label = ref if isinstance(ref, str) else ""
    return (
        "deleted",
        f"Deleted {ref_type} {ref_label}".rstrip(),
        None,
        {"ref_type": ref_type, "ref": ref},
    )


def _fork(raw: RawEvent) -> _Extracted:
    forkee = _as_dict(raw.payload.get("forkee"))
    fork_name = _as_str(forkee.get("full_name"))
    return (
        "forked",
        f"Forked repository to {fork_name}",
        forkee.get("html_url"),
        {"fork_name": fork_name},
    )


def _watch(raw: RawEvent) -> _Extracted:
    return "starred", "Starred repository", None, {}


def _release(raw: RawEvent) -> _Extracted:
    release = _as_dict(raw.payload.get("release"))
    release_action = _as_str(raw.payload.get("action")) or "published"
    tag = _as_str(release.get("tag_name"))
    name = _as_str(release.get("name"))
    return (
        "released",
        f"{release_action} release {tag}: {name}",
        release.get("html_url"),
        {"tag": tag, "name": name, "release_action": release_action},
    )


def _pull_request_review(raw: RawEvent) -> _Extracted:
    pr = _as_dict(raw.payload.get("pull_request"))
    review = _as_dict(raw.payload.get("review"))
    number = pr.get("number")
    title = _as_str(pr.get("title"))
    return (
        "reviewed",
        f"Reviewed PR #{_number_label(number)}: {title}",
        review.get("html_url"),
        {
            "pr_number": number,
            "pr_title": title,
            "review_state": review.get("state"),
        },
    )


def _pull_request_review_comment(raw: RawEvent) -> _Extracted:
    pr = _as_dict(raw.payload.get("pull_request"))
    comment = _as_dict(raw.payload.get("comment"))
    number = pr.get("number")
    return (
        "review_commented",
        f"Commented on PR #{_number_label(number)} review",
        comment.get("html_url"),
        {
            "pr_number": number,
            "pr_title": _as_str(pr.get("title")),
            "mentions": extract_mentions(comment.get("body")),
        },
    )


def _unknown(raw: RawEvent) -> _Extracted:
    action = fallback_action(raw.type)
    return action, f"{action} on {raw.repo.name}", None, {}


_EXTRACTORS: dict[EventKind, Callable[[RawEvent], _Extracted]] = {
    EventKind.PUSH: _push,
    EventKind.PULL_REQUEST: _pull_request,
    EventKind.ISSUES: _issues,
    EventKind.ISSUE_COMMENT: _issue_comment,
    EventKind.CREATE: _create,
    EventKind.DELETE: _delete,
    EventKind.FORK: _fork,
    EventKind.WATCH: _watch,
    EventKind.RELEASE: _release,
    EventKind.PULL_REQUEST_REVIEW: _pull_request_review,
    EventKind.PULL_REQUEST_REVIEW_COMMENT: _pull_request_review_comment,
    EventKind.UNKNOWN: _unknown,
}


def normalize_event(raw: RawEvent) -> Activity:
    """Normalize one raw event into a canonical activity.

    Pure function: the same raw event always yields an equal activity.

    Args:
        raw: Validated raw event

    Returns:
        Canonical activity

    Example:
        >>> activity = normalize_event(push_event)
        >>> activity.action, activity.details["branch"]
        ('pushed', 'main')
    """
    kind = EventKind.from_tag(raw.type)
    action, description, url, details = _EXTRACTORS[kind](raw)

    return Activity(
        id=raw.id,
        type=raw.type,
        kind=kind,
        action=action,
        repo=raw.repo.name,
        actor=raw.actor.login,
        timestamp=raw.created_at,
        description=description,
        url=url if isinstance(url, str) else None,
        details=details,
        is_public=raw.public,
    )


def normalize_events(raws: Iterable[RawEvent]) -> list[Activity]:
    """Normalize a sequence of raw events, preserving order."""
    return [normalize_event(raw) for raw in raws]


def parse_raw_events(
    records: Iterable[Mapping[str, Any]], *, source: str = "unknown"
) -> list[RawEvent]:
    """Validate raw upstream records, skipping malformed ones.

    Records lacking an id, type, actor, repository or a parseable timestamp
    cannot become activities; they are logged and dropped so that a single bad
    record never aborts a fetch cycle.

    Args:
        records: Raw event dictionaries as returned by the API client
        source: Source label for log context

    Returns:
        Validated raw events in input order
    """
    events: list[RawEvent] = []
    skipped = 0
    for record in records:
        try:
            events.append(RawEvent.model_validate(record))
        except PydanticValidationError as exc:
            skipped += 1
            logger.warning(
                "raw_event_invalid",
                source=source,
                event_id=_as_dict(record).get("id") if isinstance(record, dict) else None,
                error_count=exc.error_count(),
            )

    if skipped:
        logger.info(
            "raw_events_skipped", source=source, skipped=skipped, kept=len(events)
        )
    return events
