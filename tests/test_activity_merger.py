"""Tests for activity merge and deduplication."""

from activity_tracker.services.activity_merger import (
    dedupe_by_id,
    merge_activity_sources,
    sort_by_recency,
)
from tests.conftest import days_ago, make_activity


def test_last_source_wins_on_id_collision() -> None:
    first = make_activity("42", "WatchEvent", repo="alice/old")
    second = make_activity("42", "WatchEvent", repo="alice/new")

    merged = merge_activity_sources([[first], [second]])

    assert len(merged) == 1
    assert merged[0].repo == "alice/new"


def test_overwritten_id_keeps_first_slot() -> None:
    a = make_activity("a", "WatchEvent")
    b = make_activity("b", "WatchEvent")
    a_again = make_activity("a", "ForkEvent")

    merged = dedupe_by_id([[a, b], [a_again]])

    assert list(merged) == ["a", "b"]
    assert merged["a"].type == "ForkEvent"


def test_merge_output_is_non_increasing_in_time() -> None:
    sources = [
        [make_activity("1", "WatchEvent", created_at=days_ago(3))],
        [
            make_activity("2", "WatchEvent", created_at=days_ago(1)),
            make_activity("3", "WatchEvent", created_at=days_ago(5)),
        ],
        [make_activity("4", "WatchEvent", created_at=days_ago(2))],
    ]

    merged = merge_activity_sources(sources)

    assert [a.id for a in merged] == ["2", "4", "1", "3"]
    assert all(x.timestamp >= y.timestamp for x, y in zip(merged, merged[1:], strict=False))


def test_equal_timestamps_keep_concatenation_order() -> None:
    same_time = days_ago(1)
    activities = [make_activity(str(i), "WatchEvent", created_at=same_time) for i in range(4)]

    assert [a.id for a in sort_by_recency(activities)] == ["0", "1", "2", "3"]


def test_merge_limit_caps_most_recent() -> None:
    activities = [make_activity(str(i), "WatchEvent", created_at=days_ago(i)) for i in range(5)]

    merged = merge_activity_sources([activities], limit=2)

    assert [a.id for a in merged] == ["0", "1"]


def test_merge_empty_sources() -> None:
    assert merge_activity_sources([]) == []
    assert merge_activity_sources([[], []], limit=10) == []
