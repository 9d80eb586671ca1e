"""Activity merge and deduplication service.

Rules:
1. Sources are consumed in a fixed order: user events, received events,
   organization events, tracked repository events, pseudo-events
2. Identity is the activity ``id``; on collision the LAST occurrence wins
3. Output is sorted by timestamp, newest first; equal timestamps keep
   concatenation order (an overwritten id keeps the slot of its first occurrence)
"""

from collections import OrderedDict
from collections.abc import Iterable, Sequence

from activity_tracker.domain.models import Activity


def dedupe_by_id(sources: Iterable[Iterable[Activity]]) -> "OrderedDict[str, Activity]":
    """Combine sources into an ordered mapping keyed by activity id.

    Args:
        sources: Activity sequences in merge order

    Returns:
        Ordered mapping; later sources overwrite earlier values in place

    Example:
        >>> merged = dedupe_by_id([[a42_v1], [a42_v2]])
        >>> merged["42"] is a42_v2
        True
    """
    merged: OrderedDict[str, Activity] = OrderedDict()
    for source in sources:
        for activity in source:
            merged[activity.id] = activity
    return merged


def sort_by_recency(activities: Iterable[Activity]) -> list[Activity]:
    """Sort newest first; ``sorted`` is stable so ties keep input order."""
    return sorted(activities, key=lambda activity: activity.timestamp, reverse=True)


def merge_activity_sources(
    sources: Sequence[Iterable[Activity]], limit: int | None = None
) -> list[Activity]:
    """Merge activity sources into one deduplicated, recency-ordered stream.

    Args:
        sources: Activity sequences in merge order (see module rules)
        limit: Maximum activities returned (None = unlimited)

    Returns:
        Deduplicated activities, non-increasing in timestamp

    Example:
        >>> merged = merge_activity_sources([user_events, pseudo_events], limit=500)
        >>> all(a.timestamp >= b.timestamp for a, b in zip(merged, merged[1:]))
        True
    """
    ordered = sort_by_recency(dedupe_by_id(sources).values())
    if limit is not None:
        return ordered[: max(limit, 0)]
    return ordered
