"""Build activity report use case.

Runs one aggregation cycle and derives the summary (and optionally the
extended statistics) from the narrowed activity list.
"""

from __future__ import annotations

from datetime import datetime

import pytz

from activity_tracker.adapters.activity_cache import ActivityCache
from activity_tracker.config.logging_config import get_logger
from activity_tracker.config.settings import Settings
from activity_tracker.domain.models import ActivityReport, FilterOptions
from activity_tracker.domain.protocols import GitHubClientProtocol
from activity_tracker.observability.tracing import correlation_scope, timed_stage
from activity_tracker.services.activity_statistics import (
    compute_extended_stats,
    summarize_activities,
)
from activity_tracker.services.relevance_filter import (
    apply_filter_options,
    unique_activity_types,
    unique_repositories,
)
from activity_tracker.use_cases.aggregate_activities import aggregate_activities_use_case

logger = get_logger(__name__)


def build_activity_report_use_case(
    client: GitHubClientProtocol,
    cache: ActivityCache,
    settings: Settings,
    *,
    filters: FilterOptions | None = None,
    extended: bool = False,
    now: datetime | None = None,
    use_cache: bool = True,
    correlation_id: str | None = None,
) -> ActivityReport:
    """Aggregate activities and compute the report statistics.

    1. Aggregate activities (cached per configuration)
    2. Narrow them with the filter options (language filter uses the
       repository metadata fetched during aggregation)
    3. Summarize the trailing ``summary_window_days`` window
    4. Compute extended statistics when requested

    Args:
        client: GitHub client
        cache: Activity cache
        settings: Application settings
        filters: Narrowing options (None = no narrowing)
        extended: Whether to compute extended statistics
        now: Reference instant (defaults to current UTC time)
        use_cache: Whether to read and write the aggregation cache
        correlation_id: Optional correlation id for log entries

    Returns:
        ActivityReport with activities, summary and optional extended stats

    Example:
        >>> report = build_activity_report_use_case(client, cache, settings, extended=True)
        >>> report.summary.total_activities <= len(report.activities)
        True
    """
    current = now or datetime.now(tz=pytz.UTC)
    tz = settings.tzinfo

    with correlation_scope(correlation_id) as bound_correlation_id:
        aggregation = aggregate_activities_use_case(
            client,
            cache,
            settings,
            now=current,
            use_cache=use_cache,
            correlation_id=bound_correlation_id,
        )

        activities = aggregation.activities
        if filters is not None:
            languages = {repo.full_name: repo.language for repo in aggregation.repositories}
            activities = apply_filter_options(
                activities,
                filters,
                now=current,
                repository_languages=languages,
                tz=tz,
            )

        with timed_stage("summarize", activities=len(activities)):
            summary = summarize_activities(
                activities,
                settings.summary_window_days,
                now=current,
                tz=tz,
                recent_limit=settings.recent_activities_limit,
            )

        extended_stats = None
        if extended:
            with timed_stage("extended_stats", activities=len(activities)):
                extended_stats = compute_extended_stats(
                    activities,
                    repositories=aggregation.repositories,
                    pull_requests=aggregation.pull_requests,
                    user_login=aggregation.username,
                    now=current,
                    tz=tz,
                )

        logger.info(
            "activity_report_built",
            correlation_id=bound_correlation_id,
            username=aggregation.username,
            activities=len(activities),
            window_activities=summary.total_activities,
            extended=extended,
            from_cache=aggregation.from_cache,
        )

        return ActivityReport(
            username=aggregation.username,
            activities=activities,
            summary=summary,
            extended=extended_stats,
            available_repositories=unique_repositories(aggregation.activities),
            available_types=unique_activity_types(aggregation.activities),
            source_errors=aggregation.source_errors,
            from_cache=aggregation.from_cache,
            generated_at=current,
        )
