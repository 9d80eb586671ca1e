from __future__ import annotations

"""Build the GitHub activity report once, or continuously in watch mode."""

import argparse
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from scripts import pipeline_runtime
from activity_tracker.adapters.cache_factory import create_cache
from activity_tracker.adapters.github_client import GitHubClient
from activity_tracker.config.logging_config import get_logger
from activity_tracker.config.settings import Settings, get_settings
from activity_tracker.domain.exceptions import (
    ActivityTrackerError,
    ConfigurationError,
    RateLimitError,
)
from activity_tracker.domain.models import ActivityReport, DateRange, FilterOptions
from activity_tracker.use_cases import ActivityWatcher, build_activity_report_use_case

logger = get_logger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_RATE_LIMITED = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Track GitHub activity for a user")
    parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="History depth in days (overrides days_back)",
    )
    parser.add_argument(
        "--extended",
        action="store_true",
        help="Include extended statistics in the report",
    )
    parser.add_argument(
        "--type",
        dest="types",
        action="append",
        default=[],
        help="Keep only this event type (repeatable, e.g. PushEvent)",
    )
    parser.add_argument(
        "--repo",
        dest="repos",
        action="append",
        default=[],
        help="Keep only this repository (repeatable, owner/name)",
    )
    parser.add_argument("--search", default="", help="Free text search")
    parser.add_argument(
        "--date-range",
        choices=[item.value for item in DateRange],
        default=DateRange.ALL.value,
        help="Predefined date range",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Bypass the activity cache",
    )
    parser.add_argument(
        "--clear-cache",
        action="store_true",
        help="Remove every cached entry before running",
    )
    parser.add_argument(
        "--watch",
        action="store_true",
        help="Rebuild the report every interval until interrupted",
    )
    parser.add_argument(
        "--interval-seconds",
        type=float,
        default=None,
        help="Watch interval (defaults to watch_interval_seconds)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    args = parser.parse_args(argv)
    if args.days is not None and args.days <= 0:
        parser.error("--days must be greater than 0")
    if args.interval_seconds is not None and args.interval_seconds <= 0:
        parser.error("--interval-seconds must be greater than 0")
    return args


def build_filters(args: argparse.Namespace) -> FilterOptions | None:
    """Filter options from CLI flags, None when no narrowing was requested."""
    if not (args.types or args.repos or args.search or args.date_range != DateRange.ALL.value):
        return None
    return FilterOptions(
        date_range=DateRange(args.date_range),
        activity_types=set(args.types),
        repositories=set(args.repos),
        search_query=args.search,
    )


def print_report(report: ActivityReport) -> None:
    json.dump(report.model_dump(mode="json"), sys.stdout, indent=2)
    sys.stdout.write("\n")
    sys.stdout.flush()


def log_rate_limit(client: GitHubClient) -> None:
    """Log the remaining core request budget; failures are logged, not raised."""
    try:
        bucket = client.get_rate_limit()
    except ActivityTrackerError as exc:
        logger.warning("github_rate_limit_unavailable", error=str(exc))
        return
    logger.info(
        "github_rate_limit",
        limit=bucket.get("limit"),
        remaining=bucket.get("remaining"),
        reset=bucket.get("reset"),
    )


def _load_settings(args: argparse.Namespace) -> Settings:
    settings = get_settings()
    if args.days is not None:
        settings = settings.model_copy(update={"days_back": args.days})
    return settings


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        settings = _load_settings(args)
    except ValueError as exc:
        logger.error("settings_invalid", error=str(exc))
        return EXIT_FAILURE

    pipeline_runtime.initialize_logging(settings, json_logs=args.json_logs)

    client = GitHubClient(
        settings.github_token_value,
        username=settings.github_username,
        base_url=settings.github_api_url,
        per_page=settings.per_page,
        max_pages=settings.max_pages,
        timeout_seconds=settings.request_timeout_seconds,
        max_retries=settings.max_retries,
    )
    try:
        cache = create_cache(settings)
    except ConfigurationError as exc:
        logger.error("cache_configuration_invalid", error=str(exc))
        return EXIT_FAILURE

    if args.clear_cache:
        cache.clear()

    filters = build_filters(args)

    def _build() -> ActivityReport:
        return build_activity_report_use_case(
            client,
            cache,
            settings,
            filters=filters,
            extended=args.extended,
            use_cache=not args.no_cache,
        )

    def _on_watch_report(report: ActivityReport) -> None:
        print_report(report)
        log_rate_limit(client)

    if args.watch:
        controller = pipeline_runtime.create_shutdown_controller()
        pipeline_runtime.install_signal_handlers(controller)
        watcher = ActivityWatcher(
            _build,
            args.interval_seconds or settings.watch_interval_seconds,
            _on_watch_report,
            stop_signal=controller,
        )
        watcher.run()
        return EXIT_OK

    try:
        report = _build()
    except ConfigurationError as exc:
        logger.error("activity_tracker_misconfigured", error=str(exc))
        return EXIT_FAILURE
    except RateLimitError as exc:
        logger.error(
            "activity_tracker_rate_limited",
            retry_after_seconds=exc.retry_after,
            reset_at=exc.reset_at.isoformat() if exc.reset_at else None,
        )
        return EXIT_RATE_LIMITED
    except ActivityTrackerError as exc:
        logger.error("activity_tracker_failed", error=str(exc))
        return EXIT_FAILURE

    print_report(report)
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
