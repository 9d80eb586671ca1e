"""Use case package exports."""

from activity_tracker.use_cases.aggregate_activities import aggregate_activities_use_case
from activity_tracker.use_cases.build_activity_report import build_activity_report_use_case
from activity_tracker.use_cases.watch_activities import ActivityWatcher

__all__ = [
    "ActivityWatcher",
    "aggregate_activities_use_case",
    "build_activity_report_use_case",
]
