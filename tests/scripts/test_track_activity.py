from __future__ import annotations

import json
from datetime import datetime
from types import SimpleNamespace

import pytest
import pytz

from activity_tracker.domain.exceptions import ConfigurationError, RateLimitError
from activity_tracker.domain.models import ActivityReport, ActivitySummary, DateRange
from tests.conftest import StubLogger


def _module():
    return __import__("scripts.track_activity", fromlist=["main"])


def _settings() -> SimpleNamespace:
    return SimpleNamespace(
        log_level="INFO",
        github_token_value=None,
        github_username="alice",
        github_api_url="https://api.github.test",
        per_page=100,
        max_pages=3,
        request_timeout_seconds=30.0,
        max_retries=3,
        watch_interval_seconds=300,
    )


def _patch_runtime(mocker, module) -> SimpleNamespace:
    settings = _settings()
    mocker.patch.object(module, "get_settings", return_value=settings)
    mocker.patch.object(module, "GitHubClient")
    cache = mocker.Mock()
    mocker.patch.object(module, "create_cache", return_value=cache)
    mocker.patch.object(module.pipeline_runtime, "initialize_logging")
    mocker.patch.object(
        module.pipeline_runtime, "create_shutdown_controller", return_value=mocker.Mock()
    )
    mocker.patch.object(module.pipeline_runtime, "install_signal_handlers")
    return SimpleNamespace(settings=settings, cache=cache)


def _report() -> ActivityReport:
    now = datetime(2024, 1, 10, tzinfo=pytz.UTC)
    return ActivityReport(
        username="alice", summary=ActivitySummary(generated_at=now), generated_at=now
    )


def test_prints_report_json(mocker, capsys: pytest.CaptureFixture[str]) -> None:
    module = _module()
    runtime = _patch_runtime(mocker, module)
    build = mocker.patch.object(
        module, "build_activity_report_use_case", return_value=_report()
    )

    exit_code = module.main(["--extended", "--type", "PushEvent", "--no-cache", "--clear-cache"])

    assert exit_code == 0
    runtime.cache.clear.assert_called_once_with()
    kwargs = build.call_args.kwargs
    assert kwargs["extended"] is True
    assert kwargs["use_cache"] is False
    assert kwargs["filters"].activity_types == {"PushEvent"}
    assert json.loads(capsys.readouterr().out)["username"] == "alice"


def test_rate_limited_exit_code(mocker) -> None:
    module = _module()
    _patch_runtime(mocker, module)
    mocker.patch.object(
        module,
        "build_activity_report_use_case",
        side_effect=RateLimitError(retry_after=60),
    )

    assert module.main([]) == 2


def test_configuration_error_exit_code(mocker) -> None:
    module = _module()
    _patch_runtime(mocker, module)
    mocker.patch.object(
        module,
        "build_activity_report_use_case",
        side_effect=ConfigurationError("GITHUB_USERNAME or GITHUB_TOKEN must be set"),
    )

    assert module.main([]) == 1


def test_watch_mode_runs_watcher(mocker) -> None:
    module = _module()
    _patch_runtime(mocker, module)
    watcher = mocker.Mock()
    watcher_cls = mocker.patch.object(module, "ActivityWatcher", return_value=watcher)

    exit_code = module.main(["--watch", "--interval-seconds", "5"])

    assert exit_code == 0
    assert watcher_cls.call_args.args[1] == 5.0
    watcher.run.assert_called_once_with()


def test_build_filters_none_without_narrowing() -> None:
    module = _module()

    assert module.build_filters(module.parse_args([])) is None
    filters = module.build_filters(module.parse_args(["--date-range", "7d", "--repo", "a/b"]))
    assert filters.date_range is DateRange.LAST_7_DAYS
    assert filters.repositories == {"a/b"}


def test_invalid_days_rejected() -> None:
    module = _module()

    with pytest.raises(SystemExit):
        module.parse_args(["--days", "0"])


def test_watch_report_logs_rate_limit(mocker, capsys: pytest.CaptureFixture[str]) -> None:
    module = _module()
    _patch_runtime(mocker, module)
    client = module.GitHubClient.return_value
    client.get_rate_limit.return_value = {"limit": 5000, "remaining": 4321, "reset": 1}
    watcher_cls = mocker.patch.object(module, "ActivityWatcher", return_value=mocker.Mock())
    stub_logger = StubLogger()
    mocker.patch.object(module, "logger", stub_logger)

    module.main(["--watch"])
    on_report = watcher_cls.call_args.args[2]
    on_report(_report())

    assert json.loads(capsys.readouterr().out)["username"] == "alice"
    client.get_rate_limit.assert_called_once_with()
    assert stub_logger.info_calls == [
        ("github_rate_limit", {"limit": 5000, "remaining": 4321, "reset": 1})
    ]


def test_rate_limit_lookup_failure_is_logged(mocker) -> None:
    module = _module()
    client = mocker.Mock()
    client.get_rate_limit.side_effect = RateLimitError(retry_after=5)
    stub_logger = StubLogger()
    mocker.patch.object(module, "logger", stub_logger)

    module.log_rate_limit(client)

    assert [event for event, _ in stub_logger.warning_calls] == ["github_rate_limit_unavailable"]
