"""Watch mode: rebuild the activity report on a fixed interval."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime
from typing import Protocol, TypeVar

import pytz

from activity_tracker.config.logging_config import get_logger
from activity_tracker.domain.exceptions import RateLimitError

logger = get_logger(__name__)

ReportT = TypeVar("ReportT")


class StopSignal(Protocol):
    def is_set(self) -> bool: ...

    def set(self) -> None: ...

    def wait(self, timeout: float | None = None) -> bool: ...


def rate_limit_wait_seconds(
    error: RateLimitError, interval_seconds: float, now: datetime | None = None
) -> float:
    """Seconds to wait after a rate-limit error, capped at one interval.

    ``retry_after`` wins over ``reset_at``; with neither the full interval is
    used. The result is at least one second (bounded by the interval).
    """
    if error.retry_after is not None:
        wait = float(error.retry_after)
    elif error.reset_at is not None:
        current = now or datetime.now(tz=pytz.UTC)
        wait = (error.reset_at - current).total_seconds()
    else:
        wait = interval_seconds
    return min(max(wait, 1.0), interval_seconds)


class ActivityWatcher:
    """Run a report cycle every ``interval_seconds`` until stopped.

    A failing cycle is logged and the loop continues. ``stop()`` ends the loop
    at the next wait; a cycle already running is not interrupted.

    Example:
        >>> watcher = ActivityWatcher(build_report, 300, print_report)
        >>> watcher.run()  # until SIGINT / watcher.stop()
    """

    def __init__(
        self,
        run_cycle: Callable[[], ReportT],
        interval_seconds: float,
        on_report: Callable[[ReportT], object],
        *,
        stop_signal: StopSignal | None = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be greater than 0")
        self._run_cycle = run_cycle
        self._interval = float(interval_seconds)
        self._on_report = on_report
        self._stop = stop_signal or threading.Event()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Request the loop to end after the current cycle."""
        self._stop.set()

    def run(self, max_cycles: int | None = None) -> int:
        """Run cycles until stopped or ``max_cycles`` is reached.

        Args:
            max_cycles: Optional cap on executed cycles (None = unbounded)

        Returns:
            Number of cycles executed (successful or not)
        """
        logger.info("watch_loop_started", interval_seconds=self._interval)
        cycles = 0
        while not self._stop.is_set():
            cycles += 1
            wait_seconds = self._interval
            try:
                report = self._run_cycle()
            except RateLimitError as exc:
                wait_seconds = rate_limit_wait_seconds(exc, self._interval)
                logger.warning(
                    "watch_cycle_rate_limited",
                    cycle=cycles,
                    retry_after_seconds=exc.retry_after,
                    wait_seconds=wait_seconds,
                )
            except Exception:  # noqa: BLE001
                logger.exception("watch_cycle_failed", cycle=cycles)
            else:
                self._on_report(report)

            if max_cycles is not None and cycles >= max_cycles:
                break
            self._stop.wait(wait_seconds)

        logger.info("watch_loop_stopped", cycles=cycles)
        return cycles
