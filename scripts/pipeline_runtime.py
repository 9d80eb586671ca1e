from __future__ import annotations

"""Common runtime helpers for activity tracker scripts."""

import signal
import threading
from dataclasses import dataclass
from types import FrameType

from activity_tracker.config.logging_config import get_logger, setup_logging
from activity_tracker.config.settings import Settings

logger = get_logger(__name__)


@dataclass
class _ShutdownController:
    """Mutable shutdown state shared across signal handlers and the watch loop."""

    _event: threading.Event

    def is_set(self) -> bool:
        return self._event.is_set()

    def set(self) -> None:
        self._event.set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)

    def request(self, signum: int, frame: FrameType | None) -> None:
        sig_name = signal.Signals(signum).name
        logger.info("shutdown_signal_received", signal=sig_name)
        self._event.set()


def create_shutdown_controller() -> _ShutdownController:
    return _ShutdownController(threading.Event())


def install_signal_handlers(controller: _ShutdownController) -> None:
    """Register SIGTERM/SIGINT handlers for graceful shutdown."""

    def _handler(signum: int, frame: FrameType | None) -> None:
        controller.request(signum, frame)

    signal.signal(signal.SIGTERM, _handler)
    signal.signal(signal.SIGINT, _handler)


def initialize_logging(settings: Settings, *, json_logs: bool = False) -> None:
    """Initialize structlog-based logging for scripts."""

    setup_logging(log_level=settings.log_level, json_logs=json_logs)
    logger.info("logging_initialized", level=settings.log_level, json_logs=json_logs)


__all__ = [
    "create_shutdown_controller",
    "initialize_logging",
    "install_signal_handlers",
]
