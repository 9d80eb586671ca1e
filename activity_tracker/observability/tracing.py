"""Correlation identifiers and stage timing for pipeline cycles."""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import uuid4

from activity_tracker.config.logging_config import bind_context, get_logger, unbind_context

CORRELATION_ID_KEY = "correlation_id"

logger = get_logger(__name__)


@contextmanager
def correlation_scope(existing_id: str | None = None) -> Iterator[str]:
    """Bind a correlation identifier to every log entry of one cycle."""

    correlation_id = existing_id or str(uuid4())
    bind_context(**{CORRELATION_ID_KEY: correlation_id})
    try:
        yield correlation_id
    finally:
        unbind_context(CORRELATION_ID_KEY)


@contextmanager
def timed_stage(stage: str, **fields: object) -> Iterator[None]:
    """Log the wall-clock duration of a pipeline stage on exit.

    Example:
        >>> with timed_stage("fetch_sources", sources=4):
        ...     fetch()
    """
    started = time.perf_counter()
    try:
        yield
    finally:
        logger.debug(
            "pipeline_stage_finished",
            stage=stage,
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
            **fields,
        )


__all__ = ["CORRELATION_ID_KEY", "correlation_scope", "timed_stage"]
