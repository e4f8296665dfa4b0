"""Observability helpers."""

from sleepfeed.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_clock_event,
    record_job_result,
    record_cache_error,
    record_feed_size,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_clock_event",
    "record_job_result",
    "record_cache_error",
    "record_feed_size",
]
