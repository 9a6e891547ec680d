"""Tracing, metrics and logging for looker runs."""

from looker.observability.context import RunContext, bind_root, current_context
from looker.observability.logging import JsonFormatter, configure_logging
from looker.observability.metrics import (
    BUILD_LATENCY,
    FILES_INDEXED,
    FILES_SKIPPED,
    INDEX_FILE_COUNT,
    SEARCH_ERRORS,
    SEARCH_LATENCY,
    track_latency,
    write_metrics_file,
)
from looker.observability.tracing import (
    configure_trace_exporter,
    get_tracer,
    init_tracing,
    shutdown_tracing,
    traced,
)


__all__ = [
    "BUILD_LATENCY",
    "FILES_INDEXED",
    "FILES_SKIPPED",
    "INDEX_FILE_COUNT",
    "SEARCH_ERRORS",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "RunContext",
    "bind_root",
    "configure_logging",
    "configure_trace_exporter",
    "current_context",
    "get_tracer",
    "init_tracing",
    "shutdown_tracing",
    "traced",
    "track_latency",
    "write_metrics_file",
]
