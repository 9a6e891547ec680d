"""Prometheus metrics for index builds and searches."""

from __future__ import annotations

from contextlib import contextmanager
from pathlib import Path
import time
from typing import TYPE_CHECKING

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, write_to_textfile


if TYPE_CHECKING:
    from collections.abc import Generator


BUILD_LATENCY = Histogram(
    "looker_build_latency_seconds",
    "Index build latency in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

SEARCH_LATENCY = Histogram(
    "looker_search_latency_seconds",
    "Search query latency",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
)

FILES_INDEXED = Counter(
    "looker_files_indexed_total",
    "Files written to an index",
)

FILES_SKIPPED = Counter(
    "looker_files_skipped_total",
    "Files left out of an index",
    ["reason"],
)

SEARCH_ERRORS = Counter(
    "looker_search_errors_total",
    "Searches that failed before producing results",
    ["error_type"],
)

INDEX_FILE_COUNT = Gauge(
    "looker_index_file_count",
    "Files in the most recently built or opened index",
)


@contextmanager
def track_latency(histogram: Histogram, **labels: str) -> Generator[None, None, None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        target = histogram.labels(**labels) if labels else histogram
        target.observe(time.perf_counter() - start)


def write_metrics_file(path: str | Path, registry: CollectorRegistry = REGISTRY) -> Path:
    """Write the registry in text exposition format for a node_exporter textfile collector.

    The text goes to a temporary sibling first and is then renamed over ``path``.
    """
    target = Path(path)
    write_to_textfile(str(target), registry)
    return target
