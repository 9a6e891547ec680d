"""OpenTelemetry spans around index builds, searches and audits."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import Status, StatusCode

from looker.observability.context import bind_span


if TYPE_CHECKING:
    from collections.abc import Iterator

    from opentelemetry.trace import Span, Tracer

logger = logging.getLogger(__name__)

SPAN_NAMESPACE = "looker"

_tracer_holder: dict[str, Tracer | None] = {"tracer": None}


def init_tracing(version: str | None = None) -> TracerProvider:
    """Create the tracer provider used by every looker span."""
    attributes = {"service.name": SPAN_NAMESPACE}
    if version:
        attributes["service.version"] = version
    provider = TracerProvider(resource=Resource.create(attributes))
    _tracer_holder["tracer"] = provider.get_tracer(__name__)
    logger.debug("Tracing initialized (version=%s)", version or "unknown")
    return provider


def configure_trace_exporter(provider: TracerProvider, endpoint: str | None, *, timeout_s: float = 10.0) -> bool:
    """Ship spans from ``provider`` to an OTLP/HTTP collector at ``endpoint``.

    Returns False when no endpoint is configured or the exporter cannot be created;
    the run continues without export in both cases.
    """
    if not endpoint:
        return False
    try:
        exporter = OTLPSpanExporter(endpoint=endpoint, timeout=timeout_s)
    except Exception as exc:
        logger.error("Failed to configure OTLP exporter for %s: %s", endpoint, exc, exc_info=True)
        return False
    provider.add_span_processor(BatchSpanProcessor(exporter))
    logger.info("OTLP trace export enabled to %s", endpoint)
    return True


def shutdown_tracing(provider: TracerProvider) -> None:
    """Flush pending spans and detach the cached tracer from ``provider``."""
    provider.shutdown()
    _tracer_holder["tracer"] = None


def get_tracer() -> Tracer:
    tracer = _tracer_holder["tracer"]
    if tracer is None:
        tracer = _tracer_holder["tracer"] = trace.get_tracer(__name__)
    return tracer


@contextmanager
def traced(operation: str, **attributes: str | int | float | bool) -> Iterator[Span]:
    """Run the block inside a ``looker.<operation>`` span.

    Keyword attributes are recorded under the ``looker.`` namespace and the
    span's ids are bound into the run context for log correlation. An
    exception leaving the block marks the span failed and propagates.
    """
    with get_tracer().start_as_current_span(
        f"{SPAN_NAMESPACE}.{operation}", record_exception=False, set_status_on_exception=False
    ) as span:
        for key, value in attributes.items():
            span.set_attribute(f"{SPAN_NAMESPACE}.{key}", value)

        span_context = span.get_span_context()
        if span_context.is_valid:
            bind_span(format(span_context.trace_id, "032x"), format(span_context.span_id, "016x"))

        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise
