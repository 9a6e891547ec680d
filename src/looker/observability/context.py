"""Run context carried into structured log records."""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass, replace
from pathlib import Path
from uuid import uuid4


@dataclass(frozen=True)
class RunContext:
    """Identifiers joining a log line to its trace and the tree being indexed."""

    trace_id: str
    span_id: str
    root: str | None = None


_run_context: ContextVar[RunContext | None] = ContextVar("looker_run_context", default=None)


def current_context() -> RunContext:
    """Return the active context, starting a fresh trace when there is none."""
    ctx = _run_context.get()
    if ctx is None:
        ctx = RunContext(trace_id=uuid4().hex, span_id=uuid4().hex[:16])
        _run_context.set(ctx)
    return ctx


def bind_root(root: str | Path) -> RunContext:
    ctx = replace(current_context(), root=str(root))
    _run_context.set(ctx)
    return ctx


def bind_span(trace_id: str, span_id: str) -> RunContext:
    ctx = replace(current_context(), trace_id=trace_id, span_id=span_id)
    _run_context.set(ctx)
    return ctx


def reset_context() -> None:
    _run_context.set(None)
