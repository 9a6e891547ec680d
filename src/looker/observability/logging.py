"""Log handler setup for the looker command line.

Logs always go to stderr so that search results on stdout stay pipeable.
``--json-logs`` (or ``LOOKER_LOG_JSON``) switches to one orjson object per
record, tagged with the trace ids and the root being worked on.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
from pathlib import Path
import sys
from typing import IO, Any

import orjson

from looker.observability.context import current_context


PLAIN_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Queries and paths attached as extras can be arbitrarily long.
MAX_FIELD_CHARS = 500

_RESERVED_KEYS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", (), None).__dict__.keys() | {"message", "asctime"}
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        ctx = current_context()
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
            "trace_id": ctx.trace_id,
            "span_id": ctx.span_id,
        }
        if ctx.root is not None:
            entry["root"] = ctx.root
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _RESERVED_KEYS or key.startswith("_"):
                continue
            if isinstance(value, str) and len(value) > MAX_FIELD_CHARS:
                value = value[:MAX_FIELD_CHARS] + "..."
            entry[key] = value

        return orjson.dumps(entry, default=_encode_extra).decode("utf-8")


def _encode_extra(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    return str(value)


def configure_logging(level: str = "warning", *, json_output: bool = False, stream: IO[str] | None = None) -> None:
    """Replace the root logger's handlers with a single stderr handler."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JsonFormatter() if json_output else logging.Formatter(PLAIN_FORMAT))
    root.addHandler(handler)
