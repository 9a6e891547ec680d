"""Command line front end: ``looker build``, ``looker search`` and ``looker audit``."""

from __future__ import annotations

import argparse
from collections.abc import Sequence
from importlib.metadata import PackageNotFoundError, version
import logging
from pathlib import Path
import sys

import orjson
from pydantic import ValidationError

from looker.config import Settings
from looker.domain.search import SearchHit, SearchResponse
from looker.observability.logging import configure_logging
from looker.observability.metrics import write_metrics_file
from looker.observability.tracing import configure_trace_exporter, init_tracing, shutdown_tracing
from looker.search.errors import LookerError
from looker.service_layer.services import (
    BuildReport,
    IndexAuditReport,
    audit_index,
    build_index,
    search_index,
)


logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NEEDS_REBUILD = 3


def _package_version() -> str:
    try:
        return version("looker")
    except PackageNotFoundError:
        return "unknown"


def _positive_int(value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"expected an integer, got {value!r}") from exc
    if parsed < 1:
        raise argparse.ArgumentTypeError("must be >= 1")
    return parsed


def build_argument_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="looker",
        description="Syntax-aware code search for C repositories",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {_package_version()}")
    parser.add_argument(
        "--log-level",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Log level (default: LOOKER_LOG_LEVEL or warning)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit JSON log lines on stderr",
    )
    parser.add_argument(
        "--metrics-file",
        type=Path,
        help="Write Prometheus metrics to this file when the command finishes (default: LOOKER_METRICS_FILE)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Operation", required=True)

    build_parser = subparsers.add_parser("build", help="Build an index for later searching")
    build_parser.add_argument("root", nargs="?", default=".", type=Path, help="Codebase root (default: .)")
    _add_common_options(build_parser)

    search_parser = subparsers.add_parser(
        "search",
        help="Search the existing index (fails if the index does not exist)",
    )
    search_parser.add_argument("query", help="C code fragment to look for, e.g. 'for (int i = 0;'")
    search_parser.add_argument("--root", default=Path("."), type=Path, help="Codebase root (default: .)")
    search_parser.add_argument(
        "-l",
        "--limit",
        type=_positive_int,
        help="Maximum number of hits to print (default: LOOKER_SEARCH_LIMIT or all)",
    )
    _add_common_options(search_parser)

    audit_parser = subparsers.add_parser(
        "audit",
        help="Validate the index and report files changed since it was built",
    )
    audit_parser.add_argument("root", nargs="?", default=".", type=Path, help="Codebase root (default: .)")
    _add_common_options(audit_parser)

    return parser


def _add_common_options(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument(
        "--index-dir",
        help="Index directory, relative to the root unless absolute (default: LOOKER_INDEX_DIR or .looker)",
    )
    subparser.add_argument("--json", action="store_true", help="Print machine-readable JSON")


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_argument_parser()
    args = parser.parse_args(argv)

    try:
        settings = Settings()
    except ValidationError as exc:
        sys.stderr.write(f"looker: invalid configuration: {exc}\n")
        return EXIT_FAILURE
    updates = {}
    if args.index_dir:
        updates["index_dir"] = args.index_dir
    if args.metrics_file:
        updates["metrics_file"] = str(args.metrics_file)
    if updates:
        settings = settings.model_copy(update=updates)

    configure_logging(
        level=args.log_level or settings.log_level,
        json_output=args.json_logs or settings.log_json,
    )
    provider = init_tracing(_package_version())
    configure_trace_exporter(provider, settings.otlp_endpoint, timeout_s=settings.otlp_timeout_s)

    try:
        return _run_command(args, settings)
    finally:
        shutdown_tracing(provider)
        if settings.metrics_file:
            _dump_metrics(settings.metrics_file)


def _run_command(args: argparse.Namespace, settings: Settings) -> int:
    try:
        if args.command == "build":
            report = build_index(args.root, settings=settings)
            _print_build_report(report, as_json=args.json)
            return EXIT_OK
        if args.command == "search":
            response = search_index(args.root, args.query, settings=settings, limit=args.limit)
            _print_search_response(response, as_json=args.json)
            return EXIT_OK
        audit = audit_index(args.root, settings=settings)
        _print_audit_report(audit, as_json=args.json)
        return EXIT_NEEDS_REBUILD if audit.needs_rebuild else EXIT_OK
    except LookerError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        sys.stderr.write(f"looker: {exc}\n")
        return EXIT_FAILURE


def _dump_metrics(path: str) -> None:
    try:
        write_metrics_file(path)
    except OSError as exc:
        logger.warning("Cannot write metrics to %s: %s", path, exc)


def _write_json(payload: object) -> None:
    sys.stdout.write(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode("utf-8") + "\n")


def _print_build_report(report: BuildReport, *, as_json: bool) -> None:
    if as_json:
        _write_json(report.to_dict())
        return
    sys.stdout.write(
        f"Indexed {report.files_indexed} files ({report.files_reused} unchanged, "
        f"{report.tokens_indexed} tokens) into {report.index_path} in {report.duration_s:.2f}s\n"
    )
    for item in report.skipped:
        sys.stdout.write(f"skipped {item.path}: {item.reason}: {item.message}\n")


def _print_search_response(response: SearchResponse, *, as_json: bool) -> None:
    if as_json:
        _write_json(response.model_dump())
        return
    for hit in response.results:
        sys.stdout.write(_format_hit(hit))
    if response.stats.truncated:
        sys.stdout.write(f"... {response.stats.matches - len(response.results)} more matches not shown\n")


def _format_hit(hit: SearchHit) -> str:
    if hit.start_line == hit.end_line:
        header = f"{hit.path}:{hit.start_line}"
    else:
        header = f"{hit.path}:{hit.start_line}-{hit.end_line}"
    width = len(str(hit.end_line))
    lines = [header]
    lines.extend(f"{number:>{width}}: {text}" for number, text in hit.numbered_lines())
    return "\n".join(lines) + "\n\n"


def _print_audit_report(report: IndexAuditReport, *, as_json: bool) -> None:
    if as_json:
        _write_json(report.to_dict())
        return
    sys.stdout.write(
        f"{report.index_path}: status={report.status} files={report.files_indexed} "
        f"tokens={report.tokens_indexed} created={report.created_at or '-'}\n"
    )
    for problem in report.problems:
        sys.stdout.write(f"problem {problem}\n")
    for label, paths in (("changed", report.stale), ("missing", report.missing), ("new", report.new)):
        for path in paths:
            sys.stdout.write(f"{label} {path}\n")


if __name__ == "__main__":
    sys.exit(main())
