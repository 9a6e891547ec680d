"""Service layer - use case orchestration.

Wires discovery, the index builder, the SQLite store and the search engine
into the three operations exposed to callers: build, search and audit. Each
operation runs inside a tracing span and feeds the Prometheus metrics.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import logging
from pathlib import Path
import time

from looker.config import Settings
from looker.discovery import discover_source_files, read_source_files
from looker.domain.search import SearchResponse
from looker.observability.context import bind_root
from looker.observability.metrics import (
    BUILD_LATENCY,
    FILES_INDEXED,
    FILES_SKIPPED,
    INDEX_FILE_COUNT,
    SEARCH_ERRORS,
    SEARCH_LATENCY,
    track_latency,
)
from looker.observability.tracing import traced
from looker.search.builder import IndexBuilder
from looker.search.engine import SearchEngine
from looker.search.errors import IndexCorruptError, IndexIOError, IndexMissingError, LookerError
from looker.search.index import validate_index
from looker.search.models import FileFingerprint, SkippedFile, SourceFile
from looker.search.query import compile_query
from looker.search.sqlite_storage import SqliteCodeIndex, SqliteIndexStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildReport:
    """Structured result of one index build."""

    root: Path
    index_path: Path
    files_indexed: int
    files_reused: int
    tokens_indexed: int
    skipped: tuple[SkippedFile, ...]
    duration_s: float

    @property
    def status(self) -> str:
        return "partial" if self.skipped else "ok"

    def to_dict(self) -> dict[str, object]:
        return {
            "root": str(self.root),
            "index_path": str(self.index_path),
            "files_indexed": self.files_indexed,
            "files_reused": self.files_reused,
            "tokens_indexed": self.tokens_indexed,
            "skipped": [item.to_dict() for item in self.skipped],
            "duration_s": self.duration_s,
            "status": self.status,
        }


@dataclass(frozen=True)
class IndexAuditReport:
    """Consistency and freshness of a persisted index against the files on disk."""

    root: Path
    index_path: Path
    files_indexed: int
    tokens_indexed: int
    created_at: str | None
    problems: tuple[str, ...]
    stale: tuple[str, ...]
    missing: tuple[str, ...]
    new: tuple[str, ...]
    skipped: tuple[SkippedFile, ...]
    duration_s: float

    @property
    def needs_rebuild(self) -> bool:
        return bool(self.problems or self.stale or self.missing or self.new)

    @property
    def status(self) -> str:
        if self.problems:
            return "corrupt"
        if self.needs_rebuild:
            return "stale"
        return "ok"

    def to_dict(self) -> dict[str, object]:
        return {
            "root": str(self.root),
            "index_path": str(self.index_path),
            "files_indexed": self.files_indexed,
            "tokens_indexed": self.tokens_indexed,
            "created_at": self.created_at,
            "problems": list(self.problems),
            "stale": list(self.stale),
            "missing": list(self.missing),
            "new": list(self.new),
            "skipped": [item.to_dict() for item in self.skipped],
            "duration_s": self.duration_s,
            "status": self.status,
        }


def build_index(
    root: str | Path,
    *,
    settings: Settings | None = None,
    sources: Iterable[SourceFile] | None = None,
) -> BuildReport:
    """Tokenize every source file under ``root`` and install a fresh index.

    Args:
        root: Codebase root; relative paths in the index are taken against it
        settings: Configuration, read from the environment when omitted
        sources: Pre-read files to index instead of walking ``root``

    Returns:
        BuildReport with counts and the files that were skipped

    Raises:
        IndexIOError: the root cannot be walked or the artifact cannot be written
    """
    settings = settings or Settings()
    root_path = Path(root)
    index_dir = settings.resolve_index_dir(root_path)
    store = SqliteIndexStore(index_dir)
    bind_root(root_path)

    with traced("build", root=str(root_path)) as span, track_latency(BUILD_LATENCY):
        started = time.perf_counter()
        read_skipped: list[SkippedFile] = []
        if sources is None:
            if not root_path.is_dir():
                raise IndexIOError(root_path, "root is not a directory")
            paths = discover_source_files(
                root_path,
                extensions=settings.get_extensions(),
                skip_dirs=settings.get_skip_dirs(),
                index_dir=index_dir,
            )
            sources, read_skipped = read_source_files(root_path, paths, max_file_bytes=settings.max_file_bytes)

        previous = _open_previous(store)
        try:
            result = IndexBuilder(max_workers=settings.resolved_max_workers(), previous=previous).build(sources)
        finally:
            if previous is not None:
                previous.close()

        skipped = tuple(sorted([*read_skipped, *result.skipped], key=lambda item: item.path))
        index_path = store.save(result.index, root=root_path, skipped=skipped)

        FILES_INDEXED.inc(result.files_indexed)
        for item in skipped:
            FILES_SKIPPED.labels(reason=item.reason).inc()
        INDEX_FILE_COUNT.set(result.files_indexed)

        report = BuildReport(
            root=root_path,
            index_path=index_path,
            files_indexed=result.files_indexed,
            files_reused=result.files_reused,
            tokens_indexed=result.index.token_count,
            skipped=skipped,
            duration_s=time.perf_counter() - started,
        )
        span.set_attribute("looker.files_indexed", report.files_indexed)
        span.set_attribute("looker.files_skipped", len(report.skipped))
        span.set_attribute("looker.tokens_indexed", report.tokens_indexed)

    logger.info(
        "Indexed %d files (%d reused, %d skipped, %d tokens) under %s in %.2fs",
        report.files_indexed,
        report.files_reused,
        len(report.skipped),
        report.tokens_indexed,
        root_path,
        report.duration_s,
    )
    return report


def search_index(
    root: str | Path,
    query: str,
    *,
    settings: Settings | None = None,
    limit: int | None = None,
) -> SearchResponse:
    """Find every occurrence of ``query``'s token sequence in the index for ``root``.

    The query is compiled before the index is opened, so lexically invalid or
    empty queries fail without touching the artifact.

    ``limit`` overrides ``settings.search_limit``; in both, ``0`` means unlimited.

    Raises:
        ValueError: ``limit`` is negative
        LexError: the query is not lexically valid C
        EmptyQueryError: the query holds no tokens
        IndexMissingError: nothing has been built for ``root``
        IndexCorruptError: the artifact fails validation
        IndexIOError: the artifact exists but cannot be read
    """
    if limit is not None and limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")
    settings = settings or Settings()
    root_path = Path(root)
    store = SqliteIndexStore(settings.resolve_index_dir(root_path))
    effective_limit = limit if limit is not None else settings.resolved_search_limit()
    bind_root(root_path)

    with traced("search", root=str(root_path), query=query) as span, track_latency(SEARCH_LATENCY):
        try:
            compiled = compile_query(query)
            with store.open() as index:
                INDEX_FILE_COUNT.set(index.file_count)
                response = SearchEngine(index).search(compiled, limit=effective_limit)
        except LookerError as exc:
            SEARCH_ERRORS.labels(error_type=type(exc).__name__).inc()
            raise
        span.set_attribute("looker.matches", response.stats.matches)
        span.set_attribute("looker.files_matched", response.stats.files_matched)

    return response


def audit_index(root: str | Path, *, settings: Settings | None = None) -> IndexAuditReport:
    """Validate the persisted index and compare its fingerprints with the files on disk.

    Raises:
        IndexMissingError: nothing has been built for ``root``
        IndexCorruptError: the artifact cannot be opened
    """
    settings = settings or Settings()
    root_path = Path(root)
    index_dir = settings.resolve_index_dir(root_path)
    store = SqliteIndexStore(index_dir)
    bind_root(root_path)

    with traced("audit", root=str(root_path)) as span:
        started = time.perf_counter()
        with store.open() as index:
            problems = tuple(validate_index(index))
            stored = {entry.path: entry.fingerprint for entry in index.files()}
            previously_skipped = index.skipped_files()
            files_indexed = index.file_count
            tokens_indexed = index.token_count
            created_at = index.created_at

        on_disk = _current_fingerprints(root_path, settings, index_dir)
        skipped_paths = {item.path for item in previously_skipped}
        stale = tuple(
            path
            for path, fingerprint in on_disk.items()
            if path in stored and not fingerprint.is_equivalent(stored[path])
        )
        missing = tuple(path for path in stored if path not in on_disk)
        new = tuple(path for path in on_disk if path not in stored and path not in skipped_paths)

        report = IndexAuditReport(
            root=root_path,
            index_path=store.path,
            files_indexed=files_indexed,
            tokens_indexed=tokens_indexed,
            created_at=created_at,
            problems=problems,
            stale=stale,
            missing=missing,
            new=new,
            skipped=previously_skipped,
            duration_s=time.perf_counter() - started,
        )
        span.set_attribute("looker.audit_status", report.status)

    if problems:
        logger.warning("Index at %s has %d consistency problems", store.path, len(problems))
    elif report.needs_rebuild:
        logger.info(
            "Index at %s is stale: %d changed, %d missing, %d new",
            store.path,
            len(stale),
            len(missing),
            len(new),
        )
    return report


def _open_previous(store: SqliteIndexStore) -> SqliteCodeIndex | None:
    """Open the installed artifact as a token reuse source, if it is usable."""
    try:
        return store.open()
    except IndexMissingError:
        return None
    except IndexCorruptError as exc:
        logger.warning("Ignoring unusable previous index: %s", exc)
        return None


def _current_fingerprints(root: Path, settings: Settings, index_dir: Path) -> dict[str, FileFingerprint]:
    if not root.is_dir():
        return {}
    paths = discover_source_files(
        root,
        extensions=settings.get_extensions(),
        skip_dirs=settings.get_skip_dirs(),
        index_dir=index_dir,
    )
    fingerprints: dict[str, FileFingerprint] = {}
    for path in paths:
        relative = path.relative_to(root).as_posix()
        try:
            with path.open("rb") as handle:
                content = handle.read()
        except OSError as exc:
            logger.warning("Cannot fingerprint %s: %s", relative, exc)
            continue
        fingerprints[relative] = FileFingerprint.from_content(content)
    return fingerprints
