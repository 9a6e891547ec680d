"""Build a token index from a set of C source files.

Each file is lexed independently on a worker thread into its own token stream
and local posting partition. A single collector then assigns file ids in sorted
path order and merges the partitions into the global posting map, so no lock is
taken while lexing.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
from pathlib import PurePath

from looker.search.errors import IndexCorruptError, IndexIOError, LexError
from looker.search.index import CodeIndex, IndexReader
from looker.search.lexer import tokenize
from looker.search.models import (
    FileEntry,
    FileFingerprint,
    IndexedFile,
    Posting,
    SkippedFile,
    SourceFile,
    Token,
    TokenIdentity,
)


logger = logging.getLogger(__name__)

SKIP_LEX_ERROR = "lex_error"
SKIP_IO_ERROR = "io_error"
SKIP_TOO_LARGE = "too_large"


@dataclass(frozen=True)
class BuildResult:
    """Outcome of an in-memory index build."""

    index: CodeIndex
    files_reused: int
    skipped: tuple[SkippedFile, ...]

    @property
    def files_indexed(self) -> int:
        return self.index.file_count


@dataclass(frozen=True)
class _LexOutcome:
    path: str
    fingerprint: FileFingerprint
    source: bytes
    tokens: tuple[Token, ...] = ()
    partition: Mapping[TokenIdentity, list[int]] | None = None
    reused: bool = False
    error: LexError | None = None


class IndexBuilder:
    """Turn source files into an immutable ``CodeIndex``."""

    def __init__(self, *, max_workers: int | None = None, previous: IndexReader | None = None) -> None:
        self.max_workers = max_workers
        self._previous = previous
        self._previous_by_path: dict[str, FileEntry] = (
            {entry.path: entry for entry in previous.files()} if previous is not None else {}
        )

    def build(self, sources: Iterable[SourceFile]) -> BuildResult:
        ordered = _order_sources(sources)

        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="looker-lex") as executor:
            outcomes = list(executor.map(self._lex_source, ordered))

        files: list[IndexedFile] = []
        partitions: list[Mapping[TokenIdentity, list[int]]] = []
        skipped: list[SkippedFile] = []
        files_reused = 0

        for outcome in outcomes:
            if outcome.error is not None:
                logger.warning("Skipping %s: %s", outcome.path, outcome.error)
                skipped.append(
                    SkippedFile(
                        path=outcome.path,
                        reason=SKIP_LEX_ERROR,
                        message=outcome.error.message,
                        offset=outcome.error.offset,
                    )
                )
                continue

            files.append(
                IndexedFile(
                    file_id=len(files),
                    path=outcome.path,
                    fingerprint=outcome.fingerprint,
                    tokens=outcome.tokens,
                    source=outcome.source,
                )
            )
            partitions.append(outcome.partition or {})
            files_reused += int(outcome.reused)

        index = CodeIndex(files, _merge_partitions(partitions))
        logger.info(
            "Built index: %d files, %d tokens, %d reused, %d skipped",
            index.file_count,
            index.token_count,
            files_reused,
            len(skipped),
        )
        return BuildResult(index=index, files_reused=files_reused, skipped=tuple(skipped))

    def _lex_source(self, source: SourceFile) -> _LexOutcome:
        fingerprint = FileFingerprint.from_content(source.content, mtime_ns=source.mtime_ns)

        tokens = self._reuse_tokens(source.path, fingerprint)
        reused = tokens is not None
        if tokens is None:
            try:
                tokens = tokenize(source.content)
            except LexError as exc:
                return _LexOutcome(
                    path=source.path,
                    fingerprint=fingerprint,
                    source=source.content,
                    error=exc.with_path(source.path),
                )

        partition: defaultdict[TokenIdentity, list[int]] = defaultdict(list)
        for token_index, token in enumerate(tokens):
            partition[token.identity].append(token_index)

        return _LexOutcome(
            path=source.path,
            fingerprint=fingerprint,
            source=source.content,
            tokens=tokens,
            partition=partition,
            reused=reused,
        )

    def _reuse_tokens(self, path: str, fingerprint: FileFingerprint) -> tuple[Token, ...] | None:
        entry = self._previous_by_path.get(path)
        if entry is None or self._previous is None or not fingerprint.is_equivalent(entry.fingerprint):
            return None
        try:
            tokens = tuple(self._previous.token_window(entry.file_id, 0, entry.token_count))
        except (IndexCorruptError, IndexIOError) as exc:
            logger.warning("Cannot reuse stored tokens for %s, re-lexing: %s", path, exc)
            return None
        if len(tokens) != entry.token_count:
            logger.debug("Stored stream for %s is short; re-lexing", path)
            return None
        return tokens


def normalize_path(path: str | PurePath) -> str:
    """Return the POSIX form used as a file's identity in the index."""
    return PurePath(path).as_posix()


def _order_sources(sources: Iterable[SourceFile]) -> list[SourceFile]:
    by_path: dict[str, SourceFile] = {}
    for source in sources:
        path = normalize_path(source.path)
        if path in by_path:
            raise ValueError(f"Duplicate source path: {path}")
        by_path[path] = SourceFile(path=path, content=source.content, mtime_ns=source.mtime_ns)
    return [by_path[path] for path in sorted(by_path)]


def _merge_partitions(partitions: list[Mapping[TokenIdentity, list[int]]]) -> dict[TokenIdentity, list[Posting]]:
    postings: defaultdict[TokenIdentity, list[Posting]] = defaultdict(list)
    for file_id, partition in enumerate(partitions):
        for identity, token_indexes in partition.items():
            postings[identity].extend(Posting(file_id, token_index) for token_index in token_indexes)
    for posting_list in postings.values():
        posting_list.sort()
    return dict(postings)
