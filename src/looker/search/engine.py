"""Token-sequence search over a built index.

Candidates come from the posting list of the query's first token, so a
search touches only files and positions where the query could start. Each
candidate is then verified token by token against the file's stream.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from itertools import groupby
import logging
from operator import attrgetter
import time

from looker.domain.search import SearchHit, SearchResponse, SearchStats
from looker.search.index import IndexReader
from looker.search.models import Match, Posting, Token
from looker.search.query import Query, compile_query


logger = logging.getLogger(__name__)


class MatchSequence:
    """Lazy, finite, restartable sequence of matches ordered by file then token index.

    Every iteration re-runs verification against the (immutable) index.
    """

    def __init__(self, index: IndexReader, query: Query) -> None:
        self._index = index
        self._query = query
        self._candidates: Sequence[Posting] | None = None

    @property
    def query(self) -> Query:
        return self._query

    @property
    def candidates(self) -> Sequence[Posting]:
        if self._candidates is None:
            self._candidates = self._index.postings(self._query.first_identity)
        return self._candidates

    def __iter__(self) -> Iterator[Match]:
        return _verify_candidates(self._index, self._query, self.candidates)


class SearchEngine:
    """Match queries against an index and render hits from stored source."""

    def __init__(self, index: IndexReader) -> None:
        self.index = index

    def find_matches(self, query: Query | str) -> MatchSequence:
        if isinstance(query, str):
            query = compile_query(query)
        return MatchSequence(self.index, query)

    def render(self, match: Match) -> SearchHit:
        return _render(self.index, match, self.index.source(match.file_id))

    def search(self, query: Query | str, *, limit: int | None = None) -> SearchResponse:
        """Find and render every match.

        ``limit`` caps rendered hits, never counting; ``None`` or ``0`` renders
        every match, as ``LOOKER_SEARCH_LIMIT=0`` does.
        """
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        if limit == 0:
            limit = None
        started = time.perf_counter()
        matches = self.find_matches(query)

        results: list[SearchHit] = []
        total = 0
        files_matched = 0
        source_file_id: int | None = None
        source = b""
        for match in matches:
            total += 1
            if match.file_id != source_file_id:
                files_matched += 1
                source_file_id = match.file_id
                source = b""
            if limit is not None and len(results) >= limit:
                continue
            if not source:
                source = self.index.source(match.file_id)
            results.append(_render(self.index, match, source))

        elapsed = time.perf_counter() - started
        logger.debug(
            "Query %r: %d candidates, %d matches in %d files (%.4fs)",
            matches.query.text,
            len(matches.candidates),
            total,
            files_matched,
            elapsed,
        )
        return SearchResponse(
            query=matches.query.text,
            query_tokens=matches.query.token_texts,
            results=results,
            stats=SearchStats(
                candidates=len(matches.candidates),
                matches=total,
                files_matched=files_matched,
                truncated=total > len(results),
                search_time=elapsed,
            ),
        )


def _verify_candidates(index: IndexReader, query: Query, candidates: Sequence[Posting]) -> Iterator[Match]:
    width = len(query)
    for file_id, group in groupby(candidates, key=attrgetter("file_id")):
        token_count = index.file_entry(file_id).token_count
        starts = [posting.token_index for posting in group if posting.token_index + width <= token_count]
        for window_start, window_stop, window_starts in _candidate_windows(starts, width):
            window = index.token_window(file_id, window_start, window_stop)
            for start in window_starts:
                offset = start - window_start
                matched = window[offset : offset + width]
                if _tokens_equal(matched, query.tokens):
                    yield Match(
                        file_id=file_id,
                        start_index=start,
                        end_index=start + width - 1,
                        start_line=min(token.start.line for token in matched),
                        end_line=max(token.last_line for token in matched),
                    )


def _candidate_windows(starts: list[int], width: int) -> Iterator[tuple[int, int, list[int]]]:
    """Group sorted start positions whose token ranges overlap into shared fetch windows."""
    window_starts: list[int] = []
    window_stop = -1
    for start in starts:
        if window_starts and start > window_stop:
            yield window_starts[0], window_stop, window_starts
            window_starts = []
        window_starts.append(start)
        window_stop = start + width
    if window_starts:
        yield window_starts[0], window_stop, window_starts


def _tokens_equal(candidate: Sequence[Token], pattern: Sequence[Token]) -> bool:
    if len(candidate) != len(pattern):
        return False
    return all(token.matches(expected) for token, expected in zip(candidate, pattern, strict=True))


def _render(index: IndexReader, match: Match, source: bytes) -> SearchHit:
    tokens = index.token_window(match.file_id, match.start_index, match.end_index + 1)
    first, last = tokens[0], tokens[-1]

    line_start = source.rfind(b"\n", 0, first.start.offset) + 1
    line_end = source.find(b"\n", last.end.offset)
    if line_end == -1:
        line_end = len(source)
    if line_end > line_start and source[line_end - 1 : line_end] == b"\r":
        line_end -= 1

    highlight_start = len(source[line_start : first.start.offset].decode("utf-8"))
    highlight_end = highlight_start + len(source[first.start.offset : last.end.offset].decode("utf-8"))
    return SearchHit(
        path=index.file_entry(match.file_id).path,
        file_id=match.file_id,
        start_line=match.start_line,
        end_line=match.end_line,
        start_token=match.start_index,
        end_token=match.end_index,
        text=source[line_start:line_end].decode("utf-8"),
        highlight_start=highlight_start,
        highlight_end=highlight_end,
    )
