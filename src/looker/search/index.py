"""Read-only views over a built token index."""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from types import MappingProxyType
from typing import Protocol

from looker.search.models import FileEntry, IndexedFile, Posting, Token, TokenIdentity


class IndexReader(Protocol):
    """Operations the search engine and the builder need from an index."""

    @property
    def file_count(self) -> int:  # pragma: no cover - interface definition
        ...

    def files(self) -> Sequence[FileEntry]:  # pragma: no cover - interface definition
        ...

    def file_entry(self, file_id: int) -> FileEntry:  # pragma: no cover - interface definition
        ...

    def postings(self, identity: TokenIdentity) -> Sequence[Posting]:  # pragma: no cover - interface definition
        ...

    def identities(self) -> Iterator[TokenIdentity]:  # pragma: no cover - interface definition
        ...

    def token_window(
        self, file_id: int, start: int, stop: int
    ) -> Sequence[Token]:  # pragma: no cover - interface definition
        ...

    def source(self, file_id: int) -> bytes:  # pragma: no cover - interface definition
        ...


class CodeIndex:
    """Immutable in-memory index produced by the builder."""

    def __init__(self, files: Sequence[IndexedFile], postings: Mapping[TokenIdentity, Sequence[Posting]]) -> None:
        for expected_id, indexed in enumerate(files):
            if indexed.file_id != expected_id:
                raise ValueError(f"File ids must be dense and ordered; got {indexed.file_id} at {expected_id}")
        self._files = tuple(files)
        self._entries = tuple(indexed.entry for indexed in self._files)
        self._postings: Mapping[TokenIdentity, tuple[Posting, ...]] = MappingProxyType(
            {identity: tuple(posting_list) for identity, posting_list in postings.items()}
        )

    def __repr__(self) -> str:
        return f"CodeIndex(files={len(self._files)}, identities={len(self._postings)})"

    @property
    def file_count(self) -> int:
        return len(self._files)

    @property
    def token_count(self) -> int:
        return sum(indexed.token_count for indexed in self._files)

    @property
    def posting_map(self) -> Mapping[TokenIdentity, tuple[Posting, ...]]:
        return self._postings

    def indexed_files(self) -> tuple[IndexedFile, ...]:
        return self._files

    def indexed_file(self, file_id: int) -> IndexedFile:
        return self._files[file_id]

    def files(self) -> Sequence[FileEntry]:
        return self._entries

    def file_entry(self, file_id: int) -> FileEntry:
        return self._entries[file_id]

    def postings(self, identity: TokenIdentity) -> Sequence[Posting]:
        return self._postings.get(identity, ())

    def identities(self) -> Iterator[TokenIdentity]:
        return iter(sorted(self._postings, key=lambda identity: (identity[0].value, identity[1])))

    def token_window(self, file_id: int, start: int, stop: int) -> Sequence[Token]:
        return self._files[file_id].tokens[start:stop]

    def source(self, file_id: int) -> bytes:
        return self._files[file_id].source


def validate_index(index: IndexReader) -> list[str]:
    """Check that every posting points at a token with its identity.

    Returns a list of human-readable problems; empty when consistent.
    """
    problems: list[str] = []
    entries = index.files()
    expected_total = sum(entry.token_count for entry in entries)
    seen_total = 0

    for identity in index.identities():
        posting_list = index.postings(identity)
        seen_total += len(posting_list)
        previous: Posting | None = None
        for posting in posting_list:
            if previous is not None and not previous < posting:
                problems.append(f"Posting list for {identity[0].value} {identity[1]!r} is not strictly sorted")
                break
            previous = posting
            if not 0 <= posting.file_id < len(entries):
                problems.append(f"Posting references unknown file id {posting.file_id}")
                continue
            window = index.token_window(posting.file_id, posting.token_index, posting.token_index + 1)
            if posting.token_index < 0 or not window:
                problems.append(
                    f"Posting references missing token {posting.token_index} in {entries[posting.file_id].path}"
                )
                continue
            if window[0].identity != identity:
                problems.append(
                    f"Token {posting.token_index} in {entries[posting.file_id].path} "
                    f"is {window[0].text!r}, posting says {identity[1]!r}"
                )

    if seen_total != expected_total:
        problems.append(f"Posting map holds {seen_total} entries for {expected_total} tokens")
    return problems
