"""Typed failures raised by the lexer, the index store and the search engine."""

from __future__ import annotations

from pathlib import Path


class LookerError(Exception):
    """Base class for every failure surfaced to callers."""


class LexError(LookerError, ValueError):
    """Raised when source text cannot be split into C tokens."""

    def __init__(
        self,
        message: str,
        *,
        offset: int,
        line: int,
        column: int,
        path: str | None = None,
    ) -> None:
        self.message = message
        self.offset = offset
        self.line = line
        self.column = column
        self.path = path
        super().__init__(self._describe())

    def with_path(self, path: str) -> LexError:
        return LexError(self.message, offset=self.offset, line=self.line, column=self.column, path=path)

    def _describe(self) -> str:
        location = f"{self.line}:{self.column} (byte {self.offset})"
        if self.path:
            return f"{self.path}:{location}: {self.message}"
        return f"{location}: {self.message}"


class EmptyQueryError(LookerError, ValueError):
    """Raised when a query contains no tokens after lexing."""

    def __init__(self, query: str) -> None:
        self.query = query
        super().__init__(f"Query contains no C tokens: {query!r}")


class IndexMissingError(LookerError):
    """Raised when searching a root that has never been built."""

    def __init__(self, index_path: Path) -> None:
        self.index_path = index_path
        super().__init__(f"No index found at {index_path}; run 'looker build' first")


class IndexCorruptError(LookerError):
    """Raised when a persisted index fails structural validation."""

    def __init__(self, index_path: Path, detail: str) -> None:
        self.index_path = index_path
        self.detail = detail
        super().__init__(f"Index at {index_path} is corrupt ({detail}); rebuild it with 'looker build'")


class IndexIOError(LookerError, OSError):
    """Raised when the index artifact cannot be written or read."""

    def __init__(self, path: Path, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"I/O failure on {path}: {detail}")
