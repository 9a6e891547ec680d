"""Token and index data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import hashlib
from typing import Any


class TokenKind(str, Enum):
    """Lexical classes emitted by the C lexer."""

    IDENTIFIER = "identifier"
    KEYWORD = "keyword"
    NUMBER = "number"
    STRING = "string"
    CHAR = "char"
    PUNCTUATOR = "punctuator"


TokenIdentity = tuple[TokenKind, str]


@dataclass(frozen=True, slots=True)
class Position:
    """A location in a source buffer.

    ``offset`` is a 0-based byte offset, ``line`` and ``column`` are 1-based
    (columns count bytes).
    """

    offset: int
    line: int
    column: int


@dataclass(frozen=True, slots=True)
class Token:
    """A classified source slice.

    ``end`` points just past the last byte of the token, so ``end.offset`` is
    exclusive and ``source[start.offset:end.offset]`` is the raw token text.
    """

    kind: TokenKind
    text: str
    start: Position
    end: Position

    @property
    def identity(self) -> TokenIdentity:
        return (self.kind, self.text)

    @property
    def last_line(self) -> int:
        """Line holding the last byte of the token."""
        # No emitted token ends with a newline, so ``end`` stays on the last byte's line.
        return self.end.line

    def matches(self, other: Token) -> bool:
        return self.kind is other.kind and self.text == other.text


@dataclass(frozen=True, slots=True)
class FileFingerprint:
    """Cheap staleness signal for an indexed file."""

    size: int
    sha256: str
    mtime_ns: int | None = None

    @classmethod
    def from_content(cls, content: bytes, *, mtime_ns: int | None = None) -> FileFingerprint:
        return cls(size=len(content), sha256=hashlib.sha256(content).hexdigest(), mtime_ns=mtime_ns)

    def is_equivalent(self, other: FileFingerprint | None) -> bool:
        if other is None:
            return False
        return self.size == other.size and self.sha256 == other.sha256


@dataclass(frozen=True, slots=True)
class SourceFile:
    """Raw input handed to the index builder."""

    path: str
    content: bytes
    mtime_ns: int | None = None


@dataclass(frozen=True, slots=True)
class FileEntry:
    """File table row: identity and fingerprint without the token stream."""

    file_id: int
    path: str
    fingerprint: FileFingerprint
    token_count: int


@dataclass(frozen=True, slots=True)
class IndexedFile:
    """One file's token stream plus the bytes it was lexed from."""

    file_id: int
    path: str
    fingerprint: FileFingerprint
    tokens: tuple[Token, ...] = field(repr=False)
    source: bytes = field(repr=False)

    @property
    def token_count(self) -> int:
        return len(self.tokens)

    @property
    def entry(self) -> FileEntry:
        return FileEntry(
            file_id=self.file_id,
            path=self.path,
            fingerprint=self.fingerprint,
            token_count=len(self.tokens),
        )


@dataclass(frozen=True, slots=True)
class SkippedFile:
    """A file left out of the index, with the reason."""

    path: str
    reason: str
    message: str
    offset: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "reason": self.reason, "message": self.message, "offset": self.offset}


@dataclass(frozen=True, slots=True, order=True)
class Posting:
    """A position where a token identity starts."""

    file_id: int
    token_index: int


@dataclass(frozen=True, slots=True)
class Match:
    """A confirmed run of tokens equal to the query."""

    file_id: int
    start_index: int
    end_index: int
    start_line: int
    end_line: int

    @property
    def token_count(self) -> int:
        return self.end_index - self.start_index + 1
