"""Compile raw query strings into token patterns."""

from __future__ import annotations

from dataclasses import dataclass

from looker.search.errors import EmptyQueryError, LexError
from looker.search.lexer import tokenize
from looker.search.models import Token, TokenIdentity


QUERY_SOURCE_NAME = "<query>"


@dataclass(frozen=True, slots=True)
class Query:
    """A non-empty token sequence to look for."""

    text: str
    tokens: tuple[Token, ...]

    def __post_init__(self) -> None:
        if not self.tokens:
            raise EmptyQueryError(self.text)

    def __len__(self) -> int:
        return len(self.tokens)

    @property
    def first_identity(self) -> TokenIdentity:
        return self.tokens[0].identity

    @property
    def identities(self) -> tuple[TokenIdentity, ...]:
        return tuple(token.identity for token in self.tokens)

    @property
    def token_texts(self) -> list[str]:
        return [token.text for token in self.tokens]


def compile_query(text: str) -> Query:
    """Tokenize ``text`` with the C lexer.

    Raises:
        LexError: the query is not lexically valid C.
        EmptyQueryError: the query holds only whitespace and comments.
    """
    try:
        tokens = tokenize(text)
    except LexError as exc:
        raise exc.with_path(QUERY_SOURCE_NAME) from exc
    return Query(text=text, tokens=tokens)
