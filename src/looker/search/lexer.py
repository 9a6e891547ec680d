"""C lexer producing position-tagged token streams.

The lexer works on raw bytes so token offsets are byte offsets into the file.
Comments, whitespace and backslash-newline splices are consumed but never
emitted. Every other byte must belong to a token; anything else is a
``LexError`` for the whole buffer.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterator
import re

from looker.search.errors import LexError
from looker.search.models import Position, Token, TokenKind


C_KEYWORDS = frozenset(
    {
        "auto",
        "break",
        "case",
        "char",
        "const",
        "continue",
        "default",
        "do",
        "double",
        "else",
        "enum",
        "extern",
        "float",
        "for",
        "goto",
        "if",
        "inline",
        "int",
        "long",
        "register",
        "restrict",
        "return",
        "short",
        "signed",
        "sizeof",
        "static",
        "struct",
        "switch",
        "typedef",
        "union",
        "unsigned",
        "void",
        "volatile",
        "while",
        "_Alignas",
        "_Alignof",
        "_Atomic",
        "_Bool",
        "_Complex",
        "_Generic",
        "_Imaginary",
        "_Noreturn",
        "_Static_assert",
        "_Thread_local",
    }
)

C_PUNCTUATORS = (
    "%:%:",
    "...",
    "<<=",
    ">>=",
    "->",
    "++",
    "--",
    "<<",
    ">>",
    "<=",
    ">=",
    "==",
    "!=",
    "&&",
    "||",
    "*=",
    "/=",
    "%=",
    "+=",
    "-=",
    "&=",
    "^=",
    "|=",
    "##",
    "<:",
    ":>",
    "<%",
    "%>",
    "%:",
    "[",
    "]",
    "(",
    ")",
    "{",
    "}",
    ".",
    "&",
    "*",
    "+",
    "-",
    "~",
    "!",
    "/",
    "%",
    "<",
    ">",
    "^",
    "|",
    "?",
    ":",
    ";",
    "=",
    ",",
    "#",
)

_INCLUDE_DIRECTIVES = frozenset({"include", "include_next", "import"})
_HASH_PUNCTUATORS = frozenset({"#", "%:"})

_PUNCTUATOR_PATTERN = b"|".join(
    re.escape(punct.encode("ascii")) for punct in sorted(C_PUNCTUATORS, key=len, reverse=True)
)

# Alternatives are tried in order; each group is already maximal at its position.
_TOKEN_PATTERN = re.compile(
    rb"""
    (?P<space>(?:[ \t\f\v\r\n]|\\\r?\n)+)
    |(?P<line_comment>//(?:[^\n\\]|\\\r\n|\\.|\\\Z)*)
    |(?P<block_comment>/\*.*?\*/)
    |(?P<string>(?:u8|[uUL])?"(?:[^"\\\n]|\\\r\n|\\.)*")
    |(?P<char>(?:u8|[uUL])?'(?:[^'\\\n]|\\\r\n|\\.)+')
    |(?P<number>\.?[0-9](?:[eEpP][+-]|[0-9A-Za-z_.])*)
    |(?P<word>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<punctuator>"""
    + _PUNCTUATOR_PATTERN
    + rb""")
    """,
    re.VERBOSE | re.DOTALL,
)

_HEADER_NAME_PATTERN = re.compile(rb"<[^>\n]+>")
_STRING_OPEN_PATTERN = re.compile(rb"(?:u8|[uUL])?\"")
_CHAR_OPEN_PATTERN = re.compile(rb"(?:u8|[uUL])?'")

_SKIPPED_GROUPS = frozenset({"space", "line_comment", "block_comment"})
_KIND_BY_GROUP = {
    "string": TokenKind.STRING,
    "char": TokenKind.CHAR,
    "number": TokenKind.NUMBER,
    "punctuator": TokenKind.PUNCTUATOR,
}


def tokenize(source: bytes | str) -> tuple[Token, ...]:
    """Lex ``source`` into a complete token stream."""
    return tuple(iter_tokens(source))


def iter_tokens(source: bytes | str) -> Iterator[Token]:
    """Yield tokens lazily; raises ``LexError`` at the first malformed construct."""
    data = _encode(source) if isinstance(source, str) else bytes(source)
    _check_utf8(data)

    length = len(data)
    pos = 0
    line = 1
    line_start = 0
    recent: deque[Token] = deque(maxlen=3)

    while pos < length:
        header = _match_header_name(data, pos, line, recent)
        if header is not None:
            end = header.end()
            group = "header"
        else:
            match = _TOKEN_PATTERN.match(data, pos)
            # A "/*" that reaches the punctuator group has no closing "*/".
            if match is None or (match.lastgroup == "punctuator" and data.startswith(b"/*", pos)):
                raise _diagnose(data, pos, line, line_start)
            end = match.end()
            group = match.lastgroup

        start = Position(pos, line, pos - line_start + 1)
        newlines = data.count(b"\n", pos, end)
        if newlines:
            line += newlines
            line_start = data.rfind(b"\n", pos, end) + 1

        if group not in _SKIPPED_GROUPS:
            text = data[pos:end].decode("utf-8")
            token = Token(
                kind=_classify(group, text),
                text=text,
                start=start,
                end=Position(end, line, end - line_start + 1),
            )
            recent.append(token)
            yield token

        pos = end


def _classify(group: str | None, text: str) -> TokenKind:
    if group == "word":
        return TokenKind.KEYWORD if text in C_KEYWORDS else TokenKind.IDENTIFIER
    if group == "header":
        return TokenKind.STRING
    return _KIND_BY_GROUP[group]


def _match_header_name(data: bytes, pos: int, line: int, recent: deque[Token]) -> re.Match[bytes] | None:
    """Match ``<path.h>`` when it directly follows ``# include`` on the same line."""
    if data[pos : pos + 1] != b"<" or len(recent) < 2:
        return None
    directive, hash_token = recent[-1], recent[-2]
    if directive.kind is not TokenKind.IDENTIFIER or directive.text not in _INCLUDE_DIRECTIVES:
        return None
    if hash_token.text not in _HASH_PUNCTUATORS:
        return None
    if not hash_token.start.line == directive.end.line == line:
        return None
    if len(recent) == 3 and recent[-3].last_line == hash_token.start.line:
        return None
    return _HEADER_NAME_PATTERN.match(data, pos)


def _encode(source: str) -> bytes:
    try:
        return source.encode("utf-8")
    except UnicodeEncodeError as exc:
        # Lone surrogates, e.g. undecodable bytes smuggled in through sys.argv.
        prefix = source[: exc.start].encode("utf-8")
        raise _error_at(prefix, len(prefix), "invalid UTF-8 byte sequence") from exc


def _check_utf8(data: bytes) -> None:
    try:
        data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise _error_at(data, exc.start, "invalid UTF-8 byte sequence") from exc


def _diagnose(data: bytes, pos: int, line: int, line_start: int) -> LexError:
    column = pos - line_start + 1
    if data.startswith(b"/*", pos):
        message = "unterminated block comment"
    elif _STRING_OPEN_PATTERN.match(data, pos):
        message = "unterminated string literal"
    elif _CHAR_OPEN_PATTERN.match(data, pos):
        opening = _CHAR_OPEN_PATTERN.match(data, pos)
        if data[opening.end() : opening.end() + 1] == b"'":
            message = "empty character literal"
        else:
            message = "unterminated character literal"
    else:
        message = f"unexpected character {data[pos : pos + 1]!r}"
    return LexError(message, offset=pos, line=line, column=column)


def _error_at(data: bytes, offset: int, message: str) -> LexError:
    line = data.count(b"\n", 0, offset) + 1
    line_start = data.rfind(b"\n", 0, offset) + 1
    return LexError(message, offset=offset, line=line, column=offset - line_start + 1)
