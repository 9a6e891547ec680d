"""Unit tests for the C lexer."""

import pytest

from looker.search.errors import LexError
from looker.search.lexer import C_KEYWORDS, iter_tokens, tokenize
from looker.search.models import Position, TokenKind


def _texts(source):
    return [token.text for token in tokenize(source)]


def _kinds(source):
    return [token.kind for token in tokenize(source)]


SAMPLE = b"""#include <stdio.h>
#define SQUARE(x) ((x) * (x)) \\
    /* spliced */

/* block
   comment */
static const char *names[] = { "a\\"b", L"wide", u8"utf" };

int main(int argc, char **argv) {
    for (int i = 0; i < argc; i++) { // count
        printf("%d %c\\n", SQUARE(i), 'x');
    }
    return 0x1Fu + 1.5e-3f > .5 ? 0 : -1;
}
"""


@pytest.mark.unit
class TestTokenKinds:
    """Classification into the closed kind set."""

    def test_simple_declaration(self):
        tokens = tokenize("int x = 42;")
        assert [token.text for token in tokens] == ["int", "x", "=", "42", ";"]
        assert [token.kind for token in tokens] == [
            TokenKind.KEYWORD,
            TokenKind.IDENTIFIER,
            TokenKind.PUNCTUATOR,
            TokenKind.NUMBER,
            TokenKind.PUNCTUATOR,
        ]

    def test_keyword_set_is_exact(self):
        assert "_Static_assert" in C_KEYWORDS
        assert len(C_KEYWORDS) == 44
        assert _kinds("_Bool bool sizeof size_t") == [
            TokenKind.KEYWORD,
            TokenKind.IDENTIFIER,
            TokenKind.KEYWORD,
            TokenKind.IDENTIFIER,
        ]

    def test_identifier_prefixed_like_string_prefix(self):
        assert _kinds("u8 L Lx") == [TokenKind.IDENTIFIER] * 3

    @pytest.mark.parametrize("literal", ["0x1F", "1.5e-3f", "0x1p+3", "10UL", ".5", "017", "1e10", "3.f"])
    def test_numbers_are_single_tokens(self, literal):
        tokens = tokenize(literal)
        assert len(tokens) == 1
        assert tokens[0].kind is TokenKind.NUMBER
        assert tokens[0].text == literal

    def test_string_with_escaped_quote(self):
        tokens = tokenize(r'x = "a\"b";')
        assert tokens[2].kind is TokenKind.STRING
        assert tokens[2].text == r'"a\"b"'
        assert tokens[3].text == ";"

    @pytest.mark.parametrize(
        ("literal", "kind"),
        [
            ('L"wide"', TokenKind.STRING),
            ('u8"utf"', TokenKind.STRING),
            ('U"u32"', TokenKind.STRING),
            ("L'a'", TokenKind.CHAR),
            ("'\\n'", TokenKind.CHAR),
            ("'\\''", TokenKind.CHAR),
        ],
    )
    def test_prefixed_literals(self, literal, kind):
        tokens = tokenize(literal)
        assert len(tokens) == 1
        assert tokens[0].kind is kind
        assert tokens[0].text == literal

    def test_header_name_is_one_string_token(self):
        tokens = tokenize("#include <sys/types.h>\n")
        assert [token.text for token in tokens] == ["#", "include", "<sys/types.h>"]
        assert tokens[2].kind is TokenKind.STRING

    def test_header_name_after_spaced_digraph_hash(self):
        assert _texts("%:  include_next <stdio.h>") == ["%:", "include_next", "<stdio.h>"]

    def test_comparison_is_not_a_header_name(self):
        assert _texts("if (a <b && c> d)") == ["if", "(", "a", "<", "b", "&&", "c", ">", "d", ")"]

    def test_include_not_at_line_start_is_not_a_directive(self):
        assert _texts("x # include <a.h>") == ["x", "#", "include", "<", "a", ".", "h", ">"]


@pytest.mark.unit
class TestMaximalMunch:
    """Punctuators are split by longest match."""

    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("a>>=b", ["a", ">>=", "b"]),
            ("a+++b", ["a", "++", "+", "b"]),
            ("p->next", ["p", "->", "next"]),
            ("f(...)", ["f", "(", "...", ")"]),
            ("a<:0:>", ["a", "<:", "0", ":>"]),
            ("<%%>", ["<%", "%>"]),
            ("%:%:", ["%:%:"]),
            ("x##y", ["x", "##", "y"]),
            ("a&&b||c", ["a", "&&", "b", "||", "c"]),
        ],
    )
    def test_longest_punctuator_wins(self, source, expected):
        assert _texts(source) == expected


@pytest.mark.unit
class TestCommentsAndWhitespace:
    """Discarded material between tokens."""

    def test_comments_are_discarded(self):
        assert _texts("a /* x */ b // c\nd") == ["a", "b", "d"]

    def test_block_comment_advances_lines(self):
        tokens = tokenize("a /* one\ntwo\nthree */ b")
        assert tokens[1].text == "b"
        assert tokens[1].start.line == 3

    def test_line_comment_continued_by_splice(self):
        assert _texts("a // comment \\\n still comment\nb") == ["a", "b"]

    def test_line_comment_ending_in_backslash_at_eof(self):
        assert _texts(b"int a; // trailing \\") == ["int", "a", ";"]

    def test_line_splice_between_tokens(self):
        tokens = tokenize("#define X \\\n  42")
        assert [token.text for token in tokens] == ["#", "define", "X", "42"]
        assert tokens[-1].start.line == 2

    def test_comment_only_source_has_no_tokens(self):
        assert tokenize("  /* nothing */ // here\n") == ()

    def test_whitespace_invariance(self):
        dense = tokenize("for(int i=0;i<n;i++)")
        spaced = tokenize("for ( int\n i = 0 ;\t i < n ; /* step */ i ++ )")
        assert [token.identity for token in dense] == [token.identity for token in spaced]


@pytest.mark.unit
class TestPositions:
    """Byte offsets, lines and columns."""

    def test_positions_across_lines(self):
        tokens = tokenize("int main(void)\n{\n  return 0;\n}\n")
        ret = next(token for token in tokens if token.text == "return")
        assert ret.start == Position(offset=19, line=3, column=3)
        assert ret.end == Position(offset=25, line=3, column=9)
        assert ret.last_line == 3

    def test_columns_count_bytes(self):
        tokens = tokenize('"é" x')
        assert tokens[0].text == '"é"'
        assert tokens[1].start == Position(offset=5, line=1, column=6)

    def test_lossless_coverage(self):
        tokens = tokenize(SAMPLE)
        previous_end = 0
        for token in tokens:
            assert token.start.offset >= previous_end
            assert SAMPLE[token.start.offset : token.end.offset].decode("utf-8") == token.text
            previous_end = token.end.offset

    def test_gaps_hold_no_tokens(self):
        tokens = tokenize(SAMPLE)
        previous_end = 0
        for token in tokens:
            assert tokenize(SAMPLE[previous_end : token.start.offset]) == ()
            previous_end = token.end.offset
        assert tokenize(SAMPLE[previous_end:]) == ()

    def test_lexing_is_deterministic(self):
        assert tokenize(SAMPLE) == tokenize(SAMPLE)

    def test_str_and_bytes_agree(self):
        assert tokenize(SAMPLE.decode("utf-8")) == tokenize(SAMPLE)

    def test_iter_tokens_is_lazy(self):
        stream = iter_tokens(b"a b @")
        assert next(stream).text == "a"
        assert next(stream).text == "b"
        with pytest.raises(LexError):
            next(stream)


@pytest.mark.unit
class TestLexErrors:
    """Malformed input fails with a located error."""

    def test_unterminated_string(self):
        with pytest.raises(LexError, match="unterminated string literal") as excinfo:
            tokenize('x = "abc')
        assert excinfo.value.offset == 4
        assert (excinfo.value.line, excinfo.value.column) == (1, 5)

    def test_raw_newline_ends_string(self):
        with pytest.raises(LexError, match="unterminated string literal"):
            tokenize('"ab\ncd"')

    def test_empty_char_literal(self):
        with pytest.raises(LexError, match="empty character literal") as excinfo:
            tokenize("c = '';")
        assert excinfo.value.offset == 4

    def test_unterminated_char_literal(self):
        with pytest.raises(LexError, match="unterminated character literal"):
            tokenize("c = 'a")

    def test_unterminated_block_comment(self):
        with pytest.raises(LexError, match="unterminated block comment") as excinfo:
            tokenize("int a; /* never closed")
        assert excinfo.value.offset == 7

    def test_unexpected_character_location(self):
        with pytest.raises(LexError, match="unexpected character") as excinfo:
            tokenize("int a;\n  @")
        assert excinfo.value.offset == 9
        assert (excinfo.value.line, excinfo.value.column) == (2, 3)

    def test_invalid_utf8(self):
        with pytest.raises(LexError, match="invalid UTF-8") as excinfo:
            tokenize(b"int \xff;")
        assert excinfo.value.offset == 4

    def test_lone_surrogate_in_text_source(self):
        with pytest.raises(LexError, match="invalid UTF-8") as excinfo:
            tokenize("int \udcff;")
        assert excinfo.value.offset == 4
        assert (excinfo.value.line, excinfo.value.column) == (1, 5)

    def test_error_with_path(self):
        error = LexError("boom", offset=3, line=1, column=4)
        located = error.with_path("src/a.c")
        assert located.path == "src/a.c"
        assert str(located) == "src/a.c:1:4 (byte 3): boom"
        assert isinstance(located, ValueError)
