"""Unit tests for query compilation."""

import pytest

from looker.search.errors import EmptyQueryError, LexError
from looker.search.models import TokenKind
from looker.search.query import QUERY_SOURCE_NAME, Query, compile_query


@pytest.mark.unit
class TestCompileQuery:
    def test_compiles_tokens_and_keeps_text(self):
        query = compile_query("for (int i")
        assert query.text == "for (int i"
        assert query.token_texts == ["for", "(", "int", "i"]
        assert len(query) == 4
        assert query.first_identity == (TokenKind.KEYWORD, "for")

    def test_spacing_does_not_change_identities(self):
        assert compile_query("for(int i=0;").identities == compile_query("for ( int i = 0 ;").identities

    @pytest.mark.parametrize("text", ["", "   ", "\n\t", "/* only a comment */", "// note"])
    def test_tokenless_query_is_rejected(self, text):
        with pytest.raises(EmptyQueryError) as excinfo:
            compile_query(text)
        assert excinfo.value.query == text

    def test_lexically_invalid_query_names_the_query(self):
        with pytest.raises(LexError) as excinfo:
            compile_query('printf("unterminated')
        assert excinfo.value.path == QUERY_SOURCE_NAME
        assert "unterminated string literal" in str(excinfo.value)

    def test_query_requires_tokens(self):
        with pytest.raises(EmptyQueryError):
            Query(text="", tokens=())

    def test_undecodable_argument_is_a_lex_error(self):
        # sys.argv carries non-UTF-8 bytes as lone surrogates
        with pytest.raises(LexError, match="invalid UTF-8") as excinfo:
            compile_query("int \udcff")
        assert excinfo.value.path == QUERY_SOURCE_NAME
